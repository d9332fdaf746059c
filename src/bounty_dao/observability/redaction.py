from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "***REDACTED***"

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "secret",
        "token",
        "private_key",
        "api_key",
        "password",
        "mnemonic",
    }
)

# Contract addresses are public even when the key mentions "token".
PUBLIC_KEY_SUFFIXES: tuple[str, ...] = ("_address", "_symbol")

_URL_USERINFO = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)
_URL_PATH_KEY = re.compile(r"(?P<prefix>/v[0-9]+/)[A-Za-z0-9_-]{16,}")


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower()
    if normalized.endswith(PUBLIC_KEY_SUFFIXES):
        return False
    return any(sensitive in normalized for sensitive in SENSITIVE_KEYS)


def redact_url(value: str) -> str:
    """Strip credentials an RPC provider URL may embed."""
    masked = _URL_USERINFO.sub(rf"\g<scheme>{REDACTED}@", value)
    return _URL_PATH_KEY.sub(rf"\g<prefix>{REDACTED}", masked)


def redact_sensitive(data: Any) -> Any:
    if isinstance(data, Mapping):
        return {
            key: REDACTED if _is_sensitive_key(str(key)) else redact_sensitive(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    if isinstance(data, str) and "://" in data:
        return redact_url(data)
    return data
