from __future__ import annotations

from eth_utils import is_address, to_checksum_address

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(raw_value: str, *, field_name: str) -> str:
    candidate = raw_value.strip()
    if not candidate:
        raise ValueError(f"{field_name} is required")

    if not is_address(candidate):
        raise ValueError(f"{field_name} must be a valid EVM address")
    return to_checksum_address(candidate)


def is_valid_address(raw_value: str | None) -> bool:
    return bool(raw_value) and is_address(raw_value.strip())


def is_zero_address(value: str | None) -> bool:
    return value is None or value.lower() == ZERO_ADDRESS


def same_address(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()
