from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from eth_utils import decode_hex

from bounty_dao.chain.errors import ChainRpcError, ReadErrorKind
from bounty_dao.config import AppSettings
from bounty_dao.observability.redaction import redact_url

# Execution reverted (EIP-1474 / geth) is the ledger saying "no such thing".
_REVERT_CODES = frozenset({3, -32015})


@dataclass(slots=True, frozen=True)
class BlockHeader:
    number: int
    timestamp: int


def _hex_to_int(raw_value: Any) -> int:
    if isinstance(raw_value, int):
        return raw_value
    return int(str(raw_value), 16)


def _block_tag(block: int | str) -> str:
    return hex(block) if isinstance(block, int) else block


def _is_revert(error: dict[str, Any]) -> bool:
    if error.get("code") in _REVERT_CODES:
        return True
    return "revert" in str(error.get("message", "")).lower()


class JsonRpcClient:
    """Minimal async JSON-RPC 2.0 client for the handful of reads we need."""

    def __init__(self, http: httpx.AsyncClient, url: str) -> None:
        self._http = http
        self._url = url
        self._next_id = 0

    @property
    def url(self) -> str:
        return redact_url(self._url)

    async def request(self, method: str, params: list[Any]) -> Any:
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        try:
            response = await self._http.post(self._url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise ChainRpcError(ReadErrorKind.UNREACHABLE, f"{method}: {exc}") from exc
        except ValueError as exc:
            raise ChainRpcError(ReadErrorKind.UNREACHABLE, f"{method}: malformed response") from exc

        if not isinstance(body, dict):
            raise ChainRpcError(ReadErrorKind.UNREACHABLE, f"{method}: malformed response")

        error = body.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            kind = ReadErrorKind.NOT_FOUND if _is_revert(error) else ReadErrorKind.UNREACHABLE
            raise ChainRpcError(kind, f"{method}: {error.get('message', 'rpc error')}")
        return body.get("result")

    async def _quantity(self, method: str) -> int:
        result = await self.request(method, [])
        try:
            return _hex_to_int(result)
        except (TypeError, ValueError) as exc:
            raise ChainRpcError(ReadErrorKind.UNREACHABLE, f"{method}: malformed result") from exc

    async def chain_id(self) -> int:
        return await self._quantity("eth_chainId")

    async def block_number(self) -> int:
        return await self._quantity("eth_blockNumber")

    async def get_block(self, block: int | str = "latest") -> BlockHeader:
        result = await self.request("eth_getBlockByNumber", [_block_tag(block), False])
        if result is None:
            raise ChainRpcError(ReadErrorKind.NOT_FOUND, f"block {block} not found")
        try:
            return BlockHeader(
                number=_hex_to_int(result["number"]),
                timestamp=_hex_to_int(result["timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainRpcError(
                ReadErrorKind.UNREACHABLE, f"block {block}: malformed header"
            ) from exc

    async def eth_call(self, to: str, data: bytes, block: int | str = "latest") -> bytes:
        result = await self.request(
            "eth_call",
            [{"to": to, "data": "0x" + data.hex()}, _block_tag(block)],
        )
        try:
            raw = decode_hex(result or "0x")
        except (TypeError, ValueError) as exc:
            raise ChainRpcError(ReadErrorKind.UNREACHABLE, "eth_call: malformed result") from exc
        if not raw:
            # Calls into an address without code return empty data.
            raise ChainRpcError(ReadErrorKind.NOT_FOUND, f"eth_call to {to} returned no data")
        return raw

    async def get_logs(
        self,
        address: str,
        topics: list[str | list[str] | None],
        from_block: int,
        to_block: int,
    ) -> list[dict[str, Any]]:
        result = await self.request(
            "eth_getLogs",
            [
                {
                    "address": address,
                    "topics": topics,
                    "fromBlock": hex(from_block),
                    "toBlock": hex(to_block),
                }
            ],
        )
        return list(result or [])

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> JsonRpcClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class RpcClientFactory:
    """Thin factory for JsonRpcClient to keep adapter construction deterministic."""

    def __init__(
        self,
        settings: AppSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    def create(self) -> JsonRpcClient:
        http = httpx.AsyncClient(
            timeout=self._settings.rpc_timeout_seconds,
            transport=self._transport,
        )
        return JsonRpcClient(http, self._settings.rpc_url)
