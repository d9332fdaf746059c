"""Chunked, concurrent history retrieval.

Providers cap the block span of ``eth_getLogs``; the range is split into
fixed-size chunks fetched in parallel. A failing chunk is logged and
reported in ``EventBatch.failed_chunks`` while the rest of the history is
still returned.
"""
from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from eth_abi import encode
from eth_abi.exceptions import DecodingError

from bounty_dao.chain.abi import EventSpec
from bounty_dao.chain.errors import ChainRpcError, ReadError
from bounty_dao.chain.rpc_client import JsonRpcClient
from bounty_dao.domain.events import ChainEvent, correlate
from bounty_dao.observability.logging import get_logger

DEFAULT_CHUNK_SIZE = 50_000


@dataclass(slots=True, frozen=True)
class BlockChunk:
    from_block: int
    to_block: int

    def as_dict(self) -> dict[str, int]:
        return {"from_block": self.from_block, "to_block": self.to_block}


@dataclass(slots=True, frozen=True)
class EventFilter:
    address: str
    events: tuple[EventSpec, ...]
    from_block: int = 0
    to_block: int | None = None
    # Matched against decoded args; pushed into topics where the arg is indexed.
    arg_filters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class EventBatch:
    events: tuple[ChainEvent, ...]
    failed_chunks: tuple[BlockChunk, ...] = ()
    error: ReadError | None = None

    @property
    def partial(self) -> bool:
        return bool(self.failed_chunks) or self.error is not None

    def as_dict(self) -> dict[str, Any]:
        return {
            "events": [event.as_dict() for event in self.events],
            "failed_chunks": [chunk.as_dict() for chunk in self.failed_chunks],
            "error": self.error.as_dict() if self.error is not None else None,
        }


def plan_block_chunks(from_block: int, to_block: int, size: int) -> list[BlockChunk]:
    """Inclusive, gap-free ranges covering ``[from_block, to_block]``."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    if to_block < from_block:
        return []
    return [
        BlockChunk(start, min(start + size - 1, to_block))
        for start in range(from_block, to_block + 1, size)
    ]


def _topics_for(spec: EventSpec, arg_filters: Mapping[str, Any]) -> list[str | None]:
    topics: list[str | None] = [spec.topic]
    for item in spec.inputs:
        if not item.indexed:
            continue
        if item.name in arg_filters:
            topics.append("0x" + encode([item.type], [arg_filters[item.name]]).hex())
        else:
            topics.append(None)
    while topics and topics[-1] is None:
        topics.pop()
    return topics


def _matches(event: ChainEvent, arg_filters: Mapping[str, Any]) -> bool:
    for name, expected in arg_filters.items():
        actual = event.args.get(name)
        if isinstance(expected, str) and isinstance(actual, str):
            if expected.lower() != actual.lower():
                return False
        elif actual != expected:
            return False
    return True


class LogFetcher:
    def __init__(self, client: JsonRpcClient, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._client = client
        self._chunk_size = chunk_size
        self._logger = get_logger("log_fetcher")

    async def _fetch_chunk(
        self,
        event_filter: EventFilter,
        spec: EventSpec,
        chunk: BlockChunk,
    ) -> list[ChainEvent] | None:
        try:
            logs = await self._client.get_logs(
                event_filter.address,
                _topics_for(spec, event_filter.arg_filters),
                chunk.from_block,
                chunk.to_block,
            )
        except ChainRpcError as exc:
            self._logger.warning(
                "log_chunk_failed",
                event_name=spec.name,
                from_block=chunk.from_block,
                to_block=chunk.to_block,
                error=exc.message,
            )
            return None

        events = []
        for log in logs:
            try:
                events.append(spec.decode_log(log))
            except (DecodingError, ValueError) as exc:
                self._logger.warning(
                    "log_decode_failed",
                    event_name=spec.name,
                    transaction_hash=log.get("transactionHash"),
                    error=str(exc),
                )
        return events

    async def fetch_events(self, event_filter: EventFilter) -> EventBatch:
        to_block = event_filter.to_block
        if to_block is None:
            try:
                to_block = await self._client.block_number()
            except ChainRpcError as exc:
                self._logger.warning("log_head_unavailable", error=exc.message)
                return EventBatch(events=(), error=exc.to_read_error())

        chunks = plan_block_chunks(event_filter.from_block, to_block, self._chunk_size)
        jobs = [(spec, chunk) for spec in event_filter.events for chunk in chunks]
        results = await asyncio.gather(
            *(self._fetch_chunk(event_filter, spec, chunk) for spec, chunk in jobs)
        )

        failed: list[BlockChunk] = []
        streams: list[Sequence[ChainEvent]] = []
        for (_, chunk), result in zip(jobs, results):
            if result is None:
                if chunk not in failed:
                    failed.append(chunk)
                continue
            streams.append([event for event in result if _matches(event, event_filter.arg_filters)])

        return EventBatch(events=tuple(correlate(*streams)), failed_chunks=tuple(failed))
