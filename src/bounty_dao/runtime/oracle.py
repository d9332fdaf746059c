"""Authoritative chain time.

Deadlines are compared against the latest block's timestamp, never the
host clock. A failed poll drops the last value instead of keeping a stale
one, so time-gated actions fail closed with ``NoTimeSource``.
"""
from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from bounty_dao.chain.errors import ChainRpcError
from bounty_dao.chain.rpc_client import JsonRpcClient
from bounty_dao.observability.logging import get_logger
from bounty_dao.types import UNAVAILABLE, Unavailable

DEFAULT_POLL_INTERVAL_SECONDS = 15.0


@dataclass(slots=True, frozen=True)
class ChainClock:
    block_number: int
    timestamp: int

    def as_dict(self) -> dict[str, int]:
        return {"block_number": self.block_number, "timestamp": self.timestamp}


class TemporalOracle:
    def __init__(
        self,
        client: JsonRpcClient,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        self._client = client
        self._poll_interval_seconds = poll_interval_seconds
        self._clock: ChainClock | Unavailable = UNAVAILABLE
        # Past block timestamps never change once mined.
        self._block_timestamps: dict[int, int] = {}
        self._task: asyncio.Task[None] | None = None
        self._logger = get_logger("temporal_oracle")

    @property
    def clock(self) -> ChainClock | Unavailable:
        return self._clock

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_time(self) -> int | Unavailable:
        clock = self._clock
        if isinstance(clock, Unavailable):
            return UNAVAILABLE
        return clock.timestamp

    def current_block(self) -> int | Unavailable:
        clock = self._clock
        if isinstance(clock, Unavailable):
            return UNAVAILABLE
        return clock.block_number

    async def poll_once(self) -> ChainClock | Unavailable:
        try:
            header = await self._client.get_block("latest")
        except ChainRpcError as exc:
            if not isinstance(self._clock, Unavailable):
                self._logger.warning("time_source_unavailable", error=exc.message)
            self._clock = UNAVAILABLE
            return UNAVAILABLE

        clock = ChainClock(block_number=header.number, timestamp=header.timestamp)
        self._block_timestamps[header.number] = header.timestamp
        self._clock = clock
        return clock

    async def refresh(self) -> ChainClock | Unavailable:
        """Poll now, ahead of a decision that must not use a stale clock."""
        return await self.poll_once()

    async def block_timestamp(self, block_number: int) -> int | Unavailable:
        cached = self._block_timestamps.get(block_number)
        if cached is not None:
            return cached
        try:
            header = await self._client.get_block(block_number)
        except ChainRpcError as exc:
            self._logger.warning(
                "block_timestamp_unavailable",
                block_number=block_number,
                error=exc.message,
            )
            return UNAVAILABLE
        self._block_timestamps[block_number] = header.timestamp
        return header.timestamp

    async def block_timestamps(self, block_numbers: Iterable[int]) -> dict[int, int]:
        wanted = sorted(set(block_numbers))
        values = await asyncio.gather(*(self.block_timestamp(number) for number in wanted))
        return {
            number: value
            for number, value in zip(wanted, values)
            if not isinstance(value, Unavailable)
        }

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval_seconds)
            await self.poll_once()

    def start(self) -> None:
        """Schedule periodic polls; the first one lands after one interval."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> TemporalOracle:
        await self.refresh()
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def status(self) -> dict[str, Any]:
        clock = self._clock
        return {
            "time_source": "unavailable" if isinstance(clock, Unavailable) else "ok",
            "clock": None if isinstance(clock, Unavailable) else clock.as_dict(),
            "polling": self.running,
        }
