from __future__ import annotations

import asyncio
from argparse import Namespace
from typing import Any

from bounty_dao.commands import common
from bounty_dao.config import AppSettings
from bounty_dao.runtime.oracle import TemporalOracle
from bounty_dao.types import CommandResult, CommandStatus

COMMAND = "time-source-check"


async def _read_time_source(settings: AppSettings) -> tuple[dict[str, Any], bool, str]:
    async with common.build_client(settings) as client:
        oracle = TemporalOracle(client, settings.time_poll_interval_seconds)
        await oracle.refresh()
        matches = await common.network_matches(client, settings.chain_id)
        return oracle.status(), matches, client.url


def run_time_source_check(_: Namespace, settings: AppSettings) -> CommandResult:
    status, matches, rpc_url = asyncio.run(_read_time_source(settings))
    details = {
        "rpc_url": rpc_url,
        "chain_id": settings.chain_id,
        "network_matches": matches,
        **status,
    }
    if status["clock"] is None:
        return common.failed(COMMAND, "time source unavailable", **details)
    return CommandResult(command=COMMAND, status=CommandStatus.EXECUTED, details=details)
