from __future__ import annotations

import asyncio
from argparse import Namespace
from typing import Any

from bounty_dao.chain.addresses import normalize_address
from bounty_dao.chain.governor_reader import GovernorReader
from bounty_dao.chain.log_fetcher import LogFetcher
from bounty_dao.commands import common
from bounty_dao.config import AppSettings
from bounty_dao.domain.governance_lifecycle import GovernanceAction
from bounty_dao.orchestration.session import GovernanceSession, GovernanceView
from bounty_dao.runtime.oracle import TemporalOracle
from bounty_dao.types import CommandResult, CommandStatus

COMMAND = "inspect-governance"


async def _inspect(
    settings: AppSettings,
    governor_address: str,
    token_address: str,
    proposal_id: int,
    caller_address: str | None,
) -> tuple[GovernanceView | None, dict[str, Any]]:
    async with common.build_client(settings) as client:
        matches = await common.network_matches(client, settings.chain_id)
        reader = GovernorReader(
            client,
            governor_address,
            token_address,
            log_fetcher=LogFetcher(client, settings.log_chunk_size),
            start_block=settings.start_block,
        )
        session = GovernanceSession(
            reader,
            TemporalOracle(client, settings.time_poll_interval_seconds),
            proposal_id,
            caller_address=caller_address,
            network_matches=matches,
            block_time_estimate_seconds=settings.block_time_estimate_seconds,
        )
        try:
            view = await session.refresh()
        finally:
            await session.close()
        return view, session.oracle.status()


def run_inspect_governance(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        proposal_id = common.parse_amount(
            getattr(args, "proposal_id", None), field_name="proposal_id"
        )
        raw_caller = common.normalized_string(getattr(args, "caller", ""))
        caller_address = normalize_address(raw_caller, field_name="caller") if raw_caller else None
    except ValueError as exc:
        return common.failed(COMMAND, str(exc))

    try:
        governor_address = normalize_address(
            settings.governor_address, field_name="governor_address"
        )
        token_address = normalize_address(settings.token_address, field_name="token_address")
    except ValueError as exc:
        return common.denied_for_address(COMMAND, str(exc), GovernanceAction)

    view, oracle_status = asyncio.run(
        _inspect(settings, governor_address, token_address, proposal_id, caller_address)
    )
    if view is None:
        return common.failed(COMMAND, "refresh superseded", proposal_id=str(proposal_id))

    details = {"view": view.as_dict(), "oracle": oracle_status}
    if view.error is not None:
        return common.failed(COMMAND, view.error.message, **details)

    raw_action = common.normalized_string(getattr(args, "action", ""))
    if not raw_action:
        return CommandResult(command=COMMAND, status=CommandStatus.EXECUTED, details=details)

    verdict = view.actions.get(raw_action)
    if verdict is None:
        return common.failed(COMMAND, f"unknown governance action: {raw_action}")
    details["action"] = raw_action
    details["verdict"] = verdict.as_dict()
    return CommandResult(
        command=COMMAND, status=common.verdict_status(verdict.allowed), details=details
    )
