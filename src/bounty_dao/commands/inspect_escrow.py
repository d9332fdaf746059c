from __future__ import annotations

import asyncio
from argparse import Namespace
from itertools import chain
from typing import Any

from bounty_dao.chain.addresses import normalize_address
from bounty_dao.chain.escrow_reader import EscrowReader
from bounty_dao.commands import common
from bounty_dao.config import AppSettings
from bounty_dao.domain.escrow_lifecycle import ContractAction, EscrowAction, delivery_template
from bounty_dao.orchestration.session import EscrowSession, EscrowView
from bounty_dao.runtime.oracle import TemporalOracle
from bounty_dao.types import CommandResult, CommandStatus

COMMAND = "inspect-escrow"


async def _inspect(
    settings: AppSettings,
    escrow_address: str,
    token_address: str,
    proposal_id: int,
    caller_address: str | None,
) -> tuple[EscrowView | None, dict[str, Any]]:
    async with common.build_client(settings) as client:
        matches = await common.network_matches(client, settings.chain_id)
        session = EscrowSession(
            EscrowReader(client, escrow_address, token_address),
            TemporalOracle(client, settings.time_poll_interval_seconds),
            proposal_id,
            caller_address=caller_address,
            network_matches=matches,
            required_bond=settings.required_bond_wei,
            creator_deposit=settings.creator_deposit_wei,
        )
        try:
            view = await session.refresh()
        finally:
            await session.close()
        return view, session.oracle.status()


def run_inspect_escrow(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        proposal_id = common.parse_amount(
            getattr(args, "proposal_id", None), field_name="proposal_id"
        )
        raw_caller = common.normalized_string(getattr(args, "caller", ""))
        caller_address = normalize_address(raw_caller, field_name="caller") if raw_caller else None
    except ValueError as exc:
        return common.failed(COMMAND, str(exc))

    try:
        escrow_address = normalize_address(settings.escrow_address, field_name="escrow_address")
        token_address = normalize_address(settings.token_address, field_name="token_address")
    except ValueError as exc:
        return common.denied_for_address(
            COMMAND, str(exc), chain(EscrowAction, ContractAction)
        )

    view, oracle_status = asyncio.run(
        _inspect(settings, escrow_address, token_address, proposal_id, caller_address)
    )
    if view is None:
        return common.failed(COMMAND, "refresh superseded", proposal_id=proposal_id)

    details = {"view": view.as_dict(), "oracle": oracle_status}
    if view.error is not None:
        return common.failed(COMMAND, view.error.message, **details)

    if view.proposal is not None and view.proposal.winner_topic_id is not None:
        details["delivery_template"] = delivery_template(
            view.proposal,
            view.winner_owner,
            common.normalized_string(getattr(args, "nonce", "")) or None,
        )

    raw_action = common.normalized_string(getattr(args, "action", ""))
    if not raw_action:
        return CommandResult(command=COMMAND, status=CommandStatus.EXECUTED, details=details)

    verdict = view.verdict(raw_action)
    if verdict is None:
        return common.failed(COMMAND, f"unknown escrow action: {raw_action}")
    details["action"] = raw_action
    details["verdict"] = verdict.as_dict()
    return CommandResult(
        command=COMMAND, status=common.verdict_status(verdict.allowed), details=details
    )
