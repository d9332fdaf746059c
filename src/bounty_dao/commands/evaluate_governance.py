from __future__ import annotations

from argparse import Namespace

from bounty_dao.commands.common import (
    caller_from_args,
    failed,
    normalized_string,
    optional_int,
    parse_amount,
    parse_code,
    time_or_unavailable,
    verdict_status,
)
from bounty_dao.config import AppSettings
from bounty_dao.domain.governance_lifecycle import GovernanceAction, resolve_governance
from bounty_dao.domain.proposals import GovernanceProposal, GovernanceState
from bounty_dao.types import CommandResult, CommandStatus

COMMAND = "evaluate-governance"


def _proposal_from_args(args: Namespace) -> GovernanceProposal:
    def amount(name: str) -> int:
        return parse_amount(getattr(args, name, None), field_name=name)

    proposal = GovernanceProposal(
        id=amount("proposal_id"),
        state=parse_code(GovernanceState, getattr(args, "state", None), field_name="state"),
        snapshot_block=amount("snapshot_block"),
        deadline_block=amount("deadline_block"),
        for_votes=amount("for_votes"),
        against_votes=amount("against_votes"),
        abstain_votes=amount("abstain_votes"),
        quorum=amount("quorum"),
        eta=optional_int(getattr(args, "eta", None), field_name="eta"),
    )
    proposal.ensure_canonical()
    return proposal


def run_evaluate_governance(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        proposal = _proposal_from_args(args)
        current_block = time_or_unavailable(
            getattr(args, "current_block", None), field_name="current_block"
        )
        current_time = time_or_unavailable(
            getattr(args, "current_time", None), field_name="current_time"
        )
        voting_power = parse_amount(getattr(args, "voting_power", None), field_name="voting_power")
        caller = caller_from_args(args, normalized_string(getattr(args, "contract", "")) or None)
    except ValueError as exc:
        return failed(COMMAND, str(exc))

    resolution = resolve_governance(
        proposal,
        caller,
        current_block,
        voting_power=voting_power,
        has_voted=bool(getattr(args, "has_voted", False)),
        current_timestamp=current_time,
        block_time_estimate_seconds=settings.block_time_estimate_seconds,
    )
    details = {
        "proposal": proposal.as_dict(),
        "resolution": resolution.as_dict(),
        "allowed_actions": [action.value for action in resolution.allowed_actions()],
    }

    raw_action = normalized_string(getattr(args, "action", ""))
    if not raw_action:
        return CommandResult(command=COMMAND, status=CommandStatus.EXECUTED, details=details)

    try:
        action = GovernanceAction(raw_action)
    except ValueError:
        return failed(COMMAND, f"unknown governance action: {raw_action}")
    verdict = resolution.verdict(action)
    details["action"] = action.value
    details["verdict"] = verdict.as_dict()
    return CommandResult(command=COMMAND, status=verdict_status(verdict.allowed), details=details)
