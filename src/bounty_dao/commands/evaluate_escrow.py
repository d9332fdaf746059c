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
from bounty_dao.domain.escrow_lifecycle import (
    ContractAction,
    EscrowAction,
    delivery_template,
    resolve_contract_actions,
    resolve_escrow,
)
from bounty_dao.domain.proposals import BountyProposal, BountyStatus
from bounty_dao.types import CommandResult, CommandStatus

COMMAND = "evaluate-escrow"

ESCROW_ACTIONS = {action.value: action for action in EscrowAction}
CONTRACT_ACTIONS = {action.value: action for action in ContractAction}


def _proposal_from_args(args: Namespace) -> BountyProposal:
    proposal = BountyProposal(
        id=parse_amount(getattr(args, "proposal_id", None), field_name="proposal_id"),
        status=parse_code(BountyStatus, getattr(args, "status", None), field_name="status"),
        start_time=parse_amount(getattr(args, "start_time", None), field_name="start_time"),
        end_time=parse_amount(getattr(args, "end_time", None), field_name="end_time"),
        topic_count=parse_amount(getattr(args, "topic_count", None), field_name="topic_count"),
        winner_topic_id=optional_int(
            getattr(args, "winner_topic_id", None), field_name="winner_topic_id"
        ),
        submit_deadline=optional_int(
            getattr(args, "submit_deadline", None), field_name="submit_deadline"
        ),
        challenge_window_end=optional_int(
            getattr(args, "challenge_window_end", None), field_name="challenge_window_end"
        ),
    )
    proposal.ensure_canonical()
    return proposal


def run_evaluate_escrow(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        proposal = _proposal_from_args(args)
        current_time = time_or_unavailable(
            getattr(args, "current_time", None), field_name="current_time"
        )
        allowance = parse_amount(getattr(args, "allowance", None), field_name="allowance")
        required_bond = parse_amount(
            getattr(args, "required_bond", None),
            field_name="required_bond",
            default=settings.required_bond_wei,
        )
        creator_deposit = parse_amount(
            getattr(args, "creator_deposit", None),
            field_name="creator_deposit",
            default=settings.creator_deposit_wei,
        )
        caller = caller_from_args(args, normalized_string(getattr(args, "contract", "")) or None)
    except ValueError as exc:
        return failed(COMMAND, str(exc))
    paused = bool(getattr(args, "paused", False))

    resolution = resolve_escrow(
        proposal,
        caller,
        current_time,
        token_allowance=allowance,
        required_bond=required_bond,
        paused=paused,
    )
    contract_actions = resolve_contract_actions(
        caller,
        paused=paused,
        token_allowance=allowance,
        creator_deposit=creator_deposit,
    )
    details = {
        "proposal": proposal.as_dict(),
        "resolution": resolution.as_dict(),
        "contract_actions": {
            action.value: verdict.as_dict() for action, verdict in contract_actions.items()
        },
        "allowed_actions": [action.value for action in resolution.allowed_actions()],
    }
    if proposal.status >= BountyStatus.ACCEPTED:
        details["delivery_template"] = delivery_template(
            proposal,
            caller.address if caller is not None else None,
        )

    raw_action = normalized_string(getattr(args, "action", ""))
    if not raw_action:
        return CommandResult(command=COMMAND, status=CommandStatus.EXECUTED, details=details)

    if raw_action in ESCROW_ACTIONS:
        verdict = resolution.verdict(ESCROW_ACTIONS[raw_action])
    elif raw_action in CONTRACT_ACTIONS:
        verdict = contract_actions[CONTRACT_ACTIONS[raw_action]]
    else:
        return failed(COMMAND, f"unknown escrow action: {raw_action}")
    details["action"] = raw_action
    details["verdict"] = verdict.as_dict()
    return CommandResult(command=COMMAND, status=verdict_status(verdict.allowed), details=details)
