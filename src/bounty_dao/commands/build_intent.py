from __future__ import annotations

from argparse import Namespace
from typing import Any

from eth_abi.exceptions import EncodingError
from eth_utils import decode_hex

from bounty_dao.chain.addresses import normalize_address
from bounty_dao.chain.intents import (
    Intent,
    build_contract_intent,
    build_escrow_intent,
    build_governance_intent,
)
from bounty_dao.commands.common import failed, normalized_string, optional_int, parse_amount
from bounty_dao.config import AppSettings
from bounty_dao.domain.escrow_lifecycle import ContractAction, EscrowAction
from bounty_dao.domain.governance_lifecycle import GovernanceAction
from bounty_dao.domain.proposals import GovernanceProposal, GovernanceState
from bounty_dao.types import CommandResult, CommandStatus

COMMAND = "build-intent"

ESCROW_ACTIONS = {action.value: action for action in EscrowAction}
CONTRACT_ACTIONS = {action.value: action for action in ContractAction}
GOVERNANCE_ACTIONS = {action.value: action for action in GovernanceAction}


def _configured(raw_value: str, *, field_name: str) -> str:
    return normalize_address(raw_value, field_name=field_name)


def _escrow_params(args: Namespace) -> dict[str, Any]:
    return {
        "topic_id": optional_int(getattr(args, "topic_id", None), field_name="topic_id"),
        "amount": optional_int(getattr(args, "amount", None), field_name="amount"),
        "youtube_url": normalized_string(getattr(args, "youtube_url", "")),
        "video_id": normalized_string(getattr(args, "video_id", "")),
        "pinned_code": normalized_string(getattr(args, "pinned_code", "")),
        "reason": normalized_string(getattr(args, "reason", "")),
        "evidence": normalized_string(getattr(args, "evidence", "")),
        "approve": getattr(args, "approve", None),
    }


def _contract_params(args: Namespace) -> dict[str, Any]:
    return {
        "topic_owners": [
            normalize_address(owner, field_name="topic_owner")
            for owner in getattr(args, "topic_owner", None) or []
        ],
        "topic_contents": list(getattr(args, "topic_content", None) or []),
        "metadata": normalized_string(getattr(args, "metadata", "")),
        "start_time": optional_int(getattr(args, "start_time", None), field_name="start_time"),
        "end_time": optional_int(getattr(args, "end_time", None), field_name="end_time"),
        "amount": optional_int(getattr(args, "amount", None), field_name="amount"),
    }


def _governance_proposal(args: Namespace, proposal_id: int) -> GovernanceProposal:
    targets = tuple(
        normalize_address(target, field_name="target")
        for target in getattr(args, "target", None) or []
    )
    values = tuple(
        parse_amount(value, field_name="value") for value in getattr(args, "value", None) or []
    )
    calldatas = tuple(decode_hex(data) for data in getattr(args, "calldata", None) or [])
    proposal = GovernanceProposal(
        id=proposal_id,
        state=GovernanceState.PENDING,
        snapshot_block=0,
        deadline_block=0,
        targets=targets,
        values=values,
        calldatas=calldatas,
        description=str(getattr(args, "description", "") or ""),
    )
    proposal.ensure_canonical()
    return proposal


def _build(args: Namespace, settings: AppSettings) -> Intent:
    raw_action = normalized_string(getattr(args, "action", ""))
    proposal_id = parse_amount(getattr(args, "proposal_id", None), field_name="proposal_id")

    if raw_action in ESCROW_ACTIONS:
        params = _escrow_params(args)
        if params["amount"] is None and raw_action == EscrowAction.APPROVE_BOND:
            params["amount"] = settings.required_bond_wei
        return build_escrow_intent(
            ESCROW_ACTIONS[raw_action],
            escrow_address=_configured(settings.escrow_address, field_name="escrow_address"),
            token_address=_configured(settings.token_address, field_name="token_address"),
            proposal_id=proposal_id,
            params=params,
        )

    if raw_action in CONTRACT_ACTIONS:
        params = _contract_params(args)
        if params["amount"] is None and raw_action == ContractAction.APPROVE_DEPOSIT:
            params["amount"] = settings.creator_deposit_wei
        return build_contract_intent(
            CONTRACT_ACTIONS[raw_action],
            escrow_address=_configured(settings.escrow_address, field_name="escrow_address"),
            token_address=_configured(settings.token_address, field_name="token_address"),
            params=params,
        )

    if raw_action in GOVERNANCE_ACTIONS:
        action = GOVERNANCE_ACTIONS[raw_action]
        delegatee = normalized_string(getattr(args, "delegatee", ""))
        return build_governance_intent(
            action,
            governor_address=_configured(settings.governor_address, field_name="governor_address"),
            token_address=_configured(settings.token_address, field_name="token_address"),
            proposal=_governance_proposal(args, proposal_id),
            params={
                "support": getattr(args, "support", None),
                "delegatee": normalize_address(delegatee, field_name="delegatee")
                if delegatee
                else None,
            },
        )

    raise ValueError(f"unknown action: {raw_action or '<empty>'}")


def run_build_intent(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        intent = _build(args, settings)
    except (EncodingError, ValueError) as exc:
        return failed(COMMAND, str(exc))

    return CommandResult(
        command=COMMAND,
        status=CommandStatus.PENDING,
        details={"intent": intent.as_dict()},
    )
