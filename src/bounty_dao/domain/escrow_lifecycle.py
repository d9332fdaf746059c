"""Action eligibility for bounty escrow proposals.

Every deadline comparison here mirrors the escrow contract exactly:

* voting accepts stakes on ``[start_time, end_time)`` and may be finalized
  once ``current_time > end_time``;
* delivery is accepted while ``current_time <= submit_deadline``, after
  which the proposal may be expired;
* challenges are accepted while ``current_time < challenge_window_end``
  and finalization is allowed from ``challenge_window_end`` itself.

While the escrow is paused it rejects every write except the admin toggles.

The functions are pure: the caller supplies chain time (never the local
clock) and the caller's bond allowance.
"""
from __future__ import annotations

import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from bounty_dao.domain.action_gate import (
    CallerContext,
    Condition,
    DenyReason,
    Verdict,
    caller_conditions,
    evaluate,
)
from bounty_dao.domain.proposals import BountyProposal, BountyStatus, Phase
from bounty_dao.types import Unavailable

REQUIRED_BOND = 10_000 * 10**18

# Used when the escrow does not expose CREATOR_DEPOSIT().
CREATOR_DEPOSIT = 100 * 10**18

DELIVERY_TEMPLATE_PREFIX = "GUA-DELIVER"


class EscrowAction(StrEnum):
    STAKE_VOTE = "stakeVote"
    FINALIZE_VOTING = "finalizeVoting"
    CONFIRM_WINNER = "confirmWinner"
    SUBMIT_DELIVERY = "submitDelivery"
    EXPIRE_IF_NO_SUBMISSION = "expireIfNoSubmission"
    APPROVE_BOND = "approveBond"
    CHALLENGE_DELIVERY = "challengeDelivery"
    FINALIZE_DELIVERY = "finalizeDelivery"
    RESOLVE_DISPUTE = "resolveDispute"


class ContractAction(StrEnum):
    """Escrow writes that are not bound to an existing proposal."""

    CREATE_PROPOSAL = "createProposal"
    APPROVE_DEPOSIT = "approveDeposit"
    PAUSE = "pause"
    UNPAUSE = "unpause"


ADMIN_ACTIONS: frozenset[EscrowAction] = frozenset({EscrowAction.RESOLVE_DISPUTE})

# approveBond is a token write and is not affected by the escrow pause.
PAUSABLE_ACTIONS: frozenset[EscrowAction] = frozenset(EscrowAction) - {EscrowAction.APPROVE_BOND}

TIME_GATED_ACTIONS: frozenset[EscrowAction] = frozenset(
    {
        EscrowAction.STAKE_VOTE,
        EscrowAction.FINALIZE_VOTING,
        EscrowAction.SUBMIT_DELIVERY,
        EscrowAction.EXPIRE_IF_NO_SUBMISSION,
        EscrowAction.APPROVE_BOND,
        EscrowAction.CHALLENGE_DELIVERY,
        EscrowAction.FINALIZE_DELIVERY,
    }
)


@dataclass(slots=True, frozen=True)
class EscrowResolution:
    proposal_id: int
    phase: Phase
    actions: Mapping[EscrowAction, Verdict]
    current_time: int | Unavailable

    def verdict(self, action: EscrowAction) -> Verdict:
        return self.actions[action]

    def allowed_actions(self) -> list[EscrowAction]:
        return [action for action, verdict in self.actions.items() if verdict.allowed]

    def as_dict(self) -> dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "phase": self.phase.as_dict(),
            "current_time": (
                None if isinstance(self.current_time, Unavailable) else self.current_time
            ),
            "actions": {
                action.value: verdict.as_dict() for action, verdict in self.actions.items()
            },
        }


def _time_known(current_time: int | Unavailable) -> bool:
    return not isinstance(current_time, Unavailable)


def _status_is(proposal: BountyProposal, status: BountyStatus) -> Condition:
    return (proposal.status == status, DenyReason.INVALID_STATE)


def _defined(value: int | None) -> Condition:
    # A status the snapshot claims without its deadline cannot be gated.
    return (value is not None, DenyReason.INVALID_STATE)


def _clock(current_time: int | Unavailable) -> Condition:
    return (_time_known(current_time), DenyReason.NO_TIME_SOURCE)


def _unpaused(paused: bool | Unavailable) -> list[Condition]:
    return [
        (not isinstance(paused, Unavailable), DenyReason.UNREACHABLE),
        (lambda: not paused, DenyReason.PAUSED),
    ]


def _conditions_for(
    action: EscrowAction,
    proposal: BountyProposal,
    caller: CallerContext | None,
    t: int | Unavailable,
    allowance: int | Unavailable,
    required_bond: int,
    paused: bool | Unavailable,
) -> list[Condition]:
    conditions = caller_conditions(caller)
    if action in ADMIN_ACTIONS:
        conditions.append((lambda: caller is not None and caller.is_admin, DenyReason.NOT_ADMIN))
    if action in PAUSABLE_ACTIONS:
        conditions += _unpaused(paused)

    if action == EscrowAction.STAKE_VOTE:
        conditions += [
            _status_is(proposal, BountyStatus.VOTING),
            _clock(t),
            (lambda: t >= proposal.start_time, DenyReason.WINDOW_NOT_YET_OPEN),
            (lambda: t < proposal.end_time, DenyReason.WINDOW_CLOSED),
        ]
    elif action == EscrowAction.FINALIZE_VOTING:
        conditions += [
            _status_is(proposal, BountyStatus.VOTING),
            _clock(t),
            (lambda: t > proposal.end_time, DenyReason.WINDOW_CLOSED),
        ]
    elif action == EscrowAction.CONFIRM_WINNER:
        conditions.append(_status_is(proposal, BountyStatus.VOTING_ENDED))
    elif action == EscrowAction.SUBMIT_DELIVERY:
        conditions += [
            _status_is(proposal, BountyStatus.ACCEPTED),
            _defined(proposal.submit_deadline),
            _clock(t),
            (lambda: t <= proposal.submit_deadline, DenyReason.WINDOW_CLOSED),
        ]
    elif action == EscrowAction.EXPIRE_IF_NO_SUBMISSION:
        conditions += [
            _status_is(proposal, BountyStatus.ACCEPTED),
            _defined(proposal.submit_deadline),
            _clock(t),
            (lambda: t > proposal.submit_deadline, DenyReason.WINDOW_CLOSED),
        ]
    elif action in (EscrowAction.APPROVE_BOND, EscrowAction.CHALLENGE_DELIVERY):
        conditions += [
            _status_is(proposal, BountyStatus.SUBMITTED),
            _defined(proposal.challenge_window_end),
            _clock(t),
            (lambda: t < proposal.challenge_window_end, DenyReason.WINDOW_CLOSED),
        ]
        if action == EscrowAction.CHALLENGE_DELIVERY:
            conditions += [
                (_time_known(allowance), DenyReason.UNREACHABLE),
                (lambda: allowance >= required_bond, DenyReason.INSUFFICIENT_BOND),
            ]
    elif action == EscrowAction.FINALIZE_DELIVERY:
        conditions += [
            _status_is(proposal, BountyStatus.SUBMITTED),
            _defined(proposal.challenge_window_end),
            _clock(t),
            (lambda: t >= proposal.challenge_window_end, DenyReason.WINDOW_CLOSED),
        ]
    elif action == EscrowAction.RESOLVE_DISPUTE:
        conditions.append(_status_is(proposal, BountyStatus.DISPUTED))
    return conditions


def evaluate_escrow_action(
    action: EscrowAction,
    proposal: BountyProposal,
    caller: CallerContext | None,
    current_time: int | Unavailable,
    token_allowance: int | Unavailable = 0,
    required_bond: int = REQUIRED_BOND,
    paused: bool | Unavailable = False,
) -> Verdict:
    return evaluate(
        _conditions_for(
            action, proposal, caller, current_time, token_allowance, required_bond, paused
        )
    )


def resolve_escrow(
    proposal: BountyProposal,
    caller: CallerContext | None,
    current_time: int | Unavailable,
    token_allowance: int | Unavailable = 0,
    required_bond: int = REQUIRED_BOND,
    paused: bool | Unavailable = False,
) -> EscrowResolution:
    actions = {
        action: evaluate_escrow_action(
            action,
            proposal,
            caller,
            current_time,
            token_allowance=token_allowance,
            required_bond=required_bond,
            paused=paused,
        )
        for action in EscrowAction
    }
    return EscrowResolution(
        proposal_id=proposal.id,
        phase=proposal.phase,
        actions=actions,
        current_time=current_time,
    )


def unresolved_escrow_actions(
    caller: CallerContext | None,
    reason: DenyReason,
) -> dict[EscrowAction, Verdict]:
    """Verdicts while no snapshot is held; connectivity still comes first."""
    return {
        action: evaluate([*caller_conditions(caller), (False, reason)]) for action in EscrowAction
    }


def evaluate_contract_action(
    action: ContractAction,
    caller: CallerContext | None,
    paused: bool | Unavailable = False,
    token_allowance: int | Unavailable = 0,
    creator_deposit: int = CREATOR_DEPOSIT,
) -> Verdict:
    """Gate the escrow writes that do not target an existing proposal.

    The owner creates proposals without escrowing the deposit, so the
    allowance only matters for everyone else.
    """
    conditions = caller_conditions(caller)

    def is_admin() -> bool:
        return caller is not None and caller.is_admin

    allowance_known = not isinstance(token_allowance, Unavailable)
    if action == ContractAction.CREATE_PROPOSAL:
        conditions += _unpaused(paused)
        conditions += [
            (lambda: is_admin() or allowance_known, DenyReason.UNREACHABLE),
            (
                lambda: is_admin() or token_allowance >= creator_deposit,
                DenyReason.INSUFFICIENT_DEPOSIT,
            ),
        ]
    elif action == ContractAction.APPROVE_DEPOSIT:
        conditions += [
            (lambda: not is_admin(), DenyReason.INVALID_STATE),
            (allowance_known, DenyReason.UNREACHABLE),
            (lambda: token_allowance < creator_deposit, DenyReason.INVALID_STATE),
        ]
    elif action == ContractAction.PAUSE:
        conditions += [
            (is_admin, DenyReason.NOT_ADMIN),
            (not isinstance(paused, Unavailable), DenyReason.UNREACHABLE),
            (lambda: paused is False, DenyReason.INVALID_STATE),
        ]
    elif action == ContractAction.UNPAUSE:
        conditions += [
            (is_admin, DenyReason.NOT_ADMIN),
            (not isinstance(paused, Unavailable), DenyReason.UNREACHABLE),
            (lambda: paused is True, DenyReason.INVALID_STATE),
        ]
    return evaluate(conditions)


def resolve_contract_actions(
    caller: CallerContext | None,
    paused: bool | Unavailable = False,
    token_allowance: int | Unavailable = 0,
    creator_deposit: int = CREATOR_DEPOSIT,
) -> dict[ContractAction, Verdict]:
    return {
        action: evaluate_contract_action(
            action,
            caller,
            paused=paused,
            token_allowance=token_allowance,
            creator_deposit=creator_deposit,
        )
        for action in ContractAction
    }


def make_nonce() -> str:
    return secrets.token_hex(8)


def delivery_template(
    proposal: BountyProposal,
    winner_owner: str | None,
    nonce: str | None = None,
) -> str:
    """Text the winning topic owner pins so a delivery can be attributed."""
    winner = "-" if proposal.winner_topic_id is None else str(proposal.winner_topic_id)
    return ":".join(
        (
            DELIVERY_TEMPLATE_PREFIX,
            str(proposal.id),
            winner,
            winner_owner or "0x...",
            nonce or "nonce",
        )
    )
