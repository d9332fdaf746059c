"""Ordered allow/deny evaluation shared by both lifecycle resolvers."""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class DenyReason(StrEnum):
    NOT_CONNECTED = "NotConnected"
    INVALID_ADDRESS = "InvalidAddress"
    NETWORK_MISMATCH = "NetworkMismatch"
    NOT_ADMIN = "NotAdmin"
    INVALID_STATE = "InvalidState"
    NO_TIME_SOURCE = "NoTimeSource"
    WINDOW_NOT_YET_OPEN = "WindowNotYetOpen"
    WINDOW_CLOSED = "WindowClosed"
    INSUFFICIENT_BOND = "InsufficientBond"
    INSUFFICIENT_DEPOSIT = "InsufficientDeposit"
    PAUSED = "Paused"
    ALREADY_VOTED = "AlreadyVoted"
    NO_VOTING_POWER = "NoVotingPower"
    UNREACHABLE = "Unreachable"
    REJECTED = "Rejected"
    REVERTED = "Reverted"


Predicate = bool | Callable[[], bool]
Condition = tuple[Predicate, DenyReason]


# Computed locally and never worth submitting as an intent.
PREFLIGHT_REASONS: frozenset[DenyReason] = frozenset(
    {
        DenyReason.NOT_CONNECTED,
        DenyReason.INVALID_ADDRESS,
        DenyReason.NETWORK_MISMATCH,
        DenyReason.NOT_ADMIN,
        DenyReason.INVALID_STATE,
        DenyReason.NO_TIME_SOURCE,
        DenyReason.WINDOW_NOT_YET_OPEN,
        DenyReason.WINDOW_CLOSED,
        DenyReason.INSUFFICIENT_BOND,
        DenyReason.INSUFFICIENT_DEPOSIT,
        DenyReason.PAUSED,
        DenyReason.ALREADY_VOTED,
        DenyReason.NO_VOTING_POWER,
    }
)


@dataclass(slots=True, frozen=True)
class Verdict:
    allowed: bool
    reason: DenyReason | None = None

    @classmethod
    def allow(cls) -> Verdict:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> Verdict:
        return cls(allowed=False, reason=reason)

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason is not None else None,
        }


def _holds(predicate: Predicate) -> bool:
    if callable(predicate):
        return bool(predicate())
    return bool(predicate)


def evaluate(conditions: Sequence[Condition]) -> Verdict:
    """Return the first failing reason in caller order, or an allow verdict.

    Callable predicates are only invoked once every earlier condition has
    passed, so later checks may assume the earlier ones (e.g. a deadline
    comparison may assume the time source is available).
    """
    for predicate, reason in conditions:
        if not _holds(predicate):
            return Verdict.deny(reason)
    return Verdict.allow()


@dataclass(slots=True, frozen=True)
class CallerContext:
    """Who is asking, as far as the gate is concerned."""

    address: str
    is_admin: bool = False
    network_matches: bool = True
    contract_address_valid: bool = True


def caller_conditions(caller: CallerContext | None) -> list[Condition]:
    """Connectivity, address and network checks that lead every action."""
    return [
        (caller is not None, DenyReason.NOT_CONNECTED),
        (lambda: caller is not None and caller.contract_address_valid, DenyReason.INVALID_ADDRESS),
        (lambda: caller is not None and caller.network_matches, DenyReason.NETWORK_MISMATCH),
    ]
