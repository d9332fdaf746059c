from __future__ import annotations

from bounty_dao.domain.proposals import BountyStatus, GovernanceState, Phase, ProposalKind

TERMINAL_BOUNTY_STATUSES: frozenset[BountyStatus] = frozenset(
    {
        BountyStatus.COMPLETED,
        BountyStatus.DENIED,
        BountyStatus.EXPIRED,
    }
)

TERMINAL_GOVERNANCE_STATES: frozenset[GovernanceState] = frozenset(
    {
        GovernanceState.CANCELED,
        GovernanceState.DEFEATED,
        GovernanceState.EXPIRED,
        GovernanceState.EXECUTED,
    }
)


def is_terminal_phase(phase: Phase) -> bool:
    if phase.kind == ProposalKind.BOUNTY:
        return phase.code in TERMINAL_BOUNTY_STATUSES
    return phase.code in TERMINAL_GOVERNANCE_STATES
