"""Pure lifecycle and eligibility logic for bounty and governance proposals."""

from bounty_dao.domain.action_gate import CallerContext, DenyReason, Verdict, evaluate
from bounty_dao.domain.escrow_lifecycle import (
    REQUIRED_BOND,
    ContractAction,
    EscrowAction,
    EscrowResolution,
    resolve_escrow,
)
from bounty_dao.domain.events import ChainEvent, correlate, find_creation_event
from bounty_dao.domain.governance_lifecycle import (
    GovernanceAction,
    GovernanceResolution,
    resolve_governance,
    tally,
    timeline_path,
)
from bounty_dao.domain.proposals import (
    BountyProposal,
    BountyStatus,
    GovernanceProposal,
    GovernanceState,
    Phase,
    ProposalKind,
    VoteSupport,
)

__all__ = [
    "REQUIRED_BOND",
    "BountyProposal",
    "BountyStatus",
    "CallerContext",
    "ChainEvent",
    "ContractAction",
    "DenyReason",
    "EscrowAction",
    "EscrowResolution",
    "GovernanceAction",
    "GovernanceProposal",
    "GovernanceResolution",
    "GovernanceState",
    "Phase",
    "ProposalKind",
    "Verdict",
    "VoteSupport",
    "correlate",
    "evaluate",
    "find_creation_event",
    "resolve_escrow",
    "resolve_governance",
    "tally",
    "timeline_path",
]
