"""Immutable snapshots of the remote-owned bounty and governance entities."""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import Any


class ProposalKind(StrEnum):
    BOUNTY = "bounty"
    GOVERNANCE = "governance"


class BountyStatus(IntEnum):
    CREATED = 0
    VOTING = 1
    VOTING_ENDED = 2
    ACCEPTED = 3
    SUBMITTED = 4
    DISPUTED = 5
    COMPLETED = 6
    DENIED = 7
    EXPIRED = 8


class GovernanceState(IntEnum):
    PENDING = 0
    ACTIVE = 1
    CANCELED = 2
    DEFEATED = 3
    SUCCEEDED = 4
    QUEUED = 5
    EXPIRED = 6
    EXECUTED = 7


class VoteSupport(IntEnum):
    AGAINST = 0
    FOR = 1
    ABSTAIN = 2


_PHASE_CODES: dict[ProposalKind, type[IntEnum]] = {
    ProposalKind.BOUNTY: BountyStatus,
    ProposalKind.GOVERNANCE: GovernanceState,
}


@dataclass(slots=True, frozen=True)
class Phase:
    """Lifecycle position tagged with the kind of proposal it belongs to.

    Keeping the discriminator next to the code stops a bounty ``ACCEPTED``
    from ever comparing equal to a governance ``SUCCEEDED``.
    """

    kind: ProposalKind
    code: BountyStatus | GovernanceState

    def __post_init__(self) -> None:
        expected = _PHASE_CODES[self.kind]
        if not isinstance(self.code, expected):
            raise ValueError(f"{self.kind.value} phase requires a {expected.__name__} code")

    @property
    def name(self) -> str:
        return self.code.name

    def as_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "code": int(self.code), "name": self.code.name}


@dataclass(slots=True, frozen=True)
class Topic:
    id: int
    owner: str


@dataclass(slots=True, frozen=True)
class VoteStake:
    voter: str
    topic_id: int
    amount: int


@dataclass(slots=True, frozen=True)
class Challenge:
    proposal_id: int
    challenger: str
    reason_hash: str
    evidence_hash: str


@dataclass(slots=True, frozen=True)
class BountyProposal:
    id: int
    status: BountyStatus
    start_time: int
    end_time: int
    topic_count: int
    winner_topic_id: int | None = None
    submit_deadline: int | None = None
    challenge_window_end: int | None = None
    remaining_pool: int = 0
    challenger: str | None = None
    total_pool: int = 0
    reason_hash: str | None = None
    evidence_hash: str | None = None

    kind = ProposalKind.BOUNTY

    def ensure_canonical(self) -> None:
        if self.id < 0:
            raise ValueError("id must be non-negative")
        if self.topic_count < 0:
            raise ValueError("topic_count must be non-negative")
        if self.end_time < self.start_time:
            raise ValueError("end_time must not precede start_time")
        if self.submit_deadline is not None and self.status < BountyStatus.ACCEPTED:
            raise ValueError("submit_deadline is only defined once the winner is accepted")
        if self.challenge_window_end is not None and self.status < BountyStatus.SUBMITTED:
            raise ValueError("challenge_window_end is only defined once delivery is submitted")
        if self.winner_topic_id is not None and not 0 <= self.winner_topic_id < max(
            self.topic_count, 1
        ):
            raise ValueError("winner_topic_id must reference an existing topic")

    @property
    def phase(self) -> Phase:
        return Phase(ProposalKind.BOUNTY, self.status)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "topic_count": self.topic_count,
            "winner_topic_id": self.winner_topic_id,
            "submit_deadline": self.submit_deadline,
            "challenge_window_end": self.challenge_window_end,
            "remaining_pool": str(self.remaining_pool),
            "total_pool": str(self.total_pool),
            "challenger": self.challenger,
        }


@dataclass(slots=True, frozen=True)
class GovernanceProposal:
    id: int
    state: GovernanceState
    snapshot_block: int
    deadline_block: int
    for_votes: int = 0
    against_votes: int = 0
    abstain_votes: int = 0
    quorum: int = 0
    proposer: str | None = None
    targets: tuple[str, ...] = ()
    values: tuple[int, ...] = ()
    signatures: tuple[str, ...] = ()
    calldatas: tuple[bytes, ...] = ()
    description: str = ""
    vote_start: int | None = None
    vote_end: int | None = None
    eta: int | None = None

    kind = ProposalKind.GOVERNANCE

    def ensure_canonical(self) -> None:
        if self.id < 0:
            raise ValueError("id must be non-negative")
        for name in ("for_votes", "against_votes", "abstain_votes", "quorum"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if not len(self.targets) == len(self.values) == len(self.calldatas):
            raise ValueError("targets, values and calldatas must have equal length")

    @property
    def phase(self) -> Phase:
        return Phase(ProposalKind.GOVERNANCE, self.state)

    @property
    def total_votes(self) -> int:
        return self.for_votes + self.against_votes + self.abstain_votes

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "state": self.state.name,
            "proposer": self.proposer,
            "snapshot_block": self.snapshot_block,
            "deadline_block": self.deadline_block,
            "for_votes": str(self.for_votes),
            "against_votes": str(self.against_votes),
            "abstain_votes": str(self.abstain_votes),
            "quorum": str(self.quorum),
            "description": self.description,
            "targets": list(self.targets),
            "eta": self.eta,
        }
