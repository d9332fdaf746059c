"""Timeline, tally and action eligibility for governor proposals."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from bounty_dao.domain.action_gate import (
    CallerContext,
    DenyReason,
    Verdict,
    caller_conditions,
    evaluate,
)
from bounty_dao.domain.proposals import GovernanceProposal, GovernanceState, Phase
from bounty_dao.types import Unavailable

BLOCK_TIME_ESTIMATE_SECONDS = 2

# Governors on a timestamp clock report vote bounds as unix seconds.
TIMESTAMP_CLOCK_THRESHOLD = 1_000_000_000

CANCELED_PATH = (GovernanceState.PENDING, GovernanceState.ACTIVE, GovernanceState.CANCELED)
DEFEATED_PATH = (GovernanceState.PENDING, GovernanceState.ACTIVE, GovernanceState.DEFEATED)
EXECUTED_PATH = (
    GovernanceState.PENDING,
    GovernanceState.ACTIVE,
    GovernanceState.SUCCEEDED,
    GovernanceState.QUEUED,
    GovernanceState.EXECUTED,
)
EXPIRED_PATH = (
    GovernanceState.PENDING,
    GovernanceState.ACTIVE,
    GovernanceState.SUCCEEDED,
    GovernanceState.QUEUED,
    GovernanceState.EXPIRED,
)

_TERMINAL_PATHS: dict[GovernanceState, tuple[GovernanceState, ...]] = {
    GovernanceState.CANCELED: CANCELED_PATH,
    GovernanceState.DEFEATED: DEFEATED_PATH,
    GovernanceState.EXECUTED: EXECUTED_PATH,
    GovernanceState.EXPIRED: EXPIRED_PATH,
}


class GovernanceAction(StrEnum):
    CAST_VOTE = "castVote"
    DELEGATE = "delegate"
    QUEUE = "queue"
    EXECUTE = "execute"


# Delegation targets the vote token and never depends on a proposal.
PROPOSAL_ACTIONS: frozenset[GovernanceAction] = frozenset(
    {GovernanceAction.CAST_VOTE, GovernanceAction.QUEUE, GovernanceAction.EXECUTE}
)


class StepStatus(StrEnum):
    DONE = "done"
    ACTIVE = "active"
    PENDING = "pending"


@dataclass(slots=True, frozen=True)
class BlockTime:
    """Wall-clock time for a block, flagged when it is only an estimate."""

    timestamp: int | None
    estimated: bool = False

    @classmethod
    def unavailable(cls) -> BlockTime:
        return cls(timestamp=None)

    @property
    def known(self) -> bool:
        return self.timestamp is not None

    def as_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "estimated": self.estimated}


@dataclass(slots=True, frozen=True)
class TimelineStep:
    state: GovernanceState
    status: StepStatus
    time: BlockTime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.name,
            "status": self.status.value,
            "time": self.time.as_dict() if self.time is not None else None,
        }


@dataclass(slots=True, frozen=True)
class Timeline:
    path: tuple[GovernanceState, ...]
    active_index: int
    steps: tuple[TimelineStep, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "path": [state.name for state in self.path],
            "active_index": self.active_index,
            "steps": [step.as_dict() for step in self.steps],
        }


@dataclass(slots=True, frozen=True)
class VoteTally:
    for_votes: int
    against_votes: int
    abstain_votes: int
    quorum: int
    total: int
    quorum_reached: bool
    quorum_progress_percent: float
    for_percent: float
    against_percent: float
    abstain_percent: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "for_votes": str(self.for_votes),
            "against_votes": str(self.against_votes),
            "abstain_votes": str(self.abstain_votes),
            "quorum": str(self.quorum),
            "total": str(self.total),
            "quorum_reached": self.quorum_reached,
            "quorum_progress_percent": self.quorum_progress_percent,
            "for_percent": self.for_percent,
            "against_percent": self.against_percent,
            "abstain_percent": self.abstain_percent,
        }


@dataclass(slots=True, frozen=True)
class GovernanceResolution:
    proposal_id: int
    phase: Phase
    timeline: Timeline
    tally: VoteTally
    actions: Mapping[GovernanceAction, Verdict]

    def verdict(self, action: GovernanceAction) -> Verdict:
        return self.actions[action]

    def allowed_actions(self) -> list[GovernanceAction]:
        return [action for action, verdict in self.actions.items() if verdict.allowed]

    def as_dict(self) -> dict[str, Any]:
        return {
            "proposal_id": str(self.proposal_id),
            "phase": self.phase.as_dict(),
            "timeline": self.timeline.as_dict(),
            "tally": self.tally.as_dict(),
            "actions": {
                action.value: verdict.as_dict() for action, verdict in self.actions.items()
            },
        }


def timeline_path(state: GovernanceState) -> tuple[GovernanceState, ...]:
    # In-flight states render the optimistic path until a terminal branch is known.
    return _TERMINAL_PATHS.get(state, EXECUTED_PATH)


def active_index(state: GovernanceState, path: tuple[GovernanceState, ...]) -> int:
    if state in path:
        return path.index(state)
    if state == GovernanceState.ACTIVE:
        return 1
    return 0


def tally(for_votes: int, against_votes: int, abstain_votes: int, quorum: int) -> VoteTally:
    total = for_votes + against_votes + abstain_votes
    # TODO: confirm against the governor whether an unset quorum really means "met".
    if quorum == 0:
        progress = 100.0
    else:
        progress = min(100.0, total * 100 / quorum)
    denominator = total or 1
    return VoteTally(
        for_votes=for_votes,
        against_votes=against_votes,
        abstain_votes=abstain_votes,
        quorum=quorum,
        total=total,
        quorum_reached=for_votes + abstain_votes >= quorum,
        quorum_progress_percent=progress,
        for_percent=for_votes * 100 / denominator,
        against_percent=against_votes * 100 / denominator,
        abstain_percent=abstain_votes * 100 / denominator,
    )


def estimate_block_time(
    target: int,
    current_block: int | Unavailable,
    current_timestamp: int | Unavailable,
    block_timestamps: Mapping[int, int],
    block_time_estimate_seconds: int = BLOCK_TIME_ESTIMATE_SECONDS,
) -> BlockTime:
    """Resolve a block-denominated bound to wall-clock seconds.

    Future blocks are projected from the latest chain timestamp; past
    blocks need their exact timestamp and are otherwise reported unknown.
    """
    if target > TIMESTAMP_CLOCK_THRESHOLD:
        return BlockTime(timestamp=target)
    if isinstance(current_block, Unavailable):
        return BlockTime.unavailable()
    if target > current_block:
        if isinstance(current_timestamp, Unavailable):
            return BlockTime.unavailable()
        return BlockTime(
            timestamp=current_timestamp + (target - current_block) * block_time_estimate_seconds,
            estimated=True,
        )
    exact = block_timestamps.get(target)
    if exact is None:
        return BlockTime.unavailable()
    return BlockTime(timestamp=exact)


def _vote_bounds(proposal: GovernanceProposal) -> tuple[int, int]:
    start = proposal.vote_start if proposal.vote_start is not None else proposal.snapshot_block
    end = proposal.vote_end if proposal.vote_end is not None else proposal.deadline_block
    return start, end


def build_timeline(
    proposal: GovernanceProposal,
    current_block: int | Unavailable,
    current_timestamp: int | Unavailable,
    block_timestamps: Mapping[int, int],
    block_time_estimate_seconds: int = BLOCK_TIME_ESTIMATE_SECONDS,
) -> Timeline:
    path = timeline_path(proposal.state)
    index = active_index(proposal.state, path)

    vote_start, vote_end = _vote_bounds(proposal)

    def time_for(state: GovernanceState) -> BlockTime | None:
        if state == GovernanceState.PENDING:
            target = vote_start
        elif state == GovernanceState.ACTIVE:
            target = vote_end
        elif state == GovernanceState.QUEUED and proposal.eta:
            return BlockTime(timestamp=proposal.eta)
        else:
            return None
        return estimate_block_time(
            target,
            current_block,
            current_timestamp,
            block_timestamps,
            block_time_estimate_seconds,
        )

    steps = []
    for position, state in enumerate(path):
        if position < index:
            status = StepStatus.DONE
        elif position == index:
            status = StepStatus.ACTIVE
        else:
            status = StepStatus.PENDING
        steps.append(TimelineStep(state=state, status=status, time=time_for(state)))
    return Timeline(path=path, active_index=index, steps=tuple(steps))


def evaluate_governance_action(
    action: GovernanceAction,
    proposal: GovernanceProposal,
    caller: CallerContext | None,
    voting_power: int | Unavailable,
    has_voted: bool | Unavailable,
) -> Verdict:
    conditions = caller_conditions(caller)
    if action == GovernanceAction.CAST_VOTE:
        conditions += [
            (proposal.state == GovernanceState.ACTIVE, DenyReason.INVALID_STATE),
            (not isinstance(has_voted, Unavailable), DenyReason.UNREACHABLE),
            (lambda: not has_voted, DenyReason.ALREADY_VOTED),
            (not isinstance(voting_power, Unavailable), DenyReason.UNREACHABLE),
            (lambda: voting_power > 0, DenyReason.NO_VOTING_POWER),
        ]
    elif action == GovernanceAction.QUEUE:
        conditions.append((proposal.state == GovernanceState.SUCCEEDED, DenyReason.INVALID_STATE))
    elif action == GovernanceAction.EXECUTE:
        conditions.append((proposal.state == GovernanceState.QUEUED, DenyReason.INVALID_STATE))
    return evaluate(conditions)


def unresolved_governance_actions(
    caller: CallerContext | None,
    reason: DenyReason,
) -> dict[GovernanceAction, Verdict]:
    """Verdicts while no snapshot is held: proposal actions carry the read failure."""
    actions = {}
    for action in GovernanceAction:
        conditions = caller_conditions(caller)
        if action in PROPOSAL_ACTIONS:
            conditions.append((False, reason))
        actions[action] = evaluate(conditions)
    return actions


def resolve_governance(
    proposal: GovernanceProposal,
    caller: CallerContext | None,
    current_block: int | Unavailable,
    voting_power: int | Unavailable = 0,
    has_voted: bool | Unavailable = False,
    current_timestamp: int | Unavailable = Unavailable.UNAVAILABLE,
    block_timestamps: Mapping[int, int] | None = None,
    block_time_estimate_seconds: int = BLOCK_TIME_ESTIMATE_SECONDS,
) -> GovernanceResolution:
    actions = {
        action: evaluate_governance_action(action, proposal, caller, voting_power, has_voted)
        for action in GovernanceAction
    }
    return GovernanceResolution(
        proposal_id=proposal.id,
        phase=proposal.phase,
        timeline=build_timeline(
            proposal,
            current_block,
            current_timestamp,
            block_timestamps or {},
            block_time_estimate_seconds,
        ),
        tally=tally(
            proposal.for_votes,
            proposal.against_votes,
            proposal.abstain_votes,
            proposal.quorum,
        ),
        actions=actions,
    )


def blocks_needing_exact_time(
    proposal: GovernanceProposal,
    current_block: int | Unavailable,
) -> list[int]:
    """Past vote bounds whose timestamps must come from the chain, not an estimate."""
    if isinstance(current_block, Unavailable):
        return []
    bounds = _vote_bounds(proposal)
    return sorted(
        {
            bound
            for bound in bounds
            if 0 < bound <= current_block and bound <= TIMESTAMP_CLOCK_THRESHOLD
        }
    )
