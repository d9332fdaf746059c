"""Per-proposal view state.

A session owns the last snapshot it accepted and the oracle that clocks
it. Every refresh is tagged with a generation number; when the target
proposal changes (or a newer refresh starts) before a fetch lands, the
stale result is discarded instead of overwriting newer state. All reads
for one refresh are issued as a single batch so eligibility is never
derived from a mix of generations.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from bounty_dao.chain.addresses import is_valid_address, same_address
from bounty_dao.chain.errors import ReadError, ReadErrorKind
from bounty_dao.chain.escrow_reader import EscrowReader
from bounty_dao.chain.governor_reader import GovernorReader
from bounty_dao.domain.action_gate import CallerContext, DenyReason, Verdict
from bounty_dao.domain.escrow_lifecycle import (
    CREATOR_DEPOSIT,
    REQUIRED_BOND,
    EscrowResolution,
    resolve_contract_actions,
    resolve_escrow,
    unresolved_escrow_actions,
)
from bounty_dao.domain.events import ChainEvent
from bounty_dao.domain.governance_lifecycle import (
    BLOCK_TIME_ESTIMATE_SECONDS,
    GovernanceResolution,
    blocks_needing_exact_time,
    resolve_governance,
    unresolved_governance_actions,
)
from bounty_dao.domain.proposals import BountyProposal, GovernanceProposal, GovernanceState
from bounty_dao.observability.logging import get_logger
from bounty_dao.runtime.oracle import TemporalOracle
from bounty_dao.types import UNAVAILABLE, Unavailable


def _reason_for(error: ReadError) -> DenyReason:
    if error.kind == ReadErrorKind.NOT_FOUND:
        return DenyReason.INVALID_STATE
    return DenyReason.UNREACHABLE


def _by_name(actions: Mapping[Any, Verdict]) -> dict[str, Verdict]:
    return {action.value: verdict for action, verdict in actions.items()}


def _known(value: Any, expected: type) -> Any:
    return value if isinstance(value, expected) else UNAVAILABLE


def _paused_state(paused: bool | ReadError) -> bool | Unavailable:
    if isinstance(paused, bool):
        return paused
    # An escrow without pause support reverts the read.
    if paused.not_found:
        return False
    return UNAVAILABLE


def _unavailable_as_none(value: Any) -> Any:
    return None if isinstance(value, Unavailable) else value


class ProposalSession(ABC):
    """Generation bookkeeping and teardown shared by both proposal kinds."""

    kind = "proposal"

    def __init__(
        self,
        oracle: TemporalOracle,
        proposal_id: int,
        caller_address: str | None = None,
        network_matches: bool = True,
    ) -> None:
        self._oracle = oracle
        self._proposal_id = proposal_id
        self._caller_address = caller_address
        self._network_matches = network_matches
        self._generation = 0
        self._closed = False
        self._logger = get_logger("proposal_session")

    @property
    def proposal_id(self) -> int:
        return self._proposal_id

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def oracle(self) -> TemporalOracle:
        return self._oracle

    def _next_generation(self) -> int:
        if self._closed:
            raise RuntimeError("session is closed")
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        if generation == self._generation and not self._closed:
            return True
        self._logger.info(
            "stale_refresh_dropped",
            kind=self.kind,
            proposal_id=str(self._proposal_id),
            generation=generation,
            current_generation=self._generation,
        )
        return False

    def switch_proposal(self, proposal_id: int) -> None:
        self._next_generation()
        self._proposal_id = proposal_id
        self._reset()

    @abstractmethod
    def _reset(self) -> None:
        """Forget everything held for the previous proposal."""

    def _caller(self, contract_address: str) -> CallerContext | None:
        if not self._caller_address:
            return None
        return CallerContext(
            address=self._caller_address,
            network_matches=self._network_matches,
            contract_address_valid=is_valid_address(contract_address),
        )

    async def close(self) -> None:
        self._closed = True
        await self._oracle.stop()

    async def __aenter__(self) -> ProposalSession:
        self._oracle.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


@dataclass(slots=True, frozen=True)
class EscrowView:
    generation: int
    proposal_id: int
    proposal: BountyProposal | None
    resolution: EscrowResolution | None
    actions: Mapping[str, Verdict]
    contract_actions: Mapping[str, Verdict]
    error: ReadError | None = None
    allowance: int | Unavailable = UNAVAILABLE
    owner: str | None = None
    winner_owner: str | None = None
    paused: bool | Unavailable = False
    creator_deposit: int = CREATOR_DEPOSIT

    def verdict(self, action: str) -> Verdict | None:
        return self.actions.get(action) or self.contract_actions.get(action)

    def as_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "proposal_id": self.proposal_id,
            "proposal": self.proposal.as_dict() if self.proposal is not None else None,
            "resolution": self.resolution.as_dict() if self.resolution is not None else None,
            "actions": {name: verdict.as_dict() for name, verdict in self.actions.items()},
            "contract_actions": {
                name: verdict.as_dict() for name, verdict in self.contract_actions.items()
            },
            "error": self.error.as_dict() if self.error is not None else None,
            "allowance": None if isinstance(self.allowance, Unavailable) else str(self.allowance),
            "owner": self.owner,
            "winner_owner": self.winner_owner,
            "paused": _unavailable_as_none(self.paused),
            "creator_deposit": str(self.creator_deposit),
        }


class EscrowSession(ProposalSession):
    kind = "bounty"

    def __init__(
        self,
        reader: EscrowReader,
        oracle: TemporalOracle,
        proposal_id: int,
        caller_address: str | None = None,
        network_matches: bool = True,
        required_bond: int = REQUIRED_BOND,
        creator_deposit: int = CREATOR_DEPOSIT,
    ) -> None:
        super().__init__(oracle, proposal_id, caller_address, network_matches)
        self._reader = reader
        self._required_bond = required_bond
        self._creator_deposit = creator_deposit
        self._view: EscrowView | None = None

    @property
    def view(self) -> EscrowView | None:
        return self._view

    def _reset(self) -> None:
        self._view = None

    async def _allowance(self) -> int | ReadError | None:
        if not self._caller_address:
            return None
        return await self._reader.read_allowance(self._caller_address)

    def _escrow_caller(self, owner: str | None) -> CallerContext | None:
        caller = self._caller(self._reader.escrow_address)
        if caller is None:
            return None
        return replace(caller, is_admin=same_address(caller.address, owner))

    async def refresh(self) -> EscrowView | None:
        generation = self._next_generation()
        proposal_id = self._proposal_id

        snapshot, allowance, owner, paused, deposit, _ = await asyncio.gather(
            self._reader.read_proposal_snapshot(proposal_id),
            self._allowance(),
            self._reader.read_owner(),
            self._reader.read_paused(),
            self._reader.read_creator_deposit(),
            self._oracle.refresh(),
        )
        winner_owner: str | ReadError | None = None
        if isinstance(snapshot, BountyProposal) and snapshot.winner_topic_id is not None:
            winner_owner = await self._reader.read_topic_owner(
                proposal_id, snapshot.winner_topic_id
            )

        if not self._is_current(generation):
            return None

        known_owner = owner if isinstance(owner, str) else None
        caller = self._escrow_caller(known_owner)
        known_allowance: int | Unavailable = _known(allowance, int)
        paused_state = _paused_state(paused)
        creator_deposit = deposit if isinstance(deposit, int) else self._creator_deposit
        contract_actions = resolve_contract_actions(
            caller,
            paused=paused_state,
            token_allowance=known_allowance,
            creator_deposit=creator_deposit,
        )
        view = EscrowView(
            generation=generation,
            proposal_id=proposal_id,
            proposal=None,
            resolution=None,
            actions={},
            contract_actions=_by_name(contract_actions),
            allowance=known_allowance,
            owner=known_owner,
            winner_owner=winner_owner if isinstance(winner_owner, str) else None,
            paused=paused_state,
            creator_deposit=creator_deposit,
        )
        if isinstance(snapshot, ReadError):
            view = replace(
                view,
                error=snapshot,
                actions=_by_name(unresolved_escrow_actions(caller, _reason_for(snapshot))),
            )
        else:
            view = self._resolved(replace(view, proposal=snapshot))

        self._view = view
        self._logger.info(
            "escrow_view_refreshed",
            kind=self.kind,
            proposal_id=str(proposal_id),
            generation=generation,
            status=view.proposal.status.name if view.proposal is not None else None,
            paused=_unavailable_as_none(paused_state),
            error=view.error.kind.value if view.error is not None else None,
        )
        return view

    def _resolved(self, view: EscrowView) -> EscrowView:
        if view.proposal is None:
            return view
        resolution = resolve_escrow(
            view.proposal,
            self._escrow_caller(view.owner),
            self._oracle.current_time(),
            token_allowance=view.allowance,
            required_bond=self._required_bond,
            paused=view.paused,
        )
        return replace(view, resolution=resolution, actions=_by_name(resolution.actions))

    def reevaluate(self) -> EscrowView | None:
        """Re-derive eligibility from the held snapshot against the latest clock."""
        if self._view is None:
            return None
        self._view = self._resolved(self._view)
        return self._view


@dataclass(slots=True, frozen=True)
class GovernanceView:
    generation: int
    proposal_id: int
    proposal: GovernanceProposal | None
    resolution: GovernanceResolution | None
    actions: Mapping[str, Verdict]
    error: ReadError | None = None
    voting_power: int | Unavailable = 0
    has_voted: bool | Unavailable = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "proposal_id": str(self.proposal_id),
            "proposal": self.proposal.as_dict() if self.proposal is not None else None,
            "resolution": self.resolution.as_dict() if self.resolution is not None else None,
            "actions": {name: verdict.as_dict() for name, verdict in self.actions.items()},
            "error": self.error.as_dict() if self.error is not None else None,
            "voting_power": (
                None if isinstance(self.voting_power, Unavailable) else str(self.voting_power)
            ),
            "has_voted": _unavailable_as_none(self.has_voted),
        }


class GovernanceSession(ProposalSession):
    kind = "governance"

    def __init__(
        self,
        reader: GovernorReader,
        oracle: TemporalOracle,
        proposal_id: int,
        caller_address: str | None = None,
        network_matches: bool = True,
        block_time_estimate_seconds: int = BLOCK_TIME_ESTIMATE_SECONDS,
    ) -> None:
        super().__init__(oracle, proposal_id, caller_address, network_matches)
        self._reader = reader
        self._block_time_estimate_seconds = block_time_estimate_seconds
        self._view: GovernanceView | None = None
        self._creation_event: ChainEvent | None = None

    @property
    def view(self) -> GovernanceView | None:
        return self._view

    def _reset(self) -> None:
        self._view = None
        self._creation_event = None

    async def _has_voted(self, proposal_id: int) -> bool | ReadError:
        if not self._caller_address:
            return False
        return await self._reader.read_has_voted(proposal_id, self._caller_address)

    async def refresh(self) -> GovernanceView | None:
        generation = self._next_generation()
        proposal_id = self._proposal_id

        if self._creation_event is None:
            # The description lives only in the creation log; it never changes.
            creation_event = await self._reader.find_creation_event(proposal_id)
            if not self._is_current(generation):
                return None
            self._creation_event = creation_event
        snapshot, has_voted, _ = await asyncio.gather(
            self._reader.read_governance_snapshot(proposal_id, self._creation_event),
            self._has_voted(proposal_id),
            self._oracle.refresh(),
        )
        caller = self._caller(self._reader.governor_address)
        if isinstance(snapshot, ReadError):
            if not self._is_current(generation):
                return None
            self._view = GovernanceView(
                generation=generation,
                proposal_id=proposal_id,
                proposal=None,
                resolution=None,
                actions=_by_name(unresolved_governance_actions(caller, _reason_for(snapshot))),
                error=snapshot,
            )
            return self._view

        current_block = self._oracle.current_block()
        voting_power, block_timestamps = await asyncio.gather(
            self._voting_power(snapshot, current_block),
            self._oracle.block_timestamps(blocks_needing_exact_time(snapshot, current_block)),
        )
        if not self._is_current(generation):
            return None

        # A failed read leaves the value unknown so castVote fails closed.
        power: int | Unavailable = _known(voting_power, int)
        voted: bool | Unavailable = _known(has_voted, bool)
        resolution = resolve_governance(
            snapshot,
            caller,
            current_block,
            voting_power=power,
            has_voted=voted,
            current_timestamp=self._oracle.current_time(),
            block_timestamps=block_timestamps,
            block_time_estimate_seconds=self._block_time_estimate_seconds,
        )
        self._view = GovernanceView(
            generation=generation,
            proposal_id=proposal_id,
            proposal=snapshot,
            resolution=resolution,
            actions=_by_name(resolution.actions),
            voting_power=power,
            has_voted=voted,
        )
        self._logger.info(
            "governance_view_refreshed",
            kind=self.kind,
            proposal_id=str(proposal_id),
            generation=generation,
            state=snapshot.state.name,
        )
        return self._view

    async def _voting_power(
        self,
        proposal: GovernanceProposal,
        current_block: int | Unavailable,
    ) -> int | ReadError:
        if not self._caller_address:
            return 0
        snapshot_block: int | None = proposal.snapshot_block
        # Past votes can only be looked up once the snapshot block is mined.
        if proposal.state == GovernanceState.PENDING or isinstance(current_block, Unavailable):
            snapshot_block = None
        elif proposal.snapshot_block >= current_block:
            snapshot_block = None
        return await self._reader.read_voting_power(self._caller_address, snapshot_block)
