from __future__ import annotations

import asyncio

import pytest
from conftest import (
    ALICE,
    ESCROW,
    GOVERNOR,
    OWNER,
    TOKEN,
    FakeChain,
    seed_bounty,
    seed_governance,
)

from bounty_dao.chain import abi
from bounty_dao.chain.escrow_reader import EscrowReader
from bounty_dao.chain.governor_reader import GovernorReader
from bounty_dao.chain.log_fetcher import LogFetcher
from bounty_dao.domain.escrow_lifecycle import CREATOR_DEPOSIT
from bounty_dao.domain.proposals import BountyStatus, GovernanceState
from bounty_dao.orchestration.session import EscrowSession, GovernanceSession
from bounty_dao.runtime.oracle import TemporalOracle

NOW = 1_700_000_000
BOND = 10_000 * 10**18


def _escrow_session(chain: FakeChain, caller: str | None = ALICE) -> EscrowSession:
    client = chain.client()
    return EscrowSession(
        EscrowReader(client, ESCROW, TOKEN),
        TemporalOracle(client),
        proposal_id=7,
        caller_address=caller,
    )


def _governance_session(chain: FakeChain, caller: str | None = ALICE) -> GovernanceSession:
    client = chain.client()
    return GovernanceSession(
        GovernorReader(client, GOVERNOR, TOKEN, log_fetcher=LogFetcher(client)),
        TemporalOracle(client),
        proposal_id=42,
        caller_address=caller,
    )


def test_escrow_refresh_resolves_actions_against_chain_time(fake_chain: FakeChain) -> None:
    seed_bounty(
        fake_chain, 7, status=BountyStatus.VOTING, start_time=NOW - 100, end_time=NOW + 100
    )
    fake_chain.on_call(ESCROW, abi.OWNER, returns=[OWNER])
    fake_chain.on_call(TOKEN, abi.ALLOWANCE, ALICE, ESCROW, returns=[BOND])
    session = _escrow_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.generation == 1
    assert view.allowance == BOND
    assert view.actions["stakeVote"].allowed
    assert view.actions["finalizeVoting"].reason == "WindowClosed"
    assert view.actions["resolveDispute"].reason == "NotAdmin"


def test_escrow_owner_gets_admin_actions(fake_chain: FakeChain) -> None:
    seed_bounty(
        fake_chain,
        7,
        status=BountyStatus.DISPUTED,
        start_time=NOW - 5_000,
        end_time=NOW - 4_000,
        submit_deadline=NOW - 3_000,
        challenge_window_end=NOW - 1_000,
        challenger=ALICE,
    )
    fake_chain.on_call(ESCROW, abi.OWNER, returns=[OWNER])
    fake_chain.on_call(ESCROW, abi.GET_TOPIC, 7, 1, returns=[ALICE])
    session = _escrow_session(fake_chain, caller=OWNER.lower())

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.actions["resolveDispute"].allowed
    assert view.winner_owner == ALICE


def test_unknown_proposal_denies_everything_as_invalid_state(fake_chain: FakeChain) -> None:
    session = _escrow_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.error is not None and view.error.not_found
    assert {verdict.reason for verdict in view.actions.values()} == {"InvalidState"}


def test_unreachable_node_denies_everything_as_unreachable(fake_chain: FakeChain) -> None:
    fake_chain.down = True
    session = _escrow_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert {verdict.reason for verdict in view.actions.values()} == {"Unreachable"}
    assert session.oracle.status()["time_source"] == "unavailable"


class _SwitchingReader(EscrowReader):
    """Switches the session to another proposal while the first read is in flight."""

    session: EscrowSession

    async def read_proposal_snapshot(self, proposal_id: int):  # type: ignore[no-untyped-def]
        result = await super().read_proposal_snapshot(proposal_id)
        if proposal_id == 7:
            self.session.switch_proposal(8)
        return result


def test_refresh_landing_after_a_switch_is_dropped(fake_chain: FakeChain) -> None:
    seed_bounty(
        fake_chain, 7, status=BountyStatus.VOTING, start_time=NOW - 100, end_time=NOW + 100
    )
    seed_bounty(fake_chain, 8, status=BountyStatus.COMPLETED, start_time=1, end_time=2)
    client = fake_chain.client()
    reader = _SwitchingReader(client, ESCROW, TOKEN)
    session = EscrowSession(reader, TemporalOracle(client), proposal_id=7)
    reader.session = session

    async def run() -> tuple[object, object]:
        stale = await session.refresh()
        fresh = await session.refresh()
        return stale, fresh

    stale, fresh = asyncio.run(run())

    assert stale is None
    assert session.proposal_id == 8
    assert fresh is not None
    assert fresh.proposal is not None and fresh.proposal.status == BountyStatus.COMPLETED
    assert session.view is fresh


def test_reevaluate_uses_the_latest_clock(fake_chain: FakeChain) -> None:
    seed_bounty(
        fake_chain, 7, status=BountyStatus.VOTING, start_time=NOW - 100, end_time=NOW + 10
    )
    session = _escrow_session(fake_chain)

    async def run() -> tuple[str | None, bool]:
        first = await session.refresh()
        fake_chain.timestamp = NOW + 11
        await session.oracle.refresh()
        second = session.reevaluate()
        assert first is not None and second is not None
        return first.actions["finalizeVoting"].reason, second.actions["finalizeVoting"].allowed

    assert asyncio.run(run()) == ("WindowClosed", True)
    assert fake_chain.methods.count("eth_call") == 5


def test_closed_session_refuses_refresh(fake_chain: FakeChain) -> None:
    session = _escrow_session(fake_chain)

    async def run() -> None:
        async with session:
            pass
        await session.refresh()

    with pytest.raises(RuntimeError, match="closed"):
        asyncio.run(run())


def test_governance_session_combines_snapshot_power_and_timeline(fake_chain: FakeChain) -> None:
    seed_governance(
        fake_chain,
        42,
        state=GovernanceState.ACTIVE,
        snapshot=900,
        deadline=1_100,
        votes=(100, 600, 50),
        quorum=500,
    )
    fake_chain.on_call(GOVERNOR, abi.HAS_VOTED, 42, ALICE, returns=[False])
    fake_chain.on_call(TOKEN, abi.GET_PAST_VOTES, ALICE, 900, returns=[5 * 10**18])
    session = _governance_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None and view.resolution is not None
    assert view.proposal is not None
    assert view.proposal.description == "Fund the next bounty round"
    assert view.voting_power == 5 * 10**18
    assert view.actions["castVote"].allowed
    assert view.resolution.tally.quorum_reached
    steps = view.resolution.timeline.steps
    assert steps[0].time is not None and steps[0].time.timestamp == NOW - 200
    assert steps[1].time is not None and steps[1].time.estimated
    assert steps[1].time.timestamp == NOW + 200


def test_governance_session_caches_the_creation_event(fake_chain: FakeChain) -> None:
    seed_governance(fake_chain, 42, state=GovernanceState.SUCCEEDED, snapshot=900, deadline=950)
    session = _governance_session(fake_chain, caller=None)

    async def run() -> None:
        await session.refresh()
        await session.refresh()

    asyncio.run(run())

    assert fake_chain.methods.count("eth_getLogs") == 1
    assert session.view is not None and session.view.generation == 2


def test_pending_proposal_reads_current_votes(fake_chain: FakeChain) -> None:
    seed_governance(fake_chain, 42, state=GovernanceState.PENDING, snapshot=1_200, deadline=1_300)
    fake_chain.on_call(GOVERNOR, abi.HAS_VOTED, 42, ALICE, returns=[False])
    fake_chain.on_call(TOKEN, abi.GET_VOTES, ALICE, returns=[7])
    session = _governance_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.voting_power == 7
    assert view.actions["castVote"].reason == "InvalidState"


def test_missing_governance_proposal_is_not_found(fake_chain: FakeChain) -> None:
    session = _governance_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None and view.error is not None
    assert view.error.not_found
    assert view.actions["castVote"].reason == "InvalidState"
    assert view.actions["queue"].reason == "InvalidState"
    assert view.actions["delegate"].allowed


def test_missing_proposal_without_a_caller_is_not_connected(fake_chain: FakeChain) -> None:
    escrow = _escrow_session(fake_chain, caller=None)
    governance = _governance_session(fake_chain, caller=None)

    escrow_view = asyncio.run(escrow.refresh())
    governance_view = asyncio.run(governance.refresh())

    assert escrow_view is not None and governance_view is not None
    assert escrow_view.actions["submitDelivery"].reason == "NotConnected"
    assert {verdict.reason for verdict in escrow_view.actions.values()} == {"NotConnected"}
    assert {verdict.reason for verdict in escrow_view.contract_actions.values()} == {
        "NotConnected"
    }
    assert {verdict.reason for verdict in governance_view.actions.values()} == {"NotConnected"}


def test_unreadable_vote_receipt_denies_cast_vote(fake_chain: FakeChain) -> None:
    seed_governance(fake_chain, 42, state=GovernanceState.ACTIVE, snapshot=900, deadline=1_100)
    fake_chain.on_call(TOKEN, abi.GET_PAST_VOTES, ALICE, 900, returns=[5 * 10**18])
    session = _governance_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.actions["castVote"].reason == "Unreachable"
    assert view.as_dict()["has_voted"] is None


def test_unreadable_voting_power_denies_cast_vote(fake_chain: FakeChain) -> None:
    seed_governance(fake_chain, 42, state=GovernanceState.ACTIVE, snapshot=900, deadline=1_100)
    fake_chain.on_call(GOVERNOR, abi.HAS_VOTED, 42, ALICE, returns=[False])
    session = _governance_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.actions["castVote"].reason == "Unreachable"
    assert view.as_dict()["voting_power"] is None


def test_paused_escrow_denies_writes_and_offers_unpause(fake_chain: FakeChain) -> None:
    seed_bounty(
        fake_chain, 7, status=BountyStatus.VOTING, start_time=NOW - 100, end_time=NOW + 100
    )
    fake_chain.on_call(ESCROW, abi.OWNER, returns=[OWNER])
    fake_chain.on_call(ESCROW, abi.PAUSED, returns=[True])
    session = _escrow_session(fake_chain, caller=OWNER)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.paused is True
    assert view.actions["stakeVote"].reason == "Paused"
    assert view.contract_actions["createProposal"].reason == "Paused"
    assert view.contract_actions["unpause"].allowed
    assert view.contract_actions["pause"].reason == "InvalidState"


def test_escrow_without_pause_support_reads_as_running(fake_chain: FakeChain) -> None:
    seed_bounty(
        fake_chain, 7, status=BountyStatus.VOTING, start_time=NOW - 100, end_time=NOW + 100
    )
    session = _escrow_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None
    assert view.paused is False
    assert view.creator_deposit == CREATOR_DEPOSIT
    assert view.actions["stakeVote"].allowed


def test_create_proposal_uses_the_on_chain_deposit(fake_chain: FakeChain) -> None:
    fake_chain.on_call(ESCROW, abi.CREATOR_DEPOSIT, returns=[50])
    fake_chain.on_call(TOKEN, abi.ALLOWANCE, ALICE, ESCROW, returns=[50])
    session = _escrow_session(fake_chain)

    view = asyncio.run(session.refresh())

    assert view is not None and view.error is not None
    assert view.creator_deposit == 50
    assert view.verdict("createProposal") is not None
    assert view.contract_actions["createProposal"].allowed
    assert view.contract_actions["approveDeposit"].reason == "InvalidState"
    assert view.actions["stakeVote"].reason == "InvalidState"
