from __future__ import annotations

import asyncio

import pytest
from conftest import ESCROW, GOVERNOR, TOKEN

from bounty_dao.chain import abi
from bounty_dao.chain.intents import (
    Intent,
    IntentError,
    IntentErrorKind,
    Receipt,
    TransactionHandle,
    build_contract_intent,
    build_escrow_intent,
    build_governance_intent,
    classify_failure,
)
from bounty_dao.domain.action_gate import DenyReason, Verdict
from bounty_dao.domain.escrow_lifecycle import (
    CREATOR_DEPOSIT,
    REQUIRED_BOND,
    ContractAction,
    EscrowAction,
)
from bounty_dao.domain.governance_lifecycle import GovernanceAction
from bounty_dao.domain.proposals import GovernanceProposal, GovernanceState
from bounty_dao.orchestration.reconciliation import IntentStatus, run_intent

INTENT = Intent(kind="finalizeVoting", to=ESCROW, data=abi.FINALIZE_VOTING.encode_call(7))


class RecordingSubmitter:
    def __init__(self, *, error: str | None = None, succeeded: bool = True) -> None:
        self.error = error
        self.succeeded = succeeded
        self.submitted: list[Intent] = []

    async def submit_intent(self, intent: Intent) -> TransactionHandle:
        self.submitted.append(intent)
        if self.error is not None:
            raise IntentError.from_message(self.error)
        return TransactionHandle(transaction_hash="0xfeed")

    async def await_confirmation(self, handle: TransactionHandle) -> Receipt:
        return Receipt(handle.transaction_hash, block_number=1_001, succeeded=self.succeeded)


class RefreshCounter:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


def test_denied_verdict_is_never_submitted() -> None:
    submitter = RecordingSubmitter()
    refresh = RefreshCounter()

    outcome = asyncio.run(
        run_intent(Verdict.deny(DenyReason.WINDOW_CLOSED), INTENT, submitter, refresh)
    )

    assert outcome.status == IntentStatus.DENIED
    assert outcome.reason == DenyReason.WINDOW_CLOSED
    assert not outcome.submitted
    assert submitter.submitted == []
    assert refresh.calls == 0


def test_confirmed_intent_refreshes_state() -> None:
    submitter = RecordingSubmitter()
    refresh = RefreshCounter()

    outcome = asyncio.run(run_intent(Verdict.allow(), INTENT, submitter, refresh))

    assert outcome.status == IntentStatus.EXECUTED
    assert outcome.receipt == Receipt("0xfeed", 1_001)
    assert outcome.refreshed
    assert refresh.calls == 1


@pytest.mark.parametrize(
    ("message", "status", "reason"),
    [
        (
            "MetaMask Tx Signature: User denied transaction signature.",
            IntentStatus.REJECTED,
            DenyReason.REJECTED,
        ),
        ("execution reverted: voting closed", IntentStatus.REVERTED, DenyReason.REVERTED),
        ("request timed out after 120s", IntentStatus.TIMEOUT, DenyReason.UNREACHABLE),
    ],
)
def test_failed_submission_still_refreshes(
    message: str, status: IntentStatus, reason: DenyReason
) -> None:
    refresh = RefreshCounter()

    outcome = asyncio.run(
        run_intent(Verdict.allow(), INTENT, RecordingSubmitter(error=message), refresh)
    )

    assert outcome.status == status
    assert outcome.reason == reason
    assert outcome.message == message
    assert refresh.calls == 1


def test_reverted_receipt_is_a_revert() -> None:
    refresh = RefreshCounter()

    outcome = asyncio.run(
        run_intent(Verdict.allow(), INTENT, RecordingSubmitter(succeeded=False), refresh)
    )

    assert outcome.status == IntentStatus.REVERTED
    assert outcome.as_dict()["receipt"]["succeeded"] is False
    assert refresh.calls == 1


def test_classify_failure_defaults_to_revert() -> None:
    assert classify_failure("User rejected the request.") == IntentErrorKind.REJECTED
    assert classify_failure("nonce too low") == IntentErrorKind.REVERTED


def test_approve_bond_targets_the_token() -> None:
    intent = build_escrow_intent(
        EscrowAction.APPROVE_BOND,
        escrow_address=ESCROW,
        token_address=TOKEN,
        proposal_id=7,
    )

    assert intent.to == TOKEN
    assert intent.data == abi.APPROVE.encode_call(ESCROW, REQUIRED_BOND)


def test_stake_vote_requires_a_positive_amount() -> None:
    with pytest.raises(ValueError, match="amount"):
        build_escrow_intent(
            EscrowAction.STAKE_VOTE,
            escrow_address=ESCROW,
            token_address=TOKEN,
            proposal_id=7,
            params={"topic_id": 1, "amount": 0},
        )


def test_submit_delivery_commits_trimmed_hashes() -> None:
    intent = build_escrow_intent(
        EscrowAction.SUBMIT_DELIVERY,
        escrow_address=ESCROW,
        token_address=TOKEN,
        proposal_id=7,
        params={"youtube_url": " https://youtu.be/abc ", "video_id": "abc", "pinned_code": "X1"},
    )

    assert intent.data == abi.SUBMIT_DELIVERY.encode_call(
        7,
        abi.hash_text("https://youtu.be/abc"),
        abi.hash_text("abc"),
        abi.hash_text("X1"),
    )


def test_resolve_dispute_needs_a_decision() -> None:
    with pytest.raises(ValueError, match="approve"):
        build_escrow_intent(
            EscrowAction.RESOLVE_DISPUTE,
            escrow_address=ESCROW,
            token_address=TOKEN,
            proposal_id=7,
        )


def test_governance_queue_hashes_the_description() -> None:
    proposal = GovernanceProposal(
        id=42,
        state=GovernanceState.SUCCEEDED,
        snapshot_block=900,
        deadline_block=950,
        targets=(TOKEN,),
        values=(0,),
        calldatas=(b"",),
        description="Fund the next bounty round",
    )

    intent = build_governance_intent(
        GovernanceAction.QUEUE,
        governor_address=GOVERNOR,
        token_address=TOKEN,
        proposal=proposal,
    )

    assert intent.to == GOVERNOR
    assert intent.data == abi.QUEUE.encode_call(
        [TOKEN], [0], [b""], abi.description_hash("Fund the next bounty round")
    )


def test_cast_vote_rejects_unknown_support() -> None:
    proposal = GovernanceProposal(
        id=42, state=GovernanceState.ACTIVE, snapshot_block=900, deadline_block=950
    )

    with pytest.raises(ValueError):
        build_governance_intent(
            GovernanceAction.CAST_VOTE,
            governor_address=GOVERNOR,
            token_address=TOKEN,
            proposal=proposal,
            params={"support": 3},
        )


def test_delegate_goes_to_the_token() -> None:
    intent = build_governance_intent(
        GovernanceAction.DELEGATE,
        governor_address=GOVERNOR,
        token_address=TOKEN,
        params={"delegatee": TOKEN},
    )

    assert intent.to == TOKEN
    assert intent.data[:4].hex() == "5c19a95c"


def test_create_proposal_commits_topic_and_metadata_hashes() -> None:
    intent = build_contract_intent(
        ContractAction.CREATE_PROPOSAL,
        escrow_address=ESCROW,
        token_address=TOKEN,
        params={
            "topic_owners": [GOVERNOR],
            "topic_contents": ["  Build the indexer  "],
            "metadata": "Round 3",
            "start_time": 100,
            "end_time": 200,
        },
    )

    assert intent.to == ESCROW
    assert intent.data == abi.CREATE_PROPOSAL.encode_call(
        [GOVERNOR],
        [abi.hash_text("Build the indexer")],
        abi.hash_text("Round 3"),
        100,
        200,
    )


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"topic_owners": []}, "between 1 and 5"),
        ({"topic_contents": []}, "topic content"),
        ({"end_time": 100}, "voting window"),
    ],
)
def test_create_proposal_validates_its_inputs(overrides: dict[str, object], message: str) -> None:
    params: dict[str, object] = {
        "topic_owners": [GOVERNOR],
        "topic_contents": ["Build the indexer"],
        "start_time": 100,
        "end_time": 200,
    }
    params.update(overrides)

    with pytest.raises(ValueError, match=message):
        build_contract_intent(
            ContractAction.CREATE_PROPOSAL,
            escrow_address=ESCROW,
            token_address=TOKEN,
            params=params,
        )


def test_deposit_approval_and_pause_toggles() -> None:
    approval = build_contract_intent(
        ContractAction.APPROVE_DEPOSIT, escrow_address=ESCROW, token_address=TOKEN
    )
    pause = build_contract_intent(ContractAction.PAUSE, escrow_address=ESCROW, token_address=TOKEN)
    unpause = build_contract_intent(
        ContractAction.UNPAUSE, escrow_address=ESCROW, token_address=TOKEN
    )

    assert approval.to == TOKEN
    assert approval.data == abi.APPROVE.encode_call(ESCROW, CREATOR_DEPOSIT)
    assert (pause.to, pause.data) == (ESCROW, abi.PAUSE.selector)
    assert (unpause.to, unpause.data) == (ESCROW, abi.UNPAUSE.selector)
