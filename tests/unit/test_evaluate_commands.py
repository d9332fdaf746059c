from __future__ import annotations

from argparse import Namespace

from bounty_dao.commands import run_build_intent, run_evaluate_escrow, run_evaluate_governance
from bounty_dao.config import AppSettings
from bounty_dao.types import CommandStatus

ALICE = "0x4444444444444444444444444444444444444444"
ESCROW = "0x1111111111111111111111111111111111111111"
TOKEN = "0x2222222222222222222222222222222222222222"
GOVERNOR = "0x3333333333333333333333333333333333333333"


def _escrow_args(**overrides: object) -> Namespace:
    values: dict[str, object] = {
        "proposal_id": "7",
        "status": "voting",
        "start_time": "500",
        "end_time": "1000",
        "topic_count": "3",
        "winner_topic_id": None,
        "submit_deadline": None,
        "challenge_window_end": None,
        "current_time": "700",
        "allowance": "0",
        "required_bond": None,
        "action": None,
        "caller": ALICE,
        "contract": "",
        "admin": False,
        "network_mismatch": False,
    }
    values.update(overrides)
    return Namespace(**values)


def _settings() -> AppSettings:
    return AppSettings(escrow_address=ESCROW, token_address=TOKEN, governor_address=GOVERNOR)


def test_evaluate_escrow_lists_allowed_actions() -> None:
    result = run_evaluate_escrow(_escrow_args(), _settings())

    assert result.status == CommandStatus.EXECUTED
    assert result.details["allowed_actions"] == ["stakeVote"]
    assert "delivery_template" not in result.details


def test_evaluate_escrow_single_action_verdict() -> None:
    result = run_evaluate_escrow(_escrow_args(action="finalizeVoting"), _settings())

    assert result.status == CommandStatus.DENIED
    assert result.details["verdict"] == {"allowed": False, "reason": "WindowClosed"}


def test_evaluate_escrow_without_clock_fails_closed() -> None:
    result = run_evaluate_escrow(
        _escrow_args(current_time=None, action="stakeVote"), _settings()
    )

    assert result.details["verdict"]["reason"] == "NoTimeSource"


def test_evaluate_escrow_numeric_status_and_template() -> None:
    result = run_evaluate_escrow(
        _escrow_args(status="3", winner_topic_id="1", submit_deadline="1200"), _settings()
    )

    assert result.details["proposal"]["status"] == "ACCEPTED"
    assert result.details["allowed_actions"] == ["submitDelivery"]
    assert ALICE in result.details["delivery_template"]


def test_evaluate_escrow_invalid_contract_address() -> None:
    result = run_evaluate_escrow(_escrow_args(contract="0xnope", action="stakeVote"), _settings())

    assert result.details["verdict"]["reason"] == "InvalidAddress"


def test_evaluate_escrow_rejects_non_canonical_input() -> None:
    result = run_evaluate_escrow(_escrow_args(status="voting", submit_deadline="9"), _settings())

    assert result.status == CommandStatus.FAILED
    assert "submit_deadline" in result.details["error"]


def test_evaluate_escrow_unknown_status() -> None:
    result = run_evaluate_escrow(_escrow_args(status="finished"), _settings())

    assert result.status == CommandStatus.FAILED
    assert "status must be one of" in result.details["error"]


def _governance_args(**overrides: object) -> Namespace:
    values: dict[str, object] = {
        "proposal_id": "42",
        "state": "Active",
        "snapshot_block": "90",
        "deadline_block": "110",
        "for_votes": "600",
        "against_votes": "100",
        "abstain_votes": "50",
        "quorum": "500",
        "eta": None,
        "current_block": "100",
        "current_time": "10000",
        "voting_power": "5",
        "has_voted": False,
        "action": None,
        "caller": ALICE,
        "contract": "",
        "admin": False,
        "network_mismatch": False,
    }
    values.update(overrides)
    return Namespace(**values)


def test_evaluate_governance_reports_tally_and_timeline() -> None:
    result = run_evaluate_governance(_governance_args(), _settings())

    resolution = result.details["resolution"]
    assert result.status == CommandStatus.EXECUTED
    assert resolution["tally"]["quorum_reached"] is True
    assert resolution["tally"]["quorum_progress_percent"] == 100.0
    assert resolution["timeline"]["active_index"] == 1
    assert resolution["timeline"]["steps"][1]["time"] == {"timestamp": 10_020, "estimated": True}


def test_evaluate_governance_already_voted() -> None:
    result = run_evaluate_governance(
        _governance_args(has_voted=True, action="castVote"), _settings()
    )

    assert result.status == CommandStatus.DENIED
    assert result.details["verdict"]["reason"] == "AlreadyVoted"


def test_evaluate_governance_network_mismatch() -> None:
    result = run_evaluate_governance(
        _governance_args(network_mismatch=True, action="delegate"), _settings()
    )

    assert result.details["verdict"]["reason"] == "NetworkMismatch"


def _intent_args(**overrides: object) -> Namespace:
    values: dict[str, object] = {
        "action": "approveBond",
        "proposal_id": "7",
        "topic_id": None,
        "amount": None,
        "youtube_url": "",
        "video_id": "",
        "pinned_code": "",
        "reason": "",
        "evidence": "",
        "approve": None,
        "support": None,
        "delegatee": "",
        "target": [],
        "value": [],
        "calldata": [],
        "description": "",
    }
    values.update(overrides)
    return Namespace(**values)


def test_build_intent_approve_bond_uses_configured_bond() -> None:
    result = run_build_intent(_intent_args(), _settings())

    intent = result.details["intent"]
    assert result.status == CommandStatus.PENDING
    assert intent["to"] == TOKEN
    assert intent["data"].startswith("0x095ea7b3")
    assert intent["data"].endswith(format(10_000 * 10**18, "064x"))


def test_build_intent_cast_vote() -> None:
    result = run_build_intent(
        _intent_args(action="castVote", proposal_id="42", support=1), _settings()
    )

    assert result.details["intent"]["to"] == GOVERNOR
    assert result.details["intent"]["data"].startswith("0x56781388")


def test_build_intent_requires_configured_addresses() -> None:
    result = run_build_intent(_intent_args(action="finalizeVoting"), AppSettings())

    assert result.status == CommandStatus.FAILED
    assert "escrow_address" in result.details["error"]


def test_build_intent_stake_vote_needs_topic() -> None:
    result = run_build_intent(_intent_args(action="stakeVote", amount="5"), _settings())

    assert result.status == CommandStatus.FAILED
    assert result.details["error"] == "topic_id is required"


def test_build_intent_queue_with_mismatched_arrays() -> None:
    result = run_build_intent(
        _intent_args(action="queue", target=[TOKEN], value=[], calldata=["0x"]), _settings()
    )

    assert result.status == CommandStatus.FAILED
    assert "equal length" in result.details["error"]


def test_evaluate_escrow_while_paused() -> None:
    result = run_evaluate_escrow(_escrow_args(paused=True, action="stakeVote"), _settings())

    assert result.status == CommandStatus.DENIED
    assert result.details["verdict"]["reason"] == "Paused"
    assert result.details["contract_actions"]["unpause"]["reason"] == "NotAdmin"


def test_evaluate_escrow_create_proposal_for_the_owner() -> None:
    result = run_evaluate_escrow(_escrow_args(admin=True, action="createProposal"), _settings())

    assert result.status == CommandStatus.ALLOWED
    assert result.details["contract_actions"]["pause"]["allowed"] is True


def test_evaluate_escrow_create_proposal_needs_the_deposit() -> None:
    short = run_evaluate_escrow(_escrow_args(action="createProposal"), _settings())
    covered = run_evaluate_escrow(
        _escrow_args(action="createProposal", allowance="500", creator_deposit="500"),
        _settings(),
    )

    assert short.details["verdict"]["reason"] == "InsufficientDeposit"
    assert covered.status == CommandStatus.ALLOWED


def test_build_intent_create_proposal() -> None:
    result = run_build_intent(
        _intent_args(
            action="createProposal",
            topic_owner=[ALICE],
            topic_content=["Build the indexer"],
            metadata="Round 3",
            start_time="100",
            end_time="200",
        ),
        _settings(),
    )

    assert result.status == CommandStatus.PENDING
    assert result.details["intent"]["to"] == ESCROW


def test_build_intent_approve_deposit_uses_configured_deposit() -> None:
    result = run_build_intent(_intent_args(action="approveDeposit"), _settings())

    intent = result.details["intent"]
    assert intent["to"] == TOKEN
    assert intent["data"].endswith(format(100 * 10**18, "064x"))


def test_build_intent_rejects_an_invalid_topic_owner() -> None:
    result = run_build_intent(
        _intent_args(action="createProposal", topic_owner=["0x12"], start_time="1", end_time="2"),
        _settings(),
    )

    assert result.status == CommandStatus.FAILED
    assert "topic_owner" in result.details["error"]
