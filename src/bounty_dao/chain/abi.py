"""ABI shapes for the escrow, governor and vote token contracts.

Everything that crosses the wire is decoded here exactly once: readers get
typed snapshots back and never index raw tuples themselves.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode
from eth_utils import decode_hex, keccak, to_checksum_address

from bounty_dao.chain.addresses import is_zero_address
from bounty_dao.domain.events import ChainEvent
from bounty_dao.domain.proposals import BountyProposal, BountyStatus


@dataclass(slots=True, frozen=True)
class FunctionSpec:
    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    def encode_call(self, *args: Any) -> bytes:
        if len(args) != len(self.inputs):
            raise ValueError(f"{self.name} expects {len(self.inputs)} arguments, got {len(args)}")
        return self.selector + encode(list(self.inputs), list(args))

    def decode_output(self, data: bytes) -> tuple[Any, ...]:
        values = decode(list(self.outputs), data)
        return tuple(_normalize(kind, value) for kind, value in zip(self.outputs, values))


@dataclass(slots=True, frozen=True)
class EventInput:
    name: str
    type: str
    indexed: bool = False


@dataclass(slots=True, frozen=True)
class EventSpec:
    name: str
    inputs: tuple[EventInput, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(item.type for item in self.inputs)})"

    @property
    def topic(self) -> str:
        return "0x" + keccak(text=self.signature).hex()

    def decode_log(self, log: Mapping[str, Any]) -> ChainEvent:
        topics = [str(topic) for topic in log.get("topics", [])]
        if not topics or topics[0].lower() != self.topic:
            raise ValueError(f"log is not a {self.name} event")

        indexed = [item for item in self.inputs if item.indexed]
        if len(topics) - 1 != len(indexed):
            raise ValueError(f"{self.name} expects {len(indexed)} indexed topics")

        args: dict[str, Any] = {}
        for item, topic in zip(indexed, topics[1:]):
            args[item.name] = _normalize(item.type, decode([item.type], decode_hex(topic))[0])

        plain = [item for item in self.inputs if not item.indexed]
        values = decode([item.type for item in plain], decode_hex(log.get("data") or "0x"))
        for item, value in zip(plain, values):
            args[item.name] = _normalize(item.type, value)

        ordered = {item.name: args[item.name] for item in self.inputs}
        return ChainEvent(
            name=self.name,
            block_number=_quantity(log.get("blockNumber")),
            log_index=_quantity(log.get("logIndex")),
            transaction_hash=str(log.get("transactionHash") or ""),
            args=ordered,
        )


def _quantity(raw_value: Any) -> int:
    if raw_value is None:
        return 0
    if isinstance(raw_value, int):
        return raw_value
    return int(str(raw_value), 16)


def _normalize(kind: str, value: Any) -> Any:
    if kind == "address":
        return to_checksum_address(value)
    if kind.endswith("[]"):
        inner = kind[:-2]
        return tuple(_normalize(inner, item) for item in value)
    return value


def _event(name: str, *inputs: tuple[str, str] | tuple[str, str, bool]) -> EventSpec:
    return EventSpec(name=name, inputs=tuple(EventInput(*item) for item in inputs))


def hash_text(text: str) -> bytes:
    """bytes32 commitment for free text (trimmed, UTF-8, keccak-256)."""
    return keccak(text=text.strip())


def description_hash(description: str) -> bytes:
    # The governor hashes the description exactly as proposed, untrimmed.
    return keccak(text=description)


# -- escrow ------------------------------------------------------------------

PROPOSAL_TUPLE = (
    "uint64",   # startTime
    "uint64",   # endTime
    "uint8",    # topicCount
    "uint8",    # status
    "uint256",  # winnerTopicId
    "uint256",  # totalPool
    "bool",
    "uint256",  # submitDeadline
    "uint256",  # payout10
    "uint256",  # remaining90
    "bool",
    "bytes32",  # youtubeUrlHash
    "bytes32",  # videoIdHash
    "bytes32",  # pinnedCodeHash
    "uint256",  # challengeWindowEnd
    "bool",
    "address",  # challenger
    "bytes32",  # reasonHash
    "bytes32",  # evidenceHash
    "bool",
)

GET_PROPOSAL = FunctionSpec("getProposal", ("uint256",), PROPOSAL_TUPLE)
GET_TOPIC = FunctionSpec("getTopic", ("uint256", "uint256"), ("address",))
OWNER = FunctionSpec("owner", (), ("address",))
STAKE_VOTE = FunctionSpec("stakeVote", ("uint256", "uint256", "uint256"))
FINALIZE_VOTING = FunctionSpec("finalizeVoting", ("uint256",))
CONFIRM_WINNER = FunctionSpec("confirmWinnerAndPay10", ("uint256",))
SUBMIT_DELIVERY = FunctionSpec("submitDelivery", ("uint256", "bytes32", "bytes32", "bytes32"))
EXPIRE_IF_NO_SUBMISSION = FunctionSpec("expireIfNoSubmission", ("uint256",))
CHALLENGE_DELIVERY = FunctionSpec("challengeDelivery", ("uint256", "bytes32", "bytes32"))
FINALIZE_DELIVERY = FunctionSpec("finalizeDelivery", ("uint256",))
RESOLVE_DISPUTE = FunctionSpec("resolveDispute", ("uint256", "bool"))
CREATE_PROPOSAL = FunctionSpec(
    "createProposal",
    ("address[]", "bytes32[]", "bytes32", "uint64", "uint64"),
    ("uint256",),
)
CREATOR_DEPOSIT = FunctionSpec("CREATOR_DEPOSIT", (), ("uint256",))
PAUSED = FunctionSpec("paused", (), ("bool",))
PAUSE = FunctionSpec("pause")
UNPAUSE = FunctionSpec("unpause")

ESCROW_EVENTS: tuple[EventSpec, ...] = (
    _event(
        "ProposalCreated",
        ("proposalId", "uint256", True),
        ("startTime", "uint64"),
        ("endTime", "uint64"),
        ("topicIds", "uint256[]"),
        ("topicOwners", "address[]"),
    ),
    _event(
        "Voted",
        ("voter", "address", True),
        ("proposalId", "uint256", True),
        ("topicId", "uint256", True),
        ("amount", "uint256"),
    ),
    _event(
        "VotingFinalized",
        ("proposalId", "uint256", True),
        ("winnerTopicId", "uint256"),
        ("totalPool", "uint256"),
    ),
    _event(
        "WinnerConfirmed",
        ("proposalId", "uint256", True),
        ("winnerTopicId", "uint256", True),
        ("winnerOwner", "address", True),
        ("payout10", "uint256"),
        ("submitDeadline", "uint256"),
    ),
    _event(
        "DeliverySubmitted",
        ("proposalId", "uint256", True),
        ("submitter", "address", True),
        ("youtubeUrlHash", "bytes32"),
        ("videoIdHash", "bytes32"),
        ("pinnedCodeHash", "bytes32"),
        ("challengeWindowEnd", "uint256"),
    ),
    _event(
        "DeliveryChallenged",
        ("proposalId", "uint256", True),
        ("challenger", "address", True),
        ("reasonHash", "bytes32"),
        ("evidenceHash", "bytes32"),
    ),
    _event(
        "DisputeResolved",
        ("proposalId", "uint256", True),
        ("resolver", "address", True),
        ("approved", "bool"),
    ),
    _event("Expired", ("proposalId", "uint256", True), ("amount", "uint256")),
)


def decode_bounty_proposal(proposal_id: int, data: bytes) -> BountyProposal:
    """Turn the raw ``getProposal`` return into a canonical snapshot.

    Deadlines the ledger has not set yet come back as zero; they are mapped
    to ``None`` so the lifecycle invariants hold by construction.
    """
    raw = GET_PROPOSAL.decode_output(data)
    status = BountyStatus(raw[3])
    challenger = None if is_zero_address(raw[16]) else raw[16]
    proposal = BountyProposal(
        id=proposal_id,
        status=status,
        start_time=raw[0],
        end_time=raw[1],
        topic_count=raw[2],
        winner_topic_id=raw[4] if status >= BountyStatus.VOTING_ENDED else None,
        submit_deadline=raw[7] if status >= BountyStatus.ACCEPTED and raw[7] else None,
        challenge_window_end=raw[14] if status >= BountyStatus.SUBMITTED and raw[14] else None,
        remaining_pool=raw[9],
        challenger=challenger,
        total_pool=raw[5],
        reason_hash="0x" + raw[17].hex() if challenger else None,
        evidence_hash="0x" + raw[18].hex() if challenger else None,
    )
    proposal.ensure_canonical()
    return proposal


# -- governor ----------------------------------------------------------------

STATE = FunctionSpec("state", ("uint256",), ("uint8",))
PROPOSAL_SNAPSHOT = FunctionSpec("proposalSnapshot", ("uint256",), ("uint256",))
PROPOSAL_DEADLINE = FunctionSpec("proposalDeadline", ("uint256",), ("uint256",))
PROPOSAL_VOTES = FunctionSpec("proposalVotes", ("uint256",), ("uint256", "uint256", "uint256"))
PROPOSAL_ETA = FunctionSpec("proposalEta", ("uint256",), ("uint256",))
QUORUM = FunctionSpec("quorum", ("uint256",), ("uint256",))
HAS_VOTED = FunctionSpec("hasVoted", ("uint256", "address"), ("bool",))
CAST_VOTE = FunctionSpec("castVote", ("uint256", "uint8"))
QUEUE = FunctionSpec("queue", ("address[]", "uint256[]", "bytes[]", "bytes32"))
EXECUTE = FunctionSpec("execute", ("address[]", "uint256[]", "bytes[]", "bytes32"))

GOVERNOR_PROPOSAL_CREATED = _event(
    "ProposalCreated",
    ("proposalId", "uint256"),
    ("proposer", "address"),
    ("targets", "address[]"),
    ("values", "uint256[]"),
    ("signatures", "string[]"),
    ("calldatas", "bytes[]"),
    ("voteStart", "uint256"),
    ("voteEnd", "uint256"),
    ("description", "string"),
)


# -- vote token (ERC-20 + ERC-5805) -----------------------------------------

ALLOWANCE = FunctionSpec("allowance", ("address", "address"), ("uint256",))
APPROVE = FunctionSpec("approve", ("address", "uint256"), ("bool",))
BALANCE_OF = FunctionSpec("balanceOf", ("address",), ("uint256",))
GET_VOTES = FunctionSpec("getVotes", ("address",), ("uint256",))
GET_PAST_VOTES = FunctionSpec("getPastVotes", ("address", "uint256"), ("uint256",))
DELEGATES = FunctionSpec("delegates", ("address",), ("address",))
DELEGATE = FunctionSpec("delegate", ("address",))


def decode_event(specs: Sequence[EventSpec], log: Mapping[str, Any]) -> ChainEvent | None:
    topics = log.get("topics") or []
    if not topics:
        return None
    head = str(topics[0]).lower()
    for spec in specs:
        if spec.topic == head:
            return spec.decode_log(log)
    return None
