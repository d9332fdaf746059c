"""Intent payloads and the signer boundary.

Signing and broadcasting belong to an external wallet; this module only
builds the calldata for each action and describes the shape of the
collaborator that submits it.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from bounty_dao.chain import abi
from bounty_dao.domain.escrow_lifecycle import (
    CREATOR_DEPOSIT,
    REQUIRED_BOND,
    ContractAction,
    EscrowAction,
)
from bounty_dao.domain.governance_lifecycle import GovernanceAction
from bounty_dao.domain.proposals import GovernanceProposal, VoteSupport


class IntentErrorKind(StrEnum):
    REJECTED = "Rejected"
    REVERTED = "Reverted"
    TIMEOUT = "Timeout"


_REJECTION_MARKERS = ("user rejected", "user denied")
_TIMEOUT_MARKERS = ("timeout", "timed out")


def classify_failure(message: str) -> IntentErrorKind:
    normalized = message.lower()
    if any(marker in normalized for marker in _REJECTION_MARKERS):
        return IntentErrorKind.REJECTED
    if any(marker in normalized for marker in _TIMEOUT_MARKERS):
        return IntentErrorKind.TIMEOUT
    return IntentErrorKind.REVERTED


class IntentError(Exception):
    def __init__(self, kind: IntentErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @classmethod
    def from_message(cls, message: str) -> IntentError:
        return cls(classify_failure(message), message)


@dataclass(slots=True, frozen=True)
class Intent:
    kind: str
    to: str
    data: bytes
    value: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "to": self.to,
            "data": "0x" + self.data.hex(),
            "value": str(self.value),
        }


@dataclass(slots=True, frozen=True)
class TransactionHandle:
    transaction_hash: str


@dataclass(slots=True, frozen=True)
class Receipt:
    transaction_hash: str
    block_number: int
    succeeded: bool = True

    def as_dict(self) -> dict[str, Any]:
        return {
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "succeeded": self.succeeded,
        }


class IntentSubmitter(Protocol):
    async def submit_intent(self, intent: Intent) -> TransactionHandle:
        ...

    async def await_confirmation(self, handle: TransactionHandle) -> Receipt:
        ...


def _require(params: Mapping[str, Any], name: str) -> Any:
    if params.get(name) is None:
        raise ValueError(f"{name} is required")
    return params[name]


def build_escrow_intent(
    action: EscrowAction,
    *,
    escrow_address: str,
    token_address: str,
    proposal_id: int,
    params: Mapping[str, Any] | None = None,
) -> Intent:
    params = params or {}
    if action == EscrowAction.STAKE_VOTE:
        topic_id = int(_require(params, "topic_id"))
        amount = int(_require(params, "amount"))
        if amount <= 0:
            raise ValueError("amount must be positive")
        data = abi.STAKE_VOTE.encode_call(proposal_id, topic_id, amount)
    elif action == EscrowAction.FINALIZE_VOTING:
        data = abi.FINALIZE_VOTING.encode_call(proposal_id)
    elif action == EscrowAction.CONFIRM_WINNER:
        data = abi.CONFIRM_WINNER.encode_call(proposal_id)
    elif action == EscrowAction.SUBMIT_DELIVERY:
        data = abi.SUBMIT_DELIVERY.encode_call(
            proposal_id,
            abi.hash_text(str(params.get("youtube_url", ""))),
            abi.hash_text(str(params.get("video_id", ""))),
            abi.hash_text(str(params.get("pinned_code", ""))),
        )
    elif action == EscrowAction.EXPIRE_IF_NO_SUBMISSION:
        data = abi.EXPIRE_IF_NO_SUBMISSION.encode_call(proposal_id)
    elif action == EscrowAction.APPROVE_BOND:
        amount = int(params.get("amount") or REQUIRED_BOND)
        return Intent(
            kind=action.value,
            to=token_address,
            data=abi.APPROVE.encode_call(escrow_address, amount),
        )
    elif action == EscrowAction.CHALLENGE_DELIVERY:
        data = abi.CHALLENGE_DELIVERY.encode_call(
            proposal_id,
            abi.hash_text(str(params.get("reason", ""))),
            abi.hash_text(str(params.get("evidence", ""))),
        )
    elif action == EscrowAction.FINALIZE_DELIVERY:
        data = abi.FINALIZE_DELIVERY.encode_call(proposal_id)
    elif action == EscrowAction.RESOLVE_DISPUTE:
        data = abi.RESOLVE_DISPUTE.encode_call(proposal_id, bool(_require(params, "approve")))
    else:
        raise ValueError(f"unsupported escrow action: {action}")
    return Intent(kind=action.value, to=escrow_address, data=data)


MAX_TOPICS = 5


def _create_proposal_call(params: Mapping[str, Any]) -> bytes:
    owners = list(_require(params, "topic_owners"))
    contents = list(params.get("topic_contents") or [])
    if not 1 <= len(owners) <= MAX_TOPICS:
        raise ValueError(f"a proposal needs between 1 and {MAX_TOPICS} topics")
    if len(contents) != len(owners):
        raise ValueError("every topic owner needs topic content")
    start_time = int(_require(params, "start_time"))
    end_time = int(_require(params, "end_time"))
    if start_time <= 0 or end_time <= start_time:
        raise ValueError("voting window must satisfy 0 < start_time < end_time")
    return abi.CREATE_PROPOSAL.encode_call(
        owners,
        [abi.hash_text(str(content)) for content in contents],
        abi.hash_text(str(params.get("metadata", ""))),
        start_time,
        end_time,
    )


def build_contract_intent(
    action: ContractAction,
    *,
    escrow_address: str,
    token_address: str,
    params: Mapping[str, Any] | None = None,
) -> Intent:
    params = params or {}
    if action == ContractAction.CREATE_PROPOSAL:
        data = _create_proposal_call(params)
    elif action == ContractAction.APPROVE_DEPOSIT:
        amount = int(params.get("amount") or CREATOR_DEPOSIT)
        return Intent(
            kind=action.value,
            to=token_address,
            data=abi.APPROVE.encode_call(escrow_address, amount),
        )
    elif action == ContractAction.PAUSE:
        data = abi.PAUSE.encode_call()
    elif action == ContractAction.UNPAUSE:
        data = abi.UNPAUSE.encode_call()
    else:
        raise ValueError(f"unsupported escrow action: {action}")
    return Intent(kind=action.value, to=escrow_address, data=data)


def build_governance_intent(
    action: GovernanceAction,
    *,
    governor_address: str,
    token_address: str,
    proposal: GovernanceProposal | None = None,
    params: Mapping[str, Any] | None = None,
) -> Intent:
    params = params or {}
    if action == GovernanceAction.DELEGATE:
        delegatee = str(_require(params, "delegatee"))
        return Intent(kind=action.value, to=token_address, data=abi.DELEGATE.encode_call(delegatee))

    if proposal is None:
        raise ValueError(f"{action.value} requires a governance proposal")
    if action == GovernanceAction.CAST_VOTE:
        support = VoteSupport(int(_require(params, "support")))
        data = abi.CAST_VOTE.encode_call(proposal.id, int(support))
    elif action in (GovernanceAction.QUEUE, GovernanceAction.EXECUTE):
        spec = abi.QUEUE if action == GovernanceAction.QUEUE else abi.EXECUTE
        data = spec.encode_call(
            list(proposal.targets),
            list(proposal.values),
            list(proposal.calldatas),
            abi.description_hash(proposal.description),
        )
    else:
        raise ValueError(f"unsupported governance action: {action}")
    return Intent(kind=action.value, to=governor_address, data=data)
