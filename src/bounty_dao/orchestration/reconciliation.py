from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from bounty_dao.chain.intents import (
    Intent,
    IntentError,
    IntentErrorKind,
    IntentSubmitter,
    Receipt,
)
from bounty_dao.domain.action_gate import DenyReason, Verdict
from bounty_dao.observability.logging import get_logger


class IntentStatus(StrEnum):
    EXECUTED = "executed"
    DENIED = "denied"
    REJECTED = "rejected"
    REVERTED = "reverted"
    TIMEOUT = "timeout"


_FAILURE_STATUS: dict[IntentErrorKind, tuple[IntentStatus, DenyReason]] = {
    IntentErrorKind.REJECTED: (IntentStatus.REJECTED, DenyReason.REJECTED),
    IntentErrorKind.REVERTED: (IntentStatus.REVERTED, DenyReason.REVERTED),
    IntentErrorKind.TIMEOUT: (IntentStatus.TIMEOUT, DenyReason.UNREACHABLE),
}


@dataclass(slots=True, frozen=True)
class IntentOutcome:
    status: IntentStatus
    intent_kind: str
    reason: DenyReason | None = None
    message: str = ""
    receipt: Receipt | None = None
    refreshed: bool = False

    @property
    def submitted(self) -> bool:
        return self.status != IntentStatus.DENIED

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "intent_kind": self.intent_kind,
            "reason": self.reason.value if self.reason is not None else None,
            "message": self.message,
            "receipt": self.receipt.as_dict() if self.receipt is not None else None,
            "refreshed": self.refreshed,
        }


async def run_intent(
    verdict: Verdict,
    intent: Intent,
    submitter: IntentSubmitter,
    refresh: Callable[[], Awaitable[Any]],
) -> IntentOutcome:
    """Submit one gated intent and reconcile local state afterwards.

    A denied verdict never reaches the submitter. Once something was
    submitted, the full snapshot batch is refreshed whatever the result,
    because even a failed transaction may have been partially observed.
    """
    logger = get_logger("intent_reconciliation")
    if not verdict.allowed:
        logger.info("intent_denied", intent_kind=intent.kind, reason=str(verdict.reason))
        return IntentOutcome(
            status=IntentStatus.DENIED,
            intent_kind=intent.kind,
            reason=verdict.reason,
        )

    try:
        handle = await submitter.submit_intent(intent)
        receipt = await submitter.await_confirmation(handle)
    except IntentError as exc:
        status, reason = _FAILURE_STATUS[exc.kind]
        outcome = IntentOutcome(
            status=status,
            intent_kind=intent.kind,
            reason=reason,
            message=exc.message,
        )
    else:
        if receipt.succeeded:
            outcome = IntentOutcome(
                status=IntentStatus.EXECUTED,
                intent_kind=intent.kind,
                receipt=receipt,
            )
        else:
            outcome = IntentOutcome(
                status=IntentStatus.REVERTED,
                intent_kind=intent.kind,
                reason=DenyReason.REVERTED,
                message=f"transaction {receipt.transaction_hash} reverted",
                receipt=receipt,
            )

    await refresh()
    logger.info(
        "intent_reconciled",
        intent_kind=intent.kind,
        status=outcome.status.value,
        reason=outcome.reason.value if outcome.reason is not None else None,
    )
    return replace(outcome, refreshed=True)
