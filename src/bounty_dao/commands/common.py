"""Helpers shared by the command handlers."""
from __future__ import annotations

from argparse import Namespace
from collections.abc import Iterable
from enum import IntEnum, StrEnum
from typing import Any, TypeVar

from bounty_dao.chain.addresses import normalize_address
from bounty_dao.chain.errors import ChainRpcError
from bounty_dao.chain.rpc_client import JsonRpcClient, RpcClientFactory
from bounty_dao.config import AppSettings
from bounty_dao.domain.action_gate import CallerContext, DenyReason, Verdict
from bounty_dao.types import UNAVAILABLE, CommandResult, CommandStatus, Unavailable

CodeEnum = TypeVar("CodeEnum", bound=IntEnum)


def build_client(settings: AppSettings) -> JsonRpcClient:
    return RpcClientFactory(settings).create()


def failed(command: str, error: str, **details: Any) -> CommandResult:
    return CommandResult(
        command=command,
        status=CommandStatus.FAILED,
        details={"error": error, **details},
    )


def normalized_string(raw_value: object) -> str:
    if raw_value is None:
        return ""
    return str(raw_value).strip()


def parse_code(enum_type: type[CodeEnum], raw_value: object, *, field_name: str) -> CodeEnum:
    """Accept a lifecycle code either by name (any case) or by number."""
    candidate = normalized_string(raw_value)
    if not candidate:
        raise ValueError(f"{field_name} is required")
    if candidate.lstrip("-").isdigit():
        try:
            return enum_type(int(candidate))
        except ValueError as exc:
            raise ValueError(f"{field_name} {candidate} is out of range") from exc

    lookup = {member.name.replace("_", "").lower(): member for member in enum_type}
    member = lookup.get(candidate.replace("_", "").replace("-", "").lower())
    if member is None:
        choices = ", ".join(member.name for member in enum_type)
        raise ValueError(f"{field_name} must be one of {choices}")
    return member


def parse_amount(raw_value: object, *, field_name: str, default: int = 0) -> int:
    candidate = normalized_string(raw_value)
    if not candidate:
        return default
    try:
        amount = int(candidate, 0)
    except ValueError as exc:
        raise ValueError(f"{field_name} must be an integer") from exc
    if amount < 0:
        raise ValueError(f"{field_name} must be non-negative")
    return amount


def optional_int(raw_value: object, *, field_name: str) -> int | None:
    if raw_value is None or normalized_string(raw_value) == "":
        return None
    return parse_amount(raw_value, field_name=field_name)


def time_or_unavailable(raw_value: object, *, field_name: str) -> int | Unavailable:
    value = optional_int(raw_value, field_name=field_name)
    return UNAVAILABLE if value is None else value


def caller_from_args(args: Namespace, contract_address: str | None) -> CallerContext | None:
    """Caller context from CLI flags; a missing contract address is not checked."""
    raw_caller = normalized_string(getattr(args, "caller", ""))
    if not raw_caller:
        return None
    return CallerContext(
        address=normalize_address(raw_caller, field_name="caller"),
        is_admin=bool(getattr(args, "admin", False)),
        network_matches=not bool(getattr(args, "network_mismatch", False)),
        contract_address_valid=contract_address is None or _is_valid_contract(contract_address),
    )


def _is_valid_contract(raw_value: str) -> bool:
    try:
        normalize_address(raw_value, field_name="contract")
    except ValueError:
        return False
    return True


def verdict_status(allowed: bool) -> CommandStatus:
    return CommandStatus.ALLOWED if allowed else CommandStatus.DENIED


async def network_matches(client: JsonRpcClient, expected_chain_id: int) -> bool:
    try:
        chain_id = await client.chain_id()
    except ChainRpcError:
        # Unknown is not a mismatch; the reads that follow surface the outage.
        return True
    return chain_id == expected_chain_id


def denied_for_address(command: str, error: str, actions: Iterable[StrEnum]) -> CommandResult:
    return CommandResult(
        command=command,
        status=CommandStatus.DENIED,
        details={
            "error": error,
            "actions": {
                action.value: Verdict.deny(DenyReason.INVALID_ADDRESS).as_dict()
                for action in actions
            },
        },
    )
