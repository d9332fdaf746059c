from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from itertools import chain
from typing import Any

CREATION_EVENT = "ProposalCreated"


@dataclass(slots=True, frozen=True)
class ChainEvent:
    name: str
    block_number: int
    log_index: int
    transaction_hash: str = ""
    args: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "block_number": self.block_number,
            "log_index": self.log_index,
            "transaction_hash": self.transaction_hash,
            "args": {key: _jsonable(value) for key, value in self.args.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _identity(event: ChainEvent) -> tuple[int, int, str, str]:
    return (event.block_number, event.log_index, event.transaction_hash.lower(), event.name)


def correlate(*streams: Iterable[ChainEvent]) -> list[ChainEvent]:
    """Merge event streams into one causally ordered trail.

    The same log may arrive through several streams (overlapping queries);
    it is kept once. Ordering is ``(block_number, log_index)``. Distinct logs
    that share both coordinates (a node bug, or streams from two nodes) fall
    back to transaction hash and name, so the trail never depends on the
    order the streams arrived in.
    """
    unique: dict[tuple[int, int, str, str], ChainEvent] = {}
    for event in chain.from_iterable(streams):
        unique.setdefault(_identity(event), event)
    return [unique[key] for key in sorted(unique)]


def find_creation_event(
    events: Iterable[ChainEvent],
    proposal_id: int,
    *,
    name: str = CREATION_EVENT,
) -> ChainEvent | None:
    """Locate the creation log for one proposal.

    The governor does not index the proposal id, so the whole range is
    fetched and filtered here. The earliest match wins if a node returns
    a duplicate.
    """
    matches = [
        event
        for event in correlate(events)
        if event.name == name and event.args.get("proposalId") == proposal_id
    ]
    return matches[0] if matches else None
