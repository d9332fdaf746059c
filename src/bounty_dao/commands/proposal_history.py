from __future__ import annotations

import asyncio
from argparse import Namespace

from bounty_dao.chain import abi
from bounty_dao.chain.addresses import normalize_address
from bounty_dao.chain.log_fetcher import EventBatch, EventFilter, LogFetcher
from bounty_dao.commands import common
from bounty_dao.config import AppSettings
from bounty_dao.domain.events import find_creation_event
from bounty_dao.domain.proposals import ProposalKind
from bounty_dao.types import CommandResult, CommandStatus

COMMAND = "proposal-history"


async def _fetch(settings: AppSettings, event_filter: EventFilter) -> EventBatch:
    async with common.build_client(settings) as client:
        return await LogFetcher(client, settings.log_chunk_size).fetch_events(event_filter)


def _event_filter(kind: ProposalKind, settings: AppSettings, proposal_id: int) -> EventFilter:
    if kind == ProposalKind.GOVERNANCE:
        # The governor does not index the id; it is matched after decoding.
        return EventFilter(
            address=normalize_address(settings.governor_address, field_name="governor_address"),
            events=(abi.GOVERNOR_PROPOSAL_CREATED,),
            from_block=settings.start_block,
        )
    return EventFilter(
        address=normalize_address(settings.escrow_address, field_name="escrow_address"),
        events=abi.ESCROW_EVENTS,
        from_block=settings.start_block,
        arg_filters={"proposalId": proposal_id},
    )


def run_proposal_history(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        kind = ProposalKind(common.normalized_string(getattr(args, "kind", "bounty")) or "bounty")
        proposal_id = common.parse_amount(
            getattr(args, "proposal_id", None), field_name="proposal_id"
        )
        event_filter = _event_filter(kind, settings, proposal_id)
    except ValueError as exc:
        return common.failed(COMMAND, str(exc))

    batch = asyncio.run(_fetch(settings, event_filter))
    if batch.error is not None:
        return common.failed(COMMAND, batch.error.message, **batch.as_dict())

    events = list(batch.events)
    if kind == ProposalKind.GOVERNANCE:
        creation = find_creation_event(events, proposal_id)
        events = [creation] if creation is not None else []

    return CommandResult(
        command=COMMAND,
        status=CommandStatus.EXECUTED,
        details={
            "kind": kind.value,
            "proposal_id": str(proposal_id),
            "events": [event.as_dict() for event in events],
            "failed_chunks": [chunk.as_dict() for chunk in batch.failed_chunks],
            "partial": batch.partial,
        },
    )
