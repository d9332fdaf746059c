from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass

from bounty_dao.chain.escrow_reader import EscrowReader
from bounty_dao.chain.governor_reader import GovernorReader
from bounty_dao.chain.log_fetcher import LogFetcher
from bounty_dao.chain.rpc_client import JsonRpcClient, RpcClientFactory
from bounty_dao.config import AppSettings, get_settings
from bounty_dao.domain.proposals import ProposalKind
from bounty_dao.domain.status import is_terminal_phase
from bounty_dao.observability.logging import configure_logging, get_logger
from bounty_dao.orchestration.session import EscrowSession, GovernanceSession
from bounty_dao.runtime.oracle import DEFAULT_POLL_INTERVAL_SECONDS, TemporalOracle


@dataclass(slots=True)
class ProposalWatcher:
    session: EscrowSession | GovernanceSession
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    async def run_once(self) -> bool:
        """Refresh once; returns False when the proposal reached a terminal phase."""
        logger = get_logger("proposal_watcher")
        view = await self.session.refresh()
        if view is None:
            return True
        terminal = view.proposal is not None and is_terminal_phase(view.proposal.phase)
        logger.info(
            "proposal_watch_cycle",
            kind=self.session.kind,
            proposal_id=str(view.proposal_id),
            generation=view.generation,
            allowed=sorted(name for name, verdict in view.actions.items() if verdict.allowed),
            error=view.error.kind.value if view.error is not None else None,
            terminal=terminal,
        )
        return not terminal

    async def run_forever(self) -> None:
        while await self.run_once():
            await asyncio.sleep(self.poll_interval_seconds)


def _proposal_kind_from_env() -> ProposalKind:
    raw_kind = os.environ.get("WATCH_PROPOSAL_KIND", ProposalKind.BOUNTY.value).strip().lower()
    try:
        return ProposalKind(raw_kind)
    except ValueError:
        return ProposalKind.BOUNTY


def _proposal_id_from_env() -> int:
    raw_id = os.environ.get("WATCH_PROPOSAL_ID", "0").strip()
    try:
        proposal_id = int(raw_id, 0)
    except ValueError:
        return 0
    return max(proposal_id, 0)


def _poll_interval_from_env(default: float = DEFAULT_POLL_INTERVAL_SECONDS) -> float:
    raw_interval = os.environ.get("WATCH_POLL_INTERVAL_SECONDS", str(default)).strip()
    try:
        interval = float(raw_interval)
    except ValueError:
        return default

    if interval <= 0:
        return default
    return interval


def _build_session(
    settings: AppSettings,
    client: JsonRpcClient,
    kind: ProposalKind,
    proposal_id: int,
    caller_address: str | None,
) -> EscrowSession | GovernanceSession:
    oracle = TemporalOracle(client, settings.time_poll_interval_seconds)
    if kind == ProposalKind.GOVERNANCE:
        reader = GovernorReader(
            client,
            settings.governor_address,
            settings.token_address,
            log_fetcher=LogFetcher(client, settings.log_chunk_size),
            start_block=settings.start_block,
        )
        return GovernanceSession(
            reader,
            oracle,
            proposal_id,
            caller_address=caller_address,
            block_time_estimate_seconds=settings.block_time_estimate_seconds,
        )
    return EscrowSession(
        EscrowReader(client, settings.escrow_address, settings.token_address),
        oracle,
        proposal_id,
        caller_address=caller_address,
        required_bond=settings.required_bond_wei,
        creator_deposit=settings.creator_deposit_wei,
    )


def _default_worker(client: JsonRpcClient | None = None) -> ProposalWatcher:
    settings = get_settings()
    client = client or RpcClientFactory(settings).create()
    caller_address = os.environ.get("WATCH_CALLER_ADDRESS", "").strip() or None
    session = _build_session(
        settings,
        client,
        _proposal_kind_from_env(),
        _proposal_id_from_env(),
        caller_address,
    )
    return ProposalWatcher(
        session=session,
        poll_interval_seconds=_poll_interval_from_env(settings.time_poll_interval_seconds),
    )


async def run_worker() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    async with RpcClientFactory(settings).create() as client:
        watcher = _default_worker(client)
        async with watcher.session:
            await watcher.run_forever()


if __name__ == "__main__":
    asyncio.run(run_worker())
