from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from bounty_dao.chain.rpc_client import RpcClientFactory
from bounty_dao.config import AppSettings, get_settings
from bounty_dao.runtime.oracle import TemporalOracle
from bounty_dao.types import Unavailable


@dataclass(slots=True, frozen=True)
class WatchHealth:
    chain_id: int
    rpc_url: str
    oracle: TemporalOracle


def build_health_app(settings: AppSettings, health: WatchHealth) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        async with health.oracle:
            yield

    app = FastAPI(title=f"{settings.app_name}-health", version="0.1.0", lifespan=lifespan)

    @app.get("/livez")
    async def livez() -> dict[str, str]:
        return {"status": "ok", "chain_id": str(health.chain_id)}

    @app.get("/readyz")
    async def readyz() -> dict[str, str]:
        clock = health.oracle.clock
        unavailable = isinstance(clock, Unavailable)
        return {
            "chain_id": str(health.chain_id),
            "rpc_url": health.rpc_url,
            "time_source_status": "unavailable" if unavailable else "ok",
            "block_number": "" if unavailable else str(clock.block_number),
            "chain_time": "" if unavailable else str(clock.timestamp),
            "polling_status": "running" if health.oracle.running else "stopped",
        }

    return app


def default_health_app() -> FastAPI:
    settings = get_settings()
    client = RpcClientFactory(settings).create()
    return build_health_app(
        settings,
        WatchHealth(
            chain_id=settings.chain_id,
            rpc_url=client.url,
            oracle=TemporalOracle(client, settings.time_poll_interval_seconds),
        ),
    )
