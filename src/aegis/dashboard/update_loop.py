"""Periodic WebSocket update loop for real-time dashboard refresh.

Builds one JSON payload from the latest published snapshots and broadcasts
it to every connected client. Reads only: it never blocks a producer.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import FastAPI

from aegis.dashboard.serialize import to_jsonable

log = structlog.get_logger(__name__)


def build_payload(app: FastAPI) -> dict[str, Any]:
    """Gather the current dashboard state from app.state components."""
    state = app.state
    payload: dict[str, Any] = {
        "status": state.orchestrator.get_status(),
        "market": to_jsonable(state.market_poller.snapshot),
    }
    # Account data and logs are privileged views.
    if state.session.is_authenticated:
        payload["account"] = to_jsonable(state.synchronizer.state)
        payload["logs"] = to_jsonable(state.ledger.entries())
    return payload


async def dashboard_update_loop(app: FastAPI) -> None:
    """Periodically broadcast the dashboard payload via WebSocket.

    Runs until the application shuts down.
    """
    update_interval = getattr(app.state, "update_interval", 5)

    log.info("dashboard_update_loop_started", interval=update_interval)

    while True:
        try:
            await asyncio.sleep(update_interval)

            hub = app.state.hub
            if not hub.connections:
                continue

            await hub.broadcast(build_payload(app))

        except asyncio.CancelledError:
            log.info("dashboard_update_loop_cancelled")
            break
        except Exception:
            log.warning("dashboard_update_loop_error", exc_info=True)
            # Continue loop on error -- don't crash the update loop
            await asyncio.sleep(1)
