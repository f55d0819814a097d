"""FastAPI dashboard application factory with JSON routes and WebSocket hub."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from aegis.dashboard.routes import actions, api, ws
from aegis.dashboard.routes.ws import DashboardHub


def create_dashboard_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI dashboard application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        Configured FastAPI application with WebSocket hub and routes.
        Components (orchestrator, store, session, ledger, ...) are attached
        to ``app.state`` by the caller.
    """
    app = FastAPI(
        title="Aegis Trading Agent",
        lifespan=lifespan,
    )

    app.state.hub = DashboardHub()

    app.include_router(api.router, prefix="/api")
    app.include_router(actions.router, prefix="/actions")
    app.include_router(ws.router)

    return app
