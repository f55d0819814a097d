"""JSON API endpoints for dashboard data: status, market, account, decision, logs, settings."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from aegis.dashboard.serialize import settings_view, to_jsonable

log = structlog.get_logger(__name__)

router = APIRouter()


def require_session(request: Request) -> None:
    """Dependency: reject privileged routes until the operator has logged in."""
    if not request.app.state.session.is_authenticated:
        raise HTTPException(status_code=401, detail="Login required")


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    """Agent status summary (public: drives the login screen header too)."""
    return JSONResponse(content=request.app.state.orchestrator.get_status())


@router.get("/market")
async def get_market(request: Request) -> JSONResponse:
    """Latest MarketSnapshot with its price history, or null before the first tick."""
    snapshot = request.app.state.market_poller.snapshot
    return JSONResponse(content=to_jsonable(snapshot))


@router.get("/account", dependencies=[Depends(require_session)])
async def get_account(request: Request) -> JSONResponse:
    """Latest AccountState plus the exchange connection status."""
    synchronizer = request.app.state.synchronizer
    return JSONResponse(
        content={
            "status": synchronizer.status.value,
            "account": to_jsonable(synchronizer.state),
        }
    )


@router.get("/decision", dependencies=[Depends(require_session)])
async def get_decision(request: Request) -> JSONResponse:
    """Most recent oracle Decision."""
    scheduler = request.app.state.scheduler
    return JSONResponse(
        content={
            "analyzing": scheduler.is_analyzing,
            "decision": to_jsonable(scheduler.decision),
        }
    )


@router.get("/logs", dependencies=[Depends(require_session)])
async def get_logs(request: Request) -> JSONResponse:
    """Event Ledger entries, newest first."""
    return JSONResponse(content=to_jsonable(request.app.state.ledger.entries()))


@router.get("/settings", dependencies=[Depends(require_session)])
async def get_settings(request: Request) -> JSONResponse:
    """Current settings with secrets masked."""
    return JSONResponse(content=settings_view(request.app.state.store.settings))
