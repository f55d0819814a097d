"""POST endpoints for operator actions: login, settings, auto-trading, logs."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from aegis.dashboard.routes.api import require_session
from aegis.dashboard.serialize import settings_view, to_jsonable
from aegis.exceptions import AuthenticationError, ConfigurationError

log = structlog.get_logger(__name__)

router = APIRouter()


class LoginForm(BaseModel):
    username: str
    password: str


class AutoTradingForm(BaseModel):
    enabled: bool


class SettingsForm(BaseModel):
    exchange: dict[str, Any] | None = None
    oracle: dict[str, Any] | None = None
    trading: dict[str, Any] | None = None
    cloud: dict[str, Any] | None = None


@router.post("/login")
async def login(form: LoginForm, request: Request) -> JSONResponse:
    try:
        request.app.state.session.login(form.username, form.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return JSONResponse(content={"authenticated": True})


@router.post("/logout")
async def logout(request: Request) -> JSONResponse:
    request.app.state.session.logout()
    return JSONResponse(content={"authenticated": False})


@router.post("/settings", dependencies=[Depends(require_session)])
async def update_settings(form: SettingsForm, request: Request) -> JSONResponse:
    """Apply settings changes; they take effect on each task's next cycle."""
    store = request.app.state.store
    changes = {k: v for k, v in form.model_dump().items() if v}
    try:
        settings = store.update(**changes)
    except ConfigurationError as e:
        log.error("settings_update_rejected", error=str(e))
        raise HTTPException(status_code=422, detail=str(e)) from e
    log.info("settings_updated_via_dashboard", groups=sorted(changes))
    return JSONResponse(content=settings_view(settings))


@router.post("/settings/save", dependencies=[Depends(require_session)])
async def save_settings(request: Request) -> JSONResponse:
    """Persist the current settings under the versioned storage key."""
    try:
        await request.app.state.store.save()
    except ConfigurationError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return JSONResponse(content={"saved": True})


@router.post("/auto-trading", dependencies=[Depends(require_session)])
async def set_auto_trading(form: AutoTradingForm, request: Request) -> JSONResponse:
    """Start/stop the bot. The toggle is persisted immediately when storage is configured."""
    orchestrator = request.app.state.orchestrator
    orchestrator.set_auto_trading(form.enabled)
    if getattr(request.app.state, "persist_toggles", False):
        await request.app.state.store.save()
    log.info("auto_trading_toggled_via_dashboard", enabled=form.enabled)
    return JSONResponse(content=orchestrator.get_status())


@router.post("/cycle", dependencies=[Depends(require_session)])
async def run_cycle(request: Request) -> JSONResponse:
    """Run one decision cycle now (skipped if one is already in flight)."""
    decision = await request.app.state.orchestrator.run_cycle_now()
    return JSONResponse(content={"decision": to_jsonable(decision)})


@router.post("/account/refresh", dependencies=[Depends(require_session)])
async def refresh_account(request: Request) -> JSONResponse:
    synchronizer = request.app.state.synchronizer
    await synchronizer.request_refresh()
    return JSONResponse(content={"status": synchronizer.status.value})


@router.post("/logs/clear", dependencies=[Depends(require_session)])
async def clear_logs(request: Request) -> JSONResponse:
    request.app.state.ledger.clear()
    return JSONResponse(content={"cleared": True})


@router.post("/cloud/check", dependencies=[Depends(require_session)])
async def check_cloud(request: Request) -> JSONResponse:
    cloud = request.app.state.cloud
    status = await cloud.check(request.app.state.store.settings.cloud)
    return JSONResponse(content={"status": status.value})
