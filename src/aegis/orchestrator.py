"""Agent orchestrator -- wires the three timed tasks and reacts to changes.

Owns the lifecycle of:
  - MarketPoller        (fixed cadence, ticker + price history)
  - AccountSynchronizer (fixed cadence, credential and session gated)
  - DecisionScheduler   (minutes cadence, only while auto-trading)

and translates settings and session changes into task state changes:
  - credentials, symbol or session changed -> synchronizer timer restarts
  - auto-trading toggled / interval changed -> scheduler (de)activates or re-arms
  - cloud endpoint changed                  -> cloud probe re-runs

Everything else (symbol for the poller, leverage, live mode, provider)
is read from the settings snapshot at the start of each task's next cycle.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from aegis.config import AppSettings
from aegis.logging import get_logger

if TYPE_CHECKING:
    from aegis.account.synchronizer import AccountSynchronizer
    from aegis.cloud import CloudSyncClient
    from aegis.decision.scheduler import DecisionScheduler
    from aegis.ledger import EventLedger
    from aegis.market.poller import MarketPoller
    from aegis.models import Decision
    from aegis.store import Session, SettingsStore

logger = get_logger(__name__)


class Orchestrator:
    """Top-level agent: starts, stops and coordinates all background tasks.

    Args:
        store: Settings store.
        session: Operator session.
        ledger: Event Ledger.
        market_poller: Ticker polling task.
        synchronizer: Account sync task.
        scheduler: Decision cycle scheduler.
        cloud: Optional cloud-sync probe.
    """

    def __init__(
        self,
        store: SettingsStore,
        session: Session,
        ledger: EventLedger,
        market_poller: MarketPoller,
        synchronizer: AccountSynchronizer,
        scheduler: DecisionScheduler,
        cloud: CloudSyncClient | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._ledger = ledger
        self._market_poller = market_poller
        self._synchronizer = synchronizer
        self._scheduler = scheduler
        self._cloud = cloud
        self._running = False
        self._stopped = asyncio.Event()
        self._background: set[asyncio.Task] = set()  # type: ignore[type-arg]

        store.add_listener(self._on_settings_changed)
        session.add_listener(self._on_session_changed)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def settings(self) -> AppSettings:
        return self._store.settings

    async def start(self) -> None:
        """Start all tasks according to the current settings and session."""
        if self._running:
            logger.info("orchestrator_already_running")
            return
        settings = self._store.settings
        logger.info(
            "orchestrator_starting",
            symbol=settings.trading.symbol,
            live_mode=settings.trading.is_live_mode,
            auto_trading=settings.trading.is_auto_trading,
        )
        self._running = True
        self._stopped.clear()
        await self._market_poller.start()
        await self._synchronizer.start()
        self._scheduler.apply(settings)
        self._check_cloud()

    async def run(self) -> None:
        """Start and block until stop() is called."""
        await self.start()
        await self._stopped.wait()

    async def stop(self) -> None:
        """Stop all tasks. An in-flight decision cycle is allowed to finish."""
        if not self._running:
            return
        logger.info("orchestrator_stopping_gracefully")
        self._running = False
        await self._scheduler.stop()
        await self._synchronizer.stop()
        await self._market_poller.stop()
        for task in list(self._background):
            task.cancel()
        self._stopped.set()
        logger.info("orchestrator_stopped")

    async def run_cycle_now(self) -> Decision | None:
        """Manual "analyze now" trigger, subject to the scheduler's overlap guard."""
        return await self._scheduler.run_cycle()

    def set_auto_trading(self, enabled: bool) -> AppSettings:
        """Toggle auto-trading; the scheduler reacts through the settings listener."""
        return self._store.update(trading={"is_auto_trading": enabled})

    def _on_settings_changed(self, old: AppSettings, new: AppSettings) -> None:
        if not self._running:
            return
        if (
            old.exchange != new.exchange
            or old.trading.symbol != new.trading.symbol
        ):
            logger.info("account_sync_inputs_changed")
            self._synchronizer.restart()
        self._scheduler.apply(new)
        if old.cloud != new.cloud:
            self._check_cloud()

    def _on_session_changed(self, authenticated: bool) -> None:
        if self._running:
            self._synchronizer.restart()

    def _check_cloud(self) -> None:
        if self._cloud is None:
            return
        task = asyncio.create_task(self._cloud.check(self._store.settings.cloud))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def get_status(self) -> dict[str, Any]:
        """Return a JSON-friendly summary of the agent state."""
        settings = self._store.settings
        decision = self._scheduler.decision
        market = self._market_poller.snapshot
        return {
            "running": self._running,
            "authenticated": self._session.is_authenticated,
            "symbol": settings.trading.symbol,
            "mode": "live" if settings.trading.is_live_mode else "simulation",
            "auto_trading": settings.trading.is_auto_trading,
            "interval_minutes": settings.trading.interval_minutes,
            "analyzing": self._scheduler.is_analyzing,
            "price": str(market.price) if market is not None else None,
            "exchange_status": self._synchronizer.status.value,
            "cloud_status": (
                self._cloud.status.value if self._cloud is not None else "DISCONNECTED"
            ),
            "last_decision": (
                {
                    "action": decision.action.value,
                    "confidence": decision.confidence,
                    "reason": decision.reason,
                    "decided_at": decision.decided_at,
                }
                if decision is not None
                else None
            ),
        }
