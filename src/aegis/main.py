"""Entry point for the Aegis trading agent.

Wires all components together, optionally embeds the FastAPI dashboard,
and starts the orchestrator. When the dashboard is enabled (default), the
agent and dashboard share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. EventLedger (operator activity log)
2. SettingsRepository + SettingsStore (persisted settings)
3. Session (operator login flag)
4. ExchangeClient (MexcClient)
5. DecisionOracle (LLMDecisionOracle)
6. MarketPoller (ticker cadence)
7. AccountSynchronizer (account cadence)
8. TradeExecutor (order dispatch)
9. DecisionScheduler (auto-trading cadence)
10. CloudSyncClient (cloud status probe)
11. Orchestrator (lifecycle and change propagation)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from aegis.account.synchronizer import AccountSynchronizer
from aegis.cloud import CloudSyncClient
from aegis.config import AppSettings
from aegis.decision.scheduler import DecisionScheduler
from aegis.exchange.mexc_client import MexcClient
from aegis.execution.executor import TradeExecutor
from aegis.ledger import EventLedger
from aegis.logging import get_logger, setup_logging
from aegis.market.poller import MarketPoller
from aegis.oracle.llm_oracle import LLMDecisionOracle
from aegis.orchestrator import Orchestrator
from aegis.persistence import SettingsRepository
from aegis.store import Session, SettingsStore


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all agent components from settings.

    Note: Does NOT open the settings database or connect to the exchange --
    that happens in _open_resources().
    """
    polling = settings.polling

    ledger = EventLedger()
    repository = SettingsRepository(settings.storage.db_path)
    store = SettingsStore(settings, repository=repository, ledger=ledger)
    session = Session(store, ledger=ledger)

    exchange_client = MexcClient()
    model_overrides = (
        {settings.oracle.provider: settings.oracle.model} if settings.oracle.model else {}
    )
    oracle = LLMDecisionOracle(model_overrides=model_overrides, timeout=polling.call_timeout)

    market_poller = MarketPoller(
        exchange_client,
        store,
        poll_interval=polling.market_interval,
        call_timeout=polling.call_timeout,
    )
    synchronizer = AccountSynchronizer(
        exchange_client,
        store,
        session,
        ledger,
        sync_interval=polling.account_interval,
        call_timeout=polling.call_timeout,
    )
    executor = TradeExecutor(
        exchange_client, synchronizer, ledger, call_timeout=polling.call_timeout
    )
    scheduler = DecisionScheduler(
        oracle=oracle,
        market_poller=market_poller,
        synchronizer=synchronizer,
        executor=executor,
        store=store,
        session=session,
        ledger=ledger,
        call_timeout=polling.call_timeout,
    )
    cloud = CloudSyncClient(ledger)

    orchestrator = Orchestrator(
        store=store,
        session=session,
        ledger=ledger,
        market_poller=market_poller,
        synchronizer=synchronizer,
        scheduler=scheduler,
        cloud=cloud,
    )

    return {
        "ledger": ledger,
        "repository": repository,
        "store": store,
        "session": session,
        "exchange_client": exchange_client,
        "oracle": oracle,
        "market_poller": market_poller,
        "synchronizer": synchronizer,
        "executor": executor,
        "scheduler": scheduler,
        "cloud": cloud,
        "orchestrator": orchestrator,
    }


async def _open_resources(components: dict[str, Any]) -> None:
    """Open the settings database, apply saved settings, connect to the exchange."""
    logger = get_logger("aegis.main")
    await components["repository"].connect()
    if await components["store"].load():
        logger.info("saved_settings_applied")
    await components["exchange_client"].connect()


async def _close_resources(components: dict[str, Any]) -> None:
    await components["exchange_client"].close()
    await components["oracle"].close()
    await components["cloud"].close()
    await components["repository"].close()


def _setup_signal_handlers(orchestrator: Orchestrator) -> None:
    """Register SIGINT/SIGTERM for graceful stop. Must be called inside the running loop."""
    logger = get_logger("aegis.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(orchestrator.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage agent component lifecycle within the FastAPI application.

    On startup: stores components on app.state, opens resources, starts the
    orchestrator and the dashboard update loop.

    On shutdown: cancels the update loop, stops the orchestrator, closes
    resources.
    """
    from aegis.dashboard.update_loop import dashboard_update_loop

    logger = get_logger("aegis.main")
    settings: AppSettings = app.state.settings
    components = app.state.components

    for name in (
        "orchestrator",
        "store",
        "session",
        "ledger",
        "market_poller",
        "synchronizer",
        "scheduler",
        "cloud",
    ):
        setattr(app.state, name, components[name])
    app.state.update_interval = settings.dashboard.update_interval
    app.state.persist_toggles = True

    await _open_resources(components)
    await components["orchestrator"].start()

    update_task = asyncio.create_task(dashboard_update_loop(app))

    logger.info("lifespan_started", live_mode=settings.trading.is_live_mode)

    yield

    update_task.cancel()
    try:
        await update_task
    except asyncio.CancelledError:
        pass

    await components["orchestrator"].stop()
    await _close_resources(components)

    logger.info("aegis_stopped")


async def run() -> None:
    """Run the agent.

    When the dashboard is enabled (DASHBOARD_ENABLED=true, the default) the
    agent runs inside uvicorn's event loop, managed by the lifespan. When
    disabled, the agent runs headless until SIGINT/SIGTERM.
    """
    settings = AppSettings()

    setup_logging(settings.log_level)
    logger = get_logger("aegis.main")

    components = _build_components(settings)

    if settings.dashboard.enabled:
        from aegis.dashboard.app import create_dashboard_app

        app = create_dashboard_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_dashboard",
            host=settings.dashboard.host,
            port=settings.dashboard.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.dashboard.host,
            port=settings.dashboard.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        orchestrator: Orchestrator = components["orchestrator"]
        _setup_signal_handlers(orchestrator)

        logger.info(
            "starting_without_dashboard",
            symbol=settings.trading.symbol,
            live_mode=settings.trading.is_live_mode,
        )
        # Headless mode has no login screen: authenticate with the configured operator.
        components["session"].login(
            settings.session.username, settings.session.password.get_secret_value()
        )

        try:
            await _open_resources(components)
            await orchestrator.run()
        finally:
            await _close_resources(components)
            logger.info("aegis_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
