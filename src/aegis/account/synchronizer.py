"""Account synchronizer -- credential-gated, fixed-cadence account refresh.

Keeps AccountState (balances, positions, open orders, trade history) in
step with the exchange. Each successful call replaces the whole state in a
single reference swap; a failed call leaves the previous state untouched.

The cadence restarts whenever the session or the exchange credentials
change, and the Trade Executor can force an out-of-band refresh that is
never starved by the regular timer. A run still in flight when the
cadence restarts finishes, but its result is discarded.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from aegis.logging import get_logger
from aegis.models import AccountState, ConnectionStatus

if TYPE_CHECKING:
    from aegis.config import AppSettings
    from aegis.exchange.client import ExchangeClient
    from aegis.ledger import EventLedger
    from aegis.store import Session, SettingsStore

logger = get_logger(__name__)


class AccountSynchronizer:
    """Single writer of AccountState and of the exchange ConnectionStatus.

    Sync runs never overlap: a request arriving while one is in flight is
    coalesced. A forced request arriving mid-flight schedules exactly one
    follow-up run so that it observes whatever was just submitted.

    Args:
        exchange: Exchange client for the authenticated account call.
        store: Settings store (credentials and symbol are read per run).
        session: Operator session; an unauthenticated session disables syncing.
        ledger: Event Ledger for SUCCESS/ERROR entries.
        sync_interval: Seconds between regular runs.
        call_timeout: Deadline for one account fetch.
    """

    def __init__(
        self,
        exchange: ExchangeClient,
        store: SettingsStore,
        session: Session,
        ledger: EventLedger,
        sync_interval: float = 30.0,
        call_timeout: float = 20.0,
    ) -> None:
        self._exchange = exchange
        self._store = store
        self._session = session
        self._ledger = ledger
        self._sync_interval = sync_interval
        self._call_timeout = call_timeout
        self._state = AccountState()
        self._status = ConnectionStatus.DISCONNECTED
        self._enabled = False
        self._loop_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._inflight: asyncio.Task | None = None  # type: ignore[type-arg]
        self._followup: asyncio.Task | None = None  # type: ignore[type-arg]
        self._chained: set[asyncio.Task] = set()  # type: ignore[type-arg]
        # Bumped by restart(); a run from an older generation is stale.
        self._generation = 0
        self._inflight_generation = 0

    @property
    def state(self) -> AccountState:
        """Latest complete AccountState (empty until the first success)."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_scheduled(self) -> bool:
        """True while the regular cadence timer is active."""
        return self._loop_task is not None and not self._loop_task.done()

    def preconditions_met(self, settings: AppSettings | None = None) -> bool:
        settings = settings or self._store.settings
        return self._session.is_authenticated and settings.exchange.has_credentials

    async def start(self) -> None:
        """Enable the synchronizer; the cadence runs whenever preconditions hold."""
        self._enabled = True
        self.restart()
        logger.info("account_synchronizer_started", sync_interval=self._sync_interval)

    async def stop(self) -> None:
        """Stop the cadence and cancel any pending runs."""
        self._enabled = False
        tasks = [
            t
            for t in (self._loop_task, *self._chained, self._followup, self._inflight)
            if t is not None
        ]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._chained.clear()
        self._loop_task = self._followup = self._inflight = None
        logger.info("account_synchronizer_stopped")

    def restart(self) -> None:
        """Drop the current timer and, if preconditions hold, start a fresh one.

        Called when credentials or session state change. The new cadence
        syncs immediately instead of waiting for a tick boundary. A sync
        already in flight is left to finish, but it belongs to the previous
        generation: its result is discarded and the fresh run is chained
        after it.
        """
        self._generation += 1
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None

        if not self._enabled:
            return
        if not self.preconditions_met():
            self._status = ConnectionStatus.DISCONNECTED
            logger.info("account_sync_disabled", reason="not_authenticated_or_no_credentials")
            return

        self._loop_task = asyncio.create_task(self._sync_loop())
        logger.info("account_sync_scheduled", sync_interval=self._sync_interval)

    def request_refresh(self) -> asyncio.Task:  # type: ignore[type-arg]
        """Force an out-of-band sync. Returns the task that will carry it out."""
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if self._followup is None or self._followup.done():
                self._followup = self._chain(inflight)
                logger.debug("account_refresh_queued_after_inflight")
            return self._followup
        logger.debug("account_refresh_forced")
        return self._spawn_sync()

    def _spawn_sync(self) -> asyncio.Task:  # type: ignore[type-arg]
        if self._inflight is None or self._inflight.done():
            self._inflight_generation = self._generation
            self._inflight = asyncio.create_task(self._sync_once(self._generation))
        return self._inflight

    def _current_run(self) -> asyncio.Task:  # type: ignore[type-arg]
        """Join the in-flight run, or queue after it if a restart superseded it."""
        inflight = self._inflight
        if (
            inflight is not None
            and not inflight.done()
            and self._inflight_generation != self._generation
        ):
            logger.debug("account_sync_queued_after_stale_run")
            return self._chain(inflight)
        return self._spawn_sync()

    def _chain(self, previous: asyncio.Task) -> asyncio.Task:  # type: ignore[type-arg]
        task = asyncio.create_task(self._sync_after(previous))
        self._chained.add(task)
        task.add_done_callback(self._chained.discard)
        return task

    async def _sync_after(self, previous: asyncio.Task) -> bool:  # type: ignore[type-arg]
        await asyncio.wait([previous])
        return await self._spawn_sync()

    async def _sync_loop(self) -> None:
        while True:
            # Shielded: cancelling the timer must not abort a run mid-call.
            await asyncio.shield(self._current_run())
            await asyncio.sleep(self._sync_interval)

    def _superseded(self, generation: int) -> bool:
        """True when a restart or a lost session made a finished run stale."""
        preconditions = self.preconditions_met()
        if generation == self._generation and preconditions:
            return False
        if not preconditions:
            self._status = ConnectionStatus.DISCONNECTED
        logger.info(
            "account_sync_result_discarded",
            generation=generation,
            current_generation=self._generation,
        )
        return True

    async def _sync_once(self, generation: int) -> bool:
        """Run one sync. Returns True when a new AccountState was published."""
        settings = self._store.settings
        if not self.preconditions_met(settings):
            self._status = ConnectionStatus.DISCONNECTED
            return False

        try:
            state = await asyncio.wait_for(
                self._exchange.fetch_account(
                    settings.exchange.api_key.get_secret_value(),
                    settings.exchange.secret_key.get_secret_value(),
                    settings.trading.symbol,
                ),
                timeout=self._call_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._superseded(generation):
                return False
            reason = str(e) or type(e).__name__
            self._status = ConnectionStatus.ERROR
            self._ledger.error(f"MEXC sync error: {reason}")
            logger.warning("account_sync_failed", error=reason)
            return False

        if self._superseded(generation):
            return False

        self._state = state
        self._status = ConnectionStatus.CONNECTED
        self._ledger.success("MEXC account synced successfully")
        logger.debug(
            "account_synced",
            positions=len(state.positions),
            orders=len(state.orders),
            trades=len(state.trades),
        )
        return True
