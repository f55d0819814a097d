"""Decision cycle scheduler -- the auto-trading loop.

Idle while auto-trading is off (no timer held). On activation one cycle
runs immediately, then one per configured interval. Each cycle:

  1. READ: latest MarketSnapshot (no-op if none yet) and AccountState
  2. ASK: consult the decision oracle with the cycle's settings snapshot
  3. RECORD: store the Decision, TRADE ledger entry for non-WAIT actions
  4. ACT: in live mode, dispatch the action through the Trade Executor,
     which forces an account refresh afterwards

At most one cycle is ever in flight. The timer is re-armed only after the
previous cycle completes, and any other trigger arriving mid-cycle is
dropped. Deactivation cancels the armed timer but never the running cycle.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import TYPE_CHECKING

import structlog

from aegis.logging import get_logger
from aegis.models import Decision, DecisionContext, OrderRequest

if TYPE_CHECKING:
    from aegis.account.synchronizer import AccountSynchronizer
    from aegis.config import AppSettings
    from aegis.execution.executor import TradeExecutor
    from aegis.ledger import EventLedger
    from aegis.market.poller import MarketPoller
    from aegis.oracle.base import DecisionOracle
    from aegis.store import Session, SettingsStore

logger = get_logger(__name__)


class DecisionScheduler:
    """Runs decision-and-maybe-trade cycles on the configured cadence.

    The only writer of the last Decision.

    Args:
        oracle: Decision oracle consulted once per cycle.
        market_poller: Source of the latest MarketSnapshot.
        synchronizer: Source of the latest AccountState.
        executor: Trade Executor for live actions.
        store: Settings store; one snapshot is taken per cycle.
        session: Operator session; live actions require authentication.
        ledger: Event Ledger.
        call_timeout: Deadline for the oracle call.
        interval_unit: Seconds per configured interval unit (minutes).
    """

    def __init__(
        self,
        oracle: DecisionOracle,
        market_poller: MarketPoller,
        synchronizer: AccountSynchronizer,
        executor: TradeExecutor,
        store: SettingsStore,
        session: Session,
        ledger: EventLedger,
        call_timeout: float = 20.0,
        interval_unit: float = 60.0,
    ) -> None:
        self._oracle = oracle
        self._market_poller = market_poller
        self._synchronizer = synchronizer
        self._executor = executor
        self._store = store
        self._session = session
        self._ledger = ledger
        self._call_timeout = call_timeout
        self._interval_unit = interval_unit
        self._decision: Decision | None = None
        self._active = False
        self._interval_minutes: int | None = None
        self._timer_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._cycle_task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._cycle_ids = itertools.count(1)

    @property
    def decision(self) -> Decision | None:
        """Most recent successful Decision, or None before the first one."""
        return self._decision

    @property
    def is_active(self) -> bool:
        """True while auto-trading is on and the timer is armed or running."""
        return self._active

    @property
    def is_analyzing(self) -> bool:
        """True while a cycle is in flight."""
        return self._cycle_task is not None and not self._cycle_task.done()

    def apply(self, settings: AppSettings) -> None:
        """Bring the scheduler state in line with the given settings.

        Auto-trading on -> activate (or re-arm if the interval changed);
        auto-trading off -> go idle. Re-arming during an in-flight cycle
        drops the new timer's immediate run (overlap), so the next cycle
        comes one new interval after the re-arm.
        """
        trading = settings.trading
        if not trading.is_auto_trading:
            if self._active:
                self.deactivate()
            return
        if not self._active:
            self.activate(trading.interval_minutes)
        elif trading.interval_minutes != self._interval_minutes:
            logger.info(
                "decision_interval_changed",
                old=self._interval_minutes,
                new=trading.interval_minutes,
            )
            self._cancel_timer()
            self._arm(trading.interval_minutes)

    def activate(self, interval_minutes: int) -> None:
        """Enter Scheduled: run a cycle now, then every interval."""
        if self._active:
            return
        self._active = True
        self._arm(interval_minutes)
        logger.info("decision_scheduler_activated", interval_minutes=interval_minutes)

    def deactivate(self) -> None:
        """Enter Idle: cancel the armed timer. An in-flight cycle runs to completion."""
        self._active = False
        self._cancel_timer()
        self._interval_minutes = None
        logger.info("decision_scheduler_deactivated", cycle_in_flight=self.is_analyzing)

    async def stop(self) -> None:
        """Go idle and wait for any in-flight cycle to finish."""
        self.deactivate()
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait until no cycle is in flight."""
        task = self._cycle_task
        if task is not None and not task.done():
            await asyncio.wait([task])

    def _arm(self, interval_minutes: int) -> None:
        self._interval_minutes = interval_minutes
        self._timer_task = asyncio.create_task(
            self._timer_loop(interval_minutes * self._interval_unit)
        )

    def _cancel_timer(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

    async def _timer_loop(self, interval_seconds: float) -> None:
        while self._active:
            await self.run_cycle()
            if not self._active:
                break
            await asyncio.sleep(interval_seconds)

    async def run_cycle(self) -> Decision | None:
        """Run one cycle unless one is already in flight.

        Returns the new Decision, or None when the cycle was skipped, had no
        market data, or the oracle failed. The cycle body is shielded, so
        cancelling the caller (e.g. the timer) does not abort it.
        """
        if self.is_analyzing:
            logger.info("decision_cycle_skipped", reason="cycle_in_flight")
            return None
        self._cycle_task = asyncio.create_task(self._cycle(next(self._cycle_ids)))
        return await asyncio.shield(self._cycle_task)

    async def _cycle(self, cycle_id: int) -> Decision | None:
        with structlog.contextvars.bound_contextvars(cycle_id=cycle_id):
            try:
                return await self._run_decision(self._store.settings)
            except asyncio.CancelledError:
                raise
            except Exception:
                # Never let one bad cycle kill the scheduler.
                logger.error("decision_cycle_error", exc_info=True)
                self._ledger.error("Trading cycle failed unexpectedly")
                return None

    async def _run_decision(self, settings: AppSettings) -> Decision | None:
        market = self._market_poller.snapshot
        if market is None:
            logger.debug("decision_cycle_no_market_data")
            return None

        trading = settings.trading
        context = DecisionContext(
            provider=settings.oracle.provider,
            provider_credential=settings.oracle.credential_for(),
            symbol=trading.symbol,
            leverage=trading.leverage,
            market=market,
            current_position_side=self._synchronizer.state.current_position_side,
        )

        logger.info(
            "decision_cycle_started",
            provider=context.provider,
            symbol=context.symbol,
            position=context.current_position_side.value,
        )
        try:
            decision = await asyncio.wait_for(
                self._oracle.decide(context), timeout=self._call_timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e) or type(e).__name__
            self._ledger.error(f"AI analysis failed: {reason}")
            logger.warning("oracle_failed", error=reason)
            return None

        self._decision = decision
        if not decision.action.is_actionable:
            logger.info("decision_wait", confidence=decision.confidence)
            return decision

        self._ledger.trade(
            f"AI decision: {decision.action.value} ({decision.confidence}%)"
        )

        if not self._may_trade(settings):
            logger.info(
                "decision_not_executed",
                action=decision.action.value,
                live_mode=trading.is_live_mode,
            )
            return decision

        await self._executor.execute(
            OrderRequest(
                action=decision.action,
                api_key=settings.exchange.api_key.get_secret_value(),
                secret_key=settings.exchange.secret_key.get_secret_value(),
                symbol=trading.symbol,
                leverage=trading.leverage,
                price=market.price,
                risk_percent=trading.risk_percent,
            )
        )
        return decision

    def _may_trade(self, settings: AppSettings) -> bool:
        trading = settings.trading
        return (
            trading.is_live_mode
            and trading.is_auto_trading
            and self._session.is_authenticated
        )
