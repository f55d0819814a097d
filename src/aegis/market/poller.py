"""Market poller -- fixed-cadence ticker polling with a bounded price history.

Publishes an immutable MarketSnapshot on every successful tick. A failed
tick changes nothing: the previous snapshot stays in place and the next
scheduled tick is the retry. The cadence never backs off.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from aegis.logging import get_logger
from aegis.models import MarketSnapshot, PricePoint

if TYPE_CHECKING:
    from aegis.exchange.client import ExchangeClient
    from aegis.store import SettingsStore

logger = get_logger(__name__)

HISTORY_SIZE = 50


class MarketPoller:
    """Polls the ticker of the configured symbol and caches the latest snapshot.

    The only writer of the MarketSnapshot. Readers call ``snapshot`` and get
    either None (no successful fetch yet) or a complete immutable record.

    Args:
        exchange: Exchange client used for ticker fetches.
        store: Settings store; the symbol is read fresh on every tick.
        poll_interval: Seconds between ticks.
        call_timeout: Deadline for a single ticker fetch.
        history_size: Maximum number of price points retained.
    """

    def __init__(
        self,
        exchange: ExchangeClient,
        store: SettingsStore,
        poll_interval: float = 5.0,
        call_timeout: float = 20.0,
        history_size: int = HISTORY_SIZE,
    ) -> None:
        self._exchange = exchange
        self._store = store
        self._poll_interval = poll_interval
        self._call_timeout = call_timeout
        self._history_size = history_size
        self._snapshot: MarketSnapshot | None = None
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def snapshot(self) -> MarketSnapshot | None:
        """Latest published snapshot, or None before the first success."""
        return self._snapshot

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin polling in the background."""
        if self._running:
            logger.warning("market_poller_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("market_poller_started", poll_interval=self._poll_interval)

    async def stop(self) -> None:
        """Stop polling gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("market_poller_stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            await self.poll_once()
            if self._running:
                await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> bool:
        """Run a single tick. Returns True if a new snapshot was published."""
        symbol = self._store.settings.trading.symbol
        try:
            ticker = await asyncio.wait_for(
                self._exchange.fetch_ticker(symbol), timeout=self._call_timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("market_poll_failed", symbol=symbol, error=str(e) or type(e).__name__)
            return False

        now = time.time()
        previous = self._snapshot
        # A symbol switch starts a fresh chart rather than mixing two markets.
        history = previous.history if previous is not None and previous.symbol == symbol else ()
        history = (*history, PricePoint(timestamp=now, price=ticker.price))[-self._history_size:]

        self._snapshot = MarketSnapshot(
            symbol=symbol,
            price=ticker.price,
            change_24h=ticker.change_24h,
            history=history,
            updated_at=now,
        )
        logger.debug("market_snapshot_published", symbol=symbol, price=str(ticker.price))
        return True
