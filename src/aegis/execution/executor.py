"""Trade executor -- one-shot dispatch of a decision to the exchange.

Submits exactly one order request per call, with no retries; retry policy,
if any, belongs to the operator. Whatever the outcome, an out-of-band
account refresh is requested afterwards so the operator sees the true
account state right after a live action.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from aegis.exceptions import ExecutionError
from aegis.logging import get_logger
from aegis.models import ExecutionResult, OrderRequest

if TYPE_CHECKING:
    from aegis.account.synchronizer import AccountSynchronizer
    from aegis.exchange.client import ExchangeClient
    from aegis.ledger import EventLedger

logger = get_logger(__name__)


class TradeExecutor:
    """Serialized order dispatcher.

    An asyncio.Lock guarantees the executor never runs concurrently with
    itself. Failures are reported in the returned ExecutionResult and in the
    Event Ledger; they are never raised to the caller.

    Args:
        exchange: Exchange client that submits the order.
        synchronizer: Account synchronizer to refresh after every dispatch.
        ledger: Event Ledger for TRADE/ERROR entries.
        call_timeout: Deadline for the submission call.
    """

    def __init__(
        self,
        exchange: ExchangeClient,
        synchronizer: AccountSynchronizer,
        ledger: EventLedger,
        call_timeout: float = 20.0,
    ) -> None:
        self._exchange = exchange
        self._synchronizer = synchronizer
        self._ledger = ledger
        self._call_timeout = call_timeout
        self._lock = asyncio.Lock()
        self._last_refresh: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def last_refresh(self) -> asyncio.Task | None:  # type: ignore[type-arg]
        """Account refresh task requested by the most recent dispatch."""
        return self._last_refresh

    async def execute(self, request: OrderRequest) -> ExecutionResult:
        """Submit the order for one decision and return the outcome."""
        async with self._lock:
            try:
                result = await self._submit(request)
            finally:
                self._last_refresh = self._synchronizer.request_refresh()
        return result

    async def _submit(self, request: OrderRequest) -> ExecutionResult:
        logger.info(
            "trade_dispatch",
            action=request.action.value,
            symbol=request.symbol,
            leverage=request.leverage,
            price=str(request.price),
        )
        try:
            orders = await asyncio.wait_for(
                self._exchange.submit_order(request), timeout=self._call_timeout
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            return self._failed(request, f"order submission timed out after {self._call_timeout}s")
        except ExecutionError as e:
            return self._failed(request, str(e) or "order rejected")
        except Exception as e:
            logger.error("trade_dispatch_unexpected_error", exc_info=True)
            return self._failed(request, str(e) or type(e).__name__)

        if orders:
            summary = ", ".join(f"{o.side} {o.amount} @ {o.price}" for o in orders)
            self._ledger.trade(f"Order executed: {request.action.value} {request.symbol} ({summary})")
        else:
            self._ledger.info(f"No order needed for {request.action.value} on {request.symbol}")
        logger.info("trade_dispatched", action=request.action.value, orders=len(orders))
        return ExecutionResult(success=True, request=request, orders=tuple(orders))

    def _failed(self, request: OrderRequest, reason: str) -> ExecutionResult:
        self._ledger.error(f"Trade execution failed ({request.action.value}): {reason}")
        logger.warning("trade_dispatch_failed", action=request.action.value, error=reason)
        return ExecutionResult(success=False, request=request, error=reason)
