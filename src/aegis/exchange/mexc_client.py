"""MEXC exchange client implementation via ccxt async.

Wraps ccxt.async_support.mexc. Market data goes through one shared public
instance; authenticated calls go through one instance per credential pair,
since the operator may change keys at runtime.
"""

from __future__ import annotations

import asyncio
import time
from decimal import ROUND_DOWN, Decimal

import ccxt.async_support as ccxt_async

from aegis.exceptions import ExecutionError, TransientFetchError
from aegis.exchange.client import ExchangeClient
from aegis.exchange.types import (
    parse_position_side,
    split_symbol,
    to_decimal,
    to_spot_symbol,
    to_swap_symbol,
)
from aegis.logging import get_logger
from aegis.models import (
    AccountState,
    Balance,
    Order,
    OrderRequest,
    OrderResult,
    Position,
    PositionSide,
    Ticker,
    TradeAction,
)
from aegis.models import Trade as TradeRecord

logger = get_logger(__name__)

_TRADE_HISTORY_LIMIT = 50

# MEXC contract API: openType 1 = isolated margin; positionType 1 = long, 2 = short
_ISOLATED = 1
_POSITION_TYPE = {PositionSide.LONG: 1, PositionSide.SHORT: 2}


def _parse_balances(raw: dict) -> tuple[Balance, ...]:
    """Extract non-zero balances from a ccxt balance structure."""
    totals = raw.get("total") or {}
    free = raw.get("free") or {}
    balances = []
    for asset, total in totals.items():
        total_dec = to_decimal(total)
        if total_dec <= 0:
            continue
        balances.append(
            Balance(asset=asset, total=total_dec, available=to_decimal(free.get(asset)))
        )
    return tuple(sorted(balances, key=lambda b: b.asset))


def _parse_position(raw: dict) -> Position | None:
    contracts = to_decimal(raw.get("contracts"))
    side = parse_position_side(raw.get("side"))
    if contracts <= 0 or side is PositionSide.NONE:
        return None
    return Position(
        symbol=str(raw.get("symbol", "")),
        side=side,
        leverage=int(to_decimal(raw.get("leverage"), Decimal("1"))),
        entry_price=to_decimal(raw.get("entryPrice")),
        current_price=to_decimal(raw.get("markPrice") or raw.get("lastPrice")),
        pnl=to_decimal(raw.get("unrealizedPnl")),
        size=contracts,
    )


def _parse_order(raw: dict) -> Order:
    return Order(
        order_id=str(raw.get("id", "")),
        symbol=str(raw.get("symbol", "")),
        side=str(raw.get("side", "")),
        order_type=str(raw.get("type", "")),
        price=to_decimal(raw.get("price")),
        amount=to_decimal(raw.get("amount")),
        filled=to_decimal(raw.get("filled")),
        status=str(raw.get("status", "")),
        timestamp=float(raw.get("timestamp") or 0) / 1000.0,
    )


def _parse_trade(raw: dict) -> TradeRecord:
    fee = raw.get("fee") or {}
    return TradeRecord(
        trade_id=str(raw.get("id", "")),
        symbol=str(raw.get("symbol", "")),
        side=str(raw.get("side", "")),
        price=to_decimal(raw.get("price")),
        amount=to_decimal(raw.get("amount")),
        fee=to_decimal(fee.get("cost")),
        timestamp=float(raw.get("timestamp") or 0) / 1000.0,
    )


def _parse_order_result(raw: dict, symbol: str, fallback_price: Decimal) -> OrderResult:
    """Parse a ccxt order response -- all values through Decimal(str())."""
    average_price = raw.get("average") or raw.get("price")
    timestamp = raw.get("timestamp")
    return OrderResult(
        order_id=str(raw.get("id", "")),
        symbol=str(raw.get("symbol") or symbol),
        side=str(raw.get("side", "")),
        amount=to_decimal(raw.get("filled") or raw.get("amount")),
        price=to_decimal(average_price, fallback_price),
        timestamp=float(timestamp) / 1000.0 if timestamp else time.time(),
    )


class MexcClient(ExchangeClient):
    """Concrete MEXC exchange client using ccxt async.

    Args:
        exchange_factory: Builds a ccxt exchange from a config dict. Defaults
            to ``ccxt.async_support.mexc``; injected by tests.
    """

    def __init__(self, exchange_factory=None) -> None:
        self._factory = exchange_factory or ccxt_async.mexc
        self._public = self._factory({"enableRateLimit": True})
        self._private: dict[tuple[str, str], ccxt_async.Exchange] = {}

    def _private_exchange(self, api_key: str, secret_key: str) -> ccxt_async.Exchange:
        key = (api_key, secret_key)
        exchange = self._private.get(key)
        if exchange is None:
            exchange = self._factory(
                {
                    "apiKey": api_key,
                    "secret": secret_key,
                    "enableRateLimit": True,
                    "options": {"defaultType": "swap"},
                }
            )
            self._private[key] = exchange
        return exchange

    async def connect(self) -> None:
        """Initialize connection by loading markets on the public instance."""
        logger.info("connecting_to_mexc")
        markets = await self._public.load_markets()
        logger.info("mexc_connected", market_count=len(markets))

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        logger.info("closing_mexc_connections", private_sessions=len(self._private))
        await self._public.close()
        for exchange in self._private.values():
            await exchange.close()
        self._private.clear()
        logger.info("mexc_connections_closed")

    async def fetch_ticker(self, symbol: str) -> Ticker:
        try:
            raw = await self._public.fetch_ticker(to_spot_symbol(symbol))
        except (ccxt_async.BaseError, ValueError) as e:
            raise TransientFetchError(f"Ticker fetch failed for {symbol}: {e}") from e

        price = to_decimal(raw.get("last"))
        if price <= 0:
            raise TransientFetchError(f"Ticker for {symbol} has no last price")
        return Ticker(
            symbol=symbol,
            price=price,
            change_24h=to_decimal(raw.get("percentage")),
        )

    async def fetch_account(
        self, api_key: str, secret_key: str, symbol: str
    ) -> AccountState:
        """Fetch the full account picture concurrently; any failure fails the whole call."""
        exchange = self._private_exchange(api_key, secret_key)
        try:
            swap_symbol = to_swap_symbol(symbol)
            spot, futures, positions, orders, trades = await asyncio.gather(
                exchange.fetch_balance({"type": "spot"}),
                exchange.fetch_balance({"type": "swap"}),
                exchange.fetch_positions([swap_symbol]),
                exchange.fetch_open_orders(swap_symbol),
                exchange.fetch_my_trades(swap_symbol, limit=_TRADE_HISTORY_LIMIT),
            )
        except (ccxt_async.BaseError, ValueError) as e:
            raise TransientFetchError(str(e) or type(e).__name__) from e

        # Error payload delivered with a 2xx status
        info = spot.get("info")
        if isinstance(info, dict) and info.get("error"):
            raise TransientFetchError(str(info["error"]))

        parsed_positions = tuple(
            p for p in (_parse_position(raw) for raw in positions) if p is not None
        )
        return AccountState(
            spot_balances=_parse_balances(spot),
            futures_balances=_parse_balances(futures),
            positions=parsed_positions,
            orders=tuple(_parse_order(o) for o in orders),
            trades=tuple(
                sorted(
                    (_parse_trade(t) for t in trades),
                    key=lambda t: t.timestamp,
                    reverse=True,
                )
            ),
            synced_at=time.time(),
        )

    async def submit_order(self, request: OrderRequest) -> tuple[OrderResult, ...]:
        exchange = self._private_exchange(request.api_key, request.secret_key)
        try:
            swap_symbol = to_swap_symbol(request.symbol)
            await exchange.load_markets()
            if request.action is TradeAction.CLOSE:
                return await self._close_positions(exchange, swap_symbol, request.price)
            if request.action in (TradeAction.LONG, TradeAction.SHORT):
                return (await self._open_position(exchange, swap_symbol, request),)
        except ExecutionError:
            raise
        except (ccxt_async.BaseError, ValueError) as e:
            raise ExecutionError(str(e) or type(e).__name__) from e
        raise ExecutionError(f"Action {request.action.value} is not tradable")

    async def _open_position(
        self, exchange: ccxt_async.Exchange, swap_symbol: str, request: OrderRequest
    ) -> OrderResult:
        """Open a market position sized by risk percent of free margin times leverage."""
        side = PositionSide(request.action.value)
        await exchange.set_leverage(
            request.leverage,
            swap_symbol,
            params={"openType": _ISOLATED, "positionType": _POSITION_TYPE[side]},
        )

        _, quote = split_symbol(request.symbol)
        balance = await exchange.fetch_balance({"type": "swap"})
        free_margin = to_decimal((balance.get("free") or {}).get(quote))
        if free_margin <= 0:
            raise ExecutionError(f"No free {quote} margin in futures account")
        if request.price <= 0:
            raise ExecutionError("Cannot size order without a positive price")

        notional = free_margin * Decimal(request.risk_percent) / 100 * request.leverage
        market = exchange.market(swap_symbol)
        contract_size = to_decimal(market.get("contractSize"), Decimal("1"))
        contracts = (notional / request.price / contract_size).quantize(
            Decimal("1e-8"), rounding=ROUND_DOWN
        )
        amount = to_decimal(exchange.amount_to_precision(swap_symbol, float(contracts)))
        min_amount = to_decimal(
            ((market.get("limits") or {}).get("amount") or {}).get("min")
        )
        if amount <= 0 or amount < min_amount:
            raise ExecutionError(
                f"Order size {amount} below exchange minimum {min_amount}"
            )

        order_side = "buy" if side is PositionSide.LONG else "sell"
        logger.info(
            "creating_order",
            symbol=swap_symbol,
            side=order_side,
            amount=str(amount),
            leverage=request.leverage,
        )
        raw = await exchange.create_order(
            swap_symbol,
            "market",
            order_side,
            float(amount),
            None,
            params={"openType": _ISOLATED, "leverage": request.leverage},
        )
        return _parse_order_result(raw, swap_symbol, request.price)

    async def _close_positions(
        self, exchange: ccxt_async.Exchange, swap_symbol: str, price: Decimal
    ) -> tuple[OrderResult, ...]:
        """Close every open position on the symbol with reduce-only market orders."""
        raw_positions = await exchange.fetch_positions([swap_symbol])
        results = []
        for raw in raw_positions:
            position = _parse_position(raw)
            if position is None:
                continue
            order_side = "sell" if position.side is PositionSide.LONG else "buy"
            logger.info(
                "closing_position",
                symbol=swap_symbol,
                side=position.side.value,
                size=str(position.size),
            )
            result = await exchange.create_order(
                swap_symbol,
                "market",
                order_side,
                float(position.size),
                None,
                params={"reduceOnly": True},
            )
            results.append(_parse_order_result(result, swap_symbol, price))
        if not results:
            logger.info("close_requested_without_position", symbol=swap_symbol)
        return tuple(results)
