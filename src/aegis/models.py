"""Shared data models for the Aegis trading agent.

CRITICAL: All monetary values use Decimal. Never use float for prices, quantities, or fees.

Every record here is a frozen dataclass and every collection inside one is a
tuple. Shared state is published by swapping a reference to a new record,
never by mutating fields, so readers always see a complete value.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class TradeAction(str, Enum):
    """Oracle action vocabulary. WAIT is the no-op."""

    LONG = "LONG"
    SHORT = "SHORT"
    CLOSE = "CLOSE"
    WAIT = "WAIT"

    @property
    def is_actionable(self) -> bool:
        return self is not TradeAction.WAIT


class PositionSide(str, Enum):
    """Side of an open futures position."""

    LONG = "LONG"
    SHORT = "SHORT"
    NONE = "NONE"  # sentinel: no open position


class LogCategory(str, Enum):
    """Event Ledger entry category."""

    INFO = "INFO"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    TRADE = "TRADE"


class ConnectionStatus(str, Enum):
    """Outcome of the most recent call to an external system."""

    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Ticker:
    """Current price and 24h change (percent) for one symbol."""

    symbol: str
    price: Decimal
    change_24h: Decimal


@dataclass(frozen=True)
class PricePoint:
    timestamp: float
    price: Decimal


@dataclass(frozen=True)
class MarketSnapshot:
    """Latest ticker plus a bounded, oldest-first price history."""

    symbol: str
    price: Decimal
    change_24h: Decimal
    history: tuple[PricePoint, ...] = ()
    updated_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Balance:
    asset: str
    total: Decimal
    available: Decimal


@dataclass(frozen=True)
class Position:
    """An open futures position as reported by the exchange."""

    symbol: str
    side: PositionSide
    leverage: int
    entry_price: Decimal
    current_price: Decimal
    pnl: Decimal
    size: Decimal = Decimal("0")


@dataclass(frozen=True)
class Order:
    """An open (unfilled or partially filled) order."""

    order_id: str
    symbol: str
    side: str
    order_type: str
    price: Decimal
    amount: Decimal
    filled: Decimal
    status: str
    timestamp: float


@dataclass(frozen=True)
class Trade:
    """A historical fill."""

    trade_id: str
    symbol: str
    side: str
    price: Decimal
    amount: Decimal
    fee: Decimal
    timestamp: float


@dataclass(frozen=True)
class AccountState:
    """Everything one successful account sync returns. Replaced wholesale."""

    spot_balances: tuple[Balance, ...] = ()
    futures_balances: tuple[Balance, ...] = ()
    positions: tuple[Position, ...] = ()
    orders: tuple[Order, ...] = ()
    trades: tuple[Trade, ...] = ()
    synced_at: float = 0.0

    @property
    def current_position_side(self) -> PositionSide:
        """Side of the first open position, or NONE."""
        if not self.positions:
            return PositionSide.NONE
        return self.positions[0].side


@dataclass(frozen=True)
class Decision:
    """One oracle verdict. Built only from a complete, validated response."""

    action: TradeAction
    confidence: int
    reason: str
    provider: str = ""
    decided_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class DecisionContext:
    """Everything the oracle is told about the world for one cycle."""

    provider: str
    provider_credential: str
    symbol: str
    leverage: int
    market: MarketSnapshot
    current_position_side: PositionSide


@dataclass(frozen=True)
class LogEntry:
    id: int
    timestamp: float
    category: LogCategory
    message: str


@dataclass(frozen=True)
class OrderRequest:
    """A single order to dispatch for a non-WAIT decision."""

    action: TradeAction
    api_key: str
    secret_key: str
    symbol: str
    leverage: int
    price: Decimal
    risk_percent: int = 2

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks
        return (
            f"OrderRequest(action={self.action.value}, symbol={self.symbol}, "
            f"leverage={self.leverage}, price={self.price}, "
            f"risk_percent={self.risk_percent})"
        )


@dataclass(frozen=True)
class OrderResult:
    """Result of an order accepted by the exchange."""

    order_id: str
    symbol: str
    side: str
    amount: Decimal
    price: Decimal
    timestamp: float


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one Trade Executor dispatch."""

    success: bool
    request: OrderRequest
    orders: tuple[OrderResult, ...] = ()
    error: str | None = None
