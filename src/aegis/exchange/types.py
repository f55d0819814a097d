"""Exchange-specific helpers: symbol mapping and Decimal conversion.

All monetary values use Decimal. Never use float for prices, quantities, or fees.
"""

from decimal import Decimal, InvalidOperation

from aegis.models import PositionSide

# Checked longest first so that e.g. "USDT" wins over "USD".
_QUOTE_ASSETS = ("USDT", "USDC", "USDE", "BUSD", "FDUSD", "USD", "BTC", "ETH")


def split_symbol(symbol: str) -> tuple[str, str]:
    """Split an exchange-native symbol into (base, quote).

    Accepts "BTCUSDT", "BTC_USDT", "BTC/USDT" and ccxt swap symbols
    ("BTC/USDT:USDT").

    Raises:
        ValueError: The quote asset cannot be determined.
    """
    raw = symbol.strip().upper().split(":")[0]
    for sep in ("/", "_", "-"):
        if sep in raw:
            base, quote = raw.split(sep, 1)
            return base, quote
    for quote in sorted(_QUOTE_ASSETS, key=len, reverse=True):
        if raw.endswith(quote) and len(raw) > len(quote):
            return raw[: -len(quote)], quote
    raise ValueError(f"Cannot determine quote asset of symbol {symbol!r}")


def to_spot_symbol(symbol: str) -> str:
    """"BTCUSDT" -> "BTC/USDT"."""
    base, quote = split_symbol(symbol)
    return f"{base}/{quote}"


def to_swap_symbol(symbol: str) -> str:
    """"BTCUSDT" -> "BTC/USDT:USDT" (linear perpetual)."""
    base, quote = split_symbol(symbol)
    return f"{base}/{quote}:{quote}"


def to_decimal(value: object, default: Decimal = Decimal("0")) -> Decimal:
    """Convert a ccxt numeric field via str() to avoid float artefacts."""
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def parse_position_side(value: object) -> PositionSide:
    """Map ccxt/MEXC side strings ("long", "short", 1, 2) to PositionSide."""
    text = str(value).strip().lower()
    if text in ("long", "buy", "1"):
        return PositionSide.LONG
    if text in ("short", "sell", "2"):
        return PositionSide.SHORT
    return PositionSide.NONE
