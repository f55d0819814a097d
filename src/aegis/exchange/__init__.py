"""Exchange client layer -- MEXC API integration via ccxt."""

from aegis.exchange.client import ExchangeClient
from aegis.exchange.mexc_client import MexcClient
from aegis.exchange.types import to_spot_symbol, to_swap_symbol

__all__ = ["ExchangeClient", "MexcClient", "to_spot_symbol", "to_swap_symbol"]
