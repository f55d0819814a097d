"""Market data layer -- ticker polling and price history."""

from aegis.market.poller import HISTORY_SIZE, MarketPoller

__all__ = ["HISTORY_SIZE", "MarketPoller"]
