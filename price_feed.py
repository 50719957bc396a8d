"""
Price lookup and quote-denominated order sizing.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from workflow_types import TradeAction

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
_PRICE_KEYS = ("price", "lastPrice", "last_price", "last", "mark_price", "markPrice")


class PriceLookupError(RuntimeError):
    pass


class PriceFeed(ABC):
    @abstractmethod
    async def get_price(self, symbol: str) -> float:
        """Return the latest price for ``symbol`` (``BASE-QUOTE``)."""


class StaticPriceFeed(PriceFeed):
    """Fixed prices keyed by symbol; unknown symbols raise."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices = {k.upper(): v for k, v in (prices or {}).items()}

    async def get_price(self, symbol: str) -> float:
        try:
            return self.prices[symbol.upper()]
        except KeyError:
            raise PriceLookupError(f"no price for {symbol}") from None


class HttpPriceFeed(PriceFeed):
    """Reads a JSON ticker from ``url_template`` (``{symbol}`` placeholder)."""

    def __init__(self, url_template: str, timeout: float = REQUEST_TIMEOUT):
        self.url_template = url_template
        self.timeout = timeout

    def _fetch(self, symbol: str) -> Any:
        response = requests.get(self.url_template.format(symbol=symbol), timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def get_price(self, symbol: str) -> float:
        try:
            data = await asyncio.to_thread(self._fetch, symbol)
        except (requests.RequestException, ValueError) as exc:
            raise PriceLookupError(f"ticker request for {symbol} failed: {exc}") from exc

        if isinstance(data, dict) and isinstance(data.get("result"), dict):
            data = data["result"]
        if isinstance(data, dict):
            for key in _PRICE_KEYS:
                if key in data:
                    try:
                        return float(data[key])
                    except (TypeError, ValueError):
                        break
        raise PriceLookupError(f"ticker for {symbol} has no usable price")


def build_price_feed(url_template: Optional[str]) -> PriceFeed:
    return HttpPriceFeed(url_template) if url_template else StaticPriceFeed()


async def resolve_order_amount(
    action: TradeAction,
    price_feed: PriceFeed,
    fallback_price: float,
    default_quote_asset: str = "USDC",
) -> float:
    """Base-asset quantity for ``action``.

    Quote-denominated actions are sized as ``quote_amount / price``. A failed
    lookup or a non-positive price falls back to ``fallback_price``.
    """
    if not action.quote_amount:
        return action.amount

    symbol = f"{action.asset}-{action.quote_asset or default_quote_asset}"
    try:
        price = await price_feed.get_price(symbol)
    except Exception as exc:
        logger.warning("Price lookup for %s failed, using fallback %s: %s", symbol, fallback_price, exc)
        price = fallback_price
    else:
        if not price or price <= 0:
            logger.warning("Price lookup for %s returned %r, using fallback %s", symbol, price, fallback_price)
            price = fallback_price

    return action.quote_amount / price
