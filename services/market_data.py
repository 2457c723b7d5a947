"""
Market data service for fetching stock quotes used to value holdings.
Uses yfinance with tenacity for retry logic and caches quotes in-process.
Prices are returned as Decimal, converted from yfinance floats via str().
"""

import yfinance as yf
import pandas as pd
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional, Dict

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from services.common import normalize_symbol, currency_for_market

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockQuote:
    """Latest quote for a symbol."""
    symbol: str
    price: Decimal
    previous_close: Optional[Decimal] = None
    volume: Optional[int] = None
    currency: str = "USD"
    timestamp: Optional[datetime] = None

    @property
    def change(self) -> Optional[Decimal]:
        if self.previous_close is None:
            return None
        return self.price - self.previous_close

    @property
    def change_percent(self) -> Optional[Decimal]:
        if self.previous_close is None or self.previous_close == 0:
            return None
        return (self.price - self.previous_close) / self.previous_close * 100


def _to_decimal(value) -> Optional[Decimal]:
    """Convert a yfinance number to Decimal, None for missing/NaN values."""
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite() or result <= 0:
        return None
    return result


class MarketDataService:
    """
    Service for fetching quotes from yfinance.
    Network calls are retried; failures end up as None, never as exceptions.
    """

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_info(yf_symbol: str) -> Dict:
        """Fetch ticker info with retry logic."""
        ticker = yf.Ticker(yf_symbol)
        return ticker.info

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_history(yf_symbol: str, period: str = "1d") -> pd.DataFrame:
        """Fetch ticker history with retry logic."""
        ticker = yf.Ticker(yf_symbol)
        return ticker.history(period=period)

    @staticmethod
    @lru_cache(maxsize=256)
    def get_quote(symbol: str, market_type: str = "US") -> Optional[StockQuote]:
        """
        Fetch the latest quote with caching and retry logic.

        Args:
            symbol: Stock symbol
            market_type: Market type (US, HK, CN)

        Returns:
            StockQuote, or None if no price is available
        """
        try:
            yf_symbol = normalize_symbol(symbol, market_type)
            info = MarketDataService._fetch_ticker_info(yf_symbol) or {}

            # Try multiple price fields
            price = _to_decimal(
                info.get('currentPrice') or info.get('regularMarketPrice') or info.get('lastPrice')
            )
            previous_close = _to_decimal(info.get('previousClose'))

            if price is None or previous_close is None:
                hist = MarketDataService._fetch_ticker_history(yf_symbol, period="2d")
                if not hist.empty:
                    if price is None:
                        price = _to_decimal(hist['Close'].iloc[-1])
                    if previous_close is None and len(hist) >= 2:
                        previous_close = _to_decimal(hist['Close'].iloc[-2])

            if price is None:
                logger.warning(f"No price available for {symbol}")
                return None

            return StockQuote(
                symbol=symbol,
                price=price,
                previous_close=previous_close,
                volume=info.get('volume'),
                currency=info.get('currency') or currency_for_market(market_type),
                timestamp=datetime.now(timezone.utc)
            )

        except Exception as e:
            logger.error(f"Error fetching quote for {symbol}: {e}")
            return None

    @staticmethod
    def get_current_price(symbol: str, market_type: str = "US") -> Optional[Decimal]:
        """Fetch current stock price (cached through get_quote)."""
        quote = MarketDataService.get_quote(symbol, market_type)
        return quote.price if quote is not None else None

    @staticmethod
    def clear_cache():
        """Clear the LRU cache."""
        MarketDataService.get_quote.cache_clear()
        logger.info("Market data cache cleared")
