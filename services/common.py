"""
Common utilities and shared functions.
Symbol normalization and market inference for quote lookups.
"""

import logging

logger = logging.getLogger(__name__)


# Currency mapping for market types
MARKET_CURRENCY_MAP = {
    "US": "USD",
    "HK": "HKD",
    "CN": "CNY",
    "AU": "AUD",
}


def normalize_symbol(symbol: str, market_type: str) -> str:
    """
    Convert a stock symbol to yfinance format based on market type.

    Args:
        symbol: Stock symbol (e.g., "NVDA", "0700", "600519", "CBA")
        market_type: Market type ("US", "HK", "CN", "AU")

    Returns:
        Properly formatted yfinance symbol

    Examples:
        >>> normalize_symbol("NVDA", "US")
        'NVDA'
        >>> normalize_symbol("0700", "HK")
        '0700.HK'
        >>> normalize_symbol("600519", "CN")
        '600519.SS'
        >>> normalize_symbol("CBA", "AU")
        'CBA.AX'
    """
    symbol = symbol.strip().upper()
    if market_type == "US":
        return symbol
    elif market_type == "HK":
        if not symbol.endswith(".HK"):
            return f"{symbol}.HK"
        return symbol
    elif market_type == "CN":
        if symbol.endswith((".SS", ".SZ")):
            return symbol
        return f"{symbol}.SS"
    elif market_type == "AU":
        if not symbol.endswith(".AX"):
            return f"{symbol}.AX"
        return symbol
    else:
        logger.warning(f"Unknown market type: {market_type}, returning symbol as-is")
        return symbol


def infer_market_type(symbol: str) -> str:
    """
    Infer market type from symbol format.

    Args:
        symbol: Stock symbol

    Returns:
        Inferred market type ("US", "HK", "CN" or "AU")
    """
    symbol = symbol.strip().upper()
    if symbol.endswith(".HK"):
        return "HK"
    if symbol.endswith((".SS", ".SZ")):
        return "CN"
    if symbol.endswith(".AX"):
        return "AU"
    # Bare numeric codes
    if len(symbol) == 6 and symbol.isdigit():
        return "CN"
    if len(symbol) == 4 and symbol.isdigit():
        return "HK"
    return "US"


def currency_for_market(market_type: str) -> str:
    """Quote currency of a market, USD when unknown."""
    return MARKET_CURRENCY_MAP.get(market_type, "USD")
