"""Reporting — read-only запросы: книга заявок, история сделок, цена, статистика."""

from .market_queries import (
    MarketStatisticsReport,
    OrderBookView,
    PriceQuote,
    build_market_statistics,
    build_order_book,
    newest_first,
    quote_current_price,
    trades_for_user,
)

__all__ = [
    "OrderBookView",
    "PriceQuote",
    "MarketStatisticsReport",
    "build_order_book",
    "newest_first",
    "trades_for_user",
    "quote_current_price",
    "build_market_statistics",
]
