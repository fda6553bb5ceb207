"""Ledger — settlement сделок и согласованность балансов."""

from .settlement import SettlementLedger

__all__ = [
    "SettlementLedger",
]
