"""
Authorization ledger clients.
"""
from .base import LedgerClient
from .evm import EvmLedgerClient
from .memory import InMemoryLedgerClient, LedgerTransaction
from .factory import LedgerClientFactory

__all__ = [
    'LedgerClient',
    'EvmLedgerClient',
    'InMemoryLedgerClient',
    'LedgerTransaction',
    'LedgerClientFactory',
]
