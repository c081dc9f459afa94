"""
Factory for creating ledger clients.
"""
from typing import Any, Dict, Type

from .base import LedgerClient
from .evm import EvmLedgerClient
from .memory import InMemoryLedgerClient


class LedgerClientFactory:
    """Factory to create ledger clients based on provider name."""

    _clients: Dict[str, Type[LedgerClient]] = {
        'chiliz': EvmLedgerClient,
        'evm': EvmLedgerClient,
        'memory': InMemoryLedgerClient,
    }

    @classmethod
    def create(cls, provider: str, config: Dict[str, Any] = None) -> LedgerClient:
        """
        Create a ledger client for the specified provider.

        Args:
            provider: Provider name ('chiliz', 'memory', etc.)
            config: Optional configuration dict (RPC URL, signer key, contract)

        Returns:
            LedgerClient instance

        Raises:
            ValueError: If provider is not supported
        """
        provider_lower = provider.lower().strip()

        client_class = cls._clients.get(provider_lower)
        if client_class is None:
            supported = ', '.join(cls._clients.keys())
            raise ValueError(
                f"Unsupported ledger provider: {provider}. "
                f"Supported providers: {supported}"
            )

        return client_class(config or {})

    @classmethod
    def get_supported_providers(cls) -> list[str]:
        return list(cls._clients.keys())
