"""
Authorization ledger client interface.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Sequence


class LedgerClient(ABC):
    """
    Abstract client for an external (user, asset) -> bool authorization ledger.

    Every operation is fail-soft: reads fail closed and writes report
    ``False`` instead of raising, so callers can treat the ledger as an
    advisory second source behind the local access cache.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the ledger client.

        Args:
            config: Provider-specific configuration (RPC URL, signer key,
                contract address, timeouts)
        """
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'chiliz', 'memory')."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """True only when reads and writes can actually reach the ledger."""
        pass

    @abstractmethod
    async def check_access(self, user_id: str, asset_id: int) -> bool:
        """
        Query the ledger for an existing grant.

        Returns:
            True if granted; False if not granted or the ledger is unreachable
        """
        pass

    @abstractmethod
    async def grant_access(self, user_id: str, asset_id: int) -> bool:
        """
        Record a grant, skipping the write when the ledger already has it.

        Returns:
            True once the grant is committed (or already present), else False
        """
        pass

    @abstractmethod
    async def grant_access_batch(self, user_ids: Sequence[str], asset_id: int) -> bool:
        """
        Record grants for several users in one transaction.

        Partial failure is reported as a single False.
        """
        pass

    @abstractmethod
    async def revoke_access(self, user_id: str, asset_id: int) -> bool:
        """Remove a grant. Returns False on any failure."""
        pass

    def get_network_info(self) -> Dict[str, Any]:
        return {
            'provider': self.provider_name,
            'isConfigured': self.is_configured(),
        }
