"""
In-process ledger with contract semantics, for development and tests.
"""
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Set, Tuple

from loguru import logger

from .base import LedgerClient


@dataclass(frozen=True)
class LedgerTransaction:
    """A state-changing call the in-memory ledger has committed."""
    tx_hash: str
    method: str
    user_ids: Tuple[str, ...]
    asset_id: int


class InMemoryLedgerClient(LedgerClient):
    """Keeps grants in a set and logs every committed write."""

    def __init__(self, config: Dict[str, Any] = None):
        super().__init__(config or {})
        self._grants: Set[Tuple[str, int]] = set()
        self.transactions: List[LedgerTransaction] = []

    @property
    def provider_name(self) -> str:
        return 'memory'

    def is_configured(self) -> bool:
        return True

    async def check_access(self, user_id: str, asset_id: int) -> bool:
        return (user_id, int(asset_id)) in self._grants

    async def grant_access(self, user_id: str, asset_id: int) -> bool:
        if await self.check_access(user_id, asset_id):
            return True
        self._grants.add((user_id, int(asset_id)))
        self._commit('grantAccess', (user_id,), asset_id)
        return True

    async def grant_access_batch(self, user_ids: Sequence[str], asset_id: int) -> bool:
        if not user_ids:
            return True
        for user_id in user_ids:
            self._grants.add((user_id, int(asset_id)))
        self._commit('grantAccessBatch', tuple(user_ids), asset_id)
        return True

    async def revoke_access(self, user_id: str, asset_id: int) -> bool:
        self._grants.discard((user_id, int(asset_id)))
        self._commit('revokeAccess', (user_id,), asset_id)
        return True

    def _commit(self, method: str, user_ids: Tuple[str, ...], asset_id: int) -> None:
        seed = f'{len(self.transactions)}:{method}:{",".join(user_ids)}:{asset_id}'
        tx_hash = '0x' + hashlib.sha256(seed.encode()).hexdigest()
        self.transactions.append(LedgerTransaction(
            tx_hash=tx_hash,
            method=method,
            user_ids=user_ids,
            asset_id=int(asset_id),
        ))
        logger.debug('In-memory ledger {} for asset {}: {}', method, asset_id, tx_hash)
