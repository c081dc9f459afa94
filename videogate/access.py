"""
Local access cache: the authoritative, always-available record of grants.
"""
import threading
from typing import List, Optional

from asgiref.sync import sync_to_async
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from loguru import logger

from videogate.exceptions import AccessStoreError
from videogate.models import AccessGrant


class AccessCache:
    """
    Grant store backed by the ``AccessGrant`` table.

    Writes are upserts: any prior record for the same (user, asset) pair is
    removed and a fresh one inserted, so re-granting refreshes ``granted_at``
    and ``transaction_id`` instead of duplicating. Storage failures surface
    as ``AccessStoreError``; there is nothing beneath this store to fall
    back to.
    """

    _write_lock = threading.Lock()

    async def grant_access(
        self,
        user_id: str,
        asset_id: int,
        transaction_id: Optional[str] = None,
    ) -> AccessGrant:
        grant = await sync_to_async(self._upsert)(user_id, asset_id, transaction_id)
        logger.info('Granted access: {} -> asset {} (tx {})',
                    user_id, asset_id, transaction_id)
        return grant

    async def check_access(self, user_id: str, asset_id: int) -> bool:
        return await sync_to_async(self._exists)(user_id, asset_id)

    async def revoke_access(self, user_id: str, asset_id: int) -> bool:
        removed = await sync_to_async(self._delete)(user_id, asset_id)
        if removed:
            logger.info('Revoked access: {} -> asset {}', user_id, asset_id)
        return removed

    async def get_user_access(self, user_id: str) -> List[AccessGrant]:
        return await sync_to_async(self._filter)(user_id=user_id)

    async def get_asset_access(self, asset_id: int) -> List[AccessGrant]:
        return await sync_to_async(self._filter)(asset_id=asset_id)

    async def get_by_transaction(self, transaction_id: str) -> Optional[AccessGrant]:
        grants = await sync_to_async(self._filter)(transaction_id=transaction_id)
        return grants[0] if grants else None

    def _upsert(self, user_id: str, asset_id: int, transaction_id: Optional[str]) -> AccessGrant:
        with self._write_lock:
            # A second attempt covers a concurrent writer from another process
            # slipping in between our delete and insert; the later write wins.
            for attempt in range(2):
                try:
                    with transaction.atomic():
                        AccessGrant.objects.filter(
                            user_id=user_id, asset_id=asset_id).delete()
                        return AccessGrant.objects.create(
                            user_id=user_id,
                            asset_id=asset_id,
                            granted_at=timezone.now(),
                            transaction_id=transaction_id,
                        )
                except IntegrityError as exc:
                    if attempt:
                        raise AccessStoreError(
                            'Unable to record access grant.') from exc
                    logger.debug('Concurrent grant for {} -> asset {}, retrying',
                                 user_id, asset_id)
                except DatabaseError as exc:
                    raise AccessStoreError('Access store unavailable.') from exc
        raise AccessStoreError('Unable to record access grant.')

    @staticmethod
    def _exists(user_id: str, asset_id: int) -> bool:
        try:
            return AccessGrant.objects.filter(
                user_id=user_id, asset_id=asset_id).exists()
        except DatabaseError as exc:
            raise AccessStoreError('Access store unavailable.') from exc

    @staticmethod
    def _delete(user_id: str, asset_id: int) -> bool:
        try:
            deleted, _ = AccessGrant.objects.filter(
                user_id=user_id, asset_id=asset_id).delete()
        except DatabaseError as exc:
            raise AccessStoreError('Access store unavailable.') from exc
        return deleted > 0

    @staticmethod
    def _filter(**lookup) -> List[AccessGrant]:
        try:
            return list(AccessGrant.objects.filter(**lookup))
        except DatabaseError as exc:
            raise AccessStoreError('Access store unavailable.') from exc
