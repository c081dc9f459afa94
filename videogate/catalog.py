"""
Read-mostly view of the asset catalog.

Catalog management itself happens elsewhere (admin, upload tooling); the
access core only needs existence, price and status lookups.
"""
from typing import Optional

from asgiref.sync import sync_to_async
from django.db import DatabaseError
from loguru import logger

from videogate.exceptions import CatalogUnavailable
from videogate.models import Asset


class AssetCatalog:

    async def get_asset(self, asset_id: int) -> Optional[Asset]:
        return await sync_to_async(self._get_asset)(asset_id)

    async def set_status(self, asset_id: int, status: str) -> bool:
        updated = await sync_to_async(self._set_status)(asset_id, status)
        if updated:
            logger.info('Asset {} status -> {}', asset_id, status)
        return updated

    @staticmethod
    def _get_asset(asset_id: int) -> Optional[Asset]:
        try:
            return Asset.objects.filter(pk=asset_id).first()
        except DatabaseError as exc:
            raise CatalogUnavailable('Asset catalog unavailable.') from exc

    @staticmethod
    def _set_status(asset_id: int, status: str) -> bool:
        try:
            asset = Asset.objects.filter(pk=asset_id).first()
            if asset is None:
                return False
            asset.status = status
            asset.save(update_fields=['status', 'updated_at'])
        except DatabaseError as exc:
            raise CatalogUnavailable('Asset catalog unavailable.') from exc
        return True
