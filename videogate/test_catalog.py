from decimal import Decimal
from unittest.mock import patch

from django.db import OperationalError
from django.test import TestCase

from videogate.catalog import AssetCatalog
from videogate.exceptions import CatalogUnavailable
from videogate.models import Asset


class AssetCatalogTests(TestCase):
    def setUp(self) -> None:
        self.catalog = AssetCatalog()
        self.asset = Asset.objects.create(title='Match highlights', price=Decimal('2.50'))

    async def test_lookup_and_status_update(self):
        asset = await self.catalog.get_asset(self.asset.pk)

        self.assertEqual(asset.title, 'Match highlights')
        self.assertIsNone(await self.catalog.get_asset(999))
        self.assertTrue(await self.catalog.set_status(self.asset.pk, Asset.Status.READY))
        self.assertFalse(await self.catalog.set_status(999, Asset.Status.READY))
        self.assertEqual((await Asset.objects.aget(pk=self.asset.pk)).status, Asset.Status.READY)

    async def test_storage_failure_raises_catalog_unavailable(self):
        with patch.object(Asset.objects, 'filter', side_effect=OperationalError('db down')):
            with self.assertRaises(CatalogUnavailable):
                await self.catalog.get_asset(self.asset.pk)
            with self.assertRaises(CatalogUnavailable):
                await self.catalog.set_status(self.asset.pk, Asset.Status.FAILED)
