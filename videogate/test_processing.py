import asyncio
from decimal import Decimal

from django.test import TestCase

from videogate.catalog import AssetCatalog
from videogate.exceptions import AssetNotFound
from videogate.models import Asset
from videogate.processing import AssetProcessor


class AssetProcessorTests(TestCase):
    def setUp(self) -> None:
        self.asset = Asset.objects.create(
            title='Match highlights', price=Decimal('2.50'), status=Asset.Status.UPLOADING)
        self.processor = AssetProcessor(AssetCatalog())

    async def status_of(self, asset_id: int) -> str:
        return (await Asset.objects.aget(pk=asset_id)).status

    async def test_successful_transcode_marks_ready(self):
        release = asyncio.Event()

        async def transcode(asset):
            await release.wait()

        handle = await self.processor.start(self.asset.pk, transcode)
        self.assertEqual(handle.status, Asset.Status.PROCESSING)
        self.assertEqual(await self.status_of(self.asset.pk), Asset.Status.PROCESSING)

        release.set()

        self.assertEqual(await handle.wait(), Asset.Status.READY)
        self.assertTrue(handle.done())
        self.assertEqual(await self.status_of(self.asset.pk), Asset.Status.READY)

    async def test_transcode_error_marks_failed(self):
        async def transcode(asset):
            raise RuntimeError('ffmpeg exited with status 1')

        handle = await self.processor.start(self.asset.pk, transcode)

        self.assertEqual(await handle.wait(), Asset.Status.FAILED)
        self.assertEqual(await self.status_of(self.asset.pk), Asset.Status.FAILED)

    async def test_cancel_marks_failed(self):
        started = asyncio.Event()

        async def transcode(asset):
            started.set()
            await asyncio.sleep(10)

        handle = await self.processor.start(self.asset.pk, transcode)
        await started.wait()

        self.assertTrue(handle.cancel())

        self.assertEqual(await handle.wait(), Asset.Status.FAILED)
        self.assertEqual(handle.status, Asset.Status.FAILED)
        self.assertEqual(await self.status_of(self.asset.pk), Asset.Status.FAILED)

    async def test_cancel_before_first_step_marks_failed(self):
        transcode_ran = False

        async def transcode(asset):
            nonlocal transcode_ran
            transcode_ran = True

        handle = await self.processor.start(self.asset.pk, transcode)
        handle.cancel()

        self.assertEqual(await handle.wait(), Asset.Status.FAILED)
        self.assertFalse(transcode_ran)
        self.assertEqual(await self.status_of(self.asset.pk), Asset.Status.FAILED)

    async def test_unknown_asset(self):
        async def transcode(asset):
            pass

        with self.assertRaises(AssetNotFound):
            await self.processor.start(999, transcode)
