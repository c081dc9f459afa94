import asyncio
import random

from django.core.management.base import BaseCommand, CommandError

from videogate.catalog import AssetCatalog
from videogate.exceptions import AssetNotFound
from videogate.models import Asset
from videogate.processing import AssetProcessor


async def simulated_transcode(asset: Asset, seconds: float) -> None:
    await asyncio.sleep(seconds)


class Command(BaseCommand):
    help = 'Mark an uploaded asset as processing and wait for it to become ready.'

    def add_arguments(self, parser):
        parser.add_argument('asset_id', type=int)
        parser.add_argument(
            '--seconds',
            type=float,
            default=None,
            help='Simulated transcode duration (default: random 2-5s).',
        )

    def handle(self, *args, **options):
        asset_id = options['asset_id']
        seconds = options['seconds']
        if seconds is None:
            seconds = 2 + random.random() * 3

        status = asyncio.run(self._process(asset_id, seconds))
        if status != Asset.Status.READY:
            raise CommandError(f'Asset {asset_id} processing ended as {status}.')
        self.stdout.write(self.style.SUCCESS(f'Asset {asset_id} is ready.'))

    async def _process(self, asset_id: int, seconds: float) -> str:
        processor = AssetProcessor(AssetCatalog())
        try:
            handle = await processor.start(
                asset_id, lambda asset: simulated_transcode(asset, seconds))
        except AssetNotFound as exc:
            raise CommandError(exc.message) from exc
        return await handle.wait()
