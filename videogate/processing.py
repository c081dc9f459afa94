"""
Asset processing transition (processing -> ready | failed).

The transcode step runs as an explicit asyncio task behind a handle that can
be awaited or cancelled, so callers and tests control when it finishes.
"""
import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from videogate.catalog import AssetCatalog
from videogate.exceptions import AssetNotFound
from videogate.models import Asset

Transcoder = Callable[[Asset], Awaitable[None]]


class ProcessingHandle:

    def __init__(self, asset_id: int, task: 'asyncio.Task[str]', catalog: AssetCatalog):
        self.asset_id = asset_id
        self.catalog = catalog
        self._task = task
        self._failure_write: Optional[asyncio.Future] = None
        # Runs even when the task is cancelled before its first step.
        task.add_done_callback(self._on_done)

    @property
    def status(self) -> str:
        if not self._task.done():
            return Asset.Status.PROCESSING
        if self._task.cancelled():
            return Asset.Status.FAILED
        return self._task.result()

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        return self._task.cancel()

    async def wait(self) -> str:
        """Wait for the transition and return the final asset status."""
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
        if self._failure_write is not None:
            await asyncio.shield(self._failure_write)
        return Asset.Status.FAILED

    def _on_done(self, task: 'asyncio.Task[str]') -> None:
        if task.cancelled():
            logger.warning('Asset {} processing cancelled', self.asset_id)
            self._failure_write = asyncio.ensure_future(
                self.catalog.set_status(self.asset_id, Asset.Status.FAILED))


class AssetProcessor:

    def __init__(self, catalog: AssetCatalog):
        self.catalog = catalog

    async def start(self, asset_id: int, transcode: Transcoder) -> ProcessingHandle:
        asset = await self.catalog.get_asset(asset_id)
        if asset is None:
            raise AssetNotFound(asset_id)

        await self.catalog.set_status(asset_id, Asset.Status.PROCESSING)
        task = asyncio.create_task(self._run(asset, transcode))
        return ProcessingHandle(asset_id, task, self.catalog)

    async def _run(self, asset: Asset, transcode: Transcoder) -> str:
        try:
            await transcode(asset)
            final = Asset.Status.READY
            logger.info('Asset {} processing complete', asset.pk)
        except Exception:
            logger.exception('Asset {} processing failed', asset.pk)
            final = Asset.Status.FAILED

        await self.catalog.set_status(asset.pk, final)
        return final
