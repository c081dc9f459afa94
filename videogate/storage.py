"""
Storage/streaming collaborator.

Only consulted after access has been authorized; the core does not care how
the descriptor is produced.
"""
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Type

from loguru import logger

from videogate.models import Asset


class StorageProvider(ABC):

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.url_ttl_seconds = int(config.get('url_ttl_seconds', 300))

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def generate_access_descriptor(self, asset: Asset) -> Dict[str, Any]:
        """Return the streaming handle for an authorized viewer."""
        pass

    def is_configured(self) -> bool:
        return True

    def get_config(self) -> Dict[str, Any]:
        return {'provider': self.provider_name, 'isConfigured': self.is_configured()}

    def _expiry(self) -> int:
        return int(time.time()) + self.url_ttl_seconds

    def _descriptor(self, asset: Asset, manifest_url: str) -> Dict[str, Any]:
        return {
            'provider': self.provider_name,
            'manifestUrl': manifest_url,
            'assetId': asset.pk,
            'expiresIn': self.url_ttl_seconds,
        }


class MockStorageProvider(StorageProvider):

    @property
    def provider_name(self) -> str:
        return 'mock'

    async def generate_access_descriptor(self, asset: Asset) -> Dict[str, Any]:
        logger.debug('Mock HLS manifest URL requested for asset {}', asset.pk)
        url = (f'https://mock-storage.example.com/hls/{asset.pk}/playlist.m3u8'
               f'?expires={self._expiry()}')
        return self._descriptor(asset, url)


class CdnStorageProvider(StorageProvider):
    """HLS manifests published under a CDN base URL."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.base_url = config.get('base_url', '').rstrip('/')

    @property
    def provider_name(self) -> str:
        return 'cdn'

    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def generate_access_descriptor(self, asset: Asset) -> Dict[str, Any]:
        url = (f'{self.base_url}/videos/hls/{asset.pk}/playlist.m3u8'
               f'?expires={self._expiry()}')
        return self._descriptor(asset, url)


class StorageProviderFactory:
    """Factory to create storage providers based on provider name."""

    _providers: Dict[str, Type[StorageProvider]] = {
        'mock': MockStorageProvider,
        'cdn': CdnStorageProvider,
    }

    @classmethod
    def create(cls, provider: str, config: Dict[str, Any] = None) -> StorageProvider:
        provider_lower = provider.lower().strip()

        provider_class = cls._providers.get(provider_lower)
        if provider_class is None:
            supported = ', '.join(cls._providers.keys())
            raise ValueError(
                f"Unsupported storage provider: {provider}. "
                f"Supported providers: {supported}"
            )

        return provider_class(config or {})
