"""
Error taxonomy for the access-control core.
"""
from typing import Any, Dict, List, Optional


class VideoGateError(Exception):
    """Base error for access-control failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class VideoGateValidationError(VideoGateError):
    """Raised when an incoming request fails validation."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


class AssetNotFound(VideoGateError):
    """Raised when the requested asset does not exist."""

    def __init__(self, asset_id: int):
        super().__init__(f'Asset {asset_id} not found.')
        self.asset_id = asset_id


class AssetNotReady(VideoGateError):
    """Raised when the asset exists but cannot be streamed yet."""

    def __init__(self, asset_id: int, status: str):
        super().__init__(f'Asset {asset_id} is not ready for streaming.')
        self.asset_id = asset_id
        self.status = status


class PaymentDenied(VideoGateError):
    """Raised when a receipt or webhook fails verification.

    The message is deliberately generic; the reason is only logged.
    """


class AccessStoreError(VideoGateError):
    """Raised when the local access cache cannot be read or written."""


class ConfigurationError(VideoGateError):
    """Raised when a collaborator is configured inconsistently."""


class CatalogUnavailable(VideoGateError):
    """Raised when the asset catalog cannot be read or updated."""
