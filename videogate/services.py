"""
Assembles the orchestrator and its collaborators from Django settings.
"""
from functools import lru_cache
from typing import Any, Dict

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver
from loguru import logger

from videogate.access import AccessCache
from videogate.catalog import AssetCatalog
from videogate.ledger import LedgerClient, LedgerClientFactory
from videogate.orchestrator import AccessOrchestrator
from videogate.payments import PaymentProviderFactory
from videogate.storage import StorageProvider, StorageProviderFactory


def _get_ledger_config() -> Dict[str, Any]:
    return {
        'rpc_url': getattr(settings, 'LEDGER_RPC_URL', ''),
        'chain_id': getattr(settings, 'LEDGER_CHAIN_ID', 88882),
        'contract_address': getattr(settings, 'LEDGER_CONTRACT_ADDRESS', ''),
        'signer_private_key': getattr(settings, 'LEDGER_SIGNER_PRIVATE_KEY', ''),
        'gas_limit': getattr(settings, 'LEDGER_GAS_LIMIT', 200000),
        'tx_timeout_seconds': getattr(settings, 'LEDGER_TX_TIMEOUT_SECONDS', 60),
        'rpc_timeout_seconds': getattr(settings, 'LEDGER_RPC_TIMEOUT_SECONDS', 10),
    }


def _get_payment_config() -> Dict[str, Any]:
    return {
        'realm': getattr(settings, 'PAYMENT_REALM', 'VideoGate'),
        'currency': getattr(settings, 'PAYMENT_CURRENCY', 'USD'),
        'verify_url': getattr(settings, 'PAYMENT_VERIFY_URL', ''),
        'api_key': getattr(settings, 'PAYMENT_API_KEY', ''),
        'verify_timeout_seconds': getattr(settings, 'PAYMENT_VERIFY_TIMEOUT_SECONDS', 10),
        'webhook_secret': getattr(settings, 'PAYMENT_WEBHOOK_SECRET', ''),
        'require_webhook_signature': getattr(settings, 'PAYMENT_WEBHOOK_REQUIRE_SIGNATURE', False),
    }


def _get_storage_config() -> Dict[str, Any]:
    return {
        'base_url': getattr(settings, 'STORAGE_BASE_URL', ''),
        'url_ttl_seconds': getattr(settings, 'STORAGE_URL_TTL_SECONDS', 300),
    }


def build_ledger() -> LedgerClient:
    return LedgerClientFactory.create(
        getattr(settings, 'LEDGER_PROVIDER', 'chiliz'), _get_ledger_config())


def build_storage() -> StorageProvider:
    return StorageProviderFactory.create(
        getattr(settings, 'STORAGE_PROVIDER', 'mock'), _get_storage_config())


def build_orchestrator() -> AccessOrchestrator:
    provider = getattr(settings, 'PAYMENT_PROVIDER', 'mock')
    payment_config = _get_payment_config()
    challenges, verifier = PaymentProviderFactory.create(provider, payment_config)

    orchestrator = AccessOrchestrator(
        catalog=AssetCatalog(),
        cache=AccessCache(),
        ledger=build_ledger(),
        challenges=challenges,
        verifier=verifier,
        storage=build_storage(),
        underpayment_policy=getattr(settings, 'PAYMENT_UNDERPAYMENT_POLICY', 'allow'),
        # Leave headroom over the provider's own HTTP timeout.
        verify_timeout=payment_config['verify_timeout_seconds'] + 5,
    )
    logger.info('Access orchestrator ready: payments={} ledger={} storage={}',
                provider, orchestrator.ledger.provider_name,
                orchestrator.storage.provider_name)
    return orchestrator


@lru_cache(maxsize=1)
def get_orchestrator() -> AccessOrchestrator:
    """Process-wide orchestrator, rebuilt whenever settings change."""
    return build_orchestrator()


@receiver(setting_changed)
def _reset_orchestrator(**kwargs) -> None:
    get_orchestrator.cache_clear()
