"""
Access decision orchestrator.

Authorization is the logical OR of the local access cache and the ledger.
Grants are dual-written: the cache first (authoritative, must succeed), then
the ledger (best effort, its failures are logged and swallowed). Verification
failures end in a clean denial with no state change.
"""
import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from videogate.access import AccessCache
from videogate.catalog import AssetCatalog
from videogate.exceptions import (
    AssetNotFound,
    AssetNotReady,
    PaymentDenied,
    VideoGateValidationError,
)
from videogate.ledger import LedgerClient
from videogate.models import AccessGrant, Asset
from videogate.payments import ChallengeIssuer, PaymentChallenge, PaymentRecord, PaymentVerifier
from videogate.payments.base import Receipt
from videogate.storage import StorageProvider

UNDERPAYMENT_ALLOW = 'allow'
UNDERPAYMENT_REJECT = 'reject'
UNDERPAYMENT_POLICIES = (UNDERPAYMENT_ALLOW, UNDERPAYMENT_REJECT)

PAYMENT_DENIED_MESSAGE = 'Invalid or expired payment receipt.'


@dataclass(frozen=True)
class AccessGranted:
    asset_id: int
    user_id: str
    descriptor: Dict[str, Any]


@dataclass(frozen=True)
class PaymentRequired:
    asset_id: int
    price: Decimal
    challenge: PaymentChallenge


AccessOutcome = Union[AccessGranted, PaymentRequired]


@dataclass(frozen=True)
class WebhookOutcome:
    record: PaymentRecord
    already_granted: bool = False
    ledger_recorded: bool = False


@dataclass(frozen=True)
class GrantOutcome:
    grant: AccessGrant
    ledger_recorded: bool


@dataclass
class AccessHistory:
    user_id: str
    purchases: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_purchases(self) -> int:
        return len(self.purchases)

    @property
    def total_spent(self) -> Decimal:
        return sum((item['price'] or Decimal('0') for item in self.purchases), Decimal('0'))


def _validate_asset_id(asset_id: Any) -> int:
    if isinstance(asset_id, bool) or not isinstance(asset_id, int) or asset_id <= 0:
        raise VideoGateValidationError(
            'Invalid asset id.',
            details=[{'field': 'assetId', 'message': 'Must be a positive integer.'}],
        )
    return asset_id


def _validate_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise VideoGateValidationError(
            'User address required.',
            details=[{'field': 'userAddress', 'message': 'This field is required.'}],
        )
    return user_id


class AccessOrchestrator:

    def __init__(
        self,
        catalog: AssetCatalog,
        cache: AccessCache,
        ledger: LedgerClient,
        challenges: ChallengeIssuer,
        verifier: PaymentVerifier,
        storage: StorageProvider,
        underpayment_policy: str = UNDERPAYMENT_ALLOW,
        verify_timeout: Optional[float] = 30,
    ):
        if underpayment_policy not in UNDERPAYMENT_POLICIES:
            raise ValueError(
                f'Unknown underpayment policy: {underpayment_policy}. '
                f'Supported policies: {", ".join(UNDERPAYMENT_POLICIES)}'
            )
        self.catalog = catalog
        self.cache = cache
        self.ledger = ledger
        self.challenges = challenges
        self.verifier = verifier
        self.storage = storage
        self.underpayment_policy = underpayment_policy
        self.verify_timeout = verify_timeout

    async def check_access(self, user_id: str, asset_id: int) -> bool:
        """Cache OR ledger; the cache is asked first and a hit skips the ledger."""
        if await self.cache.check_access(user_id, asset_id):
            return True
        return await self._ledger_check(user_id, asset_id)

    async def request_access(self, asset_id: int, user_id: Optional[str] = None) -> AccessOutcome:
        asset = await self._get_asset(asset_id)
        if not asset.is_ready:
            raise AssetNotReady(asset.pk, asset.status)

        if user_id and await self.check_access(user_id, asset.pk):
            descriptor = await self.storage.generate_access_descriptor(asset)
            return AccessGranted(asset_id=asset.pk, user_id=user_id, descriptor=descriptor)

        challenge = self.challenges.issue_challenge(asset.pk, asset.price)
        return PaymentRequired(asset_id=asset.pk, price=asset.price, challenge=challenge)

    async def verify_payment(
        self,
        asset_id: int,
        receipt: Receipt,
        user_id: Optional[str] = None,
    ) -> PaymentRecord:
        asset = await self._get_asset(asset_id)

        record = await self._verify(asset.pk, receipt, user_id)
        if record is None:
            raise PaymentDenied(PAYMENT_DENIED_MESSAGE)

        if record.asset_id != asset.pk:
            logger.info('Receipt {} is for asset {}, not requested asset {}',
                        record.transaction_id, record.asset_id, asset.pk)
            raise PaymentDenied(PAYMENT_DENIED_MESSAGE)
        self._enforce_amount(asset, record)

        await self._dual_write(record.payer_id, asset.pk, record.transaction_id)
        return record

    async def process_webhook(self, body: bytes, signature: Optional[str] = None) -> WebhookOutcome:
        logger.info('Received payment webhook')
        try:
            record = await self.verifier.process_webhook(body, signature)
        except Exception:
            logger.exception('Webhook verification raised')
            record = None
        if record is None:
            logger.warning('Webhook processing failed or invalid payload')
            raise PaymentDenied('Invalid webhook payload.')

        asset = await self.catalog.get_asset(record.asset_id)
        if asset is None:
            logger.warning('Webhook for non-existent asset: {}', record.asset_id)
            raise AssetNotFound(record.asset_id)
        self._enforce_amount(asset, record)

        # Providers retry deliveries; an existing grant means nothing to do.
        if await self.cache.check_access(record.payer_id, asset.pk):
            logger.info('Access already exists for {} -> asset {}', record.payer_id, asset.pk)
            return WebhookOutcome(record=record, already_granted=True)

        outcome = await self._dual_write(record.payer_id, asset.pk, record.transaction_id)
        return WebhookOutcome(record=record, ledger_recorded=outcome.ledger_recorded)

    async def grant(
        self,
        user_id: str,
        asset_id: int,
        transaction_id: Optional[str] = None,
    ) -> GrantOutcome:
        """Grant access without a payment (administrative or development path)."""
        _validate_user_id(user_id)
        asset = await self._get_asset(asset_id)
        return await self._dual_write(user_id, asset.pk, transaction_id)

    async def revoke(self, user_id: str, asset_id: int) -> bool:
        """Remove access from both stores; returns whether the cache held a grant."""
        _validate_user_id(user_id)
        _validate_asset_id(asset_id)

        removed = await self.cache.revoke_access(user_id, asset_id)
        try:
            if not await self.ledger.revoke_access(user_id, asset_id):
                logger.warning('Ledger revocation failed for {} -> asset {}', user_id, asset_id)
        except Exception as exc:
            logger.warning('Ledger revocation raised for {} -> asset {}: {}',
                           user_id, asset_id, exc)
        return removed

    async def payment_status(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        grant = await self.cache.get_by_transaction(transaction_id)
        if grant is None:
            return None
        asset = await self.catalog.get_asset(grant.asset_id)
        return {
            'transactionId': transaction_id,
            'assetId': grant.asset_id,
            'assetTitle': asset.title if asset else None,
            'userAddress': grant.user_id,
            'grantedAt': grant.granted_at,
            'status': 'completed',
        }

    async def access_history(self, user_id: str) -> AccessHistory:
        _validate_user_id(user_id)
        history = AccessHistory(user_id=user_id)
        for grant in await self.cache.get_user_access(user_id):
            asset = await self.catalog.get_asset(grant.asset_id)
            history.purchases.append({
                'assetId': grant.asset_id,
                'assetTitle': asset.title if asset else None,
                'price': asset.price if asset else None,
                'grantedAt': grant.granted_at,
                'transactionId': grant.transaction_id,
            })
        history.purchases.sort(key=lambda item: item['grantedAt'], reverse=True)
        return history

    async def _get_asset(self, asset_id: int) -> Asset:
        _validate_asset_id(asset_id)
        asset = await self.catalog.get_asset(asset_id)
        if asset is None:
            raise AssetNotFound(asset_id)
        return asset

    async def _verify(self, asset_id: int, receipt: Receipt, user_id: Optional[str]) -> Optional[PaymentRecord]:
        try:
            return await asyncio.wait_for(
                self.verifier.verify_receipt(asset_id, receipt, user_id),
                timeout=self.verify_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning('Payment verification for asset {} timed out after {}s',
                           asset_id, self.verify_timeout)
        except Exception:
            logger.exception('Payment verification for asset {} raised', asset_id)
        return None

    def _enforce_amount(self, asset: Asset, record: PaymentRecord) -> None:
        if record.amount >= asset.price:
            return
        if self.underpayment_policy == UNDERPAYMENT_REJECT:
            logger.info('Underpayment rejected for asset {}: paid {} of {} (tx {})',
                        asset.pk, record.amount, asset.price, record.transaction_id)
            raise PaymentDenied(PAYMENT_DENIED_MESSAGE)
        logger.warning('Underpayment accepted for asset {}: paid {} of {} (tx {})',
                       asset.pk, record.amount, asset.price, record.transaction_id)

    async def _dual_write(self, user_id: str, asset_id: int, transaction_id: Optional[str]) -> GrantOutcome:
        # Cache errors propagate: without the cache write the grant does not exist.
        grant = await self.cache.grant_access(user_id, asset_id, transaction_id)
        ledger_recorded = await self._ledger_grant(user_id, asset_id)
        return GrantOutcome(grant=grant, ledger_recorded=ledger_recorded)

    async def _ledger_check(self, user_id: str, asset_id: int) -> bool:
        try:
            return await self.ledger.check_access(user_id, asset_id)
        except Exception as exc:
            logger.warning('Ledger access check raised for {} -> asset {}: {}',
                           user_id, asset_id, exc)
            return False

    async def _ledger_grant(self, user_id: str, asset_id: int) -> bool:
        try:
            recorded = await self.ledger.grant_access(user_id, asset_id)
        except Exception as exc:
            logger.warning('Ledger access grant raised for {} -> asset {}: {}',
                           user_id, asset_id, exc)
            return False
        if not recorded:
            logger.warning('Ledger access grant failed for {} -> asset {}', user_id, asset_id)
        return recorded
