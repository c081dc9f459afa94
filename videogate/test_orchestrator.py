import asyncio
import json
from decimal import Decimal
from typing import Sequence
from unittest.mock import AsyncMock, patch

from asgiref.sync import async_to_sync, sync_to_async
from django.test import TestCase, override_settings

from videogate.access import AccessCache
from videogate.catalog import AssetCatalog
from videogate.exceptions import (
    AccessStoreError,
    AssetNotFound,
    AssetNotReady,
    PaymentDenied,
    VideoGateValidationError,
)
from videogate.ledger import InMemoryLedgerClient, LedgerClient
from videogate.models import AccessGrant, Asset
from videogate.orchestrator import (
    UNDERPAYMENT_REJECT,
    AccessGranted,
    AccessOrchestrator,
    PaymentRequired,
)
from videogate.payments import MockChallengeIssuer, MockPaymentVerifier
from videogate.services import build_orchestrator, get_orchestrator
from videogate.storage import MockStorageProvider


class CountingLedger(InMemoryLedgerClient):
    def __init__(self):
        super().__init__()
        self.grant_calls = 0

    async def grant_access(self, user_id: str, asset_id: int) -> bool:
        self.grant_calls += 1
        return await super().grant_access(user_id, asset_id)


class ExplodingLedger(LedgerClient):
    """Every call fails the way an unreachable RPC node would."""

    def __init__(self):
        super().__init__({})
        self.grant_calls = 0

    @property
    def provider_name(self) -> str:
        return 'exploding'

    def is_configured(self) -> bool:
        return True

    async def check_access(self, user_id: str, asset_id: int) -> bool:
        raise ConnectionError('ledger unreachable')

    async def grant_access(self, user_id: str, asset_id: int) -> bool:
        self.grant_calls += 1
        raise ConnectionError('ledger unreachable')

    async def grant_access_batch(self, user_ids: Sequence[str], asset_id: int) -> bool:
        raise ConnectionError('ledger unreachable')

    async def revoke_access(self, user_id: str, asset_id: int) -> bool:
        raise ConnectionError('ledger unreachable')


class OrchestratorTestCase(TestCase):
    def setUp(self) -> None:
        self.asset = Asset.objects.create(
            id=42,
            title='Youth Training Session - Ball Control',
            price=Decimal('5.99'),
            status=Asset.Status.READY,
        )
        self.ledger = CountingLedger()
        self.verifier = MockPaymentVerifier()

    def make_orchestrator(self, **overrides) -> AccessOrchestrator:
        parts = {
            'catalog': AssetCatalog(),
            'cache': AccessCache(),
            'ledger': self.ledger,
            'challenges': MockChallengeIssuer(),
            'verifier': self.verifier,
            'storage': MockStorageProvider({}),
        }
        parts.update(overrides)
        return AccessOrchestrator(**parts)

    def receipt(self, **fields):
        receipt = {'assetId': 42, 'transactionId': 'tx_1', 'userId': '0xABC', 'amount': 5.99}
        receipt.update(fields)
        return receipt


class PurchaseFlowTests(OrchestratorTestCase):
    async def test_unpaid_user_gets_challenge_then_access_after_payment(self):
        ledger = ExplodingLedger()
        orchestrator = self.make_orchestrator(ledger=ledger)

        outcome = await orchestrator.request_access(42, '0xABC')
        self.assertIsInstance(outcome, PaymentRequired)
        self.assertEqual(outcome.price, Decimal('5.99'))
        self.assertEqual(outcome.asset_id, 42)
        self.assertEqual(outcome.challenge.headers['X-Payment-Amount'], '5.99')

        record = await orchestrator.verify_payment(42, self.receipt(), '0xABC')
        self.assertEqual(record.transaction_id, 'tx_1')
        self.assertEqual(ledger.grant_calls, 1)

        grant = await AccessGrant.objects.aget(user_id='0xABC', asset_id=42)
        self.assertEqual(grant.transaction_id, 'tx_1')

        outcome = await orchestrator.request_access(42, '0xABC')
        self.assertIsInstance(outcome, AccessGranted)
        self.assertIn('playlist.m3u8', outcome.descriptor['manifestUrl'])
        self.assertTrue(await orchestrator.check_access('0xABC', 42))

    async def test_anonymous_request_gets_challenge(self):
        outcome = await self.make_orchestrator().request_access(42)

        self.assertIsInstance(outcome, PaymentRequired)

    async def test_zero_price_asset_still_challenges(self):
        await Asset.objects.acreate(id=7, title='Free clip', price=Decimal('0'),
                                    status=Asset.Status.READY)

        outcome = await self.make_orchestrator().request_access(7, '0xABC')

        self.assertIsInstance(outcome, PaymentRequired)
        self.assertEqual(outcome.price, Decimal('0'))

    async def test_ledger_write_follows_cache_write(self):
        order = []
        cache = AccessCache()
        original_grant = cache.grant_access

        async def cache_grant(*args, **kwargs):
            order.append('cache')
            return await original_grant(*args, **kwargs)

        async def ledger_grant(*args, **kwargs):
            order.append('ledger')
            return True

        cache.grant_access = cache_grant
        self.ledger.grant_access = ledger_grant

        await self.make_orchestrator(cache=cache).verify_payment(42, self.receipt())

        self.assertEqual(order, ['cache', 'ledger'])


class AuthorizationSemanticsTests(OrchestratorTestCase):
    async def test_cache_grant_wins_over_failing_ledger(self):
        orchestrator = self.make_orchestrator(ledger=ExplodingLedger())
        await orchestrator.cache.grant_access('0xABC', 42)

        self.assertTrue(await orchestrator.check_access('0xABC', 42))

    async def test_ledger_only_grant_is_honored(self):
        await self.ledger.grant_access('0xABC', 42)

        self.assertTrue(await self.make_orchestrator().check_access('0xABC', 42))
        self.assertFalse(await AccessGrant.objects.filter(user_id='0xABC').aexists())

    async def test_neither_source_denies(self):
        orchestrator = self.make_orchestrator(ledger=ExplodingLedger())

        self.assertFalse(await orchestrator.check_access('0xABC', 42))

    async def test_repeated_grants_leave_one_record_and_one_ledger_write(self):
        orchestrator = self.make_orchestrator()

        for index in range(3):
            await orchestrator.grant('0xABC', 42, f'admin_{index}')

        self.assertEqual(await AccessGrant.objects.filter(user_id='0xABC', asset_id=42).acount(), 1)
        self.assertEqual(len(self.ledger.transactions), 1)
        self.assertTrue(await orchestrator.check_access('0xABC', 42))

    async def test_revoke_without_grant_returns_false(self):
        self.assertFalse(await self.make_orchestrator().revoke('0xNOBODY', 42))

    async def test_revoke_removes_from_both_stores(self):
        orchestrator = self.make_orchestrator()
        await orchestrator.grant('0xABC', 42)

        self.assertTrue(await orchestrator.revoke('0xABC', 42))
        self.assertFalse(await orchestrator.check_access('0xABC', 42))

    async def test_revoke_tolerates_ledger_failure(self):
        orchestrator = self.make_orchestrator(ledger=ExplodingLedger())
        await orchestrator.cache.grant_access('0xABC', 42)

        self.assertTrue(await orchestrator.revoke('0xABC', 42))


class DenialTests(OrchestratorTestCase):
    def setUp(self) -> None:
        super().setUp()
        AccessGrant.objects.create(user_id='0xOLD', asset_id=42, transaction_id='tx_old')
        async_to_sync(self.ledger.grant_access)('0xOLD', 42)
        self.ledger.grant_calls = 0
        self.stored_grants = self.snapshot_grants()
        self.ledger_transactions = list(self.ledger.transactions)

    @staticmethod
    def snapshot_grants():
        return list(AccessGrant.objects.order_by('pk').values_list(
            'pk', 'user_id', 'asset_id', 'granted_at', 'transaction_id'))

    async def assert_nothing_written(self):
        self.assertEqual(await sync_to_async(self.snapshot_grants)(), self.stored_grants)
        self.assertEqual(self.ledger.transactions, self.ledger_transactions)
        self.assertFalse(await self.ledger.check_access('0xABC', 42))
        self.assertEqual(self.ledger.grant_calls, 0)

    async def test_unverifiable_receipt_is_denied_without_side_effects(self):
        orchestrator = self.make_orchestrator()

        with self.assertRaises(PaymentDenied):
            await orchestrator.verify_payment(42, {'assetId': 42, 'amount': 5.99})
        await self.assert_nothing_written()

    async def test_receipt_for_other_asset_is_denied(self):
        with self.assertRaises(PaymentDenied):
            await self.make_orchestrator().verify_payment(42, self.receipt(assetId=43))
        await self.assert_nothing_written()

    async def test_verifier_exception_is_denial(self):
        self.verifier.verify_receipt = AsyncMock(side_effect=RuntimeError('backend exploded'))

        with self.assertRaises(PaymentDenied):
            await self.make_orchestrator().verify_payment(42, self.receipt())
        await self.assert_nothing_written()

    async def test_verifier_timeout_is_denial(self):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        self.verifier.verify_receipt = hang

        with self.assertRaises(PaymentDenied):
            await self.make_orchestrator(verify_timeout=0.05).verify_payment(42, self.receipt())
        await self.assert_nothing_written()

    async def test_underpayment_allowed_by_default(self):
        record = await self.make_orchestrator().verify_payment(42, self.receipt(amount=1))

        self.assertEqual(record.amount, Decimal('1'))

    async def test_underpayment_rejected_by_policy(self):
        orchestrator = self.make_orchestrator(underpayment_policy=UNDERPAYMENT_REJECT)

        with self.assertRaises(PaymentDenied):
            await orchestrator.verify_payment(42, self.receipt(amount=1))
        await self.assert_nothing_written()

        record = await orchestrator.verify_payment(42, self.receipt(amount='6.00'))
        self.assertEqual(record.amount, Decimal('6.00'))

    def test_unknown_policy_is_rejected(self):
        with self.assertRaises(ValueError):
            self.make_orchestrator(underpayment_policy='haggle')

    async def test_cache_failure_fails_request_before_ledger(self):
        cache = AccessCache()
        cache.grant_access = AsyncMock(side_effect=AccessStoreError('Access store unavailable.'))

        with self.assertRaises(AccessStoreError):
            await self.make_orchestrator(cache=cache).verify_payment(42, self.receipt())
        self.assertEqual(self.ledger.grant_calls, 0)


class ValidationTests(OrchestratorTestCase):
    async def test_invalid_asset_ids(self):
        orchestrator = self.make_orchestrator()

        for bad in (0, -1, '42', None, True):
            with self.assertRaises(VideoGateValidationError):
                await orchestrator.request_access(bad, '0xABC')

    async def test_unknown_asset_is_rejected_before_payment_logic(self):
        self.verifier.verify_receipt = AsyncMock()

        with self.assertRaises(AssetNotFound):
            await self.make_orchestrator().verify_payment(999, self.receipt(assetId=999))
        self.verifier.verify_receipt.assert_not_called()

    async def test_asset_not_ready(self):
        await Asset.objects.acreate(id=8, title='Raw upload', price=Decimal('3.00'),
                                    status=Asset.Status.PROCESSING)

        with self.assertRaises(AssetNotReady):
            await self.make_orchestrator().request_access(8, '0xABC')

    async def test_grant_requires_user(self):
        with self.assertRaises(VideoGateValidationError):
            await self.make_orchestrator().grant('', 42)


class WebhookTests(OrchestratorTestCase):
    def body(self, **fields) -> bytes:
        payload = {
            'id': 'evt_1',
            'metadata': {'asset_id': 42},
            'customer': {'address': '0xABC'},
            'amount': '5.99',
        }
        payload.update(fields)
        return json.dumps(payload).encode()

    async def test_duplicate_delivery_short_circuits(self):
        orchestrator = self.make_orchestrator()

        first = await orchestrator.process_webhook(self.body())
        second = await orchestrator.process_webhook(self.body())

        self.assertFalse(first.already_granted)
        self.assertTrue(first.ledger_recorded)
        self.assertTrue(second.already_granted)
        self.assertEqual(first.record, second.record)
        self.assertEqual(await AccessGrant.objects.acount(), 1)
        self.assertEqual(self.ledger.grant_calls, 1)

    async def test_invalid_payload_is_denied(self):
        with self.assertRaises(PaymentDenied):
            await self.make_orchestrator().process_webhook(b'{"id": "evt_1"}')
        self.assertEqual(await AccessGrant.objects.acount(), 0)

    async def test_unknown_asset(self):
        with self.assertRaises(AssetNotFound):
            await self.make_orchestrator().process_webhook(self.body(metadata={'asset_id': 999}))
        self.assertEqual(await AccessGrant.objects.acount(), 0)

    async def test_ledger_failure_does_not_fail_webhook(self):
        outcome = await self.make_orchestrator(ledger=ExplodingLedger()).process_webhook(self.body())

        self.assertFalse(outcome.ledger_recorded)
        self.assertTrue(await AccessGrant.objects.filter(transaction_id='evt_1').aexists())


class ReportingTests(OrchestratorTestCase):
    async def test_history_and_status(self):
        await Asset.objects.acreate(id=43, title='Scrimmage', price=Decimal('12.99'),
                                    status=Asset.Status.READY)
        orchestrator = self.make_orchestrator()
        await orchestrator.verify_payment(42, self.receipt())
        await orchestrator.verify_payment(43, self.receipt(assetId=43, transactionId='tx_2'))

        history = await orchestrator.access_history('0xABC')
        self.assertEqual(history.total_purchases, 2)
        self.assertEqual(history.total_spent, Decimal('18.98'))
        self.assertEqual(history.purchases[0]['transactionId'], 'tx_2')

        status = await orchestrator.payment_status('tx_1')
        self.assertEqual(status['assetId'], 42)
        self.assertEqual(status['userAddress'], '0xABC')
        self.assertEqual(status['status'], 'completed')
        self.assertIsNone(await orchestrator.payment_status('tx_unknown'))

    async def test_history_keeps_orphaned_grants(self):
        orchestrator = self.make_orchestrator()
        await orchestrator.cache.grant_access('0xABC', 555, 'tx_orphan')

        history = await orchestrator.access_history('0xABC')

        self.assertEqual(history.purchases[0]['assetTitle'], None)
        self.assertEqual(history.total_spent, Decimal('0'))


class ProviderWiringTests(TestCase):
    def test_services_build_from_settings(self):
        with override_settings(LEDGER_PROVIDER='memory', PAYMENT_PROVIDER='x402',
                               PAYMENT_VERIFY_URL='https://payments.example.com/verify',
                               STORAGE_PROVIDER='cdn', STORAGE_BASE_URL='https://cdn.example.com'):
            orchestrator = build_orchestrator()

        self.assertEqual(orchestrator.ledger.provider_name, 'memory')
        self.assertEqual(orchestrator.verifier.provider_name, 'x402')
        self.assertEqual(orchestrator.challenges.provider_name, 'x402')
        self.assertEqual(orchestrator.storage.provider_name, 'cdn')

    def test_settings_change_rebuilds_orchestrator(self):
        with override_settings(LEDGER_PROVIDER='memory'):
            first = get_orchestrator()
            self.assertIs(first, get_orchestrator())
        with patch('videogate.services.build_orchestrator') as build:
            with override_settings(LEDGER_PROVIDER='memory'):
                get_orchestrator()
        build.assert_called_once()
