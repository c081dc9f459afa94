import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse

from videogate.models import AccessGrant, Asset
from videogate.services import get_orchestrator


class VideoGateViewTests(TestCase):
    def setUp(self) -> None:
        overrides = override_settings(
            LEDGER_PROVIDER='memory',
            PAYMENT_PROVIDER='mock',
            PAYMENT_WEBHOOK_SECRET='',
            PAYMENT_WEBHOOK_REQUIRE_SIGNATURE=False,
            PAYMENT_UNDERPAYMENT_POLICY='allow',
            STORAGE_PROVIDER='mock',
        )
        overrides.enable()
        self.addCleanup(overrides.disable)

        self.asset = Asset.objects.create(
            id=42,
            title='Youth Training Session - Ball Control',
            description='Drills for U12 players',
            price=Decimal('5.99'),
            status=Asset.Status.READY,
        )
        self.user = '0xABC'

    def _access(self, asset_id: int = 42, address: str = None):
        url = reverse('videogate:asset-access', args=[asset_id])
        params = {'address': address} if address else {}
        return self.client.get(url, params)

    def _verify(self, payload: dict):
        return self.client.post(
            reverse('videogate:payment-verify'),
            data=json.dumps(payload),
            content_type='application/json',
        )

    def _receipt_payload(self, **receipt_fields) -> dict:
        receipt = {'assetId': 42, 'transactionId': 'tx_1', 'userId': self.user, 'amount': 5.99}
        receipt.update(receipt_fields)
        return {'assetId': 42, 'receipt': receipt, 'userAddress': self.user}

    def test_unpaid_access_returns_402_challenge(self):
        response = self._access(address=self.user)

        self.assertEqual(response.status_code, 402)
        body = response.json()
        self.assertEqual(body['error'], 'payment_required')
        self.assertEqual(body['assetId'], 42)
        self.assertEqual(Decimal(str(body['price'])), Decimal('5.99'))
        self.assertEqual(response['X-Payment-Required'], 'true')
        self.assertEqual(response['X-Payment-Amount'], '5.99')
        self.assertEqual(response['X-Asset-Id'], '42')

    def test_anonymous_access_returns_402(self):
        self.assertEqual(self._access().status_code, 402)

    @override_settings(PAYMENT_PROVIDER='x402', PAYMENT_REALM='VideoGate')
    def test_l402_challenge_headers(self):
        response = self._access(address=self.user)

        self.assertEqual(response.status_code, 402)
        self.assertEqual(response['WWW-Authenticate'], 'L402 realm="VideoGate", charset="UTF-8"')
        self.assertTrue(response['L402-Challenge'])
        self.assertEqual(response['L402-Amount'], '5.99')

    def test_verify_then_access(self):
        response = self._verify(self._receipt_payload())

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['payment']['transactionId'], 'tx_1')
        self.assertEqual(body['payment']['userId'], self.user)
        self.assertTrue(AccessGrant.objects.filter(user_id=self.user, asset_id=42).exists())

        ledger = get_orchestrator().ledger
        self.assertEqual([tx.method for tx in ledger.transactions], ['grantAccess'])

        response = self._access(address=self.user)
        self.assertEqual(response.status_code, 200)
        self.assertIn('playlist.m3u8', response.json()['manifestUrl'])

    def test_access_via_header(self):
        self._verify(self._receipt_payload())

        response = self.client.get(
            reverse('videogate:asset-access', args=[42]), HTTP_X_USER_ADDRESS=self.user)

        self.assertEqual(response.status_code, 200)

    def test_verify_rejects_unverifiable_receipt(self):
        payload = {'assetId': 42, 'receipt': {'amount': 5.99}}

        response = self._verify(payload)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Payment verification failed')
        self.assertFalse(AccessGrant.objects.exists())

    def test_verify_validation_errors(self):
        response = self._verify({'assetId': 0, 'receipt': ''})

        self.assertEqual(response.status_code, 400)
        fields = {detail['field'] for detail in response.json()['details']}
        self.assertIn('assetId', fields)
        self.assertTrue(any(field.startswith('receipt') for field in fields))

    def test_verify_unknown_asset(self):
        payload = self._receipt_payload(assetId=999)
        payload['assetId'] = 999

        response = self._verify(payload)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Asset not found')

    def test_access_unknown_asset(self):
        self.assertEqual(self._access(asset_id=999, address=self.user).status_code, 404)

    def test_access_asset_not_ready(self):
        Asset.objects.create(id=8, title='Raw upload', price=Decimal('3.00'),
                             status=Asset.Status.PROCESSING)

        response = self._access(asset_id=8, address=self.user)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['currentStatus'], 'processing')

    def test_asset_detail_reports_access(self):
        url = reverse('videogate:asset-detail', args=[42])

        before = self.client.get(url, {'address': self.user}).json()
        self._verify(self._receipt_payload())
        after = self.client.get(url, {'address': self.user}).json()

        self.assertEqual(before['title'], self.asset.title)
        self.assertFalse(before['hasAccess'])
        self.assertTrue(after['hasAccess'])

    def test_catalog_outage_is_reported_as_503(self):
        with patch.object(Asset.objects, 'filter', side_effect=OperationalError('db down')):
            detail = self.client.get(reverse('videogate:asset-detail', args=[42]))
            verify = self._verify(self._receipt_payload())

        self.assertEqual(detail.status_code, 503)
        self.assertEqual(detail.json()['error'], 'Asset catalog unavailable')
        self.assertEqual(verify.status_code, 503)
        self.assertFalse(AccessGrant.objects.exists())

    def test_payment_status_and_history(self):
        self._verify(self._receipt_payload())

        status_response = self.client.get(reverse('videogate:payment-status', args=['tx_1']))
        self.assertEqual(status_response.status_code, 200)
        self.assertEqual(status_response.json()['assetId'], 42)

        missing = self.client.get(reverse('videogate:payment-status', args=['tx_missing']))
        self.assertEqual(missing.status_code, 404)

        history = self.client.get(reverse('videogate:payment-history', args=[self.user])).json()
        self.assertEqual(history['totalPurchases'], 1)
        self.assertEqual(Decimal(str(history['totalSpent'])), Decimal('5.99'))
        self.assertEqual(history['purchases'][0]['transactionId'], 'tx_1')


class PaymentWebhookViewTests(TestCase):
    def setUp(self) -> None:
        overrides = override_settings(
            LEDGER_PROVIDER='memory',
            PAYMENT_PROVIDER='mock',
            PAYMENT_WEBHOOK_SECRET='whsec_test',
            STORAGE_PROVIDER='mock',
        )
        overrides.enable()
        self.addCleanup(overrides.disable)

        Asset.objects.create(id=42, title='Ball Control', price=Decimal('5.99'),
                             status=Asset.Status.READY)
        self.body = json.dumps({
            'id': 'evt_1',
            'metadata': {'asset_id': 42},
            'customer': {'address': '0xABC'},
            'amount': '5.99',
        }).encode()

    def _post(self, body: bytes, signature: str = None):
        extra = {'HTTP_X_WEBHOOK_SIGNATURE': signature} if signature else {}
        return self.client.post(
            reverse('videogate:payment-webhook'),
            data=body,
            content_type='application/json',
            **extra,
        )

    def _sign(self, body: bytes) -> str:
        return hmac.new(b'whsec_test', body, hashlib.sha256).hexdigest()

    def test_signed_webhook_grants_once(self):
        first = self._post(self.body, self._sign(self.body))
        second = self._post(self.body, self._sign(self.body))

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()['payment']['transactionId'], 'evt_1')
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json()['message'], 'Access already granted')
        self.assertEqual(AccessGrant.objects.filter(user_id='0xABC', asset_id=42).count(), 1)
        self.assertEqual(len(get_orchestrator().ledger.transactions), 1)

    def test_bad_or_missing_signature_is_rejected(self):
        self.assertEqual(self._post(self.body, 'deadbeef').status_code, 400)
        self.assertEqual(self._post(self.body).status_code, 400)
        self.assertFalse(AccessGrant.objects.exists())

    def test_webhook_for_unknown_asset(self):
        body = json.dumps({
            'id': 'evt_2',
            'metadata': {'asset_id': 999},
            'customer': {'address': '0xABC'},
        }).encode()

        response = self._post(body, self._sign(body))

        self.assertEqual(response.status_code, 404)


class AccessGrantViewTests(TestCase):
    def setUp(self) -> None:
        overrides = override_settings(LEDGER_PROVIDER='memory', STORAGE_PROVIDER='mock')
        overrides.enable()
        self.addCleanup(overrides.disable)

        Asset.objects.create(id=42, title='Ball Control', price=Decimal('5.99'),
                             status=Asset.Status.READY)
        user_model = get_user_model()
        self.staff = user_model.objects.create_user('ops', password='pw', is_staff=True)
        self.member = user_model.objects.create_user('viewer', password='pw')
        self.url = reverse('videogate:access-grant', args=[42, '0xABC'])

    def test_staff_can_grant_and_revoke(self):
        self.client.force_login(self.staff)

        granted = self.client.post(
            self.url, data=json.dumps({'transactionId': 'admin_1'}),
            content_type='application/json')
        self.assertEqual(granted.status_code, 201)
        self.assertEqual(granted.json()['transactionId'], 'admin_1')
        self.assertTrue(granted.json()['ledgerRecorded'])

        revoked = self.client.delete(self.url)
        self.assertEqual(revoked.status_code, 200)
        self.assertTrue(revoked.json()['revoked'])

        again = self.client.delete(self.url)
        self.assertFalse(again.json()['revoked'])

    def test_non_staff_is_forbidden(self):
        self.client.force_login(self.member)

        self.assertEqual(self.client.post(self.url).status_code, 403)
        self.assertFalse(AccessGrant.objects.exists())


@override_settings(LEDGER_PROVIDER='memory', PAYMENT_PROVIDER='mock', STORAGE_PROVIDER='mock')
class HealthViewTests(TestCase):
    def test_health_reports_services(self):
        Asset.objects.create(title='Ball Control', price=Decimal('5.99'))

        response = self.client.get(reverse('health'))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['status'], 'healthy')
        self.assertEqual(body['services']['ledger']['provider'], 'memory')
        self.assertEqual(body['services']['payments']['provider'], 'mock')
        self.assertEqual(body['database']['assets'], 1)
