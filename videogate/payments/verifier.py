"""
Payment verifiers: a development (mock) provider and an HTTP-backed x402 provider.
"""
import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from videogate.exceptions import ConfigurationError

from .base import PaymentRecord, PaymentVerifier, Receipt
from .schemas import ProviderVerification, ReceiptPayload, WebhookPayload


class WebhookAuthenticator:
    """
    HMAC-SHA256 check of webhook bodies.

    With no secret configured, deliveries are accepted with a warning unless
    ``require_signature`` is set, in which case construction fails.
    """

    def __init__(self, secret: str = '', require_signature: bool = False):
        if require_signature and not secret:
            raise ConfigurationError(
                'PAYMENT_WEBHOOK_SECRET must be set when webhook signatures are required.')
        self.secret = secret
        self.require_signature = require_signature

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    def sign(self, body: bytes) -> str:
        return hmac.new(self.secret.encode('utf-8'), body, hashlib.sha256).hexdigest()

    def authenticate(self, body: bytes, signature: Optional[str]) -> bool:
        if not self.secret:
            logger.warning('Webhook signature verification is disabled (no secret configured)')
            return True
        if not signature:
            logger.info('Webhook rejected: missing signature')
            return False

        provided = signature.strip()
        if provided.startswith('sha256='):
            provided = provided[len('sha256='):]
        if not hmac.compare_digest(provided.lower(), self.sign(body)):
            logger.info('Webhook rejected: signature mismatch')
            return False
        return True


def _record_from_webhook(body: bytes) -> Optional[PaymentRecord]:
    try:
        payload = WebhookPayload.model_validate_json(body)
    except PydanticValidationError as exc:
        logger.info('Webhook payload could not be parsed: {}', exc.error_count())
        return None

    asset_id = payload.resolved_asset_id()
    payer = payload.resolved_payer()
    transaction_id = payload.resolved_transaction_id()
    amount = payload.resolved_amount()

    if asset_id is None or asset_id <= 0 or not payer or not transaction_id:
        logger.info('Webhook payload missing asset, payer or transaction id')
        return None

    record = PaymentRecord(
        asset_id=asset_id,
        payer_id=payer,
        amount=amount if amount is not None else Decimal('0'),
        transaction_id=transaction_id,
    )
    logger.info('Webhook payment processed: {} for asset {} (tx {})',
                record.amount, record.asset_id, record.transaction_id)
    return record


def _receipt_as_dict(receipt: Receipt) -> Dict[str, Any]:
    if isinstance(receipt, dict):
        return receipt
    try:
        decoded = json.loads(receipt)
    except ValueError:
        return {'token': receipt}
    return decoded if isinstance(decoded, dict) else {'token': receipt}


class MockPaymentVerifier(PaymentVerifier):
    """
    Development verifier: trusts the receipt's own fields.

    Receipts without a transaction id get one derived from their content, so
    resubmitting the same receipt yields the same record.
    """

    def __init__(self, webhooks: WebhookAuthenticator = None):
        self.webhooks = webhooks or WebhookAuthenticator()

    @property
    def provider_name(self) -> str:
        return 'mock'

    async def verify_receipt(
        self,
        asset_id: int,
        receipt: Receipt,
        user_id: Optional[str] = None,
    ) -> Optional[PaymentRecord]:
        raw = _receipt_as_dict(receipt)
        try:
            payload = ReceiptPayload.model_validate(raw)
        except PydanticValidationError as exc:
            logger.info('Mock receipt rejected: {} invalid fields', exc.error_count())
            return None

        payer = payload.user_id or user_id
        if not payer:
            logger.info('Mock receipt rejected: no payer identity')
            return None

        transaction_id = payload.transaction_id
        if not transaction_id:
            digest = hashlib.sha256(
                json.dumps(raw, sort_keys=True, default=str).encode('utf-8')).hexdigest()
            transaction_id = f'mock_{digest[:24]}'

        record = PaymentRecord(
            asset_id=payload.asset_id if payload.asset_id is not None else asset_id,
            payer_id=payer,
            amount=payload.amount if payload.amount is not None else Decimal('0'),
            transaction_id=transaction_id,
        )
        logger.info('Mock payment verified: {} for asset {} (tx {})',
                    record.amount, record.asset_id, record.transaction_id)
        return record

    async def process_webhook(
        self,
        body: bytes,
        signature: Optional[str] = None,
    ) -> Optional[PaymentRecord]:
        if not self.webhooks.authenticate(body, signature):
            return None
        return _record_from_webhook(body)

    def get_config(self) -> Dict[str, Any]:
        return {
            'provider': self.provider_name,
            'webhookConfigured': self.webhooks.enabled,
        }


class X402PaymentVerifier(PaymentVerifier):
    """Delegates receipt verification to the payment backend over HTTP."""

    def __init__(
        self,
        verify_url: str,
        api_key: str = '',
        timeout_seconds: float = 10,
        webhooks: WebhookAuthenticator = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.verify_url = verify_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.webhooks = webhooks or WebhookAuthenticator()
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return 'x402'

    async def verify_receipt(
        self,
        asset_id: int,
        receipt: Receipt,
        user_id: Optional[str] = None,
    ) -> Optional[PaymentRecord]:
        if not self.verify_url:
            logger.error('x402 verification endpoint is not configured')
            return None

        headers = {'Accept': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        body = {'receipt': receipt, 'assetId': asset_id, 'userAddress': user_id}

        logger.debug('Verifying x402 receipt for asset {}', asset_id)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.verify_url, json=body, headers=headers)
                response.raise_for_status()
            result = ProviderVerification.model_validate(response.json())
        except httpx.TimeoutException:
            logger.warning('x402 verification timed out after {}s for asset {}',
                           self.timeout_seconds, asset_id)
            return None
        except httpx.HTTPStatusError as exc:
            logger.info('x402 verification rejected with HTTP {} for asset {}',
                        exc.response.status_code, asset_id)
            return None
        except httpx.HTTPError as exc:
            logger.error('x402 verification backend unreachable: {}', exc)
            return None
        except (ValueError, PydanticValidationError) as exc:
            logger.error('x402 verification returned an unexpected body: {}', exc)
            return None

        if not result.verified:
            logger.info('x402 payment not verified for asset {}', asset_id)
            return None

        payer = result.payer or user_id
        if not payer or not result.transaction_id:
            logger.info('x402 verification response missing payer or transaction id')
            return None

        record = PaymentRecord(
            asset_id=result.asset_id if result.asset_id is not None else asset_id,
            payer_id=payer,
            amount=result.amount if result.amount is not None else Decimal('0'),
            transaction_id=result.transaction_id,
        )
        logger.info('x402 payment verified: {} for asset {} (tx {})',
                    record.amount, record.asset_id, record.transaction_id)
        return record

    async def process_webhook(
        self,
        body: bytes,
        signature: Optional[str] = None,
    ) -> Optional[PaymentRecord]:
        if not self.webhooks.authenticate(body, signature):
            return None
        return _record_from_webhook(body)

    def get_config(self) -> Dict[str, Any]:
        return {
            'provider': self.provider_name,
            'webhookConfigured': self.webhooks.enabled,
            'apiConfigured': bool(self.verify_url and self.api_key),
        }
