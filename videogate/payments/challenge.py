"""
402 challenge issuers.

Challenges are built from (asset, price, provider) plus a random nonce and
are never stored, so any instance can issue them and any instance can later
verify the resulting payment.
"""
import base64
import json
import secrets
import time
from decimal import Decimal
from typing import Any, Dict

from loguru import logger

from .base import ChallengeIssuer, PaymentChallenge


def _format_amount(price: Decimal) -> str:
    return str(price)


def encode_challenge_token(asset_id: int, price: Decimal, currency: str) -> str:
    token = {
        'asset_id': asset_id,
        'amount': _format_amount(price),
        'currency': currency,
        'timestamp': int(time.time() * 1000),
        'nonce': secrets.token_hex(8),
    }
    return base64.b64encode(json.dumps(token).encode('utf-8')).decode('ascii')


def decode_challenge_token(token: str) -> Dict[str, Any]:
    """Decode an ``L402-Challenge`` token back into its fields.

    Raises:
        ValueError: If the token is not base64-encoded JSON
    """
    try:
        decoded = json.loads(base64.b64decode(token, validate=True))
    except (ValueError, TypeError) as exc:
        raise ValueError('Malformed challenge token.') from exc
    if not isinstance(decoded, dict):
        raise ValueError('Malformed challenge token.')
    return decoded


class L402ChallengeIssuer(ChallengeIssuer):
    """Issues ``WWW-Authenticate: L402`` challenges with an opaque token."""

    def __init__(self, realm: str, currency: str = 'USD'):
        super().__init__(currency)
        self.realm = realm

    @property
    def provider_name(self) -> str:
        return 'x402'

    def issue_challenge(self, asset_id: int, price: Decimal) -> PaymentChallenge:
        headers = {
            'WWW-Authenticate': f'L402 realm="{self.realm}", charset="UTF-8"',
            'L402-Challenge': encode_challenge_token(asset_id, price, self.currency),
            'L402-Accept-Payment': 'application/json',
            'L402-Amount': _format_amount(price),
            'L402-Currency': self.currency,
        }
        logger.info('Issued L402 challenge for asset {}: {} {}',
                    asset_id, price, self.currency)
        return PaymentChallenge(asset_id=asset_id, price=price, headers=headers)


class MockChallengeIssuer(ChallengeIssuer):
    """Flag-style headers for development; no token."""

    @property
    def provider_name(self) -> str:
        return 'mock'

    def issue_challenge(self, asset_id: int, price: Decimal) -> PaymentChallenge:
        headers = {
            'X-Payment-Required': 'true',
            'X-Payment-Amount': _format_amount(price),
            'X-Payment-Currency': self.currency,
            'X-Asset-Id': str(asset_id),
        }
        logger.info('Issued mock challenge for asset {}: {} {}',
                    asset_id, price, self.currency)
        return PaymentChallenge(asset_id=asset_id, price=price, headers=headers)
