"""
Payment provider interfaces and the value objects they exchange.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from django.utils import timezone


@dataclass(frozen=True)
class PaymentChallenge:
    """A 402 challenge. Stateless: nothing about it is stored server-side."""
    asset_id: int
    price: Decimal
    headers: Dict[str, str]


@dataclass(frozen=True)
class PaymentRecord:
    """Normalized result of a verified payment."""
    asset_id: int
    payer_id: str
    amount: Decimal
    transaction_id: str
    # Two verifications of one transaction compare equal regardless of when.
    verified_at: datetime = field(default_factory=timezone.now, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'assetId': self.asset_id,
            'userId': self.payer_id,
            'amount': self.amount,
            'transactionId': self.transaction_id,
            'timestamp': int(self.verified_at.timestamp() * 1000),
        }


Receipt = Union[str, Dict[str, Any]]


class ChallengeIssuer(ABC):
    """Builds provider-specific 402 challenges."""

    def __init__(self, currency: str = 'USD'):
        self.currency = currency

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    def issue_challenge(self, asset_id: int, price: Decimal) -> PaymentChallenge:
        """
        Build the challenge returned alongside a 402 response.

        Args:
            asset_id: Protected asset identifier
            price: Asking price in ``self.currency``; zero is allowed

        Returns:
            PaymentChallenge carrying the provider's header set
        """
        pass


class PaymentVerifier(ABC):
    """
    Validates receipts and webhook deliveries for one payment provider.

    Neither method raises for a bad or unverifiable payment; both return
    None and log the reason instead.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def verify_receipt(
        self,
        asset_id: int,
        receipt: Receipt,
        user_id: Optional[str] = None,
    ) -> Optional[PaymentRecord]:
        """
        Verify a client-submitted receipt.

        Args:
            asset_id: Asset the client claims to have paid for
            receipt: Opaque provider receipt (token string or JSON object)
            user_id: Payer identity supplied alongside the receipt, if any

        Returns:
            PaymentRecord on success, None on any verification failure
        """
        pass

    @abstractmethod
    async def process_webhook(
        self,
        body: bytes,
        signature: Optional[str] = None,
    ) -> Optional[PaymentRecord]:
        """
        Authenticate and normalize a provider webhook delivery.

        Args:
            body: Raw request body exactly as received
            signature: Value of the provider's signature header, if sent

        Returns:
            PaymentRecord on success, None if rejected or unparseable
        """
        pass

    def get_config(self) -> Dict[str, Any]:
        return {'provider': self.provider_name}
