"""
Factory for payment provider strategies.
"""
from typing import Any, Callable, Dict, Tuple

from .base import ChallengeIssuer, PaymentVerifier
from .challenge import L402ChallengeIssuer, MockChallengeIssuer
from .verifier import MockPaymentVerifier, WebhookAuthenticator, X402PaymentVerifier


def _build_mock(config: Dict[str, Any]) -> Tuple[ChallengeIssuer, PaymentVerifier]:
    webhooks = WebhookAuthenticator(
        secret=config.get('webhook_secret', ''),
        require_signature=config.get('require_webhook_signature', False),
    )
    issuer = MockChallengeIssuer(currency=config.get('currency', 'USD'))
    return issuer, MockPaymentVerifier(webhooks=webhooks)


def _build_x402(config: Dict[str, Any]) -> Tuple[ChallengeIssuer, PaymentVerifier]:
    webhooks = WebhookAuthenticator(
        secret=config.get('webhook_secret', ''),
        require_signature=config.get('require_webhook_signature', False),
    )
    issuer = L402ChallengeIssuer(
        realm=config.get('realm', 'VideoGate'),
        currency=config.get('currency', 'USD'),
    )
    verifier = X402PaymentVerifier(
        verify_url=config.get('verify_url', ''),
        api_key=config.get('api_key', ''),
        timeout_seconds=config.get('verify_timeout_seconds', 10),
        webhooks=webhooks,
    )
    return issuer, verifier


class PaymentProviderFactory:
    """Factory to create the (challenge issuer, verifier) pair for a provider."""

    _builders: Dict[str, Callable[[Dict[str, Any]], Tuple[ChallengeIssuer, PaymentVerifier]]] = {
        'mock': _build_mock,
        'x402': _build_x402,
    }

    @classmethod
    def create(cls, provider: str, config: Dict[str, Any] = None) -> Tuple[ChallengeIssuer, PaymentVerifier]:
        """
        Create the strategies for the specified payment provider.

        Args:
            provider: Provider name ('mock', 'x402')
            config: Optional configuration dict (realm, currency, verify URL,
                API key, webhook secret)

        Returns:
            (ChallengeIssuer, PaymentVerifier) tuple

        Raises:
            ValueError: If provider is not supported
            ConfigurationError: If webhook signing is required but no secret is set
        """
        provider_lower = provider.lower().strip()

        builder = cls._builders.get(provider_lower)
        if builder is None:
            supported = ', '.join(cls._builders.keys())
            raise ValueError(
                f"Unsupported payment provider: {provider}. "
                f"Supported providers: {supported}"
            )

        return builder(config or {})

    @classmethod
    def get_supported_providers(cls) -> list[str]:
        return list(cls._builders.keys())
