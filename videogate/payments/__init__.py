"""
Payment challenge issuers and verifiers.
"""
from .base import ChallengeIssuer, PaymentChallenge, PaymentRecord, PaymentVerifier
from .challenge import L402ChallengeIssuer, MockChallengeIssuer, decode_challenge_token
from .verifier import MockPaymentVerifier, WebhookAuthenticator, X402PaymentVerifier
from .factory import PaymentProviderFactory

__all__ = [
    'ChallengeIssuer',
    'PaymentChallenge',
    'PaymentRecord',
    'PaymentVerifier',
    'L402ChallengeIssuer',
    'MockChallengeIssuer',
    'decode_challenge_token',
    'MockPaymentVerifier',
    'WebhookAuthenticator',
    'X402PaymentVerifier',
    'PaymentProviderFactory',
]
