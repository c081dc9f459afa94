from __future__ import annotations

from typing import Optional

from asgiref.sync import async_to_sync
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from videogate.exceptions import (
    AccessStoreError,
    AssetNotFound,
    AssetNotReady,
    CatalogUnavailable,
    PaymentDenied,
    VideoGateError,
    VideoGateValidationError,
)
from videogate.orchestrator import AccessGranted
from videogate.payments.schemas import VerifyPaymentRequest
from videogate.services import get_orchestrator


def _user_address(request) -> Optional[str]:
    return request.query_params.get('address') or request.headers.get('X-User-Address')


def _parse_verify_request(request_data) -> VerifyPaymentRequest:
    try:
        return VerifyPaymentRequest.model_validate(request_data)
    except PydanticValidationError as exc:
        logger.debug('pydantic validation failed: {}', exc)
        raise VideoGateValidationError(
            'Invalid request.',
            details=[
                {
                    'field': '.'.join(str(part) for part in error['loc']),
                    'message': error['msg'],
                }
                for error in exc.errors()
            ],
        ) from exc


def _error_response(exc: VideoGateError) -> Response:
    if isinstance(exc, VideoGateValidationError):
        return Response(
            {'error': exc.message, 'details': exc.details},
            status=status.HTTP_400_BAD_REQUEST,
        )
    if isinstance(exc, AssetNotFound):
        return Response({'error': 'Asset not found'}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, AssetNotReady):
        return Response(
            {'error': 'Asset not ready for streaming', 'currentStatus': exc.status},
            status=status.HTTP_409_CONFLICT,
        )
    if isinstance(exc, PaymentDenied):
        return Response(
            {'error': 'Payment verification failed', 'message': exc.message},
            status=status.HTTP_400_BAD_REQUEST,
        )
    if isinstance(exc, AccessStoreError):
        logger.error('Access store failure: {}', exc)
        return Response(
            {'error': 'Access store unavailable'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    if isinstance(exc, CatalogUnavailable):
        logger.error('Asset catalog failure: {}', exc)
        return Response(
            {'error': 'Asset catalog unavailable'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    logger.error('Unhandled access-control error: {}', exc)
    return Response({'error': 'Internal error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class AssetDetailView(APIView):
    """Public asset metadata plus whether the caller already has access."""
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, asset_id: int, *args, **kwargs):
        orchestrator = get_orchestrator()
        user_address = _user_address(request)
        try:
            asset = async_to_sync(orchestrator.catalog.get_asset)(asset_id)
            if asset is None:
                raise AssetNotFound(asset_id)
            has_access = bool(user_address) and async_to_sync(
                orchestrator.check_access)(user_address, asset.pk)
        except VideoGateError as exc:
            return _error_response(exc)

        return Response(
            {
                'id': asset.pk,
                'title': asset.title,
                'description': asset.description,
                'price': asset.price,
                'status': asset.status,
                'createdAt': asset.created_at,
                'hasAccess': has_access,
            },
            status=status.HTTP_200_OK,
        )


class AssetAccessView(APIView):
    """
    Protected entry point: returns the streaming descriptor, or a 402
    challenge when the caller has not paid.
    """
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, asset_id: int, *args, **kwargs):
        orchestrator = get_orchestrator()
        try:
            outcome = async_to_sync(orchestrator.request_access)(
                asset_id, _user_address(request))
        except VideoGateError as exc:
            return _error_response(exc)

        if isinstance(outcome, AccessGranted):
            return Response(outcome.descriptor, status=status.HTTP_200_OK)

        return Response(
            {
                'error': 'payment_required',
                'message': 'Payment required to access this asset',
                'price': outcome.price,
                'assetId': outcome.asset_id,
            },
            status=status.HTTP_402_PAYMENT_REQUIRED,
            headers=outcome.challenge.headers,
        )


class PaymentVerifyView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def post(self, request, *args, **kwargs):
        orchestrator = get_orchestrator()
        try:
            data = _parse_verify_request(request.data)
            record = async_to_sync(orchestrator.verify_payment)(
                data.asset_id, data.receipt, data.user_address)
        except VideoGateError as exc:
            return _error_response(exc)

        logger.info('Payment verified and access granted: {} -> asset {} (tx {})',
                    record.payer_id, record.asset_id, record.transaction_id)
        return Response(
            {
                'success': True,
                'message': 'Payment verified and access granted',
                'payment': record.to_dict(),
            },
            status=status.HTTP_200_OK,
        )


class PaymentWebhookView(APIView):
    """Provider webhook; must answer quickly and idempotently."""
    authentication_classes: list = []
    permission_classes: list = []

    def post(self, request, *args, **kwargs):
        orchestrator = get_orchestrator()
        # Signatures cover the exact bytes the provider sent.
        body = request.body
        signature = request.headers.get('X-Webhook-Signature')
        try:
            outcome = async_to_sync(orchestrator.process_webhook)(body, signature)
        except PaymentDenied as exc:
            return Response({'error': exc.message}, status=status.HTTP_400_BAD_REQUEST)
        except VideoGateError as exc:
            return _error_response(exc)

        if outcome.already_granted:
            return Response(
                {'success': True, 'message': 'Access already granted'},
                status=status.HTTP_200_OK,
            )
        return Response(
            {
                'success': True,
                'message': 'Webhook processed and access granted',
                'payment': outcome.record.to_dict(),
            },
            status=status.HTTP_200_OK,
        )


class PaymentStatusView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, transaction_id: str, *args, **kwargs):
        orchestrator = get_orchestrator()
        try:
            payment = async_to_sync(orchestrator.payment_status)(transaction_id)
        except VideoGateError as exc:
            return _error_response(exc)

        if payment is None:
            return Response({'error': 'Payment not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(payment, status=status.HTTP_200_OK)


class PaymentHistoryView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, user_address: str, *args, **kwargs):
        orchestrator = get_orchestrator()
        try:
            history = async_to_sync(orchestrator.access_history)(user_address)
        except VideoGateError as exc:
            return _error_response(exc)

        return Response(
            {
                'userAddress': history.user_id,
                'totalPurchases': history.total_purchases,
                'totalSpent': history.total_spent,
                'purchases': history.purchases,
            },
            status=status.HTTP_200_OK,
        )


class AccessGrantView(APIView):
    """Administrative grant/revoke for one (user, asset) pair."""
    permission_classes = [IsAdminUser]

    def post(self, request, asset_id: int, user_address: str, *args, **kwargs):
        orchestrator = get_orchestrator()
        transaction_id = request.data.get('transactionId') if hasattr(request.data, 'get') else None
        try:
            outcome = async_to_sync(orchestrator.grant)(user_address, asset_id, transaction_id)
        except VideoGateError as exc:
            return _error_response(exc)

        logger.info('Administrative grant by {}: {} -> asset {}',
                    request.user, user_address, asset_id)
        return Response(
            {
                'success': True,
                'userAddress': outcome.grant.user_id,
                'assetId': outcome.grant.asset_id,
                'transactionId': outcome.grant.transaction_id,
                'grantedAt': outcome.grant.granted_at,
                'ledgerRecorded': outcome.ledger_recorded,
            },
            status=status.HTTP_201_CREATED,
        )

    def delete(self, request, asset_id: int, user_address: str, *args, **kwargs):
        orchestrator = get_orchestrator()
        try:
            revoked = async_to_sync(orchestrator.revoke)(user_address, asset_id)
        except VideoGateError as exc:
            return _error_response(exc)

        logger.info('Administrative revoke by {}: {} -> asset {} (removed={})',
                    request.user, user_address, asset_id, revoked)
        return Response({'success': True, 'revoked': revoked}, status=status.HTTP_200_OK)
