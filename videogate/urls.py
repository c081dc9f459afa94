from django.urls import path

from videogate.views import (
    AccessGrantView,
    AssetAccessView,
    AssetDetailView,
    PaymentHistoryView,
    PaymentStatusView,
    PaymentVerifyView,
    PaymentWebhookView,
)

app_name = 'videogate'

urlpatterns = [
    path('assets/<int:asset_id>', AssetDetailView.as_view(), name='asset-detail'),
    path('assets/<int:asset_id>/access', AssetAccessView.as_view(), name='asset-access'),
    path('assets/<int:asset_id>/grants/<str:user_address>',
         AccessGrantView.as_view(), name='access-grant'),
    path('payments/verify', PaymentVerifyView.as_view(), name='payment-verify'),
    path('payments/webhook', PaymentWebhookView.as_view(), name='payment-webhook'),
    path('payments/status/<str:transaction_id>',
         PaymentStatusView.as_view(), name='payment-status'),
    path('payments/history/<str:user_address>',
         PaymentHistoryView.as_view(), name='payment-history'),
]
