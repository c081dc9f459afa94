from django.db import models
from django.utils import timezone


class Asset(models.Model):
    class Status(models.TextChoices):
        UPLOADING = 'uploading', 'Uploading'
        PROCESSING = 'processing', 'Processing'
        READY = 'ready', 'Ready'
        FAILED = 'failed', 'Failed'

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    price = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.UPLOADING,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f'{self.title} (#{self.pk})'

    @property
    def is_ready(self) -> bool:
        return self.status == self.Status.READY


class AccessGrant(models.Model):
    # Wallet addresses are compared as exact strings, no case folding.
    user_id = models.CharField(max_length=128)
    # Plain integer rather than a foreign key: grants outlive deleted assets.
    asset_id = models.PositiveBigIntegerField()
    granted_at = models.DateTimeField(default=timezone.now)
    transaction_id = models.CharField(
        max_length=128, blank=True, null=True, db_index=True)

    class Meta:
        ordering = ['-granted_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user_id', 'asset_id'],
                name='unique_access_grant_per_user_asset',
            ),
        ]
        indexes = [
            models.Index(fields=['asset_id'], name='access_grant_asset_idx'),
        ]

    def __str__(self) -> str:
        return f'{self.user_id} -> asset {self.asset_id}'
