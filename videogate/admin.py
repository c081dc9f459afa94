from django.contrib import admin

from videogate.models import AccessGrant, Asset


@admin.register(Asset)
class AssetAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "price", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("title",)


@admin.register(AccessGrant)
class AccessGrantAdmin(admin.ModelAdmin):
    list_display = ("user_id", "asset_id", "transaction_id", "granted_at")
    search_fields = ("user_id", "transaction_id")
