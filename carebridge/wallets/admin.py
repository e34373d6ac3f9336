from django.contrib import admin

from carebridge.wallets import models


@admin.register(models.Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "balance", "currency", "updated_at"]
    search_fields = ["user__username", "user__email"]


@admin.register(models.WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = ["id", "wallet", "transaction_type", "amount", "reference_id"]
    list_filter = ["transaction_type", "created_at"]
    search_fields = ["reference_id", "description"]
