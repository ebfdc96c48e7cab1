# funds/admin.py
from django.contrib import admin
from funds.models import Payment, PaymentGateway, Wallet, WalletTransaction


@admin.register(PaymentGateway)
class PaymentGatewayAdmin(admin.ModelAdmin):
    list_display = ['gateway_type', 'is_enabled', 'public_key', 'updated_at']
    list_filter = ['is_enabled']
    exclude = ['secret_key', 'webhook_secret']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['reference', 'user', 'amount', 'purpose', 'payment_method',
                    'gateway', 'status', 'approval_status', 'created_at']
    list_filter = ['purpose', 'payment_method', 'status', 'approval_status', 'created_at']
    search_fields = ['reference', 'gateway_reference', 'bank_reference', 'user__email']
    readonly_fields = ['reference', 'gateway_reference', 'gateway_response',
                       'created_at', 'completed_at']

    fieldsets = (
        ('Payment', {
            'fields': ('reference', 'user', 'amount', 'currency', 'purpose',
                       'loan', 'statutory_charge', 'description')
        }),
        ('Channel', {
            'fields': ('payment_method', 'gateway', 'gateway_reference', 'gateway_url',
                       'gateway_response')
        }),
        ('Bank Transfer', {
            'fields': ('payer_name', 'payer_phone', 'bank_reference', 'bank_name',
                       'account_name', 'account_number', 'payment_evidence')
        }),
        ('Status', {
            'fields': ('status', 'approval_status', 'approved_by', 'approved_at',
                       'rejection_reason', 'created_at', 'completed_at')
        })
    )


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'balance', 'currency', 'is_active', 'updated_at']
    search_fields = ['user__email']
    list_filter = ['is_active']
    readonly_fields = ['balance']


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = ['id', 'wallet', 'type', 'amount', 'balance_after',
                    'payment_reference', 'status', 'created_at']
    search_fields = ['payment_reference', 'wallet__user__email']
    list_filter = ['type', 'status', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
