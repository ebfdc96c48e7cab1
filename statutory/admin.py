# statutory/admin.py
from django.contrib import admin
from statutory.models import StatutoryCharge, StatutoryChargePayment, StatutoryChargeType


@admin.register(StatutoryChargeType)
class StatutoryChargeTypeAdmin(admin.ModelAdmin):
    list_display = ['type', 'frequency', 'default_amount', 'is_active', 'sort_order']
    list_filter = ['frequency', 'is_active']
    search_fields = ['type']


class StatutoryChargePaymentInline(admin.TabularInline):
    model = StatutoryChargePayment
    extra = 0
    readonly_fields = ['payment', 'amount', 'payment_method', 'reference', 'status', 'paid_at']


@admin.register(StatutoryCharge)
class StatutoryChargeAdmin(admin.ModelAdmin):
    list_display = ['id', 'member', 'type', 'amount', 'due_date', 'status']
    list_filter = ['status', 'type']
    search_fields = ['member__member_number', 'member__user__email', 'type']
    inlines = [StatutoryChargePaymentInline]
