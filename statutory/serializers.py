# statutory/serializers.py
from decimal import Decimal
from rest_framework import serializers
from statutory.models import StatutoryCharge, StatutoryChargePayment, StatutoryChargeType

PAYMENT_METHODS = ['wallet', 'card', 'bank_transfer', 'paystack', 'stripe', 'remita', 'manual']


class StatutoryChargeTypeSerializer(serializers.ModelSerializer):
    frequency_display = serializers.CharField(source='get_frequency_display', read_only=True)

    class Meta:
        model = StatutoryChargeType
        fields = ['id', 'type', 'description', 'default_amount', 'frequency',
                  'frequency_display', 'is_active', 'sort_order']
        read_only_fields = ['id']


class StatutoryChargePaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = StatutoryChargePayment
        fields = ['id', 'charge', 'payment', 'amount', 'payment_method',
                  'reference', 'status', 'paid_at', 'created_at']
        read_only_fields = fields


class StatutoryChargeSerializer(serializers.ModelSerializer):
    member_number = serializers.CharField(source='member.member_number', read_only=True)
    member_name = serializers.CharField(source='member.user.full_name', read_only=True)
    total_paid = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    remaining_amount = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)
    charge_payments = StatutoryChargePaymentSerializer(many=True, read_only=True)

    class Meta:
        model = StatutoryCharge
        fields = ['id', 'member', 'member_number', 'member_name', 'type', 'amount',
                  'description', 'due_date', 'status', 'total_paid', 'remaining_amount',
                  'is_overdue', 'approved_at', 'rejected_at', 'rejection_reason',
                  'charge_payments', 'created_at']
        read_only_fields = ['id', 'member', 'status', 'approved_at', 'rejected_at',
                            'rejection_reason', 'created_at']


class StatutoryChargeCreateSerializer(serializers.Serializer):
    type = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    description = serializers.CharField(required=False, allow_blank=True)
    due_date = serializers.DateTimeField(required=False, allow_null=True)


class ChargePaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    payment_method = serializers.ChoiceField(choices=PAYMENT_METHODS)
    bank_account_id = serializers.CharField(required=False, allow_blank=True)
    payer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    payer_phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    transaction_reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    payment_evidence = serializers.ListField(
        child=serializers.CharField(max_length=500),
        required=False,
        allow_empty=True
    )


class CreateAndPaySerializer(ChargePaymentSerializer):
    charge_type = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)


class ChargeRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)
