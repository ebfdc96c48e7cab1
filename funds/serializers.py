# funds/serializers.py
from decimal import Decimal
from rest_framework import serializers
from funds.models import Payment, PaymentGateway, Wallet, WalletTransaction


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ['id', 'currency', 'balance', 'is_active', 'created_at', 'updated_at']
        read_only_fields = fields


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = ['id', 'type', 'amount', 'status', 'payment_method',
                  'payment_reference', 'description', 'balance_after',
                  'metadata', 'created_at']
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = Payment
        fields = ['id', 'reference', 'user', 'user_email', 'amount', 'currency',
                  'purpose', 'loan', 'statutory_charge', 'payment_method', 'gateway',
                  'status', 'description', 'gateway_reference', 'gateway_url',
                  'approval_status', 'payer_name', 'payer_phone', 'bank_reference',
                  'bank_name', 'account_name', 'account_number', 'payment_evidence',
                  'approved_at', 'rejection_reason', 'metadata', 'created_at',
                  'completed_at']
        read_only_fields = fields


class PaymentGatewaySerializer(serializers.ModelSerializer):
    """Gateway settings; secrets are write-only"""
    secret_key = serializers.CharField(write_only=True, required=False, allow_blank=True)
    webhook_secret = serializers.CharField(write_only=True, required=False, allow_blank=True)
    has_secret_key = serializers.SerializerMethodField()

    class Meta:
        model = PaymentGateway
        fields = ['id', 'gateway_type', 'is_enabled', 'public_key', 'secret_key',
                  'webhook_secret', 'has_secret_key', 'configuration',
                  'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_has_secret_key(self, obj):
        return bool(obj.secret_key)

    def validate_configuration(self, value):
        accounts = value.get('bank_accounts', [])
        if not isinstance(accounts, list):
            raise serializers.ValidationError('bank_accounts must be a list')
        for account in accounts:
            if not isinstance(account, dict) or not account.get('account_number'):
                raise serializers.ValidationError('Each bank account needs an account_number')
        return value


class WalletTopUpSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=20, decimal_places=2, min_value=Decimal('100'))
    gateway = serializers.ChoiceField(choices=['paystack', 'stripe', 'remita'], required=False)


class WalletTransferSerializer(serializers.Serializer):
    recipient_email = serializers.EmailField()
    amount = serializers.DecimalField(max_digits=20, decimal_places=2, min_value=Decimal('0.01'))
    note = serializers.CharField(max_length=255, required=False, allow_blank=True)


class PaymentRejectSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField(max_length=1000)
