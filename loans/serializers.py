# loans/serializers.py
from decimal import Decimal
from django.conf import settings
from rest_framework import serializers
from loans.models import LoanProduct, Loan, LoanRepayment


class LoanProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoanProduct
        fields = ['id', 'name', 'description', 'min_amount', 'max_amount',
                  'interest_rate', 'interest_type', 'min_tenure_months',
                  'max_tenure_months', 'processing_fee_percentage',
                  'late_payment_fee', 'eligibility_criteria', 'required_documents',
                  'is_active', 'created_at']
        read_only_fields = ['id', 'created_at']

    def validate(self, attrs):
        min_amount = attrs.get('min_amount', getattr(self.instance, 'min_amount', None))
        max_amount = attrs.get('max_amount', getattr(self.instance, 'max_amount', None))
        if min_amount is not None and max_amount is not None and min_amount > max_amount:
            raise serializers.ValidationError({'max_amount': 'Must be greater than the minimum amount'})

        min_tenure = attrs.get('min_tenure_months', getattr(self.instance, 'min_tenure_months', None))
        max_tenure = attrs.get('max_tenure_months', getattr(self.instance, 'max_tenure_months', None))
        if min_tenure is not None and max_tenure is not None and min_tenure > max_tenure:
            raise serializers.ValidationError({'max_tenure_months': 'Must be greater than the minimum tenure'})
        return attrs


class LoanRepaymentSerializer(serializers.ModelSerializer):
    payment_reference = serializers.CharField(source='payment.reference', read_only=True, default=None)

    class Meta:
        model = LoanRepayment
        fields = ['id', 'loan', 'amount', 'principal_paid', 'interest_paid',
                  'due_date', 'paid_at', 'payment_method', 'status', 'reference',
                  'payment_reference', 'notes', 'created_at']
        read_only_fields = fields


class LoanSerializer(serializers.ModelSerializer):
    product_detail = LoanProductSerializer(source='product', read_only=True)
    member_number = serializers.CharField(source='member.member_number', read_only=True)
    member_name = serializers.CharField(source='member.user.full_name', read_only=True)
    total_repaid = serializers.DecimalField(max_digits=20, decimal_places=2, read_only=True)
    remaining_balance = serializers.DecimalField(max_digits=20, decimal_places=2, read_only=True)

    class Meta:
        model = Loan
        fields = ['id', 'member', 'member_number', 'member_name', 'product',
                  'product_detail', 'amount', 'interest_rate', 'duration_months',
                  'type', 'purpose', 'status', 'monthly_payment', 'interest_amount',
                  'total_amount', 'processing_fee', 'total_repaid', 'remaining_balance',
                  'required_documents', 'application_metadata', 'application_date',
                  'approved_at', 'rejected_at', 'rejection_reason', 'disbursed_at',
                  'completed_at', 'created_at']
        read_only_fields = fields


class LoanDetailSerializer(LoanSerializer):
    repayments = LoanRepaymentSerializer(many=True, read_only=True)

    class Meta(LoanSerializer.Meta):
        fields = LoanSerializer.Meta.fields + ['repayments']
        read_only_fields = fields


class LoanApplicationSerializer(serializers.Serializer):
    EMPLOYMENT_CHOICES = ['employed', 'self_employed', 'retired']

    product_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=20, decimal_places=2)
    tenure_months = serializers.IntegerField(min_value=1)
    purpose = serializers.CharField(max_length=500)
    net_pay = serializers.DecimalField(max_digits=20, decimal_places=2, min_value=Decimal('0'))
    employment_status = serializers.ChoiceField(choices=EMPLOYMENT_CHOICES)
    guarantor_name = serializers.CharField(max_length=255)
    guarantor_phone = serializers.CharField(max_length=30)
    guarantor_relationship = serializers.CharField(max_length=100)
    guarantor_address = serializers.CharField(max_length=500, required=False, allow_blank=True)
    additional_info = serializers.CharField(required=False, allow_blank=True)

    def validate_amount(self, value):
        minimum = Decimal(settings.LOANS['MIN_AMOUNT'])
        if value < minimum:
            raise serializers.ValidationError(f'Loan amount must be at least {minimum:,.0f}')
        return value

    def validate_tenure_months(self, value):
        if value > settings.LOANS['MAX_TENURE_MONTHS']:
            raise serializers.ValidationError(
                f"Tenure cannot exceed {settings.LOANS['MAX_TENURE_MONTHS']} months"
            )
        return value

    def application_metadata(self):
        data = self.validated_data
        metadata = {
            'net_pay': str(data['net_pay']),
            'employment_status': data['employment_status'],
            'guarantor_name': data['guarantor_name'],
            'guarantor_phone': data['guarantor_phone'],
            'guarantor_relationship': data['guarantor_relationship'],
        }
        for optional in ('guarantor_address', 'additional_info'):
            if data.get(optional):
                metadata[optional] = data[optional]
        return metadata


class LoanRepaymentRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=20, decimal_places=2, min_value=Decimal('1'))
    payment_method = serializers.ChoiceField(choices=['wallet', 'card', 'bank_transfer'])
    gateway = serializers.ChoiceField(choices=['paystack', 'stripe', 'remita'], required=False)
    bank_account_id = serializers.CharField(required=False, allow_blank=True)
    payer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    payer_phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    transaction_reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    payment_evidence = serializers.ListField(
        child=serializers.CharField(max_length=500),
        required=False,
        allow_empty=True
    )
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class LoanRejectSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField(max_length=1000)


class AdminRepaymentSerializer(serializers.Serializer):
    member_id = serializers.IntegerField()
    loan_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=20, decimal_places=2, min_value=Decimal('0.01'))
    principal_paid = serializers.DecimalField(
        max_digits=20, decimal_places=2, min_value=Decimal('0'), required=False
    )
    interest_paid = serializers.DecimalField(
        max_digits=20, decimal_places=2, min_value=Decimal('0'), required=False
    )
    payment_method = serializers.ChoiceField(choices=['cash', 'bank_transfer', 'cheque', 'salary_deduction'])
    paid_at = serializers.DateTimeField(required=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class LoanCalculatorSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=20, decimal_places=2, min_value=Decimal('0.01'))
    tenure_months = serializers.IntegerField(min_value=1)
