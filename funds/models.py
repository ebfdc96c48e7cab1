# funds/models.py
from decimal import Decimal
from django.db import models
from django.core.validators import MinValueValidator
from encrypted_fields.fields import EncryptedCharField


class PaymentGateway(models.Model):
    """Payment gateway configured by the cooperative"""
    GATEWAY_CHOICES = [
        ('paystack', 'Paystack'),
        ('remita', 'Remita'),
        ('stripe', 'Stripe'),
        ('manual', 'Manual Bank Transfer'),
    ]

    gateway_type = models.CharField(max_length=20, choices=GATEWAY_CHOICES, unique=True)
    is_enabled = models.BooleanField(default=False)
    public_key = models.CharField(max_length=255, blank=True)
    secret_key = EncryptedCharField(max_length=255, null=True, blank=True)
    webhook_secret = EncryptedCharField(max_length=255, null=True, blank=True)
    configuration = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['gateway_type']

    def __str__(self):
        return self.get_gateway_type_display()


class Payment(models.Model):
    """Payment envelope shared by repayments, wallet funding and charges"""
    PURPOSE_CHOICES = [
        ('loan_repayment', 'Loan Repayment'),
        ('wallet_funding', 'Wallet Funding'),
        ('statutory_charge', 'Statutory Charge'),
        ('contribution', 'Contribution'),
    ]

    METHOD_CHOICES = [
        ('wallet', 'Wallet'),
        ('card', 'Card'),
        ('bank_transfer', 'Bank Transfer'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    APPROVAL_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    reference = models.CharField(max_length=100, unique=True)
    user = models.ForeignKey('users.User', on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(
        max_digits=20,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=10, default='NGN')
    purpose = models.CharField(max_length=30, choices=PURPOSE_CHOICES)
    loan = models.ForeignKey(
        'loans.Loan',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments'
    )
    statutory_charge = models.ForeignKey(
        'statutory.StatutoryCharge',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments'
    )
    payment_method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    gateway = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    description = models.CharField(max_length=255, blank=True)

    # Gateway fields
    gateway_reference = models.CharField(max_length=255, blank=True, db_index=True)
    gateway_url = models.URLField(max_length=500, blank=True)
    gateway_response = models.JSONField(default=dict, blank=True)

    # Manual payment fields
    approval_status = models.CharField(max_length=20, choices=APPROVAL_CHOICES, default='approved')
    payer_name = models.CharField(max_length=255, blank=True)
    payer_phone = models.CharField(max_length=30, blank=True)
    bank_reference = models.CharField(max_length=100, blank=True)
    bank_name = models.CharField(max_length=100, blank=True)
    account_name = models.CharField(max_length=150, blank=True)
    account_number = models.CharField(max_length=30, blank=True)
    payment_evidence = models.JSONField(default=list, blank=True)
    approved_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='approved_payments'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)

    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'payment_method'], name='payment_status_method_idx'),
            models.Index(fields=['purpose', 'status'], name='payment_purpose_status_idx'),
        ]

    def __str__(self):
        return f"{self.reference} ({self.get_purpose_display()})"

    @property
    def is_completed(self):
        return self.status == 'completed'


class Wallet(models.Model):
    """Member wallet; balance changes only through funds.services.wallet_service"""
    user = models.OneToOneField('users.User', on_delete=models.CASCADE, related_name='wallet')
    currency = models.CharField(max_length=10, default='NGN')
    balance = models.DecimalField(
        max_digits=20,
        decimal_places=2,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))]
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user.email} - {self.currency} {self.balance}"


class WalletTransaction(models.Model):
    """Append-only wallet ledger"""
    TYPE_CHOICES = [
        ('credit', 'Credit'),
        ('debit', 'Debit'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    wallet = models.ForeignKey(Wallet, on_delete=models.CASCADE, related_name='transactions')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=20, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    payment_method = models.CharField(max_length=30, blank=True)
    payment_reference = models.CharField(max_length=100, blank=True, db_index=True)
    description = models.CharField(max_length=255, blank=True)
    balance_after = models.DecimalField(max_digits=20, decimal_places=2)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.type} {self.amount} ({self.payment_reference})"
