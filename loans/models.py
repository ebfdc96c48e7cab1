# loans/models.py
from decimal import Decimal
from django.db import models
from django.db.models import Sum
from django.utils import timezone

from loans.utils import calculate_interest, calculate_monthly_payment


class LoanProduct(models.Model):
    """Loan products offered by the cooperative"""
    INTEREST_TYPE_CHOICES = [
        ('simple', 'Simple'),
        ('compound', 'Compound'),
    ]

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    min_amount = models.DecimalField(max_digits=20, decimal_places=2)
    max_amount = models.DecimalField(max_digits=20, decimal_places=2)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=2)  # Annual %
    interest_type = models.CharField(max_length=20, choices=INTEREST_TYPE_CHOICES, default='simple')
    min_tenure_months = models.PositiveIntegerField(default=1)
    max_tenure_months = models.PositiveIntegerField(default=12)
    processing_fee_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    late_payment_fee = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal('0'))
    eligibility_criteria = models.JSONField(default=dict, blank=True)
    required_documents = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def calculate_interest(self, amount, months):
        return calculate_interest(amount, self.interest_rate, months, self.interest_type)

    def calculate_monthly_payment(self, amount, months):
        return calculate_monthly_payment(amount, self.calculate_interest(amount, months), months)


class Loan(models.Model):
    """Member loans"""
    TYPE_CHOICES = [
        ('personal', 'Personal'),
        ('housing', 'Housing'),
        ('business', 'Business'),
        ('emergency', 'Emergency'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending Approval'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('completed', 'Completed'),
    ]

    member = models.ForeignKey('users.Member', on_delete=models.CASCADE, related_name='loans')
    product = models.ForeignKey(LoanProduct, on_delete=models.PROTECT, related_name='loans')
    amount = models.DecimalField(max_digits=20, decimal_places=2)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=2)
    duration_months = models.PositiveIntegerField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='personal')
    purpose = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    # Computed once at application time
    monthly_payment = models.DecimalField(max_digits=20, decimal_places=2)
    interest_amount = models.DecimalField(max_digits=20, decimal_places=2)
    total_amount = models.DecimalField(max_digits=20, decimal_places=2)
    processing_fee = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal('0'))

    required_documents = models.JSONField(default=list, blank=True)
    application_metadata = models.JSONField(default=dict, blank=True)
    application_date = models.DateTimeField(default=timezone.now)

    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='approved_loans'
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rejected_loans'
    )
    rejection_reason = models.TextField(blank=True)
    disbursed_at = models.DateTimeField(null=True, blank=True)
    disbursed_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='disbursed_loans'
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['member', 'status'], name='loan_member_status_idx'),
        ]

    def __str__(self):
        return f"Loan #{self.pk} - {self.member} ({self.status})"

    @property
    def total_repaid(self):
        return self.repayments.aggregate(total=Sum('amount'))['total'] or Decimal('0')

    @property
    def principal_repaid(self):
        return self.repayments.aggregate(total=Sum('principal_paid'))['total'] or Decimal('0')

    @property
    def interest_repaid(self):
        return self.repayments.aggregate(total=Sum('interest_paid'))['total'] or Decimal('0')

    @property
    def remaining_balance(self):
        return max(self.total_amount - self.total_repaid, Decimal('0'))

    @property
    def remaining_principal(self):
        return max(self.amount - self.principal_repaid, Decimal('0'))


class LoanRepayment(models.Model):
    """Append-only loan repayment ledger"""
    STATUS_CHOICES = [
        ('paid', 'Paid'),
    ]

    loan = models.ForeignKey(Loan, on_delete=models.CASCADE, related_name='repayments')
    amount = models.DecimalField(max_digits=20, decimal_places=2)
    principal_paid = models.DecimalField(max_digits=20, decimal_places=2)
    interest_paid = models.DecimalField(max_digits=20, decimal_places=2)
    due_date = models.DateField(null=True, blank=True)
    paid_at = models.DateTimeField(default=timezone.now)
    payment_method = models.CharField(max_length=30)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='paid')
    reference = models.CharField(max_length=100, unique=True)
    payment = models.ForeignKey(
        'funds.Payment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='loan_repayments'
    )
    recorded_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recorded_repayments'
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-paid_at', '-id']

    def __str__(self):
        return f"{self.reference} - {self.amount}"
