# statutory/models.py
from decimal import Decimal
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone

FREQUENCY_CHOICES = [
    ('monthly', 'Monthly'),
    ('quarterly', 'Quarterly'),
    ('bi_annually', 'Bi-Annually'),
    ('annually', 'Annual'),
    ('one_time', 'One Time'),
]


class StatutoryChargeType(models.Model):
    """Kinds of charge a cooperative levies on its members"""
    type = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    default_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    frequency = models.CharField(max_length=20, choices=FREQUENCY_CHOICES, default='annually')
    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['sort_order', 'type']

    def __str__(self):
        return self.type


class StatutoryCharge(models.Model):
    """A charge owed by one member"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('paid', 'Paid'),
    ]

    member = models.ForeignKey('users.Member', on_delete=models.CASCADE, related_name='statutory_charges')
    type = models.CharField(max_length=255)
    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    description = models.TextField(blank=True)
    due_date = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='approved_statutory_charges'
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rejected_statutory_charges'
    )
    rejection_reason = models.TextField(blank=True)
    created_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_statutory_charges'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['due_date', 'id']
        indexes = [
            models.Index(fields=['member', 'status'], name='charge_member_status_idx'),
        ]

    def __str__(self):
        return f"{self.type} - {self.amount} ({self.status})"

    @property
    def total_paid(self):
        return self.charge_payments.filter(status='completed').aggregate(
            total=Sum('amount')
        )['total'] or Decimal('0')

    @property
    def committed_amount(self):
        """Completed payments plus those still awaiting a gateway or an admin"""
        return self.charge_payments.filter(
            status__in=['pending', 'completed']
        ).exclude(payment__status='failed').aggregate(total=Sum('amount'))['total'] or Decimal('0')

    @property
    def remaining_amount(self):
        return max(self.amount - self.committed_amount, Decimal('0'))

    @property
    def is_overdue(self):
        return bool(self.due_date) and self.due_date < timezone.now() and self.status != 'paid'


class StatutoryChargePayment(models.Model):
    """Payment made against a statutory charge"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    charge = models.ForeignKey(StatutoryCharge, on_delete=models.CASCADE, related_name='charge_payments')
    payment = models.OneToOneField(
        'funds.Payment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='statutory_charge_payment'
    )
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    payment_method = models.CharField(max_length=30)
    reference = models.CharField(max_length=100, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.reference} - {self.amount}"
