# loans/admin.py
from django.contrib import admin, messages
from loans.models import LoanProduct, Loan, LoanRepayment
from loans.services.loan_service import LoanError, loan_service


@admin.register(LoanProduct)
class LoanProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'min_amount', 'max_amount', 'interest_rate',
                    'interest_type', 'min_tenure_months', 'max_tenure_months', 'is_active']
    list_filter = ['is_active', 'interest_type']
    search_fields = ['name']


class LoanRepaymentInline(admin.TabularInline):
    model = LoanRepayment
    extra = 0
    can_delete = False
    readonly_fields = ['amount', 'principal_paid', 'interest_paid', 'paid_at',
                       'payment_method', 'reference', 'payment', 'recorded_by']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = ['id', 'member', 'product', 'amount', 'total_amount',
                    'status', 'application_date', 'disbursed_at']
    list_filter = ['status', 'type', 'application_date']
    search_fields = ['member__member_number', 'member__user__email']
    readonly_fields = ['monthly_payment', 'interest_amount', 'total_amount',
                       'processing_fee', 'application_date', 'approved_at',
                       'rejected_at', 'disbursed_at', 'completed_at']
    inlines = [LoanRepaymentInline]

    actions = ['approve_loans']

    def approve_loans(self, request, queryset):
        approved = 0
        for loan in queryset.filter(status='pending'):
            try:
                loan_service.approve(loan, request.user)
                approved += 1
            except LoanError as e:
                self.message_user(request, f"Loan #{loan.id}: {e}", messages.WARNING)
        self.message_user(request, f"{approved} loan(s) approved")
    approve_loans.short_description = "Approve selected loans"


@admin.register(LoanRepayment)
class LoanRepaymentAdmin(admin.ModelAdmin):
    list_display = ['reference', 'loan', 'amount', 'principal_paid',
                    'interest_paid', 'payment_method', 'paid_at']
    list_filter = ['payment_method', 'paid_at']
    search_fields = ['reference', 'loan__member__member_number']
