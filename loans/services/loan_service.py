# loans/services/loan_service.py
import logging

from django.utils import timezone

from loans.models import Loan, LoanProduct
from loans.services.eligibility import eligibility_service
from loans.utils import calculate_processing_fee, infer_loan_type
from notifications.services import notification_service
from tenants.context import tenant_atomic

logger = logging.getLogger(__name__)


class LoanError(Exception):
    """Business rule violation on a loan (HTTP 400)"""


class LoanNotEligible(LoanError):
    def __init__(self, reasons):
        self.reasons = list(reasons)
        super().__init__('Loan application not eligible: ' + ', '.join(self.reasons))


class LoanApplicationService:
    """Loan application and the admin decisions that follow it"""

    def apply(self, member, product_id, amount, tenure_months, purpose='', metadata=None):
        product = LoanProduct.objects.filter(pk=product_id).first()
        if product is None or not product.is_active:
            raise LoanError('Loan product not available')

        eligibility = eligibility_service.check_eligibility(member, product, amount, tenure_months)
        if not eligibility['eligible']:
            logger.info(f"Loan application by {member.member_number} rejected: {eligibility['reasons']}")
            raise LoanNotEligible(eligibility['reasons'])

        interest_amount = product.calculate_interest(amount, tenure_months)
        monthly_payment = product.calculate_monthly_payment(amount, tenure_months)

        with tenant_atomic():
            loan = Loan.objects.create(
                member=member,
                product=product,
                amount=amount,
                interest_rate=product.interest_rate,
                duration_months=tenure_months,
                type=infer_loan_type(product.name),
                purpose=purpose,
                status='pending',
                application_date=timezone.now(),
                monthly_payment=monthly_payment,
                interest_amount=interest_amount,
                total_amount=amount + interest_amount,
                processing_fee=calculate_processing_fee(amount, product.processing_fee_percentage),
                required_documents=product.required_documents or [],
                application_metadata=metadata or {},
            )

        logger.info(f"Loan #{loan.id} applied by {member.member_number} for {amount}")
        notification_service.notify_admins_new_loan_application(loan)
        return loan

    def _lock(self, loan):
        return Loan.objects.select_for_update().get(pk=loan.pk)

    def approve(self, loan, admin_user):
        with tenant_atomic():
            loan = self._lock(loan)
            if loan.status != 'pending':
                raise LoanError('Only pending loans can be approved')

            loan.status = 'approved'
            loan.approved_at = timezone.now()
            loan.approved_by = admin_user
            loan.save(update_fields=['status', 'approved_at', 'approved_by', 'updated_at'])

        logger.info(f"Loan #{loan.id} approved by {admin_user.email}")
        notification_service.notify_loan_approved(loan)
        return loan

    def reject(self, loan, admin_user, reason):
        if not reason or not reason.strip():
            raise LoanError('Rejection reason is required')

        with tenant_atomic():
            loan = self._lock(loan)
            if loan.status != 'pending':
                raise LoanError('Only pending loans can be rejected')

            loan.status = 'rejected'
            loan.rejected_at = timezone.now()
            loan.rejected_by = admin_user
            loan.rejection_reason = reason.strip()
            loan.save(update_fields=['status', 'rejected_at', 'rejected_by',
                                     'rejection_reason', 'updated_at'])

        logger.info(f"Loan #{loan.id} rejected by {admin_user.email}")
        notification_service.notify_loan_rejected(loan)
        return loan

    def disburse(self, loan, admin_user):
        with tenant_atomic():
            loan = self._lock(loan)
            if loan.status != 'approved':
                raise LoanError('Only approved loans can be disbursed')
            if loan.disbursed_at is not None:
                raise LoanError('Loan has already been disbursed')

            loan.disbursed_at = timezone.now()
            loan.disbursed_by = admin_user
            loan.save(update_fields=['disbursed_at', 'disbursed_by', 'updated_at'])

        logger.info(f"Loan #{loan.id} disbursed by {admin_user.email}")
        notification_service.notify_loan_disbursed(loan)
        return loan

    def delete(self, loan):
        with tenant_atomic():
            loan = self._lock(loan)
            if loan.status != 'pending':
                raise LoanError('Only pending loans can be deleted')
            if loan.repayments.exists():
                raise LoanError('Cannot delete a loan with repayments')
            loan_id = loan.id
            loan.delete()

        logger.info(f"Loan #{loan_id} deleted")


loan_service = LoanApplicationService()
