# loans/services/repayment_service.py
import logging
import secrets
import time
from decimal import Decimal

from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from funds.services.payment_config import ManualPaymentError
from funds.services.payment_service import payment_service
from funds.services.wallet_service import credit_wallet, debit_wallet, get_wallet
from loans.models import Loan, LoanRepayment
from loans.services.loan_service import LoanError
from loans.utils import build_schedule, money, split_repayment
from notifications.services import notification_service
from tenants.context import tenant_atomic

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ('wallet', 'card', 'bank_transfer')


class RepaymentError(LoanError):
    """Repayment refused; carries the HTTP status the API answers with"""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code


def total_repaid(loan):
    return LoanRepayment.objects.filter(loan=loan).aggregate(
        total=Sum('amount')
    )['total'] or Decimal('0')


def total_principal_repaid(loan):
    return LoanRepayment.objects.filter(loan=loan).aggregate(
        total=Sum('principal_paid')
    )['total'] or Decimal('0')


def remaining_balance(loan):
    return loan.total_amount - total_repaid(loan)


def repayment_reference():
    return f"LRP_{int(time.time())}_{secrets.token_hex(4).upper()}"


def check_completion(loan):
    """
    Mark the loan completed once its repayments cover the total amount.

    Returns True only on the transition, so callers notify exactly once.
    """
    if loan.status != 'approved':
        return False
    if total_repaid(loan) < loan.total_amount:
        return False

    loan.status = 'completed'
    loan.completed_at = timezone.now()
    loan.save(update_fields=['status', 'completed_at', 'updated_at'])
    logger.info(f"Loan #{loan.id} fully repaid")
    return True


def record_repayment(loan, amount, payment_method, payment=None, recorded_by=None,
                     principal=None, interest=None, reference=None, paid_at=None,
                     notes=''):
    """
    Append a repayment to the ledger and run the completion check.

    The caller holds the loan row lock. Without an explicit split the amount
    is divided between principal and interest in proportion to what is still
    owed on each. Returns (repayment, completed).
    """
    amount = money(amount)
    remaining = remaining_balance(loan)
    if amount > remaining:
        raise RepaymentError('Repayment amount exceeds remaining balance')

    if principal is None or interest is None:
        remaining_principal = loan.amount - total_principal_repaid(loan)
        principal, interest = split_repayment(amount, remaining_principal, remaining)

    paid_at = paid_at or timezone.now()
    repayment = LoanRepayment.objects.create(
        loan=loan,
        amount=amount,
        principal_paid=principal,
        interest_paid=interest,
        due_date=timezone.localdate(paid_at),
        paid_at=paid_at,
        payment_method=payment_method,
        status='paid',
        reference=reference or repayment_reference(),
        payment=payment,
        recorded_by=recorded_by,
        notes=notes,
    )
    logger.info(f"Repayment {repayment.reference} of {amount} recorded on loan #{loan.id}")
    return repayment, check_completion(loan)


def notify_repayment_outcome(loan, amount, completed):
    if completed:
        notification_service.notify_loan_completed(loan)
    else:
        notification_service.notify_repayment(loan, amount, remaining_balance(loan))


def finalize_loan_repayment(payment):
    """
    Settle a completed loan repayment payment, whatever the channel.

    Wallet, gateway webhook and approved bank transfer payments all end here.
    Anything above the balance still owed goes back to the member's wallet.
    """
    loan = Loan.objects.select_for_update().get(pk=payment.loan_id)

    if LoanRepayment.objects.filter(payment=payment).exists():
        return {}

    remaining = remaining_balance(loan)
    applied = min(payment.amount, max(remaining, Decimal('0')))
    excess = payment.amount - applied

    repayment = None
    completed = False
    if applied > 0:
        repayment, completed = record_repayment(
            loan,
            applied,
            payment.payment_method,
            payment=payment,
            reference=payment.reference,
        )

    if excess > 0:
        credit_wallet(
            get_wallet(payment.user),
            excess,
            description=f'Overpayment refund on loan #{loan.id}',
            payment_method=payment.payment_method,
            payment_reference=payment.reference,
            metadata={'loan_id': loan.id, 'payment_id': payment.id},
        )
        logger.warning(f"Payment {payment.reference} exceeded loan #{loan.id} balance by {excess}")

    if repayment is not None:
        notify_repayment_outcome(loan, applied, completed)

    return {
        'repayment': repayment,
        'loan_completed': completed,
        'remaining_balance': remaining - applied,
        'excess_credited': excess,
    }


class LoanRepaymentService:
    """Member-initiated repayments"""

    def repay(self, user, loan_id, amount, payment_method, data=None):
        data = data or {}
        if payment_method not in PAYMENT_METHODS:
            raise RepaymentError('Invalid payment method')

        member = getattr(user, 'member', None)
        loan = Loan.objects.filter(pk=loan_id).first()
        if loan is None:
            raise RepaymentError('Loan not found', status_code=404)
        if member is None or loan.member_id != member.id:
            raise RepaymentError('Unauthorized', status_code=403)

        with tenant_atomic():
            loan = Loan.objects.select_for_update().get(pk=loan.pk)

            if loan.status != 'approved':
                raise RepaymentError('Loan is not approved')

            repaid = total_repaid(loan)
            remaining = loan.total_amount - repaid
            if remaining <= 0:
                raise RepaymentError('Loan is already fully repaid')
            if amount > remaining:
                raise RepaymentError('Repayment amount exceeds remaining balance')

            manual_fields = {}
            account = None
            if payment_method == 'bank_transfer':
                try:
                    account, manual_fields = payment_service.prepare_bank_transfer(data)
                except ManualPaymentError as e:
                    raise RepaymentError(str(e), status_code=422) from e

            payment = payment_service.create_payment(
                user,
                amount,
                'loan_repayment',
                payment_method,
                description=f'Loan repayment for loan #{loan.id}',
                loan=loan,
                metadata={
                    key: value for key, value in {
                        'notes': data.get('notes'),
                        'bank_account_id': account['id'] if account else None,
                    }.items() if value is not None
                },
                **manual_fields,
            )

            if payment_method == 'wallet':
                payment_data = self._pay_from_wallet(user, loan, payment)
            elif payment_method == 'card':
                result = payment_service.initialize_card_payment(payment, data.get('gateway'))
                payment_data = {
                    'payment_url': result['payment_url'],
                    'gateway': payment.gateway,
                    'reference': payment.reference,
                }
            else:
                payment_data = payment_service.initialize_bank_transfer(payment, account)

        payment.refresh_from_db()
        return {
            'payment': payment,
            'loan': loan,
            'total_repaid': repaid,
            'remaining_amount': remaining - amount,
            'payment_data': payment_data,
        }

    def _pay_from_wallet(self, user, loan, payment):
        debit_wallet(
            get_wallet(user),
            payment.amount,
            description=f'Loan repayment for loan #{loan.id}',
            payment_method='wallet',
            payment_reference=payment.reference,
            metadata={'loan_id': loan.id, 'payment_id': payment.id},
        )
        payment, outcome = payment_service.finalize_payment(payment)
        loan.refresh_from_db()
        return {
            'repayment_id': outcome['repayment'].id,
            'loan_completed': outcome['loan_completed'],
            'remaining_balance': outcome['remaining_balance'],
        }

    def record_by_admin(self, admin_user, loan_id, member_id, amount, payment_method,
                        principal=None, interest=None, paid_at=None, notes=''):
        """Repayment collected outside the platform and recorded by staff"""
        with tenant_atomic():
            loan = Loan.objects.select_for_update().filter(pk=loan_id).first()
            if loan is None:
                raise RepaymentError('Loan not found', status_code=404)
            if str(loan.member_id) != str(member_id):
                raise RepaymentError('Loan does not belong to the selected member')
            if loan.status != 'approved':
                raise RepaymentError('Repayments can only be recorded on approved loans')

            remaining = remaining_balance(loan)
            if remaining <= 0:
                raise RepaymentError('Loan is already fully repaid')
            if amount > remaining:
                raise RepaymentError('Repayment amount exceeds remaining balance')

            if (principal is None) != (interest is None):
                raise RepaymentError('Provide both principal and interest, or neither')
            if principal is not None:
                if money(principal + interest) != money(amount):
                    raise RepaymentError('Principal and interest must add up to the amount')
                if principal > loan.amount - total_principal_repaid(loan):
                    raise RepaymentError('Principal exceeds the remaining principal')

            repayment, completed = record_repayment(
                loan,
                amount,
                payment_method,
                recorded_by=admin_user,
                principal=principal,
                interest=interest,
                paid_at=paid_at,
                notes=notes,
            )

        notify_repayment_outcome(loan, repayment.amount, completed)
        return repayment, completed


repayment_service = LoanRepaymentService()


def repayment_schedule(loan, today=None):
    """Amortization schedule with repayment matching and running totals"""
    monthly_payment = loan.monthly_payment or (loan.total_amount / loan.duration_months)
    repayments = list(LoanRepayment.objects.filter(loan=loan))
    schedule = build_schedule(
        loan.amount,
        loan.interest_rate,
        loan.duration_months,
        monthly_payment,
        timezone.localdate(loan.application_date),
        repayments=repayments,
        today=today or timezone.localdate(),
        tolerance=Decimal(settings.LOANS['SCHEDULE_MATCH_TOLERANCE']),
    )

    principal_repaid = sum((r.principal_paid for r in repayments), Decimal('0'))
    interest_repaid = sum((r.interest_paid for r in repayments), Decimal('0'))
    repaid = sum((r.amount for r in repayments), Decimal('0'))

    return {
        'loan_id': loan.id,
        'loan_amount': loan.amount,
        'interest_rate': loan.interest_rate,
        'duration_months': loan.duration_months,
        'monthly_payment': money(monthly_payment),
        'total_amount': loan.total_amount,
        'total_principal_repaid': principal_repaid,
        'total_interest_paid': interest_repaid,
        'remaining_principal': max(loan.amount - principal_repaid, Decimal('0')),
        'remaining_balance': max(loan.total_amount - repaid, Decimal('0')),
        'is_fully_repaid': repaid >= loan.total_amount,
        'schedule': schedule,
    }
