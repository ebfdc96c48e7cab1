# loans/services/eligibility.py
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from funds.models import Payment
from loans.models import Loan
from loans.utils import money


def naira(value):
    return f"₦{Decimal(value):,.0f}"


def membership_months(member, now=None):
    now = now or timezone.now()
    delta = relativedelta(now, member.created_at)
    return delta.years * 12 + delta.months


def total_contributions(member):
    return Payment.objects.filter(
        user=member.user,
        purpose='contribution',
        status='completed'
    ).aggregate(total=Sum('amount'))['total'] or Decimal('0')


class LoanEligibilityService:
    """Rules a member must satisfy before a loan application is accepted"""

    def check_eligibility(self, member, product, amount, tenure_months):
        reasons = []
        amount = Decimal(amount)

        if member.kyc_status != 'verified':
            reasons.append('KYC verification required')

        if member.status != 'active':
            reasons.append('Member account is not active')

        if amount < product.min_amount:
            reasons.append(f"Minimum loan amount is {naira(product.min_amount)}")

        if amount > product.max_amount:
            reasons.append(f"Maximum loan amount is {naira(product.max_amount)}")

        if tenure_months < product.min_tenure_months:
            reasons.append(f"Minimum tenure is {product.min_tenure_months} months")

        if tenure_months > product.max_tenure_months:
            reasons.append(f"Maximum tenure is {product.max_tenure_months} months")

        active_loans = Loan.objects.filter(
            member=member,
            status__in=settings.LOANS['ACTIVE_STATUSES']
        ).exists()
        if active_loans:
            reasons.append('Member has existing active loans')

        criteria = product.eligibility_criteria or {}

        min_months = criteria.get('min_membership_months')
        if min_months is not None and membership_months(member) < int(min_months):
            reasons.append(f"Minimum membership duration of {min_months} months required")

        min_contributions = criteria.get('min_contributions')
        if min_contributions is not None and total_contributions(member) < Decimal(str(min_contributions)):
            reasons.append(f"Minimum contribution amount of {naira(min_contributions)} required")

        return {
            'eligible': not reasons,
            'reasons': reasons,
        }

    def calculate_affordability(self, member, amount, tenure_months, interest_rate):
        """Debt-to-income check against the member's declared income"""
        monthly_payment = money(
            Decimal(amount) * (1 + Decimal(interest_rate) / 100) / int(tenure_months)
        )
        monthly_income = member.estimated_monthly_income or Decimal('0')

        ratio = money(monthly_payment / monthly_income * 100) if monthly_income > 0 else Decimal('0')
        is_affordable = ratio <= settings.LOANS['MAX_DEBT_TO_INCOME']

        return {
            'monthly_payment': monthly_payment,
            'monthly_income': monthly_income,
            'debt_to_income_ratio': ratio,
            'is_affordable': is_affordable,
            'recommendation': (
                'Approved' if is_affordable
                else 'Review required - high debt-to-income ratio'
            ),
        }


eligibility_service = LoanEligibilityService()
