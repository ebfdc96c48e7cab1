# loans/utils.py
"""
Loan calculations.

Pure functions with no database access: interest, instalments, fees,
repayment allocation and the amortization schedule. Money is kept as
Decimal and rounded half-up to two places.
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from dateutil.relativedelta import relativedelta

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0')

LOAN_TYPE_KEYWORDS = [
    ('housing', ('house', 'home', 'mortgage')),
    ('business', ('business', 'enterprise')),
    ('emergency', ('emergency', 'urgent')),
]


def money(value):
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_interest(amount, annual_rate, months, interest_type='simple'):
    """
    Interest over the whole tenure for an annual percentage rate.

    simple:   amount x rate/100 x months/12
    compound: amount x (1 + rate/1200)^months - amount
    """
    amount = Decimal(amount)
    rate = Decimal(annual_rate)
    months = int(months)

    if interest_type == 'compound':
        monthly_rate = rate / Decimal('1200')
        return money(amount * (1 + monthly_rate) ** months - amount)

    return money(amount * rate / 100 * months / 12)


def calculate_monthly_payment(amount, interest, months):
    """Equal instalment covering principal plus interest"""
    months = int(months)
    if months <= 0:
        raise ValueError('Tenure must be at least one month')
    return money((Decimal(amount) + Decimal(interest)) / months)


def calculate_processing_fee(amount, percentage):
    return money(Decimal(amount) * Decimal(percentage) / 100)


def infer_loan_type(product_name):
    """Guess the loan type from keywords in the product name"""
    name = (product_name or '').lower()
    for loan_type, keywords in LOAN_TYPE_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return loan_type
    return 'personal'


def split_repayment(amount, remaining_principal, remaining_total):
    """
    Allocate a payment between principal and interest in proportion to
    what is still owed on each.

    Returns (principal, interest).
    """
    amount = money(amount)
    remaining_principal = Decimal(remaining_principal)
    remaining_total = Decimal(remaining_total)

    if remaining_total <= 0 or remaining_principal <= 0:
        return ZERO, amount

    principal = money(amount * remaining_principal / remaining_total)
    principal = min(principal, money(remaining_principal), amount)
    return principal, amount - principal


def build_schedule(amount, annual_rate, duration_months, monthly_payment, start_date,
                   repayments=(), today=None, tolerance=Decimal('0.99')):
    """
    Reducing-balance amortization schedule for a loan.

    Each instalment charges interest on the remaining balance at
    annual_rate/12; the rest of the monthly payment goes to principal. The
    final instalment absorbs whatever principal is left, so the principal
    column always sums to the loan amount. Generation stops early once the
    balance is cleared.

    An instalment counts as paid when a paid repayment due on or before it
    covers at least `tolerance` of its principal. Each repayment marks at
    most one instalment.
    """
    today = today or date.today()
    if hasattr(start_date, 'date'):
        start_date = start_date.date()

    monthly_rate = Decimal(annual_rate) / 100 / 12
    payment = Decimal(monthly_payment)
    remaining = money(amount)
    tolerance = Decimal(tolerance)

    candidates = sorted(
        (r for r in repayments if r.status == 'paid' and r.due_date is not None),
        key=lambda r: (r.due_date, r.paid_at, r.id),
    )
    used = set()

    schedule = []
    for month in range(1, int(duration_months) + 1):
        if remaining <= 0:
            break

        interest = money(remaining * monthly_rate)
        principal = money(payment - interest)
        if principal > remaining or month == int(duration_months):
            principal = remaining
        principal = max(principal, ZERO)

        remaining -= principal
        due_date = start_date + relativedelta(months=month)

        match = None
        for repayment in reversed(candidates):
            if repayment.id in used or repayment.due_date > due_date:
                continue
            if Decimal(repayment.principal_paid) >= principal * tolerance:
                match = repayment
                break

        if match is not None:
            used.add(match.id)
            status = 'paid'
        elif due_date < today:
            status = 'overdue'
        else:
            status = 'pending'

        schedule.append({
            'installment_number': month,
            'due_date': due_date,
            'principal': principal,
            'interest': interest,
            'total': principal + interest,
            'balance': remaining,
            'status': status,
            'paid_date': match.paid_at if match is not None else None,
            'repayment_id': match.id if match is not None else None,
        })

    return schedule
