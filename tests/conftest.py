"""Pytest configuration and fixtures."""
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from funds.models import PaymentGateway
from loans.models import Loan, LoanProduct
from loans.utils import calculate_interest, calculate_monthly_payment
from users.models import User


@pytest.fixture(autouse=True)
def test_settings(settings):
    """Single-database mode with simulated gateways."""
    settings.TENANCY_REQUIRED = False
    settings.PAYMENT_GATEWAY_SIMULATE = True
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    return settings


def make_user(email, role='member', **extra):
    return User.objects.create_user(
        username=email.split('@')[0],
        email=email,
        password='Str0ng-pass!',
        first_name=extra.pop('first_name', 'Ada'),
        last_name=extra.pop('last_name', 'Obi'),
        role=role,
        **extra
    )


@pytest.fixture
def user(db):
    """Member account with verified KYC."""
    user = make_user('ada@example.com')
    member = user.member
    member.kyc_status = 'verified'
    member.kyc_verified_at = timezone.now()
    member.estimated_monthly_income = Decimal('500000')
    member.save()
    return user


@pytest.fixture
def member(user):
    return user.member


@pytest.fixture
def other_user(db):
    user = make_user('bola@example.com', first_name='Bola')
    user.member.kyc_status = 'verified'
    user.member.save()
    return user


@pytest.fixture
def admin_user(db):
    return make_user('admin@example.com', role='admin', first_name='Admin')


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def member_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture
def product(db):
    return LoanProduct.objects.create(
        name='Personal Loan',
        min_amount=Decimal('10000'),
        max_amount=Decimal('1000000'),
        interest_rate=Decimal('12'),
        min_tenure_months=1,
        max_tenure_months=24,
        processing_fee_percentage=Decimal('1'),
    )


def make_loan(member, product, amount='100000', months=12, status='approved'):
    amount = Decimal(amount)
    interest = calculate_interest(amount, product.interest_rate, months)
    return Loan.objects.create(
        member=member,
        product=product,
        amount=amount,
        interest_rate=product.interest_rate,
        duration_months=months,
        status=status,
        monthly_payment=calculate_monthly_payment(amount, interest, months),
        interest_amount=interest,
        total_amount=amount + interest,
    )


@pytest.fixture
def loan_factory(db):
    return make_loan


@pytest.fixture
def user_factory(db):
    return make_user


@pytest.fixture
def loan(member, product):
    """Approved 100,000 loan over 12 months at 12%: total 112,000."""
    return make_loan(member, product)


@pytest.fixture
def funded_wallet(user):
    from funds.services.wallet_service import credit_wallet, get_wallet

    wallet = get_wallet(user)
    credit_wallet(wallet, Decimal('200000'), description='Opening balance')
    wallet.refresh_from_db()
    return wallet


@pytest.fixture
def paystack_gateway(db):
    return PaymentGateway.objects.create(
        gateway_type='paystack',
        is_enabled=True,
        public_key='pk_test',
    )


@pytest.fixture
def manual_gateway(db):
    return PaymentGateway.objects.create(
        gateway_type='manual',
        is_enabled=True,
        configuration={
            'require_payer_name': True,
            'require_transaction_reference': True,
            'require_payment_evidence': True,
            'bank_accounts': [
                {
                    'id': 'gtb',
                    'bank_name': 'GTBank',
                    'account_name': 'Cooperative',
                    'account_number': '0123456789',
                    'is_primary': True,
                },
            ],
        },
    )


@pytest.fixture
def manual_payload():
    return {
        'payer_name': 'Ada Obi',
        'transaction_reference': 'TRX-001',
        'payment_evidence': ['https://files.example.com/receipt.png'],
    }
