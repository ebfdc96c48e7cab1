"""Tests for loan applications, decisions and repayments."""
from decimal import Decimal

import pytest

from funds.models import Payment
from funds.services.wallet_service import get_wallet
from loans.models import Loan, LoanRepayment
from loans.services.eligibility import eligibility_service
from loans.services.loan_service import LoanError, LoanNotEligible, loan_service
from loans.services.repayment_service import (
    RepaymentError, repayment_schedule, repayment_service
)
from notifications.models import Notification


def application(product, **overrides):
    data = {
        'product_id': product.id,
        'amount': '100000',
        'tenure_months': 12,
        'purpose': 'School fees',
        'net_pay': '250000',
        'employment_status': 'employed',
        'guarantor_name': 'Chinedu Eze',
        'guarantor_phone': '08030000000',
        'guarantor_relationship': 'Brother',
    }
    data.update(overrides)
    return data


@pytest.mark.django_db
class TestEligibility:
    """Eligibility rules for a loan application."""

    def test_eligible_member(self, member, product):
        """A verified active member within product limits is eligible."""
        result = eligibility_service.check_eligibility(member, product, Decimal('50000'), 6)
        assert result == {'eligible': True, 'reasons': []}

    def test_kyc_required(self, member, product):
        """Unverified KYC is reported."""
        member.kyc_status = 'pending'
        member.save()
        result = eligibility_service.check_eligibility(member, product, Decimal('50000'), 6)
        assert not result['eligible']
        assert 'KYC verification required' in result['reasons']

    def test_amount_and_tenure_limits(self, member, product):
        """Every broken limit gets its own reason."""
        result = eligibility_service.check_eligibility(member, product, Decimal('5000'), 36)
        assert 'Minimum loan amount is ₦10,000' in result['reasons']
        assert 'Maximum tenure is 24 months' in result['reasons']

    def test_existing_active_loan(self, member, product, loan):
        """An approved loan blocks another application."""
        result = eligibility_service.check_eligibility(member, product, Decimal('50000'), 6)
        assert 'Member has existing active loans' in result['reasons']

    def test_contribution_criteria(self, member, product):
        """Product criteria on contributions are enforced."""
        product.eligibility_criteria = {'min_contributions': 20000}
        product.save()
        Payment.objects.create(
            reference='CON_1', user=member.user, amount=Decimal('5000'),
            purpose='contribution', payment_method='wallet', status='completed',
        )
        result = eligibility_service.check_eligibility(member, product, Decimal('50000'), 6)
        assert 'Minimum contribution amount of ₦20,000 required' in result['reasons']

    def test_affordability(self, member):
        """Debt-to-income below the limit is affordable."""
        result = eligibility_service.calculate_affordability(member, Decimal('120000'), 12, Decimal('12'))
        assert result['monthly_payment'] == Decimal('11200.00')
        assert result['debt_to_income_ratio'] == Decimal('2.24')
        assert result['is_affordable'] is True


@pytest.mark.django_db
class TestLoanApplicationService:
    """Application and admin decisions."""

    def test_apply_computes_figures(self, member, product, admin_user):
        """Interest, instalment and fee are fixed at application time."""
        loan = loan_service.apply(member, product.id, Decimal('100000'), 12, purpose='Rent')
        assert loan.status == 'pending'
        assert loan.interest_amount == Decimal('12000.00')
        assert loan.total_amount == Decimal('112000.00')
        assert loan.monthly_payment == Decimal('9333.33')
        assert loan.processing_fee == Decimal('1000.00')
        assert Notification.objects.filter(user=admin_user, title='New Loan Application').exists()

    def test_apply_not_eligible(self, member, product):
        """Ineligible applications raise with the reasons."""
        member.kyc_status = 'rejected'
        member.save()
        with pytest.raises(LoanNotEligible) as exc:
            loan_service.apply(member, product.id, Decimal('100000'), 12)
        assert 'KYC verification required' in exc.value.reasons
        assert not Loan.objects.exists()

    def test_inactive_product(self, member, product):
        """Inactive products cannot be applied for."""
        product.is_active = False
        product.save()
        with pytest.raises(LoanError):
            loan_service.apply(member, product.id, Decimal('100000'), 12)

    def test_approve_only_pending(self, member, product, admin_user, loan_factory):
        """Approval is a one-way move out of pending."""
        loan = loan_factory(member, product, status='pending')
        loan = loan_service.approve(loan, admin_user)
        assert loan.status == 'approved'
        assert loan.approved_by == admin_user
        with pytest.raises(LoanError):
            loan_service.approve(loan, admin_user)

    def test_reject_requires_reason(self, member, product, admin_user, loan_factory):
        """Rejections carry a reason."""
        loan = loan_factory(member, product, status='pending')
        with pytest.raises(LoanError):
            loan_service.reject(loan, admin_user, '   ')
        loan = loan_service.reject(loan, admin_user, 'Insufficient savings')
        assert loan.status == 'rejected'
        assert loan.rejection_reason == 'Insufficient savings'

    def test_disburse_keeps_status(self, loan, admin_user):
        """Disbursement records who and when without changing the status."""
        loan = loan_service.disburse(loan, admin_user)
        assert loan.status == 'approved'
        assert loan.disbursed_at is not None
        with pytest.raises(LoanError):
            loan_service.disburse(loan, admin_user)

    def test_delete_pending_only(self, loan, admin_user):
        """Approved loans cannot be deleted."""
        with pytest.raises(LoanError):
            loan_service.delete(loan)


@pytest.mark.django_db
class TestWalletRepayment:
    """Member repayments from the wallet."""

    def test_partial_repayment(self, user, loan, funded_wallet):
        """Wallet is debited and the repayment recorded."""
        result = repayment_service.repay(user, loan.id, Decimal('11200'), 'wallet')

        payment = result['payment']
        assert payment.status == 'completed'
        assert payment.purpose == 'loan_repayment'

        repayment = LoanRepayment.objects.get(loan=loan)
        assert repayment.amount == Decimal('11200.00')
        assert repayment.principal_paid == Decimal('10000.00')
        assert repayment.interest_paid == Decimal('1200.00')
        assert repayment.payment == payment

        funded_wallet.refresh_from_db()
        assert funded_wallet.balance == Decimal('188800.00')
        loan.refresh_from_db()
        assert loan.status == 'approved'
        assert loan.remaining_balance == Decimal('100800.00')

    def test_full_repayment_completes_once(self, user, loan, funded_wallet):
        """Paying the total completes the loan and notifies exactly once."""
        repayment_service.repay(user, loan.id, Decimal('112000'), 'wallet')

        loan.refresh_from_db()
        assert loan.status == 'completed'
        assert loan.completed_at is not None
        assert Notification.objects.filter(user=user, title='Loan Fully Repaid').count() == 1

        with pytest.raises(RepaymentError):
            repayment_service.repay(user, loan.id, Decimal('100'), 'wallet')

    def test_insufficient_balance_rolls_back(self, user, loan):
        """A failed wallet debit leaves no payment behind."""
        from funds.services.wallet_service import InsufficientBalanceError

        with pytest.raises(InsufficientBalanceError):
            repayment_service.repay(user, loan.id, Decimal('5000'), 'wallet')
        assert not Payment.objects.exists()
        assert not LoanRepayment.objects.exists()
        assert get_wallet(user).balance == Decimal('0')

    def test_overpayment_refused(self, user, loan, funded_wallet):
        """Amounts above the remaining balance are refused."""
        with pytest.raises(RepaymentError):
            repayment_service.repay(user, loan.id, Decimal('112000.01'), 'wallet')

    def test_pending_loan_refused(self, user, member, product, funded_wallet, loan_factory):
        """Only approved loans take repayments."""
        loan = loan_factory(member, product, status='pending')
        with pytest.raises(RepaymentError) as exc:
            repayment_service.repay(user, loan.id, Decimal('1000'), 'wallet')
        assert str(exc.value) == 'Loan is not approved'

    def test_other_members_loan(self, other_user, loan):
        """Repaying someone else's loan is forbidden."""
        with pytest.raises(RepaymentError) as exc:
            repayment_service.repay(other_user, loan.id, Decimal('1000'), 'wallet')
        assert exc.value.status_code == 403

    def test_unknown_loan(self, user):
        """Missing loans answer 404."""
        with pytest.raises(RepaymentError) as exc:
            repayment_service.repay(user, 999999, Decimal('1000'), 'wallet')
        assert exc.value.status_code == 404


@pytest.mark.django_db
class TestOtherRepaymentChannels:
    """Card and bank transfer repayments stay pending until settled."""

    def test_card_repayment_pending(self, user, loan, paystack_gateway):
        """Card repayments return a payment URL and record nothing yet."""
        result = repayment_service.repay(user, loan.id, Decimal('9333.33'), 'card')
        assert result['payment'].status == 'pending'
        assert result['payment'].gateway == 'paystack'
        assert result['payment_data']['payment_url']
        assert not LoanRepayment.objects.exists()

    def test_bank_transfer_then_approval(self, user, loan, admin_user, manual_gateway, manual_payload):
        """An approved bank transfer settles the repayment."""
        from funds.services.payment_service import payment_service

        result = repayment_service.repay(user, loan.id, Decimal('9333.33'), 'bank_transfer', data=manual_payload)
        payment = result['payment']
        assert payment.approval_status == 'pending'
        assert payment.bank_name == 'GTBank'
        assert result['payment_data']['account']['id'] == 'gtb'

        payment, outcome = payment_service.approve_manual_payment(payment, admin_user)
        assert payment.status == 'completed'
        assert outcome['repayment'].amount == Decimal('9333.33')

    def test_bank_transfer_missing_evidence(self, user, loan, manual_gateway, manual_payload):
        """Missing evidence is a 422."""
        manual_payload.pop('payment_evidence')
        with pytest.raises(RepaymentError) as exc:
            repayment_service.repay(user, loan.id, Decimal('1000'), 'bank_transfer', data=manual_payload)
        assert exc.value.status_code == 422
        assert not Payment.objects.exists()


@pytest.mark.django_db
class TestAdminRecordedRepayment:
    """Repayments collected outside the platform."""

    def test_record_with_split(self, loan, member, admin_user):
        """An explicit split is stored as given."""
        repayment, completed = repayment_service.record_by_admin(
            admin_user, loan.id, member.id, Decimal('9333.33'), 'cash',
            principal=Decimal('8333.33'), interest=Decimal('1000'),
        )
        assert not completed
        assert repayment.principal_paid == Decimal('8333.33')
        assert repayment.recorded_by == admin_user

    def test_split_must_add_up(self, loan, member, admin_user):
        """Principal and interest must match the amount."""
        with pytest.raises(RepaymentError):
            repayment_service.record_by_admin(
                admin_user, loan.id, member.id, Decimal('9333.33'), 'cash',
                principal=Decimal('8000'), interest=Decimal('1000'),
            )

    def test_wrong_member(self, loan, other_user, admin_user):
        """The loan must belong to the selected member."""
        with pytest.raises(RepaymentError):
            repayment_service.record_by_admin(
                admin_user, loan.id, other_user.member.id, Decimal('1000'), 'cash'
            )

    def test_completed_loan_refused(self, loan, member, admin_user):
        """Completed loans take no further repayments."""
        loan.status = 'completed'
        loan.save()
        with pytest.raises(RepaymentError, match='approved loans'):
            repayment_service.record_by_admin(
                admin_user, loan.id, member.id, Decimal('1000'), 'cash'
            )


@pytest.mark.django_db
class TestSchedule:
    """Schedule built from the stored loan."""

    def test_schedule_reflects_repayments(self, user, loan, funded_wallet):
        """Totals follow the repayment ledger."""
        repayment_service.repay(user, loan.id, Decimal('11200'), 'wallet')
        schedule = repayment_schedule(loan)
        assert schedule['total_principal_repaid'] == Decimal('10000.00')
        assert schedule['remaining_balance'] == Decimal('100800.00')
        assert schedule['is_fully_repaid'] is False
        assert schedule['schedule'][0]['interest'] == Decimal('1000.00')


@pytest.mark.django_db
class TestLoanAPI:
    """Member and admin loan endpoints."""

    def test_apply(self, member_client, product):
        """A valid application answers 201 with the computed figures."""
        response = member_client.post('/api/v1/loans/', application(product), format='json')
        assert response.status_code == 201
        assert response.data['success'] is True
        assert response.data['data']['loan']['status'] == 'pending'
        assert response.data['data']['loan_details']['total_amount'] == Decimal('112000.00')
        loan = Loan.objects.get()
        assert loan.application_metadata['guarantor_name'] == 'Chinedu Eze'

    def test_apply_not_eligible(self, member_client, member, product):
        """Ineligible applications answer 400 with reasons."""
        member.kyc_status = 'pending'
        member.save()
        response = member_client.post('/api/v1/loans/', application(product), format='json')
        assert response.status_code == 400
        assert response.data['success'] is False
        assert 'KYC verification required' in response.data['reasons']

    def test_apply_validation(self, member_client, product):
        """Amounts under the global minimum fail validation."""
        response = member_client.post('/api/v1/loans/', application(product, amount='500'), format='json')
        assert response.status_code == 400

    def test_list_own_loans(self, member_client, loan, other_user, product, loan_factory):
        """Members only see their own loans."""
        loan_factory(other_user.member, product)
        response = member_client.get('/api/v1/loans/')
        assert response.status_code == 200
        assert [item['id'] for item in response.data['results']] == [loan.id]

    def test_other_members_loan_not_found(self, api_client, other_user, loan):
        """Another member's loan is invisible."""
        api_client.force_authenticate(user=other_user)
        response = api_client.get(f'/api/v1/loans/{loan.id}/')
        assert response.status_code == 404

    def test_repay_with_wallet(self, member_client, loan, funded_wallet):
        """Wallet repayment answers 200 with the new balance."""
        response = member_client.post(
            f'/api/v1/loans/{loan.id}/repay/',
            {'amount': '11200', 'payment_method': 'wallet'},
            format='json'
        )
        assert response.status_code == 200
        assert response.data['message'] == 'Loan repayment successful'
        assert response.data['data']['remaining_amount'] == Decimal('100800.00')

    def test_repay_insufficient_balance(self, member_client, loan):
        """Wallet shortfalls answer 400."""
        response = member_client.post(
            f'/api/v1/loans/{loan.id}/repay/',
            {'amount': '1000', 'payment_method': 'wallet'},
            format='json'
        )
        assert response.status_code == 400
        assert response.data['message'] == 'Insufficient wallet balance'

    def test_schedule_endpoint(self, member_client, loan):
        """The schedule lists every instalment."""
        response = member_client.get(f'/api/v1/loans/{loan.id}/schedule/')
        assert response.status_code == 200
        assert response.data['data']['schedule'][0]['installment_number'] == 1

    def test_admin_approve(self, admin_client, member, product, loan_factory):
        """Admins approve pending loans."""
        loan = loan_factory(member, product, status='pending')
        response = admin_client.post(f'/api/v1/admin/loans/{loan.id}/approve/')
        assert response.status_code == 200
        loan.refresh_from_db()
        assert loan.status == 'approved'

    def test_admin_reject_twice(self, admin_client, loan):
        """Deciding an approved loan again answers 400."""
        response = admin_client.post(
            f'/api/v1/admin/loans/{loan.id}/reject/',
            {'rejection_reason': 'Changed our mind'},
            format='json'
        )
        assert response.status_code == 400

    def test_member_cannot_approve(self, member_client, loan):
        """Admin endpoints are closed to members."""
        response = member_client.post(f'/api/v1/admin/loans/{loan.id}/approve/')
        assert response.status_code == 403

    def test_admin_record_repayment(self, admin_client, loan, member):
        """Recorded repayments answer 201."""
        response = admin_client.post('/api/v1/admin/loans/record-repayment/', {
            'member_id': member.id,
            'loan_id': loan.id,
            'amount': '112000',
            'payment_method': 'cash',
        }, format='json')
        assert response.status_code == 201
        assert response.data['data']['loan_completed'] is True

    def test_product_calculator(self, member_client, product):
        """The calculator returns the instalment for the product."""
        response = member_client.post(
            f'/api/v1/loan-products/{product.id}/calculate/',
            {'amount': '100000', 'tenure_months': 12},
            format='json'
        )
        assert response.status_code == 200
