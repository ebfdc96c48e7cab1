"""Tests for wallets, payments, bank transfer setup and gateway webhooks."""
import hashlib
import hmac
import json
import time
from decimal import Decimal
from unittest import mock

import pytest

from funds.models import Payment, PaymentGateway, WalletTransaction
from funds.services.payment_config import (
    ManualPaymentError, normalize_bank_accounts, resolve_bank_account,
    tenant_payment_service, validate_manual_submission
)
from funds.services.payment_service import PaymentError, payment_service
from funds.services.wallet_service import (
    InsufficientBalanceError, InvalidAmountError, WalletError, credit_wallet,
    debit_wallet, get_wallet, ledger_balance, reconcile_wallet, transfer
)
from loans.models import LoanRepayment

ACCOUNTS = [
    {'id': 'gtb', 'bank_name': 'GTBank', 'account_name': 'Coop', 'account_number': '0123456789',
     'instructions': '', 'is_primary': False},
    {'id': 'uba', 'bank_name': 'UBA', 'account_name': 'Coop', 'account_number': '9876543210',
     'instructions': '', 'is_primary': True},
]


@pytest.mark.django_db
class TestWalletService:
    """Balance changes always go through the ledger."""

    def test_wallet_created_with_user(self, user):
        """Every account gets a wallet."""
        wallet = get_wallet(user)
        assert wallet.balance == Decimal('0')
        assert wallet.currency == 'NGN'

    def test_credit_and_debit(self, user):
        """Ledger rows carry the balance after each move."""
        wallet = get_wallet(user)
        credit_wallet(wallet, '1500.50', description='Top up')
        entry = debit_wallet(wallet, Decimal('500.25'))
        assert wallet.balance == Decimal('1000.25')
        assert entry.balance_after == Decimal('1000.25')
        assert ledger_balance(wallet) == Decimal('1000.25')

    def test_debit_more_than_balance(self, user):
        """Overdrafts are refused and leave no ledger row."""
        wallet = get_wallet(user)
        credit_wallet(wallet, Decimal('100'))
        with pytest.raises(InsufficientBalanceError):
            debit_wallet(wallet, Decimal('100.01'))
        assert WalletTransaction.objects.filter(wallet=wallet, type='debit').count() == 0

    @pytest.mark.parametrize('amount', ['0', '-5', 'abc', None, 'NaN'])
    def test_invalid_amounts(self, user, amount):
        """Non-positive and malformed amounts are refused."""
        with pytest.raises(InvalidAmountError):
            credit_wallet(get_wallet(user), amount)

    def test_inactive_wallet(self, user):
        """Inactive wallets cannot move money."""
        wallet = get_wallet(user)
        wallet.is_active = False
        wallet.save()
        with pytest.raises(WalletError):
            credit_wallet(wallet, Decimal('10'))

    def test_transfer(self, user, other_user, funded_wallet):
        """Transfers debit one wallet and credit the other under one reference."""
        debit = transfer(user, other_user, Decimal('2500'), note='Dues share')
        assert get_wallet(user).balance == Decimal('197500.00')
        assert get_wallet(other_user).balance == Decimal('2500.00')
        credit = WalletTransaction.objects.get(type='credit', payment_reference=debit.payment_reference)
        assert credit.wallet.user == other_user

    def test_transfer_to_self(self, user, funded_wallet):
        """Self transfers are refused."""
        with pytest.raises(WalletError):
            transfer(user, user, Decimal('10'))

    def test_reconcile(self, user, funded_wallet):
        """Drift is the stored balance minus the ledger balance."""
        assert reconcile_wallet(funded_wallet) == Decimal('0')
        type(funded_wallet).objects.filter(pk=funded_wallet.pk).update(balance=Decimal('1'))
        assert reconcile_wallet(funded_wallet) == Decimal('1') - Decimal('200000')


class TestBankAccounts:
    """Resolving the account a bank transfer went to."""

    def test_single_account_is_used(self):
        """With one account no selection is needed."""
        assert resolve_bank_account(ACCOUNTS[:1])['id'] == 'gtb'

    def test_selection_required_with_several(self):
        """Several accounts need an explicit choice."""
        with pytest.raises(ManualPaymentError):
            resolve_bank_account(ACCOUNTS)

    def test_selected_account(self):
        """The selected account is returned."""
        assert resolve_bank_account(ACCOUNTS, 'uba')['bank_name'] == 'UBA'

    def test_unknown_account(self):
        """Unknown ids are refused."""
        with pytest.raises(ManualPaymentError):
            resolve_bank_account(ACCOUNTS, 'zenith')

    def test_no_accounts(self):
        """Manual payments need at least one account."""
        with pytest.raises(ManualPaymentError):
            resolve_bank_account([])

    def test_legacy_single_account_config(self):
        """Flat account settings become a one-item list."""
        accounts = normalize_bank_accounts({
            'bank_name': 'Access', 'account_name': 'Coop', 'account_number': 12345,
        })
        assert accounts == [{
            'id': 'account_1',
            'bank_name': 'Access',
            'account_name': 'Coop',
            'account_number': '12345',
            'instructions': '',
            'is_primary': True,
        }]

    def test_required_payer_fields(self):
        """Missing required fields are reported together."""
        config = {'require_payer_name': True, 'require_transaction_reference': True,
                  'require_payment_evidence': True}
        with pytest.raises(ManualPaymentError) as exc:
            validate_manual_submission(config, {})
        assert set(exc.value.errors) == {'payer_name', 'transaction_reference', 'payment_evidence'}


@pytest.mark.django_db
class TestPaymentMethods:
    """Methods offered for each kind of payment."""

    def test_wallet_always_offered_for_repayments(self):
        """Wallet shows up even with no gateways."""
        methods = tenant_payment_service.get_available_payment_methods('loan_repayment')
        assert [method['id'] for method in methods] == ['wallet']

    def test_wallet_not_offered_for_funding(self, paystack_gateway):
        """A wallet cannot fund itself."""
        methods = tenant_payment_service.get_available_payment_methods('wallet_funding')
        assert [method['id'] for method in methods] == ['paystack']

    def test_loan_repayment_methods_collapse(self, paystack_gateway, manual_gateway):
        """Gateways collapse onto card and bank transfer."""
        PaymentGateway.objects.create(gateway_type='stripe', is_enabled=True)
        ids = [method['id'] for method in tenant_payment_service.get_loan_repayment_methods()]
        assert sorted(ids) == ['bank_transfer', 'card', 'wallet']

    def test_disabled_gateway_hidden(self):
        """Disabled gateways are not offered."""
        PaymentGateway.objects.create(gateway_type='paystack', is_enabled=False)
        assert tenant_payment_service.get_card_gateway() is None


@pytest.mark.django_db
class TestPaymentService:
    """Settlement and manual review."""

    def test_finalize_is_idempotent(self, user):
        """Finalizing twice credits the wallet once."""
        payment = payment_service.create_payment(user, Decimal('5000'), 'wallet_funding', 'card')
        payment_service.finalize_payment(payment)
        payment_service.finalize_payment(payment)
        assert get_wallet(user).balance == Decimal('5000.00')

    def test_contribution_settles_without_side_effects(self, user):
        """Contributions just complete."""
        payment = payment_service.create_payment(user, Decimal('2000'), 'contribution', 'card')
        payment, outcome = payment_service.finalize_payment(payment)
        assert payment.status == 'completed'
        assert outcome == {}

    def test_overpayment_credited_to_wallet(self, user, loan):
        """Anything above the loan balance goes back to the wallet."""
        payment = payment_service.create_payment(
            user, Decimal('113000'), 'loan_repayment', 'card', loan=loan
        )
        payment, outcome = payment_service.finalize_payment(payment)
        assert outcome['excess_credited'] == Decimal('1000.00')
        assert outcome['loan_completed'] is True
        assert get_wallet(user).balance == Decimal('1000.00')

    def test_fail_only_pending(self, user):
        """Completed payments cannot be failed."""
        payment = payment_service.create_payment(user, Decimal('5000'), 'wallet_funding', 'card')
        payment_service.finalize_payment(payment)
        payment = payment_service.fail_payment(payment, 'late failure')
        assert payment.status == 'completed'

    def test_reject_manual_payment(self, user, admin_user, manual_gateway, manual_payload):
        """Rejected transfers fail and are never settled."""
        account, fields = payment_service.prepare_bank_transfer(manual_payload)
        payment = payment_service.create_payment(
            user, Decimal('5000'), 'wallet_funding', 'bank_transfer', **fields
        )
        payment = payment_service.reject_manual_payment(payment, admin_user, 'No matching credit')
        assert payment.status == 'failed'
        assert payment.approval_status == 'rejected'
        with pytest.raises(PaymentError):
            payment_service.approve_manual_payment(payment, admin_user)
        assert get_wallet(user).balance == Decimal('0')

    def test_card_payment_cannot_be_approved(self, user, admin_user):
        """Only bank transfers go through manual approval."""
        payment = payment_service.create_payment(user, Decimal('5000'), 'wallet_funding', 'card')
        with pytest.raises(PaymentError):
            payment_service.approve_manual_payment(payment, admin_user)


@pytest.mark.django_db
class TestWalletAPI:
    """Wallet endpoints."""

    def test_wallet_detail(self, member_client, funded_wallet):
        """The wallet endpoint shows the balance."""
        response = member_client.get('/api/v1/wallet/')
        assert response.status_code == 200
        assert response.data['data']['balance'] == '200000.00'

    def test_top_up(self, member_client, paystack_gateway):
        """Top-ups create a pending card payment with a payment URL."""
        response = member_client.post('/api/v1/wallet/top-up/', {'amount': '5000'}, format='json')
        assert response.status_code == 200
        assert response.data['data']['payment_url']
        payment = Payment.objects.get()
        assert payment.purpose == 'wallet_funding'
        assert payment.status == 'pending'

    def test_top_up_without_gateway(self, member_client):
        """No card gateway answers 502 and leaves nothing behind."""
        response = member_client.post('/api/v1/wallet/top-up/', {'amount': '5000'}, format='json')
        assert response.status_code == 502
        assert not Payment.objects.exists()

    def test_transfer(self, member_client, other_user, funded_wallet):
        """Transfers by recipient email."""
        response = member_client.post('/api/v1/wallet/transfer/', {
            'recipient_email': other_user.email, 'amount': '1000',
        }, format='json')
        assert response.status_code == 200
        assert response.data['data']['wallet']['balance'] == '199000.00'

    def test_transfer_unknown_recipient(self, member_client, funded_wallet):
        """Unknown recipients answer 404."""
        response = member_client.post('/api/v1/wallet/transfer/', {
            'recipient_email': 'nobody@example.com', 'amount': '1000',
        }, format='json')
        assert response.status_code == 404


@pytest.mark.django_db
class TestAdminPaymentAPI:
    """Manual payment review endpoints."""

    @pytest.fixture
    def pending_transfer(self, user, loan, manual_gateway, manual_payload):
        from loans.services.repayment_service import repayment_service

        result = repayment_service.repay(user, loan.id, Decimal('9333.33'), 'bank_transfer', data=manual_payload)
        return result['payment']

    def test_list_pending(self, admin_client, pending_transfer):
        """Admins filter payments awaiting approval."""
        response = admin_client.get('/api/v1/admin/payments/', {'approval_status': 'pending'})
        assert response.status_code == 200
        assert [item['reference'] for item in response.data['results']] == [pending_transfer.reference]

    def test_approve(self, admin_client, pending_transfer):
        """Approval settles the repayment."""
        response = admin_client.post(f'/api/v1/admin/payments/{pending_transfer.id}/approve/')
        assert response.status_code == 200
        assert LoanRepayment.objects.filter(payment=pending_transfer).exists()

    def test_reject(self, admin_client, pending_transfer):
        """Rejection needs a reason and fails the payment."""
        response = admin_client.post(
            f'/api/v1/admin/payments/{pending_transfer.id}/reject/',
            {'rejection_reason': 'Evidence unreadable'},
            format='json'
        )
        assert response.status_code == 200
        pending_transfer.refresh_from_db()
        assert pending_transfer.status == 'failed'

    def test_members_cannot_review(self, member_client, pending_transfer):
        """Members get 403."""
        response = member_client.post(f'/api/v1/admin/payments/{pending_transfer.id}/approve/')
        assert response.status_code == 403


@pytest.mark.django_db
class TestPaystackWebhook:
    """Paystack charge events."""

    URL = '/api/v1/webhooks/paystack/'

    @pytest.fixture
    def pending_funding(self, user, paystack_gateway):
        payment = payment_service.create_payment(user, Decimal('5000'), 'wallet_funding', 'card')
        payment_service.initialize_card_payment(payment)
        payment.refresh_from_db()
        return payment

    def post(self, client, payload, signature=None):
        extra = {'HTTP_X_PAYSTACK_SIGNATURE': signature} if signature is not None else {}
        return client.post(self.URL, data=json.dumps(payload), content_type='application/json', **extra)

    def test_charge_success(self, api_client, user, pending_funding):
        """A successful charge completes the payment and credits the wallet."""
        response = self.post(api_client, {
            'event': 'charge.success',
            'data': {'reference': pending_funding.gateway_reference, 'amount': 500000},
        })
        assert response.status_code == 200
        pending_funding.refresh_from_db()
        assert pending_funding.status == 'completed'
        assert get_wallet(user).balance == Decimal('5000.00')

    def test_repeated_event(self, api_client, user, pending_funding):
        """Duplicate deliveries credit once."""
        payload = {
            'event': 'charge.success',
            'data': {'reference': pending_funding.gateway_reference, 'amount': 500000},
        }
        self.post(api_client, payload)
        self.post(api_client, payload)
        assert get_wallet(user).balance == Decimal('5000.00')

    def test_amount_mismatch_ignored(self, api_client, pending_funding):
        """Short payments are not settled."""
        self.post(api_client, {
            'event': 'charge.success',
            'data': {'reference': pending_funding.gateway_reference, 'amount': 100},
        })
        pending_funding.refresh_from_db()
        assert pending_funding.status == 'pending'

    def test_charge_failed(self, api_client, pending_funding, admin_user):
        """Failed charges fail the payment."""
        self.post(api_client, {
            'event': 'charge.failed',
            'data': {'reference': pending_funding.gateway_reference, 'gateway_response': 'Declined'},
        })
        pending_funding.refresh_from_db()
        assert pending_funding.status == 'failed'
        assert pending_funding.metadata['failure_reason'] == 'Declined'

    def test_unknown_reference(self, api_client, paystack_gateway):
        """Events for unknown payments are acknowledged and ignored."""
        response = self.post(api_client, {'event': 'charge.success', 'data': {'reference': 'nope'}})
        assert response.status_code == 200
        assert response.data['message'] == 'Event ignored'

    def test_signature_checked(self, api_client, paystack_gateway, pending_funding):
        """With a webhook secret only signed bodies are accepted."""
        paystack_gateway.webhook_secret = 'whsec_test'
        paystack_gateway.save()
        payload = {
            'event': 'charge.success',
            'data': {'reference': pending_funding.gateway_reference, 'amount': 500000},
        }

        response = self.post(api_client, payload, signature='forged')
        assert response.status_code == 401

        body = json.dumps(payload).encode()
        signature = hmac.new(b'whsec_test', body, hashlib.sha512).hexdigest()
        response = self.post(api_client, payload, signature=signature)
        assert response.status_code == 200

    def test_invalid_payload(self, api_client, paystack_gateway):
        """Bodies that are not JSON answer 400."""
        response = api_client.post(self.URL, data='not json', content_type='application/json')
        assert response.status_code == 400


@pytest.mark.django_db
class TestRemitaWebhook:
    """Remita notifications are confirmed with Remita before settling."""

    URL = '/api/v1/webhooks/remita/'

    @pytest.fixture
    def pending_rrr(self, user):
        PaymentGateway.objects.create(gateway_type='remita', is_enabled=True)
        payment = payment_service.create_payment(user, Decimal('5000'), 'wallet_funding', 'card')
        Payment.objects.filter(pk=payment.pk).update(gateway='remita', gateway_reference='RRR123')
        payment.refresh_from_db()
        return payment

    def post(self, client, payload):
        return client.post(self.URL, data=json.dumps(payload), content_type='application/json')

    def test_confirmed_notification(self, api_client, user, pending_rrr):
        """A notification Remita confirms settles the payment."""
        client = mock.Mock()
        client.verify.return_value = {'paid': True, 'raw': {'status': '00'}}
        with mock.patch('funds.services.payment_service.get_gateway_client', return_value=client):
            response = self.post(api_client, [{'rrr': 'RRR123'}])

        assert response.data['data']['processed'] == 1
        client.verify.assert_called_once_with('RRR123')
        pending_rrr.refresh_from_db()
        assert pending_rrr.status == 'completed'
        assert get_wallet(user).balance == Decimal('5000.00')

    def test_unconfirmed_notification(self, api_client, pending_rrr):
        """The notification body alone settles nothing."""
        response = self.post(api_client, {'rrr': 'RRR123', 'status': '00'})
        assert response.status_code == 200
        assert response.data['data']['processed'] == 0
        pending_rrr.refresh_from_db()
        assert pending_rrr.status == 'pending'


@pytest.mark.django_db
class TestStripeWebhook:
    """Stripe intent events must be signed, or confirmed with Stripe."""

    URL = '/api/v1/webhooks/stripe/'
    SECRET = 'whsec_stripe'

    @pytest.fixture
    def stripe_gateway(self, db):
        return PaymentGateway.objects.create(
            gateway_type='stripe', is_enabled=True, secret_key='sk_test', webhook_secret=self.SECRET,
        )

    @pytest.fixture
    def pending_intent(self, user, stripe_gateway):
        payment = payment_service.create_payment(user, Decimal('5000'), 'wallet_funding', 'card')
        Payment.objects.filter(pk=payment.pk).update(gateway='stripe', gateway_reference='pi_123')
        payment.refresh_from_db()
        return payment

    def body(self, event='payment_intent.succeeded'):
        return json.dumps({'type': event, 'data': {'object': {'id': 'pi_123', 'status': 'succeeded'}}})

    def signature(self, body, secret=SECRET, timestamp=None):
        timestamp = str(timestamp or int(time.time()))
        digest = hmac.new(secret.encode(), f'{timestamp}.{body}'.encode(), hashlib.sha256).hexdigest()
        return f't={timestamp},v1={digest}'

    def post(self, client, body, signature=None):
        extra = {'HTTP_STRIPE_SIGNATURE': signature} if signature is not None else {}
        return client.post(self.URL, data=body, content_type='application/json', **extra)

    def test_unsigned_event_refused(self, api_client, pending_intent):
        """Without a signature nothing is settled."""
        response = self.post(api_client, self.body())
        assert response.status_code == 401
        pending_intent.refresh_from_db()
        assert pending_intent.status == 'pending'

    def test_forged_signature_refused(self, api_client, pending_intent):
        body = self.body()
        response = self.post(api_client, body, self.signature(body, secret='whsec_other'))
        assert response.status_code == 401
        pending_intent.refresh_from_db()
        assert pending_intent.status == 'pending'

    def test_stale_signature_refused(self, api_client, pending_intent):
        """Replays of old deliveries are refused."""
        body = self.body()
        response = self.post(api_client, body, self.signature(body, timestamp=int(time.time()) - 3600))
        assert response.status_code == 401

    def test_signed_success(self, api_client, user, pending_intent):
        """A correctly signed success credits the wallet."""
        body = self.body()
        response = self.post(api_client, body, self.signature(body))
        assert response.status_code == 200
        pending_intent.refresh_from_db()
        assert pending_intent.status == 'completed'
        assert get_wallet(user).balance == Decimal('5000.00')

    def test_signed_failure(self, api_client, pending_intent):
        body = self.body('payment_intent.payment_failed')
        self.post(api_client, body, self.signature(body))
        pending_intent.refresh_from_db()
        assert pending_intent.status == 'failed'

    def test_without_signing_secret_asks_stripe(self, api_client, user, stripe_gateway, pending_intent):
        """With no signing secret the event is checked against Stripe."""
        stripe_gateway.webhook_secret = ''
        stripe_gateway.save()

        response = self.post(api_client, self.body())
        assert response.status_code == 200
        pending_intent.refresh_from_db()
        assert pending_intent.status == 'pending'

        client = mock.Mock()
        client.verify.return_value = {'paid': True, 'raw': {'status': 'succeeded'}}
        with mock.patch('funds.services.payment_service.get_gateway_client', return_value=client):
            response = self.post(api_client, self.body())
        client.verify.assert_called_once_with('pi_123')
        pending_intent.refresh_from_db()
        assert pending_intent.status == 'completed'


@pytest.mark.django_db
class TestPaymentGatewayConfig:
    """Gateways that hold no secrets."""

    def test_manual_gateway_without_secrets(self):
        """Manual bank transfer has no keys and still saves."""
        gateway = PaymentGateway.objects.create(
            gateway_type='manual', is_enabled=True, configuration={'bank_accounts': []}
        )
        gateway.refresh_from_db()
        assert not gateway.secret_key
        assert not gateway.webhook_secret

    def test_create_through_api(self, admin_client):
        response = admin_client.post('/api/v1/admin/payment-gateways/', {
            'gateway_type': 'manual',
            'is_enabled': True,
            'configuration': {'bank_accounts': [ACCOUNTS[0]]},
        }, format='json')
        assert response.status_code == 201
        assert response.data['has_secret_key'] is False
        assert PaymentGateway.objects.get(gateway_type='manual').is_enabled
