# funds/services/payment_service.py
import logging
import secrets
import time

from django.conf import settings
from django.utils import timezone

from funds.models import Payment, WalletTransaction
from funds.services.gateways import PaymentGatewayError, get_gateway_client
from funds.services.payment_config import (
    ManualPaymentError, resolve_bank_account, tenant_payment_service,
    validate_manual_submission
)
from funds.services.wallet_service import credit_wallet, get_wallet
from tenants.context import tenant_atomic

logger = logging.getLogger(__name__)

REFERENCE_PREFIXES = {
    'loan_repayment': 'REPAY',
    'wallet_funding': 'WAL',
    'statutory_charge': 'STC',
    'contribution': 'CON',
}


class PaymentError(Exception):
    """Payment cannot move to the requested state"""


def generate_reference(purpose):
    prefix = REFERENCE_PREFIXES.get(purpose, purpose[:3].upper())
    return f"{prefix}_{int(time.time())}_{secrets.token_hex(4).upper()}"


class PaymentService:
    """Create payments, hand them to gateways and settle them"""

    def create_payment(self, user, amount, purpose, payment_method, description='',
                       loan=None, statutory_charge=None, metadata=None, **fields):
        manual = payment_method == 'bank_transfer'
        return Payment.objects.create(
            reference=generate_reference(purpose),
            user=user,
            amount=amount,
            currency=settings.DEFAULT_CURRENCY,
            purpose=purpose,
            loan=loan,
            statutory_charge=statutory_charge,
            payment_method=payment_method,
            gateway='manual' if manual else fields.pop('gateway', ''),
            status='pending',
            approval_status='pending' if manual else 'approved',
            description=description,
            metadata=metadata or {},
            **fields,
        )

    def initialize_card_payment(self, payment, preferred_gateway=None):
        """Hand the payment to a card gateway and store the redirect URL"""
        gateway = tenant_payment_service.get_card_gateway(preferred_gateway)
        if gateway is None:
            raise PaymentGatewayError('Card payments are not available')

        result = get_gateway_client(gateway).initialize(payment)
        payment.gateway = gateway.gateway_type
        payment.gateway_reference = result['gateway_reference']
        payment.gateway_url = result['payment_url']
        payment.gateway_response = result.get('raw', {})
        payment.save(update_fields=['gateway', 'gateway_reference', 'gateway_url', 'gateway_response'])
        logger.info(f"Payment {payment.reference} initialised with {gateway.gateway_type}")
        return result

    def prepare_bank_transfer(self, data):
        """Resolve the account and validate payer fields before a manual payment is created"""
        config = tenant_payment_service.get_manual_config()
        if tenant_payment_service.get_gateway('manual') is None:
            raise ManualPaymentError('Bank transfer payments are not available')

        account = resolve_bank_account(config['bank_accounts'], data.get('bank_account_id'))
        validate_manual_submission(config, data)
        return account, {
            'payer_name': data.get('payer_name', ''),
            'payer_phone': data.get('payer_phone', ''),
            'bank_reference': data.get('transaction_reference', ''),
            'bank_name': account['bank_name'],
            'account_name': account['account_name'],
            'account_number': account['account_number'],
            'payment_evidence': list(data.get('payment_evidence') or []),
        }

    def initialize_bank_transfer(self, payment, account):
        """Instructions returned to the payer of a pending bank transfer"""
        logger.info(f"Bank transfer {payment.reference} awaiting approval ({account['bank_name']})")
        return {
            'reference': payment.reference,
            'account': account,
            'amount': payment.amount,
            'approval_status': payment.approval_status,
            'payment_evidence': payment.payment_evidence,
            'message': 'Your payment will be confirmed once an administrator reviews the evidence',
        }

    @tenant_atomic()
    def finalize_payment(self, payment, gateway_response=None):
        """
        Mark a payment completed and settle whatever it pays for.

        Safe to call more than once: a completed payment is returned untouched
        with an empty outcome.
        """
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status == 'completed':
            logger.info(f"Payment {payment.reference} already completed")
            return payment, {}

        payment.status = 'completed'
        payment.completed_at = timezone.now()
        if gateway_response:
            payment.gateway_response = {**(payment.gateway_response or {}), **gateway_response}
        payment.save(update_fields=['status', 'completed_at', 'gateway_response'])

        outcome = self._settle(payment)
        logger.info(f"Payment {payment.reference} completed ({payment.purpose})")
        return payment, outcome

    def _settle(self, payment):
        if payment.purpose == 'loan_repayment':
            from loans.services.repayment_service import finalize_loan_repayment
            return finalize_loan_repayment(payment)

        if payment.purpose == 'wallet_funding':
            return self._credit_wallet_funding(payment)

        if payment.purpose == 'statutory_charge':
            from statutory.services import settle_charge_payment
            return settle_charge_payment(payment)

        if payment.purpose == 'contribution':
            return {}

        raise PaymentError(f'Unknown payment purpose: {payment.purpose}')

    def _credit_wallet_funding(self, payment):
        already_credited = WalletTransaction.objects.filter(
            payment_reference=payment.reference,
            type='credit'
        ).exists()
        if already_credited:
            return {}

        entry = credit_wallet(
            get_wallet(payment.user),
            payment.amount,
            description='Wallet funding',
            payment_method=payment.gateway or payment.payment_method,
            payment_reference=payment.reference,
            metadata={'payment_id': payment.id},
        )
        return {'wallet_transaction': entry}

    @tenant_atomic()
    def fail_payment(self, payment, reason, gateway_response=None):
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status != 'pending':
            return payment
        payment.status = 'failed'
        payment.metadata = {**(payment.metadata or {}), 'failure_reason': reason}
        if gateway_response:
            payment.gateway_response = {**(payment.gateway_response or {}), **gateway_response}
        payment.save(update_fields=['status', 'metadata', 'gateway_response'])
        logger.warning(f"Payment {payment.reference} failed: {reason}")
        return payment

    @tenant_atomic()
    def approve_manual_payment(self, payment, admin_user):
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.payment_method != 'bank_transfer' or payment.approval_status != 'pending':
            raise PaymentError('Only pending bank transfer payments can be approved')

        payment.approval_status = 'approved'
        payment.approved_by = admin_user
        payment.approved_at = timezone.now()
        payment.save(update_fields=['approval_status', 'approved_by', 'approved_at'])
        return self.finalize_payment(payment, {'approved_by': str(admin_user.pk)})

    @tenant_atomic()
    def reject_manual_payment(self, payment, admin_user, reason):
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.payment_method != 'bank_transfer' or payment.approval_status != 'pending':
            raise PaymentError('Only pending bank transfer payments can be rejected')

        payment.approval_status = 'rejected'
        payment.approved_by = admin_user
        payment.approved_at = timezone.now()
        payment.rejection_reason = reason
        payment.status = 'failed'
        payment.save(update_fields=['approval_status', 'approved_by', 'approved_at',
                                    'rejection_reason', 'status'])
        logger.info(f"Manual payment {payment.reference} rejected: {reason}")
        return payment

    def verify_with_gateway(self, payment):
        """Ask the gateway whether a pending card payment went through"""
        gateway = tenant_payment_service.get_gateway(payment.gateway)
        if gateway is None or not payment.gateway_reference:
            return False

        result = get_gateway_client(gateway).verify(payment.gateway_reference)
        if result['paid']:
            self.finalize_payment(payment, {'verification': result.get('raw', {})})
            return True
        return False


payment_service = PaymentService()
