# statutory/services.py
import logging

from django.utils import timezone

from funds.services.payment_config import ManualPaymentError, tenant_payment_service
from funds.services.payment_service import payment_service
from funds.services.wallet_service import debit_wallet, get_wallet
from notifications.services import notification_service
from statutory.models import StatutoryCharge, StatutoryChargePayment, StatutoryChargeType
from statutory.utils import default_description, expand_due_dates
from tenants.context import tenant_atomic

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = ('approved', 'pending')

# requested method -> (Payment.payment_method, preferred card gateway)
METHOD_ALIASES = {
    'wallet': ('wallet', None),
    'card': ('card', None),
    'paystack': ('card', 'paystack'),
    'stripe': ('card', 'stripe'),
    'remita': ('card', 'remita'),
    'manual': ('bank_transfer', None),
    'bank_transfer': ('bank_transfer', None),
}


class StatutoryChargeError(Exception):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code


def create_charges_for_frequency(member, charge_type, amount, description='',
                                 created_by=None, start=None):
    """One charge per due date of the charge type's frequency"""
    now = timezone.now()
    charges = []
    for index, row in enumerate(expand_due_dates(charge_type.frequency, start)):
        approved = row['status'] == 'approved'
        charges.append(StatutoryCharge.objects.create(
            member=member,
            type=charge_type.type,
            amount=amount,
            description=description or default_description(
                charge_type.frequency, charge_type.type, index, row['due_date']
            ),
            due_date=row['due_date'],
            status=row['status'],
            approved_at=now if approved else None,
            approved_by=created_by if approved else None,
            created_by=created_by,
        ))
    logger.info(
        f"Created {len(charges)} {charge_type.frequency} '{charge_type.type}' "
        f"charge(s) for {member.member_number}"
    )
    return charges


def submit_charge(member, charge_type, amount, description='', due_date=None, created_by=None):
    charge = StatutoryCharge.objects.create(
        member=member,
        type=charge_type,
        amount=amount,
        description=description,
        due_date=due_date,
        status='pending',
        created_by=created_by,
    )
    notification_service.notify_admins_new_statutory_charge(charge)
    return charge


def available_methods():
    return {method['id'] for method in tenant_payment_service.get_available_payment_methods('statutory_charge')}


def resolve_method(requested):
    if requested not in METHOD_ALIASES:
        raise StatutoryChargeError('Unsupported payment method selected.', status_code=422)

    available = available_methods()
    method, gateway = METHOD_ALIASES[requested]
    if method == 'card':
        enabled = available & {'paystack', 'stripe', 'remita'}
        ok = gateway in enabled if gateway else bool(enabled)
    elif method == 'bank_transfer':
        ok = 'manual' in available
    else:
        ok = 'wallet' in available
    if not ok:
        raise StatutoryChargeError('Selected payment method is not available.', status_code=422)
    return method, gateway


def pay_charge(user, charge, amount, requested_method, data=None):
    """
    Pay all or part of a charge.

    Wallet payments settle immediately; card payments wait for the gateway
    and bank transfers for an administrator.
    """
    data = data or {}
    method, gateway = resolve_method(requested_method)

    with tenant_atomic():
        charge = StatutoryCharge.objects.select_for_update().get(pk=charge.pk)
        if charge.status not in PAYABLE_STATUSES:
            raise StatutoryChargeError('Only approved or pending charges can be paid')
        if amount > charge.remaining_amount:
            raise StatutoryChargeError('Payment amount exceeds remaining balance')

        account = None
        manual_fields = {}
        if method == 'bank_transfer':
            try:
                account, manual_fields = payment_service.prepare_bank_transfer(data)
            except ManualPaymentError as e:
                raise StatutoryChargeError(str(e), status_code=422) from e

        payment = payment_service.create_payment(
            user,
            amount,
            'statutory_charge',
            method,
            description=f'Payment for statutory charge: {charge.type}',
            statutory_charge=charge,
            metadata={'member_id': charge.member_id},
            **manual_fields,
        )
        charge_payment = StatutoryChargePayment.objects.create(
            charge=charge,
            payment=payment,
            amount=amount,
            payment_method=requested_method,
            reference=payment.reference,
            status='pending',
        )

        payment_data = {'reference': payment.reference, 'requires_approval': method == 'bank_transfer'}
        if method == 'wallet':
            debit_wallet(
                get_wallet(user),
                amount,
                description=f'Statutory charge: {charge.type}',
                payment_method='wallet',
                payment_reference=payment.reference,
                metadata={'charge_id': charge.id, 'payment_id': payment.id},
            )
            payment_service.finalize_payment(payment)
        elif method == 'card':
            result = payment_service.initialize_card_payment(payment, gateway)
            payment_data['payment_url'] = result['payment_url']
        else:
            payment_data.update(payment_service.initialize_bank_transfer(payment, account))

    payment.refresh_from_db()
    charge.refresh_from_db()
    charge_payment.refresh_from_db()
    return {
        'payment': payment,
        'charge': charge,
        'charge_payment': charge_payment,
        'payment_data': payment_data,
    }


def settle_charge_payment(payment):
    """Completed statutory charge payment; marks the charge paid once covered"""
    charge = StatutoryCharge.objects.select_for_update().get(pk=payment.statutory_charge_id)

    charge_payment, _ = StatutoryChargePayment.objects.get_or_create(
        payment=payment,
        defaults={
            'charge': charge,
            'amount': payment.amount,
            'payment_method': payment.payment_method,
            'reference': payment.reference,
        }
    )
    if charge_payment.status == 'completed':
        return {}

    charge_payment.status = 'completed'
    charge_payment.paid_at = timezone.now()
    charge_payment.save(update_fields=['status', 'paid_at'])

    fully_paid = charge.status != 'paid' and charge.total_paid >= charge.amount
    if fully_paid:
        charge.status = 'paid'
        charge.save(update_fields=['status', 'updated_at'])
        logger.info(f"Statutory charge #{charge.id} paid in full")
        notification_service.notify_statutory_charge_paid(charge)

    return {'charge': charge, 'charge_paid': fully_paid}


def approve_charge(charge, admin_user):
    with tenant_atomic():
        charge = StatutoryCharge.objects.select_for_update().get(pk=charge.pk)
        if charge.status != 'pending':
            raise StatutoryChargeError('Only pending charges can be approved')
        charge.status = 'approved'
        charge.approved_at = timezone.now()
        charge.approved_by = admin_user
        charge.save(update_fields=['status', 'approved_at', 'approved_by', 'updated_at'])

    notification_service.notify_statutory_charge_approved(charge)
    return charge


def reject_charge(charge, admin_user, reason):
    with tenant_atomic():
        charge = StatutoryCharge.objects.select_for_update().get(pk=charge.pk)
        if charge.status != 'pending':
            raise StatutoryChargeError('Only pending charges can be rejected')
        charge.status = 'rejected'
        charge.rejected_at = timezone.now()
        charge.rejected_by = admin_user
        charge.rejection_reason = reason
        charge.save(update_fields=['status', 'rejected_at', 'rejected_by',
                                   'rejection_reason', 'updated_at'])

    notification_service.notify_statutory_charge_rejected(charge)
    return charge


def get_charge_type(name):
    charge_type = StatutoryChargeType.objects.filter(type=name, is_active=True).first()
    if charge_type is None:
        raise StatutoryChargeError('Invalid charge type')
    return charge_type
