# funds/services/wallet_service.py
import logging
import uuid
from decimal import Decimal, InvalidOperation

from django.db.models import F, Sum

from funds.models import Wallet, WalletTransaction
from tenants.context import tenant_atomic

logger = logging.getLogger(__name__)


class WalletError(Exception):
    """Base error for wallet operations"""


class InvalidAmountError(WalletError):
    pass


class InsufficientBalanceError(WalletError):
    pass


def to_amount(value):
    """Parse a positive money amount"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError('Invalid amount')
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError('Amount must be greater than zero')
    return amount.quantize(Decimal('0.01'))


def get_wallet(user):
    wallet, _ = Wallet.objects.get_or_create(user=user)
    return wallet


def _lock(wallet):
    locked = Wallet.objects.select_for_update().get(pk=wallet.pk)
    if not locked.is_active:
        raise WalletError('Wallet is not active')
    return locked


@tenant_atomic()
def credit_wallet(wallet, amount, description='', payment_method='',
                  payment_reference='', metadata=None):
    """Increase the balance and append the matching ledger row"""
    amount = to_amount(amount)
    locked = _lock(wallet)

    Wallet.objects.filter(pk=locked.pk).update(balance=F('balance') + amount)
    locked.refresh_from_db(fields=['balance'])

    entry = WalletTransaction.objects.create(
        wallet=locked,
        type='credit',
        amount=amount,
        status='completed',
        payment_method=payment_method,
        payment_reference=payment_reference,
        description=description,
        balance_after=locked.balance,
        metadata=metadata or {},
    )
    wallet.balance = locked.balance
    logger.info(f"Wallet {locked.pk} credited {amount} ({payment_reference or description})")
    return entry


@tenant_atomic()
def debit_wallet(wallet, amount, description='', payment_method='wallet',
                 payment_reference='', metadata=None):
    """Decrease the balance and append the matching ledger row"""
    amount = to_amount(amount)
    locked = _lock(wallet)

    updated = Wallet.objects.filter(
        pk=locked.pk,
        balance__gte=amount
    ).update(balance=F('balance') - amount)
    if not updated:
        raise InsufficientBalanceError('Insufficient wallet balance')
    locked.refresh_from_db(fields=['balance'])

    entry = WalletTransaction.objects.create(
        wallet=locked,
        type='debit',
        amount=amount,
        status='completed',
        payment_method=payment_method,
        payment_reference=payment_reference,
        description=description,
        balance_after=locked.balance,
        metadata=metadata or {},
    )
    wallet.balance = locked.balance
    logger.info(f"Wallet {locked.pk} debited {amount} ({payment_reference or description})")
    return entry


def ledger_balance(wallet):
    """Balance derived from completed ledger rows"""
    totals = dict(
        WalletTransaction.objects.filter(wallet=wallet, status='completed')
        .order_by()
        .values_list('type')
        .annotate(total=Sum('amount'))
    )
    return (totals.get('credit') or Decimal('0')) - (totals.get('debit') or Decimal('0'))


def reconcile_wallet(wallet):
    """Compare the stored balance with the ledger; returns the drift"""
    wallet.refresh_from_db(fields=['balance'])
    drift = wallet.balance - ledger_balance(wallet)
    if drift:
        logger.warning(f"Wallet {wallet.pk} drifts from its ledger by {drift}")
    return drift


@tenant_atomic()
def transfer(sender, recipient, amount, note=''):
    """Move funds between two members' wallets"""
    if sender.pk == recipient.pk:
        raise WalletError('Cannot transfer to your own wallet')

    amount = to_amount(amount)
    sender_wallet = get_wallet(sender)
    recipient_wallet = get_wallet(recipient)

    # lock in a stable order
    for wallet in sorted([sender_wallet, recipient_wallet], key=lambda w: w.pk):
        _lock(wallet)

    reference = f"TRF_{uuid.uuid4().hex[:12].upper()}"
    debit = debit_wallet(
        sender_wallet, amount,
        description=note or f'Transfer to {recipient.email}',
        payment_method='transfer',
        payment_reference=reference,
        metadata={'recipient_id': str(recipient.pk)},
    )
    credit_wallet(
        recipient_wallet, amount,
        description=note or f'Transfer from {sender.email}',
        payment_method='transfer',
        payment_reference=reference,
        metadata={'sender_id': str(sender.pk)},
    )
    return debit
