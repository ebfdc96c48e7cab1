# core/tasks.py
import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from tenants.context import tenant_context
from tenants.models import Tenant

logger = logging.getLogger(__name__)


def iter_tenants():
    """
    Bind each active tenant in turn.

    Without any registered tenant the block runs once against the default
    database. Tenants sharing a database are visited once.
    """
    tenants = list(Tenant.objects.filter(status='active'))
    if not tenants:
        yield None
        return
    seen = set()
    for tenant in tenants:
        if tenant.db_alias in seen:
            continue
        seen.add(tenant.db_alias)
        with tenant_context(tenant):
            yield tenant


def tenant_label(tenant):
    return tenant.slug if tenant is not None else 'default'


@shared_task
def verify_pending_gateway_payments(min_age_minutes=10):
    """Ask gateways about card payments whose webhook never arrived"""
    from funds.models import Payment
    from funds.services.gateways import PaymentGatewayError
    from funds.services.payment_service import payment_service

    verified = 0
    for tenant in iter_tenants():
        cutoff = timezone.now() - timedelta(minutes=min_age_minutes)
        pending = Payment.objects.filter(
            status='pending',
            payment_method='card',
            created_at__lte=cutoff
        ).exclude(gateway_reference='')

        for payment in pending:
            try:
                if payment_service.verify_with_gateway(payment):
                    verified += 1
                    logger.info(f"[{tenant_label(tenant)}] Payment {payment.reference} confirmed by gateway")
            except PaymentGatewayError as e:
                logger.warning(f"[{tenant_label(tenant)}] Could not verify {payment.reference}: {e}")
            except Exception as e:
                logger.error(f"[{tenant_label(tenant)}] Error verifying {payment.reference}: {e}", exc_info=True)

    return verified


@shared_task
def expire_stale_payments(max_age_hours=24):
    """Fail card payments left pending for too long"""
    from funds.models import Payment
    from funds.services.payment_service import payment_service

    expired = 0
    for tenant in iter_tenants():
        cutoff = timezone.now() - timedelta(hours=max_age_hours)
        stale = Payment.objects.filter(
            status='pending',
            payment_method='card',
            created_at__lte=cutoff
        )
        count = 0
        for payment in stale:
            payment_service.fail_payment(payment, 'Payment expired')
            count += 1

        if count:
            logger.info(f"[{tenant_label(tenant)}] Expired {count} stale payment(s)")
        expired += count

    return expired


@shared_task
def send_repayment_reminders(days_ahead=None):
    """Remind members whose next installment falls due soon"""
    from loans.models import Loan
    from loans.services.repayment_service import repayment_schedule
    from notifications.services import notification_service

    days_ahead = days_ahead if days_ahead is not None else settings.LOANS['REMINDER_DAYS']
    sent = 0
    for tenant in iter_tenants():
        today = timezone.localdate()
        horizon = today + timedelta(days=days_ahead)
        loans = Loan.objects.filter(status='approved').select_related('member__user')
        count = 0

        for loan in loans:
            schedule = repayment_schedule(loan, today=today)['schedule']
            upcoming = next(
                (row for row in schedule if row['status'] == 'pending'),
                None
            )
            if upcoming is None or not today <= upcoming['due_date'] <= horizon:
                continue
            notification_service.notify_repayment_due(loan, upcoming)
            count += 1

        logger.info(f"[{tenant_label(tenant)}] Sent {count} repayment reminder(s)")
        sent += count

    return sent


@shared_task
def reconcile_wallets():
    """Report wallets whose balance no longer matches their ledger"""
    from funds.models import Wallet
    from funds.services.wallet_service import reconcile_wallet

    drifted = []
    for tenant in iter_tenants():
        for wallet in Wallet.objects.all():
            drift = reconcile_wallet(wallet)
            if drift:
                drifted.append({
                    'tenant': tenant_label(tenant),
                    'wallet_id': wallet.pk,
                    'drift': str(drift),
                })

    if drifted:
        logger.error(f"{len(drifted)} wallet(s) drift from their ledger")
    return drifted
