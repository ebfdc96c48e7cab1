# notifications/services.py
import logging
from decimal import Decimal

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.mail import send_mail

from notifications.models import Notification
from realtime.consumers import user_group
from tenants.context import tenant_atomic
from users.models import User

logger = logging.getLogger(__name__)


def format_money(amount):
    return f"₦{Decimal(amount):,.2f}"


class NotificationService:
    """Create in-app notifications and fan them out over websockets and email"""

    def send_to_users(self, users, type, title, message, data=None, email=False):
        """Create one notification per user"""
        users = [user for user in users if user is not None]
        if not users:
            return []

        with tenant_atomic():
            notifications = Notification.objects.bulk_create([
                Notification(
                    user=user,
                    type=type,
                    title=title,
                    message=message,
                    data=data or {},
                )
                for user in users
            ])

        for user, notification in zip(users, notifications):
            self._send_websocket(user, notification)
            if email:
                self._send_email(user, title, message)

        logger.info(f"Sent '{title}' notification to {len(notifications)} user(s)")
        return notifications

    def send_to_user(self, user, type, title, message, data=None, email=False):
        return self.send_to_users([user], type, title, message, data=data, email=email)

    def notify_admins(self, type, title, message, data=None):
        admins = list(User.objects.filter(
            role__in=User.ADMIN_ROLES,
            is_active=True
        ))
        if not admins:
            logger.warning(f"No admin users found for notification '{title}'")
            return []
        return self.send_to_users(admins, type, title, message, data=data)

    def notify_admins_new_loan_application(self, loan):
        member_name = loan.member.user.full_name or loan.member.user.email
        return self.notify_admins(
            'info',
            'New Loan Application',
            f"{member_name} applied for a {loan.get_type_display().lower()} loan "
            f"of {format_money(loan.amount)} over {loan.duration_months} months.",
            data={
                'loan_id': loan.id,
                'member_id': loan.member_id,
                'amount': str(loan.amount),
                'action_url': f'/admin/loans/{loan.id}',
            }
        )

    def notify_loan_approved(self, loan):
        return self.send_to_user(
            loan.member.user,
            'success',
            'Loan Approved',
            f"Your loan application of {format_money(loan.amount)} has been approved.",
            data={'loan_id': loan.id, 'amount': str(loan.amount)},
            email=True
        )

    def notify_loan_rejected(self, loan):
        return self.send_to_user(
            loan.member.user,
            'error',
            'Loan Rejected',
            f"Your loan application of {format_money(loan.amount)} was rejected. "
            f"Reason: {loan.rejection_reason}",
            data={'loan_id': loan.id, 'reason': loan.rejection_reason},
            email=True
        )

    def notify_loan_disbursed(self, loan):
        return self.send_to_user(
            loan.member.user,
            'success',
            'Loan Disbursed',
            f"Your loan of {format_money(loan.amount)} has been disbursed.",
            data={'loan_id': loan.id, 'amount': str(loan.amount)}
        )

    def notify_repayment(self, loan, amount, remaining):
        return self.send_to_user(
            loan.member.user,
            'success',
            'Loan Repayment Successful',
            f"Your repayment of {format_money(amount)} has been received. "
            f"Remaining balance: {format_money(remaining)}.",
            data={
                'loan_id': loan.id,
                'amount': str(amount),
                'remaining_balance': str(remaining),
            }
        )

    def notify_loan_completed(self, loan):
        return self.send_to_user(
            loan.member.user,
            'success',
            'Loan Fully Repaid',
            f"Congratulations! Your loan of {format_money(loan.amount)} has been fully repaid.",
            data={'loan_id': loan.id},
            email=True
        )

    def notify_payment_failure(self, payment, reason):
        return self.notify_admins(
            'error',
            'Payment Processing Failed',
            f"Payment {payment.reference} of {format_money(payment.amount)} failed: {reason}",
            data={'payment_id': payment.id, 'reference': payment.reference}
        )

    def notify_repayment_due(self, loan, installment):
        return self.send_to_user(
            loan.member.user,
            'warning',
            'Loan Repayment Due',
            f"Installment {installment['installment_number']} of "
            f"{format_money(installment['total'])} is due on {installment['due_date']:%d %b %Y}.",
            data={
                'loan_id': loan.id,
                'installment_number': installment['installment_number'],
                'due_date': installment['due_date'].isoformat(),
            },
            email=True
        )

    def notify_admins_new_statutory_charge(self, charge):
        member_name = charge.member.user.full_name or charge.member.user.email
        return self.notify_admins(
            'info',
            'New Statutory Charge',
            f"{member_name} submitted a {charge.type} charge of {format_money(charge.amount)}.",
            data={'charge_id': charge.id, 'member_id': charge.member_id}
        )

    def notify_statutory_charge_approved(self, charge):
        return self.send_to_user(
            charge.member.user,
            'success',
            'Statutory Charge Approved',
            f"Your {charge.type} charge of {format_money(charge.amount)} has been approved.",
            data={'charge_id': charge.id}
        )

    def notify_statutory_charge_rejected(self, charge):
        return self.send_to_user(
            charge.member.user,
            'error',
            'Statutory Charge Rejected',
            f"Your {charge.type} charge was rejected. Reason: {charge.rejection_reason}",
            data={'charge_id': charge.id, 'reason': charge.rejection_reason}
        )

    def notify_statutory_charge_paid(self, charge):
        return self.send_to_user(
            charge.member.user,
            'success',
            'Statutory Charge Paid',
            f"Your {charge.type} charge of {format_money(charge.amount)} has been paid in full.",
            data={'charge_id': charge.id}
        )

    def _send_websocket(self, user, notification):
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return
        try:
            async_to_sync(channel_layer.group_send)(
                user_group(user.id),
                {
                    'type': 'notification',
                    'notification': {
                        'id': notification.id,
                        'type': notification.type,
                        'title': notification.title,
                        'message': notification.message,
                        'data': notification.data,
                    }
                }
            )
        except Exception as e:
            logger.warning(f"Websocket push failed for user {user.id}: {e}")

    def _send_email(self, user, subject, message):
        send_mail(
            subject,
            message,
            settings.DEFAULT_FROM_EMAIL,
            [user.email],
            fail_silently=True
        )


notification_service = NotificationService()
