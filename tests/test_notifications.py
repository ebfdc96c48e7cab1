"""Tests for in-app notifications."""
import pytest
from django.core import mail

from notifications.models import Notification
from notifications.services import format_money, notification_service


@pytest.mark.django_db
class TestNotificationService:
    """Notification fan-out."""

    def test_send_to_user(self, user):
        """One row per recipient."""
        notifications = notification_service.send_to_user(user, 'info', 'Hello', 'World', data={'a': 1})
        assert len(notifications) == 1
        assert Notification.objects.get(user=user).data == {'a': 1}

    def test_email_copy(self, user):
        """Important notices are also emailed."""
        notification_service.send_to_user(user, 'success', 'Loan Approved', 'Approved', email=True)
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == [user.email]

    def test_notify_admins(self, admin_user, user):
        """Admin notices skip members."""
        notification_service.notify_admins('info', 'Heads up', 'Something happened')
        assert list(Notification.objects.values_list('user__email', flat=True)) == [admin_user.email]

    def test_no_admins(self, user):
        """Without admins nothing is created."""
        assert notification_service.notify_admins('info', 'Heads up', '...') == []

    def test_repayment_due_message(self, loan):
        """Reminders name the instalment and due date."""
        from datetime import date
        from decimal import Decimal

        notification_service.notify_repayment_due(loan, {
            'installment_number': 2,
            'total': Decimal('9333.33'),
            'due_date': date(2024, 3, 15),
        })
        notification = Notification.objects.get(title='Loan Repayment Due')
        assert notification.message == 'Installment 2 of ₦9,333.33 is due on 15 Mar 2024.'
        assert notification.data['due_date'] == '2024-03-15'

    def test_format_money(self):
        """Naira with thousands separators."""
        assert format_money('1234567.5') == '₦1,234,567.50'


@pytest.mark.django_db
class TestNotificationAPI:
    """Notification endpoints."""

    @pytest.fixture
    def notifications(self, user, other_user):
        notification_service.send_to_user(user, 'info', 'First', '...')
        notification_service.send_to_user(user, 'info', 'Second', '...')
        notification_service.send_to_user(other_user, 'info', 'Not yours', '...')
        return Notification.objects.filter(user=user)

    def test_list_own(self, member_client, notifications):
        """Only the user's own notifications are listed."""
        response = member_client.get('/api/v1/notifications/')
        assert response.status_code == 200
        assert {item['title'] for item in response.data['results']} == {'First', 'Second'}

    def test_unread_count(self, member_client, notifications):
        """Unread notifications are counted."""
        response = member_client.get('/api/v1/notifications/unread-count/')
        assert response.data['data']['unread_count'] == 2

    def test_mark_read(self, member_client, notifications):
        """Marking one read leaves the other unread."""
        notification = notifications.get(title='First')
        response = member_client.post(f'/api/v1/notifications/{notification.id}/read/')
        assert response.status_code == 200
        assert response.data['data']['is_read'] is True
        assert Notification.objects.filter(user=notification.user, read_at__isnull=True).count() == 1

    def test_mark_all_read(self, member_client, notifications, other_user):
        """Read-all only touches the user's notifications."""
        member_client.post('/api/v1/notifications/read-all/')
        assert not notifications.filter(read_at__isnull=True).exists()
        assert Notification.objects.filter(user=other_user, read_at__isnull=True).exists()

    def test_requires_login(self, api_client):
        """Anonymous users are refused."""
        response = api_client.get('/api/v1/notifications/')
        assert response.status_code == 401
