"""Tests for the notification websocket."""
import pytest
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from rest_framework_simplejwt.tokens import AccessToken

from notifications.models import Notification
from notifications.services import notification_service
from realtime.middleware import JWTAuthMiddleware, scope_host, user_for_token
from realtime.routing import websocket_urlpatterns

application = JWTAuthMiddleware(URLRouter(websocket_urlpatterns))


def token_for(user):
    return str(AccessToken.for_user(user))


class TestScopeHost:
    """Host resolution from handshake headers."""

    def test_forwarded_host_preferred(self):
        scope = {'headers': [(b'host', b'internal.svc'), (b'x-forwarded-host', b'Acme.coop.test, proxy')]}
        assert scope_host(scope) == 'acme.coop.test'

    def test_missing(self):
        assert scope_host({}) == ''


@pytest.mark.django_db
class TestTokenAuth:
    """Query string JWT authentication."""

    def test_valid_token(self, user):
        assert user_for_token(token_for(user)) == user

    @pytest.mark.parametrize('raw', ['', 'not-a-token'])
    def test_bad_token(self, raw):
        assert not user_for_token(raw).is_authenticated

    def test_inactive_user(self, user):
        token = token_for(user)
        user.is_active = False
        user.save()
        assert not user_for_token(token).is_authenticated


@pytest.mark.django_db(transaction=True)
class TestNotificationConsumer:
    """Connecting, pushing and marking notifications read."""

    def test_anonymous_refused(self):
        async def run():
            communicator = WebsocketCommunicator(application, '/ws/notifications/')
            connected, code = await communicator.connect()
            await communicator.disconnect()
            return connected, code

        assert async_to_sync(run)() == (False, 4401)

    def test_push_and_mark_read(self, user):
        path = f'/ws/notifications/?token={token_for(user)}'

        async def run():
            communicator = WebsocketCommunicator(application, path)
            connected, _ = await communicator.connect()
            assert connected
            greeting = await communicator.receive_json_from()

            await communicator.send_json_to({'action': 'ping'})
            pong = await communicator.receive_json_from()

            await database_sync_to_async(notification_service.send_to_user)(
                user, 'info', 'Loan Approved', 'Your loan has been approved.'
            )
            pushed = await communicator.receive_json_from()

            await communicator.send_json_to({'action': 'mark_read', 'id': pushed['notification']['id']})
            marked = await communicator.receive_json_from()

            await communicator.send_json_to({'action': 'dance'})
            unknown = await communicator.receive_json_from()

            await communicator.disconnect()
            return greeting, pong, pushed, marked, unknown

        greeting, pong, pushed, marked, unknown = async_to_sync(run)()

        assert greeting == {'type': 'connected', 'unread_count': 0}
        assert pong == {'type': 'pong'}
        assert pushed['type'] == 'notification'
        assert pushed['notification']['title'] == 'Loan Approved'
        assert marked['updated'] == 1
        assert marked['unread_count'] == 0
        assert unknown['type'] == 'error'
        assert not Notification.objects.filter(user=user, read_at__isnull=True).exists()
