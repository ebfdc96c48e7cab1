# realtime/consumers.py
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.core.exceptions import ValidationError
from django.utils import timezone

from notifications.models import Notification
from tenants.context import tenant_context

logger = logging.getLogger(__name__)


def user_group(user_id):
    return f'user_{user_id}'


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    """
    Per-user notification stream.

    Clients receive `notification` events pushed by the notification service
    and may send `ping`, `unread_count`, `mark_read` (with `id`) and
    `mark_all_read` actions.
    """

    async def connect(self):
        self.user = self.scope.get('user')
        self.tenant = self.scope.get('tenant')

        if self.user is None or not self.user.is_authenticated:
            await self.close(code=4401)
            return

        self.group_name = user_group(self.user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.send_json({
            'type': 'connected',
            'unread_count': await self.count_unread(),
        })

    async def disconnect(self, close_code):
        if getattr(self, 'group_name', None):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        action = content.get('action') if isinstance(content, dict) else None

        if action == 'ping':
            await self.send_json({'type': 'pong'})
        elif action == 'unread_count':
            await self.send_json({'type': 'unread_count', 'unread_count': await self.count_unread()})
        elif action == 'mark_read':
            updated = await self.mark_read(content.get('id'))
            await self.send_json({
                'type': 'marked_read',
                'id': content.get('id'),
                'updated': updated,
                'unread_count': await self.count_unread(),
            })
        elif action == 'mark_all_read':
            updated = await self.mark_read()
            await self.send_json({'type': 'marked_read', 'updated': updated, 'unread_count': 0})
        else:
            await self.send_json({'type': 'error', 'message': f'Unknown action: {action}'})

    async def notification(self, event):
        await self.send_json({'type': 'notification', 'notification': event['notification']})

    @database_sync_to_async
    def count_unread(self):
        with tenant_context(self.tenant):
            return Notification.objects.filter(user=self.user, read_at__isnull=True).count()

    @database_sync_to_async
    def mark_read(self, notification_id=None):
        """Mark one notification, or all of them, read; returns rows updated"""
        with tenant_context(self.tenant):
            queryset = Notification.objects.filter(user=self.user, read_at__isnull=True)
            if notification_id is not None:
                try:
                    queryset = queryset.filter(pk=notification_id)
                    return queryset.update(read_at=timezone.now())
                except (ValueError, ValidationError):
                    logger.info(f"Ignoring mark_read for malformed id {notification_id!r}")
                    return 0
            return queryset.update(read_at=timezone.now())
