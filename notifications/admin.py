# notifications/admin.py
from django.contrib import admin
from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'user', 'type', 'read_at', 'created_at']
    list_filter = ['type', 'created_at']
    search_fields = ['title', 'message', 'user__email']
