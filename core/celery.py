# core/celery.py
import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'core.settings')

app = Celery('core')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'verify-pending-gateway-payments': {
        'task': 'core.tasks.verify_pending_gateway_payments',
        'schedule': crontab(minute='*/10'),
    },
    'expire-stale-payments': {
        'task': 'core.tasks.expire_stale_payments',
        'schedule': crontab(minute=0),
    },
    'send-repayment-reminders': {
        'task': 'core.tasks.send_repayment_reminders',
        'schedule': crontab(hour=8, minute=0),
    },
    'reconcile-wallets': {
        'task': 'core.tasks.reconcile_wallets',
        'schedule': crontab(hour=2, minute=30),
    },
}
