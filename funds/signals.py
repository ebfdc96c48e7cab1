from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.contrib.auth import get_user_model
from .models import Wallet

User = get_user_model()


@receiver(post_save, sender=User)
def create_user_wallet(sender, instance, created, **kwargs):
    """Every account gets a wallet on creation"""
    if created:
        Wallet.objects.get_or_create(
            user=instance,
            defaults={'currency': settings.DEFAULT_CURRENCY}
        )
