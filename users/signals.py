# users/signals.py
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.contrib.auth import get_user_model
from .models import Member

User = get_user_model()


@receiver(post_save, sender=User)
def create_member_record(sender, instance, created, **kwargs):
    """Give every new member-role account a membership record"""
    if created and instance.role == 'member':
        Member.objects.get_or_create(
            user=instance,
            defaults={'member_number': Member.generate_member_number()}
        )
