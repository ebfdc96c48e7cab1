# tenants/models.py
import uuid
from django.db import models


class Tenant(models.Model):
    """A cooperative with its own database"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('suspended', 'Suspended'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=150)
    slug = models.SlugField(max_length=63, unique=True)
    database_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Leave blank to share the default database"
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def is_active(self):
        return self.status == 'active'

    @property
    def db_alias(self):
        if not self.database_name:
            return 'default'
        return f'tenant_{self.slug}'


class Domain(models.Model):
    """Host names that resolve to a tenant"""
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='domains')
    domain = models.CharField(max_length=255, unique=True)
    is_primary = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.domain
