# tenants/admin.py
from django.contrib import admin
from tenants.models import Tenant, Domain


class DomainInline(admin.TabularInline):
    model = Domain
    extra = 1


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'database_name', 'status', 'created_at']
    list_filter = ['status']
    search_fields = ['name', 'slug']
    inlines = [DomainInline]


@admin.register(Domain)
class DomainAdmin(admin.ModelAdmin):
    list_display = ['domain', 'tenant', 'is_primary']
    search_fields = ['domain', 'tenant__name']
