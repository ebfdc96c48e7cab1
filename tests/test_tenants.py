"""Tests for tenant resolution, routing and tenant-bound transactions."""
from unittest import mock

import pytest
from django.db import connections

from loans.models import Loan
from notifications.models import Notification
from tenants.context import (
    ensure_tenant_connection, get_current_db, get_current_tenant, tenant_atomic,
    tenant_context
)
from tenants.middleware import find_tenant
from tenants.models import Domain, Tenant
from tenants.routers import TenantRouter


@pytest.fixture
def tenant(db):
    tenant = Tenant.objects.create(name='Acme Cooperative', slug='acme')
    Domain.objects.create(tenant=tenant, domain='acme.coop.test', is_primary=True)
    return tenant


@pytest.fixture
def separate_db_tenant():
    """Unsaved tenant with its own database; its alias is removed afterwards."""
    from django.conf import settings

    tenant = Tenant(name='Harbour', slug='harbour', database_name='coop_harbour')
    yield tenant
    connections.settings.pop(tenant.db_alias, None)
    settings.DATABASES.pop(tenant.db_alias, None)


class TestContext:
    """The tenant bound to the current context."""

    def test_default_without_tenant(self):
        """No tenant means the default database."""
        assert get_current_tenant() is None
        assert get_current_db() == 'default'

    def test_shared_database_tenant(self):
        """Tenants without a database name share the default one."""
        tenant = Tenant(name='Shared', slug='shared')
        with tenant_context(tenant):
            assert get_current_tenant() is tenant
            assert get_current_db() == 'default'
        assert get_current_tenant() is None

    def test_separate_database_registered(self, separate_db_tenant):
        """A tenant database is registered as a clone of the default one."""
        with tenant_context(separate_db_tenant):
            assert get_current_db() == 'tenant_harbour'
            assert connections.settings['tenant_harbour']['NAME'] == 'coop_harbour'
        assert ensure_tenant_connection(separate_db_tenant) == 'tenant_harbour'


class TestRouter:
    """Central models stay on default, tenant models follow the context."""

    router = TenantRouter()

    def test_central_app(self, separate_db_tenant):
        """The tenant registry always lives on default."""
        with tenant_context(separate_db_tenant):
            assert self.router.db_for_read(Tenant) == 'default'
            assert self.router.db_for_write(Domain) == 'default'

    def test_tenant_app(self, separate_db_tenant):
        """Tenant data goes to the tenant database."""
        assert self.router.db_for_write(Loan) == 'default'
        with tenant_context(separate_db_tenant):
            assert self.router.db_for_read(Loan) == 'tenant_harbour'
            assert self.router.db_for_write(Notification) == 'tenant_harbour'

    def test_migrations(self):
        """Central tables only migrate on default."""
        assert self.router.allow_migrate('default', 'tenants') is True
        assert self.router.allow_migrate('tenant_acme', 'tenants') is False
        assert self.router.allow_migrate('tenant_acme', 'loans') is True


class TestTenantAtomic:
    """Transactions on the tenant's database."""

    def test_rolls_back(self, user):
        """Writes inside a failed block are undone."""
        with pytest.raises(RuntimeError):
            with tenant_atomic():
                Notification.objects.create(user=user, title='Draft', message='...')
                raise RuntimeError('boom')
        assert not Notification.objects.filter(title='Draft').exists()

    def test_uses_tenant_alias(self, separate_db_tenant):
        """The alias is looked up when the block is entered."""
        with mock.patch('tenants.context.transaction.atomic') as atomic:
            with tenant_context(separate_db_tenant):
                with tenant_atomic():
                    pass
        atomic.assert_called_once_with(using='tenant_harbour', savepoint=True)

    def test_decorator_reusable(self, user):
        """The decorator form opens a fresh block on every call."""
        @tenant_atomic()
        def create(title):
            return Notification.objects.create(user=user, title=title, message='...')

        create('one')
        create('two')
        assert Notification.objects.filter(user=user).count() == 2


@pytest.mark.django_db
class TestMiddleware:
    """Host based tenant resolution."""

    def test_domain_lookup(self, tenant):
        """Registered domains resolve with or without a port."""
        assert find_tenant('acme.coop.test') == tenant
        assert find_tenant('acme.coop.test:8000') == tenant
        assert find_tenant('unknown.test') is None

    def test_local_subdomain(self, tenant):
        """acme.localhost resolves by slug during development."""
        assert find_tenant('acme.localhost:8000') == tenant

    def test_request_on_tenant_host(self, member_client, tenant, product):
        """Requests on a tenant host are served."""
        response = member_client.get('/api/v1/loan-products/', HTTP_HOST='acme.coop.test')
        assert response.status_code == 200

    def test_forwarded_host_wins(self, member_client, tenant, settings):
        """X-Forwarded-Host is preferred over Host."""
        settings.TENANCY_REQUIRED = True
        response = member_client.get(
            '/api/v1/loan-products/',
            HTTP_HOST='internal.svc',
            HTTP_X_FORWARDED_HOST='acme.coop.test',
        )
        assert response.status_code == 200

    def test_unknown_host(self, member_client, settings):
        """Unknown hosts answer 404 when tenancy is required."""
        settings.TENANCY_REQUIRED = True
        response = member_client.get('/api/v1/loan-products/', HTTP_HOST='nowhere.test')
        assert response.status_code == 404
        assert response.json()['message'] == 'Cooperative not found for this domain'

    def test_suspended_tenant(self, member_client, tenant):
        """Suspended cooperatives answer 403."""
        tenant.status = 'suspended'
        tenant.save()
        response = member_client.get('/api/v1/loan-products/', HTTP_HOST='acme.coop.test')
        assert response.status_code == 403

    def test_exempt_path(self, api_client, settings):
        """Health checks work without a tenant."""
        settings.TENANCY_REQUIRED = True
        response = api_client.get('/health/', HTTP_HOST='nowhere.test')
        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'
