# tenants/context.py
import copy
import logging
from contextlib import ContextDecorator, contextmanager
from contextvars import ContextVar

from django.conf import settings
from django.db import connections, transaction

logger = logging.getLogger(__name__)

_current_tenant = ContextVar('current_tenant', default=None)


def get_current_tenant():
    return _current_tenant.get()


def get_current_db():
    """Database alias for the tenant bound to this context"""
    tenant = _current_tenant.get()
    if tenant is None:
        return 'default'
    return tenant.db_alias


def ensure_tenant_connection(tenant):
    """Register the tenant's database alias, cloning the default connection"""
    alias = tenant.db_alias
    if alias in connections.settings:
        return alias

    config = copy.deepcopy(connections.settings['default'])
    config['NAME'] = tenant.database_name
    connections.settings[alias] = config
    settings.DATABASES[alias] = config
    logger.info(f"Registered database '{alias}' for tenant {tenant.slug}")
    return alias


@contextmanager
def tenant_context(tenant):
    """Bind a tenant for the duration of the block"""
    if tenant is not None:
        ensure_tenant_connection(tenant)
    token = _current_tenant.set(tenant)
    try:
        yield tenant
    finally:
        _current_tenant.reset(token)


class tenant_atomic(ContextDecorator):
    """
    transaction.atomic on the current tenant's database.

    Plain transaction.atomic() only wraps the default connection, while
    tenant app writes are routed to the tenant alias. The alias is looked
    up when the block is entered, so the decorator form follows whichever
    tenant is bound at call time.
    """

    def __init__(self, savepoint=True):
        self.savepoint = savepoint
        self._atomic = None

    def _recreate_cm(self):
        return tenant_atomic(self.savepoint)

    def __enter__(self):
        self._atomic = transaction.atomic(using=get_current_db(), savepoint=self.savepoint)
        return self._atomic.__enter__()

    def __exit__(self, exc_type, exc_value, traceback):
        return self._atomic.__exit__(exc_type, exc_value, traceback)
