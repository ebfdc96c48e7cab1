# tenants/routers.py
from tenants.context import get_current_db


class TenantRouter:
    """Route central apps to the default database and everything else to the current tenant"""

    central_apps = {'tenants'}

    def db_for_read(self, model, **hints):
        if model._meta.app_label in self.central_apps:
            return 'default'
        return get_current_db()

    def db_for_write(self, model, **hints):
        return self.db_for_read(model, **hints)

    def allow_relation(self, obj1, obj2, **hints):
        central1 = obj1._meta.app_label in self.central_apps
        central2 = obj2._meta.app_label in self.central_apps
        if central1 and central2:
            return True
        if central1 != central2:
            return False
        return None

    def allow_migrate(self, db, app_label, model_name=None, **hints):
        if app_label in self.central_apps:
            return db == 'default'
        return True
