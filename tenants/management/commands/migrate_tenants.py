# tenants/management/commands/migrate_tenants.py
"""
Run migrations for every active tenant database.

python manage.py migrate_tenants
python manage.py migrate_tenants --only acme,harbour
python manage.py migrate_tenants loans --plan
"""
import logging

from django.core.management import call_command
from django.core.management.base import BaseCommand, CommandError

from tenants.context import ensure_tenant_connection
from tenants.models import Tenant

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Run migrations for all tenant databases'

    def add_arguments(self, parser):
        parser.add_argument('app_label', nargs='?', default=None,
                            help='Optional app label to migrate')
        parser.add_argument('migration_name', nargs='?', default=None,
                            help='Optional migration name to migrate to')
        parser.add_argument('--only', type=str, default=None,
                            help='Comma-separated list of tenant slugs')
        parser.add_argument('--plan', action='store_true',
                            help='Show migration plan without executing it')
        parser.add_argument('--fake', action='store_true',
                            help='Mark migrations as run without executing them')

    def handle(self, *args, **options):
        tenants = Tenant.objects.filter(status='active').exclude(database_name='')

        if options['only']:
            slugs = [slug.strip() for slug in options['only'].split(',') if slug.strip()]
            tenants = tenants.filter(slug__in=slugs)
            missing = set(slugs) - set(tenants.values_list('slug', flat=True))
            if missing:
                raise CommandError(f"Unknown tenant(s): {', '.join(sorted(missing))}")

        tenants = list(tenants)
        if not tenants:
            self.stdout.write(self.style.WARNING('No tenant databases found to migrate.'))
            return

        migrate_args = [a for a in (options['app_label'], options['migration_name']) if a]
        errors = []

        for idx, tenant in enumerate(tenants, 1):
            alias = ensure_tenant_connection(tenant)
            self.stdout.write(self.style.MIGRATE_HEADING(
                f"[{idx}/{len(tenants)}] Migrating {tenant.slug} ({alias})"
            ))
            try:
                call_command(
                    'migrate',
                    *migrate_args,
                    database=alias,
                    plan=options['plan'],
                    fake=options['fake'],
                    verbosity=options.get('verbosity', 1),
                    interactive=False,
                )
            except Exception as e:
                logger.error(f"Migration failed for tenant {tenant.slug}: {e}", exc_info=True)
                errors.append((tenant.slug, str(e)))
                self.stderr.write(self.style.ERROR(f"  {tenant.slug}: {e}"))

        migrated = len(tenants) - len(errors)
        self.stdout.write(self.style.SUCCESS(f"Migrated {migrated} of {len(tenants)} tenant databases"))
        if errors:
            raise CommandError(f"{len(errors)} tenant migration(s) failed")
