# tenants/middleware.py
import logging
from urllib.parse import urlparse

from django.conf import settings
from django.http import JsonResponse

from tenants.context import tenant_context
from tenants.models import Domain, Tenant

logger = logging.getLogger(__name__)


def resolve_host(request):
    """Host the client addressed, preferring proxy and browser headers"""
    forwarded = request.META.get('HTTP_X_FORWARDED_HOST', '')
    if forwarded:
        return forwarded.split(',')[0].strip().lower()

    origin = request.META.get('HTTP_ORIGIN', '')
    if origin:
        parsed = urlparse(origin)
        if parsed.netloc:
            return parsed.netloc.lower()

    return request.META.get('HTTP_HOST', request.META.get('SERVER_NAME', '')).lower()


def find_tenant(host):
    """Look up the tenant for a host name, with or without its port"""
    if not host:
        return None

    bare_host = host.split(':')[0]
    domain = (
        Domain.objects.select_related('tenant').filter(domain=bare_host).first()
        or Domain.objects.select_related('tenant').filter(domain=host).first()
    )
    if domain:
        return domain.tenant

    # acme.localhost / acme.127.0.0.1 during local development
    for local_host in settings.TENANT_LOCAL_HOSTS:
        suffix = f'.{local_host}'
        if bare_host.endswith(suffix):
            slug = bare_host[:-len(suffix)].split('.')[-1]
            return Tenant.objects.filter(slug=slug).first()

    return None


class TenantMiddleware:
    """Bind the tenant that owns the requested host for the whole request"""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        host = resolve_host(request)
        tenant = find_tenant(host)
        exempt = any(request.path.startswith(path) for path in settings.TENANCY_EXEMPT_PATHS)

        if tenant is None:
            if settings.TENANCY_REQUIRED and not exempt:
                logger.warning(f"No tenant found for host '{host}'")
                return JsonResponse({
                    'success': False,
                    'message': 'Cooperative not found for this domain'
                }, status=404)
        elif not tenant.is_active and not exempt:
            logger.warning(f"Request for suspended tenant {tenant.slug}")
            return JsonResponse({
                'success': False,
                'message': 'This cooperative is currently suspended'
            }, status=403)

        request.tenant = tenant
        with tenant_context(tenant):
            return self.get_response(request)
