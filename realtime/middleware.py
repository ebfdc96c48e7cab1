# realtime/middleware.py
import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from tenants.context import tenant_context
from tenants.middleware import find_tenant
from users.models import User

logger = logging.getLogger(__name__)


def scope_host(scope):
    headers = dict(scope.get('headers') or [])
    host = headers.get(b'x-forwarded-host') or headers.get(b'host') or b''
    return host.decode('latin1').split(',')[0].strip().lower()


def user_for_token(raw_token):
    """User owning a JWT access token, or AnonymousUser"""
    if not raw_token:
        return AnonymousUser()
    try:
        token = AccessToken(raw_token)
    except TokenError as e:
        logger.info(f"Websocket token rejected: {e}")
        return AnonymousUser()
    user = User.objects.filter(pk=token.get('user_id'), is_active=True).first()
    return user or AnonymousUser()


@database_sync_to_async
def resolve_connection(host, raw_token):
    tenant = find_tenant(host)
    if tenant is not None and not tenant.is_active:
        logger.warning(f"Websocket refused for suspended tenant {tenant.slug}")
        return tenant, AnonymousUser()
    if tenant is None and settings.TENANCY_REQUIRED:
        logger.warning(f"Websocket refused, no tenant for host '{host}'")
        return None, AnonymousUser()
    with tenant_context(tenant):
        return tenant, user_for_token(raw_token)


class JWTAuthMiddleware(BaseMiddleware):
    """
    Authenticate websocket connections with `?token=<access token>`.

    Browsers cannot set an Authorization header on a websocket handshake, so
    the access token travels in the query string. The tenant is resolved from
    the host the same way as for HTTP requests.
    """

    async def __call__(self, scope, receive, send):
        query = parse_qs(scope.get('query_string', b'').decode())
        raw_token = (query.get('token') or [''])[0]

        tenant, user = await resolve_connection(scope_host(scope), raw_token)
        scope['tenant'] = tenant
        if not getattr(scope.get('user'), 'is_authenticated', False):
            scope['user'] = user
        return await super().__call__(scope, receive, send)
