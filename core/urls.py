# core/urls.py
import logging

from django.contrib import admin
from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularSwaggerView,
    SpectacularRedocView,
)

from users.views import (
    CustomLoginView, MemberViewSet, UserLogoutView, UserProfileView,
    UserRegistrationView
)
from funds.views import (
    AdminPaymentViewSet, PaymentGatewayViewSet, PaymentViewSet,
    PaystackWebhookView, RemitaWebhookView, StripeWebhookView, WalletViewSet
)
from loans.views import AdminLoanViewSet, LoanProductViewSet, LoanViewSet
from statutory.views import StatutoryChargeTypeViewSet, StatutoryChargeViewSet
from notifications.views import NotificationViewSet

logger = logging.getLogger(__name__)


def health_check(request):
    """Database and cache probe, served on every host"""
    checks = {}
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        checks['database'] = 'ok'

        cache.set('health_check', 'ok', 10)
        checks['cache'] = 'ok' if cache.get('health_check') == 'ok' else 'degraded'
    except Exception as e:
        logger.error(f'Health check failed: {e}', exc_info=True)
        return JsonResponse({'status': 'unhealthy', **checks, 'error': str(e)}, status=503)

    tenant = getattr(request, 'tenant', None)
    return JsonResponse({
        'status': 'healthy',
        'tenant': tenant.slug if tenant else None,
        **checks,
    })


router = DefaultRouter()

# Members
router.register(r'admin/members', MemberViewSet, basename='admin-member')

# Loans
router.register(r'loan-products', LoanProductViewSet, basename='loan-product')
router.register(r'loans', LoanViewSet, basename='loan')
router.register(r'admin/loans', AdminLoanViewSet, basename='admin-loan')

# Funds
router.register(r'wallet', WalletViewSet, basename='wallet')
router.register(r'payments', PaymentViewSet, basename='payment')
router.register(r'admin/payments', AdminPaymentViewSet, basename='admin-payment')
router.register(r'admin/payment-gateways', PaymentGatewayViewSet, basename='admin-payment-gateway')

# Statutory charges
router.register(r'statutory/charges', StatutoryChargeViewSet, basename='statutory-charge')
router.register(r'admin/statutory-charge-types', StatutoryChargeTypeViewSet,
                basename='admin-statutory-charge-type')

# Notifications
router.register(r'notifications', NotificationViewSet, basename='notification')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health_check'),

    # API Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'),
         name='swagger-ui'),
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'),
         name='redoc'),

    # Authentication
    path('api/v1/auth/register/', UserRegistrationView.as_view(), name='register'),
    path('api/v1/auth/login/', CustomLoginView.as_view(), name='token_obtain_pair'),
    path('api/v1/auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/v1/auth/me/', UserProfileView.as_view(), name='user-profile'),
    path('api/v1/auth/logout/', UserLogoutView.as_view(), name='logout'),

    # Gateway webhooks
    path('api/v1/webhooks/paystack/', PaystackWebhookView.as_view(), name='webhook-paystack'),
    path('api/v1/webhooks/stripe/', StripeWebhookView.as_view(), name='webhook-stripe'),
    path('api/v1/webhooks/remita/', RemitaWebhookView.as_view(), name='webhook-remita'),

    # API Routes
    path('api/v1/', include(router.urls)),
]
