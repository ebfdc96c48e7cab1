# funds/views.py
import json
import logging
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.views import APIView

from core.responses import error_response, server_error_response, success_response
from funds.models import Payment, PaymentGateway
from funds.serializers import (
    PaymentGatewaySerializer, PaymentRejectSerializer, PaymentSerializer,
    WalletSerializer, WalletTopUpSerializer, WalletTransactionSerializer,
    WalletTransferSerializer
)
from funds.services.gateways import PaymentGatewayError, get_gateway_client
from funds.services.payment_config import tenant_payment_service
from funds.services.payment_service import PaymentError, payment_service
from funds.services.wallet_service import WalletError, get_wallet, transfer
from loans.services.loan_service import LoanError
from notifications.services import notification_service
from statutory.services import StatutoryChargeError
from tenants.context import tenant_atomic
from users.models import User
from users.permissions import IsCooperativeAdmin

logger = logging.getLogger(__name__)


class WalletViewSet(viewsets.GenericViewSet):
    """The signed-in user's wallet"""
    serializer_class = WalletTransactionSerializer
    permission_classes = [IsAuthenticated]

    def list(self, request):
        wallet = get_wallet(request.user)
        return success_response(data=WalletSerializer(wallet).data)

    @action(detail=False, methods=['get'])
    def transactions(self, request):
        wallet = get_wallet(request.user)
        queryset = wallet.transactions.all()
        entry_type = request.query_params.get('type')
        if entry_type in ('credit', 'debit'):
            queryset = queryset.filter(type=entry_type)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(WalletTransactionSerializer(page, many=True).data)

    @action(detail=False, methods=['post'], url_path='top-up')
    def top_up(self, request):
        """Fund the wallet through a card gateway"""
        serializer = WalletTopUpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            with tenant_atomic():
                payment = payment_service.create_payment(
                    request.user,
                    data['amount'],
                    'wallet_funding',
                    'card',
                    description='Wallet funding',
                )
                result = payment_service.initialize_card_payment(payment, data.get('gateway'))
        except PaymentGatewayError as e:
            return error_response(str(e), status_code=status.HTTP_502_BAD_GATEWAY)
        except Exception as e:
            return server_error_response(e, 'Failed to initialise wallet funding')

        payment.refresh_from_db()
        return success_response('Proceed to the payment page to fund your wallet', data={
            'payment': PaymentSerializer(payment).data,
            'payment_url': result['payment_url'],
        })

    @action(detail=False, methods=['post'])
    def transfer(self, request):
        serializer = WalletTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        recipient = User.objects.filter(email__iexact=data['recipient_email'], is_active=True).first()
        if recipient is None:
            return error_response('Recipient not found', status_code=status.HTTP_404_NOT_FOUND)

        try:
            entry = transfer(request.user, recipient, data['amount'], data.get('note', ''))
        except WalletError as e:
            return error_response(str(e))

        logger.info(f"Transfer {entry.payment_reference} from {request.user.email} to {recipient.email}")
        return success_response('Transfer successful', data={
            'transaction': WalletTransactionSerializer(entry).data,
            'wallet': WalletSerializer(get_wallet(request.user)).data,
        })


class PaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """The signed-in user's payments"""
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['purpose', 'status', 'payment_method']
    lookup_field = 'reference'

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Payment.objects.none()
        return Payment.objects.filter(user=self.request.user)

    @action(detail=False, methods=['get'])
    def methods(self, request):
        payment_type = request.query_params.get('type', 'loan_repayment')
        return success_response(data=tenant_payment_service.get_available_payment_methods(payment_type))

    @action(detail=True, methods=['post'])
    def verify(self, request, reference=None):
        """Ask the gateway about a pending card payment"""
        payment = self.get_object()
        if payment.status != 'pending' or payment.payment_method != 'card':
            return success_response(data=PaymentSerializer(payment).data)
        try:
            payment_service.verify_with_gateway(payment)
        except PaymentGatewayError as e:
            return error_response(str(e), status_code=status.HTTP_502_BAD_GATEWAY)
        payment.refresh_from_db()
        return success_response(data=PaymentSerializer(payment).data)


class AdminPaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """Payment administration and manual payment review"""
    serializer_class = PaymentSerializer
    permission_classes = [IsCooperativeAdmin]
    filterset_fields = ['purpose', 'status', 'payment_method', 'approval_status', 'gateway']
    search_fields = ['reference', 'bank_reference', 'payer_name', 'user__email']
    ordering_fields = ['created_at', 'amount']

    def get_queryset(self):
        return Payment.objects.select_related('user').all()

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        try:
            payment, outcome = payment_service.approve_manual_payment(self.get_object(), request.user)
        except (PaymentError, LoanError, StatutoryChargeError, WalletError) as e:
            return error_response(str(e))
        except Exception as e:
            return server_error_response(e, 'Failed to approve payment')

        logger.info(f"Manual payment {payment.reference} approved by {request.user.email}")
        return success_response('Payment approved', data={
            'payment': PaymentSerializer(payment).data,
            'loan_completed': bool(outcome.get('loan_completed')),
        })

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        serializer = PaymentRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data['rejection_reason']

        try:
            payment = payment_service.reject_manual_payment(self.get_object(), request.user, reason)
        except PaymentError as e:
            return error_response(str(e))

        notification_service.notify_payment_failure(payment, reason)
        return success_response('Payment rejected', data=PaymentSerializer(payment).data)


class PaymentGatewayViewSet(mixins.ListModelMixin,
                            mixins.RetrieveModelMixin,
                            mixins.CreateModelMixin,
                            mixins.UpdateModelMixin,
                            viewsets.GenericViewSet):
    """Gateway configuration for the current cooperative"""
    serializer_class = PaymentGatewaySerializer
    permission_classes = [IsCooperativeAdmin]
    queryset = PaymentGateway.objects.all()


class BaseWebhookView(APIView):
    """Gateway callbacks; matched to payments by gateway reference"""
    permission_classes = [AllowAny]
    authentication_classes = []
    gateway_type = ''

    def parse_payload(self, request):
        try:
            return json.loads(request.body or b'{}')
        except ValueError:
            return None

    def get_client(self):
        gateway = PaymentGateway.objects.filter(gateway_type=self.gateway_type).first()
        if gateway is None:
            return None
        return get_gateway_client(gateway)

    def find_payment(self, gateway_reference):
        if not gateway_reference:
            return None
        return Payment.objects.filter(
            gateway=self.gateway_type,
            gateway_reference=gateway_reference
        ).first()

    def complete(self, payment, payload):
        try:
            payment_service.finalize_payment(payment, {'webhook': payload})
        except Exception as e:
            # the gateway retries on a non-2xx answer
            logger.error(f"Failed to finalize {payment.reference} from webhook: {e}", exc_info=True)
            return error_response('Payment could not be finalized',
                                  status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return success_response('Payment processed')

    def fail(self, payment, reason, payload):
        payment = payment_service.fail_payment(payment, reason, {'webhook': payload})
        notification_service.notify_payment_failure(payment, reason)
        return success_response('Payment failure recorded')

    def ignored(self, reason):
        logger.info(f"{self.gateway_type} webhook ignored: {reason}")
        return success_response('Event ignored')


class PaystackWebhookView(BaseWebhookView):
    gateway_type = 'paystack'

    def post(self, request):
        client = self.get_client()
        if client is None:
            return self.ignored('gateway not configured')
        if not client.verify_webhook(request):
            logger.warning('Paystack webhook with invalid signature rejected')
            return error_response('Invalid signature', status_code=status.HTTP_401_UNAUTHORIZED)

        payload = self.parse_payload(request)
        if not isinstance(payload, dict):
            return error_response('Invalid payload')
        event = payload.get('event')
        data = payload.get('data') or {}
        payment = self.find_payment(data.get('reference'))
        if payment is None:
            return self.ignored(f"no payment for reference {data.get('reference')}")

        if event == 'charge.success':
            paid = data.get('amount')
            if paid is not None and int(paid) < int(payment.amount * 100):
                logger.warning(f"Paystack amount mismatch on {payment.reference}: {paid}")
                return self.ignored('amount mismatch')
            return self.complete(payment, data)
        if event == 'charge.failed':
            return self.fail(payment, data.get('gateway_response') or 'Card payment failed', data)
        return self.ignored(f'event {event}')


class StripeWebhookView(BaseWebhookView):
    """
    Signed events are trusted once the Stripe-Signature header checks out.
    Without a signing secret an event only prompts a status lookup with Stripe.
    """
    gateway_type = 'stripe'

    def post(self, request):
        client = self.get_client()
        if client is None:
            return self.ignored('gateway not configured')
        signed = client.signs_webhooks
        if signed and not client.verify_webhook(request):
            logger.warning('Stripe webhook with invalid signature rejected')
            return error_response('Invalid signature', status_code=status.HTTP_401_UNAUTHORIZED)

        payload = self.parse_payload(request)
        if not isinstance(payload, dict):
            return error_response('Invalid payload')
        event = payload.get('type')
        intent = (payload.get('data') or {}).get('object') or {}
        payment = self.find_payment(intent.get('id'))
        if payment is None:
            return self.ignored(f"no payment for intent {intent.get('id')}")

        if not signed:
            return self.confirm(payment)
        if event == 'payment_intent.succeeded':
            return self.complete(payment, {'id': intent.get('id'), 'status': intent.get('status')})
        if event == 'payment_intent.payment_failed':
            error = intent.get('last_payment_error') or {}
            return self.fail(payment, error.get('message') or 'Card payment failed', {'id': intent.get('id')})
        return self.ignored(f'event {event}')

    def confirm(self, payment):
        if payment.status != 'pending':
            return self.ignored(f'{payment.reference} is {payment.status}')
        try:
            confirmed = payment_service.verify_with_gateway(payment)
        except PaymentGatewayError as e:
            logger.warning(f"Stripe verification failed for {payment.reference}: {e}")
            return error_response(str(e), status_code=status.HTTP_502_BAD_GATEWAY)
        if not confirmed:
            return self.ignored(f'{payment.reference} not confirmed by Stripe')
        return success_response('Payment processed')


class RemitaWebhookView(BaseWebhookView):
    """Remita notifications are unsigned, so each RRR is re-verified with Remita"""
    gateway_type = 'remita'

    def post(self, request):
        if self.get_client() is None:
            return self.ignored('gateway not configured')

        payload = self.parse_payload(request)
        if payload is None:
            return error_response('Invalid payload')
        notifications = payload if isinstance(payload, list) else [payload]
        notifications = [item for item in notifications if isinstance(item, dict)]

        processed = 0
        for item in notifications:
            payment = self.find_payment(item.get('rrr'))
            if payment is None or payment.status != 'pending':
                continue
            try:
                if payment_service.verify_with_gateway(payment):
                    processed += 1
            except PaymentGatewayError as e:
                logger.warning(f"Remita verification failed for {payment.reference}: {e}")

        return success_response('Notifications processed', data={'processed': processed})
