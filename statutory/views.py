# statutory/views.py
import logging
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from core.responses import error_response, server_error_response, success_response
from funds.serializers import PaymentSerializer
from funds.services.gateways import PaymentGatewayError
from funds.services.payment_config import tenant_payment_service
from funds.services.wallet_service import WalletError
from statutory.models import StatutoryCharge, StatutoryChargeType
from statutory.serializers import (
    ChargePaymentSerializer, ChargeRejectSerializer, CreateAndPaySerializer,
    StatutoryChargeCreateSerializer, StatutoryChargeSerializer,
    StatutoryChargeTypeSerializer
)
from statutory.services import (
    StatutoryChargeError, approve_charge, create_charges_for_frequency,
    get_charge_type, pay_charge, reject_charge, submit_charge
)
from tenants.context import tenant_atomic
from users.permissions import IsCooperativeAdmin

logger = logging.getLogger(__name__)


def charge_error_response(e):
    if isinstance(e, StatutoryChargeError):
        return error_response(str(e), status_code=e.status_code)
    if isinstance(e, PaymentGatewayError):
        return error_response(str(e), status_code=status.HTTP_502_BAD_GATEWAY)
    return error_response(str(e))


CHARGE_ERRORS = (StatutoryChargeError, WalletError, PaymentGatewayError)


def payment_response(result, message=None, **extra):
    payment = result['payment']
    if message is None:
        message = {
            'completed': 'Payment processed successfully',
            'pending': 'Payment initiated',
        }.get(payment.status, 'Payment recorded')
    data = {
        'charge': StatutoryChargeSerializer(result['charge']).data,
        'payment': PaymentSerializer(payment).data,
        **result['payment_data'],
        **extra,
    }
    return success_response(message, data=data)


class StatutoryChargeViewSet(viewsets.ModelViewSet):
    """Statutory charges; members see their own"""
    serializer_class = StatutoryChargeSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['status', 'type']
    ordering_fields = ['due_date', 'created_at', 'amount']
    http_method_names = ['get', 'post', 'put', 'patch', 'delete']

    def get_permissions(self):
        if self.action in ('approve', 'reject'):
            return [IsCooperativeAdmin()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = StatutoryCharge.objects.select_related('member__user').prefetch_related('charge_payments')
        user = self.request.user
        if getattr(user, 'is_cooperative_admin', False):
            return queryset
        return queryset.filter(member__user=user)

    def create(self, request):
        member = getattr(request.user, 'member', None)
        if member is None:
            return error_response('Member profile not found', status_code=status.HTTP_404_NOT_FOUND)

        serializer = StatutoryChargeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        charge = submit_charge(
            member,
            data['type'],
            data['amount'],
            description=data.get('description', ''),
            due_date=data.get('due_date'),
            created_by=request.user,
        )
        return success_response(
            'Statutory charge created successfully',
            data=StatutoryChargeSerializer(charge).data,
            status_code=status.HTTP_201_CREATED
        )

    def update(self, request, *args, **kwargs):
        charge = self.get_object()
        if charge.status != 'pending':
            return error_response('Cannot update charge that is not pending')
        kwargs['partial'] = True
        super().update(request, *args, **kwargs)
        charge.refresh_from_db()
        return success_response(
            'Statutory charge updated successfully',
            data=StatutoryChargeSerializer(charge).data
        )

    def destroy(self, request, *args, **kwargs):
        charge = self.get_object()
        if charge.status != 'pending':
            return error_response('Cannot delete charge that is not pending')
        charge.delete()
        return success_response('Statutory charge deleted successfully')

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        try:
            charge = approve_charge(self.get_object(), request.user)
        except StatutoryChargeError as e:
            return charge_error_response(e)
        return success_response('Statutory charge approved successfully',
                                data=StatutoryChargeSerializer(charge).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        serializer = ChargeRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            charge = reject_charge(self.get_object(), request.user, serializer.validated_data['reason'])
        except StatutoryChargeError as e:
            return charge_error_response(e)
        return success_response('Statutory charge rejected successfully',
                                data=StatutoryChargeSerializer(charge).data)

    @action(detail=True, methods=['post'])
    def pay(self, request, pk=None):
        charge = self.get_object()
        serializer = ChargePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = pay_charge(request.user, charge, data['amount'], data['payment_method'], data=data)
        except CHARGE_ERRORS as e:
            return charge_error_response(e)
        except Exception as e:
            return server_error_response(e, 'Failed to process payment')
        return payment_response(result)

    @action(detail=False, methods=['post'], url_path='create-and-pay')
    def create_and_pay(self, request):
        """Create the charges for a charge type and pay the first one"""
        member = getattr(request.user, 'member', None)
        if member is None:
            return error_response('Member profile not found', status_code=status.HTTP_404_NOT_FOUND)

        serializer = CreateAndPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            with tenant_atomic():
                charge_type = get_charge_type(data['charge_type'])
                charges = create_charges_for_frequency(
                    member,
                    charge_type,
                    data['amount'],
                    description=data.get('description', ''),
                    created_by=request.user,
                )
                result = pay_charge(request.user, charges[0], data['amount'],
                                    data['payment_method'], data=data)
        except CHARGE_ERRORS as e:
            return charge_error_response(e)
        except Exception as e:
            return server_error_response(e, 'Unable to process payment at the moment.')

        extra = {}
        if len(charges) > 1:
            extra['future_charges'] = len(charges) - 1
            extra['charges'] = [
                {
                    'id': charge.id,
                    'due_date': charge.due_date.date() if charge.due_date else None,
                    'amount': charge.amount,
                    'status': charge.status,
                }
                for charge in charges
            ]
        return payment_response(result, **extra)

    @action(detail=False, methods=['get'], url_path='types')
    def charge_types(self, request):
        types = StatutoryChargeType.objects.filter(is_active=True)
        return success_response(data=StatutoryChargeTypeSerializer(types, many=True).data)

    @action(detail=False, methods=['get'], url_path='payment-methods')
    def payment_methods(self, request):
        return success_response(data=tenant_payment_service.get_available_payment_methods('statutory_charge'))


class StatutoryChargeTypeViewSet(viewsets.ModelViewSet):
    """Charge type administration"""
    serializer_class = StatutoryChargeTypeSerializer
    permission_classes = [IsCooperativeAdmin]
    queryset = StatutoryChargeType.objects.all()
    filterset_fields = ['frequency', 'is_active']
