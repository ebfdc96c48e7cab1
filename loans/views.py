# loans/views.py
import logging
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from core.responses import error_response, server_error_response, success_response
from funds.serializers import PaymentSerializer
from funds.services.gateways import PaymentGatewayError
from funds.services.payment_config import tenant_payment_service
from funds.services.wallet_service import WalletError
from loans.models import LoanProduct, Loan, LoanRepayment
from loans.serializers import (
    AdminRepaymentSerializer, LoanApplicationSerializer, LoanCalculatorSerializer,
    LoanDetailSerializer, LoanProductSerializer, LoanRejectSerializer,
    LoanRepaymentRequestSerializer, LoanRepaymentSerializer, LoanSerializer
)
from loans.services.eligibility import eligibility_service
from loans.services.loan_service import LoanError, LoanNotEligible, loan_service
from loans.services.repayment_service import (
    RepaymentError, repayment_schedule, repayment_service
)
from loans.utils import calculate_processing_fee
from users.permissions import IsCooperativeAdmin, IsMember

logger = logging.getLogger(__name__)


def loan_error_response(e):
    """Translate a loan, wallet or gateway failure into an envelope response"""
    if isinstance(e, LoanNotEligible):
        return error_response(str(e), reasons=e.reasons)
    if isinstance(e, RepaymentError):
        return error_response(str(e), status_code=e.status_code)
    if isinstance(e, PaymentGatewayError):
        logger.warning(f"Gateway error: {str(e)}")
        return error_response(str(e), status_code=status.HTTP_502_BAD_GATEWAY)
    return error_response(str(e))


DOMAIN_ERRORS = (LoanError, WalletError, PaymentGatewayError)


class LoanProductViewSet(viewsets.ModelViewSet):
    """Loan products; members browse, admins manage"""
    serializer_class = LoanProductSerializer
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'interest_rate', 'created_at']

    def get_permissions(self):
        if self.action in ('list', 'retrieve', 'calculate'):
            return [IsAuthenticated()]
        return [IsCooperativeAdmin()]

    def get_queryset(self):
        if getattr(self.request.user, 'is_cooperative_admin', False):
            return LoanProduct.objects.all()
        return LoanProduct.objects.filter(is_active=True)

    def destroy(self, request, *args, **kwargs):
        product = self.get_object()
        if product.loans.exists():
            product.is_active = False
            product.save(update_fields=['is_active', 'updated_at'])
            return success_response('Loan product has loans and was deactivated instead')
        product.delete()
        return success_response('Loan product deleted')

    @action(detail=True, methods=['post'])
    def calculate(self, request, pk=None):
        """Repayment figures for an amount and tenure on this product"""
        product = self.get_object()
        serializer = LoanCalculatorSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        amount = serializer.validated_data['amount']
        tenure = serializer.validated_data['tenure_months']

        interest = product.calculate_interest(amount, tenure)
        data = {
            'amount': amount,
            'tenure_months': tenure,
            'interest_rate': product.interest_rate,
            'interest_type': product.interest_type,
            'interest_amount': interest,
            'total_amount': amount + interest,
            'monthly_payment': product.calculate_monthly_payment(amount, tenure),
            'processing_fee': calculate_processing_fee(amount, product.processing_fee_percentage),
        }

        member = getattr(request.user, 'member', None)
        if member is not None:
            data['affordability'] = eligibility_service.calculate_affordability(
                member, amount, tenure, product.interest_rate
            )
        return success_response(data=data)


class LoanViewSet(mixins.ListModelMixin,
                  mixins.RetrieveModelMixin,
                  viewsets.GenericViewSet):
    """A member's own loans"""
    permission_classes = [IsMember]
    filterset_fields = ['status', 'type']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Loan.objects.none()
        return Loan.objects.filter(
            member=self.request.user.member
        ).select_related('product', 'member__user')

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return LoanDetailSerializer
        return LoanSerializer

    def create(self, request):
        """Apply for a loan"""
        serializer = LoanApplicationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            loan = loan_service.apply(
                request.user.member,
                data['product_id'],
                data['amount'],
                data['tenure_months'],
                purpose=data['purpose'],
                metadata=serializer.application_metadata(),
            )
        except LoanError as e:
            return loan_error_response(e)
        except Exception as e:
            return server_error_response(e, 'Failed to submit loan application')

        return success_response(
            'Loan application submitted successfully',
            data={
                'loan': LoanSerializer(loan).data,
                'loan_details': {
                    'interest_amount': loan.interest_amount,
                    'total_amount': loan.total_amount,
                    'monthly_payment': loan.monthly_payment,
                    'processing_fee': loan.processing_fee,
                    'duration_months': loan.duration_months,
                },
            },
            status_code=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['get'], url_path='status')
    def loan_status(self, request, pk=None):
        loan = self.get_object()
        return success_response(data={
            'id': loan.id,
            'status': loan.status,
            'application_date': loan.application_date,
            'approved_at': loan.approved_at,
            'rejected_at': loan.rejected_at,
            'rejection_reason': loan.rejection_reason,
            'disbursed_at': loan.disbursed_at,
            'completed_at': loan.completed_at,
            'total_repaid': loan.total_repaid,
            'remaining_balance': loan.remaining_balance,
        })

    @action(detail=True, methods=['post'])
    def repay(self, request, pk=None):
        serializer = LoanRepaymentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = repayment_service.repay(
                request.user,
                pk,
                data['amount'],
                data['payment_method'],
                data=data,
            )
        except DOMAIN_ERRORS as e:
            return loan_error_response(e)
        except Exception as e:
            return server_error_response(e, 'Failed to process repayment')

        messages = {
            'wallet': 'Loan repayment successful',
            'card': 'Proceed to the payment page to complete your repayment',
            'bank_transfer': 'Bank transfer submitted and awaiting approval',
        }
        return success_response(messages[data['payment_method']], data={
            'payment': PaymentSerializer(result['payment']).data,
            'loan': LoanSerializer(result['loan']).data,
            'total_repaid': result['total_repaid'],
            'remaining_amount': result['remaining_amount'],
            'payment_data': result['payment_data'],
        })

    @action(detail=True, methods=['get'])
    def schedule(self, request, pk=None):
        loan = self.get_object()
        return success_response(data=repayment_schedule(loan))

    @action(detail=True, methods=['get'])
    def repayments(self, request, pk=None):
        loan = self.get_object()
        page = self.paginate_queryset(loan.repayments.select_related('payment'))
        return self.get_paginated_response(LoanRepaymentSerializer(page, many=True).data)

    @action(detail=False, methods=['get'], url_path='repayment-history')
    def repayment_history(self, request):
        queryset = LoanRepayment.objects.filter(
            loan__member=request.user.member
        ).select_related('payment')
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(LoanRepaymentSerializer(page, many=True).data)

    @action(detail=False, methods=['get'], url_path='repayment-methods')
    def repayment_methods(self, request):
        return success_response(data=tenant_payment_service.get_loan_repayment_methods())


class AdminLoanViewSet(mixins.ListModelMixin,
                       mixins.RetrieveModelMixin,
                       mixins.DestroyModelMixin,
                       viewsets.GenericViewSet):
    """Loan administration"""
    permission_classes = [IsCooperativeAdmin]
    filterset_fields = ['status', 'type', 'product']
    ordering_fields = ['created_at', 'amount', 'application_date']

    def get_queryset(self):
        queryset = Loan.objects.select_related('product', 'member__user')
        search = self.request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(member__member_number__icontains=search) |
                Q(member__user__email__icontains=search) |
                Q(member__user__first_name__icontains=search) |
                Q(member__user__last_name__icontains=search) |
                Q(purpose__icontains=search)
            )
        return queryset

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return LoanDetailSerializer
        return LoanSerializer

    def destroy(self, request, *args, **kwargs):
        loan = self.get_object()
        try:
            loan_service.delete(loan)
        except LoanError as e:
            return loan_error_response(e)
        return success_response('Loan deleted successfully')

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        try:
            loan = loan_service.approve(self.get_object(), request.user)
        except LoanError as e:
            return loan_error_response(e)
        return success_response('Loan approved successfully', data=LoanSerializer(loan).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        serializer = LoanRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            loan = loan_service.reject(
                self.get_object(),
                request.user,
                serializer.validated_data['rejection_reason']
            )
        except LoanError as e:
            return loan_error_response(e)
        return success_response('Loan rejected', data=LoanSerializer(loan).data)

    @action(detail=True, methods=['post'])
    def disburse(self, request, pk=None):
        try:
            loan = loan_service.disburse(self.get_object(), request.user)
        except LoanError as e:
            return loan_error_response(e)
        return success_response('Loan disbursed successfully', data=LoanSerializer(loan).data)

    @action(detail=False, methods=['post'], url_path='record-repayment')
    def record_repayment(self, request):
        serializer = AdminRepaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            repayment, completed = repayment_service.record_by_admin(
                request.user,
                data['loan_id'],
                data['member_id'],
                data['amount'],
                data['payment_method'],
                principal=data.get('principal_paid'),
                interest=data.get('interest_paid'),
                paid_at=data.get('paid_at'),
                notes=data.get('notes', ''),
            )
        except LoanError as e:
            return loan_error_response(e)
        except Exception as e:
            return server_error_response(e, 'Failed to record repayment')

        return success_response(
            'Repayment recorded successfully',
            data={
                'repayment': LoanRepaymentSerializer(repayment).data,
                'loan_completed': completed,
            },
            status_code=status.HTTP_201_CREATED
        )
