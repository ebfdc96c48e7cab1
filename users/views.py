# users/views.py
import logging
from django.utils import timezone
from rest_framework import generics, serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from core.responses import error_response, server_error_response, success_response
from tenants.context import tenant_atomic
from users.models import User, Member
from users.permissions import IsCooperativeAdmin
from users.serializers import (
    CustomTokenObtainPairSerializer, KYCReviewSerializer, MemberSerializer,
    MemberStatusSerializer, UserProfileSerializer, UserRegistrationSerializer,
    UserSerializer
)

logger = logging.getLogger(__name__)


def issue_tokens(user):
    refresh = RefreshToken.for_user(user)
    return {'refresh': str(refresh), 'access': str(refresh.access_token)}


class UserRegistrationView(generics.CreateAPIView):
    """Member self-registration; the member record and wallet come from signals"""
    queryset = User.objects.all()
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        try:
            serializer.is_valid(raise_exception=True)
            with tenant_atomic():
                user = serializer.save()
        except serializers.ValidationError as e:
            logger.info(f"Registration rejected for {request.data.get('email')}: {e.detail}")
            return error_response(
                'Please correct the errors and try again.',
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                errors=e.detail
            )
        except Exception as e:
            return server_error_response(e, 'Registration failed')

        logger.info(f"Member registered: {user.member.member_number} ({user.email})")
        return success_response('Registration successful', {
            'user': UserSerializer(user).data,
            'member': MemberSerializer(user.member).data,
            'tokens': issue_tokens(user),
        }, status_code=status.HTTP_201_CREATED)


class CustomLoginView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer
    permission_classes = [AllowAny]


class UserProfileView(generics.RetrieveUpdateAPIView):
    """The authenticated user's profile and member record"""
    serializer_class = UserProfileSerializer
    permission_classes = [IsAuthenticated]

    def get_object(self):
        return self.request.user

    def retrieve(self, request, *args, **kwargs):
        return success_response(data=self.get_serializer(request.user).data)

    def update(self, request, *args, **kwargs):
        serializer = self.get_serializer(
            request.user, data=request.data, partial=kwargs.pop('partial', False)
        )
        if not serializer.is_valid():
            return error_response(
                'Failed to update profile',
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                errors=serializer.errors
            )
        with tenant_atomic():
            serializer.save()
        return success_response('Profile updated', serializer.data)


class UserLogoutView(APIView):
    """Blacklist the refresh token"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        raw = request.data.get('refresh_token')
        if raw:
            try:
                RefreshToken(raw).blacklist()
            except TokenError as e:
                logger.info(f"Logout with unusable refresh token for {request.user.email}: {e}")
        return success_response('Logged out')


class MemberViewSet(viewsets.ReadOnlyModelViewSet):
    """Admin review of members: KYC decisions and account status"""
    serializer_class = MemberSerializer
    permission_classes = [IsCooperativeAdmin]
    filterset_fields = ['kyc_status', 'status']
    search_fields = ['member_number', 'user__email', 'user__first_name', 'user__last_name']

    def get_queryset(self):
        return Member.objects.select_related('user')

    def _saved(self, member, message, *fields):
        member.save(update_fields=[*fields, 'updated_at'])
        logger.info(f"{message}: {member.member_number} by {self.request.user.email}")
        return success_response(message, MemberSerializer(member).data)

    @action(detail=True, methods=['post'], url_path='verify-kyc')
    def verify_kyc(self, request, pk=None):
        member = self.get_object()
        if member.is_kyc_verified:
            return error_response('KYC is already verified')

        member.kyc_status = 'verified'
        member.kyc_verified_at = timezone.now()
        return self._saved(member, 'KYC verified', 'kyc_status', 'kyc_verified_at')

    @action(detail=True, methods=['post'], url_path='reject-kyc')
    def reject_kyc(self, request, pk=None):
        member = self.get_object()
        serializer = KYCReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        member.kyc_status = 'rejected'
        member.kyc_verified_at = None
        if serializer.validated_data.get('reason'):
            logger.info(f"KYC rejection reason for {member.member_number}: {serializer.validated_data['reason']}")
        return self._saved(member, 'KYC rejected', 'kyc_status', 'kyc_verified_at')

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        member = self.get_object()
        serializer = MemberStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        member.status = serializer.validated_data['status']
        return self._saved(member, f'Member status set to {member.status}', 'status')
