# users/serializers.py
from django.utils import timezone
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from users.models import User, Member


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'username', 'first_name', 'last_name',
                  'phone_number', 'role', 'created_at']
        read_only_fields = ['id', 'role', 'created_at']


class MemberSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = Member
        fields = ['id', 'user', 'member_number', 'kyc_status', 'status',
                  'estimated_monthly_income', 'kyc_verified_at', 'created_at']
        read_only_fields = ['id', 'member_number', 'kyc_status', 'status',
                            'kyc_verified_at', 'created_at']


class UserProfileSerializer(serializers.ModelSerializer):
    member = MemberSerializer(read_only=True)
    estimated_monthly_income = serializers.DecimalField(
        max_digits=20, decimal_places=2, required=False, write_only=True
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'username', 'first_name', 'last_name',
                  'phone_number', 'role', 'member', 'estimated_monthly_income']
        read_only_fields = ['id', 'email', 'username', 'role']

    def update(self, instance, validated_data):
        income = validated_data.pop('estimated_monthly_income', None)
        instance = super().update(instance, validated_data)
        if income is not None and hasattr(instance, 'member'):
            instance.member.estimated_monthly_income = income
            instance.member.save(update_fields=['estimated_monthly_income', 'updated_at'])
        return instance


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """JWT serializer that accepts username or email"""
    username_field = 'login'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['login'] = serializers.CharField()
        self.fields.pop('username', None)
        self.fields.pop('email', None)

    def validate(self, attrs):
        login = attrs.get('login', '')
        password = attrs.get('password')

        lookup = {'email__iexact': login} if '@' in login else {'username': login}
        user = User.objects.filter(**lookup).first()

        if user is None:
            raise serializers.ValidationError('No account found with these credentials')
        if not user.check_password(password):
            raise serializers.ValidationError('Invalid credentials')
        if not user.is_active:
            raise serializers.ValidationError('User account is disabled')

        refresh = self.get_token(user)

        user.last_login = timezone.now()
        user.save(update_fields=['last_login'])

        return {
            'success': True,
            'user': UserSerializer(user).data,
            'tokens': {
                'refresh': str(refresh),
                'access': str(refresh.access_token),
            },
        }


class UserRegistrationSerializer(serializers.ModelSerializer):
    password = serializers.CharField(
        write_only=True,
        validators=[validate_password],
        style={'input_type': 'password'}
    )
    password_confirmation = serializers.CharField(
        write_only=True,
        style={'input_type': 'password'}
    )
    estimated_monthly_income = serializers.DecimalField(
        max_digits=20, decimal_places=2, required=False, write_only=True
    )

    class Meta:
        model = User
        fields = [
            'id', 'username', 'email', 'password', 'password_confirmation',
            'first_name', 'last_name', 'phone_number', 'estimated_monthly_income'
        ]
        read_only_fields = ['id']
        extra_kwargs = {
            'email': {'required': True},
            'username': {'required': True},
            'first_name': {'required': True},
            'last_name': {'required': False},
        }

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('A user with this email already exists')
        return value.lower()

    def validate(self, attrs):
        if attrs['password'] != attrs.pop('password_confirmation'):
            raise serializers.ValidationError({'password_confirmation': 'Passwords do not match'})
        return attrs

    def create(self, validated_data):
        income = validated_data.pop('estimated_monthly_income', None)
        password = validated_data.pop('password')
        user = User.objects.create_user(password=password, role='member', **validated_data)
        if income is not None:
            user.member.estimated_monthly_income = income
            user.member.save(update_fields=['estimated_monthly_income'])
        return user


class KYCReviewSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500)


class MemberStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Member.STATUS_CHOICES)
