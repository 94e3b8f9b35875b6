import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.core.mail import send_mail
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from .models import Setting, AuditLog, OneTimeCode, Plan, Distributor, ShippingAddress, PaymentMethod
from .serializers import (
    UserSerializer, UserCreateSerializer, RegisterSerializer, UserDetailsSerializer,
    ChangePasswordSerializer, VerifyOtpSerializer, SettingSerializer, AuditLogSerializer,
    PlanSerializer, DistributorSerializer, ShippingAddressSerializer, PaymentMethodSerializer
)
from .permissions import IsDashboardUser, IsPlatformAdmin
from .utils import create_audit_log, paginate, get_distributor_code
from .dashboard import build_dashboard_summary

logger = logging.getLogger(__name__)

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['user_type'] = user.user_type
        token['distributor_code'] = user.distributor_code
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that reports deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


def issue_tokens(user):
    token = CustomTokenObtainPairSerializer.get_token(user)
    return {'access': str(token.access_token), 'refresh': str(token)}


def send_otp_email(user, one_time_code):
    """E-mail a verification code; delivery failures are logged, not raised"""
    try:
        send_mail(
            subject='Your verification code',
            message=f"Hello {user.first_name or user.username},\n\nYour verification code is {one_time_code.code}. "
                    f"It expires in {settings.OTP_TTL_MINUTES} minutes.",
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
        )
    except Exception as e:
        logger.error(f"Failed to send verification code to {user.email}: {str(e)}")


def otp_payload(one_time_code):
    # Development clients complete the flow without a mailbox
    if settings.DEBUG:
        return {'otp': one_time_code.code}
    return {}


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """Register a storefront user and send a verification code"""
    serializer = RegisterSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        one_time_code = OneTimeCode.issue(user, purpose='registration')
        send_otp_email(user, one_time_code)
        logger.info(f"Registered user {user.username} ({user.user_type})")
        return Response({
            'user': UserSerializer(user).data,
            **issue_tokens(user),
            'message': 'Registration successful. Check your e-mail for the verification code.',
            **otp_payload(one_time_code),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([AllowAny])
def verify_otp(request):
    """Confirm a registration code"""
    serializer = VerifyOtpSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    user = User.objects.filter(email__iexact=serializer.validated_data['email']).first()
    if not user:
        return Response({'error': 'Invalid verification code.'}, status=status.HTTP_400_BAD_REQUEST)

    one_time_code = user.one_time_codes.filter(
        purpose='registration', code=serializer.validated_data['otp'], used_at__isnull=True
    ).first()
    if not one_time_code:
        return Response({'error': 'Invalid verification code.'}, status=status.HTTP_400_BAD_REQUEST)
    if not one_time_code.is_usable:
        return Response({'error': 'Verification code has expired.'}, status=status.HTTP_400_BAD_REQUEST)

    with transaction.atomic():
        one_time_code.used_at = timezone.now()
        one_time_code.save(update_fields=['used_at'])
        user.is_verified = True
        user.save(update_fields=['is_verified', 'updated_at'])

    return Response({
        'message': 'Account verified.',
        'user': UserSerializer(user).data,
        **issue_tokens(user),
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def resend_otp(request):
    """Issue a new registration code"""
    email = (request.data.get('email') or '').strip()
    if not email:
        return Response({'email': ['This field is required.']}, status=status.HTTP_400_BAD_REQUEST)
    user = User.objects.filter(email__iexact=email).first()
    if not user:
        return Response({'error': 'No account registered with this e-mail.'}, status=status.HTTP_404_NOT_FOUND)
    if user.is_verified:
        return Response({'error': 'Account is already verified.'}, status=status.HTTP_400_BAD_REQUEST)

    one_time_code = OneTimeCode.issue(user, purpose='registration')
    send_otp_email(user, one_time_code)
    return Response({'message': 'A new verification code was sent.', **otp_payload(one_time_code)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with access flags"""
    user = request.user
    user_data = UserSerializer(user).data
    user_data['is_admin'] = user.is_platform_admin
    user_data['can_access_dashboard'] = user.can_access_dashboard
    distributor = Distributor.objects.filter(distributor_code=user.distributor_code).first() if user.distributor_code else None
    user_data['distributor'] = DistributorSerializer(distributor).data if distributor else None
    return Response(user_data)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def user_details(request):
    """Update profile of the current user"""
    serializer = UserDetailsSerializer(request.user, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        return Response(UserSerializer(request.user).data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def user_type_update(request):
    """
    Switch the current user between client and distributor.
    Only the owner of a distributor profile may switch to distributor; the
    account takes that profile's distributor code.
    """
    user = request.user
    user_type = request.data.get('user_type')
    if user_type not in ('client', 'distributor'):
        return Response({'user_type': ['Must be "client" or "distributor".']}, status=status.HTTP_400_BAD_REQUEST)
    if user_type == 'distributor':
        distributor = user.distributors.order_by('id').first()
        if distributor is None:
            return Response({'user_type': ['Create a distributor profile first.']},
                            status=status.HTTP_400_BAD_REQUEST)
        user.distributor_code = distributor.distributor_code
    user.user_type = user_type
    user.save(update_fields=['user_type', 'distributor_code', 'updated_at'])
    return Response(UserSerializer(user).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password(request):
    serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    request.user.set_password(serializer.validated_data['new_password'])
    request.user.save()
    create_audit_log(request=request, action='password_change', model_name='User',
                     object_id=request.user.id, object_name=request.user.username)
    return Response({'message': 'Password updated.'})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_toggle(request):
    enabled = request.data.get('enabled')
    if not isinstance(enabled, bool):
        return Response({'enabled': ['Must be true or false.']}, status=status.HTTP_400_BAD_REQUEST)
    request.user.two_factor_enabled = enabled
    request.user.save(update_fields=['two_factor_enabled', 'updated_at'])
    return Response({'two_factor_enabled': enabled})


# Shipping address views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def address_list_create(request):
    """List or add shipping addresses of the current user"""
    if request.method == 'GET':
        serializer = ShippingAddressSerializer(request.user.shipping_addresses.all(), many=True)
        return Response(serializer.data)
    serializer = ShippingAddressSerializer(data=request.data)
    if serializer.is_valid():
        is_first = not request.user.shipping_addresses.exists()
        address = serializer.save(user=request.user, is_default=serializer.validated_data.get('is_default') or is_first)
        return Response(ShippingAddressSerializer(address).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def address_detail(request, pk):
    address = get_object_or_404(ShippingAddress, pk=pk, user=request.user)

    if request.method == 'GET':
        return Response(ShippingAddressSerializer(address).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ShippingAddressSerializer(address, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        address.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Payment method views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def payment_method_list_create(request):
    if request.method == 'GET':
        serializer = PaymentMethodSerializer(request.user.payment_methods.all(), many=True)
        return Response(serializer.data)
    serializer = PaymentMethodSerializer(data=request.data)
    if serializer.is_valid():
        is_first = not request.user.payment_methods.exists()
        method = serializer.save(user=request.user, is_default=serializer.validated_data.get('is_default') or is_first)
        return Response(PaymentMethodSerializer(method).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def payment_method_detail(request, pk):
    method = get_object_or_404(PaymentMethod, pk=pk, user=request.user)

    if request.method == 'GET':
        return Response(PaymentMethodSerializer(method).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = PaymentMethodSerializer(method, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        method.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Plan views
@api_view(['GET'])
@permission_classes([AllowAny])
def plan_list(request):
    plans = Plan.objects.filter(is_active=True)
    return Response(PlanSerializer(plans, many=True).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def plan_detail(request, pk):
    plan = get_object_or_404(Plan, pk=pk, is_active=True)
    return Response(PlanSerializer(plan).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def plan_select(request):
    """Attach a plan to the distributor owned by the current user"""
    plan = get_object_or_404(Plan, pk=request.data.get('plan_id'), is_active=True)
    distributor = Distributor.objects.filter(distributor_code=request.user.distributor_code).first() \
        if request.user.distributor_code else None
    if not distributor:
        return Response({'error': 'Create a distributor profile before selecting a plan.'},
                        status=status.HTTP_400_BAD_REQUEST)
    distributor.plan = plan
    distributor.save(update_fields=['plan', 'updated_at'])
    return Response(DistributorSerializer(distributor).data)


# Distributor views
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def distributor_create(request):
    """Create a distributor profile owned by the current user"""
    serializer = DistributorSerializer(data=request.data)
    if serializer.is_valid():
        with transaction.atomic():
            distributor = serializer.save(owner=request.user)
            request.user.user_type = 'distributor'
            request.user.distributor_code = distributor.distributor_code
            request.user.save(update_fields=['user_type', 'distributor_code', 'updated_at'])
        create_audit_log(request=request, action='create', model_name='Distributor',
                         object_id=distributor.id, object_name=distributor.business_name,
                         object_reference=distributor.distributor_code)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def distributor_by_email(request, email):
    distributor = get_object_or_404(Distributor, owner__email__iexact=email)
    if not request.user.is_platform_admin and distributor.owner_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    return Response(DistributorSerializer(distributor).data)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def distributor_update(request, pk):
    distributor = get_object_or_404(Distributor, pk=pk)
    if not request.user.is_platform_admin and distributor.owner_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = DistributorSerializer(distributor, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        user_type = request.query_params.get('user_type')
        if user_type:
            users = users.filter(user_type=user_type)
        return Response(paginate(request, users, UserSerializer))
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def setting_list_create(request):
    """List all settings or create a new setting"""
    if request.method == 'GET':
        settings_qs = Setting.objects.all().order_by('key')
        serializer = SettingSerializer(settings_qs, many=True)
        return Response(serializer.data)
    else:
        serializer = SettingSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsPlatformAdmin])
def setting_detail(request, pk):
    """Retrieve, update or delete a setting"""
    setting = get_object_or_404(Setting, pk=pk)

    if request.method == 'GET':
        serializer = SettingSerializer(setting)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if not request.user.is_platform_admin:
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action')
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model_name') or request.query_params.get('model')
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    user_filter = request.query_params.get('user')
    if user_filter:
        queryset = queryset.filter(user_id=user_filter)

    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at')
    return Response(paginate(request, queryset, AuditLogSerializer))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not request.user.is_platform_admin and audit_log.user != request.user:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def dashboard_summary(request):
    """Catalog, client, pricing and order counters for the admin home page"""
    code = get_distributor_code(request.user)
    summary = build_dashboard_summary(code if code else None)
    response = Response(summary)
    response['Cache-Control'] = 'private, max-age=60'
    return response
