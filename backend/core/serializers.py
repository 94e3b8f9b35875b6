from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from django.db import transaction
from .models import User, Setting, AuditLog, Plan, Distributor, ShippingAddress, PaymentMethod
from backend.clients.models import Client


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone', 'user_type',
                  'distributor_code', 'is_verified', 'two_factor_enabled', 'gender', 'country',
                  'city', 'address', 'zip_code', 'is_active', 'is_staff', 'is_superuser',
                  'created_at', 'updated_at']
        read_only_fields = ['is_verified', 'created_at', 'updated_at']


class UserDetailsSerializer(serializers.ModelSerializer):
    """Profile fields a user may change about themselves"""
    class Meta:
        model = User
        fields = ['first_name', 'last_name', 'email', 'phone', 'gender', 'country', 'city',
                  'address', 'zip_code']


class UserCreateSerializer(serializers.ModelSerializer):
    username = serializers.CharField(required=False, allow_blank=True)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name',
                  'phone', 'user_type', 'distributor_code']

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value.lower()

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        username = attrs.get('username') or attrs['email']
        if User.objects.filter(username=username).exists():
            raise serializers.ValidationError({"username": "A user with that username already exists."})
        attrs['username'] = username
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class RegisterSerializer(UserCreateSerializer):
    """
    Self-service registration of storefront clients.

    Accounts become distributors only through a distributor profile. An
    invitation code (the client_code sent in the invitation link) links the
    account to that Client and to its distributor.
    """
    invitation_code = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta(UserCreateSerializer.Meta):
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name',
                  'phone', 'invitation_code']

    def validate(self, attrs):
        attrs = super().validate(attrs)
        code = (attrs.pop('invitation_code', '') or '').strip()
        if code:
            client = Client.objects.filter(client_code=code, email__iexact=attrs['email'],
                                           user__isnull=True).first()
            if client is None:
                raise serializers.ValidationError({"invitation_code": "This invitation is not valid for this e-mail."})
            attrs['invited_client'] = client
        return attrs

    def create(self, validated_data):
        client = validated_data.pop('invited_client', None)
        validated_data['user_type'] = 'client'
        if client is not None:
            validated_data['distributor_code'] = client.distributor_code
        with transaction.atomic():
            user = super().create(validated_data)
            if client is not None:
                client.user = user
                client.save(update_fields=['user', 'updated_at'])
        return user


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True)
    new_password_confirm = serializers.CharField(write_only=True)

    def validate_current_password(self, value):
        if not self.context['request'].user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate(self, attrs):
        if attrs['new_password'] != attrs['new_password_confirm']:
            raise serializers.ValidationError({"new_password": "Passwords don't match"})
        validate_password(attrs['new_password'], self.context['request'].user)
        return attrs


class VerifyOtpSerializer(serializers.Serializer):
    email = serializers.EmailField()
    otp = serializers.RegexField(r'^\d{6}$', error_messages={'invalid': 'The code must have 6 digits.'})


class SettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Setting
        fields = ['id', 'key', 'value', 'description', 'updated_at']


class AuditLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'username', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']


class PlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = Plan
        fields = ['id', 'name', 'display_name', 'description', 'price', 'currency', 'billing_cycle',
                  'features', 'limits', 'is_active']


class DistributorSerializer(serializers.ModelSerializer):
    owner_email = serializers.EmailField(source='owner.email', read_only=True, default=None)
    plan_name = serializers.CharField(source='plan.name', read_only=True, default=None)

    class Meta:
        model = Distributor
        fields = ['id', 'owner', 'owner_email', 'business_name', 'business_type', 'ruc',
                  'distributor_code', 'business_address', 'business_city', 'business_country',
                  'business_phone', 'business_email', 'website', 'description',
                  'years_in_business', 'number_of_employees', 'plan', 'plan_name', 'is_active',
                  'created_at', 'updated_at']
        read_only_fields = ['owner', 'created_at', 'updated_at']


class ShippingAddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShippingAddress
        fields = ['id', 'label', 'recipient_name', 'phone', 'address', 'city', 'country', 'zip_code',
                  'is_default', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class PaymentMethodSerializer(serializers.ModelSerializer):
    card_number = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = PaymentMethod
        fields = ['id', 'method_type', 'label', 'holder_name', 'card_number', 'last4',
                  'expiry_month', 'expiry_year', 'is_default', 'created_at', 'updated_at']
        read_only_fields = ['last4', 'created_at', 'updated_at']

    def validate_card_number(self, value):
        digits = ''.join(ch for ch in value if ch.isdigit())
        if value and not 12 <= len(digits) <= 19:
            raise serializers.ValidationError("Card number must have between 12 and 19 digits.")
        return digits

    def validate_expiry_month(self, value):
        if value is not None and not 1 <= value <= 12:
            raise serializers.ValidationError("Expiry month must be between 1 and 12.")
        return value

    def validate(self, attrs):
        method_type = attrs.get('method_type') or getattr(self.instance, 'method_type', None)
        card_number = attrs.get('card_number')
        if method_type in ('CREDIT_CARD', 'DEBIT_CARD') and not card_number and not getattr(self.instance, 'last4', ''):
            raise serializers.ValidationError({"card_number": "Card number is required for card payments."})
        return attrs

    def _apply_card_number(self, validated_data):
        card_number = validated_data.pop('card_number', None)
        if card_number:
            validated_data['last4'] = card_number[-4:]
        return validated_data

    def create(self, validated_data):
        return super().create(self._apply_card_number(validated_data))

    def update(self, instance, validated_data):
        return super().update(instance, self._apply_card_number(validated_data))
