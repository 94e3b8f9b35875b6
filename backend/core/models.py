from django.contrib.auth.models import AbstractUser
from django.conf import settings
from django.db import models
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal
import secrets


class User(AbstractUser):
    """Extended user model for storefront clients, distributors and admins"""
    USER_TYPE_CHOICES = [
        ('client', 'Client'),
        ('distributor', 'Distributor'),
        ('admin', 'Admin'),
    ]

    GENDER_CHOICES = [
        ('M', 'Male'),
        ('F', 'Female'),
    ]

    phone = models.CharField(max_length=20, blank=True, null=True)
    user_type = models.CharField(max_length=20, choices=USER_TYPE_CHOICES, default='client', db_index=True)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True,
                                        help_text="Distributor this user belongs to (blank for platform admins)")
    is_verified = models.BooleanField(default=False)
    two_factor_enabled = models.BooleanField(default=False)
    gender = models.CharField(max_length=1, choices=GENDER_CHOICES, blank=True)
    country = models.CharField(max_length=100, blank=True)
    city = models.CharField(max_length=100, blank=True)
    address = models.CharField(max_length=255, blank=True)
    zip_code = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    @property
    def is_platform_admin(self):
        return self.is_superuser or self.is_staff or self.user_type == 'admin'

    @property
    def can_access_dashboard(self):
        # A distributor account only reaches the dashboard once it owns a distributor code
        return self.is_platform_admin or (self.user_type == 'distributor' and bool(self.distributor_code))


class OneTimeCode(models.Model):
    """One-time verification codes sent by e-mail"""
    PURPOSE_CHOICES = [
        ('registration', 'Registration'),
        ('login', 'Login'),
        ('password_reset', 'Password Reset'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='one_time_codes')
    code = models.CharField(max_length=6)
    purpose = models.CharField(max_length=20, choices=PURPOSE_CHOICES, default='registration')
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'one_time_codes'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user.username} ({self.purpose})"

    @property
    def is_usable(self):
        return self.used_at is None and self.expires_at > timezone.now()

    @classmethod
    def issue(cls, user, purpose='registration'):
        """Invalidate pending codes for the purpose and create a fresh one"""
        now = timezone.now()
        cls.objects.filter(user=user, purpose=purpose, used_at__isnull=True).update(used_at=now)
        return cls.objects.create(
            user=user,
            purpose=purpose,
            code=f"{secrets.randbelow(1000000):06d}",
            expires_at=now + timedelta(minutes=settings.OTP_TTL_MINUTES),
        )


class Plan(models.Model):
    """Subscription plans offered to distributors"""
    BILLING_CYCLE_CHOICES = [
        ('monthly', 'Monthly'),
        ('yearly', 'Yearly'),
    ]

    name = models.CharField(max_length=50, unique=True)
    display_name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='USD')
    billing_cycle = models.CharField(max_length=20, choices=BILLING_CYCLE_CHOICES, default='monthly')
    features = models.JSONField(default=list, blank=True)
    limits = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.display_name or self.name

    class Meta:
        db_table = 'plans'
        ordering = ['price']


class Distributor(models.Model):
    """Business account that owns a catalog, clients and price lists"""
    owner = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='distributors')
    business_name = models.CharField(max_length=200)
    business_type = models.CharField(max_length=100, blank=True)
    ruc = models.CharField(max_length=50, blank=True, help_text="Tax identification number")
    distributor_code = models.CharField(max_length=50, unique=True)
    business_address = models.CharField(max_length=255, blank=True)
    business_city = models.CharField(max_length=100, blank=True)
    business_country = models.CharField(max_length=100, blank=True)
    business_phone = models.CharField(max_length=20, blank=True)
    business_email = models.EmailField(blank=True)
    website = models.URLField(blank=True)
    description = models.TextField(blank=True)
    years_in_business = models.PositiveIntegerField(null=True, blank=True)
    number_of_employees = models.PositiveIntegerField(null=True, blank=True)
    plan = models.ForeignKey(Plan, on_delete=models.SET_NULL, null=True, blank=True, related_name='distributors')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.business_name

    class Meta:
        db_table = 'distributors'


class ShippingAddress(models.Model):
    """Saved delivery addresses of a user"""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='shipping_addresses')
    label = models.CharField(max_length=100, blank=True)
    recipient_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=20, blank=True)
    address = models.CharField(max_length=255)
    city = models.CharField(max_length=100)
    country = models.CharField(max_length=100, blank=True)
    zip_code = models.CharField(max_length=20, blank=True)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.label or self.address

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        if self.is_default:
            ShippingAddress.objects.filter(user=self.user, is_default=True).exclude(pk=self.pk).update(is_default=False)

    def as_dict(self):
        return {
            'recipient_name': self.recipient_name,
            'phone': self.phone,
            'address': self.address,
            'city': self.city,
            'country': self.country,
            'zip_code': self.zip_code,
        }

    class Meta:
        db_table = 'shipping_addresses'
        ordering = ['-is_default', '-created_at']


class PaymentMethod(models.Model):
    """Saved payment methods; only the last four digits of a card are kept"""
    METHOD_TYPE_CHOICES = [
        ('CREDIT_CARD', 'Credit Card'),
        ('DEBIT_CARD', 'Debit Card'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('CASH_ON_DELIVERY', 'Cash on Delivery'),
        ('PAYPAL', 'PayPal'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='payment_methods')
    method_type = models.CharField(max_length=20, choices=METHOD_TYPE_CHOICES)
    label = models.CharField(max_length=100, blank=True)
    holder_name = models.CharField(max_length=200, blank=True)
    last4 = models.CharField(max_length=4, blank=True)
    expiry_month = models.PositiveSmallIntegerField(null=True, blank=True)
    expiry_year = models.PositiveSmallIntegerField(null=True, blank=True)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        if self.last4:
            return f"{self.get_method_type_display()} ****{self.last4}"
        return self.get_method_type_display()

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        if self.is_default:
            PaymentMethod.objects.filter(user=self.user, is_default=True).exclude(pk=self.pk).update(is_default=False)

    class Meta:
        db_table = 'payment_methods'
        ordering = ['-is_default', '-created_at']


class Setting(models.Model):
    """System settings"""
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('view', 'View'),
        ('status_change', 'Status Change'),
        ('price_change', 'Price Change'),
        ('bulk_import', 'Bulk Import'),
        ('cart_add', 'Add to Cart'),
        ('cart_remove', 'Remove from Cart'),
        ('order_create', 'Order Created'),
        ('order_cancel', 'Order Cancelled'),
        ('order_status', 'Order Status Changed'),
        ('login', 'Login'),
        ('password_change', 'Password Change'),
        ('invitation_sent', 'Invitation Sent'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, order number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order number, price list code)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name'], name='idx_audit_model'),
            models.Index(fields=['object_reference'], name='idx_audit_reference'),
        ]
