from django.db import models
import uuid
from backend.core.models import User
from backend.pricing.models import PriceList


class Client(models.Model):
    """B2B customer of a distributor, optionally linked to a storefront account"""
    STATUS_CHOICES = [
        ('A', 'Active'),
        ('N', 'New'),
        ('I', 'Inactive'),
    ]

    GENDER_CHOICES = [
        ('M', 'Male'),
        ('F', 'Female'),
    ]

    client_code = models.CharField(max_length=50, unique=True, blank=True)
    email = models.EmailField()
    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150)
    phone = models.CharField(max_length=30)
    phone_optional = models.CharField(max_length=30, blank=True)
    gender = models.CharField(max_length=1, choices=GENDER_CHOICES, blank=True)
    document_type = models.CharField(max_length=20, blank=True)
    document = models.CharField(max_length=50, blank=True, db_index=True)
    customer_class = models.CharField(max_length=50, blank=True)
    customer_class_two = models.CharField(max_length=50, blank=True)
    customer_class_three = models.CharField(max_length=50, blank=True)
    customer_class_dist = models.CharField(max_length=50, blank=True)
    customer_class_dist_two = models.CharField(max_length=50, blank=True)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    status = models.CharField(max_length=1, choices=STATUS_CHOICES, default='A', db_index=True)
    user = models.OneToOneField(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='client')
    distributor_codes = models.JSONField(default=list, blank=True)
    information = models.JSONField(default=dict, blank=True,
                                   help_text="Route, seller, payment and price list details from the distributor ERP")
    price_list = models.ForeignKey(PriceList, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='clients')
    is_verified = models.BooleanField(default=False)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.full_name} ({self.client_code})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def has_user(self):
        return self.user_id is not None

    @staticmethod
    def generate_client_code():
        code = f"CLI-{str(uuid.uuid4())[:8].upper()}"
        while Client.objects.filter(client_code=code).exists():
            code = f"CLI-{str(uuid.uuid4())[:8].upper()}"
        return code

    def resolve_price_list(self):
        """Point price_list at the list named by information.priceList, when it exists"""
        code = str((self.information or {}).get('priceList') or '').strip()
        if not code:
            return
        queryset = PriceList.objects.filter(code=code)
        if self.distributor_code:
            queryset = queryset.filter(distributor_code__in=[self.distributor_code, ''])
        price_list = queryset.first()
        if price_list is not None:
            self.price_list = price_list

    def save(self, *args, **kwargs):
        if not self.client_code:
            self.client_code = self.generate_client_code()
        self.email = (self.email or '').strip().lower()
        self.resolve_price_list()
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'clients'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['distributor_code', 'email'], name='unique_client_email_per_distributor'),
        ]
        indexes = [
            models.Index(fields=['email'], name='idx_client_email'),
            models.Index(fields=['customer_class'], name='idx_client_class'),
        ]
