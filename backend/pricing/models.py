from django.db import models
from django.db.models import Q
from django.utils import timezone
from decimal import Decimal
from backend.catalog.models import Product
from .calculator import matches_rules, product_match_keys

STATUS_CHOICES = [
    ('active', 'Active'),
    ('inactive', 'Inactive'),
    ('draft', 'Draft'),
]


class PriceList(models.Model):
    """Price lists for customer types, channels and regions"""
    code = models.CharField(max_length=100, unique=True, help_text="External price list identifier")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    currency = models.CharField(max_length=3, default='USD')
    country = models.CharField(max_length=100, blank=True)
    region = models.CharField(max_length=100, blank=True)
    customer_type = models.CharField(max_length=50, blank=True, default='all')
    channel = models.CharField(max_length=50, blank=True, default='all')
    applies_to = models.CharField(max_length=50, default='all')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    is_default = models.BooleanField(default=False)
    priority = models.IntegerField(default=0)
    discount_type = models.CharField(max_length=50, blank=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    minimum_quantity = models.PositiveIntegerField(null=True, blank=True)
    maximum_quantity = models.PositiveIntegerField(null=True, blank=True)
    tags = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        if self.is_default:
            PriceList.objects.filter(distributor_code=self.distributor_code, is_default=True) \
                .exclude(pk=self.pk).update(is_default=False)

    def is_current(self, today=None):
        today = today or timezone.localdate()
        if self.status != 'active':
            return False
        if self.start_date and self.start_date > today:
            return False
        if self.end_date and self.end_date < today:
            return False
        return True

    class Meta:
        db_table = 'price_lists'
        ordering = ['-priority', 'name']


class Price(models.Model):
    """Price of a product inside a price list"""
    PRICE_TYPE_CHOICES = [
        ('regular', 'Regular'),
        ('promotional', 'Promotional'),
        ('seasonal', 'Seasonal'),
    ]

    MARKET_POSITION_CHOICES = [
        ('above_market', 'Above Market'),
        ('competitive', 'Competitive'),
        ('below_market', 'Below Market'),
    ]

    code = models.CharField(max_length=100, unique=True, help_text="External price identifier")
    name = models.CharField(max_length=200)
    price_list = models.ForeignKey(PriceList, on_delete=models.CASCADE, related_name='prices', null=True, blank=True)
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, related_name='prices', null=True, blank=True)
    product_sku = models.CharField(max_length=100, db_index=True)
    product_name = models.CharField(max_length=255, blank=True)
    base_price = models.DecimalField(max_digits=14, decimal_places=2)
    sale_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    discount_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    wholesale_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    retail_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    loyalty_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    corporate_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    cost_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    competitor_price = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default='USD')
    valid_from = models.DateField(null=True, blank=True)
    valid_until = models.DateField(null=True, blank=True)
    min_quantity = models.PositiveIntegerField(default=1)
    max_quantity = models.PositiveIntegerField(default=1000)
    price_type = models.CharField(max_length=20, choices=PRICE_TYPE_CHOICES, default='regular')
    customer_type = models.CharField(max_length=50, default='all')
    channel = models.CharField(max_length=50, default='omnichannel')
    region = models.CharField(max_length=100, blank=True)
    city = models.CharField(max_length=100, blank=True)
    zone = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    priority = models.IntegerField(default=1)
    tax_included = models.BooleanField(default=True)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('19.00'))
    margin = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    market_position = models.CharField(max_length=20, choices=MARKET_POSITION_CHOICES, blank=True)
    custom_fields = models.JSONField(default=dict, blank=True)
    tags = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.product_sku})"

    def save(self, *args, **kwargs):
        if not self.product_id and self.product_sku:
            self.product = Product.objects.filter(sku=self.product_sku).first()
        super().save(*args, **kwargs)

    @property
    def effective_price(self):
        """Lowest of base, sale and discount price"""
        candidates = [self.base_price] + [p for p in (self.sale_price, self.discount_price) if p is not None and p > 0]
        return min(candidates)

    class Meta:
        db_table = 'prices'
        ordering = ['priority', 'id']
        indexes = [
            models.Index(fields=['price_list', 'product'], name='idx_price_list_product'),
        ]


class Discount(models.Model):
    """Discount rule; template + template_config describe how it applies to a cart"""
    DISCOUNT_TYPE_CHOICES = [
        ('percentage', 'Percentage'),
        ('fixed_amount', 'Fixed Amount'),
        ('tiered_percentage', 'Tiered Percentage'),
        ('progressive_percentage', 'Progressive Percentage'),
        ('bogo', 'Buy One Get One'),
    ]

    TEMPLATE_CHOICES = [
        ('buy_x_get_y', 'Buy X Get Y'),
        ('tiered_volume', 'Tiered Volume'),
        ('bundle', 'Bundle'),
        ('bogo', 'Buy One Get One'),
        ('spend_threshold', 'Spend Threshold'),
        ('mix_and_match', 'Mix and Match'),
        ('flash_sale', 'Flash Sale'),
        ('loyalty_vip', 'Loyalty VIP'),
        ('welcome', 'Welcome'),
        ('seasonal', 'Seasonal'),
        ('free_shipping', 'Free Shipping'),
        ('clearance', 'Clearance'),
    ]

    code = models.CharField(max_length=100, unique=True, help_text="External discount identifier")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    discount_type = models.CharField(max_length=30, choices=DISCOUNT_TYPE_CHOICES, default='percentage')
    template = models.CharField(max_length=30, choices=TEMPLATE_CHOICES, blank=True, db_index=True)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='USD')
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_to = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    priority = models.IntegerField(default=0)
    is_cumulative = models.BooleanField(default=False)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    min_purchase_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_limit_per_customer = models.PositiveIntegerField(null=True, blank=True)
    times_used = models.PositiveIntegerField(default=0)
    customer_type = models.CharField(max_length=50, default='all')
    channel = models.CharField(max_length=50, default='all')
    region = models.CharField(max_length=100, blank=True)
    conditions = models.JSONField(default=dict, blank=True)
    applicable_to = models.JSONField(default=list, blank=True,
                                     help_text='[{"type": "category|product|brand|tag|all_products", "value": ...}]')
    template_config = models.JSONField(default=dict, blank=True)
    tags = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @property
    def is_exhausted(self):
        return self.usage_limit is not None and self.times_used >= self.usage_limit

    def is_current(self, now=None):
        now = now or timezone.now()
        if self.status != 'active' or self.is_exhausted:
            return False
        if self.valid_from and self.valid_from > now:
            return False
        if self.valid_to and self.valid_to < now:
            return False
        return True

    def applies_to_product(self, product):
        """True when applicable_to is empty, targets all products, or names the product, its category, brand or a tag"""
        return matches_rules(self.applicable_to or [], product_match_keys(product))

    @classmethod
    def current(cls, now=None):
        now = now or timezone.now()
        return cls.objects.filter(status='active').filter(
            Q(valid_from__isnull=True) | Q(valid_from__lte=now),
            Q(valid_to__isnull=True) | Q(valid_to__gte=now),
        )

    class Meta:
        db_table = 'discounts'
        ordering = ['-priority', 'name']


class Coupon(models.Model):
    """Coupon codes redeemed at checkout"""
    DISCOUNT_TYPE_CHOICES = [
        ('percentage', 'Percentage'),
        ('fixed_amount', 'Fixed Amount'),
    ]

    code = models.CharField(max_length=50, unique=True)
    discount = models.ForeignKey(Discount, on_delete=models.SET_NULL, null=True, blank=True, related_name='coupons')
    description = models.CharField(max_length=255, blank=True)
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES, default='percentage')
    value = models.DecimalField(max_digits=12, decimal_places=2)
    min_purchase_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    times_used = models.PositiveIntegerField(default=0)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_to = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.code

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'coupons'
