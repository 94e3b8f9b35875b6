from django.conf import settings
from django.db import models
from django.utils.text import slugify
from decimal import Decimal


class Category(models.Model):
    """Product categories; a category with a parent is a sub-category"""
    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=220, unique=True, blank=True)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')
    description = models.TextField(blank=True)
    image_url = models.URLField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(Category, self.name, self.parent.slug if self.parent_id else '')
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'Categories'
        ordering = ['name']


class Brand(models.Model):
    """Product brands"""
    name = models.CharField(max_length=200, unique=True)
    slug = models.SlugField(max_length=220, unique=True, blank=True)
    description = models.TextField(blank=True)
    logo_url = models.URLField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(Brand, self.name)
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'brands'
        ordering = ['name']


def unique_slug(model, name, prefix=''):
    base = slugify(f"{prefix} {name}".strip()) or 'item'
    slug = base
    counter = 2
    while model.objects.filter(slug=slug).exists():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


# Product statuses shown on the storefront
STOREFRONT_STATUSES = ('active', 'new')


class Product(models.Model):
    """Sellable catalog product"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('draft', 'Draft'),
        ('new', 'New'),
    ]

    product_code = models.CharField(max_length=100, blank=True, db_index=True,
                                    help_text="External product identifier used by imports")
    sku = models.CharField(max_length=100, unique=True, db_index=True)
    gtin = models.CharField(max_length=50, blank=True, db_index=True)
    name = models.CharField(max_length=255, db_index=True)
    title = models.CharField(max_length=255, blank=True)
    slug = models.SlugField(max_length=280, blank=True)
    short_description = models.CharField(max_length=500, blank=True)
    description = models.TextField(blank=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    sub_category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='sub_category_products')
    brand = models.ForeignKey(Brand, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    published = models.BooleanField(default=True)
    featured = models.BooleanField(default=False, db_index=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    price_sale = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'),
                              help_text="Tax rate in percent, e.g. 19.00")
    stock_quantity = models.IntegerField(default=0)
    track_inventory = models.BooleanField(default=True)
    uom = models.CharField(max_length=20, blank=True, help_text="Unit of measure")
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    pack_size = models.CharField(max_length=50, blank=True)
    pieces_per_case = models.PositiveIntegerField(null=True, blank=True)
    mark_as_new = models.BooleanField(default=False)
    is_top_selling = models.BooleanField(default=False)
    vendor = models.CharField(max_length=200, blank=True)
    supplier_code = models.CharField(max_length=100, blank=True)
    tags = models.JSONField(default=list, blank=True)
    specifications = models.JSONField(default=dict, blank=True)
    likes = models.PositiveIntegerField(default=0)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.sku:
            from .utils import generate_unique_sku
            self.sku = generate_unique_sku(self.name)
        if not self.slug:
            self.slug = slugify(self.name)[:280]
        super().save(*args, **kwargs)

    @property
    def primary_image(self):
        images = list(self.images.all())
        for image in images:
            if image.is_primary:
                return image
        return images[0] if images else None

    @property
    def in_stock(self):
        return not self.track_inventory or self.stock_quantity > 0

    def get_unit_price(self):
        """Sale price when set and lower than the list price"""
        if self.price_sale and Decimal('0') < self.price_sale < self.price:
            return self.price_sale
        return self.price

    class Meta:
        db_table = 'products'
        indexes = [
            models.Index(fields=['status', 'published'], name='idx_product_status_pub'),
            models.Index(fields=['-updated_at'], name='idx_product_updated'),
        ]


class ProductImage(models.Model):
    """Image gallery entry; product is null until the image is assigned"""
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='images')
    image_url = models.URLField(max_length=500)
    public_id = models.CharField(max_length=255, blank=True)
    filename = models.CharField(max_length=255, blank=True)
    is_primary = models.BooleanField(default=False)
    position = models.PositiveIntegerField(default=0)
    analysis = models.JSONField(default=dict, blank=True)
    distributor_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.filename or self.image_url

    class Meta:
        db_table = 'product_images'
        ordering = ['position', 'id']


class Favorite(models.Model):
    """Products a user marked as favorite"""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='favorites')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='favorited_by')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'favorites'
        unique_together = [['user', 'product']]
        ordering = ['-created_at']
