from rest_framework import serializers
from decimal import Decimal
from .models import Category, Brand, Product, ProductImage, Favorite


class CategorySerializer(serializers.ModelSerializer):
    parent_name = serializers.CharField(source='parent.name', read_only=True, default=None)
    product_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'parent', 'parent_name', 'description', 'image_url', 'is_active',
                  'product_count', 'created_at', 'updated_at']
        read_only_fields = ['slug', 'created_at', 'updated_at']

    def validate_parent(self, value):
        if value and self.instance and value.pk == self.instance.pk:
            raise serializers.ValidationError("A category cannot be its own parent.")
        return value


class BrandSerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Brand
        fields = ['id', 'name', 'slug', 'description', 'logo_url', 'is_active', 'product_count',
                  'created_at', 'updated_at']
        read_only_fields = ['slug', 'created_at', 'updated_at']


class ProductImageSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True, default=None)

    class Meta:
        model = ProductImage
        fields = ['id', 'product', 'product_name', 'image_url', 'public_id', 'filename', 'is_primary',
                  'position', 'analysis', 'created_at']
        read_only_fields = ['analysis', 'created_at']

    def validate(self, attrs):
        if not attrs.get('filename') and attrs.get('image_url'):
            attrs['filename'] = attrs['image_url'].rstrip('/').split('/')[-1].split('?')[0]
        return attrs


class ProductListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for product lists"""
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    brand_name = serializers.CharField(source='brand.name', read_only=True, default=None)
    image_url = serializers.SerializerMethodField()
    unit_price = serializers.SerializerMethodField()
    in_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'product_code', 'sku', 'gtin', 'name', 'slug', 'category', 'category_name', 'brand',
                  'brand_name', 'status', 'published', 'featured', 'price', 'price_sale',
                  'discount_percentage', 'unit_price', 'stock_quantity', 'in_stock', 'image_url',
                  'mark_as_new', 'tags', 'updated_at']

    def get_image_url(self, obj):
        image = obj.primary_image
        return image.image_url if image else None

    def get_unit_price(self, obj):
        return str(obj.get_unit_price())


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    sub_category_name = serializers.CharField(source='sub_category.name', read_only=True, default=None)
    brand_name = serializers.CharField(source='brand.name', read_only=True, default=None)
    images = ProductImageSerializer(many=True, read_only=True)
    in_stock = serializers.BooleanField(read_only=True)
    is_favorite = serializers.SerializerMethodField()
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True)

    class Meta:
        model = Product
        fields = ['id', 'product_code', 'sku', 'gtin', 'name', 'title', 'slug', 'short_description',
                  'description', 'category', 'category_name', 'sub_category', 'sub_category_name', 'brand',
                  'brand_name', 'status', 'published', 'featured', 'price', 'price_sale',
                  'discount_percentage', 'tax', 'stock_quantity', 'track_inventory', 'in_stock', 'uom',
                  'weight', 'pack_size', 'pieces_per_case', 'mark_as_new', 'is_top_selling', 'vendor',
                  'supplier_code', 'tags', 'specifications', 'likes', 'images', 'is_favorite',
                  'distributor_code', 'created_at', 'updated_at']
        read_only_fields = ['slug', 'likes', 'distributor_code', 'created_at', 'updated_at']

    def get_is_favorite(self, obj):
        request = self.context.get('request')
        if not request or not request.user.is_authenticated:
            return False
        return Favorite.objects.filter(user=request.user, product=obj).exists()

    def validate_sku(self, value):
        value = (value or '').strip()
        if value:
            queryset = Product.objects.filter(sku=value)
            if self.instance:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError("A product with this SKU already exists.")
        return value

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Price cannot be negative.")
        return value

    def validate_discount_percentage(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError("Discount percentage must be between 0 and 100.")
        return value

    def validate_tags(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Tags must be a list.")
        return [str(tag).strip() for tag in value if str(tag).strip()]

    def validate(self, attrs):
        price = attrs.get('price', getattr(self.instance, 'price', Decimal('0.00')))
        price_sale = attrs.get('price_sale', getattr(self.instance, 'price_sale', None))
        if price_sale is not None and price_sale > price:
            raise serializers.ValidationError({"price_sale": "Sale price cannot be higher than the price."})
        sub_category = attrs.get('sub_category')
        category = attrs.get('category', getattr(self.instance, 'category', None))
        if sub_category and category and sub_category.parent_id and sub_category.parent_id != category.id:
            raise serializers.ValidationError({"sub_category": "Sub-category does not belong to the category."})
        return attrs


class FavoriteSerializer(serializers.ModelSerializer):
    product = ProductListSerializer(read_only=True)

    class Meta:
        model = Favorite
        fields = ['id', 'product', 'created_at']
