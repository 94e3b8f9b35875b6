from rest_framework import serializers
from .models import Cart, CartItem, Order, OrderItem


class CartItemSerializer(serializers.ModelSerializer):
    product_id = serializers.IntegerField(source='product.id', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    sku = serializers.CharField(source='product.sku', read_only=True)
    image_url = serializers.SerializerMethodField()
    stock_quantity = serializers.IntegerField(source='product.stock_quantity', read_only=True)
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = ['id', 'product_id', 'product_name', 'sku', 'image_url', 'stock_quantity', 'quantity',
                  'unit_price', 'line_total', 'added_at']

    def get_image_url(self, obj):
        image = obj.product.primary_image
        return image.image_url if image else None


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    item_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Cart
        fields = ['id', 'items', 'total', 'item_count', 'updated_at']


class CartAddSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)


class CartUpdateSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=0)


class CartRemoveSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'product_name', 'sku', 'color', 'size', 'quantity', 'unit_price', 'discount',
                  'tax', 'line_total', 'supplier_code', 'supplier_name']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    client_name = serializers.CharField(source='client.full_name', read_only=True, default=None)
    customer_email = serializers.EmailField(source='user.email', read_only=True, default=None)
    coupon_code = serializers.CharField(source='coupon.code', read_only=True, default=None)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'user', 'customer_email', 'client', 'client_name', 'status', 'payment_type',
            'payment_status', 'transaction_id', 'shipping_method', 'shipping_fee', 'tracking_number',
            'estimated_delivery', 'shipping_address', 'subtotal', 'discount', 'tax', 'total', 'coupon_code',
            'coupon_discount', 'applied_discounts', 'notes', 'currency', 'distributor_code', 'item_count',
            'items', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_item_count(self, obj):
        return sum(item.quantity for item in obj.items.all())


class CheckoutSerializer(serializers.Serializer):
    payment_type = serializers.ChoiceField(choices=Order.PAYMENT_TYPE_CHOICES, default='CASH_ON_DELIVERY')
    shipping_method = serializers.CharField(max_length=50, required=False, allow_blank=True)
    shipping_address = serializers.DictField(required=False)
    shipping_address_id = serializers.IntegerField(required=False)
    coupon_code = serializers.CharField(max_length=50, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_shipping_address(self, value):
        missing = [field for field in ('address', 'city') if not value.get(field)]
        if missing:
            raise serializers.ValidationError(f"Missing fields: {', '.join(missing)}.")
        return value


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    estimated_delivery = serializers.DateField(required=False, allow_null=True)
