from rest_framework import serializers
from django.conf import settings
from .models import PriceList, Price, Discount, Coupon
from .templates import TEMPLATES_BY_ID


def _validate_currency(value):
    value = (value or '').upper()
    if value not in [currency.upper() for currency in settings.SUPPORTED_CURRENCIES]:
        raise serializers.ValidationError(f"Unsupported currency. Use one of {', '.join(settings.SUPPORTED_CURRENCIES)}.")
    return value


class PriceListSerializer(serializers.ModelSerializer):
    price_count = serializers.IntegerField(source='prices.count', read_only=True)

    class Meta:
        model = PriceList
        fields = [
            'id', 'code', 'name', 'description', 'currency', 'country', 'region', 'customer_type', 'channel',
            'applies_to', 'status', 'is_default', 'priority', 'discount_type', 'start_date', 'end_date',
            'minimum_quantity', 'maximum_quantity', 'tags', 'notes', 'distributor_code', 'price_count',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['distributor_code', 'created_at', 'updated_at']

    def validate_currency(self, value):
        return _validate_currency(value)

    def validate(self, attrs):
        start_date = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end_date = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({"end_date": "End date must be after the start date."})
        minimum = attrs.get('minimum_quantity', getattr(self.instance, 'minimum_quantity', None))
        maximum = attrs.get('maximum_quantity', getattr(self.instance, 'maximum_quantity', None))
        if minimum is not None and maximum is not None and maximum < minimum:
            raise serializers.ValidationError({"maximum_quantity": "Must be greater than the minimum quantity."})
        return attrs


class PriceSerializer(serializers.ModelSerializer):
    price_list_code = serializers.CharField(source='price_list.code', read_only=True, default=None)
    effective_price = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Price
        fields = [
            'id', 'code', 'name', 'price_list', 'price_list_code', 'product', 'product_sku', 'product_name',
            'base_price', 'sale_price', 'discount_price', 'wholesale_price', 'retail_price', 'loyalty_price',
            'corporate_price', 'cost_price', 'competitor_price', 'effective_price', 'currency', 'valid_from',
            'valid_until', 'min_quantity', 'max_quantity', 'price_type', 'customer_type', 'channel', 'region',
            'city', 'zone', 'status', 'priority', 'tax_included', 'tax_rate', 'margin', 'market_position',
            'custom_fields', 'tags', 'notes', 'distributor_code', 'created_at', 'updated_at'
        ]
        read_only_fields = ['product', 'distributor_code', 'created_at', 'updated_at']

    def validate_currency(self, value):
        return _validate_currency(value)

    def validate_base_price(self, value):
        if value <= 0:
            raise serializers.ValidationError("Base price must be greater than 0.")
        return value

    def validate_tax_rate(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError("Tax rate must be between 0 and 100.")
        return value

    def validate(self, attrs):
        def current(field):
            return attrs.get(field, getattr(self.instance, field, None))

        base_price = current('base_price')
        errors = {}
        for field in ('sale_price', 'discount_price'):
            value = current(field)
            if base_price is not None and value is not None and value > base_price:
                errors[field] = "Cannot be higher than the base price."
        cost_price = current('cost_price')
        if base_price is not None and cost_price is not None and cost_price >= base_price:
            errors['cost_price'] = "Must be lower than the base price."
        valid_from, valid_until = current('valid_from'), current('valid_until')
        if valid_from and valid_until and valid_until <= valid_from:
            errors['valid_until'] = "Must be after valid_from."
        min_quantity, max_quantity = current('min_quantity'), current('max_quantity')
        if min_quantity is not None and max_quantity is not None and max_quantity <= min_quantity:
            errors['max_quantity'] = "Must be greater than min_quantity."
        if errors:
            raise serializers.ValidationError(errors)
        return attrs


class DiscountSerializer(serializers.ModelSerializer):
    is_current = serializers.SerializerMethodField()
    template_name = serializers.SerializerMethodField()

    class Meta:
        model = Discount
        fields = [
            'id', 'code', 'name', 'description', 'discount_type', 'template', 'template_name', 'discount_value',
            'currency', 'valid_from', 'valid_to', 'status', 'priority', 'is_cumulative', 'max_discount_amount',
            'min_purchase_amount', 'usage_limit', 'usage_limit_per_customer', 'times_used', 'customer_type',
            'channel', 'region', 'conditions', 'applicable_to', 'template_config', 'tags', 'notes',
            'distributor_code', 'is_current', 'created_at', 'updated_at'
        ]
        read_only_fields = ['times_used', 'distributor_code', 'created_at', 'updated_at']

    def get_is_current(self, obj):
        return obj.is_current()

    def get_template_name(self, obj):
        template = TEMPLATES_BY_ID.get(obj.template)
        return template['name'] if template else None

    def validate_currency(self, value):
        return _validate_currency(value)

    def validate_applicable_to(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Must be a list of {type, value} objects.")
        for rule in value:
            if not isinstance(rule, dict) or rule.get('type') not in ('category', 'product', 'brand', 'tag', 'all_products'):
                raise serializers.ValidationError("Each rule needs a type: category, product, brand, tag or all_products.")
        return value

    def validate(self, attrs):
        discount_type = attrs.get('discount_type', getattr(self.instance, 'discount_type', 'percentage'))
        value = attrs.get('discount_value', getattr(self.instance, 'discount_value', None))
        template = attrs.get('template', getattr(self.instance, 'template', ''))
        if value is not None:
            if value < 0 or (value == 0 and template != 'free_shipping'):
                raise serializers.ValidationError({"discount_value": "Must be greater than 0."})
            if discount_type in ('percentage', 'tiered_percentage', 'progressive_percentage') and value > 100:
                raise serializers.ValidationError({"discount_value": "A percentage cannot exceed 100."})
        valid_from = attrs.get('valid_from', getattr(self.instance, 'valid_from', None))
        valid_to = attrs.get('valid_to', getattr(self.instance, 'valid_to', None))
        if valid_from and valid_to and valid_to <= valid_from:
            raise serializers.ValidationError({"valid_to": "Must be after valid_from."})
        return attrs


class DiscountFromTemplateSerializer(serializers.Serializer):
    template = serializers.ChoiceField(choices=[choice for choice, _ in Discount.TEMPLATE_CHOICES])
    config = serializers.DictField()
    code = serializers.CharField(max_length=100, required=False, allow_blank=True)
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)
    valid_from = serializers.DateTimeField(required=False, allow_null=True)
    valid_to = serializers.DateTimeField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=['active', 'inactive', 'draft'], default='active')
    priority = serializers.IntegerField(required=False, default=0)
    is_cumulative = serializers.BooleanField(required=False, default=False)
    max_discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    usage_limit = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    customer_type = serializers.CharField(required=False, default='all')
    channel = serializers.CharField(required=False, default='all')
    applicable_to = serializers.ListField(child=serializers.DictField(), required=False, default=list)


class CouponSerializer(serializers.ModelSerializer):
    discount_name = serializers.CharField(source='discount.name', read_only=True, default=None)

    class Meta:
        model = Coupon
        fields = [
            'id', 'code', 'discount', 'discount_name', 'description', 'discount_type', 'value',
            'min_purchase_amount', 'usage_limit', 'times_used', 'valid_from', 'valid_to', 'is_active',
            'distributor_code', 'created_at', 'updated_at'
        ]
        read_only_fields = ['times_used', 'distributor_code', 'created_at', 'updated_at']

    def validate_code(self, value):
        value = value.strip().upper()
        queryset = Coupon.objects.filter(code=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("A coupon with this code already exists.")
        return value

    def validate(self, attrs):
        discount_type = attrs.get('discount_type', getattr(self.instance, 'discount_type', 'percentage'))
        value = attrs.get('value', getattr(self.instance, 'value', None))
        if value is not None:
            if value <= 0:
                raise serializers.ValidationError({"value": "Must be greater than 0."})
            if discount_type == 'percentage' and value > 100:
                raise serializers.ValidationError({"value": "A percentage cannot exceed 100."})
        return attrs


class PriceCalculationRequestSerializer(serializers.Serializer):
    base_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False)
    quantity = serializers.IntegerField(min_value=1)
    product_id = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if attrs.get('base_price') is None and not attrs.get('product_id'):
            raise serializers.ValidationError("Send base_price or product_id.")
        return attrs


class CartLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, required=False)


class CouponValidateSerializer(serializers.Serializer):
    code = serializers.CharField()
    subtotal = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
