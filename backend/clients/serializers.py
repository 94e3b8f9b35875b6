from rest_framework import serializers
from .models import Client

INFORMATION_FIELDS = [
    'companyCode', 'clientCode', 'distributorName', 'sellerId', 'salesmanName', 'routeId', 'routeName', 'pdv',
    'pdvname', 'visitDay', 'deliveryDay', 'frequency', 'paymentMethodCode', 'paymentTerm', 'priceList',
    'withCredit', 'warehouse',
]


class ClientSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    has_user = serializers.BooleanField(read_only=True)
    price_list_code = serializers.CharField(source='price_list.code', read_only=True, default=None)

    class Meta:
        model = Client
        fields = [
            'id', 'client_code', 'email', 'first_name', 'last_name', 'full_name', 'phone', 'phone_optional',
            'gender', 'document_type', 'document', 'customer_class', 'customer_class_two', 'customer_class_three',
            'customer_class_dist', 'customer_class_dist_two', 'latitude', 'longitude', 'status', 'has_user',
            'distributor_codes', 'information', 'price_list', 'price_list_code', 'is_verified', 'distributor_code',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['price_list', 'is_verified', 'distributor_code', 'created_at', 'updated_at']
        extra_kwargs = {'client_code': {'required': False, 'allow_blank': True}}

    def validate_email(self, value):
        value = value.strip().lower()
        distributor_code = self.context.get('distributor_code')
        if distributor_code is None:
            distributor_code = self.instance.distributor_code if self.instance else ''
        queryset = Client.objects.filter(email__iexact=value, distributor_code=distributor_code)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("A client with this email already exists.")
        return value

    def validate_client_code(self, value):
        value = (value or '').strip()
        if value:
            queryset = Client.objects.filter(client_code=value)
            if self.instance:
                queryset = queryset.exclude(pk=self.instance.pk)
            if queryset.exists():
                raise serializers.ValidationError("A client with this code already exists.")
        return value

    def validate_information(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Must be an object.")
        unknown = sorted(set(value) - set(INFORMATION_FIELDS))
        if unknown:
            raise serializers.ValidationError(f"Unknown fields: {', '.join(unknown)}.")
        return value

    def validate_distributor_codes(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Must be a list of distributor codes.")
        return [str(code).strip() for code in value if str(code).strip()]


class ClientStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Client.STATUS_CHOICES)


class ClientInvitationSerializer(serializers.Serializer):
    client_id = serializers.IntegerField(required=False)
    email = serializers.EmailField(required=False)

    def validate(self, attrs):
        if not attrs.get('client_id') and not attrs.get('email'):
            raise serializers.ValidationError("Send client_id or email.")
        return attrs
