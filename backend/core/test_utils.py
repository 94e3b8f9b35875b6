"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.core.models import Distributor, ShippingAddress
from backend.catalog.models import Category, Brand, Product
from backend.clients.models import Client
from backend.pricing.models import PriceList, Price, Discount, Coupon
from backend.orders.models import Order, OrderItem
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False,
                    user_type='client', distributor_code=''):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username.lower()}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser,
            user_type=user_type,
            distributor_code=distributor_code,
        )

    @staticmethod
    def create_admin(username=None):
        """Platform admin without a distributor: sees every distributor's rows"""
        return TestDataFactory.create_user(username=username, is_staff=True, user_type='admin')

    @staticmethod
    def create_distributor_user(distributor_code=None, username=None):
        """Distributor account together with its Distributor profile"""
        if not distributor_code:
            distributor_code = f'DIST{TestDataFactory.random_string(4).upper()}'
        user = TestDataFactory.create_user(username=username, user_type='distributor',
                                           distributor_code=distributor_code)
        Distributor.objects.create(owner=user, business_name=f'Business {distributor_code}',
                                   distributor_code=distributor_code)
        return user

    @staticmethod
    def create_address(user, is_default=True, city='Quito'):
        return ShippingAddress.objects.create(
            user=user,
            recipient_name=user.get_full_name() or user.username,
            address='Av. Amazonas 100',
            city=city,
            country='EC',
            is_default=is_default,
        )

    @staticmethod
    def create_category(name=None, parent=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name, parent=parent, description=f'Test category {name}')

    @staticmethod
    def create_brand(name=None):
        """Create a test brand"""
        if not name:
            name = f'Brand_{TestDataFactory.random_string(6)}'
        return Brand.objects.create(name=name, description=f'Test brand {name}')

    @staticmethod
    def create_product(name=None, sku=None, category=None, brand=None, price=None, stock_quantity=100,
                       track_inventory=True, tax=None, distributor_code='', **extra):
        """Create a published, active test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8)}'
        if not category:
            category = TestDataFactory.create_category()
        if not brand:
            brand = TestDataFactory.create_brand()
        return Product.objects.create(
            name=name,
            sku=sku,
            category=category,
            brand=brand,
            price=price if price is not None else Decimal('10.00'),
            tax=tax if tax is not None else Decimal('0.00'),
            stock_quantity=stock_quantity,
            track_inventory=track_inventory,
            distributor_code=distributor_code,
            **extra
        )

    @staticmethod
    def create_price_list(code=None, name=None, distributor_code='', **extra):
        if not code:
            code = f'PL-{TestDataFactory.random_string(6).upper()}'
        return PriceList.objects.create(code=code, name=name or f'List {code}',
                                        distributor_code=distributor_code, **extra)

    @staticmethod
    def create_price(price_list, product, base_price=None, code=None, **extra):
        if not code:
            code = f'PR-{TestDataFactory.random_string(6).upper()}'
        return Price.objects.create(
            code=code,
            name=f'Price {product.sku}',
            price_list=price_list,
            product=product,
            product_sku=product.sku,
            base_price=base_price if base_price is not None else Decimal('8.00'),
            distributor_code=price_list.distributor_code,
            **extra
        )

    @staticmethod
    def create_discount(template='', config=None, code=None, discount_type='percentage', value=None,
                        distributor_code='', **extra):
        if not code:
            code = f'DSC-{TestDataFactory.random_string(6).upper()}'
        return Discount.objects.create(
            code=code,
            name=f'Discount {code}',
            template=template,
            template_config=config or {},
            discount_type=discount_type,
            discount_value=value if value is not None else Decimal('10.00'),
            distributor_code=distributor_code,
            **extra
        )

    @staticmethod
    def create_coupon(code=None, discount_type='percentage', value=None, distributor_code='', **extra):
        if not code:
            code = f'CPN{TestDataFactory.random_string(6).upper()}'
        return Coupon.objects.create(
            code=code,
            discount_type=discount_type,
            value=value if value is not None else Decimal('10.00'),
            distributor_code=distributor_code,
            **extra
        )

    @staticmethod
    def create_client(email=None, distributor_code='', user=None, **extra):
        """Create a test client"""
        if not email:
            email = f'client_{TestDataFactory.random_string(6).lower()}@test.com'
        return Client.objects.create(
            email=email,
            first_name=extra.pop('first_name', 'Ana'),
            last_name=extra.pop('last_name', 'Torres'),
            phone=extra.pop('phone', f'09{random.randint(10000000, 99999999)}'),
            distributor_code=distributor_code,
            user=user,
            **extra
        )

    @staticmethod
    def create_order(user, products=None, status='PENDING', payment_type='CASH_ON_DELIVERY',
                     distributor_code='', quantity=1):
        """Create an order directly, without going through checkout"""
        products = products or [TestDataFactory.create_product(distributor_code=distributor_code)]
        order = Order.objects.create(
            user=user,
            status=status,
            payment_type=payment_type,
            distributor_code=distributor_code,
        )
        subtotal = Decimal('0.00')
        for product in products:
            line_total = product.price * quantity
            OrderItem.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                sku=product.sku,
                quantity=quantity,
                unit_price=product.price,
                line_total=line_total,
                supplier_code=product.supplier_code,
                supplier_name=product.vendor,
            )
            subtotal += line_total
        order.subtotal = subtotal
        order.total = subtotal
        order.save(update_fields=['subtotal', 'total'])
        return order


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
