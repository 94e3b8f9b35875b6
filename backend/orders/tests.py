"""
Test suite for the orders module
Tests: cart operations, checkout totals, discounts and coupons at checkout,
order status life cycle, admin order listing, filters and statistics
"""
from decimal import Decimal
from unittest import mock
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status
from backend.core.exceptions import DomainError, InsufficientStock, InvalidTransition
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.catalog.models import Product
from backend.orders import services
from backend.orders.models import Cart, CartItem, Order
from backend.pricing.models import Coupon, Discount
from backend.pricing.services import get_active_discounts


class CartTests(TestCase):
    def setUp(self):
        cache.clear()
        self.shopper = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(price=Decimal('10.00'), stock_quantity=5)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.shopper)

    def add(self, product_id, quantity=1):
        return self.client.post('/api/v1/cart/add/', {'product_id': product_id, 'quantity': quantity},
                                format='json')

    def test_empty_cart(self):
        response = self.client.get('/api/v1/cart/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'], [])
        self.assertEqual(response.data['item_count'], 0)
        self.assertEqual(Cart.objects.filter(user=self.shopper).count(), 1)

    def test_add_and_increment(self):
        response = self.add(self.product.id, 2)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['items'][0]['quantity'], 2)
        self.assertEqual(response.data['items'][0]['unit_price'], '10.00')
        self.assertEqual(response.data['total'], '20.00')

        response = self.add(self.product.id, 1)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['items'][0]['quantity'], 3)
        self.assertEqual(response.data['item_count'], 3)
        self.assertEqual(AuditLog.objects.filter(action='cart_add').count(), 2)

    def test_add_beyond_stock(self):
        response = self.add(self.product.id, 6)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'insufficient_stock')

        self.add(self.product.id, 3)
        response = self.add(self.product.id, 3)
        self.assertEqual(response.data['code'], 'insufficient_stock')
        self.assertEqual(CartItem.objects.get().quantity, 3)

    def test_untracked_inventory_has_no_limit(self):
        product = TestDataFactory.create_product(stock_quantity=0, track_inventory=False)
        self.assertEqual(self.add(product.id, 50).status_code, status.HTTP_201_CREATED)

    def test_unavailable_products(self):
        hidden = TestDataFactory.create_product(published=False)
        discontinued = TestDataFactory.create_product(status='inactive')
        foreign = TestDataFactory.create_product(distributor_code='D2')
        for product in (hidden, discontinued, foreign):
            response = self.add(product.id)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(response.data['code'], 'product_unavailable')

    def test_zero_quantity_rejected(self):
        response = self.add(self.product.id, 0)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('quantity', response.data)

    def test_price_list_price(self):
        price_list = TestDataFactory.create_price_list()
        TestDataFactory.create_price(price_list, self.product, base_price=Decimal('8.00'))
        TestDataFactory.create_client(user=self.shopper, price_list=price_list)
        response = self.add(self.product.id, 1)
        self.assertEqual(response.data['items'][0]['unit_price'], '8.00')

    def test_update_quantity_and_remove_with_zero(self):
        item = services.add_to_cart(self.shopper, self.product.id, 1)
        response = self.client.patch('/api/v1/cart/update/', {'item_id': item.id, 'quantity': 4}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'][0]['quantity'], 4)

        response = self.client.patch('/api/v1/cart/update/', {'item_id': item.id, 'quantity': 9}, format='json')
        self.assertEqual(response.data['code'], 'insufficient_stock')

        response = self.client.patch('/api/v1/cart/update/', {'item_id': item.id, 'quantity': 0}, format='json')
        self.assertEqual(response.data['items'], [])

    def test_cannot_touch_other_users_items(self):
        other = TestDataFactory.create_user()
        item = services.add_to_cart(other, self.product.id, 1)
        response = self.client.patch('/api/v1/cart/update/', {'item_id': item.id, 'quantity': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'cart_item_not_found')
        response = self.client.patch('/api/v1/cart/remove/', {'item_id': item.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(CartItem.objects.filter(pk=item.id).exists())

    def test_remove_and_clear(self):
        item = services.add_to_cart(self.shopper, self.product.id, 1)
        services.add_to_cart(self.shopper, TestDataFactory.create_product().id, 2)
        response = self.client.patch('/api/v1/cart/remove/', {'item_id': item.id}, format='json')
        self.assertEqual(len(response.data['items']), 1)
        self.assertTrue(AuditLog.objects.filter(action='cart_remove', object_id=str(item.id)).exists())

        response = self.client.patch('/api/v1/cart/clear/')
        self.assertEqual(response.data['items'], [])

    def test_requires_login(self):
        self.client.logout()
        response = self.client.get('/api/v1/cart/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


@override_settings(DEFAULT_SHIPPING_FEE=Decimal('5.00'))
class CheckoutTests(TestCase):
    def setUp(self):
        cache.clear()
        self.shopper = TestDataFactory.create_user()
        TestDataFactory.create_address(self.shopper)
        self.product = TestDataFactory.create_product(price=Decimal('10.00'), tax=Decimal('12.00'),
                                                      stock_quantity=100)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.shopper)

    def checkout(self, **data):
        return self.client.post('/api/v1/orders/', data, format='json')

    def test_checkout_totals(self):
        services.add_to_cart(self.shopper, self.product.id, 2)
        response = self.checkout(payment_type='CASH_ON_DELIVERY', notes='Ring twice')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['subtotal'], '20.00')
        self.assertEqual(response.data['tax'], '2.40')
        self.assertEqual(response.data['shipping_fee'], '5.00')
        self.assertEqual(response.data['total'], '27.40')
        self.assertEqual(response.data['status'], 'PENDING')
        self.assertEqual(response.data['payment_status'], 'PENDING')
        self.assertEqual(response.data['item_count'], 2)
        self.assertEqual(response.data['shipping_address']['city'], 'Quito')
        self.assertEqual(response.data['notes'], 'Ring twice')
        self.assertTrue(response.data['order_number'].startswith('ORD-'))

        item = response.data['items'][0]
        self.assertEqual(item['sku'], self.product.sku)
        self.assertEqual(item['line_total'], '20.00')
        self.assertEqual(item['tax'], '2.40')

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 98)
        self.assertFalse(CartItem.objects.filter(cart__user=self.shopper).exists())
        self.assertTrue(AuditLog.objects.filter(action='order_create',
                                                object_reference=response.data['order_number']).exists())

    def test_explicit_shipping_address(self):
        services.add_to_cart(self.shopper, self.product.id, 1)
        response = self.checkout(shipping_address={'address': 'Calle 10', 'city': 'Guayaquil'})
        self.assertEqual(response.data['shipping_address']['city'], 'Guayaquil')

        services.add_to_cart(self.shopper, self.product.id, 1)
        response = self.checkout(shipping_address={'address': 'Calle 10'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('shipping_address', response.data)

    def test_empty_cart(self):
        response = self.checkout()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'error': 'Cart is empty.', 'code': 'empty_cart'})

    def test_coupon(self):
        TestDataFactory.create_coupon(code='SAVE10', value=Decimal('10'))
        services.add_to_cart(self.shopper, self.product.id, 2)
        response = self.checkout(coupon_code='save10')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['coupon_code'], 'SAVE10')
        self.assertEqual(response.data['coupon_discount'], '2.00')
        self.assertEqual(response.data['discount'], '2.00')
        self.assertEqual(response.data['tax'], '2.16')
        self.assertEqual(response.data['total'], '25.16')
        self.assertEqual(Coupon.objects.get(code='SAVE10').times_used, 1)

    def test_invalid_coupon_leaves_cart_and_stock(self):
        services.add_to_cart(self.shopper, self.product.id, 2)
        response = self.checkout(coupon_code='NOPE')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_coupon')
        self.assertEqual(CartItem.objects.filter(cart__user=self.shopper).count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 100)
        self.assertFalse(Order.objects.exists())

    def test_discount_applied_and_counted(self):
        discount = TestDataFactory.create_discount(template='buy_x_get_y',
                                                   config={'buy_quantity': 3, 'pay_quantity': 2})
        product = TestDataFactory.create_product(price=Decimal('10.00'))
        services.add_to_cart(self.shopper, product.id, 3)
        response = self.checkout()
        self.assertEqual(response.data['subtotal'], '30.00')
        self.assertEqual(response.data['discount'], '10.00')
        self.assertEqual(response.data['total'], '25.00')
        self.assertEqual(response.data['items'][0]['discount'], '10.00')
        self.assertEqual(response.data['items'][0]['line_total'], '20.00')
        self.assertEqual(response.data['applied_discounts'][0]['code'], discount.code)
        discount.refresh_from_db()
        self.assertEqual(discount.times_used, 1)

    def test_free_shipping_discount(self):
        TestDataFactory.create_discount(template='free_shipping', config={'min_purchase_amount': 15},
                                        value=Decimal('0'))
        product = TestDataFactory.create_product(price=Decimal('10.00'))
        services.add_to_cart(self.shopper, product.id, 2)
        response = self.checkout()
        self.assertEqual(response.data['shipping_fee'], '0.00')
        self.assertEqual(response.data['total'], '20.00')

    def test_welcome_discount_only_on_first_order(self):
        TestDataFactory.create_discount(template='welcome', config={'discount_value': 10})
        product = TestDataFactory.create_product(price=Decimal('10.00'))
        services.add_to_cart(self.shopper, product.id, 1)
        first = self.checkout()
        self.assertEqual(first.data['discount'], '1.00')

        services.add_to_cart(self.shopper, product.id, 1)
        second = self.checkout()
        self.assertEqual(second.data['discount'], '0.00')

    def test_stock_checked_again_at_checkout(self):
        services.add_to_cart(self.shopper, self.product.id, 3)
        Product.objects.filter(pk=self.product.pk).update(stock_quantity=2)
        with self.assertRaises(InsufficientStock):
            services.checkout(self.shopper, {})
        response = self.checkout()
        self.assertEqual(response.data['code'], 'insufficient_stock')

    def test_own_orders_only(self):
        mine = TestDataFactory.create_order(self.shopper)
        theirs = TestDataFactory.create_order(TestDataFactory.create_user())
        response = self.client.get('/api/v1/orders/')
        self.assertEqual([order['id'] for order in response.data['results']], [mine.id])
        self.assertEqual(response.data['page_size'], 20)
        response = self.client.get(f'/api/v1/orders/{theirs.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_client_order_uses_client_distributor(self):
        TestDataFactory.create_client(user=self.shopper, distributor_code='D1')
        services.add_to_cart(self.shopper, self.product.id, 1)
        order = services.checkout(self.shopper, {})
        self.assertEqual(order.distributor_code, 'D1')
        self.assertEqual(order.client.user, self.shopper)

    def test_other_distributor_discounts_and_coupons_are_ignored(self):
        TestDataFactory.create_discount(template='clearance', config={'discount_value': 10}, distributor_code='D2')
        TestDataFactory.create_coupon(code='D2ONLY', distributor_code='D2')
        services.add_to_cart(self.shopper, self.product.id, 1)
        response = self.checkout(coupon_code='D2ONLY')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_coupon')

        response = self.checkout()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['discount'], '0.00')
        self.assertEqual(response.data['applied_discounts'], [])

    def test_malformed_bogo_is_skipped(self):
        TestDataFactory.create_discount(discount_type='bogo', value=Decimal('100'),
                                        config={'buy_quantity': 0, 'get_quantity': 0})
        services.add_to_cart(self.shopper, self.product.id, 4)
        response = self.checkout()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['discount'], '0.00')

    def test_untemplated_bogo(self):
        TestDataFactory.create_discount(discount_type='bogo', value=Decimal('100'))
        services.add_to_cart(self.shopper, self.product.id, 4)
        response = self.checkout()
        self.assertEqual(response.data['subtotal'], '40.00')
        self.assertEqual(response.data['discount'], '20.00')

    def test_discount_usage_drops_cached_discounts(self):
        TestDataFactory.create_discount(template='clearance', config={'discount_value': 10})
        services.add_to_cart(self.shopper, self.product.id, 1)
        with mock.patch('backend.orders.services.invalidate_discounts_cache') as invalidate:
            with self.captureOnCommitCallbacks(execute=True):
                services.checkout(self.shopper, {})
        invalidate.assert_called_once_with()

    def test_limited_discount_leaves_active_list_after_last_use(self):
        discount = TestDataFactory.create_discount(template='clearance', config={'discount_value': 10},
                                                   usage_limit=1)
        self.assertEqual(get_active_discounts(''), [discount])
        services.add_to_cart(self.shopper, self.product.id, 1)
        with self.captureOnCommitCallbacks(execute=True):
            services.checkout(self.shopper, {})
        self.assertEqual(get_active_discounts(''), [])

    def test_usage_limit_per_customer(self):
        TestDataFactory.create_discount(template='clearance', config={'discount_value': 10},
                                        usage_limit_per_customer=1)
        services.add_to_cart(self.shopper, self.product.id, 1)
        self.assertEqual(self.checkout().data['discount'], '1.00')

        services.add_to_cart(self.shopper, self.product.id, 1)
        self.assertEqual(self.checkout().data['discount'], '0.00')

        other = TestDataFactory.create_user()
        services.add_to_cart(other, self.product.id, 1)
        self.assertEqual(services.checkout(other, {}).discount, Decimal('1.00'))


class OrderLifecycleTests(TestCase):
    def setUp(self):
        cache.clear()
        self.shopper = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(stock_quantity=10)
        self.client = AuthenticatedAPIClient()

    def place_order(self, quantity=2):
        services.add_to_cart(self.shopper, self.product.id, quantity)
        return services.checkout(self.shopper, {})

    def test_cancel_restores_stock(self):
        order = self.place_order(4)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 6)

        self.client.authenticate_user(self.shopper)
        response = self.client.patch(f'/api/v1/orders/{order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CANCELLED')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)
        self.assertTrue(AuditLog.objects.filter(action='order_cancel', object_reference=order.order_number).exists())

        response = self.client.patch(f'/api/v1/orders/{order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_transition')

    def test_cannot_cancel_shipped(self):
        order = TestDataFactory.create_order(self.shopper, status='SHIPPED')
        with self.assertRaises(InvalidTransition):
            services.transition_order(order, 'CANCELLED')

    def test_unknown_status(self):
        order = TestDataFactory.create_order(self.shopper)
        with self.assertRaises(DomainError):
            services.transition_order(order, 'LOST')

    def test_full_delivery_cycle(self):
        admin = TestDataFactory.create_admin()
        self.client.authenticate_user(admin)
        order = self.place_order()
        url = f'/api/v1/admin/orders/{order.id}/status/'

        response = self.client.patch(url, {'status': 'SHIPPED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.client.patch(url, {'status': 'PROCESSING'}, format='json')
        response = self.client.patch(url, {'status': 'SHIPPED', 'tracking_number': 'TRK-77',
                                           'estimated_delivery': '2026-11-02'}, format='json')
        self.assertEqual(response.data['tracking_number'], 'TRK-77')
        self.assertEqual(response.data['estimated_delivery'], '2026-11-02')
        self.assertEqual(response.data['payment_status'], 'PENDING')

        response = self.client.patch(url, {'status': 'DELIVERED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_status'], 'COMPLETED')
        self.assertEqual(AuditLog.objects.filter(action='order_status').count(), 3)

        response = self.client.patch(url, {'status': 'CANCELLED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_card_payment_not_completed_on_delivery(self):
        order = TestDataFactory.create_order(self.shopper, status='SHIPPED', payment_type='CREDIT_CARD')
        order, _ = services.transition_order(order, 'DELIVERED')
        self.assertEqual(order.payment_status, 'PENDING')

    def test_cancel_refunds_completed_payment(self):
        order = TestDataFactory.create_order(self.shopper, status='PROCESSING', payment_type='CREDIT_CARD')
        Order.objects.filter(pk=order.pk).update(payment_status='COMPLETED')
        order, old_status = services.transition_order(order, 'CANCELLED')
        self.assertEqual(old_status, 'PROCESSING')
        self.assertEqual(order.payment_status, 'REFUNDED')


class AdminOrderTests(TestCase):
    def setUp(self):
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.shopper = TestDataFactory.create_user(email='buyer@shop.com')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def test_scoped_to_distributor(self):
        mine = TestDataFactory.create_order(self.shopper, distributor_code='D1')
        TestDataFactory.create_order(self.shopper, distributor_code='D2')
        response = self.client.get('/api/v1/admin/orders/')
        self.assertEqual([order['id'] for order in response.data['results']], [mine.id])

    def test_platform_admin_sees_all(self):
        TestDataFactory.create_order(self.shopper, distributor_code='D1')
        TestDataFactory.create_order(self.shopper, distributor_code='D2')
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.get('/api/v1/admin/orders/')
        self.assertEqual(response.data['count'], 2)

    def test_shopper_forbidden(self):
        self.client.authenticate_user(self.shopper)
        response = self.client.get('/api/v1/admin/orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_filters(self):
        pending = TestDataFactory.create_order(self.shopper, distributor_code='D1')
        alpha = TestDataFactory.create_product(supplier_code='SUP-A', vendor='Alpha Foods')
        card = TestDataFactory.create_order(self.shopper, products=[alpha], status='PROCESSING',
                                            payment_type='CREDIT_CARD', distributor_code='D1')

        response = self.client.get('/api/v1/admin/orders/', {'status': 'PENDING'})
        self.assertEqual([order['id'] for order in response.data['results']], [pending.id])
        response = self.client.get('/api/v1/admin/orders/', {'payment_type': 'CREDIT_CARD'})
        self.assertEqual([order['id'] for order in response.data['results']], [card.id])
        response = self.client.get('/api/v1/admin/orders/', {'supplier': 'alpha'})
        self.assertEqual([order['id'] for order in response.data['results']], [card.id])
        response = self.client.get('/api/v1/admin/orders/', {'search': card.order_number})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/admin/orders/', {'search': 'buyer@'})
        self.assertEqual(response.data['count'], 2)

    def test_invalid_date_filter(self):
        response = self.client.get('/api/v1/admin/orders/', {'date_from': 'yesterday'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('date_from', response.data)

    def test_stats(self):
        product = TestDataFactory.create_product(price=Decimal('10.00'))
        TestDataFactory.create_order(self.shopper, products=[product], distributor_code='D1')
        TestDataFactory.create_order(self.shopper, products=[product], status='DELIVERED', quantity=2,
                                     distributor_code='D1')
        TestDataFactory.create_order(self.shopper, products=[product], status='CANCELLED', quantity=3,
                                     distributor_code='D1')
        TestDataFactory.create_order(self.shopper, products=[product], distributor_code='D2')
        response = self.client.get('/api/v1/admin/orders/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_orders'], 3)
        self.assertEqual(response.data['pending_orders'], 1)
        self.assertEqual(response.data['by_status']['CANCELLED'], 1)
        self.assertEqual(response.data['by_status']['SHIPPED'], 0)
        self.assertEqual(response.data['total_revenue'], '30.00')
        self.assertEqual(response.data['average_order_value'], '15.00')

    def test_detail_groups_items_by_supplier(self):
        alpha = TestDataFactory.create_product(price=Decimal('4.00'), supplier_code='SUP-A', vendor='Alpha Foods')
        alpha_two = TestDataFactory.create_product(price=Decimal('6.00'), supplier_code='SUP-A', vendor='Alpha Foods')
        beta = TestDataFactory.create_product(price=Decimal('9.00'), supplier_code='SUP-B', vendor='Beta Drinks')
        order = TestDataFactory.create_order(self.shopper, products=[alpha, alpha_two, beta], distributor_code='D1')
        response = self.client.get(f'/api/v1/admin/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        groups = {group['supplier_code']: group for group in response.data['items_by_supplier']}
        self.assertEqual(len(groups['SUP-A']['items']), 2)
        self.assertEqual(groups['SUP-A']['subtotal'], '10.00')
        self.assertEqual(groups['SUP-B']['supplier_name'], 'Beta Drinks')

    def test_other_distributor_order_not_found(self):
        theirs = TestDataFactory.create_order(self.shopper, distributor_code='D2')
        response = self.client.patch(f'/api/v1/admin/orders/{theirs.id}/status/', {'status': 'PROCESSING'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class AllocationTests(TestCase):
    def test_allocate_keeps_total(self):
        shares = services._allocate(Decimal('10.00'), [Decimal('1.00'), Decimal('1.00'), Decimal('1.00')])
        self.assertEqual(sum(shares), Decimal('10.00'))

    def test_allocate_nothing(self):
        self.assertEqual(services._allocate(Decimal('0'), [Decimal('5')]), [Decimal('0.00')])
