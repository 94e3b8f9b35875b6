"""
Test suite for the pricing module
Tests: price calculation, cart discount evaluation, price list resolution,
coupons, discount templates and the pricing endpoints
"""
from datetime import timedelta
from decimal import Decimal
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from backend.core.exceptions import CouponError, TemplateConfigError
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.pricing.calculator import (
    calculate_price, discount_rule, evaluate_cart, format_price_calculation
)
from backend.pricing.models import PriceList, Price, Discount, Coupon
from backend.pricing.services import (
    get_active_discounts, resolve_price_list, unit_price, price_product, validate_coupon, customer_context
)
from backend.pricing.templates import validate_template_config, build_discount_payload


def make_line(product_id, quantity, price, category_id=1, on_sale=False):
    return {'product_id': product_id, 'sku': f'SKU-{product_id}', 'category_id': category_id,
            'quantity': quantity, 'unit_price': Decimal(str(price)), 'on_sale': on_sale}


def make_discount(template='', config=None, value='10', **extra):
    extra.setdefault('code', f'D-{template or "plain"}')
    extra.setdefault('name', template or 'Plain discount')
    return Discount(template=template, template_config=config or {}, discount_value=Decimal(value), **extra)


class CalculatePriceTests(SimpleTestCase):
    def test_no_rules(self):
        result = calculate_price(Decimal('10'), 3)
        self.assertEqual(result.subtotal, Decimal('30.00'))
        self.assertEqual(result.final_price, Decimal('30.00'))
        self.assertEqual(result.discount, Decimal('0.00'))
        self.assertEqual(result.applied_discounts, [])

    def test_best_volume_tier_wins(self):
        rule = {'id': 'VOL', 'name': 'Volume', 'type': 'tiered_volume', 'value': 0, 'conditions': {
            'quantity_tiers': [
                {'min_quantity': 5, 'max_quantity': 9, 'discount_percentage': 10},
                {'min_quantity': 10, 'max_quantity': None, 'discount_percentage': 20},
            ]}}
        result = calculate_price(Decimal('10'), 10, [rule])
        self.assertEqual(result.total_savings, Decimal('20.00'))
        self.assertEqual(result.final_price, Decimal('80.00'))
        self.assertEqual(result.discount_percentage, Decimal('20.00'))
        self.assertEqual(result.applied_discounts[0]['id'], 'VOL')

        below_tiers = calculate_price(Decimal('10'), 3, [rule])
        self.assertEqual(below_tiers.final_price, Decimal('30.00'))

    def test_min_purchase_rule(self):
        rule = {'id': 'MIN', 'type': 'min_purchase', 'value': 10, 'min_purchase_amount': 50}
        self.assertEqual(calculate_price(Decimal('10'), 6, [rule]).final_price, Decimal('54.00'))
        self.assertEqual(calculate_price(Decimal('10'), 4, [rule]).final_price, Decimal('40.00'))

    def test_promotional_fixed_per_unit(self):
        rule = {'id': 'PROMO', 'type': 'promotional', 'value': 2, 'value_type': 'fixed'}
        result = calculate_price(Decimal('10'), 3, [rule])
        self.assertEqual(result.total_savings, Decimal('6.00'))
        self.assertEqual(result.final_price, Decimal('24.00'))

    def test_promotional_min_quantity(self):
        rule = {'id': 'PROMO', 'type': 'promotional', 'value': 50, 'min_quantity': 2}
        self.assertEqual(calculate_price(Decimal('10'), 1, [rule]).final_price, Decimal('10.00'))
        self.assertEqual(calculate_price(Decimal('10'), 2, [rule]).final_price, Decimal('10.00'))

    def test_savings_never_exceed_subtotal(self):
        rule = {'id': 'BIG', 'type': 'promotional', 'value': 25, 'value_type': 'fixed'}
        result = calculate_price(Decimal('10'), 2, [rule])
        self.assertEqual(result.final_price, Decimal('0.00'))
        self.assertEqual(result.total_savings, Decimal('20.00'))

    def test_product_sale_price_used_without_rules(self):
        result = calculate_price(Decimal('10'), 2, [], {'price_sale': Decimal('8')})
        self.assertEqual(result.final_price, Decimal('16.00'))
        self.assertEqual(result.applied_discounts[0]['id'], 'product-sale')

        percentage = calculate_price(Decimal('10'), 2, [], {'discount_percentage': Decimal('25')})
        self.assertEqual(percentage.final_price, Decimal('15.00'))

    def test_product_sale_price_ignored_when_a_rule_applied(self):
        rule = {'id': 'PROMO', 'type': 'promotional', 'value': 10}
        result = calculate_price(Decimal('10'), 2, [rule], {'price_sale': Decimal('5')})
        self.assertEqual(result.final_price, Decimal('18.00'))

    def test_format(self):
        plain = format_price_calculation(calculate_price(Decimal('1234.50'), 1))
        self.assertEqual(plain['subtotal'], '$1.234,50')
        self.assertIsNone(plain['discount'])
        self.assertIsNone(plain['savings'])

        rule = {'id': 'P', 'type': 'promotional', 'value': 10}
        formatted = format_price_calculation(calculate_price(Decimal('1234.50'), 1, [rule]))
        self.assertEqual(formatted['discount'], '-$123,45')
        self.assertEqual(formatted['discount_percentage'], '10%')
        self.assertEqual(formatted['final_price'], '$1.111,05')

    def test_to_dict_uses_strings(self):
        data = calculate_price(Decimal('10'), 1).to_dict()
        self.assertEqual(data['final_price'], '10.00')
        self.assertEqual(data['quantity'], 1)


class DiscountRuleTests(SimpleTestCase):
    def test_cart_only_templates_have_no_rule(self):
        self.assertIsNone(discount_rule(make_discount('buy_x_get_y', {'buy_quantity': 3, 'pay_quantity': 2})))
        self.assertIsNone(discount_rule(make_discount('bundle')))

    def test_flat_template_uses_config_value(self):
        rule = discount_rule(make_discount('clearance', {'discount_value': 30}, value='5'))
        self.assertEqual(rule['type'], 'promotional')
        self.assertEqual(rule['value'], Decimal('30'))
        self.assertEqual(rule['value_type'], 'percentage')

    def test_fixed_amount_discount(self):
        rule = discount_rule(make_discount('', discount_type='fixed_amount', value='3'))
        self.assertEqual(rule['value_type'], 'fixed')
        self.assertEqual(rule['value'], Decimal('3'))

    def test_tiered_volume(self):
        config = {'tiers': [{'min_qty': 5, 'max_qty': 9, 'discount': 10},
                            {'min_qty': 10, 'discount': 2, 'discount_type': 'fixed'}]}
        rule = discount_rule(make_discount('tiered_volume', config))
        tiers = rule['conditions']['quantity_tiers']
        self.assertEqual(rule['type'], 'tiered_volume')
        self.assertEqual(tiers[0]['discount_percentage'], 10)
        self.assertEqual(tiers[1]['discount_fixed'], 2)

    def test_min_purchase(self):
        rule = discount_rule(make_discount('', value='5', min_purchase_amount=Decimal('50')))
        self.assertEqual(rule['type'], 'min_purchase')


class EvaluateCartTests(SimpleTestCase):
    def test_buy_three_pay_two(self):
        discount = make_discount('buy_x_get_y', {'buy_quantity': 3, 'pay_quantity': 2})
        result = evaluate_cart([make_line(1, 7, 10)], [discount])
        self.assertEqual(result.line_discounts, [Decimal('20.00')])
        self.assertEqual(result.total_discount, Decimal('20.00'))

    def test_buy_x_get_y_with_free_quantity(self):
        discount = make_discount('buy_x_get_y', {'buy_quantity': 2, 'free_quantity': 1})
        result = evaluate_cart([make_line(1, 4, 5)], [discount])
        self.assertEqual(result.line_discounts, [Decimal('10.00')])

    def test_bogo_free_and_percentage(self):
        free = make_discount('bogo', {'buy_quantity': 1, 'get_quantity': 1})
        self.assertEqual(evaluate_cart([make_line(1, 5, 4)], [free]).line_discounts, [Decimal('8.00')])

        half = make_discount('bogo', {'buy_quantity': 1, 'get_quantity': 1, 'bogo_type': 'percentage',
                                      'get_discount': 50})
        self.assertEqual(evaluate_cart([make_line(1, 4, 10)], [half]).line_discounts, [Decimal('10.00')])

    def test_bogo_without_template_and_zero_quantities(self):
        plain = make_discount('', {}, discount_type='bogo')
        self.assertEqual(evaluate_cart([make_line(1, 4, 10)], [plain]).line_discounts, [Decimal('20.00')])

        broken = make_discount('', {'buy_quantity': 0, 'get_quantity': 0}, discount_type='bogo')
        result = evaluate_cart([make_line(1, 4, 10)], [broken])
        self.assertEqual(result.total_discount, Decimal('0.00'))
        self.assertEqual(result.applied_discounts, [])

    def test_tiered_volume(self):
        config = {'tiers': [{'min_qty': 5, 'max_qty': 9, 'discount': 10}, {'min_qty': 10, 'discount': 20}]}
        discount = make_discount('tiered_volume', config)
        result = evaluate_cart([make_line(1, 10, 5), make_line(2, 6, 10), make_line(3, 2, 10)], [discount])
        self.assertEqual(result.line_discounts, [Decimal('10.00'), Decimal('6.00'), Decimal('0.00')])

    def test_spend_threshold(self):
        discount = make_discount('spend_threshold', {'threshold': 100, 'reward': 15})
        reached = evaluate_cart([make_line(1, 12, 10)], [discount])
        self.assertEqual(reached.order_discount, Decimal('15.00'))
        missed = evaluate_cart([make_line(1, 9, 10)], [discount])
        self.assertEqual(missed.total_discount, Decimal('0.00'))
        self.assertEqual(missed.applied_discounts, [])

    def test_progressive_spend_threshold_uses_highest_tier_reached(self):
        config = {'progressive': True, 'tiers': [{'min_spend': 50, 'discount': 5}, {'min_spend': 100, 'discount': 10}]}
        result = evaluate_cart([make_line(1, 12, 10)], [make_discount('spend_threshold', config)])
        self.assertEqual(result.order_discount, Decimal('12.00'))

    def test_bundle(self):
        config = {'required_products': [{'product_id': 1, 'quantity': 1}, {'product_id': 2, 'quantity': 1}],
                  'discount_type': 'percentage', 'discount_value': 10}
        discount = make_discount('bundle', config)
        result = evaluate_cart([make_line(1, 2, 20), make_line(2, 1, 30)], [discount])
        self.assertEqual(result.order_discount, Decimal('5.00'))

        incomplete = evaluate_cart([make_line(1, 2, 20)], [discount])
        self.assertEqual(incomplete.total_discount, Decimal('0.00'))

    def test_mix_and_match(self):
        config = {'from_categories': [7], 'required_quantity': 3, 'discount_value': 10}
        discount = make_discount('mix_and_match', config)
        lines = [make_line(1, 2, 10, category_id=7), make_line(2, 1, 20, category_id=7),
                 make_line(3, 5, 10, category_id=8)]
        result = evaluate_cart(lines, [discount])
        self.assertEqual(result.line_discounts, [Decimal('2.00'), Decimal('2.00'), Decimal('0.00')])

        too_few = evaluate_cart(lines[:1] + lines[2:], [discount])
        self.assertEqual(too_few.total_discount, Decimal('0.00'))

    def test_welcome_requires_first_purchase(self):
        discount = make_discount('welcome', {'discount_value': 15})
        lines = [make_line(1, 10, 10)]
        self.assertEqual(evaluate_cart(lines, [discount], customer={'is_first_purchase': True}).total_discount,
                         Decimal('15.00'))
        self.assertEqual(evaluate_cart(lines, [discount], customer={'is_first_purchase': False}).total_discount,
                         Decimal('0.00'))
        self.assertEqual(evaluate_cart(lines, [discount]).total_discount, Decimal('0.00'))

    def test_welcome_for_everyone(self):
        discount = make_discount('welcome', {'discount_value': 15}, conditions={'first_purchase_only': False})
        self.assertEqual(evaluate_cart([make_line(1, 10, 10)], [discount]).total_discount, Decimal('15.00'))

    def test_loyalty_tier(self):
        discount = make_discount('loyalty_vip', {'tier': 'gold', 'discount_value': 20})
        lines = [make_line(1, 1, 50)]
        self.assertEqual(evaluate_cart(lines, [discount], customer={'tier': 'Gold'}).total_discount, Decimal('10.00'))
        self.assertEqual(evaluate_cart(lines, [discount], customer={'tier': 'silver'}).total_discount, Decimal('0.00'))

    def test_seasonal_excludes_sale_items(self):
        discount = make_discount('seasonal', {'discount_value': 10, 'exclude_sale_items': True})
        result = evaluate_cart([make_line(1, 1, 100, on_sale=True), make_line(2, 1, 100)], [discount])
        self.assertEqual(result.line_discounts, [Decimal('0.00'), Decimal('10.00')])

    def test_free_shipping(self):
        discount = make_discount('free_shipping', {'min_purchase_amount': 50}, value='0')
        self.assertTrue(evaluate_cart([make_line(1, 6, 10)], [discount]).free_shipping)
        below = evaluate_cart([make_line(1, 4, 10)], [discount])
        self.assertFalse(below.free_shipping)

    def test_biggest_non_cumulative_discount_wins(self):
        small = make_discount('clearance', {'discount_value': 10}, code='SMALL')
        big = make_discount('flash_sale', {'discount_value': 20}, code='BIG')
        result = evaluate_cart([make_line(1, 1, 100)], [small, big])
        self.assertEqual(result.total_discount, Decimal('20.00'))
        self.assertEqual([applied['code'] for applied in result.applied_discounts], ['BIG'])

    def test_cumulative_discounts_stack(self):
        stacking = make_discount('clearance', {'discount_value': 10}, code='STACK', is_cumulative=True)
        big = make_discount('flash_sale', {'discount_value': 20}, code='BIG')
        shipping = make_discount('free_shipping', {'min_purchase_amount': 0}, value='0', code='SHIP')
        result = evaluate_cart([make_line(1, 1, 100)], [stacking, big, shipping])
        self.assertEqual(result.total_discount, Decimal('30.00'))
        self.assertTrue(result.free_shipping)
        self.assertEqual(sorted(applied['code'] for applied in result.applied_discounts), ['BIG', 'SHIP', 'STACK'])

    def test_max_discount_amount_caps(self):
        discount = make_discount('flash_sale', {'discount_value': 20}, max_discount_amount=Decimal('5'))
        result = evaluate_cart([make_line(1, 1, 100)], [discount])
        self.assertEqual(result.line_discounts, [Decimal('0.00')])
        self.assertEqual(result.order_discount, Decimal('5.00'))

    def test_applicable_to_limits_lines(self):
        discount = make_discount('clearance', {'discount_value': 50}, applicable_to=[{'type': 'product', 'value': 2}])
        result = evaluate_cart([make_line(1, 1, 10), make_line(2, 1, 10)], [discount])
        self.assertEqual(result.line_discounts, [Decimal('0.00'), Decimal('5.00')])

    def test_expired_and_wrong_customer_type_are_skipped(self):
        now = timezone.now()
        expired = make_discount('clearance', {'discount_value': 50}, code='OLD', valid_to=now - timedelta(days=1))
        wholesale = make_discount('clearance', {'discount_value': 50}, code='WHOLESALE', customer_type='wholesale')
        result = evaluate_cart([make_line(1, 1, 10)], [expired, wholesale], customer={'customer_type': 'retail'},
                               now=now)
        self.assertEqual(result.total_discount, Decimal('0.00'))

    def test_min_purchase_amount_gate(self):
        discount = make_discount('clearance', {'discount_value': 10}, min_purchase_amount=Decimal('100'))
        self.assertEqual(evaluate_cart([make_line(1, 1, 50)], [discount]).total_discount, Decimal('0.00'))
        self.assertEqual(evaluate_cart([make_line(1, 2, 50)], [discount]).total_discount, Decimal('10.00'))


class TemplateConfigTests(SimpleTestCase):
    def test_unknown_template(self):
        with self.assertRaises(TemplateConfigError) as ctx:
            validate_template_config('mystery', {})
        self.assertIn('template', ctx.exception.errors)

    def test_overlapping_tiers(self):
        config = {'tiers': [{'min_qty': 1, 'max_qty': 10, 'discount': 5}, {'min_qty': 5, 'discount': 10}]}
        with self.assertRaises(TemplateConfigError) as ctx:
            validate_template_config('tiered_volume', config)
        self.assertEqual(ctx.exception.errors['tiers'], 'Tiers must not overlap.')

    def test_open_ended_tier_must_be_last(self):
        config = {'tiers': [{'min_qty': 1, 'discount': 5}, {'min_qty': 10, 'max_qty': 20, 'discount': 10}]}
        with self.assertRaises(TemplateConfigError):
            validate_template_config('tiered_volume', config)

    def test_buy_x_get_y_pay_lower_than_buy(self):
        with self.assertRaises(TemplateConfigError) as ctx:
            validate_template_config('buy_x_get_y', {'buy_quantity': 2, 'pay_quantity': 2})
        self.assertIn('pay_quantity', ctx.exception.errors)
        validate_template_config('buy_x_get_y', {'buy_quantity': 3, 'pay_quantity': 2})

    def test_percentage_above_100(self):
        with self.assertRaises(TemplateConfigError) as ctx:
            validate_template_config('clearance', {'discount_value': 150})
        self.assertIn('discount_value', ctx.exception.errors)

    def test_bundle_needs_two_products(self):
        with self.assertRaises(TemplateConfigError) as ctx:
            validate_template_config('bundle', {'required_products': [{'product_id': 1, 'quantity': 1}],
                                                'discount_value': 10})
        self.assertIn('required_products', ctx.exception.errors)

    def test_payload_for_buy_x_get_y(self):
        payload = build_discount_payload('buy_x_get_y', {'name': '3x2'}, {'buy_quantity': 3, 'pay_quantity': 2})
        self.assertEqual(payload['discount_type'], 'percentage')
        self.assertEqual(payload['discount_value'], Decimal('33.33'))
        self.assertEqual(payload['template_config']['promotion_type'], 'buy_x_get_y')

    def test_payload_for_welcome(self):
        payload = build_discount_payload('welcome', {'name': 'Hi'}, {'discount_value': 15})
        self.assertTrue(payload['conditions']['first_purchase_only'])
        self.assertEqual(payload['usage_limit_per_customer'], 1)

    def test_payload_builds_applicable_to(self):
        config = {'from_categories': ['snacks'], 'required_quantity': 3, 'discount_value': 10}
        payload = build_discount_payload('mix_and_match', {'name': 'Snacks'}, config)
        self.assertEqual(payload['applicable_to'], [{'type': 'category', 'value': 'snacks'}])


class PricingServiceTests(TestCase):
    def setUp(self):
        cache.clear()
        self.shopper = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(price=Decimal('10.00'))

    def test_client_price_list_wins(self):
        own = TestDataFactory.create_price_list(code='VIP', distributor_code='D1')
        TestDataFactory.create_price_list(code='BASE', distributor_code='D1', is_default=True)
        client = TestDataFactory.create_client(distributor_code='D1', user=self.shopper, price_list=own)
        self.assertEqual(resolve_price_list(self.shopper), own)

        own.status = 'inactive'
        own.save()
        client.refresh_from_db()
        self.assertEqual(resolve_price_list(self.shopper, client).code, 'BASE')

    def test_expired_default_list_is_skipped(self):
        TestDataFactory.create_price_list(code='OLD', distributor_code='D1', is_default=True,
                                          end_date=timezone.localdate() - timedelta(days=1))
        TestDataFactory.create_client(distributor_code='D1', user=self.shopper)
        self.assertIsNone(resolve_price_list(self.shopper))

    def test_single_default_list_per_distributor(self):
        first = TestDataFactory.create_price_list(distributor_code='D1', is_default=True)
        second = TestDataFactory.create_price_list(distributor_code='D1', is_default=True)
        other = TestDataFactory.create_price_list(distributor_code='D2', is_default=True)
        first.refresh_from_db()
        other.refresh_from_db()
        self.assertFalse(first.is_default)
        self.assertTrue(second.is_default)
        self.assertTrue(other.is_default)

    def test_unit_price_by_quantity_range(self):
        price_list = TestDataFactory.create_price_list()
        TestDataFactory.create_price(price_list, self.product, base_price=Decimal('8.00'), max_quantity=9)
        TestDataFactory.create_price(price_list, self.product, base_price=Decimal('7.00'), min_quantity=10)
        self.assertEqual(unit_price(self.product, price_list, 5), Decimal('8.00'))
        self.assertEqual(unit_price(self.product, price_list, 12), Decimal('7.00'))

    def test_unit_price_falls_back_to_product(self):
        self.product.price_sale = Decimal('9.00')
        self.product.save()
        self.assertEqual(unit_price(self.product, None), Decimal('9.00'))
        empty_list = TestDataFactory.create_price_list()
        self.assertEqual(unit_price(self.product, empty_list), Decimal('9.00'))

    def test_inactive_or_out_of_window_prices_ignored(self):
        price_list = TestDataFactory.create_price_list()
        TestDataFactory.create_price(price_list, self.product, base_price=Decimal('6.00'), status='inactive')
        TestDataFactory.create_price(price_list, self.product, base_price=Decimal('5.00'),
                                     valid_from=timezone.localdate() + timedelta(days=3))
        self.assertEqual(unit_price(self.product, price_list), Decimal('10.00'))

    def test_price_product_with_list_sale_price(self):
        price_list = TestDataFactory.create_price_list()
        TestDataFactory.create_price(price_list, self.product, base_price=Decimal('8.00'), sale_price=Decimal('6.00'))
        result = price_product(self.product, 2, price_list, [])
        self.assertEqual(result.subtotal, Decimal('16.00'))
        self.assertEqual(result.final_price, Decimal('12.00'))

    def test_price_product_applies_matching_discounts(self):
        discount = TestDataFactory.create_discount(template='clearance', config={'discount_value': 50},
                                                   applicable_to=[{'type': 'product', 'value': self.product.sku}])
        other = TestDataFactory.create_discount(template='clearance', config={'discount_value': 90},
                                                applicable_to=[{'type': 'brand', 'value': 'nobody'}])
        result = price_product(self.product, 1, None, [discount, other])
        self.assertEqual(result.final_price, Decimal('5.00'))

    def test_active_discounts(self):
        TestDataFactory.create_discount(code='LIVE')
        TestDataFactory.create_discount(code='OFF', status='inactive')
        TestDataFactory.create_discount(code='USED', usage_limit=1, times_used=1)
        TestDataFactory.create_discount(code='MINE', distributor_code='D1')
        TestDataFactory.create_discount(code='THEIRS', distributor_code='D2')
        codes = sorted(discount.code for discount in get_active_discounts('D1'))
        self.assertEqual(codes, ['LIVE', 'MINE'])

    def test_unaffiliated_customers_only_get_global_discounts(self):
        TestDataFactory.create_discount(code='GLOBAL')
        TestDataFactory.create_discount(code='OTHERDIST', distributor_code='D2')
        codes = [discount.code for discount in get_active_discounts('')]
        self.assertEqual(codes, ['GLOBAL'])

    def test_customer_context(self):
        TestDataFactory.create_client(user=self.shopper, customer_class='wholesale', information={'tier': 'gold'})
        context = customer_context(self.shopper)
        self.assertEqual(context['customer_type'], 'wholesale')
        self.assertEqual(context['tier'], 'gold')
        self.assertTrue(context['is_first_purchase'])

        TestDataFactory.create_order(self.shopper, products=[self.product])
        self.assertFalse(customer_context(self.shopper)['is_first_purchase'])

    def test_cancelled_orders_keep_first_purchase(self):
        TestDataFactory.create_order(self.shopper, products=[self.product], status='CANCELLED')
        self.assertTrue(customer_context(self.shopper)['is_first_purchase'])


class CouponServiceTests(TestCase):
    def test_percentage_and_fixed(self):
        TestDataFactory.create_coupon(code='TEN', value=Decimal('10'))
        TestDataFactory.create_coupon(code='FIFTY', discount_type='fixed_amount', value=Decimal('50'))
        coupon, amount = validate_coupon('ten', Decimal('200'))
        self.assertEqual(coupon.code, 'TEN')
        self.assertEqual(amount, Decimal('20.00'))
        self.assertEqual(validate_coupon('FIFTY', Decimal('30'))[1], Decimal('30.00'))

    def test_rejections(self):
        now = timezone.now()
        TestDataFactory.create_coupon(code='OFF', is_active=False)
        TestDataFactory.create_coupon(code='SOON', valid_from=now + timedelta(days=1))
        TestDataFactory.create_coupon(code='GONE', valid_to=now - timedelta(days=1))
        TestDataFactory.create_coupon(code='FULL', usage_limit=2, times_used=2)
        TestDataFactory.create_coupon(code='BIG', min_purchase_amount=Decimal('100'))
        expected = {
            'NOPE': 'Invalid coupon code.',
            'OFF': 'Invalid coupon code.',
            'SOON': 'This coupon is not valid yet.',
            'GONE': 'This coupon has expired.',
            'FULL': 'This coupon has reached its usage limit.',
        }
        for code, message in expected.items():
            with self.assertRaises(CouponError) as ctx:
                validate_coupon(code, Decimal('50'))
            self.assertEqual(ctx.exception.message, message)
            self.assertEqual(ctx.exception.code, 'invalid_coupon')
        with self.assertRaises(CouponError) as ctx:
            validate_coupon('BIG', Decimal('50'))
        self.assertIn('minimum purchase', ctx.exception.message)

    def test_other_distributor_coupon(self):
        TestDataFactory.create_coupon(code='D1ONLY', distributor_code='D1')
        with self.assertRaises(CouponError):
            validate_coupon('D1ONLY', Decimal('50'), distributor_code='D2')
        self.assertEqual(validate_coupon('D1ONLY', Decimal('50'), distributor_code='D1')[1], Decimal('5.00'))

    def test_distributor_coupon_needs_matching_customer(self):
        TestDataFactory.create_coupon(code='D1ONLY', distributor_code='D1')
        TestDataFactory.create_coupon(code='EVERYONE')
        with self.assertRaises(CouponError):
            validate_coupon('D1ONLY', Decimal('50'))
        self.assertEqual(validate_coupon('EVERYONE', Decimal('50'))[1], Decimal('5.00'))


class PriceListAPITests(TestCase):
    def setUp(self):
        cache.clear()
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def test_create_price_list(self):
        response = self.client.post('/api/v1/price-lists/', {'code': 'RETAIL', 'name': 'Retail', 'currency': 'usd'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['currency'], 'USD')
        self.assertEqual(response.data['distributor_code'], 'D1')
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='PriceList',
                                                object_reference='RETAIL').exists())

    def test_unsupported_currency(self):
        response = self.client.post('/api/v1/price-lists/', {'code': 'GB', 'name': 'UK', 'currency': 'GBP'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('currency', response.data)

    def test_end_date_before_start(self):
        response = self.client.post('/api/v1/price-lists/', {
            'code': 'X', 'name': 'X', 'currency': 'USD', 'start_date': '2026-05-01', 'end_date': '2026-04-01'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('end_date', response.data)

    def test_shopper_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/price-lists/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_scoped_to_distributor(self):
        TestDataFactory.create_price_list(code='MINE', distributor_code='D1')
        theirs = TestDataFactory.create_price_list(code='THEIRS', distributor_code='D2')
        response = self.client.get('/api/v1/price-lists/')
        self.assertEqual([row['code'] for row in response.data['results']], ['MINE'])
        response = self.client.get(f'/api/v1/price-lists/{theirs.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_search_and_filters(self):
        TestDataFactory.create_price_list(code='WHOLESALE', name='Wholesale', distributor_code='D1', channel='b2b')
        TestDataFactory.create_price_list(code='RETAIL', name='Retail', distributor_code='D1', channel='store')
        response = self.client.get('/api/v1/price-lists/', {'channel': 'b2b'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/price-lists/', {'search': 'reta'})
        self.assertEqual(response.data['results'][0]['code'], 'RETAIL')

    def test_status_change(self):
        price_list = TestDataFactory.create_price_list(distributor_code='D1')
        response = self.client.patch(f'/api/v1/price-lists/{price_list.id}/status/', {'status': 'inactive'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'inactive')
        log = AuditLog.objects.get(action='status_change', model_name='PriceList')
        self.assertEqual(log.changes['status'], {'old': 'active', 'new': 'inactive'})

        response = self.client.patch(f'/api/v1/price-lists/{price_list.id}/status/', {'status': 'gone'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_prices_of_list_and_delete(self):
        price_list = TestDataFactory.create_price_list(distributor_code='D1')
        TestDataFactory.create_price(price_list, TestDataFactory.create_product())
        response = self.client.get(f'/api/v1/price-lists/{price_list.id}/prices/')
        self.assertEqual(response.data['count'], 1)

        response = self.client.delete(f'/api/v1/price-lists/{price_list.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Price.objects.exists())
        self.assertTrue(AuditLog.objects.filter(action='delete', model_name='PriceList').exists())


class PriceAPITests(TestCase):
    def setUp(self):
        cache.clear()
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.price_list = TestDataFactory.create_price_list(code='WHOLESALE', distributor_code='D1')
        self.product = TestDataFactory.create_product(sku='JUICE-1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def test_create_links_product_by_sku(self):
        response = self.client.post('/api/v1/prices/', {
            'code': 'P-1', 'name': 'Juice', 'price_list': self.price_list.id, 'product_sku': 'JUICE-1',
            'base_price': '8.00', 'sale_price': '7.50'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['product'], self.product.id)
        self.assertEqual(response.data['effective_price'], '7.50')
        self.assertEqual(response.data['price_list_code'], 'WHOLESALE')

    def test_price_rules(self):
        response = self.client.post('/api/v1/prices/', {
            'code': 'P-2', 'name': 'Juice', 'price_list': self.price_list.id, 'product_sku': 'JUICE-1',
            'base_price': '8.00', 'sale_price': '9.00', 'cost_price': '8.00'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('sale_price', response.data)
        self.assertIn('cost_price', response.data)

        response = self.client.post('/api/v1/prices/', {
            'code': 'P-3', 'name': 'Juice', 'product_sku': 'JUICE-1', 'base_price': '0'
        }, format='json')
        self.assertIn('base_price', response.data)

    def test_filter_by_list_code(self):
        TestDataFactory.create_price(self.price_list, self.product)
        other_list = TestDataFactory.create_price_list(distributor_code='D1')
        TestDataFactory.create_price(other_list, self.product)
        response = self.client.get('/api/v1/prices/', {'price_list': 'WHOLESALE'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/prices/', {'product_sku': 'JUICE-1'})
        self.assertEqual(response.data['count'], 2)

    def test_base_price_change_is_audited(self):
        price = TestDataFactory.create_price(self.price_list, self.product, base_price=Decimal('8.00'))
        response = self.client.patch(f'/api/v1/prices/{price.id}/', {'base_price': '9.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(action='price_change', model_name='Price')
        self.assertEqual(log.changes['base_price'], {'old': '8.00', 'new': '9.00'})

        self.client.patch(f'/api/v1/prices/{price.id}/', {'notes': 'checked'}, format='json')
        self.assertEqual(AuditLog.objects.filter(action='price_change').count(), 1)


class DiscountAPITests(TestCase):
    def setUp(self):
        cache.clear()
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def test_templates_catalogue(self):
        response = self.client.get('/api/v1/discounts/templates/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 12)
        self.assertIn('buy_x_get_y', [template['id'] for template in response.data['templates']])

    def test_from_template(self):
        response = self.client.post('/api/v1/discounts/from-template/', {
            'template': 'tiered_volume',
            'name': 'Volume',
            'config': {'tiers': [{'min_qty': 5, 'max_qty': 9, 'discount': 10}, {'min_qty': 10, 'discount': 20}]},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'TIERED_VOLUME-0001')
        self.assertEqual(response.data['discount_type'], 'tiered_percentage')
        self.assertEqual(response.data['discount_value'], '20.00')
        self.assertEqual(response.data['distributor_code'], 'D1')
        self.assertEqual(response.data['template_config']['promotion_type'], 'tiered_volume')

        second = self.client.post('/api/v1/discounts/from-template/', {
            'template': 'tiered_volume', 'name': 'Volume 2', 'config': {'tiers': [{'min_qty': 3, 'discount': 5}]},
        }, format='json')
        self.assertEqual(second.data['code'], 'TIERED_VOLUME-0002')

    def test_from_template_invalid_config(self):
        response = self.client.post('/api/v1/discounts/from-template/', {
            'template': 'tiered_volume',
            'name': 'Broken',
            'config': {'tiers': [{'min_qty': 1, 'max_qty': 10, 'discount': 5}, {'min_qty': 5, 'discount': 10}]},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_template_config')
        self.assertIn('tiers', response.data['errors'])

    def test_from_template_duplicate_code(self):
        TestDataFactory.create_discount(code='SUMMER')
        response = self.client.post('/api/v1/discounts/from-template/', {
            'template': 'clearance', 'name': 'Summer', 'code': 'SUMMER', 'config': {'discount_value': 30},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('code', response.data)

    def test_create_validates_template_config(self):
        response = self.client.post('/api/v1/discounts/', {
            'code': 'HALF', 'name': 'Half', 'template': 'bogo', 'discount_type': 'bogo', 'discount_value': '50',
            'template_config': {'bogo_type': 'percentage', 'buy_quantity': 1, 'get_quantity': 1},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('get_discount', response.data['errors'])

    def test_create_untemplated_bogo_validates_quantities(self):
        response = self.client.post('/api/v1/discounts/', {
            'code': 'ZERO', 'name': 'Zero', 'discount_type': 'bogo', 'discount_value': '100',
            'template_config': {'buy_quantity': 0, 'get_quantity': 0},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('buy_quantity', response.data['errors'])
        self.assertFalse(Discount.objects.filter(code='ZERO').exists())

    def test_update_validates_effective_configuration(self):
        discount = TestDataFactory.create_discount(code='PLAIN', distributor_code='D1',
                                                   config={'buy_quantity': 0, 'get_quantity': 0})
        response = self.client.patch(f'/api/v1/discounts/{discount.id}/', {'discount_type': 'bogo'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        bogo = TestDataFactory.create_discount(code='BOGO', discount_type='bogo', distributor_code='D1')
        response = self.client.patch(f'/api/v1/discounts/{bogo.id}/',
                                     {'template_config': {'buy_quantity': 1, 'get_quantity': 0}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('get_quantity', response.data['errors'])
        response = self.client.patch(f'/api/v1/discounts/{bogo.id}/', {'name': 'Two for one'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_create_rejects_percentage_above_100(self):
        response = self.client.post('/api/v1/discounts/', {
            'code': 'TOO-MUCH', 'name': 'Too much', 'discount_type': 'percentage', 'discount_value': '120',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discount_value', response.data)

    def test_list_filters(self):
        TestDataFactory.create_discount(code='A', template='clearance', distributor_code='D1')
        TestDataFactory.create_discount(code='B', template='seasonal', distributor_code='D1')
        TestDataFactory.create_discount(code='C', template='clearance', distributor_code='D2')
        response = self.client.get('/api/v1/discounts/', {'template': 'clearance'})
        self.assertEqual([row['code'] for row in response.data['results']], ['A'])

    def test_calculate_bare_price(self):
        response = self.client.post('/api/v1/discounts/calculate/', {'base_price': '10.00', 'quantity': 3},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['final_price'], '30.00')
        self.assertEqual(response.data['formatted']['subtotal'], '$30,00')

    def test_calculate_requires_price_or_product(self):
        response = self.client.post('/api/v1/discounts/calculate/', {'quantity': 3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_calculate_product_with_volume_discount(self):
        product = TestDataFactory.create_product(price=Decimal('10.00'))
        TestDataFactory.create_discount(template='tiered_volume', distributor_code='D1',
                                        config={'tiers': [{'min_qty': 5, 'discount': 10}]})
        shopper = TestDataFactory.create_user(distributor_code='D1')
        self.client.authenticate_user(shopper)
        response = self.client.post('/api/v1/discounts/calculate/', {'product_id': product.id, 'quantity': 5},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['subtotal'], '50.00')
        self.assertEqual(response.data['final_price'], '45.00')

    def test_evaluate_cart(self):
        product = TestDataFactory.create_product(price=Decimal('10.00'))
        TestDataFactory.create_discount(template='buy_x_get_y', config={'buy_quantity': 3, 'pay_quantity': 2},
                                        distributor_code='D1')
        response = self.client.post('/api/v1/discounts/evaluate-cart/', {
            'lines': [{'product_id': product.id, 'quantity': 3}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['subtotal'], '30.00')
        self.assertEqual(response.data['line_discounts'], ['10.00'])
        self.assertEqual(response.data['total_discount'], '10.00')

        response = self.client.post('/api/v1/discounts/evaluate-cart/', {
            'lines': [{'product_id': 999999, 'quantity': 1}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CouponAPITests(TestCase):
    def setUp(self):
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def test_create_normalizes_code(self):
        response = self.client.post('/api/v1/coupons/', {'code': ' save10 ', 'discount_type': 'percentage',
                                                         'value': '10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'SAVE10')
        self.assertEqual(Coupon.objects.get().distributor_code, 'D1')

        response = self.client.post('/api/v1/coupons/', {'code': 'SAVE10', 'value': '5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('code', response.data)

    def test_percentage_above_100(self):
        response = self.client.post('/api/v1/coupons/', {'code': 'ALL', 'value': '150'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_active_filter(self):
        TestDataFactory.create_coupon(code='ON', distributor_code='D1')
        TestDataFactory.create_coupon(code='OFF', distributor_code='D1', is_active=False)
        response = self.client.get('/api/v1/coupons/', {'is_active': 'true'})
        self.assertEqual([row['code'] for row in response.data['results']], ['ON'])

    def test_validate(self):
        TestDataFactory.create_coupon(code='TEN', distributor_code='D1')
        shopper = TestDataFactory.create_user(distributor_code='D1')
        self.client.authenticate_user(shopper)
        response = self.client.post('/api/v1/coupons/validate/', {'code': 'ten', 'subtotal': '50.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['valid'])
        self.assertEqual(response.data['discount_amount'], '5.00')
        self.assertEqual(response.data['subtotal_after_discount'], '45.00')

        response = self.client.post('/api/v1/coupons/validate/', {'code': 'NOPE', 'subtotal': '50.00'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'error': 'Invalid coupon code.', 'code': 'invalid_coupon'})


class PricingBulkImportTests(TestCase):
    def setUp(self):
        cache.clear()
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def price_list_row(self, code, **extra):
        row = {'price_list_id': code, 'name': f'List {code}', 'currency': 'USD', 'country': 'EC',
               'customer_type': 'retail', 'channel': 'store', 'start_date': '2026-01-01'}
        row.update(extra)
        return row

    def test_price_lists(self):
        items = [
            self.price_list_row('PL-A', priority=1),
            self.price_list_row('PL-B', currency='GBP'),
            self.price_list_row('PL-C', priority=1, channel='online', end_date='2025-01-01'),
        ]
        response = self.client.post('/api/v1/price-lists/bulk/', {'items': items}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        results = response.data['results']
        self.assertEqual(results['successCount'], 1)
        self.assertEqual(results['errorCount'], 2)
        self.assertEqual(results['validations']['invalidCurrencies'], ['GBP'])
        self.assertEqual(results['validations']['dateConflicts'], [{'index': 2, 'price_list_id': 'PL-C'}])
        self.assertEqual(PriceList.objects.get(code='PL-A').distributor_code, 'D1')
        self.assertTrue(AuditLog.objects.filter(action='bulk_import', model_name='price_lists').exists())

    def test_overlapping_price_lists_are_reported(self):
        items = [self.price_list_row('PL-A', priority=1), self.price_list_row('PL-B', priority=1)]
        response = self.client.post('/api/v1/price-lists/bulk/', items, format='json')
        validations = response.data['results']['validations']
        self.assertEqual(validations['conflictingPriorities'][0]['with'], 'PL-A')
        self.assertEqual(validations['overlappingPeriods'][0]['price_list_id'], 'PL-B')
        self.assertEqual(PriceList.objects.count(), 2)

    def test_dry_run(self):
        response = self.client.post('/api/v1/price-lists/bulk/?dry_run=true',
                                    {'items': [self.price_list_row('PL-A')]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results']['successCount'], 1)
        self.assertFalse(PriceList.objects.exists())
        self.assertFalse(AuditLog.objects.filter(action='bulk_import').exists())

    def test_nothing_valid_is_400(self):
        response = self.client.post('/api/v1/price-lists/bulk/', {'items': [{'name': 'No code'}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_not_a_list(self):
        response = self.client.post('/api/v1/prices/bulk/', {'foo': 'bar'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_prices(self):
        TestDataFactory.create_price_list(code='WHOLESALE', distributor_code='D1')
        product = TestDataFactory.create_product(sku='RICE-5KG')
        base = {'name': 'Rice', 'productSku': 'RICE-5KG', 'productName': 'Rice 5kg', 'currency': 'USD',
                'validFrom': '2026-01-01', 'priceListId': 'WHOLESALE'}
        items = [
            {**base, 'priceId': 'PR-1', 'basePrice': '150', 'costPrice': '100', 'competitorPrice': '90'},
            {**base, 'priceId': 'PR-2', 'basePrice': '8', 'costPrice': '9'},
            {**base, 'priceId': 'PR-1', 'basePrice': '200'},
            {**base, 'priceId': 'PR-4', 'basePrice': '5', 'priceListId': 'MISSING'},
        ]
        response = self.client.post('/api/v1/prices/bulk/', {'items': items}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        results = response.data['results']
        self.assertEqual(results['successCount'], 1)
        self.assertEqual(results['errorCount'], 3)
        self.assertEqual(results['validations']['duplicatePriceIds'], ['PR-1'])
        self.assertEqual(results['validations']['priceConflicts'][0]['priceId'], 'PR-1')
        price = Price.objects.get(code='PR-1')
        self.assertEqual(price.product, product)
        self.assertEqual(price.tax_rate, Decimal('19.00'))
        self.assertIn('does not exist', results['errors'][-1]['error'])

    def test_discounts(self):
        base = {'name': 'Promo', 'type': 'percentage', 'discount_value': '10', 'currency': 'USD',
                'valid_from': '2026-01-01', 'category': 'snacks'}
        items = [
            {**base, 'discount_id': 'DS-1'},
            {**base, 'discount_id': 'DS-1'},
            {**base, 'discount_id': 'DS-3', 'type': 'mystery'},
            {**base, 'discount_id': 'DS-4', 'valid_from': '2026-03-01', 'valid_to': '2026-02-01'},
            {**base, 'discount_id': 'DS-5', 'channel': 'online'},
        ]
        response = self.client.post('/api/v1/discounts/bulk/', {'items': items}, format='json')
        results = response.data['results']
        self.assertEqual(results['successCount'], 2)
        self.assertEqual(results['validations']['duplicateIds'], ['DS-1'])
        self.assertEqual(results['validations']['invalidTypes'], ['mystery'])
        self.assertEqual(results['validations']['dateConflicts'], [{'index': 3, 'discount_id': 'DS-4'}])
        discount = Discount.objects.get(code='DS-1')
        self.assertEqual(discount.applicable_to, [{'type': 'category', 'value': 'snacks'}])
        self.assertEqual(discount.distributor_code, 'D1')

    def test_prices_cannot_target_another_distributors_list(self):
        TestDataFactory.create_price_list(code='THEIRS', distributor_code='D2')
        TestDataFactory.create_product(sku='RICE-5KG')
        item = {'name': 'Rice', 'productSku': 'RICE-5KG', 'productName': 'Rice 5kg', 'currency': 'USD',
                'validFrom': '2026-01-01', 'priceListId': 'THEIRS', 'priceId': 'PR-X', 'basePrice': '150'}
        response = self.client.post('/api/v1/prices/bulk/', {'items': [item]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('price list THEIRS does not exist', response.data['results']['errors'][0]['error'])
        self.assertFalse(Price.objects.filter(code='PR-X').exists())

    def test_other_distributors_rows_do_not_overlap(self):
        TestDataFactory.create_price_list(code='D2-LIST', distributor_code='D2', channel='store',
                                          customer_type='retail', priority=1)
        TestDataFactory.create_discount(code='D2-PROMO', distributor_code='D2', channel='all',
                                        applicable_to=[{'type': 'category', 'value': 'snacks'}])
        response = self.client.post('/api/v1/price-lists/bulk/', [self.price_list_row('PL-A', priority=1)],
                                    format='json')
        validations = response.data['results']['validations']
        self.assertEqual(validations['conflictingPriorities'], [])
        self.assertEqual(validations['overlappingPeriods'], [])

        discount = {'discount_id': 'DS-1', 'name': 'Promo', 'type': 'percentage', 'discount_value': '10',
                    'currency': 'USD', 'valid_from': '2026-01-01', 'category': 'snacks'}
        response = self.client.post('/api/v1/discounts/bulk/', [discount], format='json')
        self.assertEqual(response.data['results']['successCount'], 1)
        self.assertEqual(response.data['results']['validations']['overlappingDiscounts'], [])
