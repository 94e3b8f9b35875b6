"""
Test suite for the core module
Tests: registration and OTP verification, login, profile settings, addresses,
payment methods, plans, distributors, tenant scoping and the dashboard summary
"""
import importlib
import os
from datetime import timedelta
from unittest import mock
from django.core import mail
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from backend.core.models import User, OneTimeCode, AuditLog, Plan, Distributor, ShippingAddress, PaymentMethod
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import scope_queryset, paginate, get_client_ip
from backend.catalog.models import Product


class RegistrationTests(TestCase):
    """Register, verify and resend one-time codes"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.payload = {
            'email': 'Maria@Example.com',
            'password': 'Sup3r-secret-pw',
            'password_confirm': 'Sup3r-secret-pw',
            'first_name': 'Maria',
            'last_name': 'Lopez',
        }

    def test_register_creates_unverified_user_and_sends_code(self):
        response = self.client.post('/api/v1/auth/register/', self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

        user = User.objects.get(email='maria@example.com')
        self.assertEqual(user.username, 'maria@example.com')
        self.assertEqual(user.user_type, 'client')
        self.assertFalse(user.is_verified)
        code = user.one_time_codes.get()
        self.assertEqual(len(code.code), 6)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(code.code, mail.outbox[0].body)

    def test_register_rejects_mismatched_passwords(self):
        self.payload['password_confirm'] = 'different-pw-123'
        response = self.client.post('/api/v1/auth/register/', self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_register_rejects_duplicate_email(self):
        TestDataFactory.create_user(username='existing', email='maria@example.com')
        response = self.client.post('/api/v1/auth/register/', self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_register_ignores_requested_user_type(self):
        for requested in ('admin', 'distributor'):
            payload = dict(self.payload, email=f'{requested}@example.com', user_type=requested)
            response = self.client.post('/api/v1/auth/register/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)
            user = User.objects.get(email=f'{requested}@example.com')
            self.assertEqual(user.user_type, 'client')
            self.assertFalse(user.can_access_dashboard)

    def test_registered_user_cannot_manage_platform_products(self):
        product = TestDataFactory.create_product()
        self.client.post('/api/v1/auth/register/', dict(self.payload, user_type='distributor'), format='json')
        self.client.authenticate_user(User.objects.get(email='maria@example.com'))
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Product.objects.filter(id=product.id).exists())

    def test_register_with_invitation_links_client(self):
        invited = TestDataFactory.create_client(email='maria@example.com', distributor_code='ACME')
        response = self.client.post('/api/v1/auth/register/',
                                    dict(self.payload, invitation_code=invited.client_code), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        user = User.objects.get(email='maria@example.com')
        invited.refresh_from_db()
        self.assertEqual(invited.user, user)
        self.assertEqual(user.user_type, 'client')
        self.assertEqual(user.distributor_code, 'ACME')

    def test_register_with_invitation_for_another_email(self):
        invited = TestDataFactory.create_client(email='someone@example.com', distributor_code='ACME')
        response = self.client.post('/api/v1/auth/register/',
                                    dict(self.payload, invitation_code=invited.client_code), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('invitation_code', response.data)
        self.assertFalse(User.objects.filter(email='maria@example.com').exists())

    def test_otp_only_returned_in_debug(self):
        response = self.client.post('/api/v1/auth/register/', self.payload, format='json')
        self.assertNotIn('otp', response.data)
        with override_settings(DEBUG=True):
            user = User.objects.get(email='maria@example.com')
            response = self.client.post('/api/v1/auth/resend-otp/', {'email': user.email}, format='json')
        self.assertEqual(response.data['otp'], user.one_time_codes.filter(used_at__isnull=True).get().code)

    def test_debug_is_off_unless_enabled(self):
        with mock.patch.dict(os.environ):
            os.environ.pop('DJANGO_DEBUG', None)
            project_settings = importlib.reload(importlib.import_module('backend.config.settings'))
        self.assertFalse(project_settings.DEBUG)

    def test_verify_otp_marks_user_verified(self):
        self.client.post('/api/v1/auth/register/', self.payload, format='json')
        code = OneTimeCode.objects.get(user__email='maria@example.com')

        response = self.client.post('/api/v1/auth/verify-otp/',
                                    {'email': 'maria@example.com', 'otp': code.code}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['user']['is_verified'])
        code.refresh_from_db()
        self.assertIsNotNone(code.used_at)

    def test_verify_otp_with_wrong_code(self):
        self.client.post('/api/v1/auth/register/', self.payload, format='json')
        code = OneTimeCode.objects.get(user__email='maria@example.com')
        wrong = '000000' if code.code != '000000' else '111111'

        response = self.client.post('/api/v1/auth/verify-otp/',
                                    {'email': 'maria@example.com', 'otp': wrong}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(User.objects.get(email='maria@example.com').is_verified)

    def test_verify_otp_expired(self):
        user = TestDataFactory.create_user()
        code = OneTimeCode.issue(user)
        OneTimeCode.objects.filter(pk=code.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

        response = self.client.post('/api/v1/auth/verify-otp/', {'email': user.email, 'otp': code.code}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('expired', response.data['error'])

    def test_resend_otp_invalidates_previous_code(self):
        user = TestDataFactory.create_user()
        first = OneTimeCode.issue(user)

        response = self.client.post('/api/v1/auth/resend-otp/', {'email': user.email}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        first.refresh_from_db()
        self.assertIsNotNone(first.used_at)
        self.assertEqual(user.one_time_codes.filter(used_at__isnull=True).count(), 1)

    def test_resend_otp_for_verified_user(self):
        user = TestDataFactory.create_user()
        user.is_verified = True
        user.save()
        response = self.client.post('/api/v1/auth/resend-otp/', {'email': user.email}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AuthTests(TestCase):
    """Login, refresh and current user"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_distributor_user(distributor_code='ACME', username='acme_owner')

    def test_login_returns_tokens_and_user(self):
        response = self.client.post('/api/v1/auth/login/',
                                    {'username': 'acme_owner', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['distributor_code'], 'ACME')

    def test_login_with_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/',
                                    {'username': 'acme_owner', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_token(self):
        login = self.client.post('/api/v1/auth/login/',
                                 {'username': 'acme_owner', 'password': 'testpass123'}, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_with_garbage_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_includes_access_flags_and_distributor(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['can_access_dashboard'])
        self.assertFalse(response.data['is_admin'])
        self.assertEqual(response.data['distributor']['distributor_code'], 'ACME')

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class UserSettingsTests(TestCase):
    """Profile, password, two-factor, addresses and payment methods"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_update_details(self):
        response = self.client.patch('/api/v1/user/details/', {'city': 'Guayaquil', 'phone': '0999'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.city, 'Guayaquil')

    def test_switch_user_type(self):
        response = self.client.patch('/api/v1/user/type/', {'user_type': 'admin'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch('/api/v1/user/type/', {'user_type': 'client'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_switch_to_distributor_requires_profile(self):
        response = self.client.patch('/api/v1/user/type/', {'user_type': 'distributor'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.user.refresh_from_db()
        self.assertEqual(self.user.user_type, 'client')
        self.assertFalse(self.user.can_access_dashboard)

    def test_switch_to_distributor_takes_profile_code(self):
        Distributor.objects.create(owner=self.user, business_name='Acme', distributor_code='ACME')
        response = self.client.patch('/api/v1/user/type/', {'user_type': 'distributor'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['distributor_code'], 'ACME')
        self.user.refresh_from_db()
        self.assertTrue(self.user.can_access_dashboard)

    def test_change_password(self):
        response = self.client.post('/api/v1/user/change-password/', {
            'current_password': 'testpass123',
            'new_password': 'An0ther-strong-pw',
            'new_password_confirm': 'An0ther-strong-pw',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('An0ther-strong-pw'))
        self.assertTrue(AuditLog.objects.filter(action='password_change', object_id=str(self.user.id)).exists())

    def test_change_password_with_wrong_current(self):
        response = self.client.post('/api/v1/user/change-password/', {
            'current_password': 'wrong',
            'new_password': 'An0ther-strong-pw',
            'new_password_confirm': 'An0ther-strong-pw',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('current_password', response.data)

    def test_two_factor_toggle(self):
        response = self.client.post('/api/v1/user/two-factor/', {'enabled': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.two_factor_enabled)
        response = self.client.post('/api/v1/user/two-factor/', {'enabled': 'yes'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_first_address_becomes_default(self):
        data = {'recipient_name': 'Ana', 'address': 'Calle 1', 'city': 'Quito'}
        response = self.client.post('/api/v1/user/addresses/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_default'])

        response = self.client.post('/api/v1/user/addresses/', {**data, 'is_default': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(ShippingAddress.objects.filter(user=self.user, is_default=True).count(), 1)

    def test_address_of_another_user_is_not_found(self):
        other = TestDataFactory.create_user()
        address = TestDataFactory.create_address(other)
        response = self.client.get(f'/api/v1/user/addresses/{address.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_payment_method_keeps_last_four_digits(self):
        response = self.client.post('/api/v1/user/payment-methods/', {
            'method_type': 'CREDIT_CARD',
            'holder_name': 'Ana Torres',
            'card_number': '4111 1111 1111 1234',
            'expiry_month': 12,
            'expiry_year': 2030,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['last4'], '1234')
        self.assertNotIn('card_number', response.data)
        self.assertEqual(PaymentMethod.objects.get(user=self.user).last4, '1234')

    def test_card_payment_method_requires_number(self):
        response = self.client.post('/api/v1/user/payment-methods/', {'method_type': 'CREDIT_CARD'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class PlanAndDistributorTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.plan = Plan.objects.create(name='pro', display_name='Pro', price='49.00')
        Plan.objects.create(name='legacy', display_name='Legacy', is_active=False)

    def test_plans_are_public_and_active_only(self):
        response = self.client.get('/api/v1/plans/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([plan['name'] for plan in response.data], ['pro'])

    def test_distributor_create_turns_user_into_distributor(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/distributors/', {
            'business_name': 'Acme Foods',
            'distributor_code': 'ACME',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.user.refresh_from_db()
        self.assertEqual(self.user.user_type, 'distributor')
        self.assertEqual(self.user.distributor_code, 'ACME')

    def test_plan_select_requires_distributor(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/plans/select/', {'plan_id': self.plan.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_plan_select(self):
        owner = TestDataFactory.create_distributor_user(distributor_code='ACME')
        self.client.authenticate_user(owner)
        response = self.client.post('/api/v1/plans/select/', {'plan_id': self.plan.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Distributor.objects.get(distributor_code='ACME').plan, self.plan)

    def test_distributor_update_by_stranger_is_forbidden(self):
        owner = TestDataFactory.create_distributor_user(distributor_code='ACME')
        distributor = Distributor.objects.get(owner=owner)
        self.client.authenticate_user(self.user)
        response = self.client.patch(f'/api/v1/distributors/{distributor.id}/', {'business_name': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PermissionTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_client_cannot_use_dashboard(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/dashboard/summary/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_distributor_without_code_cannot_use_dashboard(self):
        user = TestDataFactory.create_user(user_type='distributor')
        self.assertFalse(user.can_access_dashboard)
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/dashboard/summary/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_users_endpoint_is_platform_admin_only(self):
        self.client.authenticate_user(TestDataFactory.create_distributor_user())
        self.assertEqual(self.client.get('/api/v1/users/').status_code, status.HTTP_403_FORBIDDEN)
        self.client.authenticate_user(TestDataFactory.create_admin())
        self.assertEqual(self.client.get('/api/v1/users/').status_code, status.HTTP_200_OK)


class UtilsTests(TestCase):
    def test_scope_queryset(self):
        TestDataFactory.create_product(distributor_code='ACME')
        TestDataFactory.create_product(distributor_code='OTHER')
        TestDataFactory.create_product()
        queryset = Product.objects.all()

        distributor = TestDataFactory.create_distributor_user(distributor_code='ACME')
        self.assertEqual(list(scope_queryset(queryset, distributor).values_list('distributor_code', flat=True)), ['ACME'])
        self.assertEqual(scope_queryset(queryset, TestDataFactory.create_admin()).count(), 3)
        self.assertEqual(list(scope_queryset(queryset, TestDataFactory.create_user()).values_list('distributor_code', flat=True)), [''])

    def test_paginate(self):
        from rest_framework.request import Request
        from rest_framework.test import APIRequestFactory
        from backend.core.serializers import PlanSerializer

        for index in range(5):
            Plan.objects.create(name=f'plan{index}', display_name=f'Plan {index}')
        request = Request(APIRequestFactory().get('/plans/', {'page': 2, 'limit': 2}))

        data = paginate(request, Plan.objects.order_by('name'), PlanSerializer)
        self.assertEqual(data['count'], 5)
        self.assertEqual(data['page'], 2)
        self.assertEqual(data['total_pages'], 3)
        self.assertEqual(data['next'], 3)
        self.assertEqual(data['previous'], 1)
        self.assertEqual([plan['name'] for plan in data['results']], ['plan2', 'plan3'])

    def test_get_client_ip_prefers_forwarded_header(self):
        from rest_framework.test import APIRequestFactory
        request = APIRequestFactory().get('/', HTTP_X_FORWARDED_FOR='10.0.0.1, 10.0.0.2')
        self.assertEqual(get_client_ip(request), '10.0.0.1')


class DashboardTests(TestCase):
    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_distributor_user(distributor_code='ACME')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_empty_distributor_gets_recommendations(self):
        response = self.client.get('/api/v1/dashboard/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['setup_complete'])
        steps = [item['step'] for item in response.data['recommendations']]
        self.assertEqual(steps, ['products', 'clients', 'price_lists', 'discounts'])

    def test_summary_counts_only_own_rows(self):
        TestDataFactory.create_product(distributor_code='ACME')
        TestDataFactory.create_product(distributor_code='OTHER')
        response = self.client.get('/api/v1/dashboard/summary/')
        self.assertEqual(response.data['products']['total'], 1)
        self.assertEqual(response['Cache-Control'], 'private, max-age=60')
