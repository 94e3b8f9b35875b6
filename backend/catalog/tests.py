"""
Test suite for the catalog module
Tests: categories, brands, product CRUD and visibility, filters, favorites,
bulk import, name matching and the image gallery
"""
from decimal import Decimal
from unittest import mock
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.catalog.bulk import bulk_create_products
from backend.catalog.matcher import levenshtein, match_name
from backend.catalog.models import Category, Brand, Product, ProductImage, Favorite
from backend.catalog.utils import image_similarity, filename_stems, generate_unique_sku


class CategoryBrandTests(TestCase):
    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.shopper = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()

    def test_create_category_generates_slug(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/categories/', {'name': 'Dairy Products'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'dairy-products')

    def test_sub_category_slug_includes_parent(self):
        parent = Category.objects.create(name='Drinks')
        child = Category.objects.create(name='Juice', parent=parent)
        self.assertEqual(child.slug, 'drinks-juice')

    def test_duplicate_names_get_unique_slugs(self):
        first = Brand.objects.create(name='Acme')
        Brand.objects.filter(pk=first.pk).update(name='Acme Old')
        second = Brand.objects.create(name='Acme')
        self.assertEqual(second.slug, 'acme-2')

    def test_root_filter(self):
        parent = TestDataFactory.create_category(name='Food')
        TestDataFactory.create_category(name='Snacks', parent=parent)
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/categories/', {'parent': 'root'})
        self.assertEqual([category['name'] for category in response.data], ['Food'])
        response = self.client.get('/api/v1/categories/', {'parent': parent.id})
        self.assertEqual([category['name'] for category in response.data], ['Snacks'])

    def test_shopper_cannot_create_or_see_inactive(self):
        Brand.objects.create(name='Hidden', is_active=False)
        Brand.objects.create(name='Visible')
        self.client.authenticate_user(self.shopper)
        response = self.client.post('/api/v1/brands/', {'name': 'Nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get('/api/v1/brands/')
        self.assertEqual([brand['name'] for brand in response.data], ['Visible'])

    def test_category_cannot_be_its_own_parent(self):
        category = TestDataFactory.create_category()
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/categories/{category.id}/', {'parent': category.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ProductAPITests(TestCase):
    def setUp(self):
        cache.clear()
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='ACME')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)
        self.category = TestDataFactory.create_category(name='Beverages')
        self.brand = TestDataFactory.create_brand(name='Andes')

    def test_create_product_is_scoped_to_distributor(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Mineral Water 500ml',
            'price': '1.20',
            'category': self.category.id,
            'brand': self.brand.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        product = Product.objects.get(pk=response.data['id'])
        self.assertEqual(product.distributor_code, 'ACME')
        self.assertTrue(product.sku.startswith('MINE-'))
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Product').exists())

    def test_sale_price_cannot_exceed_price(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Juice', 'price': '2.00', 'price_sale': '3.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_sku_rejected(self):
        TestDataFactory.create_product(sku='WATER-1', distributor_code='ACME')
        response = self.client.post('/api/v1/products/', {'name': 'Water', 'sku': 'WATER-1', 'price': '1.00'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_price_update_is_audited_as_price_change(self):
        product = TestDataFactory.create_product(distributor_code='ACME', price=Decimal('5.00'))
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'price': '6.50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(action='price_change', object_id=str(product.id))
        self.assertEqual(log.changes['price'], {'old': '5.00', 'new': '6.50'})

    def test_list_only_shows_own_products(self):
        TestDataFactory.create_product(name='Mine', distributor_code='ACME')
        TestDataFactory.create_product(name='Theirs', distributor_code='OTHER')
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['name'] for row in response.data['results']], ['Mine'])

    def test_list_is_cached_until_a_product_changes(self):
        product = TestDataFactory.create_product(distributor_code='ACME')
        self.assertEqual(self.client.get('/api/v1/products/')['X-Cache'], 'MISS')
        self.assertEqual(self.client.get('/api/v1/products/')['X-Cache'], 'HIT')
        product.name = 'Renamed'
        product.save()
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(response.data['results'][0]['name'], 'Renamed')

    def test_filters(self):
        TestDataFactory.create_product(name='Orange Juice', category=self.category, brand=self.brand,
                                       price=Decimal('3.00'), distributor_code='ACME', tags=['Organic'])
        TestDataFactory.create_product(name='Apple Juice', price=Decimal('8.00'), distributor_code='ACME',
                                       stock_quantity=0)
        self.assertEqual(self.client.get('/api/v1/products/', {'search': 'juice orange'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/v1/products/', {'search': 'andes'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/v1/products/', {'max_price': '5'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/v1/products/', {'in_stock': 'false'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/v1/products/', {'tag': 'organic'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/v1/products/', {'category': self.category.id}).data['count'], 1)

    def test_delete_product(self):
        product = TestDataFactory.create_product(distributor_code='ACME')
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())
        self.assertTrue(AuditLog.objects.filter(action='delete', object_reference=product.sku).exists())


class StorefrontProductTests(TestCase):
    def setUp(self):
        cache.clear()
        self.shopper = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.shopper)

    def test_shopper_sees_only_published_storefront_products(self):
        TestDataFactory.create_product(name='Live')
        TestDataFactory.create_product(name='New arrival', status='new')
        TestDataFactory.create_product(name='Draft', status='draft')
        TestDataFactory.create_product(name='Unpublished', published=False)
        response = self.client.get('/api/v1/products/')
        self.assertEqual(sorted(row['name'] for row in response.data['results']), ['Live', 'New arrival'])

    def test_draft_detail_is_not_found(self):
        product = TestDataFactory.create_product(status='draft')
        response = self.client.get(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_shopper_cannot_edit(self):
        product = TestDataFactory.create_product()
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'price': '1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_featured(self):
        TestDataFactory.create_product(name='Star', featured=True)
        TestDataFactory.create_product(name='Plain')
        response = self.client.get('/api/v1/products/featured/')
        self.assertEqual([row['name'] for row in response.data], ['Star'])

    def test_with_discounts_shows_final_price(self):
        product = TestDataFactory.create_product(price=Decimal('100.00'))
        TestDataFactory.create_discount(template='clearance', config={'discount_value': 20})
        response = self.client.get(f'/api/v1/products/{product.id}/with-discounts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['has_discounts'])
        self.assertEqual(response.data['pricing']['base_price'], '100.00')
        self.assertEqual(Decimal(response.data['pricing']['final_price']), Decimal('80.00'))

    def test_list_with_discounts_uses_price_list(self):
        product = TestDataFactory.create_product(price=Decimal('10.00'))
        price_list = TestDataFactory.create_price_list(code='WHOLESALE')
        TestDataFactory.create_price(price_list, product, base_price=Decimal('7.50'))
        TestDataFactory.create_client(user=self.shopper, information={'priceList': 'WHOLESALE'})
        response = self.client.get('/api/v1/products/with-discounts/')
        row = response.data['results'][0]
        self.assertEqual(row['pricing']['price_list'], 'WHOLESALE')
        self.assertEqual(Decimal(row['pricing']['final_price']), Decimal('7.50'))
        self.assertFalse(row['has_discounts'])


class FavoriteTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product()

    def test_add_is_idempotent_and_counts_likes(self):
        response = self.client.post('/api/v1/favorites/add/', {'product_id': self.product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/favorites/add/', {'product_id': self.product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.likes, 1)
        self.assertEqual(len(self.client.get('/api/v1/favorites/').data), 1)

    def test_remove(self):
        self.client.post('/api/v1/favorites/add/', {'product_id': self.product.id}, format='json')
        response = self.client.post('/api/v1/favorites/remove/', {'product_id': self.product.id}, format='json')
        self.assertTrue(response.data['removed'])
        self.assertFalse(Favorite.objects.filter(user=self.user).exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.likes, 0)


class ProductBulkImportTests(TestCase):
    def setUp(self):
        cache.clear()
        self.brand = TestDataFactory.create_brand(name='Andes')

    def test_valid_rows_are_created_and_invalid_reported(self):
        result = bulk_create_products([
            {'name': 'Water', 'sku': 'W-1', 'price': '1.00', 'brand': 'andes', 'category': 'Drinks',
             'sub_category': 'Still'},
            {'name': '', 'price': '2.00'},
            {'name': 'Soda', 'sku': 'W-1', 'price': '1.50'},
            {'name': 'Juice', 'price': '2.00', 'price_sale': '3.00'},
        ], distributor_code='ACME')

        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.error_count, 3)
        product = Product.objects.get(sku='W-1')
        self.assertEqual(product.brand, self.brand)
        self.assertEqual(product.category.name, 'Drinks')
        self.assertEqual(product.sub_category.parent, product.category)
        self.assertEqual(product.distributor_code, 'ACME')
        self.assertEqual(result.validations['duplicateSkus'], ['W-1'])
        self.assertEqual(result.validations['createdCategories'], 1)
        self.assertEqual(result.validations['createdBrands'], 0)

    def test_dry_run_saves_nothing(self):
        result = bulk_create_products([{'name': 'Water', 'price': '1.00', 'category': 'Drinks'}], dry_run=True)
        self.assertEqual(result.success_count, 1)
        self.assertFalse(Product.objects.exists())
        self.assertFalse(Category.objects.exists())

    def test_bulk_endpoint(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_distributor_user(distributor_code='ACME'))
        response = client.post('/api/v1/products/bulk/', {'items': [{'name': 'Water', 'price': '1.00'}]},
                               format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['results']['successCount'], 1)
        self.assertTrue(AuditLog.objects.filter(action='bulk_import', model_name='products').exists())

    def test_bulk_endpoint_rejects_non_list(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_admin())
        response = client.post('/api/v1/products/bulk/', {'items': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


@override_settings(PRODUCT_MATCHER_AI_ENABLED=False)
class MatcherTests(TestCase):
    def test_levenshtein(self):
        self.assertEqual(levenshtein('kitten', 'sitting'), 3)
        self.assertEqual(levenshtein('', 'abc'), 3)

    def test_exact_match_ignores_case_and_spaces(self):
        result = match_name('  coca   COLA ', [{'id': 1, 'name': 'Coca Cola'}])
        self.assertTrue(result.matched)
        self.assertEqual(result.confidence, 1.0)

    def test_fuzzy_match(self):
        result = match_name('Nestle', [{'id': 4, 'name': 'Nestlé'}, {'id': 5, 'name': 'Unilever'}])
        self.assertTrue(result.matched)
        self.assertEqual(result.matched_id, 4)

    def test_no_match_suggests_creating(self):
        result = match_name('Pepsi', [{'id': 1, 'name': 'Coca Cola'}])
        self.assertFalse(result.matched)
        self.assertTrue(result.should_create)

    def test_empty_input(self):
        self.assertFalse(match_name('  ', [{'id': 1, 'name': 'Coca Cola'}]).should_create)

    def test_match_endpoint(self):
        TestDataFactory.create_brand(name='Andes')
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_admin())
        response = client.post('/api/v1/products/match/', {'items': [{'name': 'Water', 'brand': 'ANDES'}]},
                               format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['results'][0]['brand']['matched'])
        self.assertFalse(response.data['results'][0]['category']['matched'])


class ImageGalleryTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_distributor_user(distributor_code='ACME')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(sku='ABC-123', name='Green Tea', distributor_code='ACME')

    def test_filename_stems(self):
        self.assertEqual(sorted(filename_stems('ABC-123_2.jpg')), ['abc123', 'abc1232'])
        self.assertEqual(filename_stems(''), [])

    def test_image_similarity(self):
        self.assertEqual(image_similarity('ABC-123.jpg', self.product), 100)
        self.assertEqual(image_similarity('abc123 (2).png', self.product), 100)
        self.assertLess(image_similarity('zzz.png', self.product), 60)

    def test_register_and_assign_first_image_as_primary(self):
        response = self.client.post('/api/v1/product-images/',
                                    {'image_url': 'https://cdn.example.com/img/ABC-123.jpg'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['filename'], 'ABC-123.jpg')
        image_id = response.data['id']

        unassigned = self.client.get('/api/v1/product-images/', {'unassigned': 'true'})
        self.assertEqual(unassigned.data['count'], 1)

        response = self.client.post('/api/v1/product-images/assign/',
                                    {'image_id': image_id, 'product_id': self.product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_primary'])
        self.assertEqual(self.product.primary_image.id, image_id)

    def test_find_matches(self):
        TestDataFactory.create_product(sku='XYZ-999', name='Coffee', distributor_code='ACME')
        image = ProductImage.objects.create(image_url='https://cdn.example.com/ABC-123.jpg', filename='ABC-123.jpg',
                                            distributor_code='ACME')
        response = self.client.post('/api/v1/product-images/find-matches/', {'image_id': image.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['matches'][0]['product']['sku'], 'ABC-123')
        self.assertEqual(response.data['matches'][0]['similarity'], 100)

    def test_batch_delete_only_own_images(self):
        own = ProductImage.objects.create(image_url='https://cdn.example.com/a.jpg', distributor_code='ACME')
        other = ProductImage.objects.create(image_url='https://cdn.example.com/b.jpg', distributor_code='OTHER')
        response = self.client.post('/api/v1/product-images/batch-delete/', {'ids': [own.id, other.id]},
                                    format='json')
        self.assertEqual(response.data['deleted'], 1)
        self.assertTrue(ProductImage.objects.filter(pk=other.pk).exists())


@override_settings(OPENAI_API_KEY='sk-test', IMAGE_VISION_MODEL='gpt-4o')
class ImageAnalysisTests(TestCase):
    def setUp(self):
        self.user = TestDataFactory.create_distributor_user(distributor_code='ACME')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        TestDataFactory.create_product(sku='ABC-123', name='Green Tea', distributor_code='ACME')
        TestDataFactory.create_product(sku='OTHER-1', name='Coffee', distributor_code='OTHER')
        self.image = ProductImage.objects.create(image_url='https://cdn.example.com/tea.jpg', filename='tea.jpg',
                                                 distributor_code='ACME')

    def completion(self, content):
        return mock.Mock(choices=[mock.Mock(message=mock.Mock(content=content))])

    def analyze(self, action='analyze'):
        return self.client.post(f'/api/v1/product-images/{self.image.id}/{action}/', format='json')

    @mock.patch('openai.OpenAI')
    def test_analyze_stores_result(self, openai_cls):
        create = openai_cls.return_value.chat.completions.create
        create.return_value = self.completion(
            '```json\n{"productInfo": {"name": "Green Tea 100g", "brand": "Andes"}, "tags": ["tea"], '
            '"confidence": 90}\n```')
        response = self.analyze()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['analysis']['productInfo']['name'], 'Green Tea 100g')
        self.assertEqual(response.data['analysis']['model'], 'gpt-4o')
        self.assertIn('analyzedAt', response.data['analysis'])

        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs['model'], 'gpt-4o')
        content = kwargs['messages'][0]['content']
        self.assertEqual(content[1]['image_url']['url'], 'https://cdn.example.com/tea.jpg')
        self.assertIn('ABC-123', content[0]['text'])
        self.assertNotIn('OTHER-1', content[0]['text'])

        self.image.refresh_from_db()
        self.assertEqual(self.image.analysis['tags'], ['tea'])

    @mock.patch('openai.OpenAI')
    def test_stored_analysis_is_reused_until_reanalyzed(self, openai_cls):
        self.image.analysis = {'tags': ['old']}
        self.image.save()
        create = openai_cls.return_value.chat.completions.create
        create.return_value = self.completion('{"tags": ["new"]}')

        response = self.analyze()
        self.assertEqual(response.data['analysis'], {'tags': ['old']})
        create.assert_not_called()

        response = self.analyze('re-analyze')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['analysis']['tags'], ['new'])
        create.assert_called_once()

    @mock.patch('openai.OpenAI')
    def test_failed_call(self, openai_cls):
        openai_cls.return_value.chat.completions.create.return_value = self.completion('I cannot see the image')
        response = self.analyze()
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data['code'], 'image_analysis_failed')
        self.image.refresh_from_db()
        self.assertEqual(self.image.analysis, {})

    @override_settings(OPENAI_API_KEY='')
    def test_not_configured(self):
        response = self.analyze()
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['code'], 'ai_unavailable')

    def test_other_distributor_image_not_found(self):
        other = ProductImage.objects.create(image_url='https://cdn.example.com/x.jpg', distributor_code='OTHER')
        response = self.client.post(f'/api/v1/product-images/{other.id}/analyze/', format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_analysis_is_read_only(self):
        response = self.client.post('/api/v1/product-images/', {
            'image_url': 'https://cdn.example.com/new.jpg', 'analysis': {'tags': ['fake']},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['analysis'], {})


class UtilsTests(TestCase):
    def test_generate_unique_sku(self):
        sku = generate_unique_sku('Green tea!')
        self.assertTrue(sku.startswith('GREE-'))
        self.assertEqual(len(sku.split('-')), 3)
        self.assertTrue(generate_unique_sku('').startswith('PRD-'))
