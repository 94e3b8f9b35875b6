"""Endpoint repositories of the storefront API, grouped as StorefrontApi"""
import json
from typing import Any, Dict, List, Optional

from .http_client import HttpClient, ApiResponse


class Resource:
    """CRUD calls on a collection endpoint such as 'clients/'"""

    def __init__(self, http: HttpClient, path: str):
        self.http = http
        self.path = path.strip('/') + '/'

    def item_path(self, pk, suffix=''):
        path = f'{self.path}{pk}/'
        return f'{path}{suffix.strip("/")}/' if suffix else path

    def list(self, **params) -> ApiResponse:
        return self.http.get(self.path, params=params or None)

    def get(self, pk) -> ApiResponse:
        return self.http.get(self.item_path(pk))

    def create(self, data: Dict[str, Any]) -> ApiResponse:
        return self.http.post(self.path, json=data)

    def update(self, pk, data: Dict[str, Any], partial: bool = True) -> ApiResponse:
        if partial:
            return self.http.patch(self.item_path(pk), json=data)
        return self.http.put(self.item_path(pk), json=data)

    def delete(self, pk) -> ApiResponse:
        return self.http.delete(self.item_path(pk))


class BulkImportMixin:
    """bulk/ endpoint accepting JSON items or an uploaded spreadsheet"""

    def bulk(self, items: List[Dict[str, Any]], dry_run: bool = False) -> ApiResponse:
        params = {'dry_run': 'true'} if dry_run else None
        return self.http.request('POST', f'{self.path}bulk/', params=params, json={'items': items})

    def bulk_upload(self, file, filename: str, mapping: Optional[Dict[str, str]] = None,
                    dry_run: bool = False) -> ApiResponse:
        fields = {'mapping': json.dumps(mapping)} if mapping else None
        params = {'dry_run': 'true'} if dry_run else None
        return self.http.upload(f'{self.path}bulk/', file, filename, fields=fields, params=params)


class AuthApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def login(self, username: str, password: str) -> ApiResponse:
        """Log in and keep the returned access and refresh tokens on the client"""
        response = self.http.post('auth/login/', json={'username': username, 'password': password})
        if isinstance(response.data, dict):
            self.http.set_tokens(response.data.get('access'), response.data.get('refresh'))
        return response

    def logout(self):
        self.http.clear_tokens()

    def register(self, data: Dict[str, Any]) -> ApiResponse:
        return self.http.post('auth/register/', json=data)

    def verify_otp(self, email: str, otp: str) -> ApiResponse:
        response = self.http.post('auth/verify-otp/', json={'email': email, 'otp': otp})
        if isinstance(response.data, dict) and response.data.get('access'):
            self.http.set_tokens(response.data['access'], response.data.get('refresh'))
        return response

    def resend_otp(self, email: str) -> ApiResponse:
        return self.http.post('auth/resend-otp/', json={'email': email})

    def refresh(self):
        self.http.refresh()

    def me(self) -> ApiResponse:
        return self.http.get('auth/me/')


class UserApi:
    def __init__(self, http: HttpClient):
        self.http = http
        self.addresses = Resource(http, 'user/addresses/')
        self.payment_methods = Resource(http, 'user/payment-methods/')

    def details(self) -> ApiResponse:
        return self.http.get('user/details/')

    def update_details(self, data: Dict[str, Any]) -> ApiResponse:
        return self.http.patch('user/details/', json=data)

    def set_type(self, user_type: str) -> ApiResponse:
        return self.http.patch('user/type/', json={'user_type': user_type})

    def change_password(self, current_password: str, new_password: str) -> ApiResponse:
        return self.http.post('user/change-password/', json={'current_password': current_password,
                                                              'new_password': new_password,
                                                              'new_password_confirm': new_password})

    def set_two_factor(self, enabled: bool) -> ApiResponse:
        return self.http.post('user/two-factor/', json={'enabled': enabled})


class ProductsApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def list(self, **params) -> ApiResponse:
        return self.http.get('products/', params=params or None)

    def get(self, pk) -> ApiResponse:
        return self.http.get(f'products/{pk}/')

    def featured(self) -> ApiResponse:
        return self.http.get('products/featured/')

    def with_discounts(self, pk) -> ApiResponse:
        return self.http.get(f'products/{pk}/with-discounts/')

    def list_with_discounts(self, **params) -> ApiResponse:
        return self.http.get('products/with-discounts/', params=params or None)


class CatalogApi:
    def __init__(self, http: HttpClient):
        self.categories = Resource(http, 'categories/')
        self.brands = Resource(http, 'brands/')


class CartApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def get(self) -> ApiResponse:
        return self.http.get('cart/')

    def add(self, product_id: int, quantity: int = 1) -> ApiResponse:
        return self.http.post('cart/add/', json={'product_id': product_id, 'quantity': quantity})

    def update(self, item_id: int, quantity: int) -> ApiResponse:
        return self.http.patch('cart/update/', json={'item_id': item_id, 'quantity': quantity})

    def remove(self, item_id: int) -> ApiResponse:
        return self.http.patch('cart/remove/', json={'item_id': item_id})

    def clear(self) -> ApiResponse:
        return self.http.patch('cart/clear/')


class OrdersApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def list(self, page: int = 1, limit: int = 20, **params) -> ApiResponse:
        return self.http.get('orders/', params={'page': page, 'limit': limit, **params})

    def get(self, pk) -> ApiResponse:
        return self.http.get(f'orders/{pk}/')

    def checkout(self, payment_type: str = 'CASH_ON_DELIVERY', **data) -> ApiResponse:
        return self.http.post('orders/', json={'payment_type': payment_type, **data})

    def cancel(self, pk) -> ApiResponse:
        return self.http.patch(f'orders/{pk}/cancel/')


class FavoritesApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def list(self) -> ApiResponse:
        return self.http.get('favorites/')

    def add(self, product_id: int) -> ApiResponse:
        return self.http.post('favorites/add/', json={'product_id': product_id})

    def remove(self, product_id: int) -> ApiResponse:
        return self.http.post('favorites/remove/', json={'product_id': product_id})


class PlansApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def list(self) -> ApiResponse:
        return self.http.get('plans/')

    def get(self, pk) -> ApiResponse:
        return self.http.get(f'plans/{pk}/')

    def select(self, plan_id: int) -> ApiResponse:
        return self.http.post('plans/select/', json={'plan_id': plan_id})


class AdminClientsApi(BulkImportMixin, Resource):
    def __init__(self, http: HttpClient):
        super().__init__(http, 'clients/')

    def by_code(self, code: str) -> ApiResponse:
        return self.http.get(f'clients/by-code/{code}/')

    def set_status(self, pk, status: str) -> ApiResponse:
        return self.http.patch(self.item_path(pk, 'status'), json={'status': status})

    def send_invitation(self, client_id: Optional[int] = None, email: Optional[str] = None) -> ApiResponse:
        data = {'client_id': client_id} if client_id else {'email': email}
        return self.http.post('clients/send-invitation/', json=data)

    def export_csv(self) -> bytes:
        return self.http.download('clients/export/')


class AdminProductsApi(BulkImportMixin, Resource):
    def __init__(self, http: HttpClient):
        super().__init__(http, 'products/')

    def match(self, items: List[Dict[str, Any]]) -> ApiResponse:
        """Match brand and category names against the catalog"""
        return self.http.post('products/match/', json={'items': items})

    def images(self, **params) -> ApiResponse:
        return self.http.get('product-images/', params=params or None)

    def add_image(self, data: Dict[str, Any]) -> ApiResponse:
        return self.http.post('product-images/', json=data)

    def delete_image(self, pk) -> ApiResponse:
        return self.http.delete(f'product-images/{pk}/')

    def assign_image(self, image_id: int, product_id: int, is_primary: bool = False) -> ApiResponse:
        return self.http.post('product-images/assign/', json={'image_id': image_id, 'product_id': product_id,
                                                              'is_primary': is_primary})

    def delete_images(self, ids: List[int]) -> ApiResponse:
        return self.http.post('product-images/batch-delete/', json={'ids': ids})

    def find_image_matches(self, image_id: int, min_similarity: int = 60) -> ApiResponse:
        return self.http.post('product-images/find-matches/', json={'image_id': image_id,
                                                                    'min_similarity': min_similarity})


class AdminPriceListsApi(BulkImportMixin, Resource):
    def __init__(self, http: HttpClient):
        super().__init__(http, 'price-lists/')

    def set_status(self, pk, status: str) -> ApiResponse:
        return self.http.patch(self.item_path(pk, 'status'), json={'status': status})

    def prices(self, pk, **params) -> ApiResponse:
        return self.http.get(self.item_path(pk, 'prices'), params=params or None)


class AdminPricesApi(BulkImportMixin, Resource):
    def __init__(self, http: HttpClient):
        super().__init__(http, 'prices/')


class AdminDiscountsApi(BulkImportMixin, Resource):
    def __init__(self, http: HttpClient):
        super().__init__(http, 'discounts/')

    def templates(self) -> ApiResponse:
        return self.http.get('discounts/templates/')

    def from_template(self, template: str, config: Dict[str, Any], name: str, **data) -> ApiResponse:
        return self.http.post('discounts/from-template/', json={'template': template, 'config': config,
                                                                'name': name, **data})

    def calculate(self, quantity: int, product_id: Optional[int] = None, base_price=None) -> ApiResponse:
        data = {'quantity': quantity}
        if product_id is not None:
            data['product_id'] = product_id
        if base_price is not None:
            data['base_price'] = str(base_price)
        return self.http.post('discounts/calculate/', json=data)

    def evaluate_cart(self, lines: List[Dict[str, Any]]) -> ApiResponse:
        return self.http.post('discounts/evaluate-cart/', json={'lines': lines})


class AdminOrdersApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def list(self, **params) -> ApiResponse:
        return self.http.get('admin/orders/', params=params or None)

    def get(self, pk) -> ApiResponse:
        return self.http.get(f'admin/orders/{pk}/')

    def update_status(self, pk, status: str, tracking_number: Optional[str] = None) -> ApiResponse:
        data = {'status': status}
        if tracking_number:
            data['tracking_number'] = tracking_number
        return self.http.patch(f'admin/orders/{pk}/status/', json=data)

    def stats(self, **params) -> ApiResponse:
        return self.http.get('admin/orders/stats/', params=params or None)


class AdminCouponsApi(Resource):
    def __init__(self, http: HttpClient):
        super().__init__(http, 'coupons/')

    def validate(self, code: str, subtotal) -> ApiResponse:
        return self.http.post('coupons/validate/', json={'code': code, 'subtotal': str(subtotal)})


class AdminImportsApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def preview(self, file, filename: str, entity: str) -> ApiResponse:
        return self.http.upload('imports/preview/', file, filename, fields={'entity': entity})


class AdminApi:
    def __init__(self, http: HttpClient):
        self.clients = AdminClientsApi(http)
        self.products = AdminProductsApi(http)
        self.prices = AdminPricesApi(http)
        self.price_lists = AdminPriceListsApi(http)
        self.discounts = AdminDiscountsApi(http)
        self.orders = AdminOrdersApi(http)
        self.coupons = AdminCouponsApi(http)
        self.imports = AdminImportsApi(http)


class DashboardApi:
    def __init__(self, http: HttpClient):
        self.http = http

    def summary(self) -> ApiResponse:
        return self.http.get('dashboard/summary/')


class StorefrontApi:
    """
    Every endpoint of the storefront API behind one object:

        api = StorefrontApi(HttpClient('https://shop.example.com/api/v1'))
        api.auth.login('ana', 'secret')
        api.cart.add(product_id=12, quantity=3)
    """

    def __init__(self, http: HttpClient):
        self.http = http
        self.auth = AuthApi(http)
        self.user = UserApi(http)
        self.products = ProductsApi(http)
        self.catalog = CatalogApi(http)
        self.cart = CartApi(http)
        self.orders = OrdersApi(http)
        self.favorites = FavoritesApi(http)
        self.plans = PlansApi(http)
        self.admin = AdminApi(http)
        self.dashboard = DashboardApi(http)
