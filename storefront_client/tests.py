"""
Tests for the storefront API client.

Run with: python -m unittest storefront_client.tests
"""
import io
import json
import unittest
from unittest import mock

import requests

from storefront_client import HttpClient, ApiError, StorefrontApi


def make_response(status_code=200, body=None, content=None, reason='OK'):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = reason
    if content is not None:
        response.content = content
        response.json.side_effect = ValueError('not json')
        response.text = content.decode('utf-8', 'replace')
    elif body is None:
        response.content = b''
        response.json.side_effect = ValueError('empty')
        response.text = ''
    else:
        response.content = json.dumps(body).encode('utf-8')
        response.json.return_value = body
        response.text = json.dumps(body)
    return response


class HttpClientTest(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.session.headers = {}
        self.client = HttpClient('https://shop.example.com/api/v1/', token='access-1',
                                 refresh_token='refresh-1', session=self.session)

    def test_get_sends_bearer_token_and_json_headers(self):
        self.session.request.return_value = make_response(body={'results': []})

        response = self.client.get('products/', params={'page': 2})

        self.assertTrue(response.success)
        self.assertEqual(response.status, 200)
        self.assertEqual(response.data, {'results': []})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('GET', 'https://shop.example.com/api/v1/products/'))
        self.assertEqual(kwargs['params'], {'page': 2})
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer access-1')
        self.assertEqual(kwargs['headers']['Content-Type'], 'application/json')
        self.assertEqual(self.session.headers['Accept'], 'application/json')
        self.assertEqual(kwargs['timeout'], 30)

    def test_no_authorization_header_without_token(self):
        client = HttpClient('https://shop.example.com/api/v1', session=self.session)
        self.session.request.return_value = make_response(body=[])

        client.get('plans/')

        headers = self.session.request.call_args[1]['headers']
        self.assertNotIn('Authorization', headers)

    def test_non_2xx_raises_api_error_with_body(self):
        self.session.request.return_value = make_response(
            status_code=400, body={'error': 'Cart is empty.', 'code': 'empty_cart'}, reason='Bad Request')

        with self.assertRaises(ApiError) as ctx:
            self.client.post('orders/', json={})

        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.message, 'Cart is empty.')
        self.assertEqual(ctx.exception.error_code, 'empty_cart')
        self.assertEqual(ctx.exception.data['code'], 'empty_cart')

    def test_post_with_success_false_raises(self):
        self.session.request.return_value = make_response(
            body={'success': False, 'message': 'Nothing imported', 'errorCode': 'EMPTY'})

        with self.assertRaises(ApiError) as ctx:
            self.client.post('clients/bulk/', json={'items': []})

        self.assertEqual(ctx.exception.message, 'Nothing imported')
        self.assertEqual(ctx.exception.error_code, 'EMPTY')

    def test_get_with_success_false_is_returned(self):
        self.session.request.return_value = make_response(body={'success': False})

        response = self.client.get('dashboard/summary/')

        self.assertEqual(response.data, {'success': False})

    def test_connection_error_raises_status_zero(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError('refused')

        with self.assertLogs('storefront_client.http_client', level='ERROR'):
            with self.assertRaises(ApiError) as ctx:
                self.client.get('products/')

        self.assertEqual(ctx.exception.status, 0)

    def test_401_refreshes_once_and_replays(self):
        self.session.request.side_effect = [
            make_response(status_code=401, body={'detail': 'expired'}),
            make_response(body={'id': 1}),
        ]
        self.session.post.return_value = make_response(body={'access': 'access-2', 'refresh': 'refresh-2'})

        response = self.client.get('auth/me/')

        self.assertEqual(response.data, {'id': 1})
        self.assertEqual(self.client.token, 'access-2')
        self.assertEqual(self.client.refresh_token, 'refresh-2')
        self.session.post.assert_called_once()
        self.assertEqual(self.session.post.call_args[1]['json'], {'refresh': 'refresh-1'})
        replay_headers = self.session.request.call_args_list[1][1]['headers']
        self.assertEqual(replay_headers['Authorization'], 'Bearer access-2')

    def test_second_401_is_not_refreshed_again(self):
        self.session.request.return_value = make_response(status_code=401, body={'detail': 'nope'})
        self.session.post.return_value = make_response(body={'access': 'access-2'})

        with self.assertRaises(ApiError) as ctx:
            self.client.get('auth/me/')

        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(self.session.request.call_count, 2)
        self.session.post.assert_called_once()

    def test_failed_refresh_clears_tokens(self):
        self.session.request.return_value = make_response(status_code=401, body={'detail': 'expired'})
        self.session.post.return_value = make_response(status_code=401, body={'detail': 'bad refresh'})

        with self.assertRaises(ApiError):
            self.client.get('auth/me/')

        self.assertIsNone(self.client.token)
        self.assertIsNone(self.client.refresh_token)
        self.assertEqual(self.session.request.call_count, 1)

    def test_401_without_refresh_token_raises(self):
        self.client.refresh_token = None
        self.session.request.return_value = make_response(status_code=401, body={'detail': 'expired'})

        with self.assertRaises(ApiError) as ctx:
            self.client.get('auth/me/')

        self.assertEqual(ctx.exception.status, 401)
        self.session.post.assert_not_called()

    def test_401_on_login_is_not_refreshed(self):
        self.session.request.return_value = make_response(status_code=401, body={'detail': 'bad credentials'})

        with self.assertRaises(ApiError) as ctx:
            self.client.post('auth/login/', json={'username': 'a', 'password': 'b'})

        self.assertEqual(ctx.exception.message, 'bad credentials')
        self.session.post.assert_not_called()
        self.assertEqual(self.client.refresh_token, 'refresh-1')

    def test_upload_stream_is_rewound_before_replay(self):
        stream = io.BytesIO(b'email\nana@test.com\n')
        sent = []

        def request(method, url, **kwargs):
            sent.append(kwargs['files']['file'][1].read())
            if len(sent) == 1:
                return make_response(status_code=401, body={'detail': 'expired'})
            return make_response(status_code=201, body={'success': True})

        self.session.request.side_effect = request
        self.session.post.return_value = make_response(body={'access': 'access-2'})

        self.client.upload('clients/bulk/', stream, 'clients.csv')

        self.assertEqual(sent, [b'email\nana@test.com\n', b'email\nana@test.com\n'])

    def test_unseekable_upload_is_not_replayed(self):
        stream = mock.Mock(spec=['read', 'seekable', 'seek'])
        stream.seekable.return_value = False
        self.session.request.return_value = make_response(status_code=401, body={'detail': 'expired'})
        self.session.post.return_value = make_response(body={'access': 'access-2'})

        with self.assertLogs('storefront_client.http_client', level='WARNING'):
            with self.assertRaises(ApiError) as ctx:
                self.client.upload('clients/bulk/', stream, 'clients.csv')

        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(self.session.request.call_count, 1)
        self.assertEqual(self.client.token, 'access-2')
        stream.seek.assert_not_called()

    def test_upload_sends_multipart_without_json_content_type(self):
        self.session.request.return_value = make_response(status_code=201, body={'success': True})

        self.client.upload('clients/bulk/', b'email\n', 'clients.csv', fields={'mapping': '{}'})

        kwargs = self.session.request.call_args[1]
        self.assertNotIn('Content-Type', kwargs['headers'])
        self.assertEqual(kwargs['files'], {'file': ('clients.csv', b'email\n')})
        self.assertEqual(kwargs['data'], {'mapping': '{}'})

    def test_download_returns_bytes(self):
        self.session.request.return_value = make_response(content=b'email,firstName\n')

        self.assertEqual(self.client.download('clients/export/'), b'email,firstName\n')

    def test_empty_body_is_none(self):
        self.session.request.return_value = make_response(status_code=204)

        response = self.client.delete('clients/3/')

        self.assertIsNone(response.data)
        self.assertEqual(response.status, 204)


class StorefrontApiTest(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.session.headers = {}
        self.http = HttpClient('https://shop.example.com/api/v1', session=self.session)
        self.api = StorefrontApi(self.http)

    def last_call(self):
        args, kwargs = self.session.request.call_args
        return args[0], args[1].replace('https://shop.example.com/api/v1/', ''), kwargs

    def test_login_stores_tokens(self):
        self.session.request.return_value = make_response(body={'access': 'a', 'refresh': 'r', 'user': {}})

        self.api.auth.login('ana', 'secret')

        self.assertEqual(self.http.token, 'a')
        self.assertEqual(self.http.refresh_token, 'r')
        method, path, kwargs = self.last_call()
        self.assertEqual((method, path), ('POST', 'auth/login/'))
        self.assertEqual(kwargs['json'], {'username': 'ana', 'password': 'secret'})

    def test_logout_clears_tokens(self):
        self.http.set_tokens('a', 'r')
        self.api.auth.logout()
        self.assertIsNone(self.http.token)

    def test_cart_calls(self):
        self.session.request.return_value = make_response(body={'items': [], 'total': '0.00', 'item_count': 0})

        self.api.cart.add(product_id=5, quantity=2)
        self.assertEqual(self.last_call()[:2], ('POST', 'cart/add/'))
        self.assertEqual(self.last_call()[2]['json'], {'product_id': 5, 'quantity': 2})

        self.api.cart.update(item_id=9, quantity=0)
        self.assertEqual(self.last_call()[:2], ('PATCH', 'cart/update/'))

        self.api.cart.clear()
        self.assertEqual(self.last_call()[:2], ('PATCH', 'cart/clear/'))

    def test_orders_calls(self):
        self.session.request.return_value = make_response(body={'results': []})

        self.api.orders.list(page=2)
        method, path, kwargs = self.last_call()
        self.assertEqual((method, path), ('GET', 'orders/'))
        self.assertEqual(kwargs['params'], {'page': 2, 'limit': 20})

        self.api.orders.cancel(4)
        self.assertEqual(self.last_call()[:2], ('PATCH', 'orders/4/cancel/'))

    def test_admin_resources(self):
        self.session.request.return_value = make_response(body={})

        self.api.admin.clients.set_status(3, 'I')
        self.assertEqual(self.last_call()[:2], ('PATCH', 'clients/3/status/'))

        self.api.admin.price_lists.update(7, {'name': 'Retail'})
        self.assertEqual(self.last_call()[:2], ('PATCH', 'price-lists/7/'))

        self.api.admin.price_lists.update(7, {'name': 'Retail'}, partial=False)
        self.assertEqual(self.last_call()[:2], ('PUT', 'price-lists/7/'))

        self.api.admin.orders.update_status(11, 'SHIPPED', tracking_number='TRK-1')
        method, path, kwargs = self.last_call()
        self.assertEqual((method, path), ('PATCH', 'admin/orders/11/status/'))
        self.assertEqual(kwargs['json'], {'status': 'SHIPPED', 'tracking_number': 'TRK-1'})

        self.api.admin.coupons.delete(2)
        self.assertEqual(self.last_call()[:2], ('DELETE', 'coupons/2/'))

        self.api.dashboard.summary()
        self.assertEqual(self.last_call()[:2], ('GET', 'dashboard/summary/'))

    def test_bulk_import_json_and_dry_run(self):
        self.session.request.return_value = make_response(body={'success': True, 'results': {}})

        self.api.admin.prices.bulk([{'priceId': 'P1'}], dry_run=True)

        method, path, kwargs = self.last_call()
        self.assertEqual((method, path), ('POST', 'prices/bulk/'))
        self.assertEqual(kwargs['json'], {'items': [{'priceId': 'P1'}]})
        self.assertEqual(kwargs['params'], {'dry_run': 'true'})

    def test_bulk_upload_sends_mapping_as_json(self):
        self.session.request.return_value = make_response(status_code=201, body={'success': True})

        self.api.admin.discounts.bulk_upload(b'data', 'discounts.xlsx', mapping={'Nombre': 'name'})

        method, path, kwargs = self.last_call()
        self.assertEqual((method, path), ('POST', 'discounts/bulk/'))
        self.assertEqual(json.loads(kwargs['data']['mapping']), {'Nombre': 'name'})


if __name__ == '__main__':
    unittest.main()
