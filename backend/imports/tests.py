"""
Test suite for the imports module
Tests: CSV/XLSX parsing, cell coercion, column mapping suggestions,
the preview endpoint and the import_file management command
"""
import io
import os
import tempfile
from decimal import Decimal
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from openpyxl import Workbook
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.catalog.models import Product
from backend.catalog.bulk import bulk_create_products
from backend.imports.importers import get_importer
from backend.imports.mapping import suggest_mapping, apply_mapping, normalize_header
from backend.imports.parsers import (
    parse_file, parse_boolean, parse_number, parse_integer, parse_tags, parse_client_rows, FileParseError
)


def xlsx_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class FileParsingTests(TestCase):
    def test_semicolon_csv(self):
        content = b'sku;name;price\r\nA1;Widget;1,50\r\nB2;Gadget;3\r\n'
        rows = parse_file(io.BytesIO(content), 'products.csv')
        self.assertEqual(rows, [
            {'sku': 'A1', 'name': 'Widget', 'price': '1,50'},
            {'sku': 'B2', 'name': 'Gadget', 'price': '3'},
        ])

    def test_short_and_blank_rows(self):
        rows = parse_file(b'a,b,c\n1,2\n\n3,4,5\n', 'data.csv')
        self.assertEqual(rows, [{'a': '1', 'b': '2', 'c': ''}, {'a': '3', 'b': '4', 'c': '5'}])

    def test_blank_header_named_by_position(self):
        rows = parse_file(b'name,,price\nX,y,1\n', 'data.csv')
        self.assertEqual(rows, [{'name': 'X', 'Column2': 'y', 'price': '1'}])

    def test_bom_and_empty_file(self):
        rows = parse_file('\ufeffemail,phone\nana@test.com,0991234567\n'.encode('utf-8'), 'clients.csv')
        self.assertEqual(list(rows[0].keys()), ['email', 'phone'])
        self.assertEqual(parse_file(b'', 'empty.csv'), [])

    def test_excel(self):
        content = xlsx_bytes([['sku', 'price', 'stock'], ['A1', 12.5, 3.0], [None, None, None], ['B2', 4, None]])
        rows = parse_file(io.BytesIO(content), 'products.xlsx')
        self.assertEqual(rows, [
            {'sku': 'A1', 'price': '12.5', 'stock': '3'},
            {'sku': 'B2', 'price': '4', 'stock': ''},
        ])

    def test_unsupported_and_corrupt_files(self):
        with self.assertRaises(FileParseError):
            parse_file(b'%PDF-1.4', 'catalog.pdf')
        with self.assertRaises(FileParseError):
            parse_file(b'not a zip file', 'broken.xlsx')


class CellCoercionTests(TestCase):
    def test_booleans(self):
        self.assertTrue(parse_boolean('Sí'))
        self.assertTrue(parse_boolean('1'))
        self.assertFalse(parse_boolean('NO'))
        self.assertIsNone(parse_boolean('maybe'))
        self.assertIsNone(parse_boolean(None))

    def test_numbers(self):
        self.assertEqual(parse_number('1,50'), 1.5)
        self.assertEqual(parse_number('1,234.50'), 1234.5)
        self.assertEqual(parse_number('1.234,50'), 1234.5)
        self.assertEqual(parse_number('1.234.567'), 1234567.0)
        self.assertEqual(parse_number('-2,5'), -2.5)
        self.assertEqual(parse_number(' 7 '), 7.0)
        self.assertIsNone(parse_number('abc'))
        self.assertIsNone(parse_number(''))
        self.assertEqual(parse_integer('3.0'), 3)
        self.assertIsNone(parse_integer(None))

    def test_tags(self):
        self.assertEqual(parse_tags('rice; grains,bulk '), ['rice', 'grains', 'bulk'])
        self.assertEqual(parse_tags(''), [])

    def test_client_rows(self):
        clients = parse_client_rows([{
            'email': 'ana@test.com',
            'first_name': 'Ana',
            'distributorCodes': 'D1, D2',
            'latitude': '',
            'information.withCredit': 'yes',
            'information.tier': 'gold',
            'information.notes': '',
        }])
        client = clients[0]
        self.assertEqual(client['firstName'], 'Ana')
        self.assertEqual(client['distributorCodes'], ['D1', 'D2'])
        self.assertEqual(client['status'], 'A')
        self.assertIsNone(client['latitude'])
        self.assertEqual(client['information'], {'withCredit': True, 'tier': 'gold'})


class MappingTests(TestCase):
    def test_normalize_header(self):
        self.assertEqual(normalize_header(' Client Code '), 'clientcode')
        self.assertEqual(normalize_header(None), '')

    def test_suggest_mapping(self):
        mapping = suggest_mapping(['Correo', 'Nombre', 'Apellido', 'Telefono', 'client code', 'Emial', 'Extra'],
                                  'clients')
        self.assertEqual(mapping['Correo'], 'email')
        self.assertEqual(mapping['Nombre'], 'firstName')
        self.assertEqual(mapping['Apellido'], 'lastName')
        self.assertEqual(mapping['Telefono'], 'phone')
        self.assertEqual(mapping['client code'], 'clientCode')
        # email is already taken by Correo
        self.assertIsNone(mapping['Emial'])
        self.assertIsNone(mapping['Extra'])

    def test_suggest_by_edit_distance(self):
        mapping = suggest_mapping(['Prise', 'Stok'], 'products')
        self.assertEqual(mapping, {'Prise': 'price', 'Stok': 'stock'})

    def test_unknown_entity(self):
        self.assertEqual(suggest_mapping(['email'], 'invoices'), {'email': None})

    def test_apply_mapping(self):
        rows = [{'Correo': 'a@test.com', 'Extra': 'z', 'information.tier': 'gold'}]
        self.assertEqual(apply_mapping(rows, {'Correo': 'email', 'Extra': None}),
                         [{'email': 'a@test.com', 'information.tier': 'gold'}])

    def test_get_importer(self):
        self.assertIs(get_importer('products'), bulk_create_products)
        with self.assertRaises(KeyError):
            get_importer('invoices')


class ImportPreviewAPITests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_distributor_user(distributor_code='D1'))

    def preview(self, entity, content=None, name='clients.csv'):
        data = {'entity': entity}
        if content is not None:
            data['file'] = SimpleUploadedFile(name, content)
        return self.client.post('/api/v1/imports/preview/', data, format='multipart')

    def test_preview(self):
        response = self.preview('clients', b'Correo,Nombre\na@test.com,Ana\nb@test.com,Luis\n')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['headers'], ['Correo', 'Nombre'])
        self.assertEqual(response.data['total_rows'], 2)
        self.assertEqual(response.data['rows'][1], {'Correo': 'b@test.com', 'Nombre': 'Luis'})
        self.assertEqual(response.data['suggested_mapping'], {'Correo': 'email', 'Nombre': 'firstName'})

    def test_preview_limits_rows(self):
        content = b'sku\n' + b''.join(f'SKU-{i}\n'.encode() for i in range(60))
        response = self.preview('products', content, 'products.csv')
        self.assertEqual(response.data['total_rows'], 60)
        self.assertEqual(len(response.data['rows']), 50)

    def test_invalid_requests(self):
        self.assertEqual(self.preview('invoices', b'a\n1\n').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.preview('clients').status_code, status.HTTP_400_BAD_REQUEST)
        response = self.preview('clients', b'%PDF', 'clients.pdf')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Unsupported file type', response.data['error'])

    def test_shopper_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        self.assertEqual(self.preview('clients', b'a\n1\n').status_code, status.HTTP_403_FORBIDDEN)


class ImportFileCommandTests(TestCase):
    def write_file(self, content, suffix='.csv'):
        handle, path = tempfile.mkstemp(suffix=suffix)
        with os.fdopen(handle, 'wb') as f:
            f.write(content)
        self.addCleanup(os.unlink, path)
        return path

    def run_command(self, *args):
        out = io.StringIO()
        call_command('import_file', *args, stdout=out)
        return out.getvalue()

    def test_import_products(self):
        path = self.write_file(b'sku,name,price,category,brand,stock\n'
                               b'P-1,Rice,2.50,Grains,Acme,10\n'
                               b'P-2,,3,Grains,Acme,1\n')
        output = self.run_command('products', path, '--distributor', 'D1')
        self.assertIn('1 products imported, 1 rows with errors.', output)
        self.assertIn('Row 2: name is required', output)

        product = Product.objects.get(sku='P-1')
        self.assertEqual(product.distributor_code, 'D1')
        self.assertEqual(product.price, Decimal('2.50'))
        self.assertEqual(product.stock_quantity, 10)
        self.assertEqual(product.category.name, 'Grains')
        self.assertFalse(Product.objects.filter(sku='P-2').exists())

    def test_import_from_excel(self):
        path = self.write_file(xlsx_bytes([['sku', 'name', 'price'], ['X-1', 'Oil', 4.25]]), suffix='.xlsx')
        output = self.run_command('products', path)
        self.assertIn('1 products imported successfully.', output)
        self.assertEqual(Product.objects.get(sku='X-1').price, Decimal('4.25'))

    def test_dry_run(self):
        path = self.write_file(b'sku,name,price\nP-9,Beans,1\n')
        output = self.run_command('products', path, '--dry-run')
        self.assertIn('(dry run)', output)
        self.assertIn('Created: 1', output)
        self.assertFalse(Product.objects.filter(sku='P-9').exists())

    def test_missing_and_unsupported_files(self):
        with self.assertRaisesMessage(CommandError, 'File not found'):
            self.run_command('products', '/nonexistent/products.csv')
        path = self.write_file(b'{}', suffix='.json')
        with self.assertRaisesMessage(CommandError, 'Unsupported file type'):
            self.run_command('products', path)

    def test_unknown_entity(self):
        path = self.write_file(b'a\n1\n')
        with self.assertRaises(CommandError):
            self.run_command('invoices', path)
