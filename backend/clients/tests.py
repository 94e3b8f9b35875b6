"""
Test suite for the clients module
Tests: client CRUD and scoping, status changes, invitations, CSV export and bulk import
"""
import csv
import io
import json
from unittest import mock
from django.core import mail
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework import status
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.clients.bulk import bulk_create_clients
from backend.clients.models import Client


class ClientAPITests(TestCase):
    def setUp(self):
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def payload(self, **extra):
        data = {'email': 'Maria@Shop.com', 'first_name': 'Maria', 'last_name': 'Lopez', 'phone': '0991234567'}
        data.update(extra)
        return data

    def test_create_client(self):
        response = self.client.post('/api/v1/clients/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['email'], 'maria@shop.com')
        self.assertEqual(response.data['distributor_code'], 'D1')
        self.assertTrue(response.data['client_code'].startswith('CLI-'))
        self.assertEqual(response.data['full_name'], 'Maria Lopez')
        self.assertFalse(response.data['has_user'])
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Client',
                                                object_reference=response.data['client_code']).exists())

    def test_email_unique_per_distributor(self):
        TestDataFactory.create_client(email='maria@shop.com', distributor_code='D1')
        TestDataFactory.create_client(email='pedro@shop.com', distributor_code='D2')
        response = self.client.post('/api/v1/clients/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

        response = self.client.post('/api/v1/clients/', self.payload(email='pedro@shop.com'), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_unknown_information_fields_rejected(self):
        response = self.client.post('/api/v1/clients/', self.payload(information={'shoeSize': 42}), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('information', response.data)

    def test_price_list_from_information(self):
        price_list = TestDataFactory.create_price_list(code='MAYORISTA', distributor_code='D1')
        response = self.client.post('/api/v1/clients/', self.payload(information={'priceList': 'MAYORISTA'}),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['price_list'], price_list.id)
        self.assertEqual(response.data['price_list_code'], 'MAYORISTA')

    def test_other_distributor_price_list_not_linked(self):
        TestDataFactory.create_price_list(code='THEIRS', distributor_code='D2')
        client = TestDataFactory.create_client(distributor_code='D1', information={'priceList': 'THEIRS'})
        self.assertIsNone(client.price_list)

    def test_list_scoped_and_searchable(self):
        TestDataFactory.create_client(distributor_code='D1', first_name='Lucia', customer_class='wholesale')
        TestDataFactory.create_client(distributor_code='D1', first_name='Jorge')
        TestDataFactory.create_client(distributor_code='D2', first_name='Lucia')
        response = self.client.get('/api/v1/clients/')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/clients/', {'search': 'luc'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/clients/', {'customer_class': 'wholesale'})
        self.assertEqual(response.data['results'][0]['first_name'], 'Lucia')

    def test_detail_update_delete(self):
        client = TestDataFactory.create_client(distributor_code='D1')
        response = self.client.patch(f'/api/v1/clients/{client.id}/', {'phone': '022000000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['phone'], '022000000')

        response = self.client.delete(f'/api/v1/clients/{client.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Client.objects.filter(pk=client.id).exists())

    def test_other_distributor_client_not_found(self):
        theirs = TestDataFactory.create_client(distributor_code='D2')
        response = self.client.get(f'/api/v1/clients/{theirs.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_by_code(self):
        client = TestDataFactory.create_client(distributor_code='D1')
        response = self.client.get(f'/api/v1/clients/by-code/{client.client_code}/')
        self.assertEqual(response.data['id'], client.id)
        response = self.client.get('/api/v1/clients/by-code/CLI-MISSING/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_status(self):
        client = TestDataFactory.create_client(distributor_code='D1')
        response = self.client.patch(f'/api/v1/clients/{client.id}/status/', {'status': 'I'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'I')
        log = AuditLog.objects.get(action='status_change', model_name='Client')
        self.assertEqual(log.changes['status'], {'old': 'A', 'new': 'I'})

        response = self.client.patch(f'/api/v1/clients/{client.id}/status/', {'status': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_shopper_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/clients/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


@override_settings(EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend',
                   STOREFRONT_URL='https://shop.example.com/')
class ClientInvitationTests(TestCase):
    def setUp(self):
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def test_invitation_by_id(self):
        client = TestDataFactory.create_client(distributor_code='D1', status='I')
        response = self.client.post('/api/v1/clients/send-invitation/', {'client_id': client.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [client.email])
        self.assertIn(f'https://shop.example.com/register?email={client.email}&code={client.client_code}',
                      mail.outbox[0].body)
        client.refresh_from_db()
        self.assertEqual(client.status, 'N')
        self.assertTrue(AuditLog.objects.filter(action='invitation_sent', object_id=str(client.id)).exists())

    def test_invitation_by_email_keeps_active_status(self):
        client = TestDataFactory.create_client(email='ana@shop.com', distributor_code='D1')
        response = self.client.post('/api/v1/clients/send-invitation/', {'email': 'ANA@shop.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        client.refresh_from_db()
        self.assertEqual(client.status, 'A')

    def test_client_with_account(self):
        client = TestDataFactory.create_client(distributor_code='D1', user=TestDataFactory.create_user())
        response = self.client.post('/api/v1/clients/send-invitation/', {'client_id': client.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(len(mail.outbox), 0)

    def test_needs_id_or_email(self):
        response = self.client.post('/api/v1/clients/send-invitation/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_mail_failure(self):
        client = TestDataFactory.create_client(distributor_code='D1', status='I')
        with mock.patch('backend.clients.views.send_mail', side_effect=ConnectionRefusedError('smtp down')):
            response = self.client.post('/api/v1/clients/send-invitation/', {'client_id': client.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        client.refresh_from_db()
        self.assertEqual(client.status, 'I')


class ClientExportTests(TestCase):
    def test_export_csv(self):
        distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        TestDataFactory.create_client(email='ana@shop.com', distributor_code='D1', distributor_codes=['D1', 'D9'],
                                      information={'routeId': 'R-7', 'withCredit': True})
        TestDataFactory.create_client(email='other@shop.com', distributor_code='D2')
        client = AuthenticatedAPIClient()
        client.authenticate_user(distributor)

        response = client.get('/api/v1/clients/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv; charset=utf-8')
        self.assertIn('clients.csv', response['Content-Disposition'])
        content = response.content.decode('utf-8')
        self.assertTrue(content.startswith('\ufeff'))

        rows = list(csv.DictReader(io.StringIO(content.lstrip('\ufeff'))))
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['email'], 'ana@shop.com')
        self.assertEqual(rows[0]['distributorCodes'], 'D1,D9')
        self.assertEqual(rows[0]['information.routeId'], 'R-7')
        self.assertEqual(rows[0]['information.withCredit'], 'true')
        self.assertEqual(rows[0]['latitude'], '')


class ClientBulkImportTests(TestCase):
    def setUp(self):
        self.distributor = TestDataFactory.create_distributor_user(distributor_code='D1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.distributor)

    def row(self, email, **extra):
        data = {'email': email, 'firstName': 'Ana', 'lastName': 'Torres', 'phone': '0991111111'}
        data.update(extra)
        return data

    def test_json_import(self):
        TestDataFactory.create_client(email='taken@shop.com', distributor_code='D1')
        items = [
            self.row('new@shop.com', latitude='-0.180653', longitude='-78.467834', gender='f'),
            self.row('taken@shop.com'),
            self.row('NEW@shop.com'),
            self.row('not-an-email'),
            self.row('x@shop.com', status='Z'),
        ]
        response = self.client.post('/api/v1/clients/bulk/', {'items': items}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        results = response.data['results']
        self.assertEqual(results['successCount'], 1)
        self.assertEqual(results['errorCount'], 4)
        self.assertEqual(results['validations']['duplicateEmails'], ['new@shop.com', 'taken@shop.com'])
        self.assertEqual(results['validations']['invalidEmails'], [{'index': 3, 'email': 'not-an-email'}])
        created = Client.objects.get(email='new@shop.com')
        self.assertEqual(created.gender, 'F')
        self.assertEqual(created.distributor_code, 'D1')
        self.assertEqual(str(created.latitude), '-0.180653')

    def test_missing_required_fields(self):
        result = bulk_create_clients([{'email': 'a@shop.com'}], distributor_code='D1')
        self.assertEqual(result.error_count, 1)
        self.assertIn('firstName is required', result.errors[0]['error'])
        self.assertIn('phone is required', result.errors[0]['error'])

    def test_duplicate_client_code(self):
        existing = TestDataFactory.create_client(distributor_code='D1')
        result = bulk_create_clients([self.row('b@shop.com', clientCode=existing.client_code)], distributor_code='D1')
        self.assertIn('duplicate clientCode', result.errors[0]['error'])

    def test_dry_run(self):
        response = self.client.post('/api/v1/clients/bulk/?dry_run=true', [self.row('dry@shop.com')], format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results']['successCount'], 1)
        self.assertFalse(Client.objects.filter(email='dry@shop.com').exists())

    def test_csv_upload_with_information_columns(self):
        price_list = TestDataFactory.create_price_list(code='MAYORISTA', distributor_code='D1')
        content = (
            'email;firstName;lastName;phone;information.priceList;information.withCredit;distributorCodes\n'
            'csv@shop.com;Luis;Mora;0992222222;MAYORISTA;si;D1\n'
        ).encode('utf-8')
        upload = SimpleUploadedFile('clients.csv', content, content_type='text/csv')
        response = self.client.post('/api/v1/clients/bulk/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        created = Client.objects.get(email='csv@shop.com')
        self.assertEqual(created.price_list, price_list)
        self.assertIs(created.information['withCredit'], True)
        self.assertEqual(created.distributor_codes, ['D1'])
        self.assertTrue(AuditLog.objects.filter(action='bulk_import', model_name='clients').exists())

    def test_upload_with_mapping(self):
        content = 'Correo,Nombre,Apellido,Telefono\nmap@shop.com,Eva,Ruiz,0993333333\n'.encode('utf-8')
        upload = SimpleUploadedFile('clientes.csv', content, content_type='text/csv')
        mapping = {'Correo': 'email', 'Nombre': 'firstName', 'Apellido': 'lastName', 'Telefono': 'phone'}
        response = self.client.post('/api/v1/clients/bulk/', {'file': upload, 'mapping': json.dumps(mapping)},
                                    format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Client.objects.filter(email='map@shop.com', first_name='Eva').exists())

    def test_unsupported_file(self):
        upload = SimpleUploadedFile('clients.pdf', b'%PDF', content_type='application/pdf')
        response = self.client.post('/api/v1/clients/bulk/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Unsupported file type', response.data['error'])
