"""Bulk import of clients"""
import logging
from decimal import Decimal, InvalidOperation
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from backend.core.cache_signals import suspend_cache_signals
from backend.imports.parsers import parse_list, first_value
from backend.imports.results import BulkImportResult
from .models import Client
from .serializers import ClientSerializer, INFORMATION_FIELDS

logger = logging.getLogger(__name__)

STATUSES = dict(Client.STATUS_CHOICES)
GENDERS = dict(Client.GENDER_CHOICES)


def _coordinate(value, field, errors):
    if value in (None, ''):
        return None
    try:
        return Decimal(str(value)).quantize(Decimal('0.000001'))
    except (InvalidOperation, ValueError):
        errors.append(f'{field} must be a number')
        return None


def validate_client_row(item, seen_emails, existing_emails):
    errors = []
    email = str(first_value(item, 'email')).strip().lower()
    if not email:
        errors.append('email is required')
    else:
        try:
            validate_email(email)
        except ValidationError:
            errors.append(f'invalid email {email}')
        if email in seen_emails or email in existing_emails:
            errors.append(f'duplicate email {email}')

    first_name = str(first_value(item, 'firstName', 'first_name')).strip()
    last_name = str(first_value(item, 'lastName', 'last_name')).strip()
    phone = str(first_value(item, 'phone')).strip()
    for field, value in (('firstName', first_name), ('lastName', last_name), ('phone', phone)):
        if not value:
            errors.append(f'{field} is required')

    status = str(first_value(item, 'status', default='A')).strip().upper()
    if status not in STATUSES:
        errors.append(f'invalid status {status} (use A, N or I)')
    gender = str(first_value(item, 'gender')).strip().upper()
    if gender and gender not in GENDERS:
        errors.append(f'invalid gender {gender} (use M or F)')

    information = item.get('information') or {}
    if not isinstance(information, dict):
        errors.append('information must be an object')
        information = {}
    information = {key: value for key, value in information.items() if key in INFORMATION_FIELDS}

    data = {
        'client_code': str(first_value(item, 'clientCode', 'client_code')).strip(),
        'email': email,
        'first_name': first_name,
        'last_name': last_name,
        'phone': phone,
        'phone_optional': str(first_value(item, 'phoneOptional', 'phone_optional')).strip(),
        'gender': gender,
        'document_type': str(first_value(item, 'documentType', 'document_type')).strip(),
        'document': str(first_value(item, 'document')).strip(),
        'customer_class': str(first_value(item, 'customerClass', 'customer_class')).strip(),
        'customer_class_two': str(first_value(item, 'customerClassTwo', 'customer_class_two')).strip(),
        'customer_class_three': str(first_value(item, 'customerClassThree', 'customer_class_three')).strip(),
        'customer_class_dist': str(first_value(item, 'customerClassDist', 'customer_class_dist')).strip(),
        'customer_class_dist_two': str(first_value(item, 'customerClassDistTwo', 'customer_class_dist_two')).strip(),
        'latitude': _coordinate(first_value(item, 'latitude'), 'latitude', errors),
        'longitude': _coordinate(first_value(item, 'longitude'), 'longitude', errors),
        'status': status,
        'distributor_codes': parse_list(first_value(item, 'distributorCodes', 'distributor_codes', default=[])),
        'information': information,
    }
    return data, errors


def bulk_create_clients(items, distributor_code='', dry_run=False):
    result = BulkImportResult('clients', total=len(items))
    existing_emails = {email.lower() for email in
                       Client.objects.filter(distributor_code=distributor_code).values_list('email', flat=True)}
    existing_codes = set(Client.objects.exclude(client_code='').values_list('client_code', flat=True))
    seen_emails, seen_codes = set(), set()
    duplicate_emails, invalid_emails = set(), []
    valid = []

    for index, item in enumerate(items):
        data, errors = validate_client_row(item, seen_emails, existing_emails)
        code = data['client_code']
        if code and (code in seen_codes or code in existing_codes):
            errors.append(f'duplicate clientCode {code}')
        if any(error.startswith('duplicate email') for error in errors):
            duplicate_emails.add(data['email'])
        if any(error.startswith('invalid email') for error in errors):
            invalid_emails.append({'index': index, 'email': data['email']})
        if errors:
            result.add_error(index, item, '; '.join(errors))
            continue
        seen_emails.add(data['email'])
        if code:
            seen_codes.add(code)
        valid.append(data)

    with transaction.atomic(), suspend_cache_signals():
        for data in valid:
            client = Client.objects.create(distributor_code=distributor_code, **data)
            result.add_created(ClientSerializer(client).data)
        if dry_run:
            transaction.set_rollback(True)

    result.validations = {
        'duplicateEmails': sorted(duplicate_emails),
        'invalidEmails': invalid_emails,
    }
    logger.info(f"Bulk client import: {result.success_count} created, {result.error_count} errors")
    return result
