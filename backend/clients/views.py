import csv
import logging
from django.conf import settings
from django.core.mail import send_mail
from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from backend.core.permissions import IsDashboardUser
from backend.core.utils import create_audit_log, get_distributor_code, paginate, scope_queryset
from backend.imports.payload import run_bulk_import
from .bulk import bulk_create_clients
from .models import Client
from .serializers import ClientSerializer, ClientStatusSerializer, ClientInvitationSerializer, INFORMATION_FIELDS

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    ('clientCode', 'client_code'),
    ('email', 'email'),
    ('firstName', 'first_name'),
    ('lastName', 'last_name'),
    ('phone', 'phone'),
    ('phoneOptional', 'phone_optional'),
    ('gender', 'gender'),
    ('documentType', 'document_type'),
    ('document', 'document'),
    ('customerClass', 'customer_class'),
    ('customerClassTwo', 'customer_class_two'),
    ('customerClassThree', 'customer_class_three'),
    ('customerClassDist', 'customer_class_dist'),
    ('customerClassDistTwo', 'customer_class_dist_two'),
    ('latitude', 'latitude'),
    ('longitude', 'longitude'),
    ('status', 'status'),
]


def _clients(request):
    return scope_queryset(Client.objects.select_related('price_list'), request.user)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def client_list_create(request):
    """List clients (search, status, customer_class) or create one"""
    if request.method == 'GET':
        queryset = _clients(request)
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(first_name__icontains=search) | Q(last_name__icontains=search) |
                Q(email__icontains=search) | Q(document__icontains=search) |
                Q(phone__icontains=search) | Q(client_code__icontains=search)
            )
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params['status'])
        if request.query_params.get('customer_class'):
            queryset = queryset.filter(customer_class=request.query_params['customer_class'])
        return Response(paginate(request, queryset, ClientSerializer))
    else:  # POST
        distributor_code = get_distributor_code(request.user)
        serializer = ClientSerializer(data=request.data, context={'distributor_code': distributor_code})
        if serializer.is_valid():
            client = serializer.save(distributor_code=distributor_code)
            create_audit_log(request=request, action='create', model_name='Client', object_id=client.pk,
                             object_name=client.full_name, object_reference=client.client_code)
            return Response(ClientSerializer(client).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def client_detail(request, pk):
    """Retrieve, update or delete a client"""
    client = get_object_or_404(_clients(request), pk=pk)

    if request.method == 'GET':
        return Response(ClientSerializer(client).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ClientSerializer(client, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            client = serializer.save()
            create_audit_log(request=request, action='update', model_name='Client', object_id=client.pk,
                             object_name=client.full_name, object_reference=client.client_code,
                             changes={'fields': sorted(request.data.keys())})
            return Response(ClientSerializer(client).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Client', object_id=client.pk,
                         object_name=client.full_name, object_reference=client.client_code)
        client.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def client_by_code(request, code):
    client = get_object_or_404(_clients(request), client_code=code)
    return Response(ClientSerializer(client).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def client_status(request, pk):
    client = get_object_or_404(_clients(request), pk=pk)
    serializer = ClientStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_status = client.status
    client.status = serializer.validated_data['status']
    client.save(update_fields=['status', 'updated_at'])
    create_audit_log(request=request, action='status_change', model_name='Client', object_id=client.pk,
                     object_name=client.full_name, object_reference=client.client_code,
                     changes={'status': {'old': old_status, 'new': client.status}})
    return Response(ClientSerializer(client).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def client_send_invitation(request):
    """E-mail a storefront registration invitation to a client"""
    serializer = ClientInvitationSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    queryset = _clients(request)
    if serializer.validated_data.get('client_id'):
        client = get_object_or_404(queryset, pk=serializer.validated_data['client_id'])
    else:
        client = get_object_or_404(queryset, email__iexact=serializer.validated_data['email'])

    if client.has_user:
        return Response({'error': 'This client already has a storefront account.'},
                        status=status.HTTP_400_BAD_REQUEST)

    link = f"{settings.STOREFRONT_URL.rstrip('/')}/register?email={client.email}&code={client.client_code}"
    try:
        send_mail(
            subject='You are invited to our online store',
            message=f"Hello {client.first_name},\n\nCreate your account to order online: {link}",
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[client.email],
        )
    except Exception as e:
        logger.error(f"Failed to send invitation to {client.email}: {str(e)}")
        return Response({'error': 'The invitation could not be sent.'}, status=status.HTTP_502_BAD_GATEWAY)

    if client.status == 'I':
        client.status = 'N'
        client.save(update_fields=['status', 'updated_at'])
    create_audit_log(request=request, action='invitation_sent', model_name='Client', object_id=client.pk,
                     object_name=client.full_name, object_reference=client.client_code,
                     changes={'email': client.email})
    return Response({'message': f'Invitation sent to {client.email}.', 'client': ClientSerializer(client).data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def client_export(request):
    """CSV of the distributor's clients in the bulk import column layout"""
    response = HttpResponse(content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = 'attachment; filename="clients.csv"'
    response.write('\ufeff')

    fieldnames = [column for column, _ in EXPORT_COLUMNS] + ['distributorCodes'] + \
        [f'information.{field}' for field in INFORMATION_FIELDS]
    writer = csv.DictWriter(response, fieldnames=fieldnames)
    writer.writeheader()
    for client in _clients(request).order_by('id').iterator():
        row = {column: getattr(client, attribute) for column, attribute in EXPORT_COLUMNS}
        row['latitude'] = '' if client.latitude is None else client.latitude
        row['longitude'] = '' if client.longitude is None else client.longitude
        row['distributorCodes'] = ','.join(client.distributor_codes or [])
        information = client.information or {}
        for field in INFORMATION_FIELDS:
            value = information.get(field, '')
            if isinstance(value, bool):
                value = 'true' if value else 'false'
            row[f'information.{field}'] = value
        writer.writerow(row)
    return response


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
def client_bulk(request):
    return run_bulk_import(request, 'clients', bulk_create_clients)
