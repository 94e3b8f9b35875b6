from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from backend.core.permissions import IsDashboardUser
from .importers import IMPORTERS
from .mapping import suggest_mapping
from .parsers import parse_file, FileParseError

PREVIEW_ROWS = 50


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDashboardUser])
@parser_classes([MultiPartParser, FormParser])
def import_preview(request):
    """Headers, first rows and a suggested column mapping of an uploaded file"""
    entity = request.data.get('entity')
    if entity not in IMPORTERS:
        return Response({'error': f"Invalid entity. Use one of {', '.join(IMPORTERS)}."},
                        status=status.HTTP_400_BAD_REQUEST)
    upload = request.FILES.get('file')
    if upload is None:
        return Response({'error': 'No file uploaded.'}, status=status.HTTP_400_BAD_REQUEST)

    try:
        rows = parse_file(upload, upload.name)
    except FileParseError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    headers = list(rows[0].keys()) if rows else []
    return Response({
        'entity': entity,
        'headers': headers,
        'rows': rows[:PREVIEW_ROWS],
        'total_rows': len(rows),
        'suggested_mapping': suggest_mapping(headers, entity),
    })
