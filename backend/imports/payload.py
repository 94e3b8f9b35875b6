"""Reading bulk import rows from a request body or an uploaded file"""
import json
from rest_framework import status
from rest_framework.response import Response
from backend.core.utils import create_audit_log, get_distributor_code, parse_bool_param
from .parsers import parse_file, ROW_MAPPERS, FileParseError
from .mapping import apply_mapping


def read_rows(request, entity):
    """
    Rows for a bulk import of the given entity.

    Accepts a JSON list, {"items": [...]}, or a multipart upload with a
    "file" field and an optional "mapping" (JSON object, header -> field).
    Raises FileParseError for unreadable input.
    """
    upload = request.FILES.get('file') if hasattr(request, 'FILES') else None
    if upload is not None:
        rows = parse_file(upload, upload.name)
        mapping = request.data.get('mapping')
        if mapping:
            if isinstance(mapping, str):
                try:
                    mapping = json.loads(mapping)
                except ValueError:
                    raise FileParseError('The column mapping is not valid JSON.')
            rows = apply_mapping(rows, mapping)
        return ROW_MAPPERS[entity](rows)

    data = request.data
    if isinstance(data, dict):
        data = data.get('items', data.get(entity))
    if not isinstance(data, list):
        raise FileParseError('Send a JSON list of items, {"items": [...]}, or upload a file.')
    return [item if isinstance(item, dict) else {} for item in data]


def run_bulk_import(request, entity, importer):
    """
    Read the rows of a bulk request, run the entity importer and render the
    BulkImportResult envelope. ?dry_run=true validates without saving.
    """
    try:
        items = read_rows(request, entity)
    except FileParseError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    dry_run = bool(parse_bool_param(request.query_params.get('dry_run')))
    result = importer(items, distributor_code=get_distributor_code(request.user), dry_run=dry_run)
    if not dry_run and result.success_count:
        create_audit_log(request=request, action='bulk_import', model_name=entity, object_id=entity,
                         changes={'successCount': result.success_count, 'errorCount': result.error_count})
    response_status = status.HTTP_201_CREATED if result.success else status.HTTP_400_BAD_REQUEST
    if dry_run:
        response_status = status.HTTP_200_OK
    return Response(result.to_dict(), status=response_status)
