"""Result envelope shared by every bulk import"""
from decimal import Decimal


class BulkImportResult:
    """
    Collects created rows, per-row errors and entity specific validation
    statistics, and renders the bulk endpoint response.
    """

    def __init__(self, entity, total=0):
        self.entity = entity
        self.total = total
        self.created = []
        self.errors = []
        self.validations = {}

    def add_created(self, data):
        self.created.append(data)

    def add_error(self, index, item, error):
        if isinstance(error, dict):
            error = '; '.join(f"{field}: {', '.join(str(m) for m in messages) if isinstance(messages, (list, tuple)) else messages}"
                              for field, messages in error.items())
        self.errors.append({'index': index, 'item': _jsonable(item), 'error': str(error)})

    @property
    def success_count(self):
        return len(self.created)

    @property
    def error_count(self):
        return len(self.errors)

    @property
    def success(self):
        return self.success_count > 0

    @property
    def message(self):
        label = self.entity.replace('_', ' ')
        if not self.total:
            return f'No {label} to import.'
        if not self.error_count:
            return f'{self.success_count} {label} imported successfully.'
        if not self.success_count:
            return f'No {label} were imported; {self.error_count} rows have errors.'
        return f'{self.success_count} {label} imported, {self.error_count} rows with errors.'

    def to_dict(self):
        return {
            'success': self.success,
            'message': self.message,
            'results': {
                'totalProcessed': self.total,
                'successCount': self.success_count,
                'errorCount': self.error_count,
                'created': self.created,
                'errors': self.errors,
                'validations': self.validations,
            },
        }


def _jsonable(value):
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return value
