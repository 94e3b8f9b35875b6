"""Domain errors raised by services and translated to 400 responses by views"""


class DomainError(Exception):
    """Base class for business rule violations"""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    default_code = 'domain_error'

    def as_response_data(self):
        return {'error': self.message, 'code': self.code}


class InvalidTransition(DomainError):
    default_code = 'invalid_transition'


class InsufficientStock(DomainError):
    default_code = 'insufficient_stock'


class CouponError(DomainError):
    default_code = 'invalid_coupon'


class TemplateConfigError(DomainError):
    default_code = 'invalid_template_config'

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or {}

    def as_response_data(self):
        data = super().as_response_data()
        data['errors'] = self.errors
        return data


class ImageAnalysisError(DomainError):
    default_code = 'image_analysis_failed'
