"""Custom exceptions for the jeweller quote application."""

class QuoteAppError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(QuoteAppError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(BusinessLogicError):
    """Raised when request input is missing or malformed."""
    def __init__(self, message, field=None):
        payload = {'field': field} if field else None
        super().__init__(message, status_code=400, payload=payload)
        self.field = field

class NotFoundError(QuoteAppError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class IntegrityGuardError(BusinessLogicError):
    """Raised when a delete would orphan records that reference the target."""
    def __init__(self, message, payload=None):
        super().__init__(message, status_code=409, payload=payload)

class ConflictError(QuoteAppError):
    """Raised when a write keeps losing a uniqueness race."""
    def __init__(self, message="Conflicting write, please retry", payload=None):
        super().__init__(message, 409, payload)
