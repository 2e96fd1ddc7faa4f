"""Domain exceptions shared by the AgriSmart services"""


class AgriSmartError(Exception):
    """Base class for errors that map onto an HTTP response"""
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AgriSmartError):
    """Request is well-formed but violates a business rule"""
    status_code = 400
    default_detail = "Invalid request"


class AuthenticationError(AgriSmartError):
    """No valid session for the request"""
    status_code = 401
    default_detail = "Authentication required"


class PermissionDeniedError(AgriSmartError):
    """Authenticated user lacks the required role or permission"""
    status_code = 403
    default_detail = "Insufficient permissions"


class NotFoundError(AgriSmartError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(AgriSmartError):
    status_code = 409
    default_detail = "Conflict"
