"""
Custom exception classes

Every error raised by the service layer carries an HTTP status, a
human-readable detail and a stable machine-readable error code.
"""
from fastapi import HTTPException


class UplawError(HTTPException):
    """Base class for all operational errors"""
    status_code_default = 500
    error_code = "INTERNAL_ERROR"
    default_detail = "Something went wrong"

    def __init__(self, detail: str = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.default_detail
        )


class BadRequestError(UplawError):
    """Invalid input, invalid state transition or failed precondition"""
    status_code_default = 400
    error_code = "BAD_REQUEST"
    default_detail = "Bad request"


class AuthenticationError(UplawError):
    """Missing, invalid or expired credentials"""
    status_code_default = 401
    error_code = "UNAUTHENTICATED"
    default_detail = "Authentication required"


class UnauthorizedError(UplawError):
    """Raised when user doesn't hold rights over the resource"""
    status_code_default = 403
    error_code = "UNAUTHORIZED"
    default_detail = "You don't have permission to access this resource"


class ForbiddenError(UplawError):
    """Raised when the caller is not the case owner or assigned lawyer"""
    status_code_default = 403
    error_code = "FORBIDDEN"
    default_detail = "Access forbidden"


class NotFoundError(UplawError):
    """Raised when an entity doesn't exist"""
    status_code_default = 404
    error_code = "NOT_FOUND"
    default_detail = "Resource not found"


class InternalServerError(UplawError):
    """Unexpected failure: storage gateway down, persistence failure"""
    status_code_default = 500
    error_code = "INTERNAL_ERROR"
    default_detail = "An unexpected error occurred"


class UploadFailedError(InternalServerError):
    """Raised when a storage upload fails"""
    error_code = "UPLOAD_FAILED"

    def __init__(self, reason: str = "Unknown error"):
        super().__init__(f"Upload failed: {reason}")
