"""
Custom exceptions for the iClear application
"""


class ClearanceError(Exception):
    """Base exception for iClear application"""
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message=None, data=None):
        super().__init__(message or self.default_message)
        self.data = data


class ValidationError(ClearanceError):
    """Validation error"""
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(ClearanceError):
    """Authentication error"""
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(ClearanceError):
    """Authorization error"""
    status_code = 403
    default_message = "You are not allowed to act on this record"


class NotFoundError(ClearanceError):
    """Record not found"""
    status_code = 404
    default_message = "Record not found"


class ConflictError(ClearanceError):
    """Student already has an active clearance request"""
    status_code = 409
    default_message = "You already have an active clearance request"


class StaleStateError(ClearanceError):
    """Record changed since the caller last read it"""
    status_code = 409
    default_message = "This record changed. Please reload."


class CaseLockedError(ClearanceError):
    """Write attempted against a case under review or approved"""
    status_code = 409
    default_message = "This case is already under review or approved and can no longer be edited."


class NotReadyError(ClearanceError):
    """Submit attempted while required requirements are unmet"""
    status_code = 422
    default_message = "Some required items are still missing"


class FileUploadError(ClearanceError):
    """File upload error"""
    status_code = 400
    default_message = "File upload failed"


class FanOutIntegrityError(ClearanceError):
    """Fan-out produced a case set that does not match the unit set"""
    status_code = 500
    default_message = "Clearance request could not be created"


class HistoryImmutableError(ClearanceError):
    """Attempt to modify or remove an append-only record"""
    status_code = 500
    default_message = "History records cannot be modified"
