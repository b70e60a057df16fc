"""
Utilities package initialization
"""

from iclear.utils.exceptions import (
    ClearanceError, ValidationError, AuthenticationError, AuthorizationError,
    NotFoundError, ConflictError, StaleStateError, CaseLockedError, NotReadyError,
    FileUploadError, FanOutIntegrityError, HistoryImmutableError
)
from iclear.utils.validators import (
    validate_required, validate_identifier, validate_choice,
    validate_file_extension
)
from iclear.utils.helpers import (
    setup_logging, log_error, log_warning, log_info,
    ensure_directory_exists, create_response, error_response, isoformat
)

__all__ = [
    'ClearanceError', 'ValidationError', 'AuthenticationError', 'AuthorizationError',
    'NotFoundError', 'ConflictError', 'StaleStateError', 'CaseLockedError', 'NotReadyError',
    'FileUploadError', 'FanOutIntegrityError', 'HistoryImmutableError',
    'validate_required', 'validate_identifier', 'validate_choice',
    'validate_file_extension',
    'setup_logging', 'log_error', 'log_warning', 'log_info',
    'ensure_directory_exists', 'create_response', 'error_response', 'isoformat'
]
