"""
Helper utilities
"""

import os
import logging
from typing import Optional, Dict, Any
from flask import current_app, jsonify


def setup_logging() -> None:
    """Setup application logging"""
    if not current_app.debug:
        # Production logging
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s %(levelname)s %(name)s %(message)s'
        )
    else:
        # Development logging
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s %(levelname)s %(name)s %(message)s'
        )


def log_error(message: str, exception: Optional[Exception] = None) -> None:
    """
    Log error message

    Args:
        message: Error message
        exception: Exception object
    """
    if exception:
        current_app.logger.error(f"{message}: {str(exception)}")
    else:
        current_app.logger.error(message)


def log_warning(message: str) -> None:
    """Log warning message"""
    current_app.logger.warning(message)


def log_info(message: str) -> None:
    """
    Log info message

    Args:
        message: Info message
    """
    current_app.logger.info(message)


def ensure_directory_exists(directory_path: str) -> None:
    """
    Ensure directory exists, create if it doesn't

    Args:
        directory_path: Path to directory
    """
    if not os.path.exists(directory_path):
        os.makedirs(directory_path, exist_ok=True)


def create_response(success: bool, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    """
    Create standardized API response

    Args:
        success: Whether operation was successful
        message: Response message
        data: Optional data to include

    Returns:
        Standardized response dictionary
    """
    response = {
        'ok': success,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return response


def error_response(error):
    """
    JSON response for a ClearanceError

    Args:
        error: ClearanceError raised by a service

    Returns:
        Tuple of (response, status code)
    """
    return jsonify(create_response(False, str(error), error.data)), error.status_code


def isoformat(value) -> Optional[str]:
    """Serialize an optional datetime"""
    return value.isoformat() if value else None
