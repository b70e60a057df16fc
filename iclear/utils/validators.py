"""
Validation utilities
"""

from typing import Any, Iterable
from iclear.utils.exceptions import ValidationError


def validate_required(value: Any, field_name: str) -> None:
    """
    Validate required field

    Args:
        value: Value to validate
        field_name: Name of the field for error message

    Raises:
        ValidationError: If value is empty or None
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required")


def validate_identifier(value: Any, field_name: str = "Identifier") -> int:
    """
    Validate and normalize a record identifier

    Args:
        value: Raw identifier (int or numeric string)
        field_name: Name of the field for error message

    Returns:
        The identifier as a positive integer

    Raises:
        ValidationError: If the identifier is malformed
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} is malformed")

    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValidationError(f"{field_name} is malformed")
        value = int(value)

    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field_name} is malformed")

    return value


def validate_choice(value: Any, choices: Iterable[str], field_name: str = "Value") -> str:
    """
    Validate that a value is one of a fixed set of choices

    Raises:
        ValidationError: If value is not an allowed choice
    """
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def validate_file_extension(filename: str, allowed_extensions: set) -> bool:
    """
    Validate file extension

    Args:
        filename: Name of the file
        allowed_extensions: Set of allowed extensions

    Returns:
        True if extension is allowed
    """
    if not filename:
        return False

    # Get file extension
    if '.' not in filename:
        return False

    extension = filename.rsplit('.', 1)[1].lower()
    return extension in allowed_extensions
