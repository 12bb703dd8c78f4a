"""
Input Validation Layer

Purpose
-------
Provide a centralized validation layer for inputs arriving at the economy
services from the request layer. Enforces type safety, bounds checking, and
format validation before any database work begins.

Responsibilities
----------------
- Validate and convert inputs to correct types (int, str)
- Enforce bounds checking for numerical inputs (min/max validation)
- Validate database ids, tiers, quantities and emails
- Validate choice inputs against allowed options
- Raise ValidationError with clear messages

Non-Responsibilities
--------------------
- Economy rule validation (service layer concern)
- Database constraints and persistence (database/infra concern)
- Authorization (request layer concern)

Observability
-------------
Every validation failure is logged at debug level with field_name,
raw_value (repr) and reason.

Dependencies
------------
- src.modules.shared.exceptions.ValidationError
- src.modules.shared.constants.MIN_TIER / MAX_TIER
- src.core.logging.logger.get_logger
"""

from __future__ import annotations

import re
from typing import Any, NoReturn, Optional, Sequence

from src.core.logging.logger import get_logger
from src.modules.shared.constants import MAX_TIER, MIN_TIER
from src.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError for `field_name`."""
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Centralized input validation.

    All validation methods:
    - Are stateless and deterministic
    - Return validated values on success
    - Raise ValidationError on failure
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Booleans and non-integral floats are rejected; numeric strings are
        accepted.

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number")

        if isinstance(value, float) and not value.is_integer():
            _raise_validation_error(
                field_name, value, f"Must be a whole number, got '{value}'"
            )

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got '{value}'",
            )

        if not allow_zero and int_value == 0:
            _raise_validation_error(field_name, int_value, "Cannot be zero")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Must be at least {min_value}, got {int_value}",
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Cannot exceed {max_value}, got {int_value}",
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a strictly positive integer (>= 1)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=1,
            max_value=max_value,
            allow_zero=False,
        )

    @staticmethod
    def validate_non_negative_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a non-negative integer (>= 0)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=0,
            max_value=max_value,
            allow_zero=True,
        )

    @staticmethod
    def validate_id(value: Any, field_name: str) -> int:
        """Database ids are positive integers."""
        return InputValidator.validate_positive_integer(value, field_name)

    @staticmethod
    def validate_tier(value: Any, field_name: str = "tier") -> int:
        return InputValidator.validate_integer(
            value, field_name, min_value=MIN_TIER, max_value=MAX_TIER
        )

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        allowed_chars: Optional[str] = None,
    ) -> str:
        """
        Validate string input with optional length and character constraints.

        Args:
            allowed_chars: Regex character class for allowed characters
                           (e.g., 'A-Z0-9_')
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        str_value = str(value).strip()

        if min_length is not None and len(str_value) < min_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Must be at least {min_length} characters",
            )

        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Cannot exceed {max_length} characters",
            )

        if allowed_chars is not None:
            if not re.match(f"^[{allowed_chars}]+$", str_value):
                _raise_validation_error(
                    field_name,
                    str_value,
                    "Contains invalid characters",
                )

        return str_value

    @staticmethod
    def validate_email(value: Any, field_name: str = "email") -> str:
        """Lower-cased, trimmed email with a minimal shape check."""
        email = InputValidator.validate_string(
            value, field_name, min_length=3, max_length=255
        ).lower()
        if not _EMAIL_PATTERN.match(email):
            _raise_validation_error(field_name, value, "Not a valid email address")
        return email

    # =========================================================================
    # CHOICE VALIDATION
    # =========================================================================

    @staticmethod
    def validate_choice(
        value: Any,
        field_name: str,
        valid_choices: Sequence[str],
    ) -> str:
        """
        Validate that value is one of the allowed choices (case-insensitive).

        Returns:
            Lowercased validated choice
        """
        str_value = str(value).lower().strip()
        normalized_choices = {choice.lower() for choice in valid_choices}

        if str_value not in normalized_choices:
            choices_str = ", ".join(sorted(valid_choices))
            _raise_validation_error(
                field_name,
                value,
                f"Invalid choice '{value}'. Must be one of: {choices_str}",
            )

        return str_value
