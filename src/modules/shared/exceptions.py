"""
Domain exceptions for the economy engine.

Purpose
-------
Define the structured, domain-specific exception hierarchy for economy rules.
These exceptions are raised by services for business rule violations and
resource constraints. The request layer translates them into a structured
reason for the caller via `to_dict()` / `error_code`.

Compliance
----------
- Domain exceptions only (economy rules, player-facing rejections)
- Clear base class (`EconomyDomainException`) with structured metadata
- Every rejection aborts the enclosing transaction; none is fatal to the process

Design Notes
------------
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable reason string
- Randomized outcomes (crafting failure, non-drop shop roll) are NOT errors;
  they are reported in the result payload.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from src.core.exceptions import (
    ErrorSeverity,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "ErrorSeverity",
    "EconomyDomainException",
    "InsufficientResourcesError",
    "InsufficientFundsError",
    "InsufficientStockError",
    "MissingMaterialsError",
    "NotFoundError",
    "RecipeNotFoundError",
    "RecipeNotOwnedError",
    "ValidationError",
    "InvalidPriceError",
    "InvalidTargetError",
    "ListingNotLiveError",
    "ForbiddenError",
    "SelfPurchaseError",
    "InsufficientDistinctItemsError",
    "EscrowIntegrityError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]


class EconomyDomainException(Exception):
    """
    Base exception for all economy domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise EconomyDomainException(
        ...     "Craft rejected",
        ...     {"reason": "recipe retired"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


# ============================================================================
# Resource shortfalls
# ============================================================================


class InsufficientResourcesError(EconomyDomainException):
    """
    Raised when a user lacks a quantity required for an action.

    Args:
        resource: Name of the resource type (e.g., "funds", "stock")
        required: Amount required for the action
        current: Amount the user currently has
    """

    def __init__(
        self,
        resource: str,
        required: int,
        current: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        payload = {
            "resource": resource,
            "required": required,
            "current": current,
            "deficit": required - current,
        }
        payload.update(details or {})
        super().__init__(
            f"Insufficient {resource}: need {required:,}, have {current:,}",
            details=payload,
            error_code=f"INSUFFICIENT_{resource.upper()}",
        )


class InsufficientFundsError(InsufficientResourcesError):
    """Balance (silver) is below the amount an operation must debit."""

    def __init__(self, required: int, current: int, user_id: Optional[int] = None) -> None:
        self.user_id = user_id
        super().__init__("funds", required, current, details={"user_id": user_id})


class InsufficientStockError(InsufficientResourcesError):
    """A holding (item or recipe charges) is below the amount to debit."""

    def __init__(
        self,
        required: int,
        current: int,
        item_id: Optional[int] = None,
        recipe_id: Optional[int] = None,
    ) -> None:
        self.item_id = item_id
        self.recipe_id = recipe_id
        super().__init__(
            "stock",
            required,
            current,
            details={"item_id": item_id, "recipe_id": recipe_id},
        )


class MissingMaterialsError(EconomyDomainException):
    """
    Raised when a craft is attempted without every ingredient on hand.

    Names the first ingredient (in recipe order) that is short.
    """

    def __init__(self, item_code: str, item_name: str, need_qty: int, have_qty: int) -> None:
        self.item_code = item_code
        self.need_qty = need_qty
        self.have_qty = have_qty
        super().__init__(
            f"Missing material: {item_name} (need {need_qty}, have {have_qty})",
            details={
                "item_code": item_code,
                "item_name": item_name,
                "need_qty": need_qty,
                "have_qty": have_qty,
            },
            error_code="MISSING_MATERIALS",
        )


class InsufficientDistinctItemsError(EconomyDomainException):
    """Fewer distinct qualifying items are held than an assembly requires."""

    def __init__(self, tier: int, required: int, current: int) -> None:
        self.required = required
        self.current = current
        super().__init__(
            f"Need {required} distinct tier {tier} items, have {current}",
            details={"tier": tier, "required": required, "current": current},
            error_code="INSUFFICIENT_DISTINCT_ITEMS",
        )


# ============================================================================
# Lookups
# ============================================================================


class NotFoundError(EconomyDomainException):
    """
    Raised when a requested resource cannot be found.

    Args:
        resource_type: Type of resource (e.g., "User", "Listing", "Item")
        identifier: Optional identifier for the missing resource
    """

    def __init__(
        self,
        resource_type: str,
        identifier: Optional[Any] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=error_code or f"{resource_type.upper()}_NOT_FOUND",
        )


class RecipeNotFoundError(NotFoundError):
    def __init__(self, recipe_id: Any) -> None:
        super().__init__("Recipe", recipe_id, error_code="RECIPE_NOT_FOUND")


class RecipeNotOwnedError(EconomyDomainException):
    """The user holds no charges of the recipe."""

    def __init__(self, recipe_code: str, user_id: int) -> None:
        super().__init__(
            f"Recipe not owned: {recipe_code}",
            details={"recipe_code": recipe_code, "user_id": user_id},
            error_code="RECIPE_NOT_OWNED",
        )


# ============================================================================
# Input validation
# ============================================================================


class ValidationError(EconomyDomainException):
    """
    Raised when input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
        error_code: Override for the default `VALIDATION_<FIELD>` code
    """

    def __init__(self, field: str, message: str, error_code: Optional[str] = None) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=error_code or f"VALIDATION_{field.upper()}",
        )


class InvalidPriceError(ValidationError):
    def __init__(self, price: Any) -> None:
        self.price = price
        super().__init__(
            "price_silver",
            f"price must be a positive integer, got {price!r}",
            error_code="INVALID_PRICE",
        )


class InvalidTargetError(EconomyDomainException):
    """
    Raised when an inventory transfer names neither or both of item/recipe.

    This is a programming error in the caller, not a player mistake.
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR

    def __init__(self, item_id: Optional[int], recipe_id: Optional[int]) -> None:
        super().__init__(
            "Exactly one of item_id or recipe_id must be supplied",
            details={"item_id": item_id, "recipe_id": recipe_id},
            error_code="INVALID_TARGET",
        )


# ============================================================================
# Marketplace
# ============================================================================


class ListingNotLiveError(EconomyDomainException):
    def __init__(self, listing_id: int, status: Optional[str] = None) -> None:
        super().__init__(
            f"Listing {listing_id} is not live",
            details={"listing_id": listing_id, "status": status},
            error_code="LISTING_NOT_LIVE",
        )


class ForbiddenError(EconomyDomainException):
    """The requester may not act on the resource (e.g., cancel another seller's listing)."""

    def __init__(self, action: str, user_id: int, resource_id: Any) -> None:
        super().__init__(
            f"User {user_id} may not {action} {resource_id}",
            details={"action": action, "user_id": user_id, "resource_id": resource_id},
            error_code="FORBIDDEN",
        )


class SelfPurchaseError(EconomyDomainException):
    def __init__(self, listing_id: int, user_id: int) -> None:
        super().__init__(
            "Sellers cannot buy their own listing",
            details={"listing_id": listing_id, "user_id": user_id},
            error_code="SELF_PURCHASE",
        )


class EscrowIntegrityError(EconomyDomainException):
    """
    A live listing has no escrow record (or vice versa).

    Indicates corrupted state; the operation aborts and alerting should fire.
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, listing_id: int, message: str = "Escrow record missing") -> None:
        super().__init__(
            f"{message} for listing {listing_id}",
            details={"listing_id": listing_id},
            error_code="ESCROW_INTEGRITY",
        )
