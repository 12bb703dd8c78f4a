"""
Unit tests for the domain exception hierarchy.

Stable reason codes and severities surfaced to callers.
"""

import pytest

from src.core.exceptions import get_error_severity, should_alert
from src.modules.shared.exceptions import (
    EconomyDomainException,
    ErrorSeverity,
    EscrowIntegrityError,
    ForbiddenError,
    InsufficientDistinctItemsError,
    InsufficientFundsError,
    InsufficientStockError,
    InvalidPriceError,
    InvalidTargetError,
    ListingNotLiveError,
    MissingMaterialsError,
    NotFoundError,
    RecipeNotFoundError,
    RecipeNotOwnedError,
    SelfPurchaseError,
    ValidationError,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "exc,code",
    [
        (InsufficientFundsError(required=100, current=40), "INSUFFICIENT_FUNDS"),
        (InsufficientStockError(required=2, current=1, item_id=3), "INSUFFICIENT_STOCK"),
        (MissingMaterialsError("SAND", "Sand", 2, 1), "MISSING_MATERIALS"),
        (InvalidPriceError(0), "INVALID_PRICE"),
        (InvalidTargetError(None, None), "INVALID_TARGET"),
        (RecipeNotFoundError(9), "RECIPE_NOT_FOUND"),
        (RecipeNotOwnedError("R_GLASS", 1), "RECIPE_NOT_OWNED"),
        (ListingNotLiveError(5, "paid"), "LISTING_NOT_LIVE"),
        (ForbiddenError("cancel listing", 2, 5), "FORBIDDEN"),
        (SelfPurchaseError(5, 1), "SELF_PURCHASE"),
        (InsufficientDistinctItemsError(tier=5, required=10, current=9), "INSUFFICIENT_DISTINCT_ITEMS"),
        (NotFoundError("User", 7), "USER_NOT_FOUND"),
        (ValidationError("qty", "bad"), "VALIDATION_QTY"),
        (EscrowIntegrityError(5), "ESCROW_INTEGRITY"),
    ],
)
def test_error_codes(exc, code):
    assert isinstance(exc, EconomyDomainException)
    assert exc.error_code == code
    assert exc.to_dict()["error_code"] == code


def test_insufficient_funds_details():
    exc = InsufficientFundsError(required=100, current=40, user_id=3)
    assert exc.details["deficit"] == 60
    assert exc.details["user_id"] == 3


def test_player_facing_errors_are_info():
    exc = InsufficientFundsError(required=1, current=0)
    assert get_error_severity(exc) is ErrorSeverity.INFO
    assert should_alert(exc) is False


def test_programming_and_integrity_errors_alert():
    assert get_error_severity(InvalidTargetError(1, 2)) is ErrorSeverity.ERROR
    assert get_error_severity(EscrowIntegrityError(4)) is ErrorSeverity.CRITICAL
    assert should_alert(EscrowIntegrityError(4)) is True


def test_unknown_exceptions_are_errors():
    assert get_error_severity(RuntimeError("boom")) is ErrorSeverity.ERROR


def test_invalid_price_is_a_validation_error():
    assert isinstance(InvalidPriceError(-1), ValidationError)
