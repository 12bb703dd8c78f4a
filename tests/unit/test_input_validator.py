"""
Unit tests for InputValidator.
"""

import pytest

from src.core.validation import InputValidator
from src.modules.shared.exceptions import ValidationError

pytestmark = pytest.mark.unit


class TestIntegers:
    def test_accepts_numeric_string(self):
        assert InputValidator.validate_integer("42", "qty") == 42

    def test_accepts_integral_float(self):
        assert InputValidator.validate_integer(3.0, "qty") == 3

    @pytest.mark.parametrize("value", [True, 2.5, "abc", None])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_integer(value, "qty")
        assert exc_info.value.error_code == "VALIDATION_QTY"

    def test_positive_integer_rejects_zero(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_positive_integer(0, "qty")

    def test_positive_integer_upper_bound(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_positive_integer(501, "limit", max_value=500)

    def test_non_negative_integer_accepts_zero(self):
        assert InputValidator.validate_non_negative_integer(0, "offset") == 0

    def test_id_must_be_positive(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_id(-1, "user_id")

    @pytest.mark.parametrize("tier", [0, 7])
    def test_tier_range(self, tier):
        with pytest.raises(ValidationError):
            InputValidator.validate_tier(tier)


class TestStrings:
    def test_email_is_normalized(self):
        assert InputValidator.validate_email("  Ada@Example.COM ") == "ada@example.com"

    def test_malformed_email(self):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_email("not-an-email")
        assert exc_info.value.field == "email"

    def test_allowed_chars(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string("bad code", "code", allowed_chars="A-Z0-9_")

    def test_choice_is_case_insensitive(self):
        assert InputValidator.validate_choice("ITEM", "kind", ["item", "recipe"]) == "item"

    def test_choice_rejects_unknown(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_choice("bundle", "kind", ["item", "recipe"])
