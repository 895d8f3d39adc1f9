"""Unit tests for input validators."""

from decimal import Decimal

import pytest

from affiliates.validators.common import (
    normalize_code,
    validate_affiliate_code,
    validate_commission_value,
    validate_slug,
)


class TestAffiliateCodeValidation:
    """Tests for custom affiliate codes."""

    def test_code_is_normalized(self):
        assert validate_affiliate_code(" john20 ") == (True, "JOHN20", None)

    def test_too_short(self):
        is_valid, code, error = validate_affiliate_code("ab")
        assert not is_valid
        assert code is None
        assert "at least" in error

    def test_too_long(self):
        is_valid, _, error = validate_affiliate_code("A" * 33)
        assert not is_valid
        assert "at most" in error

    @pytest.mark.parametrize("value", ["a b", "john!", "ДЖОН"])
    def test_invalid_characters(self, value):
        is_valid, _, _ = validate_affiliate_code(value)
        assert not is_valid

    def test_dash_and_underscore_allowed(self):
        assert validate_affiliate_code("spring-sale_1")[0]

    def test_normalize_none(self):
        assert normalize_code(None) == ""


class TestSlugValidation:
    """Tests for campaign slugs."""

    def test_valid_slug(self):
        assert validate_slug("spring-sale") == (True, "spring-sale", None)

    @pytest.mark.parametrize("value", ["", "Spring", "spring sale", "-spring", "spring--sale"])
    def test_invalid_slugs(self, value):
        assert not validate_slug(value)[0]


class TestCommissionValueValidation:
    """Tests for commission rates."""

    def test_percentage_within_range(self):
        assert validate_commission_value("percentage", 20) == (True, Decimal("20"), None)

    def test_percentage_above_100_rejected(self):
        is_valid, _, error = validate_commission_value("percentage", 101)
        assert not is_valid
        assert "100" in error

    def test_fixed_above_100_allowed(self):
        assert validate_commission_value("fixed", 5000)[0]

    def test_negative_rejected(self):
        assert not validate_commission_value("fixed", -1)[0]

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity"])
    def test_not_a_number(self, value):
        assert not validate_commission_value("percentage", value)[0]

    def test_unknown_type(self):
        assert not validate_commission_value("tiered", 10)[0]
