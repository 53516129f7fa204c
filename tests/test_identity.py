import pytest

from chatdesk.exceptions import InvalidIdentity
from chatdesk.services.identity import normalize, normalizer_for


class TestPrefixRule:
    def test_international_prefix_kept(self):
        assert normalize("+233241234567") == "+233241234567"

    def test_country_code_without_plus(self):
        assert normalize("233241234567") == "+233241234567"

    def test_trunk_zero_replaced(self):
        assert normalize("0241234567") == "+233241234567"

    def test_bare_national_number(self):
        assert normalize("241234567") == "+233241234567"

    def test_surrounding_whitespace_trimmed(self):
        assert normalize("  0241234567 \n") == "+233241234567"

    def test_separators_removed(self):
        assert normalize("+233 24 123-4567") == "+233241234567"
        assert normalize("(024) 123.4567") == "+233241234567"

    def test_foreign_international_number_untouched(self):
        assert normalize("+447911123456") == "+447911123456"

    def test_custom_country_code(self):
        assert normalize("07911123456", country_code="44") == "+447911123456"


class TestEquivalenceClass:
    def test_all_spellings_share_one_key(self):
        variants = ["0241234567", "+233241234567", "233241234567", " 024 123 4567 "]
        assert len({normalize(v) for v in variants}) == 1

    @pytest.mark.parametrize("raw", ["0241234567", "233241234567", "241234567", "+15551234567"])
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once


class TestInvalidInput:
    @pytest.mark.parametrize("raw", [None, "", "   ", "\t"])
    def test_empty_rejected(self, raw):
        with pytest.raises(InvalidIdentity):
            normalize(raw)

    @pytest.mark.parametrize("raw", ["hello", "+", "+23a", "024-ABC"])
    def test_non_numeric_rejected(self, raw):
        with pytest.raises(InvalidIdentity):
            normalize(raw)

    def test_error_carries_raw_value(self):
        with pytest.raises(InvalidIdentity) as exc_info:
            normalize("abc")
        assert exc_info.value.raw == "abc"
        assert exc_info.value.code == "invalid_identity"


class TestStrictRule:
    def test_valid_number_formatted_e164(self):
        assert normalize("+1 650 253 0000", strict=True) == "+16502530000"

    def test_invalid_number_rejected(self):
        with pytest.raises(InvalidIdentity):
            normalize("+10000", strict=True)

    def test_strict_is_idempotent(self):
        once = normalize("+16502530000", strict=True)
        assert normalize(once, strict=True) == once


class TestNormalizerFor:
    def test_uses_settings(self, settings):
        settings.default_country_code = "44"
        assert normalizer_for(settings)("07911123456") == "+447911123456"
