"""
Field Normalization Tests

Tests for the pure helpers that clean raw SECOP cell values.
"""
from datetime import date, datetime

from secop.normalize import clean_text, normalize_boolean, parse_date, parse_number, truncate


class TestTruncate:
    """Test length limiting of text values."""

    def test_cuts_to_max_length(self):
        assert truncate('abcdef', 3) == 'abc'

    def test_short_value_unchanged(self):
        assert truncate('abc', 10) == 'abc'

    def test_empty_and_none_become_none(self):
        """Empty string and None both map to SQL NULL."""
        assert truncate('', 5) is None
        assert truncate(None, 5) is None

    def test_non_string_is_coerced(self):
        assert truncate(123456, 3) == '123'

    def test_whitespace_is_kept(self):
        """truncate does not strip; that is clean_text's job."""
        assert truncate('  ab', 3) == '  a'


class TestParseNumber:
    """Test currency-formatted number parsing."""

    def test_currency_with_thousands(self):
        assert parse_number('$1,234.56') == 1234.56

    def test_plain_integer_text(self):
        assert parse_number('42') == 42.0

    def test_negative_value(self):
        assert parse_number('-$2,500') == -2500.0

    def test_spaces_are_ignored(self):
        assert parse_number(' 1 000 000 ') == 1_000_000.0

    def test_empty_is_none(self):
        assert parse_number('') is None
        assert parse_number('   ') is None
        assert parse_number('$') is None
        assert parse_number(None) is None

    def test_non_numeric_is_none(self):
        assert parse_number('abc') is None
        assert parse_number('12abc') is None
        assert parse_number('No Definido') is None

    def test_float_literal_syntax_rejected(self):
        """Only plain decimals count; exponents and digit separators do not."""
        assert parse_number('1_000') is None
        assert parse_number('1e5') is None
        assert parse_number('1.') is None
        assert parse_number('--5') is None

    def test_non_finite_is_none(self):
        """inf and nan parse as floats but are not valid amounts."""
        assert parse_number('inf') is None
        assert parse_number('NaN') is None
        assert parse_number(float('inf')) is None

    def test_numbers_pass_through(self):
        assert parse_number(1500) == 1500.0
        assert parse_number(2.5) == 2.5

    def test_booleans_are_not_numbers(self):
        assert parse_number(True) is None


class TestParseDate:
    """Test DD/MM/YYYY and ISO-8601 date parsing."""

    def test_slash_date(self):
        assert parse_date('15/03/2023') == date(2023, 3, 15)

    def test_slash_date_with_time_suffix(self):
        assert parse_date('31/01/2020 10:15:00') == date(2020, 1, 31)

    def test_impossible_calendar_date(self):
        assert parse_date('31/02/2020') is None
        assert parse_date('00/01/2020') is None

    def test_incomplete_slash_date(self):
        assert parse_date('15/03') is None
        assert parse_date('aa/bb/cccc') is None

    def test_slash_date_needs_four_digit_year(self):
        assert parse_date('31/01/20') is None
        assert parse_date('31/01/020') is None
        assert parse_date('31/01/20x4') is None
        assert parse_date('31/01/20245') is None
        assert parse_date('1/2/2023') == date(2023, 2, 1)

    def test_iso_date(self):
        assert parse_date('2023-04-01') == date(2023, 4, 1)

    def test_iso_datetime_keeps_time(self):
        parsed = parse_date('2023-04-01T10:30:00')
        assert isinstance(parsed, datetime)
        assert parsed == datetime(2023, 4, 1, 10, 30)

    def test_empty_and_garbage(self):
        assert parse_date('') is None
        assert parse_date(None) is None
        assert parse_date('No Definido') is None


class TestNormalizeBoolean:
    """Test yes/no token normalization."""

    def test_true_tokens(self):
        for token in ('si', 'Sí', 'SI', ' true ', '1', 'Yes'):
            assert normalize_boolean(token) is True, token

    def test_everything_else_is_false(self):
        for token in ('No', '', '0', 'false', 'N/A', 'Centralizada'):
            assert normalize_boolean(token) is False, token

    def test_none_is_false(self):
        assert normalize_boolean(None) is False

    def test_bool_passes_through(self):
        assert normalize_boolean(True) is True
        assert normalize_boolean(False) is False


class TestCleanText:
    """Test whitespace trimming."""

    def test_strips(self):
        assert clean_text('  Bogotá D.C. ') == 'Bogotá D.C.'

    def test_blank_is_none(self):
        assert clean_text('   ') is None
        assert clean_text(None) is None
