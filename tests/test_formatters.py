import pytest

from registration.formatters import (
    clean_numeric_input,
    format_aadhaar_number,
    format_pan_number,
    mask_aadhaar_number,
    normalize_field,
    validate_aadhaar_checksum,
)


def test_format_aadhaar_groups_twelve_digits():
    assert format_aadhaar_number("123456789012") == "1234 5678 9012"
    assert format_aadhaar_number("1234 5678 9012") == "1234 5678 9012"


def test_format_aadhaar_leaves_partial_input_alone():
    assert format_aadhaar_number("12345") == "12345"
    assert format_aadhaar_number("") == ""


@pytest.mark.parametrize("digits", ["", "1", "1234", "123456789012", "9999999999999"])
def test_clean_after_format_is_clean(digits):
    assert clean_numeric_input(format_aadhaar_number(digits)) == clean_numeric_input(digits)


def test_clean_numeric_input_strips_everything_but_digits():
    assert clean_numeric_input("+91 98765-43210") == "919876543210"
    assert clean_numeric_input("abc") == ""


@pytest.mark.parametrize(
    "field,raw,expected",
    [
        ("aadhaarNumber", "1234 5678 9012 345", "123456789012"),
        ("otp", "12-34-56-78", "123456"),
        ("pinCode", "400 0011", "400001"),
        ("mobileNumber", "98765 43210 99", "9876543210"),
        ("bankAccountNumber", "1" * 25, "1" * 18),
        ("panNumber", "abcde1234fxx", "ABCDE1234F"),
        ("ifscCode", "sbin0001234zz", "SBIN0001234"),
        ("businessType", "service", "service"),
        ("declaration", True, True),
        ("dateOfCommencement", "2020-01-15", "2020-01-15"),
    ],
)
def test_normalize_field(field, raw, expected):
    assert normalize_field(field, raw) == expected


def test_format_pan_uppercases():
    assert format_pan_number("abcde1234f") == "ABCDE1234F"


def test_mask_aadhaar_keeps_last_four():
    assert mask_aadhaar_number("123456789012") == "XXXX XXXX 9012"
    assert mask_aadhaar_number("123") == "XXXX XXXX XXXX"


def test_verhoeff_checksum():
    assert validate_aadhaar_checksum("000000002364")
    assert validate_aadhaar_checksum("0000 0000 2364")
    assert not validate_aadhaar_checksum("000000002363")
    assert [d for d in range(10) if validate_aadhaar_checksum(f"00000000236{d}")] == [4]
    assert not validate_aadhaar_checksum("2363")
