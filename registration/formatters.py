import re
from typing import Any, Dict

_NON_DIGIT = re.compile(r"\D", re.ASCII)
_WHITESPACE = re.compile(r"\s")
_AADHAAR_GROUPS = re.compile(r"^(\d{4})(\d{4})(\d{4})$", re.ASCII)

# digits kept per field while typing; anything beyond the cap is dropped
DIGIT_CAPS: Dict[str, int] = {
    "aadhaarNumber": 12,
    "otp": 6,
    "pinCode": 6,
    "mobileNumber": 10,
    "bankAccountNumber": 18,
}

UPPERCASE_CAPS: Dict[str, int] = {
    "panNumber": 10,
    "ifscCode": 11,
}


def clean_numeric_input(value: str) -> str:
    return _NON_DIGIT.sub("", value)


def format_aadhaar_number(value: str) -> str:
    """Group 12 digits as 4-4-4 for display. Anything else comes back as-is."""
    cleaned = _WHITESPACE.sub("", value)
    match = _AADHAAR_GROUPS.match(cleaned)
    if match:
        return " ".join(match.groups())
    return value


def mask_aadhaar_number(value: str) -> str:
    digits = clean_numeric_input(value or "")
    if len(digits) != 12:
        return "XXXX XXXX XXXX"
    return f"XXXX XXXX {digits[-4:]}"


def format_pan_number(value: str) -> str:
    return value.upper()


def normalize_field(field: str, value: Any) -> Any:
    """Canonical storage form of a raw keystroke value for ``field``."""
    if value is None:
        return value
    if field in DIGIT_CAPS:
        return clean_numeric_input(str(value))[: DIGIT_CAPS[field]]
    if field == "panNumber":
        return format_pan_number(str(value))[: UPPERCASE_CAPS[field]]
    if field in UPPERCASE_CAPS:
        return str(value).upper()[: UPPERCASE_CAPS[field]]
    return value


# Verhoeff dihedral group tables
_VERHOEFF_D = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9),
    (1, 2, 3, 4, 0, 6, 7, 8, 9, 5),
    (2, 3, 4, 0, 1, 7, 8, 9, 5, 6),
    (3, 4, 0, 1, 2, 8, 9, 5, 6, 7),
    (4, 0, 1, 2, 3, 9, 5, 6, 7, 8),
    (5, 9, 8, 7, 6, 0, 4, 3, 2, 1),
    (6, 5, 9, 8, 7, 1, 0, 4, 3, 2),
    (7, 6, 5, 9, 8, 2, 1, 0, 4, 3),
    (8, 7, 6, 5, 9, 3, 2, 1, 0, 4),
    (9, 8, 7, 6, 5, 4, 3, 2, 1, 0),
)

_VERHOEFF_P = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9),
    (1, 5, 7, 6, 2, 8, 3, 0, 9, 4),
    (5, 8, 0, 3, 7, 9, 6, 1, 4, 2),
    (8, 9, 1, 6, 0, 4, 3, 5, 2, 7),
    (9, 4, 5, 3, 1, 2, 6, 8, 7, 0),
    (4, 2, 8, 6, 5, 7, 3, 9, 0, 1),
    (2, 7, 9, 3, 8, 0, 6, 4, 1, 5),
    (7, 0, 4, 6, 9, 1, 3, 2, 5, 8),
)


def validate_aadhaar_checksum(aadhaar: str) -> bool:
    digits = clean_numeric_input(aadhaar)
    if len(digits) != 12:
        return False

    c = 0
    for i, digit in enumerate(reversed(digits)):
        c = _VERHOEFF_D[c][_VERHOEFF_P[i % 8][int(digit)]]
    return c == 0
