"""
Field validation rules shared by the wizard and the submission endpoint.

There is exactly one rule table. The interactive wizard validates fields
against it on every edit and on step completion, and the submission
validator re-runs the same table on the full payload, so the two can never
drift apart.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator


class Patterns:
    AADHAAR = r"^\d{12}$"
    PAN = r"^[A-Z]{5}[0-9]{4}[A-Z]{1}$"
    OTP = r"^\d{6}$"
    PIN_CODE = r"^\d{6}$"
    MOBILE = r"^[6-9]\d{9}$"
    EMAIL = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
    BANK_ACCOUNT = r"^\d{9,18}$"
    IFSC = r"^[A-Z]{4}0[A-Z0-9]{6}$"


class Messages:
    REQUIRED = "This field is required"
    AADHAAR_INVALID = "Please enter a valid 12-digit Aadhaar number"
    AADHAAR_CHECKSUM = "Aadhaar number failed checksum verification"
    NAME_INVALID = "Please enter a valid name (2-100 characters)"
    OTP_INVALID = "Please enter a valid 6-digit OTP"
    OTP_MISMATCH = "Invalid OTP. Please check and try again."
    DECLARATION = "Please accept the declaration"
    PAN_INVALID = "Please enter a valid PAN number (e.g., ABCDE1234F)"
    PAN_NOT_CONFIRMED = "Please validate your PAN number first."
    BUSINESS_NAME_INVALID = "Please enter a valid business name (2-100 characters)"
    BUSINESS_TYPE = "Please select a business type"
    ADDRESS_INVALID = "Please enter a valid address (10-200 characters)"
    PIN_CODE_INVALID = "Please enter a valid 6-digit PIN code"
    CITY = "Please enter city name"
    STATE = "Please select state"
    MOBILE_INVALID = "Please enter a valid 10-digit mobile number"
    EMAIL_INVALID = "Please enter a valid email address"
    BANK_ACCOUNT_INVALID = "Please enter a valid bank account number (9-18 digits)"
    IFSC_INVALID = "Please enter a valid IFSC code"
    DATE_OF_COMMENCEMENT = "Please select date of commencement"
    DATE_IN_FUTURE = "Date of commencement cannot be in the future"

    @staticmethod
    def min_length(n: int) -> str:
        return f"Minimum {n} characters required"

    @staticmethod
    def max_length(n: int) -> str:
        return f"Maximum {n} characters allowed"


# registration dates are Indian calendar dates, on the wizard and on the server
REGISTRATION_TZ = timezone(timedelta(hours=5, minutes=30), "IST")


def registration_date(now: Optional[datetime] = None) -> date:
    """Today's date in the registration time zone, for the commencement-date rule."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(REGISTRATION_TZ).date()


BUSINESS_TYPES: Tuple[str, ...] = ("manufacturing", "service", "trading")

INDIAN_STATES: Tuple[str, ...] = (
    "Andhra Pradesh",
    "Arunachal Pradesh",
    "Assam",
    "Bihar",
    "Chhattisgarh",
    "Goa",
    "Gujarat",
    "Haryana",
    "Himachal Pradesh",
    "Jharkhand",
    "Karnataka",
    "Kerala",
    "Madhya Pradesh",
    "Maharashtra",
    "Manipur",
    "Meghalaya",
    "Mizoram",
    "Nagaland",
    "Odisha",
    "Punjab",
    "Rajasthan",
    "Sikkim",
    "Tamil Nadu",
    "Telangana",
    "Tripura",
    "Uttar Pradesh",
    "Uttarakhand",
    "West Bengal",
    "Andaman and Nicobar Islands",
    "Chandigarh",
    "Dadra and Nagar Haveli and Daman and Diu",
    "Delhi",
    "Jammu and Kashmir",
    "Ladakh",
    "Lakshadweep",
    "Puducherry",
)


class ValidationRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    required: bool = False
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    message: str = ""
    choices: Optional[Tuple[str, ...]] = None
    not_in_future: bool = False
    must_be_true: bool = False
    # \s and \w follow Unicode; digit classes stay ASCII unless this is set
    unicode: bool = False

    @model_validator(mode="after")
    def _check_definition(self) -> "ValidationRule":
        if self.pattern is not None:
            try:
                re.compile(self.pattern, self._flags())
            except re.error as e:
                raise ValueError(f"invalid pattern {self.pattern!r}: {e}") from e
        for bound in (self.min_length, self.max_length):
            if bound is not None and bound < 0:
                raise ValueError("length bounds must be non-negative")
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError("min_length cannot exceed max_length")
        return self

    def _flags(self) -> int:
        return 0 if self.unicode else re.ASCII

    def matches(self, text: str) -> bool:
        if self.pattern is None:
            return True
        return re.search(self.pattern, text, self._flags()) is not None

    def describe(self) -> Dict[str, Any]:
        """JSON-friendly view, used to publish the table to other clients."""
        return {
            "required": self.required,
            "pattern": self.pattern,
            "minLength": self.min_length,
            "maxLength": self.max_length,
            "message": self.message,
            "choices": list(self.choices) if self.choices is not None else None,
            "notInFuture": self.not_in_future,
            "mustBeTrue": self.must_be_true,
        }


def is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return True
    return str(value).strip() == ""


def validate_field(value: Any, rule: ValidationRule, today: Optional[date] = None) -> str:
    """
    Return the first failing check's message for ``value``, or "" if it passes.

    Order: required, empty short-circuit, pattern, min length, max length,
    choices, date-not-in-future, must-be-true. Pattern and length checks look
    at the trimmed string form of the value.
    """
    if rule.required and is_blank(value):
        return rule.message or Messages.REQUIRED

    if is_blank(value):
        return ""

    text = str(value).strip()

    if rule.pattern is not None and not rule.matches(text):
        return rule.message

    if rule.min_length is not None and len(text) < rule.min_length:
        return rule.message or Messages.min_length(rule.min_length)

    if rule.max_length is not None and len(text) > rule.max_length:
        return rule.message or Messages.max_length(rule.max_length)

    if rule.choices is not None and text not in rule.choices:
        return rule.message or Messages.REQUIRED

    if rule.not_in_future:
        try:
            when = date.fromisoformat(text)
        except ValueError:
            return rule.message or Messages.DATE_OF_COMMENCEMENT
        if when > (today or registration_date()):
            return Messages.DATE_IN_FUTURE

    if rule.must_be_true and value is not True:
        return rule.message or Messages.REQUIRED

    return ""


def validate_form(
    data: Optional[Mapping[str, Any]],
    rules: Mapping[str, ValidationRule],
    today: Optional[date] = None,
) -> Dict[str, str]:
    data = data or {}
    errors: Dict[str, str] = {}
    for field, rule in rules.items():
        error = validate_field(data.get(field), rule, today=today)
        if error:
            errors[field] = error
    return errors


STEP1_RULES: Dict[str, ValidationRule] = {
    "aadhaarNumber": ValidationRule(
        required=True, pattern=Patterns.AADHAAR, message=Messages.AADHAAR_INVALID
    ),
    "entrepreneurName": ValidationRule(
        required=True, min_length=2, max_length=100, message=Messages.NAME_INVALID
    ),
    "otp": ValidationRule(required=True, pattern=Patterns.OTP, message=Messages.OTP_INVALID),
    "declaration": ValidationRule(required=True, must_be_true=True, message=Messages.DECLARATION),
}

STEP2_RULES: Dict[str, ValidationRule] = {
    "panNumber": ValidationRule(
        required=True, pattern=Patterns.PAN, message=Messages.PAN_INVALID
    ),
    "businessName": ValidationRule(
        required=True, min_length=2, max_length=100, message=Messages.BUSINESS_NAME_INVALID
    ),
    "businessType": ValidationRule(
        required=True, choices=BUSINESS_TYPES, message=Messages.BUSINESS_TYPE
    ),
    "address": ValidationRule(
        required=True, min_length=10, max_length=200, message=Messages.ADDRESS_INVALID
    ),
    "pinCode": ValidationRule(
        required=True, pattern=Patterns.PIN_CODE, message=Messages.PIN_CODE_INVALID
    ),
    "city": ValidationRule(required=True, message=Messages.CITY),
    "state": ValidationRule(required=True, choices=INDIAN_STATES, message=Messages.STATE),
    "mobileNumber": ValidationRule(
        required=True, pattern=Patterns.MOBILE, message=Messages.MOBILE_INVALID
    ),
    "emailId": ValidationRule(
        required=True, pattern=Patterns.EMAIL, unicode=True, message=Messages.EMAIL_INVALID
    ),
    "bankAccountNumber": ValidationRule(
        required=True, pattern=Patterns.BANK_ACCOUNT, message=Messages.BANK_ACCOUNT_INVALID
    ),
    "ifscCode": ValidationRule(
        required=True, pattern=Patterns.IFSC, message=Messages.IFSC_INVALID
    ),
    "dateOfCommencement": ValidationRule(
        required=True, not_in_future=True, message=Messages.DATE_OF_COMMENCEMENT
    ),
}

RULES: Dict[str, ValidationRule] = {**STEP1_RULES, **STEP2_RULES}


def rule_for(field: str) -> ValidationRule:
    try:
        return RULES[field]
    except KeyError:
        raise KeyError(f"no validation rule for field {field!r}") from None


def describe_rules() -> Dict[str, Dict[str, Dict[str, Any]]]:
    return {
        "step1": {name: rule.describe() for name, rule in STEP1_RULES.items()},
        "step2": {name: rule.describe() for name, rule in STEP2_RULES.items()},
    }
