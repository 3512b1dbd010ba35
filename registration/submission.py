"""
Server-side re-validation of a complete registration.

The validator never trusts what the wizard thinks of its own data: it runs
the shared rule table again over both step payloads and only then creates a
registration record. OTP correctness and PAN confirmation are wizard gates
and are not checked here.
"""

import secrets
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
import structlog
from pydantic import ValidationError

from registration.errors import NetworkError
from registration.rules import STEP1_RULES, STEP2_RULES, registration_date, validate_form
from registration.state import Registration, Step1Data, Step2Data, SubmissionResult

logger = structlog.get_logger(__name__)

REGISTRATION_ID_PREFIX = "UDYAM"
MSG_SUCCESS = "Registration submitted successfully!"
MSG_INVALID = "Validation errors found"
MSG_INTERNAL = "Internal server error. Please try again later."


class RegistrationStore(ABC):
    @abstractmethod
    def append(self, registration: Registration) -> None: ...

    @abstractmethod
    def find_by_id(self, registration_id: str) -> Optional[Registration]: ...

    @abstractmethod
    def count(self) -> int: ...


class InMemoryRegistrationStore(RegistrationStore):
    """Process-lifetime list of registrations. Nothing is ever evicted."""

    def __init__(self):
        self._items: List[Registration] = []
        self._lock = threading.Lock()

    def append(self, registration: Registration) -> None:
        with self._lock:
            self._items.append(registration)

    def find_by_id(self, registration_id: str) -> Optional[Registration]:
        with self._lock:
            for item in self._items:
                if item.id == registration_id:
                    return item
        return None

    def count(self) -> int:
        with self._lock:
            return len(self._items)


class RegistrationIdGenerator:
    """
    UDYAM + epoch milliseconds + three random digits.

    The millisecond part never repeats or goes backwards within one generator,
    even when two ids are requested in the same millisecond.
    """

    def __init__(self, prefix: str = REGISTRATION_ID_PREFIX, clock: Callable[[], float] = time.time):
        self.prefix = prefix
        self._clock = clock
        self._last_ms = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms <= self._last_ms:
                now_ms = self._last_ms + 1
            self._last_ms = now_ms
        return f"{self.prefix}{now_ms}{secrets.randbelow(1000):03d}"


def _stripped(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}


def _pydantic_field_errors(exc: ValidationError, model: type) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for err in exc.errors():
        if not err.get("loc"):
            continue
        name = str(err["loc"][0])
        field = model.model_fields.get(name)
        key = field.alias if field is not None and field.alias else name
        errors.setdefault(key, err["msg"])
    return errors


class SubmissionValidator:
    def __init__(
        self,
        store: Optional[RegistrationStore] = None,
        id_generator: Optional[Callable[[], str]] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store if store is not None else InMemoryRegistrationStore()
        self.id_generator = id_generator or RegistrationIdGenerator()
        self.now = now

    def validate(self, step1_data: Any, step2_data: Any) -> Dict[str, str]:
        step1 = step1_data if isinstance(step1_data, Mapping) else {}
        step2 = step2_data if isinstance(step2_data, Mapping) else {}
        today = registration_date(self.now())
        return {
            **validate_form(step1, STEP1_RULES, today=today),
            **validate_form(step2, STEP2_RULES, today=today),
        }

    def submit(self, step1_data: Any, step2_data: Any) -> SubmissionResult:
        errors = self.validate(step1_data, step2_data)
        if errors:
            logger.info("registration_rejected", fields=sorted(errors))
            return SubmissionResult(success=False, message=MSG_INVALID, errors=errors)

        try:
            step1 = Step1Data.model_validate(_stripped(step1_data))
        except ValidationError as e:
            errors.update(_pydantic_field_errors(e, Step1Data))
        try:
            step2 = Step2Data.model_validate(_stripped(step2_data))
        except ValidationError as e:
            errors.update(_pydantic_field_errors(e, Step2Data))
        if errors:
            logger.info("registration_rejected", fields=sorted(errors))
            return SubmissionResult(success=False, message=MSG_INVALID, errors=errors)

        registration = Registration(
            id=self.id_generator(),
            step1=step1,
            step2=step2,
            submitted_at=self.now(),
        )
        self.store.append(registration)

        logger.info(
            "registration_submitted",
            registration_id=registration.id,
            entrepreneur_name=step1.entrepreneur_name,
            business_name=step2.business_name,
            submitted_at=registration.submitted_at.isoformat(),
        )
        return SubmissionResult(
            success=True,
            message=MSG_SUCCESS,
            registration_id=registration.id,
            submitted_at=registration.submitted_at,
        )

    def get_registration(self, registration_id: str) -> Optional[Registration]:
        return self.store.find_by_id(registration_id)


class SubmissionGateway(ABC):
    """How the wizard reaches the submission validator."""

    @abstractmethod
    def submit(self, step1_data: Dict[str, Any], step2_data: Dict[str, Any]) -> SubmissionResult: ...


class LocalSubmissionGateway(SubmissionGateway):
    def __init__(self, validator: SubmissionValidator):
        self.validator = validator

    def submit(self, step1_data: Dict[str, Any], step2_data: Dict[str, Any]) -> SubmissionResult:
        return self.validator.submit(step1_data, step2_data)


class HttpSubmissionGateway(SubmissionGateway):
    def __init__(
        self,
        base_url: str = "",
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
        path: str = "/submit-registration",
    ):
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.path = path

    def submit(self, step1_data: Dict[str, Any], step2_data: Dict[str, Any]) -> SubmissionResult:
        try:
            resp = self.client.post(self.path, json={"step1Data": step1_data, "step2Data": step2_data})
        except httpx.HTTPError as e:
            logger.warning("submission_request_failed", error=str(e))
            raise NetworkError("Network error. Please check your connection and try again.") from e

        if resp.status_code not in (200, 400):
            logger.warning("submission_unexpected_status", status_code=resp.status_code)
            raise NetworkError(f"Registration service returned HTTP {resp.status_code}. Please try again.")

        try:
            body = resp.json()
        except ValueError as e:
            raise NetworkError("Registration service returned an unreadable response.") from e

        return SubmissionResult(
            success=bool(body.get("success")),
            message=body.get("message") or "",
            registration_id=body.get("registrationId"),
            errors=body.get("errors") or {},
        )
