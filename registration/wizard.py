"""
Session-level operations of the two-step registration wizard.

Every operation reads the session from the graph checkpointer, applies its
change as a patch through the step graph, and returns the resulting state.
Failed transitions raise the matching ``RegistrationError`` with that state
attached, so callers can render the error map and alert.

Slow collaborator calls (OTP issuance, PAN confirmation, PIN lookup) run
outside the per-session lock; their results are applied only if the value
they were requested for is still the current one.
"""

import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Set, Tuple

import structlog
from langgraph.checkpoint.memory import InMemorySaver
from pydantic import ValidationError

from registration.errors import (
    FAILURE_TYPES,
    FieldValidationError,
    NetworkError,
    RegistrationError,
    RegistrationLockedError,
    SessionNotFoundError,
    StepOrderError,
)
from registration.formatters import (
    format_aadhaar_number,
    mask_aadhaar_number,
    normalize_field,
    validate_aadhaar_checksum,
)
from registration.graph import RegistrationGraphFactory
from registration.pincode import PinCodeLookup
from registration.providers import OtpProvider, PanVerifier
from registration.rules import (
    INDIAN_STATES,
    STEP1_RULES,
    STEP2_RULES,
    Messages,
    registration_date,
    rule_for,
    validate_field,
)
from registration.state import STEP1_FIELDS, STEP2_FIELDS, Step1Data, Step2Data, WizardState
from registration.submission import SubmissionGateway
from registration.validator import RegistrationValidator

logger = structlog.get_logger(__name__)

MSG_OTP_SENT = "OTP has been sent to your registered mobile number"
MSG_PAN_CONFIRMED = "PAN validated successfully!"
MSG_PAN_REJECTED = "PAN could not be verified. Please check the number."


class RegistrationWizard:
    def __init__(
        self,
        gateway: SubmissionGateway,
        otp_provider: OtpProvider,
        pan_verifier: PanVerifier,
        pincode_lookup: Optional[PinCodeLookup] = None,
        checkpointer: Any = None,
        clock: Callable[[], float] = time.monotonic,
        resend_cooldown_seconds: float = 60.0,
        enforce_aadhaar_checksum: bool = False,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.otp_provider = otp_provider
        self.pan_verifier = pan_verifier
        self.pincode_lookup = pincode_lookup
        self.resend_cooldown_seconds = resend_cooldown_seconds
        self.enforce_aadhaar_checksum = enforce_aadhaar_checksum
        self._clock = clock
        self._now = now

        factory = RegistrationGraphFactory(RegistrationValidator(now=now), gateway, now=now)
        self.graph = factory.compile(checkpointer=checkpointer or InMemorySaver())

        self._guard = threading.Lock()
        # dropped once a session completes; open sessions keep theirs for the process lifetime
        self._session_locks: Dict[str, threading.RLock] = {}
        self._inflight: Set[Tuple[str, str]] = set()

    # -- plumbing -----------------------------------------------------------

    @staticmethod
    def _config(session_id: str) -> Dict[str, Any]:
        return {"configurable": {"thread_id": session_id}}

    def _lock(self, session_id: str) -> threading.RLock:
        with self._guard:
            return self._session_locks.setdefault(session_id, threading.RLock())

    @contextmanager
    def _exclusive(self, session_id: str, operation: str) -> Iterator[bool]:
        """Yields False when the same operation is already running for the session."""
        key = (session_id, operation)
        with self._guard:
            busy = key in self._inflight
            if not busy:
                self._inflight.add(key)
        try:
            yield not busy
        finally:
            if not busy:
                with self._guard:
                    self._inflight.discard(key)

    def _invoke(self, session_id: str, patch: Dict[str, Any]) -> WizardState:
        update = {"action": "edit", "alert": None, "failure": None, **patch}
        self.graph.invoke(update, self._config(session_id))
        return self.get_state(session_id)

    def _require(self, state: WizardState, step: str, session_id: str) -> None:
        if state.current_step == "completed":
            self._release(session_id)
            raise RegistrationLockedError(
                "Registration already submitted. Start a new session to register again.",
                state=state,
            )
        if state.current_step != step:
            raise StepOrderError(f"This action is only available in {step}.", state=state)

    def _release(self, session_id: str) -> None:
        with self._guard:
            self._session_locks.pop(session_id, None)

    @staticmethod
    def _raise_for_failure(state: WizardState) -> WizardState:
        if not state.failure:
            return state
        error_type = FAILURE_TYPES.get(state.failure, RegistrationError)
        errors = {**state.step1_errors, **state.step2_errors}
        raise error_type(state.alert or "Request failed", errors=errors, state=state)

    # -- session lifecycle -------------------------------------------------

    def start(self) -> str:
        session_id = uuid.uuid4().hex
        self._invoke(session_id, WizardState().to_channels())
        logger.info("wizard_session_started", session_id=session_id)
        return session_id

    def get_state(self, session_id: str) -> WizardState:
        snapshot = self.graph.get_state(self._config(session_id))
        values = snapshot.values
        if isinstance(values, WizardState):
            return values
        if not values:
            raise SessionNotFoundError(f"Unknown wizard session {session_id}")
        return WizardState.model_validate(values)

    # -- field edits ---------------------------------------------------------

    def _apply_changes(self, model, current, changes: Mapping[str, Any], allowed, rules, errors):
        unknown = sorted(set(changes) - set(allowed))
        if unknown:
            raise FieldValidationError(
                f"Unknown field(s): {', '.join(unknown)}",
                errors={name: "Unknown field" for name in unknown},
            )

        normalized = {name: normalize_field(name, value) for name, value in changes.items()}
        try:
            updated = model.model_validate({**current.to_wire(), **normalized})
        except ValidationError as e:
            field_errors = {str(err["loc"][0]): err["msg"] for err in e.errors() if err.get("loc")}
            raise FieldValidationError("Invalid field value", errors=field_errors) from e

        errors = dict(errors)
        wire = updated.to_wire()
        today = registration_date(self._now())
        for name in normalized:
            message = validate_field(wire[name], rules[name], today=today)
            if message:
                errors[name] = message
            else:
                errors.pop(name, None)
        return updated, errors

    def update_step1(self, session_id: str, changes: Mapping[str, Any]) -> WizardState:
        with self._lock(session_id):
            state = self.get_state(session_id)
            self._require(state, "step1", session_id)
            try:
                step1, errors = self._apply_changes(
                    Step1Data, state.step1, changes, STEP1_FIELDS, STEP1_RULES, state.step1_errors
                )
            except FieldValidationError as e:
                e.state = state
                raise

            patch: Dict[str, Any] = {}
            if state.otp_sent and step1.aadhaar_number != state.otp_aadhaar:
                # a new Aadhaar invalidates the OTP issued for the old one
                step1 = step1.model_copy(update={"otp": ""})
                errors.pop("otp", None)
                patch.update(issued_otp=None, otp_issued_at=None, otp_aadhaar=None)
                logger.info("otp_invalidated", session_id=session_id)

            patch.update(step1=step1.model_dump(), step1_errors=errors)
            return self._invoke(session_id, patch)

    def update_step2(self, session_id: str, changes: Mapping[str, Any]) -> WizardState:
        with self._lock(session_id):
            state = self.get_state(session_id)
            self._require(state, "step2", session_id)
            try:
                step2, errors = self._apply_changes(
                    Step2Data, state.step2, changes, STEP2_FIELDS, STEP2_RULES, state.step2_errors
                )
            except FieldValidationError as e:
                e.state = state
                raise

            patch: Dict[str, Any] = {"step2": step2.model_dump(), "step2_errors": errors}
            if step2.pan_number != state.step2.pan_number:
                patch["pan_confirmed"] = False
            pin_changed = step2.pin_code != state.step2.pin_code
            if pin_changed and len(step2.pin_code) != 6:
                patch["city_options"] = []
            state = self._invoke(session_id, patch)

        if pin_changed and len(step2.pin_code) == 6:
            state = self._apply_pin_lookup(session_id, step2.pin_code)
        return state

    def _apply_pin_lookup(self, session_id: str, pin_code: str) -> WizardState:
        location = self.pincode_lookup.lookup(pin_code) if self.pincode_lookup else None

        with self._lock(session_id):
            state = self.get_state(session_id)
            if state.current_step != "step2" or state.step2.pin_code != pin_code:
                logger.info("pincode_result_stale", session_id=session_id, pin_code=pin_code)
                return state
            if location is None:
                return self._invoke(session_id, {"city_options": []})

            fills: Dict[str, Any] = {}
            if not state.step2.city and location.cities:
                fills["city"] = location.cities[0]
            if not state.step2.state and location.state in INDIAN_STATES:
                fills["state"] = location.state
            step2 = state.step2.model_copy(update=fills)
            errors = dict(state.step2_errors)
            for field in ("city", "state"):
                if getattr(step2, field):
                    errors.pop(field, None)
            return self._invoke(
                session_id,
                {"step2": step2.model_dump(), "step2_errors": errors, "city_options": location.cities},
            )

    # -- OTP -----------------------------------------------------------------

    def resend_available_in(self, state: WizardState) -> float:
        if state.otp_issued_at is None:
            return 0.0
        remaining = self.resend_cooldown_seconds - (self._clock() - state.otp_issued_at)
        return max(0.0, remaining)

    def request_otp(self, session_id: str) -> WizardState:
        with self._lock(session_id):
            state = self.get_state(session_id)
            self._require(state, "step1", session_id)
            aadhaar = state.step1.aadhaar_number

            message = validate_field(aadhaar, rule_for("aadhaarNumber"))
            if not message and self.enforce_aadhaar_checksum and not validate_aadhaar_checksum(aadhaar):
                message = Messages.AADHAAR_CHECKSUM
            if message:
                state = self._invoke(
                    session_id, {"step1_errors": {**state.step1_errors, "aadhaarNumber": message}}
                )
                raise FieldValidationError(message, errors=state.step1_errors, state=state)

            if state.otp_sent and self.resend_available_in(state) > 0:
                logger.info("otp_resend_blocked", session_id=session_id)
                return state

        with self._exclusive(session_id, "otp") as acquired:
            if not acquired:
                return self.get_state(session_id)
            try:
                issue = self.otp_provider.issue(aadhaar)
            except NetworkError as e:
                with self._lock(session_id):
                    state = self._invoke(session_id, {"alert": e.message})
                e.state = state
                raise

        with self._lock(session_id):
            state = self.get_state(session_id)
            if state.current_step != "step1" or state.step1.aadhaar_number != aadhaar:
                logger.info("otp_result_stale", session_id=session_id)
                return state

            step1 = state.step1
            if not step1.entrepreneur_name and issue.holder_name:
                step1 = step1.model_copy(update={"entrepreneur_name": issue.holder_name})
            errors = {k: v for k, v in state.step1_errors.items() if k != "aadhaarNumber"}
            if step1.entrepreneur_name:
                errors.pop("entrepreneurName", None)

            logger.info("otp_issued", session_id=session_id, aadhaar=mask_aadhaar_number(aadhaar))
            return self._invoke(
                session_id,
                {
                    "step1": step1.model_dump(),
                    "step1_errors": errors,
                    "issued_otp": issue.otp,
                    "otp_issued_at": self._clock(),
                    "otp_aadhaar": aadhaar,
                    "alert": MSG_OTP_SENT,
                },
            )

    def resend_otp(self, session_id: str) -> WizardState:
        state = self.get_state(session_id)
        self._require(state, "step1", session_id)
        if not state.otp_sent:
            raise StepOrderError("No OTP has been sent yet.", state=state)
        return self.request_otp(session_id)

    # -- transitions ---------------------------------------------------------

    def next_step(self, session_id: str) -> WizardState:
        with self._lock(session_id):
            state = self.get_state(session_id)
            self._require(state, "step1", session_id)
            state = self._invoke(session_id, {"action": "next"})
        if state.current_step == "step2":
            logger.info("wizard_step1_completed", session_id=session_id)
        return self._raise_for_failure(state)

    def back(self, session_id: str) -> WizardState:
        with self._lock(session_id):
            state = self.get_state(session_id)
            self._require(state, "step2", session_id)
            return self._invoke(session_id, {"action": "back"})

    def confirm_pan(self, session_id: str) -> WizardState:
        with self._lock(session_id):
            state = self.get_state(session_id)
            self._require(state, "step2", session_id)
            pan = state.step2.pan_number

            message = validate_field(pan, rule_for("panNumber"))
            if message:
                state = self._invoke(
                    session_id, {"step2_errors": {**state.step2_errors, "panNumber": message}}
                )
                raise FieldValidationError(message, errors=state.step2_errors, state=state)
            if state.pan_confirmed:
                return state

        with self._exclusive(session_id, "pan") as acquired:
            if not acquired:
                return self.get_state(session_id)
            try:
                verified = self.pan_verifier.verify(pan)
            except NetworkError as e:
                with self._lock(session_id):
                    state = self._invoke(session_id, {"alert": e.message})
                e.state = state
                raise

        with self._lock(session_id):
            state = self.get_state(session_id)
            if state.current_step != "step2" or state.step2.pan_number != pan:
                logger.info("pan_result_stale", session_id=session_id)
                return state
            if not verified:
                state = self._invoke(
                    session_id,
                    {"step2_errors": {**state.step2_errors, "panNumber": MSG_PAN_REJECTED}},
                )
                raise FieldValidationError(MSG_PAN_REJECTED, errors=state.step2_errors, state=state)

            errors = {k: v for k, v in state.step2_errors.items() if k != "panNumber"}
            return self._invoke(
                session_id,
                {"pan_confirmed": True, "step2_errors": errors, "alert": MSG_PAN_CONFIRMED},
            )

    def submit(self, session_id: str) -> WizardState:
        with self._lock(session_id):
            state = self.get_state(session_id)
            self._require(state, "step2", session_id)
            state = self._invoke(session_id, {"action": "submit"})
        if state.current_step == "completed":
            self._release(session_id)
        return self._raise_for_failure(state)

    # -- read models ---------------------------------------------------------

    def receipt(self, session_id: str) -> Dict[str, Any]:
        """What print/PDF export needs once the registration is complete."""
        state = self.get_state(session_id)
        if state.current_step != "completed":
            raise StepOrderError("Registration has not been submitted yet.", state=state)
        return {
            "registrationId": state.registration_id,
            "entrepreneurName": state.step1.entrepreneur_name,
            "businessName": state.step2.business_name,
            "submittedAt": state.submitted_at,
        }

    def view(self, state: WizardState, expose_otp: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "currentStep": state.current_step,
            "completedSteps": list(state.completed_steps),
            "step1Data": state.step1.to_wire(),
            "step2Data": state.step2.to_wire(),
            "step1Errors": dict(state.step1_errors),
            "step2Errors": dict(state.step2_errors),
            "aadhaarDisplay": format_aadhaar_number(state.step1.aadhaar_number),
            "otpSent": state.otp_sent,
            "resendAvailableIn": round(self.resend_available_in(state), 1),
            "panConfirmed": state.pan_confirmed,
            "cityOptions": list(state.city_options),
            "alert": state.alert,
            "registrationId": state.registration_id,
            "submittedAt": state.submitted_at,
        }
        if expose_otp and state.issued_otp:
            body["demoOtp"] = state.issued_otp
        return body
