from datetime import datetime, timezone
from typing import Any, Callable, Dict, Literal

from registration.rules import STEP1_RULES, STEP2_RULES, Messages, registration_date, validate_form
from registration.state import WizardState


class RegistrationValidator:
    """
    Step-gating rules, written as graph node and router functions.

    Nodes return partial updates; the graph merges them into the session
    state. A non-empty ``failure`` stops the run before any transition.
    """

    def __init__(self, now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._now = now

    @staticmethod
    def route_action(state: WizardState) -> Literal["validate", "back", "end"]:
        if state.action in ("next", "submit"):
            return "validate"
        if state.action == "back":
            return "back"
        return "end"

    def validate_active_step(self, state: WizardState) -> Dict[str, Any]:
        today = registration_date(self._now())
        if state.current_step == "step1":
            errors = validate_form(state.step1.to_wire(), STEP1_RULES, today=today)
            key = "step1_errors"
        else:
            errors = validate_form(state.step2.to_wire(), STEP2_RULES, today=today)
            key = "step2_errors"

        return {
            key: errors,
            "failure": "field_validation" if errors else None,
            "alert": "Please correct the highlighted fields." if errors else None,
        }

    @staticmethod
    def check_gates(state: WizardState) -> Dict[str, Any]:
        if state.failure:
            return {}

        if state.current_step == "step1":
            step1 = state.step1
            otp_matches = (
                state.issued_otp is not None
                and state.otp_aadhaar == step1.aadhaar_number
                and step1.otp == state.issued_otp
            )
            if not otp_matches:
                return {
                    "step1_errors": {**state.step1_errors, "otp": Messages.OTP_MISMATCH},
                    "alert": Messages.OTP_MISMATCH,
                    "failure": "otp_mismatch",
                }
            return {}

        if not state.pan_confirmed:
            return {"alert": Messages.PAN_NOT_CONFIRMED, "failure": "pan_not_confirmed"}
        return {}

    @staticmethod
    def route_after_gates(state: WizardState) -> Literal["advance", "submit", "end"]:
        if state.failure:
            return "end"
        return "advance" if state.current_step == "step1" else "submit"
