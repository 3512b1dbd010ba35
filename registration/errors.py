from typing import Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from registration.state import WizardState


class RegistrationError(Exception):
    """Base for every recoverable wizard or submission failure."""

    status_code = 400

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, str]] = None,
        state: Optional["WizardState"] = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = dict(errors or {})
        self.state = state


class FieldValidationError(RegistrationError):
    pass


class OtpMismatchError(RegistrationError):
    pass


class ConfirmationGateError(RegistrationError):
    pass


class ServerValidationError(RegistrationError):
    pass


class NetworkError(RegistrationError):
    status_code = 502


class RegistrationLockedError(RegistrationError):
    status_code = 409


class StepOrderError(RegistrationError):
    status_code = 409


class SessionNotFoundError(RegistrationError):
    status_code = 404


# graph nodes record a failure kind in state; the wizard raises the matching type
FAILURE_TYPES = {
    "field_validation": FieldValidationError,
    "otp_mismatch": OtpMismatchError,
    "pan_not_confirmed": ConfirmationGateError,
    "server_validation": ServerValidationError,
    "network": NetworkError,
}
