from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

WizardStep = Literal["step1", "step2", "completed"]


class _FormData(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Step1Data(_FormData):
    aadhaar_number: str = Field(default="", description="12 digits, no separators")
    entrepreneur_name: str = ""
    otp: str = ""
    declaration: bool = False


class Step2Data(_FormData):
    pan_number: str = ""
    business_name: str = ""
    business_type: str = Field(default="", description="manufacturing|service|trading")
    address: str = ""
    pin_code: str = ""
    city: str = ""
    state: str = ""
    mobile_number: str = ""
    email_id: str = ""
    bank_account_number: str = ""
    ifsc_code: str = ""
    date_of_commencement: str = Field(default="", description="YYYY-MM-DD")


STEP1_FIELDS = frozenset(f.alias for f in Step1Data.model_fields.values())
STEP2_FIELDS = frozenset(f.alias for f in Step2Data.model_fields.values())


class RegistrationStatus(str, Enum):
    SUBMITTED = "submitted"


class Registration(BaseModel):
    id: str
    step1: Step1Data
    step2: Step2Data
    submitted_at: datetime
    status: RegistrationStatus = RegistrationStatus.SUBMITTED

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "data": {"step1Data": self.step1.to_wire(), "step2Data": self.step2.to_wire()},
            "submittedAt": self.submitted_at.isoformat(),
            "status": self.status.value,
        }


class SubmissionResult(BaseModel):
    success: bool
    message: str
    registration_id: Optional[str] = None
    errors: Dict[str, str] = Field(default_factory=dict)
    submitted_at: Optional[datetime] = None

    def to_wire(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.success:
            body["registrationId"] = self.registration_id
        else:
            body["errors"] = dict(self.errors)
        return body


class WizardState(BaseModel):
    """
    One wizard session, as held in the graph checkpointer.

    Nested form data is written back to the graph as plain dicts, so every
    channel value stays a primitive for the checkpoint serializer.
    """

    current_step: WizardStep = "step1"
    step1: Step1Data = Field(default_factory=Step1Data)
    step2: Step2Data = Field(default_factory=Step2Data)
    step1_errors: Dict[str, str] = Field(default_factory=dict)
    step2_errors: Dict[str, str] = Field(default_factory=dict)
    completed_steps: List[int] = Field(default_factory=list)

    issued_otp: Optional[str] = None
    otp_issued_at: Optional[float] = None
    otp_aadhaar: Optional[str] = Field(default=None, description="Aadhaar the OTP was issued for")

    pan_confirmed: bool = False
    city_options: List[str] = Field(default_factory=list)

    action: Optional[Literal["edit", "next", "back", "submit"]] = None
    alert: Optional[str] = None
    failure: Optional[str] = None

    registration_id: Optional[str] = None
    submitted_at: Optional[str] = None

    @property
    def otp_sent(self) -> bool:
        return self.issued_otp is not None

    def to_channels(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
