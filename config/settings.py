import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class WizardSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    otp_resend_cooldown_seconds: float = Field(default=60.0, ge=0)
    otp_delay_seconds: float = Field(default=2.0, ge=0)
    pan_delay_seconds: float = Field(default=2.0, ge=0)
    otp_gateway_url: Optional[str] = None
    pan_verify_url: Optional[str] = None

    pincode_api_url: str = "https://api.postalpincode.in"
    pincode_timeout_seconds: float = Field(default=5.0, gt=0)
    pincode_lookup_enabled: bool = True

    submission_url: Optional[str] = None
    encryption_key: Optional[str] = Field(default=None, description="base64, 32 bytes")

    enforce_aadhaar_checksum: bool = False
    expose_demo_otp: bool = True

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    @classmethod
    def from_env(cls) -> "WizardSettings":
        return cls(
            otp_resend_cooldown_seconds=float(os.getenv("OTP_RESEND_COOLDOWN_SECONDS", "60")),
            otp_delay_seconds=float(os.getenv("OTP_DELAY_SECONDS", "2")),
            pan_delay_seconds=float(os.getenv("PAN_DELAY_SECONDS", "2")),
            otp_gateway_url=os.getenv("OTP_GATEWAY_URL") or None,
            pan_verify_url=os.getenv("PAN_VERIFY_URL") or None,
            pincode_api_url=os.getenv("PINCODE_API_URL", "https://api.postalpincode.in"),
            pincode_timeout_seconds=float(os.getenv("PINCODE_TIMEOUT_SECONDS", "5")),
            pincode_lookup_enabled=_env_bool("PINCODE_LOOKUP_ENABLED", True),
            submission_url=os.getenv("SUBMISSION_URL") or None,
            encryption_key=os.getenv("ENCRYPTION_KEY") or None,
            enforce_aadhaar_checksum=_env_bool("ENFORCE_AADHAAR_CHECKSUM", False),
            expose_demo_otp=_env_bool("EXPOSE_DEMO_OTP", True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "console").lower(),
        )
