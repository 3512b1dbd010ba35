"""
Identity-verification collaborators used by the wizard.

OTP issuance and PAN confirmation stand in for government APIs. The wizard
depends only on the two abstract interfaces; the demo implementations sleep
for a fixed delay and always succeed, the HTTP ones call a configured
gateway.
"""

import secrets
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx
import structlog
from pydantic import BaseModel

from registration.errors import NetworkError
from registration.formatters import mask_aadhaar_number

logger = structlog.get_logger(__name__)


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


class OtpIssue(BaseModel):
    otp: str
    holder_name: Optional[str] = None


class OtpProvider(ABC):
    @abstractmethod
    def issue(self, aadhaar_number: str) -> OtpIssue:
        """Generate and deliver a fresh OTP for ``aadhaar_number``."""


class DemoOtpProvider(OtpProvider):
    """Logs the OTP instead of sending it and pretends the lookup found a name."""

    def __init__(
        self,
        delay_seconds: float = 2.0,
        otp_factory: Callable[[], str] = generate_otp,
        holder_name: Optional[str] = "Sample Name from Aadhaar",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.delay_seconds = delay_seconds
        self.otp_factory = otp_factory
        self.holder_name = holder_name
        self._sleep = sleep

    def issue(self, aadhaar_number: str) -> OtpIssue:
        if self.delay_seconds:
            self._sleep(self.delay_seconds)
        otp = self.otp_factory()
        logger.info("demo_otp_sent", aadhaar=mask_aadhaar_number(aadhaar_number), otp=otp)
        return OtpIssue(otp=otp, holder_name=self.holder_name)


class HttpOtpProvider(OtpProvider):
    """Generates the OTP locally and asks an SMS/identity gateway to deliver it."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
        otp_factory: Callable[[], str] = generate_otp,
    ):
        self.url = url
        self.client = client or httpx.Client(timeout=timeout)
        self.otp_factory = otp_factory

    def issue(self, aadhaar_number: str) -> OtpIssue:
        otp = self.otp_factory()
        try:
            resp = self.client.post(self.url, json={"aadhaarNumber": aadhaar_number, "otp": otp})
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("otp_delivery_failed", aadhaar=mask_aadhaar_number(aadhaar_number), error=str(e))
            raise NetworkError("Error validating Aadhaar. Please try again.") from e
        return OtpIssue(otp=otp, holder_name=(body or {}).get("holderName"))


class PanVerifier(ABC):
    @abstractmethod
    def verify(self, pan_number: str) -> bool:
        """True when the PAN is known to the tax authority."""


class DemoPanVerifier(PanVerifier):
    def __init__(self, delay_seconds: float = 2.0, sleep: Callable[[float], None] = time.sleep):
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def verify(self, pan_number: str) -> bool:
        if self.delay_seconds:
            self._sleep(self.delay_seconds)
        return True


class HttpPanVerifier(PanVerifier):
    def __init__(self, url: str, client: Optional[httpx.Client] = None, timeout: float = 10.0):
        self.url = url
        self.client = client or httpx.Client(timeout=timeout)

    def verify(self, pan_number: str) -> bool:
        try:
            resp = self.client.post(self.url, json={"panNumber": pan_number})
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("pan_verification_failed", error=str(e))
            raise NetworkError("Error validating PAN. Please try again.") from e
        return bool((body or {}).get("valid"))
