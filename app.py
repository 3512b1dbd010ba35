import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.logging import configure_logging
from config.settings import WizardSettings
from persistence.crypto import CryptoUtils
from persistence.encrypted_memory_saver import EncryptedInMemorySaver
from registration.api import registration_error_handler, router
from registration.errors import RegistrationError
from registration.pincode import PinCodeLookup
from registration.providers import (
    DemoOtpProvider,
    DemoPanVerifier,
    HttpOtpProvider,
    HttpPanVerifier,
    OtpProvider,
    PanVerifier,
)
from registration.submission import (
    HttpSubmissionGateway,
    LocalSubmissionGateway,
    SubmissionGateway,
    SubmissionValidator,
)
from registration.wizard import RegistrationWizard


def build_pincode_lookup(settings: WizardSettings) -> PinCodeLookup:
    return PinCodeLookup(
        base_url=settings.pincode_api_url,
        timeout=settings.pincode_timeout_seconds,
        enabled=settings.pincode_lookup_enabled,
    )


def build_wizard(
    settings: WizardSettings,
    submission_validator: SubmissionValidator,
    otp_provider: Optional[OtpProvider] = None,
    pan_verifier: Optional[PanVerifier] = None,
    pincode_lookup: Optional[PinCodeLookup] = None,
    gateway: Optional[SubmissionGateway] = None,
) -> RegistrationWizard:
    if otp_provider is None:
        otp_provider = (
            HttpOtpProvider(settings.otp_gateway_url)
            if settings.otp_gateway_url
            else DemoOtpProvider(delay_seconds=settings.otp_delay_seconds)
        )
    if pan_verifier is None:
        pan_verifier = (
            HttpPanVerifier(settings.pan_verify_url)
            if settings.pan_verify_url
            else DemoPanVerifier(delay_seconds=settings.pan_delay_seconds)
        )
    if gateway is None:
        gateway = (
            HttpSubmissionGateway(settings.submission_url)
            if settings.submission_url
            else LocalSubmissionGateway(submission_validator)
        )

    checkpointer = EncryptedInMemorySaver(CryptoUtils.from_b64(settings.encryption_key))
    return RegistrationWizard(
        gateway=gateway,
        otp_provider=otp_provider,
        pan_verifier=pan_verifier,
        pincode_lookup=pincode_lookup,
        checkpointer=checkpointer,
        resend_cooldown_seconds=settings.otp_resend_cooldown_seconds,
        enforce_aadhaar_checksum=settings.enforce_aadhaar_checksum,
        now=submission_validator.now,
    )


def create_app(
    settings: Optional[WizardSettings] = None,
    submission_validator: Optional[SubmissionValidator] = None,
    wizard: Optional[RegistrationWizard] = None,
    pincode_lookup: Optional[PinCodeLookup] = None,
) -> FastAPI:
    settings = settings or WizardSettings.from_env()
    configure_logging(settings.log_level, settings.log_format)

    submission_validator = submission_validator or SubmissionValidator()
    pincode_lookup = pincode_lookup or build_pincode_lookup(settings)
    wizard = wizard or build_wizard(settings, submission_validator, pincode_lookup=pincode_lookup)

    app = FastAPI(title="Udyam Registration API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.submission_validator = submission_validator
    app.state.pincode_lookup = pincode_lookup
    app.state.wizard = wizard

    app.add_exception_handler(RegistrationError, registration_error_handler)
    app.include_router(router)

    @app.get("/")
    async def root():
        return {"message": "Udyam registration backend is running"}

    return app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
