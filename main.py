
from config.logging import configure_logging
from config.settings import WizardSettings
from registration.errors import RegistrationError
from registration.rules import registration_date
from registration.submission import SubmissionValidator
from app import build_pincode_lookup, build_wizard


def main():
    settings = WizardSettings.from_env()
    configure_logging(settings.log_level, settings.log_format)

    validator = SubmissionValidator()
    wizard = build_wizard(settings, validator, pincode_lookup=build_pincode_lookup(settings))
    session_id = wizard.start()

    step1_patches = [
        {"aadhaarNumber": "1234 5678 9012 99", "declaration": True},
        {"entrepreneurName": "K"},
        {"entrepreneurName": "Khushi Kaushik"},
    ]
    for i, patch in enumerate(step1_patches, 1):
        state = wizard.update_step1(session_id, patch)
        print(f"\nSTEP 1 PATCH #{i}: {patch}")
        print("errors:", state.step1_errors)

    state = wizard.request_otp(session_id)
    print("\nOTP sent, resend available in", wizard.resend_available_in(state), "seconds")
    wizard.update_step1(session_id, {"otp": state.issued_otp})
    state = wizard.next_step(session_id)
    print("current step:", state.current_step, "completed:", state.completed_steps)

    state = wizard.update_step2(
        session_id,
        {
            "panNumber": "abcde1234f",
            "businessName": "Kaushik Textiles",
            "businessType": "manufacturing",
            "address": "12 Residency Road, Bangalore",
            "pinCode": "560001",
            "mobileNumber": "9876543210",
            "emailId": "khushi@example.com",
            "bankAccountNumber": "123456789012",
            "ifscCode": "sbin0001234",
            "dateOfCommencement": registration_date().isoformat(),
        },
    )
    print("\nstep 2 data:", state.step2.to_wire())
    print("city options:", state.city_options)

    try:
        wizard.submit(session_id)
    except RegistrationError as e:
        print("submit blocked:", e.message)

    wizard.confirm_pan(session_id)
    state = wizard.submit(session_id)
    print("\nregistration id:", state.registration_id)
    print("receipt:", wizard.receipt(session_id))
    print("records stored:", validator.store.count())


if __name__ == "__main__":
    main()
