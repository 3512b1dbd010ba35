import base64

import pytest

from persistence.crypto import CryptoUtils
from persistence.encrypted_memory_saver import EncryptedInMemorySaver
from registration.providers import DemoPanVerifier
from registration.submission import LocalSubmissionGateway, SubmissionValidator
from registration.wizard import RegistrationWizard

from helpers import FakeClock, SequenceOtpProvider

TEST_KEY_B64 = base64.b64encode(bytes(range(32))).decode("utf-8")


@pytest.fixture
def step1_data():
    return {
        "aadhaarNumber": "123456789012",
        "entrepreneurName": "Asha Gupta",
        "otp": "123456",
        "declaration": True,
    }


@pytest.fixture
def step2_data():
    return {
        "panNumber": "ABCDE1234F",
        "businessName": "Asha Textiles",
        "businessType": "manufacturing",
        "address": "12 MG Road, Fort, Mumbai",
        "pinCode": "400001",
        "city": "Mumbai",
        "state": "Maharashtra",
        "mobileNumber": "9876543210",
        "emailId": "asha@example.com",
        "bankAccountNumber": "123456789012",
        "ifscCode": "SBIN0001234",
        "dateOfCommencement": "2020-01-15",
    }


@pytest.fixture
def crypto():
    return CryptoUtils.from_b64(TEST_KEY_B64)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp_provider():
    return SequenceOtpProvider()


@pytest.fixture
def submission_validator():
    return SubmissionValidator()


@pytest.fixture
def wizard(crypto, clock, otp_provider, submission_validator):
    return RegistrationWizard(
        gateway=LocalSubmissionGateway(submission_validator),
        otp_provider=otp_provider,
        pan_verifier=DemoPanVerifier(delay_seconds=0),
        checkpointer=EncryptedInMemorySaver(crypto),
        clock=clock,
    )
