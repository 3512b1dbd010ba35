import re
from datetime import datetime, timezone

import httpx
import pytest

from registration.errors import NetworkError
from registration.rules import Messages
from registration.state import RegistrationStatus
from registration.submission import (
    HttpSubmissionGateway,
    InMemoryRegistrationStore,
    RegistrationIdGenerator,
    SubmissionValidator,
)

ID_SHAPE = re.compile(r"^UDYAM\d{13}\d{3}$")


def test_valid_payload_creates_one_record(submission_validator, step1_data, step2_data):
    result = submission_validator.submit(step1_data, step2_data)

    assert result.success
    assert result.message == "Registration submitted successfully!"
    assert ID_SHAPE.match(result.registration_id)
    assert submission_validator.store.count() == 1

    stored = submission_validator.get_registration(result.registration_id)
    assert stored.status == RegistrationStatus.SUBMITTED
    assert stored.step1.aadhaar_number == "123456789012"
    assert stored.step2.business_name == "Asha Textiles"


def test_single_invalid_field_rejects_without_side_effect(submission_validator, step1_data, step2_data):
    step2_data["pinCode"] = "40001"

    result = submission_validator.submit(step1_data, step2_data)

    assert not result.success
    assert result.message == "Validation errors found"
    assert result.errors == {"pinCode": Messages.PIN_CODE_INVALID}
    assert result.registration_id is None
    assert submission_validator.store.count() == 0


def test_errors_from_both_steps_are_merged(submission_validator, step1_data, step2_data):
    step1_data["aadhaarNumber"] = "1234"
    step2_data["panNumber"] = "abcde1234f"

    result = submission_validator.submit(step1_data, step2_data)

    assert set(result.errors) == {"aadhaarNumber", "panNumber"}


def test_missing_payloads_flag_every_field(submission_validator):
    result = submission_validator.submit(None, "not an object")

    assert not result.success
    assert "aadhaarNumber" in result.errors
    assert "dateOfCommencement" in result.errors
    assert submission_validator.store.count() == 0


def test_type_errors_surface_as_field_errors(submission_validator, step1_data, step2_data):
    step2_data["city"] = ["Mumbai"]

    result = submission_validator.submit(step1_data, step2_data)

    assert not result.success
    assert "city" in result.errors
    assert submission_validator.store.count() == 0


def test_future_commencement_date_rejected(step1_data, step2_data):
    validator = SubmissionValidator(now=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc))
    step2_data["dateOfCommencement"] = "2024-01-02"

    result = validator.submit(step1_data, step2_data)

    assert result.errors == {"dateOfCommencement": Messages.DATE_IN_FUTURE}


def test_otp_and_pan_gate_are_not_rechecked(submission_validator, step1_data, step2_data):
    step1_data["otp"] = "000000"

    assert submission_validator.submit(step1_data, step2_data).success


def test_resubmission_is_not_idempotent(submission_validator, step1_data, step2_data):
    first = submission_validator.submit(step1_data, step2_data)
    second = submission_validator.submit(step1_data, step2_data)

    assert first.registration_id != second.registration_id
    assert submission_validator.store.count() == 2


def test_id_time_component_strictly_increases_within_same_millisecond():
    gen = RegistrationIdGenerator(clock=lambda: 1700000000.0)

    ids = [gen() for _ in range(5)]
    millis = [int(i[len("UDYAM"):-3]) for i in ids]

    assert millis == sorted(set(millis))
    assert millis[0] == 1700000000000
    assert len(set(ids)) == 5


def test_store_find_by_id_misses_cleanly():
    store = InMemoryRegistrationStore()
    assert store.find_by_id("UDYAM0") is None
    assert store.count() == 0


def test_result_wire_shape(submission_validator, step1_data, step2_data):
    ok = submission_validator.submit(step1_data, step2_data).to_wire()
    assert set(ok) == {"success", "message", "registrationId"}

    step1_data["otp"] = ""
    bad = submission_validator.submit(step1_data, step2_data).to_wire()
    assert set(bad) == {"success", "message", "errors"}


def _gateway(handler) -> HttpSubmissionGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://registry.test")
    return HttpSubmissionGateway(client=client)


def test_http_gateway_reads_success():
    def handler(request):
        assert request.url.path == "/submit-registration"
        return httpx.Response(200, json={"success": True, "message": "ok", "registrationId": "UDYAM1"})

    result = _gateway(handler).submit({}, {})
    assert result.success
    assert result.registration_id == "UDYAM1"


def test_http_gateway_reads_validation_errors():
    def handler(request):
        return httpx.Response(
            400, json={"success": False, "message": "Validation errors found", "errors": {"pinCode": "bad"}}
        )

    result = _gateway(handler).submit({}, {})
    assert not result.success
    assert result.errors == {"pinCode": "bad"}


def test_http_gateway_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        _gateway(handler).submit({}, {})


def test_http_gateway_server_error():
    def handler(request):
        return httpx.Response(500, json={"success": False, "message": "boom"})

    with pytest.raises(NetworkError):
        _gateway(handler).submit({}, {})


@pytest.mark.parametrize("declaration", ["false", "0", "true"])
def test_declaration_string_is_not_accepted(submission_validator, step1_data, step2_data, declaration):
    step1_data["declaration"] = declaration

    result = submission_validator.submit(step1_data, step2_data)

    assert result.errors == {"declaration": Messages.DECLARATION}
    assert submission_validator.store.count() == 0


def test_stored_values_are_trimmed(submission_validator, step1_data, step2_data):
    step1_data["entrepreneurName"] = "  Asha Gupta "
    step2_data["panNumber"] = " ABCDE1234F "
    step2_data["city"] = "Mumbai\t"

    result = submission_validator.submit(step1_data, step2_data)

    stored = submission_validator.get_registration(result.registration_id)
    assert stored.step1.entrepreneur_name == "Asha Gupta"
    assert stored.step2.pan_number == "ABCDE1234F"
    assert stored.step2.city == "Mumbai"
    assert stored.step1.declaration is True
