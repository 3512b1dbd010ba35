import httpx

from registration.pincode import PinCodeLookup


def _lookup(handler, enabled=True) -> PinCodeLookup:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return PinCodeLookup(base_url="https://pincode.test/", client=client, enabled=enabled)


def test_api_result_lists_unique_districts():
    def handler(request):
        assert str(request.url) == "https://pincode.test/pincode/560001"
        return httpx.Response(
            200,
            json=[
                {
                    "Status": "Success",
                    "PostOffice": [
                        {"District": "Bengaluru", "State": "Karnataka"},
                        {"District": "Bengaluru", "State": "Karnataka"},
                        {"District": "Bangalore Rural", "State": "Karnataka"},
                    ],
                }
            ],
        )

    location = _lookup(handler).lookup("560001")

    assert location.source == "api"
    assert location.cities == ["Bengaluru", "Bangalore Rural"]
    assert location.state == "Karnataka"


def test_api_error_falls_back_to_builtin_table():
    def handler(request):
        return httpx.Response(200, json=[{"Status": "Error", "PostOffice": None}])

    location = _lookup(handler).lookup("110001")

    assert location.source == "fallback"
    assert location.cities == ["New Delhi"]
    assert location.state == "Delhi"


def test_network_failure_falls_back():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    assert _lookup(handler).lookup("400001").state == "Maharashtra"


def test_garbage_payload_falls_back():
    def handler(request):
        return httpx.Response(200, json=["nope"])

    assert _lookup(handler).lookup("600001").cities == ["Chennai"]


def test_unknown_pin_means_manual_entry():
    def handler(request):
        return httpx.Response(404)

    assert _lookup(handler).lookup("999999") is None


def test_disabled_lookup_never_calls_api():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    lookup = _lookup(handler, enabled=False)

    assert lookup.lookup("160001").state == "Chandigarh"
    assert calls == []


def test_malformed_pin_is_not_looked_up():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    assert _lookup(handler).lookup("4000") is None
    assert _lookup(handler).lookup("40000a") is None
    assert calls == []
