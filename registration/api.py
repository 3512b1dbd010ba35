from typing import Any, Dict

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from registration.errors import RegistrationError
from registration.rules import describe_rules
from registration.submission import MSG_INTERNAL, SubmissionValidator
from registration.wizard import RegistrationWizard

logger = structlog.get_logger(__name__)

router = APIRouter()


def _validator(request: Request) -> SubmissionValidator:
    return request.app.state.submission_validator


def _wizard(request: Request) -> RegistrationWizard:
    return request.app.state.wizard


def _session_body(request: Request, session_id: str, state) -> Dict[str, Any]:
    wizard = _wizard(request)
    expose = request.app.state.settings.expose_demo_otp
    return {"success": True, "sessionId": session_id, "state": wizard.view(state, expose_otp=expose)}


async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": exc.message, "errors": exc.errors}
    if exc.state is not None:
        expose = request.app.state.settings.expose_demo_otp
        body["alert"] = exc.state.alert
        body["state"] = _wizard(request).view(exc.state, expose_otp=expose)
    return JSONResponse(status_code=exc.status_code, content=body)


# ===================== submission endpoint =====================

@router.post("/submit-registration")
async def submit_registration(request: Request) -> JSONResponse:
    try:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(
                status_code=400,
                content={"success": False, "message": "Request body must be valid JSON", "errors": {}},
            )
        if not isinstance(payload, dict):
            return JSONResponse(
                status_code=400,
                content={"success": False, "message": "Request body must be a JSON object", "errors": {}},
            )

        result = _validator(request).submit(payload.get("step1Data"), payload.get("step2Data"))
        return JSONResponse(status_code=200 if result.success else 400, content=result.to_wire())
    except Exception:
        logger.exception("registration_submission_error")
        return JSONResponse(status_code=500, content={"success": False, "message": MSG_INTERNAL})


@router.api_route("/submit-registration", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def submit_registration_wrong_method() -> JSONResponse:
    return JSONResponse(
        status_code=405,
        content={"success": False, "message": "Method not allowed"},
        headers={"Allow": "POST"},
    )


@router.get("/registrations/{registration_id}")
def get_registration(registration_id: str, request: Request) -> Dict[str, Any]:
    registration = _validator(request).get_registration(registration_id)
    if registration is None:
        raise HTTPException(status_code=404, detail="Registration not found")
    return registration.to_wire()


@router.get("/validation-rules")
def validation_rules() -> Dict[str, Any]:
    return describe_rules()


@router.get("/pincode/{pin_code}")
def pincode_lookup(pin_code: str, request: Request) -> Dict[str, Any]:
    lookup = request.app.state.pincode_lookup
    location = lookup.lookup(pin_code) if lookup is not None else None
    if location is None:
        raise HTTPException(status_code=404, detail="PIN code not found; enter city and state manually")
    return {
        "pinCode": location.pin_code,
        "cities": location.cities,
        "state": location.state,
        "source": location.source,
    }


# ===================== wizard endpoints =====================

@router.post("/wizard/sessions", status_code=201)
def create_session(request: Request) -> Dict[str, Any]:
    wizard = _wizard(request)
    session_id = wizard.start()
    return _session_body(request, session_id, wizard.get_state(session_id))


@router.get("/wizard/sessions/{session_id}")
def read_session(session_id: str, request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).get_state(session_id))


@router.patch("/wizard/sessions/{session_id}/step1")
def edit_step1(session_id: str, changes: Dict[str, Any], request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).update_step1(session_id, changes))


@router.post("/wizard/sessions/{session_id}/otp")
def send_otp(session_id: str, request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).request_otp(session_id))


@router.post("/wizard/sessions/{session_id}/otp/resend")
def resend_otp(session_id: str, request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).resend_otp(session_id))


@router.post("/wizard/sessions/{session_id}/next")
def next_step(session_id: str, request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).next_step(session_id))


@router.patch("/wizard/sessions/{session_id}/step2")
def edit_step2(session_id: str, changes: Dict[str, Any], request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).update_step2(session_id, changes))


@router.post("/wizard/sessions/{session_id}/pan/confirm")
def confirm_pan(session_id: str, request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).confirm_pan(session_id))


@router.post("/wizard/sessions/{session_id}/back")
def back(session_id: str, request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).back(session_id))


@router.post("/wizard/sessions/{session_id}/submit")
def submit_session(session_id: str, request: Request) -> Dict[str, Any]:
    return _session_body(request, session_id, _wizard(request).submit(session_id))


@router.get("/wizard/sessions/{session_id}/receipt")
def receipt(session_id: str, request: Request) -> Dict[str, Any]:
    return _wizard(request).receipt(session_id)
