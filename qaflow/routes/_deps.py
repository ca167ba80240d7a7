from __future__ import annotations

import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

from qaflow.domain import Principal
from qaflow.errors import ApiError
from qaflow.outcome import Err, Outcome
from qaflow.schemas import error_envelope, success_envelope


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def principal_from_request(request: Request) -> Principal | None:
    return getattr(request.state, "principal", None)


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    status_code: int,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=message,
            error_class=error_class,
            retryable=retryable,
            trace_id=trace_id_from_request(request),
        ),
    )


def respond(request: Request, outcome: Outcome, *, status_code: int = 200) -> JSONResponse:
    """Render an engine outcome; an ``Err`` becomes the matching ``ApiError``."""
    if isinstance(outcome, Err):
        raise ApiError.from_err(outcome)
    return JSONResponse(
        status_code=status_code,
        content=success_envelope(outcome.value, trace_id_from_request(request)),
    )
