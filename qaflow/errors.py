from __future__ import annotations

from qaflow.outcome import Err, ErrorKind

_KIND_TO_HTTP: dict[ErrorKind, tuple[str, str, bool, int]] = {
    ErrorKind.NOT_FOUND: ("REQ_NOT_FOUND", "validation", False, 404),
    ErrorKind.BAD_REQUEST: ("REQ_REFERENCE_MISMATCH", "validation", False, 400),
    ErrorKind.FORBIDDEN: ("AUTH_FORBIDDEN", "security_sensitive", False, 403),
    ErrorKind.UNAUTHENTICATED: ("AUTH_UNAUTHORIZED", "security_sensitive", False, 401),
    ErrorKind.INVALID: ("WF_PRECONDITION_FAILED", "business_rule", False, 400),
    ErrorKind.CONFLICT: ("REQ_CONFLICT", "business_rule", False, 409),
    ErrorKind.INTERNAL: ("INTERNAL_ERROR", "transient", True, 500),
}


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status

    @classmethod
    def from_err(cls, err: Err) -> "ApiError":
        code, error_class, retryable, http_status = _KIND_TO_HTTP[err.kind]
        return cls(
            code=code,
            message=err.message,
            error_class=error_class,
            retryable=retryable,
            http_status=http_status,
        )
