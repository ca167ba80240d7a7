"""Tagged results returned across the engine boundary.

Engine operations never raise to their callers. Internally they abort with
``WorkflowError``; ``workflow_operation`` converts that, and any unexpected
store failure, into an ``Err`` the transport layer can map to a status code.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ErrorKind(StrEnum):
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID = "INVALID"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"


@dataclass(frozen=True)
class Ok:
    value: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Outcome = Ok | Err


class WorkflowError(Exception):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.err = Err(kind=kind, message=message)

    @classmethod
    def passthrough(cls, err: Err) -> "WorkflowError":
        exc = cls(err.kind, err.message)
        exc.err = err
        return exc


def unwrap(outcome: Outcome) -> Any:
    """Return the value of ``Ok`` or abort the current operation with the same ``Err``."""
    if isinstance(outcome, Err):
        raise WorkflowError.passthrough(outcome)
    return outcome.value


def _entity_ids(kwargs: dict[str, Any]) -> dict[str, Any]:
    ids = {key: value for key, value in kwargs.items() if key.endswith("_id")}
    principal = kwargs.get("principal")
    if principal is not None:
        ids["principal_id"] = getattr(principal, "user_id", None)
    return ids


def workflow_operation(name: str) -> Callable[[F], F]:
    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Outcome:
            if "principal" in kwargs and kwargs["principal"] is None:
                return Err(kind=ErrorKind.UNAUTHENTICATED, message="authentication required")
            try:
                value = fn(*args, **kwargs)
            except WorkflowError as exc:
                return exc.err
            except Exception:
                logger.exception("workflow_operation_failed op=%s ids=%s", name, _entity_ids(kwargs))
                return Err(kind=ErrorKind.INTERNAL, message="internal error")
            if isinstance(value, (Ok, Err)):
                return value
            return Ok(value)

        return wrapper  # type: ignore[return-value]

    return decorator
