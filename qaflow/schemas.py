from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

FieldTypeName = Literal["TEXT", "NUMBER", "RADIO", "FILE", "TEXTAREA"]
PriorityName = Literal["HIGHEST", "HIGH", "MEDIUM", "LOW"]


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None


class MemberAddRequest(BaseModel):
    user_id: str = Field(min_length=1)
    role: Literal["MANAGER", "MEMBER"] = "MEMBER"


class UserProfileRequest(BaseModel):
    name: str = ""
    email: str = ""


class FormFieldInput(BaseModel):
    label: str = Field(min_length=1, max_length=100)
    field_type: FieldTypeName
    options: list[str] = Field(default_factory=list)
    is_required: bool = False
    sort_order: int | None = None


class AnswerFormRequest(BaseModel):
    fields: list[FormFieldInput] = Field(min_length=1)


class AnswerFormPutRequest(BaseModel):
    fields: list[FormFieldInput] | None = Field(default=None, min_length=1)
    template_id: str | None = Field(default=None, min_length=1)


class TagCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)


class FormTemplateCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    fields: list[FormFieldInput] = Field(min_length=1)


class FormTemplateUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    fields: list[FormFieldInput] | None = Field(default=None, min_length=1)


class QuestionCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=10000)
    assignee_id: str = Field(min_length=1)
    priority: PriorityName = "MEDIUM"
    deadline: datetime | None = None
    answer_form: AnswerFormRequest | None = None
    tag_ids: list[str] = Field(default_factory=list)


class QuestionUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = Field(default=None, min_length=1, max_length=10000)
    assignee_id: str | None = Field(default=None, min_length=1)
    priority: PriorityName | None = None
    deadline: datetime | None = None
    tag_ids: list[str] | None = None


class QuestionStatusRequest(BaseModel):
    status: str = Field(min_length=1)


class FormResponseInput(BaseModel):
    form_field_id: str = Field(min_length=1)
    value: str | None = None
    media_file_id: str | None = None


class AnswerCreateRequest(BaseModel):
    content: str = Field(default="", max_length=10000)
    media_file_ids: list[str] = Field(default_factory=list)
    form_responses: list[FormResponseInput] | None = None


class AnswerUpdateRequest(BaseModel):
    content: str | None = Field(default=None, max_length=10000)
    media_file_ids: list[str] | None = None
    form_responses: list[FormResponseInput] | None = None


class NotificationUpdateRequest(BaseModel):
    is_read: bool = True


class MediaFileRegisterRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_type: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    storage_url: str = ""


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": jsonable_encoder(data),
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
