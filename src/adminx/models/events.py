"""Domain events emitted onto the outbound event channel."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ErrorKind
from .results import AdminTaskResult, utcnow


class _Event(BaseModel):
    at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class AuthSucceeded(_Event):
    type: Literal["auth_succeeded"] = "auth_succeeded"
    user_id: str = Field(alias="userId")
    scopes: tuple[str, ...] = ()


class TaskExecuted(_Event):
    type: Literal["task_executed"] = "task_executed"
    result: AdminTaskResult


class ErrorOccurred(_Event):
    type: Literal["error_occurred"] = "error_occurred"
    operation: str
    error_kind: ErrorKind = Field(alias="errorKind")
    context: dict[str, Any] = Field(default_factory=dict)


class TemplateUsed(_Event):
    type: Literal["template_used"] = "template_used"
    template_id: str = Field(alias="templateId")
    user_id: str | None = Field(default=None, alias="userId")
    successful: bool


class SignedOut(_Event):
    type: Literal["signed_out"] = "signed_out"
    user_id: str | None = Field(default=None, alias="userId")


class SuspiciousActivityDetected(_Event):
    type: Literal["suspicious_activity"] = "suspicious_activity"
    alert_type: str = Field(alias="alertType")
    severity: str
    user_id: str | None = Field(default=None, alias="userId")
    count: int
    description: str


AdminEvent = Union[
    AuthSucceeded, TaskExecuted, ErrorOccurred, TemplateUsed, SignedOut, SuspiciousActivityDetected
]


__all__ = [
    "AdminEvent",
    "AuthSucceeded",
    "ErrorOccurred",
    "SignedOut",
    "SuspiciousActivityDetected",
    "TaskExecuted",
    "TemplateUsed",
]
