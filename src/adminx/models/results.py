"""Structured results returned to callers instead of raised faults."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..errors import ErrorKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str = ""

    model_config = ConfigDict(frozen=True)


class ValidationResult(BaseModel):
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error_fields(self) -> list[str]:
        return [issue.field for issue in self.errors]


class TaskError(BaseModel):
    """One structured problem attached to an :class:`AdminTaskResult`."""

    kind: ErrorKind
    code: str = ""
    message: str = ""
    field: str | None = None

    model_config = ConfigDict(frozen=True)


class AdminTaskResult(BaseModel):
    """Outcome of executing or previewing a template."""

    task_id: str = Field(default_factory=lambda: uuid.uuid4().hex, alias="taskId")
    template_id: str = Field(alias="templateId")
    dry_run: bool = Field(default=False, alias="dryRun")
    success: bool = False
    rendered_script: str = Field(default="", alias="renderedScript")
    output: str = ""
    error_output: str = Field(default="", alias="errorOutput")
    exit_code: int | None = Field(default=None, alias="exitCode")
    errors: list[TaskError] = Field(default_factory=list)
    executed_at: datetime = Field(default_factory=utcnow, alias="executedAt")
    duration_ms: int = Field(default=0, alias="durationMs")
    executed_by: str | None = Field(default=None, alias="executedBy")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def cancelled(self) -> bool:
        return any(error.kind is ErrorKind.CANCELLED for error in self.errors)

    @classmethod
    def failure(
        cls,
        template_id: str,
        kind: ErrorKind,
        message: str,
        *,
        code: str = "",
        dry_run: bool = False,
        rendered_script: str = "",
    ) -> AdminTaskResult:
        return cls(
            templateId=template_id,
            dryRun=dry_run,
            success=False,
            renderedScript=rendered_script,
            errors=[TaskError(kind=kind, code=code, message=message)],
        )

    @classmethod
    def invalid(
        cls, template_id: str, validation: ValidationResult, *, dry_run: bool = False
    ) -> AdminTaskResult:
        """One ``VALIDATION`` error per failing parameter."""

        return cls(
            templateId=template_id,
            dryRun=dry_run,
            success=False,
            errors=[
                TaskError(
                    kind=ErrorKind.VALIDATION,
                    code=issue.code,
                    message=issue.message,
                    field=issue.field,
                )
                for issue in validation.errors
            ],
        )


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "TaskError",
    "AdminTaskResult",
    "utcnow",
]
