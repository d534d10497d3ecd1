"""Re-export typed models for the adminx engine."""

from __future__ import annotations

from .auth import AuthenticationResult, AuthState, AuthStatus
from .events import (
    AdminEvent,
    AuthSucceeded,
    ErrorOccurred,
    SignedOut,
    SuspiciousActivityDetected,
    TaskExecuted,
    TemplateUsed,
)
from .forms import ControlKind, FormDefinition, SelectOption, UiControl
from .results import AdminTaskResult, TaskError, ValidationIssue, ValidationResult
from .templates import AdminTemplate, ParameterType, TemplateParameter

__all__ = [
    "AdminEvent",
    "AdminTaskResult",
    "AdminTemplate",
    "AuthSucceeded",
    "AuthState",
    "AuthStatus",
    "AuthenticationResult",
    "ControlKind",
    "ErrorOccurred",
    "FormDefinition",
    "ParameterType",
    "SelectOption",
    "SignedOut",
    "SuspiciousActivityDetected",
    "TaskError",
    "TaskExecuted",
    "TemplateParameter",
    "TemplateUsed",
    "UiControl",
    "ValidationIssue",
    "ValidationResult",
]
