from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .models.auth import AuthenticationResult
    from .models.results import ValidationResult


class ErrorKind(str, Enum):
    """Error taxonomy shared by exceptions and structured results."""

    VALIDATION = "validation"
    TEMPLATE = "template"
    AUTH_REQUIRED = "auth_required"
    CONSENT_DENIED = "consent_denied"
    SCOPE_MISMATCH = "scope_mismatch"
    TOKEN_EXPIRED = "token_expired"
    EXECUTION = "execution"
    CANCELLED = "cancelled"


class AdminxError(Exception):
    """Base error for adminx."""

    kind: ErrorKind = ErrorKind.EXECUTION


class ParameterValidationError(AdminxError):
    kind = ErrorKind.VALIDATION

    def __init__(self, result: ValidationResult) -> None:
        fields = ", ".join(issue.field for issue in result.errors) or "(none)"
        super().__init__(f"Parameter validation failed for: {fields}")
        self.result = result


class TemplateError(AdminxError):
    kind = ErrorKind.TEMPLATE


class TemplateNotFoundError(TemplateError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template '{template_id}' not found")
        self.template_id = template_id


class UnresolvedPlaceholderError(TemplateError):
    def __init__(self, placeholder: str) -> None:
        super().__init__(f"Placeholder '{{{{{placeholder}}}}}' has no matching parameter")
        self.placeholder = placeholder


class QuotedPlaceholderError(TemplateError):
    """A placeholder sits inside a string literal of the script body."""

    def __init__(self, placeholder: str, code: str) -> None:
        super().__init__(f"Placeholder '{{{{{placeholder}}}}}' is inside a string literal")
        self.placeholder = placeholder
        self.code = code


class DuplicateTemplateIdError(TemplateError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template id '{template_id}' is already in use")
        self.template_id = template_id


class CatalogUnavailableError(TemplateError):
    """Raised when the template catalog directory cannot be read or written."""


class AuthError(AdminxError):
    kind = ErrorKind.AUTH_REQUIRED


class AuthRequiredError(AuthError):
    kind = ErrorKind.AUTH_REQUIRED


class ConsentDeniedError(AuthError):
    kind = ErrorKind.CONSENT_DENIED


class ScopeMismatchError(AuthError):
    kind = ErrorKind.SCOPE_MISMATCH

    def __init__(
        self, missing: Iterable[str], result: Optional[AuthenticationResult] = None
    ) -> None:
        self.missing = sorted(missing)
        super().__init__(f"Granted scopes are missing: {', '.join(self.missing)}")
        self.result = result


class TokenExpiredUnrecoverableError(AuthError):
    kind = ErrorKind.TOKEN_EXPIRED


class AuthCancelledError(AuthError):
    kind = ErrorKind.CANCELLED


class TokenCacheError(AdminxError):
    kind = ErrorKind.AUTH_REQUIRED


class TokenCacheCorruptedError(TokenCacheError):
    """The persisted token cache record cannot be parsed."""


class ExecutionError(AdminxError):
    kind = ErrorKind.EXECUTION


class ScriptHostUnavailableError(ExecutionError):
    pass


class HttpError(AdminxError):
    def __init__(self, status_code: int, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.details = details
