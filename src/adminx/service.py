"""Admin service facade: the public contract consumed by user interfaces.

Every expected failure comes back as an :class:`AdminTaskResult` or
:class:`ValidationResult`. Only authentication (which raises typed
:class:`AuthError` subclasses), a corrupted token cache and an inaccessible
template catalog raise.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from .audit import DEFAULT_LOOKBACK, ActivityAlert, AuditReport, AuditTrail
from .auth.azure_ad import MsalIdentityClient
from .auth.session import AuthSessionManager
from .auth.token_cache import build_token_cache
from .config import Profile
from .errors import (
    ErrorKind,
    ParameterValidationError,
    QuotedPlaceholderError,
    TemplateError,
    TemplateNotFoundError,
)
from .events import EventPublisher
from .execution.engine import ExecutionEngine
from .execution.host import PowerShellHost
from .models.auth import AuthenticationResult, AuthStatus, missing_scopes
from .models.events import ErrorOccurred, SuspiciousActivityDetected, TaskExecuted, TemplateUsed
from .models.forms import FormDefinition
from .models.results import AdminTaskResult, ValidationIssue, ValidationResult
from .models.templates import AdminTemplate
from .templates import builder, forms, validator
from .templates.store import SaveOutcome, TemplateStore

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        store: TemplateStore,
        session: AuthSessionManager,
        engine: ExecutionEngine,
        *,
        events: EventPublisher | None = None,
        audit: AuditTrail | None = None,
    ) -> None:
        self.store = store
        self.session = session
        self.engine = engine
        self.events = events or EventPublisher()
        self.audit = audit

    @classmethod
    def from_profile(
        cls,
        profile: Profile,
        *,
        events: EventPublisher | None = None,
        audit: AuditTrail | None = None,
    ) -> AdminService:
        """Wire the default collaborators for ``profile``."""

        events = events or EventPublisher()
        session = AuthSessionManager(
            build_token_cache(profile),
            identity_factory=lambda: MsalIdentityClient.from_profile(profile),
            events=events,
            default_scopes=profile.scopes,
            refresh_margin=profile.refresh_margin,
            network_timeout=profile.network_timeout,
            interactive_timeout=profile.interactive_timeout,
        )
        engine = ExecutionEngine(
            PowerShellHost(profile.script_host), timeout=profile.execution_timeout
        )
        return cls(
            TemplateStore(profile.resolved_templates_dir()),
            session,
            engine,
            events=events,
            audit=audit or AuditTrail(),
        )

    # ---- authentication ----
    async def authenticate(
        self,
        scopes: Iterable[str] | None = None,
        *,
        interactive: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> AuthenticationResult:
        return await self.session.authenticate(
            scopes, interactive=interactive, cancel_event=cancel_event
        )

    def get_auth_status(self) -> AuthStatus:
        return self.session.get_status()

    async def refresh_tokens(self) -> bool:
        await self.session.restore()
        return await self.session.refresh()

    async def sign_out(self) -> bool:
        return await self.session.sign_out()

    # ---- templates ----
    def get_available_templates(self, category: str | None = None) -> list[AdminTemplate]:
        return self.store.list_templates(category)

    def get_template(self, template_id: str) -> AdminTemplate:
        return self.store.get_by_id(template_id)

    def generate_form(self, template_id: str) -> FormDefinition:
        return forms.generate(self.store.get_by_id(template_id))

    def save_template(self, template: AdminTemplate) -> SaveOutcome:
        return self.store.save(template)

    def validate_parameters(self, template_id: str, values: Mapping[str, Any]) -> ValidationResult:
        try:
            template = self.store.get_by_id(template_id)
        except TemplateNotFoundError as exc:
            return ValidationResult(
                errors=[ValidationIssue(field="templateId", message=str(exc), code="template_not_found")]
            )
        return validator.validate(template, values)

    # ---- execution ----
    async def execute_admin_script(
        self,
        template_id: str,
        values: Mapping[str, Any],
        *,
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> AdminTaskResult:
        """Validate, render and run (or preview) a template."""

        result = await self._execute(template_id, values, dry_run, cancel_event)
        self._finish(result)
        return result

    async def _execute(
        self,
        template_id: str,
        values: Mapping[str, Any],
        dry_run: bool,
        cancel_event: asyncio.Event | None,
    ) -> AdminTaskResult:
        try:
            template = self.store.get_by_id(template_id)
        except TemplateNotFoundError as exc:
            return AdminTaskResult.failure(
                template_id, ErrorKind.TEMPLATE, str(exc), code="template_not_found", dry_run=dry_run
            )

        validation = validator.validate(template, values)
        if not validation.is_valid:
            return AdminTaskResult.invalid(template.id, validation, dry_run=dry_run)

        try:
            script = builder.build(template, values)
            shown = builder.build(template, values, mask_secrets=True)
            secrets = builder.secret_values(template, validator.resolve(template, values))
        except ParameterValidationError as exc:
            return AdminTaskResult.invalid(template.id, exc.result, dry_run=dry_run)
        except QuotedPlaceholderError as exc:
            return AdminTaskResult.failure(
                template.id, ErrorKind.TEMPLATE, str(exc), code=exc.code, dry_run=dry_run
            )
        except TemplateError as exc:
            return AdminTaskResult.failure(
                template.id, ErrorKind.TEMPLATE, str(exc), code="unresolved_placeholder", dry_run=dry_run
            )

        status = self.session.get_status()
        if not dry_run and status.is_authenticated:
            missing = missing_scopes(template.required_scopes, status.granted_scopes)
            if missing:
                return AdminTaskResult.failure(
                    template.id,
                    ErrorKind.SCOPE_MISMATCH,
                    f"Session lacks required scopes: {', '.join(sorted(missing))}",
                    code="scope_mismatch",
                    rendered_script=shown,
                )

        return await self.engine.execute(
            template.id,
            script,
            self.session,
            dry_run=dry_run,
            cancel_event=cancel_event,
            executed_by=status.user_id,
            display_script=shown,
            redact=secrets,
        )

    # ---- audit ----
    def _trail(self) -> AuditTrail:
        return self.audit if self.audit is not None else AuditTrail()

    def audit_report(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        user_id: str | None = None,
    ) -> AuditReport:
        return self._trail().report(start, end, user_id=user_id)

    def detect_suspicious_activity(
        self, lookback: timedelta = DEFAULT_LOOKBACK
    ) -> list[ActivityAlert]:
        """Scan recent audit entries; high and critical findings are also published."""

        alerts = self._trail().detect_suspicious_activity(lookback)
        for alert in alerts:
            if alert.severity in ("high", "critical"):
                self.events.publish(
                    SuspiciousActivityDetected(
                        alertType=alert.alert_type,
                        severity=alert.severity,
                        userId=alert.user_id,
                        count=alert.count,
                        description=alert.description,
                    )
                )
        return alerts

    def _finish(self, result: AdminTaskResult) -> None:
        if self.audit is not None:
            try:
                self.audit.record_task(result, operation="preview" if result.dry_run else "execute")
            except OSError as exc:
                logger.warning("Unable to write audit entry for %s: %s", result.template_id, exc)

        self.events.publish(TaskExecuted(result=result))
        self.events.publish(
            TemplateUsed(
                templateId=result.template_id, userId=result.executed_by, successful=result.success
            )
        )
        if result.errors:
            first = result.errors[0]
            self.events.publish(
                ErrorOccurred(
                    operation="execute_admin_script",
                    errorKind=first.kind,
                    context={
                        "templateId": result.template_id,
                        "code": first.code,
                        **({"field": first.field} if first.field else {}),
                        "dryRun": result.dry_run,
                    },
                )
            )


__all__ = ["AdminService"]
