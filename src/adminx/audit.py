"""Append-only, hash-chained audit log of administrative operations.

Entries record what ran, never the rendered script or parameter values:
the script is represented only by its SHA-256 digest.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import admin_home, secure_path
from .models.results import AdminTaskResult, utcnow

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

DEFAULT_LOOKBACK = timedelta(hours=24)
MASS_OPERATION_THRESHOLD = 100
MASS_OPERATION_CRITICAL = 500
FAILURE_SPIKE_THRESHOLD = 5
FAILURE_SPIKE_HIGH = 20


class AuditEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(default_factory=utcnow)
    operation: str
    template_id: str | None = Field(default=None, alias="templateId")
    user_id: str | None = Field(default=None, alias="userId")
    dry_run: bool = Field(default=False, alias="dryRun")
    success: bool
    error_kinds: list[str] = Field(default_factory=list, alias="errorKinds")
    script_sha256: str | None = Field(default=None, alias="scriptSha256")
    duration_ms: int = Field(default=0, alias="durationMs")
    previous_hash: str = Field(default=GENESIS_HASH, alias="previousHash")
    hash: str = ""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def compute_hash(self) -> str:
        payload = self.model_dump(mode="json", by_alias=True, exclude={"hash"})
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class UsageCount(BaseModel):
    name: str
    count: int

    model_config = ConfigDict(frozen=True)


class AuditReport(BaseModel):
    """Summary of the entries recorded in a period."""

    generated_at: datetime = Field(default_factory=utcnow, alias="generatedAt")
    period_start: datetime | None = Field(default=None, alias="periodStart")
    period_end: datetime | None = Field(default=None, alias="periodEnd")
    user_id: str | None = Field(default=None, alias="userId")
    total_operations: int = Field(default=0, alias="totalOperations")
    successful_operations: int = Field(default=0, alias="successfulOperations")
    failed_operations: int = Field(default=0, alias="failedOperations")
    previews: int = 0
    unique_users: int = Field(default=0, alias="uniqueUsers")
    most_active_user: str | None = Field(default=None, alias="mostActiveUser")
    top_templates: list[UsageCount] = Field(default_factory=list, alias="topTemplates")
    error_kinds: list[UsageCount] = Field(default_factory=list, alias="errorKinds")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ActivityAlert(BaseModel):
    alert_type: str = Field(alias="alertType")
    severity: str
    user_id: str | None = Field(default=None, alias="userId")
    count: int
    description: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class AuditVerification(NamedTuple):
    ok: bool
    entries: int
    broken_at: int | None = None
    reason: str | None = None


def script_digest(script: str) -> str:
    return hashlib.sha256(script.encode("utf-8")).hexdigest()


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _usage(pairs: Iterable[tuple[str, int]]) -> list[UsageCount]:
    return [UsageCount(name=name, count=count) for name, count in pairs]


def _by_count(item: tuple[str | None, int]) -> tuple[int, str]:
    return -item[1], item[0] or ""


def _span(lookback: timedelta) -> str:
    minutes = int(lookback.total_seconds() // 60)
    return f"{minutes // 60} h" if minutes % 60 == 0 else f"{minutes} min"


class AuditTrail:
    def __init__(
        self, path: Path | None = None, *, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self.path = Path(path) if path else admin_home() / "audit" / "audit.jsonl"
        self._clock = clock
        self._lock = threading.Lock()
        self._last_hash: str | None = None

    def _read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as handle:
            return [line for line in handle.read().splitlines() if line.strip()]

    def _tail_hash(self) -> str:
        if self._last_hash is None:
            lines = self._read_lines()
            if not lines:
                self._last_hash = GENESIS_HASH
            else:
                try:
                    self._last_hash = str(json.loads(lines[-1])["hash"])
                except (ValueError, KeyError, TypeError):
                    logger.warning("Last audit entry in %s is unreadable; chain restarts", self.path)
                    self._last_hash = GENESIS_HASH
        return self._last_hash

    def append(self, operation: str, **fields: Any) -> AuditEntry:
        """Append one entry and return it with its chain hash filled in."""

        fields.setdefault("timestamp", self._clock())
        with self._lock:
            draft = AuditEntry(operation=operation, previousHash=self._tail_hash(), **fields)
            entry = draft.model_copy(update={"hash": draft.compute_hash()})
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(entry.model_dump_json(by_alias=True) + "\n")
            secure_path(self.path)
            self._last_hash = entry.hash
            return entry

    def record_task(self, result: AdminTaskResult, *, operation: str = "execute") -> AuditEntry:
        return self.append(
            operation,
            templateId=result.template_id,
            userId=result.executed_by,
            dryRun=result.dry_run,
            success=result.success,
            errorKinds=[error.kind.value for error in result.errors],
            scriptSha256=script_digest(result.rendered_script) if result.rendered_script else None,
            durationMs=result.duration_ms,
        )

    def entries(
        self,
        template_id: str | None = None,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        user_id: str | None = None,
        success: bool | None = None,
    ) -> list[AuditEntry]:
        """Return readable entries in log order, filtered by every given criterion.

        ``since`` and ``until`` are inclusive; naive datetimes are taken as UTC.
        ``user_id`` matches case-insensitively.
        """

        since, until = _as_utc(since), _as_utc(until)
        wanted_user = user_id.casefold() if user_id else None
        entries: list[AuditEntry] = []
        for number, line in enumerate(self._read_lines(), start=1):
            try:
                entry = AuditEntry.model_validate_json(line)
            except ValidationError:
                logger.warning("Skipping unreadable audit entry at line %d of %s", number, self.path)
                continue
            if template_id is not None and entry.template_id != template_id:
                continue
            if since is not None and entry.timestamp < since:
                continue
            if until is not None and entry.timestamp > until:
                continue
            if wanted_user is not None and (entry.user_id or "").casefold() != wanted_user:
                continue
            if success is not None and entry.success is not success:
                continue
            entries.append(entry)
        return entries

    def report(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        user_id: str | None = None,
        top: int = 5,
    ) -> AuditReport:
        entries = self.entries(since=start, until=end, user_id=user_id)
        users = Counter(entry.user_id for entry in entries if entry.user_id)
        templates = Counter(entry.template_id or entry.operation for entry in entries)
        kinds = Counter(kind for entry in entries for kind in entry.error_kinds)
        report = AuditReport(
            generatedAt=self._clock(),
            periodStart=_as_utc(start),
            periodEnd=_as_utc(end),
            userId=user_id,
            totalOperations=len(entries),
            successfulOperations=sum(1 for entry in entries if entry.success),
            failedOperations=sum(1 for entry in entries if not entry.success),
            previews=sum(1 for entry in entries if entry.dry_run),
            uniqueUsers=len(users),
            mostActiveUser=users.most_common(1)[0][0] if users else None,
            topTemplates=_usage(templates.most_common(top)),
            errorKinds=_usage(kinds.most_common()),
        )
        logger.info("Audit report covers %d operations", report.total_operations)
        return report

    def detect_suspicious_activity(
        self,
        lookback: timedelta = DEFAULT_LOOKBACK,
        *,
        mass_threshold: int = MASS_OPERATION_THRESHOLD,
        failure_threshold: int = FAILURE_SPIKE_THRESHOLD,
    ) -> list[ActivityAlert]:
        """Flag users with unusually many operations or failures in the lookback window.

        Previews are not counted: they run nothing against the tenant.
        """

        recent = [
            entry
            for entry in self.entries(since=self._clock() - lookback)
            if not entry.dry_run
        ]
        alerts: list[ActivityAlert] = []

        totals = Counter(entry.user_id for entry in recent)
        for user, count in sorted(totals.items(), key=_by_count):
            if count > mass_threshold:
                alerts.append(
                    ActivityAlert(
                        alertType="mass_operations",
                        severity="critical" if count > MASS_OPERATION_CRITICAL else "high",
                        userId=user,
                        count=count,
                        description=f"{count} operations in the last {_span(lookback)}",
                    )
                )

        failures = Counter(entry.user_id for entry in recent if not entry.success)
        for user, count in sorted(failures.items(), key=_by_count):
            if count > failure_threshold:
                alerts.append(
                    ActivityAlert(
                        alertType="failed_operation_spike",
                        severity="high" if count > FAILURE_SPIKE_HIGH else "medium",
                        userId=user,
                        count=count,
                        description=(
                            f"{count} of {totals[user]} operations failed in the last {_span(lookback)}"
                        ),
                    )
                )

        if alerts:
            logger.warning("Detected %d suspicious activity pattern(s)", len(alerts))
        return alerts

    def verify(self) -> AuditVerification:
        """Walk the hash chain; report the first entry (1-based line) that breaks it."""

        previous = GENESIS_HASH
        lines = self._read_lines()
        for number, line in enumerate(lines, start=1):
            try:
                entry = AuditEntry.model_validate_json(line)
            except ValidationError:
                return AuditVerification(False, number - 1, number, "unreadable entry")
            if entry.previous_hash != previous:
                return AuditVerification(False, number - 1, number, "chain link mismatch")
            if entry.compute_hash() != entry.hash:
                return AuditVerification(False, number - 1, number, "entry hash mismatch")
            previous = entry.hash
        return AuditVerification(True, len(lines))


__all__ = [
    "ActivityAlert",
    "AuditEntry",
    "AuditReport",
    "AuditTrail",
    "AuditVerification",
    "DEFAULT_LOOKBACK",
    "GENESIS_HASH",
    "UsageCount",
    "script_digest",
]
