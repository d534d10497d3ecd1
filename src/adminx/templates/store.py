from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from importlib import resources
from pathlib import Path
from typing import Any, NamedTuple

import yaml
from pydantic import ValidationError

from ..config import admin_home, write_atomic
from ..errors import CatalogUnavailableError, DuplicateTemplateIdError, TemplateNotFoundError
from ..models.results import ValidationIssue, ValidationResult
from ..models.templates import AdminTemplate, ParameterType
from .placeholders import quoted_placeholders, placeholder_names, scan_delimiters
from .validator import check_value, is_empty

logger = logging.getLogger(__name__)

TEMPLATE_ID_RE = re.compile(r"^[a-z0-9][a-z0-9._-]{0,63}$")
BUILTIN_RESOURCE = "builtin.yaml"
CUSTOM_ID_PREFIX = "custom-"


class SaveOutcome(NamedTuple):
    success: bool
    template_id: str | None
    validation: ValidationResult


def _issue(field: str, message: str, code: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, code=code)


def validate_template(template: AdminTemplate) -> ValidationResult:
    """Structural checks for a template definition.

    Errors make the template unusable (it is skipped on load and refused on
    save); warnings are informational.
    """

    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if not template.id.strip():
        errors.append(_issue("id", "Template id is required", "required"))
    elif not TEMPLATE_ID_RE.fullmatch(template.id):
        errors.append(_issue("id", f"Template id '{template.id}' is not valid", "invalid_id"))
    if not template.name.strip():
        errors.append(_issue("name", "Template name is required", "required"))
    if not template.script_body.strip():
        errors.append(_issue("scriptBody", "Script body is required", "required"))

    for problem in [
        *scan_delimiters(template.script_body),
        *quoted_placeholders(template.script_body),
    ]:
        errors.append(_issue("scriptBody", problem.message, problem.code))

    declared: set[str] = set()
    for param in template.parameters:
        if param.name in declared:
            errors.append(
                _issue(param.name, f"Parameter '{param.name}' is declared twice", "duplicate_parameter")
            )
        declared.add(param.name)

    used = placeholder_names(template.script_body)
    for name in used:
        if name not in declared:
            errors.append(
                _issue(name, f"Placeholder '{{{{{name}}}}}' has no parameter", "orphan_placeholder")
            )
    for param in template.parameters:
        if param.name not in used:
            warnings.append(
                _issue(param.name, f"Parameter '{param.name}' is never used", "unused_parameter")
            )

    for param in template.parameters:
        if param.type is ParameterType.ENUM and not param.allowed_values:
            errors.append(
                _issue(param.name, f"Enum '{param.name}' has no allowed values", "missing_allowed_values")
            )
            continue
        if param.validation_pattern:
            try:
                re.compile(param.validation_pattern)
            except re.error as exc:
                errors.append(
                    _issue(param.name, f"Invalid validation pattern: {exc}", "invalid_pattern")
                )
                continue
        if (
            param.min_value is not None
            and param.max_value is not None
            and param.min_value > param.max_value
        ) or (
            param.min_length is not None
            and param.max_length is not None
            and param.min_length > param.max_length
        ):
            errors.append(_issue(param.name, "Minimum exceeds maximum", "invalid_range"))
            continue
        if not is_empty(param.default):
            _, problem = check_value(param, param.default)
            if problem is not None:
                errors.append(
                    _issue(param.name, f"Default value is invalid: {problem.message}", "invalid_default")
                )

    if not template.required_scopes:
        warnings.append(
            _issue("requiredScopes", "Template does not declare required scopes", "missing_scopes")
        )

    return ValidationResult(errors=errors, warnings=warnings)


def _load_builtin_documents() -> list[Any]:
    text = resources.files(__package__).joinpath(BUILTIN_RESOURCE).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    templates = data.get("templates") if isinstance(data, dict) else None
    return templates if isinstance(templates, list) else []


class TemplateStore:
    """Id-indexed catalog of built-in and user-authored templates."""

    def __init__(self, directory: Path | None = None, *, include_builtins: bool = True) -> None:
        self.directory = Path(directory) if directory else admin_home() / "templates"
        self.include_builtins = include_builtins
        self._templates: dict[str, AdminTemplate] = {}
        self._lock = threading.RLock()
        self._loaded = False

    def _index(self, template: AdminTemplate) -> None:
        if template.id in self._templates:
            raise DuplicateTemplateIdError(template.id)
        self._templates[template.id] = template

    def _accept(self, template: AdminTemplate, source: str) -> None:
        result = validate_template(template)
        if not result.is_valid:
            logger.warning(
                "Skipping template %s from %s: %s",
                template.id or "<no id>",
                source,
                "; ".join(issue.message for issue in result.errors),
            )
            return
        try:
            self._index(template)
        except DuplicateTemplateIdError as exc:
            logger.warning("Skipping template from %s: %s", source, exc)

    def _load_builtins(self) -> None:
        for document in _load_builtin_documents():
            try:
                template = AdminTemplate.model_validate(document)
            except ValidationError as exc:
                logger.warning("Skipping malformed built-in template: %s", exc)
                continue
            self._accept(template, "built-in catalog")

    def _load_user_templates(self) -> None:
        if not self.directory.exists():
            logger.debug("Template directory %s does not exist", self.directory)
            return
        try:
            paths = sorted(self.directory.iterdir())
        except OSError as exc:
            raise CatalogUnavailableError(
                f"Template directory {self.directory} is not accessible: {exc}"
            ) from exc

        for path in paths:
            if path.suffix.lower() != ".json" or not path.is_file():
                continue
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
                template = AdminTemplate.model_validate(document)
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Skipping malformed template file %s: %s", path, exc)
                continue
            self._accept(template.model_copy(update={"is_custom": True}), str(path))

    def load(self) -> list[AdminTemplate]:
        """(Re)build the catalog from built-ins and the user template directory."""

        with self._lock:
            self._templates = {}
            if self.include_builtins:
                self._load_builtins()
            self._load_user_templates()
            self._loaded = True
            logger.debug("Loaded %d templates", len(self._templates))
            return list(self._templates.values())

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def get_by_id(self, template_id: str) -> AdminTemplate:
        with self._lock:
            self._ensure_loaded()
            try:
                return self._templates[template_id]
            except KeyError:
                raise TemplateNotFoundError(template_id) from None

    def list_templates(self, category: str | None = None) -> list[AdminTemplate]:
        with self._lock:
            self._ensure_loaded()
            templates = list(self._templates.values())
        if category:
            wanted = category.strip().lower()
            templates = [t for t in templates if t.category.lower() == wanted]
        return templates

    def categories(self) -> list[str]:
        return sorted({t.category for t in self.list_templates() if t.category})

    def _fresh_id(self) -> str:
        while True:
            candidate = f"{CUSTOM_ID_PREFIX}{uuid.uuid4().hex[:12]}"
            if candidate not in self._templates:
                return candidate

    def save(self, template: AdminTemplate) -> SaveOutcome:
        """Validate and persist a user template.

        A proposed id that is malformed or already taken is replaced with a
        fresh ``custom-`` id and a warning. The template becomes visible only
        after its file has been written.
        """

        with self._lock:
            self._ensure_loaded()
            notes: list[ValidationIssue] = []
            proposed = template.id.strip()
            template_id = proposed
            if not proposed:
                template_id = self._fresh_id()
            elif proposed in self._templates:
                template_id = self._fresh_id()
                notes.append(
                    _issue("id", f"Id '{proposed}' is taken; saved as '{template_id}'", "duplicate_id")
                )
            elif not TEMPLATE_ID_RE.fullmatch(proposed):
                template_id = self._fresh_id()
                notes.append(
                    _issue("id", f"Id '{proposed}' is not valid; saved as '{template_id}'", "invalid_id")
                )

            candidate = template.model_copy(update={"id": template_id, "is_custom": True})
            checked = validate_template(candidate)
            validation = ValidationResult(errors=checked.errors, warnings=notes + checked.warnings)
            if not validation.is_valid:
                return SaveOutcome(False, None, validation)

            target = self.directory / f"{template_id}.json"
            try:
                write_atomic(target, json.dumps(candidate.to_document(), indent=2) + "\n")
            except OSError as exc:
                raise CatalogUnavailableError(f"Unable to write {target}: {exc}") from exc
            self._index(candidate)
            logger.info("Saved template %s to %s", template_id, target)
            return SaveOutcome(True, template_id, validation)


__all__ = [
    "SaveOutcome",
    "TEMPLATE_ID_RE",
    "TemplateStore",
    "validate_template",
]
