"""Parameter validation and coercion.

Each :class:`ParameterType` has one coercer in ``_COERCERS``; a coercer turns
a raw caller value into the canonical Python value or raises
:class:`_InvalidValue`. Validation never raises for bad input: every problem
lands in the returned :class:`ValidationResult`, at most one error per
parameter.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from ..errors import ParameterValidationError
from ..models.results import ValidationIssue, ValidationResult
from ..models.templates import AdminTemplate, ParameterType, TemplateParameter

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "1", "yes", "$true"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "$false"})


class _InvalidValue(ValueError):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _coerce_string(param: TemplateParameter, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise _InvalidValue(f"{param.label} must be text", "type_mismatch")
    return str(value)


def _coerce_integer(param: TemplateParameter, value: Any) -> int:
    if isinstance(value, bool):
        raise _InvalidValue(f"{param.label} must be a whole number", "type_mismatch")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            pass
    raise _InvalidValue(f"{param.label} must be a whole number", "type_mismatch")


def _coerce_boolean(param: TemplateParameter, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise _InvalidValue(f"{param.label} must be true or false", "type_mismatch")


def _coerce_enum(param: TemplateParameter, value: Any) -> str:
    text = _coerce_string(param, value)
    if text in param.allowed_values:
        return text
    for allowed in param.allowed_values:
        if allowed.lower() == text.lower():
            return allowed
    raise _InvalidValue(
        f"{param.label} must be one of: {', '.join(param.allowed_values)}", "not_allowed"
    )


def _coerce_list(param: TemplateParameter, value: Any) -> list[str]:
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
        return [item for item in items if item]
    if isinstance(value, (list, tuple)):
        result: list[str] = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, (str, int, float)):
                raise _InvalidValue(f"{param.label} must be a list of text values", "type_mismatch")
            result.append(str(item))
        return result
    raise _InvalidValue(f"{param.label} must be a list of text values", "type_mismatch")


_COERCERS: dict[ParameterType, Callable[[TemplateParameter, Any], Any]] = {
    ParameterType.STRING: _coerce_string,
    ParameterType.INTEGER: _coerce_integer,
    ParameterType.BOOLEAN: _coerce_boolean,
    ParameterType.ENUM: _coerce_enum,
    ParameterType.LIST: _coerce_list,
}


def _matches(pattern: str, text: str) -> bool:
    try:
        return re.fullmatch(pattern, text) is not None
    except re.error:
        logger.warning("Ignoring invalid validation pattern %r", pattern)
        return True


def _check_constraints(param: TemplateParameter, value: Any) -> None:
    if param.type is ParameterType.INTEGER:
        if param.min_value is not None and value < param.min_value:
            raise _InvalidValue(f"{param.label} must be at least {param.min_value}", "out_of_range")
        if param.max_value is not None and value > param.max_value:
            raise _InvalidValue(f"{param.label} must be at most {param.max_value}", "out_of_range")
        if param.validation_pattern and not _matches(param.validation_pattern, str(value)):
            raise _InvalidValue(f"{param.label} has an invalid format", "pattern_mismatch")
        return

    if param.type is ParameterType.STRING:
        if param.min_length is not None and len(value) < param.min_length:
            raise _InvalidValue(
                f"{param.label} must be at least {param.min_length} characters", "too_short"
            )
        if param.max_length is not None and len(value) > param.max_length:
            raise _InvalidValue(
                f"{param.label} must be at most {param.max_length} characters", "too_long"
            )

    if param.validation_pattern and param.type in (ParameterType.STRING, ParameterType.ENUM):
        if not _matches(param.validation_pattern, value):
            raise _InvalidValue(f"{param.label} has an invalid format", "pattern_mismatch")

    if param.validation_pattern and param.type is ParameterType.LIST:
        for item in value:
            if not _matches(param.validation_pattern, item):
                raise _InvalidValue(
                    f"{param.label} contains an invalid entry: {item!r}", "pattern_mismatch"
                )


def check_value(param: TemplateParameter, value: Any) -> tuple[Any, ValidationIssue | None]:
    """Coerce and constrain a single non-empty value.

    Returns ``(coerced, None)`` on success or ``(None, issue)``.
    """

    try:
        coerced = _COERCERS[param.type](param, value)
        _check_constraints(param, coerced)
    except _InvalidValue as exc:
        return None, ValidationIssue(field=param.name, message=str(exc), code=exc.code)
    return coerced, None


def _evaluate(
    template: AdminTemplate, values: Mapping[str, Any]
) -> tuple[ValidationResult, dict[str, Any]]:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    resolved: dict[str, Any] = {}

    for param in template.parameters:
        raw = values.get(param.name)
        if is_empty(raw):
            if not is_empty(param.default):
                raw = param.default
            elif param.required:
                errors.append(
                    ValidationIssue(
                        field=param.name, message=f"{param.label} is required", code="required"
                    )
                )
                continue
            else:
                resolved[param.name] = None
                continue
        coerced, issue = check_value(param, raw)
        if issue is not None:
            errors.append(issue)
            continue
        resolved[param.name] = coerced

    declared = {param.name for param in template.parameters}
    for key in values:
        if key not in declared:
            warnings.append(
                ValidationIssue(
                    field=key,
                    message=f"'{key}' is not a parameter of {template.id}",
                    code="unknown_parameter",
                )
            )

    return ValidationResult(errors=errors, warnings=warnings), resolved


def validate(template: AdminTemplate, values: Mapping[str, Any]) -> ValidationResult:
    """Validate ``values`` against every parameter of ``template``."""

    result, _ = _evaluate(template, values)
    return result


def resolve(template: AdminTemplate, values: Mapping[str, Any]) -> dict[str, Any]:
    """Return coerced values with defaults applied.

    Raises:
        ParameterValidationError: when ``values`` do not validate.
    """

    result, resolved = _evaluate(template, values)
    if not result.is_valid:
        raise ParameterValidationError(result)
    return resolved


__all__ = ["check_value", "is_empty", "resolve", "validate"]
