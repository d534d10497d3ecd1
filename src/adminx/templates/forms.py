from __future__ import annotations

from typing import Any

from ..models.forms import ControlKind, FormDefinition, SelectOption, UiControl
from ..models.templates import AdminTemplate, ParameterType, TemplateParameter

_CONTROL_KINDS: dict[ParameterType, ControlKind] = {
    ParameterType.STRING: ControlKind.TEXT_BOX,
    ParameterType.INTEGER: ControlKind.NUMERIC_STEPPER,
    ParameterType.BOOLEAN: ControlKind.CHECK_BOX,
    ParameterType.ENUM: ControlKind.DROPDOWN,
    ParameterType.LIST: ControlKind.TAG_LIST,
}


def _constraints(param: TemplateParameter) -> dict[str, Any]:
    candidates = {
        "pattern": param.validation_pattern,
        "min": param.min_value,
        "max": param.max_value,
        "minLength": param.min_length,
        "maxLength": param.max_length,
    }
    return {key: value for key, value in candidates.items() if value is not None}


def _control(param: TemplateParameter, order: int) -> UiControl:
    kind = _CONTROL_KINDS[param.type]
    if kind is ControlKind.TEXT_BOX and param.secret:
        kind = ControlKind.PASSWORD_BOX
    options = [
        SelectOption(value=value, text=value, isSelected=value == param.default)
        for value in param.allowed_values
    ]
    return UiControl(
        name=param.name,
        label=param.label,
        kind=kind,
        required=param.required,
        default=None if param.secret else param.default,
        tooltip=param.description,
        options=options,
        constraints=_constraints(param),
        tabOrder=order,
    )


def generate(template: AdminTemplate) -> FormDefinition:
    """Project ``template`` parameters into form controls, preserving order."""

    return FormDefinition(
        formId=f"form-{template.id}",
        title=template.name,
        description=template.description,
        controls=[_control(param, index) for index, param in enumerate(template.parameters)],
    )


__all__ = ["generate"]
