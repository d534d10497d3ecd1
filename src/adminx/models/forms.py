"""UI-agnostic form descriptions derived from template parameters."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ControlKind(str, Enum):
    TEXT_BOX = "text_box"
    PASSWORD_BOX = "password_box"
    NUMERIC_STEPPER = "numeric_stepper"
    CHECK_BOX = "check_box"
    DROPDOWN = "dropdown"
    TAG_LIST = "tag_list"


class SelectOption(BaseModel):
    value: str
    text: str
    is_selected: bool = Field(default=False, alias="isSelected")

    model_config = ConfigDict(populate_by_name=True)


class UiControl(BaseModel):
    name: str
    label: str
    kind: ControlKind
    required: bool = False
    default: Any = None
    tooltip: str = ""
    options: list[SelectOption] = Field(default_factory=list)
    constraints: dict[str, Any] = Field(default_factory=dict)
    tab_order: int = Field(default=0, alias="tabOrder")

    model_config = ConfigDict(populate_by_name=True)


class FormDefinition(BaseModel):
    form_id: str = Field(alias="formId")
    title: str
    description: str = ""
    controls: list[UiControl] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def control(self, name: str) -> UiControl | None:
        return next((control for control in self.controls if control.name == name), None)


__all__ = ["ControlKind", "SelectOption", "UiControl", "FormDefinition"]
