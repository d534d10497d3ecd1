"""Typed models for administrative script templates."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ParameterType(str, Enum):
    """Closed set of parameter kinds a template may declare."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ENUM = "enum"
    LIST = "list"


class TemplateParameter(BaseModel):
    """One named, typed input of a template."""

    name: str
    type: ParameterType = ParameterType.STRING
    required: bool = True
    default: Any = None
    validation_pattern: str | None = Field(default=None, alias="validationPattern")
    allowed_values: tuple[str, ...] = Field(default=(), alias="allowedValues")
    description: str = ""
    display_name: str | None = Field(default=None, alias="displayName")
    min_value: int | None = Field(default=None, alias="minValue")
    max_value: int | None = Field(default=None, alias="maxValue")
    min_length: int | None = Field(default=None, alias="minLength")
    max_length: int | None = Field(default=None, alias="maxLength")
    secret: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    @property
    def label(self) -> str:
        return self.display_name or self.name


class AdminTemplate(BaseModel):
    """A reusable administrative operation."""

    id: str = ""
    name: str = ""
    category: str = ""
    description: str = ""
    script_body: str = Field(default="", alias="scriptBody")
    parameters: tuple[TemplateParameter, ...] = ()
    version: str = "1.0.0"
    author: str = ""
    required_scopes: tuple[str, ...] = Field(default=(), alias="requiredScopes")
    tags: tuple[str, ...] = ()
    is_custom: bool = Field(default=False, alias="isCustom")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    def parameter(self, name: str) -> TemplateParameter | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def to_document(self) -> dict[str, Any]:
        """Return the camelCase payload persisted for user templates."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["ParameterType", "TemplateParameter", "AdminTemplate"]
