"""Render templates into PowerShell scripts.

Every substitution is a complete PowerShell literal, so a value can never
leave its own slot: strings are single-quoted (no variable expansion) with
every single-quote variant doubled.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from ..errors import QuotedPlaceholderError, UnresolvedPlaceholderError
from ..models.templates import AdminTemplate, ParameterType
from .placeholders import PLACEHOLDER_RE, quoted_placeholders
from .validator import is_empty, resolve

# PowerShell treats all of these as single-quote delimiters.
_SINGLE_QUOTES = re.compile("['‘’‚‛]")
_LINE_BREAKS = re.compile(r"[\r\n]+")
SECRET_MASK = "********"


def quote_string(value: str) -> str:
    return "'" + _SINGLE_QUOTES.sub(lambda m: m.group(0) * 2, value) + "'"


def _render_string(value: Any) -> str:
    return quote_string(str(value))


def _render_integer(value: Any) -> str:
    return str(int(value))


def _render_boolean(value: Any) -> str:
    return "$true" if value else "$false"


def _render_list(value: Any) -> str:
    if not value:
        return "@()"
    return "@(" + ", ".join(quote_string(str(item)) for item in value) + ")"


_RENDERERS: dict[ParameterType, Callable[[Any], str]] = {
    ParameterType.STRING: _render_string,
    ParameterType.INTEGER: _render_integer,
    ParameterType.BOOLEAN: _render_boolean,
    ParameterType.ENUM: _render_string,
    ParameterType.LIST: _render_list,
}


def render_value(param_type: ParameterType, value: Any) -> str:
    if value is None:
        return "$null"
    return _RENDERERS[param_type](value)


def _comment(text: str) -> str:
    return _LINE_BREAKS.sub(" ", text).replace("#>", "# >").strip()


def render_body(
    template: AdminTemplate, values: Mapping[str, Any], *, mask_secrets: bool = False
) -> str:
    """Substitute placeholders in a single pass over the body.

    With ``mask_secrets`` every non-empty ``secret`` parameter renders as
    :data:`SECRET_MASK` so the script can be shown or stored.
    """

    body = template.script_body.replace("\r\n", "\n")
    unsafe = quoted_placeholders(body)
    if unsafe:
        raise QuotedPlaceholderError(unsafe[0].placeholder or "", unsafe[0].code)

    params = {param.name: param for param in template.parameters}

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in params:
            raise UnresolvedPlaceholderError(name)
        param = params[name]
        value = values.get(name)
        if mask_secrets and param.secret and not is_empty(value):
            return quote_string(SECRET_MASK)
        return render_value(param.type, value)

    return PLACEHOLDER_RE.sub(substitute, body)


def build(
    template: AdminTemplate, values: Mapping[str, Any], *, mask_secrets: bool = False
) -> str:
    """Validate ``values`` and render ``template`` into an executable script.

    ``mask_secrets`` produces the display copy of the same script.

    Raises:
        ParameterValidationError: ``values`` do not validate.
        UnresolvedPlaceholderError: the body names a parameter the template lacks.
        QuotedPlaceholderError: a placeholder sits inside a string literal.
    """

    resolved = resolve(template, values)
    body = render_body(template, resolved, mask_secrets=mask_secrets).strip("\n")
    lines = [
        "<#",
        f"  Template: {_comment(template.id)}",
        f"  Name: {_comment(template.name)}",
        f"  Version: {_comment(template.version)}",
        "#>",
        "$ErrorActionPreference = 'Stop'",
        "try {",
        body,
        "}",
        "catch {",
        "    Write-Error -ErrorRecord $_ -ErrorAction Continue",
        "    exit 1",
        "}",
    ]
    return "\n".join(lines) + "\n"


def secret_values(template: AdminTemplate, values: Mapping[str, Any]) -> list[str]:
    """Return the raw text of every supplied ``secret`` parameter value."""

    found: list[str] = []
    for param in template.parameters:
        value = values.get(param.name)
        if not param.secret or is_empty(value):
            continue
        items = value if isinstance(value, (list, tuple)) else [value]
        found.extend(str(item) for item in items if str(item))
    return found


__all__ = ["SECRET_MASK", "build", "quote_string", "render_body", "render_value", "secret_values"]
