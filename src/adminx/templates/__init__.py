"""Template catalog, parameter validation, rendering and form projection."""

from .builder import build
from .forms import generate as generate_form
from .store import SaveOutcome, TemplateStore, validate_template
from .validator import resolve, validate

__all__ = [
    "SaveOutcome",
    "TemplateStore",
    "build",
    "generate_form",
    "resolve",
    "validate",
    "validate_template",
]
