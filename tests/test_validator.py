from __future__ import annotations

import pytest

from adminx.errors import ParameterValidationError
from adminx.models.templates import AdminTemplate, ParameterType, TemplateParameter
from adminx.templates.validator import resolve, validate


def make_template(*params: TemplateParameter, body: str = "") -> AdminTemplate:
    body = body or "\n".join(f"${p.name} = {{{{{p.name}}}}}" for p in params)
    return AdminTemplate(id="sample", name="Sample", scriptBody=body, parameters=params)


@pytest.fixture
def onboarding() -> AdminTemplate:
    return make_template(
        TemplateParameter(name="displayName"),
        TemplateParameter(name="department"),
        TemplateParameter(name="email", validationPattern=r"[^@\s]+@[^@\s]+"),
        TemplateParameter(name="seats", type=ParameterType.INTEGER, required=False, minValue=1, maxValue=10),
        TemplateParameter(
            name="tier", type=ParameterType.ENUM, required=False, allowedValues=("basic", "premium")
        ),
        TemplateParameter(name="enabled", type=ParameterType.BOOLEAN, required=False, default=True),
        TemplateParameter(name="aliases", type=ParameterType.LIST, required=False),
    )


def test_reports_every_violation_without_short_circuit(onboarding: AdminTemplate) -> None:
    result = validate(onboarding, {"email": "not-an-email"})

    assert not result.is_valid
    assert len(result.errors) == 3
    assert result.error_fields() == ["displayName", "department", "email"]
    assert [issue.code for issue in result.errors] == ["required", "required", "pattern_mismatch"]


def test_one_error_per_parameter(onboarding: AdminTemplate) -> None:
    result = validate(
        onboarding,
        {"displayName": "A", "department": "IT", "email": "a@b.com", "seats": "lots"},
    )

    assert result.error_fields() == ["seats"]
    assert result.errors[0].code == "type_mismatch"


def test_whitespace_only_counts_as_missing(onboarding: AdminTemplate) -> None:
    result = validate(onboarding, {"displayName": "   ", "department": "IT", "email": "a@b.com"})

    assert result.error_fields() == ["displayName"]


def test_unknown_keys_are_warnings(onboarding: AdminTemplate) -> None:
    result = validate(
        onboarding,
        {"displayName": "A", "department": "IT", "email": "a@b.com", "nickname": "x"},
    )

    assert result.is_valid
    assert [(w.field, w.code) for w in result.warnings] == [("nickname", "unknown_parameter")]


@pytest.mark.parametrize(
    ("value", "code"),
    [("0", "out_of_range"), (11, "out_of_range"), (True, "type_mismatch"), ("2.5", "type_mismatch")],
)
def test_integer_checks(onboarding: AdminTemplate, value: object, code: str) -> None:
    values = {"displayName": "A", "department": "IT", "email": "a@b.com", "seats": value}

    result = validate(onboarding, values)

    assert [(e.field, e.code) for e in result.errors] == [("seats", code)]


def test_enum_membership_and_boolean_parsing(onboarding: AdminTemplate) -> None:
    base = {"displayName": "A", "department": "IT", "email": "a@b.com"}

    assert validate(onboarding, {**base, "tier": "gold"}).errors[0].code == "not_allowed"
    assert validate(onboarding, {**base, "enabled": "maybe"}).errors[0].code == "type_mismatch"
    assert validate(onboarding, {**base, "enabled": "$false", "tier": "Premium"}).is_valid


def test_resolve_applies_defaults_and_coerces(onboarding: AdminTemplate) -> None:
    resolved = resolve(
        onboarding,
        {
            "displayName": "A",
            "department": "IT",
            "email": "a@b.com",
            "seats": "3",
            "tier": "PREMIUM",
            "aliases": "one, two,,three",
        },
    )

    assert resolved["seats"] == 3
    assert resolved["tier"] == "premium"
    assert resolved["enabled"] is True
    assert resolved["aliases"] == ["one", "two", "three"]


def test_resolve_raises_with_full_result(onboarding: AdminTemplate) -> None:
    with pytest.raises(ParameterValidationError) as excinfo:
        resolve(onboarding, {})

    assert excinfo.value.result.error_fields() == ["displayName", "department", "email"]


def test_list_pattern_applies_to_each_item() -> None:
    template = make_template(
        TemplateParameter(name="members", type=ParameterType.LIST, validationPattern=r"\w+@\w+\.com")
    )

    assert validate(template, {"members": ["a@b.com", "c@d.com"]}).is_valid
    result = validate(template, {"members": ["a@b.com", "oops"]})
    assert result.errors[0].code == "pattern_mismatch"
    assert "oops" in result.errors[0].message


def test_string_length_limits() -> None:
    template = make_template(TemplateParameter(name="code", minLength=2, maxLength=4))

    assert validate(template, {"code": "a"}).errors[0].code == "too_short"
    assert validate(template, {"code": "abcde"}).errors[0].code == "too_long"
    assert validate(template, {"code": "abc"}).is_valid
