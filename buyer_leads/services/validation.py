"""Lead schema validation: per-field checks plus cross-field rules."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from buyer_leads.core.exceptions import ValidationError
from buyer_leads.models.enums import RESIDENTIAL_TYPES
from buyer_leads.schemas.lead import NormalizedLead


@dataclass(frozen=True)
class FieldError:
    path: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "message": self.message}

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class ValidationResult:
    lead: Optional[NormalizedLead] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.lead is not None and not self.errors

    def raise_for_errors(self) -> NormalizedLead:
        if not self.ok:
            raise ValidationError(
                message="Validation error",
                errors=[error.to_dict() for error in self.errors],
            )
        return self.lead


def normalize_tags(tags: Any) -> Any:
    """Unwrap ``{"value": tag}`` objects into plain strings.

    Anything that is not a list is returned untouched for the schema to judge.
    """
    if not isinstance(tags, list):
        return tags
    return [
        tag.get("value") if isinstance(tag, Mapping) and "value" in tag else tag
        for tag in tags
    ]


def _errors_from_pydantic(exc: PydanticValidationError) -> List[FieldError]:
    return [
        FieldError(
            path=".".join(str(part) for part in error["loc"]) or "__root__",
            message=error["msg"],
        )
        for error in exc.errors()
    ]


def check_cross_field_rules(lead: NormalizedLead) -> List[FieldError]:
    errors = []

    if (
        lead.budget_min is not None
        and lead.budget_max is not None
        and lead.budget_max < lead.budget_min
    ):
        errors.append(
            FieldError("budgetMax", "Max budget must be greater than or equal to Min budget")
        )

    if lead.property_type in RESIDENTIAL_TYPES:
        if lead.bhk is None:
            errors.append(FieldError("bhk", "BHK is required for Apartment or Villa"))
    elif lead.bhk is not None:
        errors.append(FieldError("bhk", "BHK is only allowed for Apartment or Villa"))

    return errors


def validate_lead(candidate: Mapping[str, Any]) -> ValidationResult:
    """Validate and normalize a loosely-typed lead.

    All field rules are evaluated so every bad field is reported at once.
    Cross-field rules run only once the fields themselves are valid. Expected
    bad input never raises; a non-mapping candidate raises ``TypeError``.
    """
    if not isinstance(candidate, Mapping):
        raise TypeError(f"lead candidate must be a mapping, got {type(candidate).__name__}")

    data = dict(candidate)
    if "tags" in data:
        data["tags"] = normalize_tags(data["tags"])

    try:
        lead = NormalizedLead.model_validate(data)
    except PydanticValidationError as exc:
        return ValidationResult(errors=_errors_from_pydantic(exc))

    errors = check_cross_field_rules(lead)
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(lead=lead)
