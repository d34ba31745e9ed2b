# routing_rules/services/validation.py
"""
Entry points for validating routing-rule payloads.

Every function takes plain decoded JSON (dicts/lists/scalars), never raises
for bad input, and returns a ValidationResult whose ``value`` is the
validated, canonicalized model. Structural checks run first; the cross-field
refinements registered for the resulting model run only once those pass.
"""
from typing import Any, Dict, List, Type, Union

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from routing_rules.schemas.enums import PollingSourceType
from routing_rules.schemas.polling_source import (
    DimseQueryRetrieveSourceCreate, DimseQueryRetrieveSourceUpdate,
    GoogleHealthcareSourceCreate, GoogleHealthcareSourceUpdate,
)
from routing_rules.schemas.rule import (
    AssociationMatchCriterion, MatchCriterion, RuleCreate, RuleUpdate,
    tag_modification_adapter, tag_modification_list_adapter,
)
from routing_rules.schemas.storage_backend_config import (
    StorageBackendConfigCreate, StorageBackendConfigUpdate, StorageBackendFormData,
)
from routing_rules.schemas.validation import ValidationIssue, ValidationResult, issues_from_validation_error
from routing_rules.services.refinements import refinements_for, run_refinements

logger = structlog.get_logger(__name__)

storage_backend_create_adapter: TypeAdapter = TypeAdapter(StorageBackendConfigCreate)

_POLLING_SOURCE_MODELS: Dict[PollingSourceType, Dict[bool, Type[BaseModel]]] = {
    PollingSourceType.GOOGLE_HEALTHCARE: {False: GoogleHealthcareSourceCreate, True: GoogleHealthcareSourceUpdate},
    PollingSourceType.DIMSE_QR: {False: DimseQueryRetrieveSourceCreate, True: DimseQueryRetrieveSourceUpdate},
}


def _validate(schema: Union[Type[BaseModel], TypeAdapter], data: Any, what: str) -> ValidationResult:
    try:
        if isinstance(schema, TypeAdapter):
            value = schema.validate_python(data)
        else:
            value = schema.model_validate(data)
    except ValidationError as e:
        issues = issues_from_validation_error(e)
        logger.debug("Validation failed", target=what, issue_count=len(issues),
                     fields=[issue.field for issue in issues])
        return ValidationResult.failure(issues)

    issues: List[ValidationIssue] = []
    for item in (value if isinstance(value, list) else [value]):
        if isinstance(item, BaseModel):
            issues.extend(run_refinements(item, refinements_for(item)))
    if issues:
        logger.debug("Cross-field validation failed", target=what,
                     rules=sorted({issue.rule for issue in issues if issue.rule}))
        return ValidationResult.failure(issues)
    return ValidationResult.success(value)


# --- Rule parts ---

def validate_match_criterion(data: Any) -> ValidationResult:
    return _validate(MatchCriterion, data, "match_criterion")


def validate_association_criterion(data: Any) -> ValidationResult:
    return _validate(AssociationMatchCriterion, data, "association_criterion")


def validate_tag_modification(data: Any) -> ValidationResult:
    return _validate(tag_modification_adapter, data, "tag_modification")


def validate_tag_modifications(data: Any) -> ValidationResult:
    """Validates an ordered list; issue paths start with the item index."""
    return _validate(tag_modification_list_adapter, data, "tag_modifications")


# --- Rule aggregate ---

def validate_rule_create(data: Any) -> ValidationResult:
    return _validate(RuleCreate, data, "rule_create")


def validate_rule_update(data: Any) -> ValidationResult:
    return _validate(RuleUpdate, data, "rule_update")


# --- Storage backends ---

def validate_storage_backend_create(data: Any) -> ValidationResult:
    return _validate(storage_backend_create_adapter, data, "storage_backend_create")


def validate_storage_backend_update(data: Any) -> ValidationResult:
    return _validate(StorageBackendConfigUpdate, data, "storage_backend_update")


def validate_storage_backend_form(data: Any) -> ValidationResult:
    """
    Validates the flat form shape, then the create payload derived from it.
    Fields of backend types other than the selected one are ignored.
    """
    form_result = _validate(StorageBackendFormData, data, "storage_backend_form")
    if not form_result.ok:
        return form_result
    form: StorageBackendFormData = form_result.value
    return validate_storage_backend_create(form.to_create_payload())


# --- Polling sources ---

def validate_polling_source(data: Any, source_type: Union[PollingSourceType, str], update: bool = False) -> ValidationResult:
    model = _POLLING_SOURCE_MODELS[PollingSourceType(source_type)][update]
    return _validate(model, data, f"{PollingSourceType(source_type).value}_source{'_update' if update else ''}")
