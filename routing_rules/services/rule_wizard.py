# routing_rules/services/rule_wizard.py
"""
Step-by-step rule editing session.

The wizard only enforces what each step needs to move on (a name and a sane
priority, at least one destination). Full rule validation is applied by
validate_rule_create / validate_rule_update when the form is submitted, and a
failure there sends the user back to the step that owns the offending field.
"""
import copy
import enum
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel, Field

from routing_rules.core.config import settings
from routing_rules.core.exceptions import WizardTransitionError
from routing_rules.schemas.enums import IssueKind
from routing_rules.schemas.validation import ValidationIssue, ValidationResult
from routing_rules.services.validation import validate_rule_create, validate_rule_update

logger = structlog.get_logger(__name__)


class WizardStep(enum.IntEnum):
    IDENTITY = 1
    SOURCES_AND_MATCHING = 2
    OPERATIONS = 3
    DESTINATIONS_AND_REVIEW = 4


STEP_FIELDS: Dict[WizardStep, Tuple[str, ...]] = {
    WizardStep.IDENTITY: ("name", "description", "priority", "is_active", "schedule_id"),
    WizardStep.SOURCES_AND_MATCHING: ("applicable_sources", "match_criteria", "association_criteria"),
    WizardStep.OPERATIONS: ("tag_modifications", "ai_standardization_tags"),
    WizardStep.DESTINATIONS_AND_REVIEW: ("destination_ids",),
}

_FIELD_TO_STEP: Dict[str, WizardStep] = {
    field_name: step for step, field_names in STEP_FIELDS.items() for field_name in field_names
}


def step_for_field(field_path: str) -> Optional[WizardStep]:
    """Step that owns a dotted issue path such as ``match_criteria.0.tag``."""
    return _FIELD_TO_STEP.get(field_path.split(".", 1)[0])


class WizardFormData(BaseModel):
    """Raw, possibly incomplete form state. Nothing here is validated until a step or submit asks for it."""
    name: str = ""
    description: str = ""
    priority: Any = Field(default_factory=lambda: settings.WIZARD_DEFAULT_PRIORITY)
    is_active: bool = True
    schedule_id: Optional[int] = None
    applicable_sources: List[str] = Field(default_factory=list)
    match_criteria: List[Dict[str, Any]] = Field(default_factory=list)
    association_criteria: List[Dict[str, Any]] = Field(default_factory=list)
    tag_modifications: List[Dict[str, Any]] = Field(default_factory=list)
    ai_standardization_tags: List[str] = Field(default_factory=list)
    destination_ids: List[int] = Field(default_factory=list)


def _flatten_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    return value


class RuleWizard:
    def __init__(self, ruleset_id: int, rule_id: Optional[int] = None, form: Optional[WizardFormData] = None):
        self.ruleset_id = ruleset_id
        self.rule_id = rule_id
        self.form = form or WizardFormData()
        self.step = WizardStep.IDENTITY
        self.errors: Dict[str, str] = {}
        self.result: Optional[ValidationResult] = None

    @property
    def is_editing(self) -> bool:
        return self.rule_id is not None

    @classmethod
    def from_rule(cls, rule: Dict[str, Any], ruleset_id: Optional[int] = None) -> "RuleWizard":
        """Starts an editing session from a stored rule (read shape, with ``id``)."""
        def criteria(items: Optional[List[Dict[str, Any]]], key: str) -> List[Dict[str, Any]]:
            return [
                {key: item.get(key), "op": item.get("op"), "value": _flatten_value(item.get("value"))}
                for item in (items or [])
            ]

        form = WizardFormData(
            name=rule.get("name") or "",
            description=rule.get("description") or "",
            priority=settings.WIZARD_DEFAULT_PRIORITY if rule.get("priority") is None else rule["priority"],
            is_active=rule.get("is_active") if rule.get("is_active") is not None else True,
            schedule_id=rule.get("schedule_id"),
            applicable_sources=list(rule.get("applicable_sources") or []),
            match_criteria=criteria(rule.get("match_criteria"), "tag"),
            association_criteria=criteria(rule.get("association_criteria"), "parameter"),
            tag_modifications=copy.deepcopy(rule.get("tag_modifications") or []),
            ai_standardization_tags=list(rule.get("ai_standardization_tags") or []),
            destination_ids=list(rule.get("destination_ids") or []),
        )
        return cls(ruleset_id=ruleset_id if ruleset_id is not None else rule.get("ruleset_id"),
                   rule_id=rule.get("id"), form=form)

    # --- Editing ---

    def update(self, **changes: Any) -> None:
        unknown = sorted(set(changes) - set(WizardFormData.model_fields))
        if unknown:
            raise WizardTransitionError(f"Unknown wizard field(s): {', '.join(unknown)}")
        self.form = self.form.model_copy(update=changes)
        for field_name in changes:
            for error_key in [key for key in self.errors if key.split(".", 1)[0] == field_name]:
                del self.errors[error_key]

    # --- Step checks ---

    def validate_step(self, step: Optional[WizardStep] = None) -> Dict[str, str]:
        step = self._coerce_step(self.step if step is None else step)
        errors: Dict[str, str] = {}

        if step is WizardStep.IDENTITY:
            name = (self.form.name or "").strip()
            if not name:
                errors["name"] = "Rule name is required."
            elif len(name) > settings.RULE_NAME_MAX_LENGTH:
                errors["name"] = f"Rule name must be at most {settings.RULE_NAME_MAX_LENGTH} characters."
            priority = self.form.priority
            if isinstance(priority, bool) or not isinstance(priority, int) \
                    or not settings.WIZARD_PRIORITY_MIN <= priority <= settings.WIZARD_PRIORITY_MAX:
                errors["priority"] = (
                    f"Priority must be between {settings.WIZARD_PRIORITY_MIN} and {settings.WIZARD_PRIORITY_MAX}."
                )
        elif step is WizardStep.DESTINATIONS_AND_REVIEW:
            if not self.form.destination_ids:
                errors["destination_ids"] = "At least one destination is required."
        # Sources, criteria and operations are all optional while stepping through.

        for error_key in [key for key in self.errors if step_for_field(key) is step]:
            del self.errors[error_key]
        self.errors.update(errors)
        return errors

    # --- Transitions ---

    def next(self) -> bool:
        if self.step is WizardStep.DESTINATIONS_AND_REVIEW:
            raise WizardTransitionError("Already at the last step; submit instead.")
        if self.validate_step():
            return False
        self.step = WizardStep(self.step + 1)
        return True

    def previous(self) -> WizardStep:
        if self.step is not WizardStep.IDENTITY:
            self.step = WizardStep(self.step - 1)
        return self.step

    def go_to(self, step: Any) -> bool:
        """
        Jumps to ``step``. Going back is always allowed; going forward requires
        the current step and every step in between to pass, even when the
        target was visited before. On failure the wizard stops at the first
        step that did not pass.
        """
        target = self._coerce_step(step)
        while self.step < target:
            if not self.next():
                return False
        self.step = target
        return True

    # --- Submission ---

    def build_payload(self) -> Dict[str, Any]:
        form = self.form
        payload: Dict[str, Any] = {
            "name": (form.name or "").strip(),
            "priority": form.priority,
            "is_active": form.is_active,
            "match_criteria": [dict(criterion) for criterion in form.match_criteria],
            "tag_modifications": copy.deepcopy(form.tag_modifications),
            "applicable_sources": list(form.applicable_sources) or None,
            "ai_standardization_tags": list(form.ai_standardization_tags) or None,
            "destination_ids": list(form.destination_ids),
        }
        optional: Dict[str, Any] = {
            "description": (form.description or "").strip() or None,
            "association_criteria": [dict(criterion) for criterion in form.association_criteria] or None,
            "schedule_id": form.schedule_id or None,
        }
        if self.is_editing:
            # An omitted field leaves the stored value alone; null clears it.
            payload.update(optional)
        else:
            payload.update({key: value for key, value in optional.items() if value is not None})
            payload["ruleset_id"] = self.ruleset_id
        return payload

    def submit(self) -> ValidationResult:
        if self.step is not WizardStep.DESTINATIONS_AND_REVIEW:
            raise WizardTransitionError(
                f"Submit is only available on step {WizardStep.DESTINATIONS_AND_REVIEW.value}, not {self.step.value}."
            )
        step_errors = self.validate_step()
        if step_errors:
            return self._fail_with(step_errors)

        payload = self.build_payload()
        result = validate_rule_update(payload) if self.is_editing else validate_rule_create(payload)
        self.result = result
        if result.ok:
            logger.info("Rule wizard submission validated", rule_id=self.rule_id, ruleset_id=self.ruleset_id,
                        name=payload["name"])
            self.errors = {}
            return result

        self.errors = result.errors_by_field()
        self._move_to_earliest_failing_step()
        logger.info("Rule wizard submission rejected", rule_id=self.rule_id, ruleset_id=self.ruleset_id,
                    fields=sorted(self.errors), step=self.step.value)
        return result

    def _fail_with(self, errors: Dict[str, str]) -> ValidationResult:
        result = ValidationResult.failure(
            ValidationIssue(kind=IssueKind.MISSING_REQUIRED_FIELD, loc=(field_name,), message=message)
            for field_name, message in errors.items()
        )
        self.result = result
        return result

    def _move_to_earliest_failing_step(self) -> None:
        steps = [step_for_field(field_path) for field_path in self.errors]
        owned = [step for step in steps if step is not None]
        if owned:
            self.step = min(owned)

    @staticmethod
    def _coerce_step(step: Any) -> WizardStep:
        try:
            return WizardStep(step)
        except ValueError:
            raise WizardTransitionError(f"Unknown wizard step: {step!r}")
