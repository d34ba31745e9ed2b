# routing_rules/schemas/validation.py
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError
from pydantic_core import ErrorDetails

from routing_rules.core.exceptions import RuleValidationError
from routing_rules.schemas.enums import IssueKind, ModifyAction, StorageBackendType

Loc = Tuple[Union[str, int], ...]

# Pydantic's built-in error types that have a dedicated kind; anything not
# listed here (and not one of our own custom types) becomes INVALID_VALUE.
_PYDANTIC_TYPE_TO_KIND: Dict[str, IssueKind] = {
    "missing": IssueKind.MISSING_REQUIRED_FIELD,
    "extra_forbidden": IssueKind.VARIANT_FIELD_MISMATCH,
    "union_tag_invalid": IssueKind.VARIANT_FIELD_MISMATCH,
    "union_tag_not_found": IssueKind.VARIANT_FIELD_MISMATCH,
    "json_invalid": IssueKind.MALFORMED_JSON_CONTENT,
    "json_type": IssueKind.MALFORMED_JSON_CONTENT,
}

# Pydantic puts the chosen variant's tag into error locations of discriminated unions.
_DISCRIMINATOR_VALUES = frozenset(
    [a.value for a in ModifyAction] + [b.value for b in StorageBackendType]
)


class ValidationIssue(BaseModel):
    kind: IssueKind
    loc: Loc = Field(default=(), description="Path to the offending field; empty for the whole object.")
    message: str
    rule: Optional[str] = Field(None, description="Name of the cross-field rule that produced this issue, if any.")

    @property
    def field(self) -> str:
        return ".".join(str(part) for part in self.loc)


class ValidationResult(BaseModel):
    ok: bool
    value: Optional[Any] = None
    issues: List[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def success(cls, value: Any) -> "ValidationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, issues: Iterable[ValidationIssue]) -> "ValidationResult":
        return cls(ok=False, issues=list(issues))

    def kinds(self) -> List[IssueKind]:
        return [issue.kind for issue in self.issues]

    def issues_for(self, field: str) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.field == field]

    def errors_by_field(self) -> Dict[str, str]:
        """First message per field path, the shape a form wants for inline errors."""
        errors: Dict[str, str] = {}
        for issue in self.issues:
            errors.setdefault(issue.field, issue.message)
        return errors

    def raise_for_issues(self) -> Any:
        if not self.ok:
            raise RuleValidationError(self.issues)
        return self.value


def _clean_loc(loc: Iterable[Union[str, int]]) -> Loc:
    cleaned: List[Union[str, int]] = []
    previous: Optional[Union[str, int]] = None
    for index, part in enumerate(loc):
        at_variant_position = index == 0 or isinstance(previous, int)
        if isinstance(part, str) and at_variant_position and part in _DISCRIMINATOR_VALUES:
            previous = part
            continue
        cleaned.append(part)
        previous = part
    return tuple(cleaned)


def _kind_for(error_type: str) -> IssueKind:
    try:
        return IssueKind(error_type)
    except ValueError:
        return _PYDANTIC_TYPE_TO_KIND.get(error_type, IssueKind.INVALID_VALUE)


def issue_from_error(error: ErrorDetails, prefix: Loc = ()) -> ValidationIssue:
    kind = _kind_for(error["type"])
    loc = prefix + _clean_loc(error.get("loc", ()))
    if error["type"] in ("union_tag_invalid", "union_tag_not_found"):
        discriminator = str((error.get("ctx") or {}).get("discriminator", "")).strip("'\"")
        if discriminator:
            loc = loc + (discriminator,)
    message = error["msg"]
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return ValidationIssue(kind=kind, loc=loc, message=message)


def issues_from_validation_error(exc: ValidationError, prefix: Loc = ()) -> List[ValidationIssue]:
    return [issue_from_error(error, prefix) for error in exc.errors(include_url=False)]
