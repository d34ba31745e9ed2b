# routing_rules/core/exceptions.py
from typing import List, TYPE_CHECKING

if TYPE_CHECKING:
    from routing_rules.schemas.validation import ValidationIssue


class InvalidTagIdentifierError(ValueError):
    """Raised when a string is neither a DICOM keyword nor a GGGG,EEEE pair."""

    def __init__(self, value: object, reason: str = "Tag must be a valid DICOM keyword (e.g., PatientName) or in GGGG,EEEE format (e.g., 0010,0020)."):
        self.value = value
        self.reason = reason
        super().__init__(reason)


class RuleValidationError(Exception):
    """Raised by ValidationResult.raise_for_issues() for callers that want an exception."""

    def __init__(self, issues: "List[ValidationIssue]"):
        self.issues = list(issues)
        summary = "; ".join(f"{issue.field or '<root>'}: {issue.message}" for issue in self.issues[:5])
        if len(self.issues) > 5:
            summary += f" (+{len(self.issues) - 5} more)"
        super().__init__(f"{len(self.issues)} validation issue(s): {summary}")


class WizardTransitionError(Exception):
    """Raised when the rule wizard is asked for an action its current state does not allow."""
