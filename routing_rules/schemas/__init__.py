# routing_rules/schemas/__init__.py
# Rule schemas depend on services.operator_catalog, which itself imports from
# this package; import them from routing_rules.schemas.rule directly.

# --- Enums ---
from .enums import (
    MatchOperation,
    ModifyAction,
    AssociationParameter,
    StorageBackendType,
    StowRsAuthType,
    PollingSourceType,
    IssueKind,
)

# --- Validation results ---
from .validation import (
    ValidationIssue,
    ValidationResult,
    issues_from_validation_error,
)

# --- Storage Backend Schemas ---
from .storage_backend_config import (
    StorageBackendConfigBase,
    StorageBackendConfigCreate,
    StorageBackendConfigUpdate,
    StorageBackendFormData,
)

# --- Polled Source Schemas ---
from .polling_source import (
    GoogleHealthcareSourceCreate,
    GoogleHealthcareSourceUpdate,
    DimseQueryRetrieveSourceCreate,
    DimseQueryRetrieveSourceUpdate,
)

__all__ = [
    "MatchOperation", "ModifyAction", "AssociationParameter", "StorageBackendType",
    "StowRsAuthType", "PollingSourceType", "IssueKind",
    "ValidationIssue", "ValidationResult", "issues_from_validation_error",
    # Storage backends
    "StorageBackendConfigBase", "StorageBackendConfigCreate", "StorageBackendConfigUpdate",
    "StorageBackendFormData",
    # Polled sources
    "GoogleHealthcareSourceCreate", "GoogleHealthcareSourceUpdate",
    "DimseQueryRetrieveSourceCreate", "DimseQueryRetrieveSourceUpdate",
]
