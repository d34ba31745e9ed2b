# routing_rules/services/refinements.py
"""
Cross-field rules that look at sibling fields together.

Each rule is a named predicate that yields ``(loc, message)`` pairs for every
violation it finds. Rules only ever see a candidate that already passed its
structural schema, and ``run_refinements`` runs all of them so callers get
every violation at once.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import structlog
from pydantic import BaseModel

from routing_rules.schemas.enums import IssueKind, StorageBackendType, StowRsAuthType
from routing_rules.schemas.polling_source import (
    DimseQueryRetrieveSourceCreate, DimseQueryRetrieveSourceUpdate,
    GoogleHealthcareSourceCreate, GoogleHealthcareSourceUpdate,
)
from routing_rules.schemas.storage_backend_config import (
    BACKEND_REQUIRED_FIELDS,
    StorageBackendConfigCreate_CStore, StorageBackendConfigCreate_StowRs,
    StorageBackendConfigUpdate, StorageBackendFormData,
)
from routing_rules.schemas.validation import Loc, ValidationIssue

logger = structlog.get_logger(__name__)

Violation = Tuple[Loc, str]


@dataclass(frozen=True)
class Refinement:
    name: str
    check: Callable[[Any], Iterable[Violation]]
    kind: IssueKind = IssueKind.CROSS_FIELD_INVARIANT_VIOLATION
    applies: Optional[Callable[[Any], bool]] = None

    def __call__(self, candidate: Any) -> List[ValidationIssue]:
        if self.applies is not None and not self.applies(candidate):
            return []
        return [
            ValidationIssue(kind=self.kind, loc=tuple(loc), message=message, rule=self.name)
            for loc, message in self.check(candidate)
        ]


def run_refinements(candidate: Any, refinements: Sequence[Refinement]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for refinement in refinements:
        found = refinement(candidate)
        if found:
            logger.debug("Refinement failed", rule=refinement.name, count=len(found))
        issues.extend(found)
    return issues


def _present(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


# --- TLS ---

def _check_mtls_pairing(candidate: Any) -> Iterable[Violation]:
    has_cert = _present(getattr(candidate, 'tls_client_cert_secret_name', None))
    has_key = _present(getattr(candidate, 'tls_client_key_secret_name', None))
    if has_cert != has_key:
        missing = 'tls_client_key_secret_name' if has_cert else 'tls_client_cert_secret_name'
        yield (missing,), "Both client certificate and key secret names must be provided together for mTLS, or neither."


def _check_tls_requires_ca(candidate: Any) -> Iterable[Violation]:
    if getattr(candidate, 'tls_enabled', None) is not True:
        return
    if _present(getattr(candidate, 'tls_ca_cert_secret_name', None)):
        return
    if isinstance(candidate, BaseModel) and _is_partial(candidate) and 'tls_ca_cert_secret_name' not in candidate.model_fields_set:
        # A partial update enabling TLS may rely on a CA already stored.
        return
    yield ('tls_ca_cert_secret_name',), "`tls_ca_cert_secret_name` is required when TLS is enabled."


def _check_mtls_requires_tls(candidate: Any) -> Iterable[Violation]:
    has_client_material = (
        _present(getattr(candidate, 'tls_client_cert_secret_name', None))
        or _present(getattr(candidate, 'tls_client_key_secret_name', None))
    )
    tls_enabled = getattr(candidate, 'tls_enabled', None)
    if not has_client_material:
        return
    if tls_enabled is False or (tls_enabled is None and not _is_partial(candidate)):
        yield ('tls_client_cert_secret_name',), "mTLS client certificate and key can only be set when TLS is enabled."


# --- Sources ---

def _check_active_requires_enabled(candidate: Any) -> Iterable[Violation]:
    if getattr(candidate, 'is_active', None) is True and getattr(candidate, 'is_enabled', None) is False:
        yield ('is_active',), "Source cannot be active if it is not enabled."


# --- Storage backends ---

def _check_backend_required_fields(candidate: StorageBackendFormData) -> Iterable[Violation]:
    for field_name in BACKEND_REQUIRED_FIELDS[candidate.backend_type]:
        if not _present(getattr(candidate, field_name, None)):
            yield (field_name,), f"'{field_name}' is required for backend type '{candidate.backend_type.value}'."


_STOW_AUTH_SECRETS: Dict[StowRsAuthType, List[str]] = {
    StowRsAuthType.NONE: [],
    StowRsAuthType.BASIC: ['basic_auth_username_secret_name', 'basic_auth_password_secret_name'],
    StowRsAuthType.BEARER: ['bearer_token_secret_name'],
    StowRsAuthType.APIKEY: ['api_key_secret_name', 'api_key_header_name_override'],
}


def _check_stow_rs_auth_secrets(candidate: Any) -> Iterable[Violation]:
    auth_type = getattr(candidate, 'auth_type', None)
    if auth_type is None:
        if _is_partial(candidate):
            return
        auth_type = StowRsAuthType.NONE
    for field_name in _STOW_AUTH_SECRETS[auth_type]:
        value = getattr(candidate, field_name, None)
        if _is_partial(candidate) and field_name not in candidate.model_fields_set:
            # Not part of this update; the stored value may already satisfy it.
            continue
        if not _present(value):
            yield (field_name,), f"'{field_name}' is required for '{auth_type.value}' auth."


_PARTIAL_MODELS: Tuple[Type[BaseModel], ...] = (
    StorageBackendConfigUpdate, GoogleHealthcareSourceUpdate, DimseQueryRetrieveSourceUpdate,
)


def _is_partial(candidate: Any) -> bool:
    return isinstance(candidate, _PARTIAL_MODELS)


def _is_backend_type(*backend_types: StorageBackendType) -> Callable[[Any], bool]:
    def applies(candidate: Any) -> bool:
        return getattr(candidate, 'backend_type', None) in backend_types
    return applies


mtls_pairing = Refinement("mtls_pairing", _check_mtls_pairing)
tls_requires_ca = Refinement("tls_requires_ca", _check_tls_requires_ca)
mtls_requires_tls = Refinement("mtls_requires_tls", _check_mtls_requires_tls)
active_requires_enabled = Refinement("active_requires_enabled", _check_active_requires_enabled)
backend_required_fields = Refinement(
    "backend_required_fields", _check_backend_required_fields, kind=IssueKind.MISSING_REQUIRED_FIELD,
)
stow_rs_auth_secrets = Refinement(
    "stow_rs_auth_secrets", _check_stow_rs_auth_secrets, kind=IssueKind.MISSING_REQUIRED_FIELD,
)

TLS_REFINEMENTS: List[Refinement] = [tls_requires_ca, mtls_pairing, mtls_requires_tls]

# Refinements applied after a model of the given class validated structurally.
REFINEMENTS_BY_MODEL: Dict[Type[BaseModel], List[Refinement]] = {
    StorageBackendConfigCreate_CStore: TLS_REFINEMENTS,
    StorageBackendConfigCreate_StowRs: [stow_rs_auth_secrets],
    StorageBackendConfigUpdate: TLS_REFINEMENTS + [stow_rs_auth_secrets],
    StorageBackendFormData: [
        backend_required_fields,
        Refinement("tls_requires_ca", _check_tls_requires_ca, applies=_is_backend_type(StorageBackendType.CSTORE)),
        Refinement("mtls_pairing", _check_mtls_pairing, applies=_is_backend_type(StorageBackendType.CSTORE)),
        Refinement("mtls_requires_tls", _check_mtls_requires_tls, applies=_is_backend_type(StorageBackendType.CSTORE)),
        Refinement(
            "stow_rs_auth_secrets", _check_stow_rs_auth_secrets, kind=IssueKind.MISSING_REQUIRED_FIELD,
            applies=_is_backend_type(StorageBackendType.STOW_RS),
        ),
    ],
    GoogleHealthcareSourceCreate: [active_requires_enabled],
    GoogleHealthcareSourceUpdate: [active_requires_enabled],
    DimseQueryRetrieveSourceCreate: [active_requires_enabled] + TLS_REFINEMENTS,
    DimseQueryRetrieveSourceUpdate: [active_requires_enabled] + TLS_REFINEMENTS,
}


def refinements_for(candidate: BaseModel) -> List[Refinement]:
    return REFINEMENTS_BY_MODEL.get(type(candidate), [])
