# routing_rules/schemas/polling_source.py
"""
Polled input sources. Both kinds carry the is_enabled/is_active pair and a
free-form ``query_filters`` object that may arrive as a JSON string.
"""
import json as pyjson
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

from routing_rules.schemas.enums import IssueKind
from routing_rules.schemas.storage_backend_config import _blank_to_none, _require_non_blank, _validate_ae_title, _validate_secret_name


def _parse_query_filters(v: Any) -> Optional[Dict[str, Any]]:
    if v is None:
        return None
    if isinstance(v, dict):
        return v
    if isinstance(v, str):
        v_stripped = v.strip()
        if not v_stripped:
            return None
        try:
            parsed = pyjson.loads(v_stripped)
        except pyjson.JSONDecodeError as e:
            raise PydanticCustomError(
                IssueKind.MALFORMED_JSON_CONTENT.value,
                "Query Filters is not a valid JSON string: {error}",
                {"error": str(e)},
            )
        if not isinstance(parsed, dict):
            raise PydanticCustomError(
                IssueKind.MALFORMED_JSON_CONTENT.value,
                "Query Filters must be a JSON object, not {json_type}.",
                {"json_type": type(parsed).__name__},
            )
        return parsed
    raise PydanticCustomError(
        IssueKind.MALFORMED_JSON_CONTENT.value,
        "Query Filters must be a dictionary, valid JSON string, or null.",
    )


def _validate_host(v: Any) -> Any:
    if not isinstance(v, str):
        return v
    v_stripped = v.strip()
    if not v_stripped:
        raise PydanticCustomError(IssueKind.MISSING_REQUIRED_FIELD.value, "Remote host cannot be empty.")
    if ' ' in v_stripped or '/' in v_stripped:
        raise ValueError("Remote host contains invalid characters.")
    return v_stripped


class _SourceModel(BaseModel):
    model_config = ConfigDict(extra='forbid')


# --- Google Healthcare DICOM store ---

class GoogleHealthcareSourceCreate(_SourceModel):
    name: str = Field(..., max_length=255, description="Unique name for the Google Healthcare DICOM Store source.")
    description: Optional[str] = Field(None, max_length=512)
    gcp_project_id: str = Field(..., description="Google Cloud Project ID.")
    gcp_location: str = Field(..., description="Google Cloud Location (e.g., 'us-central1').")
    gcp_dataset_id: str = Field(..., description="Google Healthcare Dataset ID.")
    gcp_dicom_store_id: str = Field(..., description="Google Healthcare DICOM Store ID.")
    polling_interval_seconds: int = Field(default=300, gt=0, description="How often to poll for new studies (in seconds).")
    query_filters: Optional[Dict[str, Any]] = Field(None, description="Key-value pairs for filtering queries, e.g. {\"StudyDate\": \"-1d\"}.")
    is_enabled: bool = Field(default=True, description="Whether this source is generally usable (e.g., in Data Browser, Rules).")
    is_active: bool = Field(default=True, description="Whether the automatic poller should query this source.")

    _validate_required = field_validator(
        'name', 'gcp_project_id', 'gcp_location', 'gcp_dataset_id', 'gcp_dicom_store_id', mode='before'
    )(_require_non_blank)
    _validate_description = field_validator('description', mode='before')(_blank_to_none)
    _validate_filters_json = field_validator('query_filters', mode='before')(_parse_query_filters)


class GoogleHealthcareSourceUpdate(_SourceModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=512)
    gcp_project_id: Optional[str] = None
    gcp_location: Optional[str] = None
    gcp_dataset_id: Optional[str] = None
    gcp_dicom_store_id: Optional[str] = None
    polling_interval_seconds: Optional[int] = Field(default=None, gt=0)
    query_filters: Optional[Dict[str, Any]] = Field(None, description="Provide the full new object, or null to clear.")
    is_enabled: Optional[bool] = None
    is_active: Optional[bool] = None

    _validate_required = field_validator(
        'name', 'gcp_project_id', 'gcp_location', 'gcp_dataset_id', 'gcp_dicom_store_id', mode='before'
    )(lambda v: _require_non_blank(v) if v is not None else None)
    _validate_description = field_validator('description', mode='before')(_blank_to_none)
    _validate_filters_json = field_validator('query_filters', mode='before')(_parse_query_filters)

    @model_validator(mode='after')
    def ensure_at_least_one_field_for_update(self) -> 'GoogleHealthcareSourceUpdate':
        if not self.model_fields_set:
            raise PydanticCustomError(IssueKind.EMPTY_UPDATE.value, "At least one field must be provided for update.")
        return self


# --- Remote DIMSE Query/Retrieve peer ---

class DimseQueryRetrieveSourceCreate(_SourceModel):
    name: str = Field(..., max_length=100, description="Unique, user-friendly name for this remote DIMSE source configuration.")
    description: Optional[str] = Field(None, description="Optional description of the remote peer or its purpose.")
    remote_ae_title: str = Field(..., description="AE Title of the remote peer to query/retrieve from.")
    remote_host: str = Field(..., description="Hostname or IP address of the remote peer.")
    remote_port: int = Field(..., gt=0, lt=65536, description="Network port of the remote peer's DIMSE service (1-65535).")
    local_ae_title: str = Field("ROUTER_QR_SCU", description="AE Title our SCU will use when associating.")

    tls_enabled: bool = Field(False, description="Enable TLS for outgoing connections to the remote peer.")
    tls_ca_cert_secret_name: Optional[str] = Field(None, description="REQUIRED for TLS: secret name for the CA certificate used to verify the peer.")
    tls_client_cert_secret_name: Optional[str] = Field(None, description="Optional (for mTLS): secret name for OUR client certificate (PEM).")
    tls_client_key_secret_name: Optional[str] = Field(None, description="Optional (for mTLS): secret name for OUR client private key (PEM).")

    polling_interval_seconds: int = Field(300, gt=0, description="Frequency in seconds to poll the source using C-FIND.")
    is_enabled: bool = Field(True, description="Whether this source is generally enabled (e.g., shows in Data Browser, usable by system).")
    is_active: bool = Field(True, description="Whether AUTOMATIC polling for this source is active based on its schedule.")
    query_level: str = Field("STUDY", pattern=r"^(STUDY|SERIES|PATIENT)$", description="Query Retrieve Level for C-FIND.")
    query_filters: Optional[Dict[str, Any]] = Field(None, description="C-FIND query identifiers, e.g. {'ModalitiesInStudy': 'CT'}.")
    move_destination_ae_title: Optional[str] = Field(None, description="Optional: AE Title of OUR listener where retrieved instances are sent via C-MOVE.")

    _require_fields = field_validator('name', 'remote_ae_title', mode='before')(_require_non_blank)
    _validate_ae = field_validator('remote_ae_title', 'local_ae_title', 'move_destination_ae_title')(_validate_ae_title)
    _check_host = field_validator('remote_host', mode='before')(_validate_host)
    _validate_secrets = field_validator(
        'tls_ca_cert_secret_name', 'tls_client_cert_secret_name', 'tls_client_key_secret_name', mode='before'
    )(_validate_secret_name)
    _validate_filters_json = field_validator('query_filters', mode='before')(_parse_query_filters)


class DimseQueryRetrieveSourceUpdate(_SourceModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    remote_ae_title: Optional[str] = None
    remote_host: Optional[str] = None
    remote_port: Optional[int] = Field(None, gt=0, lt=65536)
    local_ae_title: Optional[str] = None

    tls_enabled: Optional[bool] = None
    tls_ca_cert_secret_name: Optional[str] = None
    tls_client_cert_secret_name: Optional[str] = None
    tls_client_key_secret_name: Optional[str] = None

    polling_interval_seconds: Optional[int] = Field(None, gt=0)
    is_enabled: Optional[bool] = None
    is_active: Optional[bool] = None
    query_level: Optional[str] = Field(None, pattern=r"^(STUDY|SERIES|PATIENT)$")
    query_filters: Optional[Dict[str, Any]] = Field(None, description="Provide the full new object, or null to clear.")
    move_destination_ae_title: Optional[str] = None

    _validate_ae = field_validator('remote_ae_title', 'local_ae_title', 'move_destination_ae_title')(_validate_ae_title)
    _check_host = field_validator('remote_host', mode='before')(_validate_host)
    _validate_secrets = field_validator(
        'tls_ca_cert_secret_name', 'tls_client_cert_secret_name', 'tls_client_key_secret_name', mode='before'
    )(_validate_secret_name)
    _validate_filters_json = field_validator('query_filters', mode='before')(_parse_query_filters)

    @model_validator(mode='after')
    def ensure_at_least_one_field_for_update(self) -> 'DimseQueryRetrieveSourceUpdate':
        if not self.model_fields_set:
            raise PydanticCustomError(IssueKind.EMPTY_UPDATE.value, "At least one field must be provided for update.")
        return self
