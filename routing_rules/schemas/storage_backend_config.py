# routing_rules/schemas/storage_backend_config.py
import re
from typing import Any, Dict, Optional, Literal, Union, Annotated, List, Type

import structlog
from pydantic import BaseModel, Field, field_validator, ConfigDict, model_validator, Discriminator
from pydantic_core import PydanticCustomError

from routing_rules.schemas.enums import IssueKind, StorageBackendType, StowRsAuthType

logger = structlog.get_logger(__name__)

AE_TITLE_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,16}$")
SECRET_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\-_/.]{1,512}$")
URL_PATTERN = re.compile(r"^https?://.+")


# --- Shared validators ---

def _require_non_blank(v: Any) -> Any:
    if v is None or (isinstance(v, str) and not v.strip()):
        raise PydanticCustomError(IssueKind.MISSING_REQUIRED_FIELD.value, "Field is required and cannot be blank.")
    if isinstance(v, str):
        return v.strip()
    return v


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _validate_ae_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v_stripped = v.strip()
    if not v_stripped:
        return None
    if v != v_stripped:
        raise ValueError('AE Title cannot have leading or trailing whitespace.')
    if not AE_TITLE_PATTERN.match(v_stripped):
        raise ValueError('AE Title contains invalid characters or is too long (max 16).')
    return v_stripped


def _validate_secret_name(v: Any) -> Any:
    if not isinstance(v, str):
        return v
    v = v.strip()
    if not v:
        return None
    if not SECRET_NAME_PATTERN.match(v):
        raise ValueError("Invalid secret name format (letters, digits, '-', '_', '/', '.'; max 512).")
    return v


def _validate_base_url(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    if not URL_PATTERN.match(v):
        raise ValueError("Must be a valid URL (e.g., http://... or https://...).")
    return v


def _validate_prefix(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    if v.startswith('/'):
        raise ValueError("Prefix should not start with '/'.")
    return v


class _StrictModel(BaseModel):
    # Fields belonging to another backend type are rejected, not silently dropped.
    model_config = ConfigDict(extra='forbid')


# --- Base schema with common fields ---
class StorageBackendConfigBase(_StrictModel):
    name: str = Field(..., max_length=100, description="Unique, user-friendly name for this storage backend configuration.")
    description: Optional[str] = Field(None, max_length=500, description="Optional description of the backend's purpose or location.")
    is_enabled: bool = Field(True, description="Whether this storage backend configuration is active.")

    _validate_name = field_validator('name', mode='before')(_require_non_blank)
    _validate_description = field_validator('description', mode='before')(_blank_to_none)


# --- Type-Specific Configuration Schemas ---

class FileSystemConfig(_StrictModel):
    path: str = Field(..., max_length=512, description="Path to the directory for storing files.")
    _validate_path = field_validator('path', mode='before')(_require_non_blank)


class GcsConfig(_StrictModel):
    bucket: str = Field(..., max_length=255, description="Name of the GCS bucket.")
    prefix: Optional[str] = Field(None, max_length=512, description="Optional prefix (folder path) within the bucket.")
    _validate_bucket = field_validator('bucket', mode='before')(_require_non_blank)
    _blank_prefix = field_validator('prefix', mode='before')(_blank_to_none)
    _check_prefix = field_validator('prefix')(_validate_prefix)


class CStoreConfig(_StrictModel):
    remote_ae_title: str = Field(..., description="AE Title of the remote C-STORE SCP.")
    remote_host: str = Field(..., max_length=255, description="Hostname or IP address of the remote SCP.")
    remote_port: int = Field(..., gt=0, le=65535, description="Network port of the remote SCP.")
    local_ae_title: Optional[str] = Field(None, description="AE Title our SCU will use when associating.")
    # TLS fields; their combinations are checked by the tls_* / mtls_* refinements.
    tls_enabled: bool = Field(False, description="Enable TLS for outgoing connections.")
    tls_ca_cert_secret_name: Optional[str] = Field(None, description="REQUIRED if TLS enabled: secret name for CA cert to verify remote server.")
    tls_client_cert_secret_name: Optional[str] = Field(None, description="Optional (for mTLS): secret name for OUR client certificate.")
    tls_client_key_secret_name: Optional[str] = Field(None, description="Optional (for mTLS): secret name for OUR client private key.")

    _require_remote_ae = field_validator('remote_ae_title', mode='before')(_require_non_blank)
    _validate_remote_ae = field_validator('remote_ae_title')(_validate_ae_title)
    _validate_local_ae = field_validator('local_ae_title')(_validate_ae_title)
    _validate_host = field_validator('remote_host', mode='before')(_require_non_blank)
    _validate_secrets = field_validator(
        'tls_ca_cert_secret_name', 'tls_client_cert_secret_name', 'tls_client_key_secret_name', mode='before'
    )(_validate_secret_name)

    @field_validator('remote_port', mode='before')
    @classmethod
    def port_present(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise PydanticCustomError(IssueKind.MISSING_REQUIRED_FIELD.value, "Remote Port is required.")
        return v


class GoogleHealthcareConfig(_StrictModel):
    gcp_project_id: str = Field(..., max_length=255)
    gcp_location: str = Field(..., max_length=100)
    gcp_dataset_id: str = Field(..., max_length=100)
    gcp_dicom_store_id: str = Field(..., max_length=100)

    _validate_ids = field_validator(
        'gcp_project_id', 'gcp_location', 'gcp_dataset_id', 'gcp_dicom_store_id', mode='before'
    )(_require_non_blank)


class StowRsConfig(_StrictModel):
    base_url: str = Field(..., max_length=512, description="Base URL of the STOW-RS service (e.g., https://dicom.server.com/dicomweb).")
    auth_type: StowRsAuthType = Field(default=StowRsAuthType.NONE, description="Authentication type for the STOW-RS endpoint.")
    basic_auth_username_secret_name: Optional[str] = Field(None, description="Secret name for Basic Auth username. Required if auth_type is 'basic'.")
    basic_auth_password_secret_name: Optional[str] = Field(None, description="Secret name for Basic Auth password. Required if auth_type is 'basic'.")
    bearer_token_secret_name: Optional[str] = Field(None, description="Secret name for Bearer token. Required if auth_type is 'bearer'.")
    api_key_secret_name: Optional[str] = Field(None, description="Secret name for the API key. Required if auth_type is 'apikey'.")
    api_key_header_name_override: Optional[str] = Field(None, max_length=100, description="Header name for the API key (e.g., 'X-API-Key'). Required if auth_type is 'apikey'.")
    tls_ca_cert_secret_name: Optional[str] = Field(None, description="Optional: secret name for a custom CA certificate (PEM) to verify the server.")

    _require_base_url = field_validator('base_url', mode='before')(_require_non_blank)
    _check_base_url = field_validator('base_url')(_validate_base_url)
    _validate_secrets = field_validator(
        'basic_auth_username_secret_name', 'basic_auth_password_secret_name', 'bearer_token_secret_name',
        'api_key_secret_name', 'tls_ca_cert_secret_name', mode='before'
    )(_validate_secret_name)
    _blank_header = field_validator('api_key_header_name_override', mode='before')(_blank_to_none)

    @field_validator('auth_type', mode='before')
    @classmethod
    def none_means_no_auth(cls, v: Any) -> Any:
        return StowRsAuthType.NONE if v is None else v


# --- Create Schemas (Combining Base + Type-Specific) ---

class StorageBackendConfigCreate_Filesystem(StorageBackendConfigBase, FileSystemConfig):
    backend_type: Literal["filesystem"] = "filesystem"

class StorageBackendConfigCreate_GCS(StorageBackendConfigBase, GcsConfig):
    backend_type: Literal["gcs"] = "gcs"

class StorageBackendConfigCreate_CStore(StorageBackendConfigBase, CStoreConfig):
    backend_type: Literal["cstore"] = "cstore"

class StorageBackendConfigCreate_GoogleHealthcare(StorageBackendConfigBase, GoogleHealthcareConfig):
    backend_type: Literal["google_healthcare"] = "google_healthcare"

class StorageBackendConfigCreate_StowRs(StorageBackendConfigBase, StowRsConfig):
    backend_type: Literal["stow_rs"] = "stow_rs"


StorageBackendConfigCreate = Annotated[
    Union[
        StorageBackendConfigCreate_Filesystem,
        StorageBackendConfigCreate_GCS,
        StorageBackendConfigCreate_CStore,
        StorageBackendConfigCreate_GoogleHealthcare,
        StorageBackendConfigCreate_StowRs,
    ],
    Discriminator("backend_type"),
]

CREATE_MODEL_BY_TYPE: Dict[StorageBackendType, Type[StorageBackendConfigBase]] = {
    StorageBackendType.FILESYSTEM: StorageBackendConfigCreate_Filesystem,
    StorageBackendType.GCS: StorageBackendConfigCreate_GCS,
    StorageBackendType.CSTORE: StorageBackendConfigCreate_CStore,
    StorageBackendType.GOOGLE_HEALTHCARE: StorageBackendConfigCreate_GoogleHealthcare,
    StorageBackendType.STOW_RS: StorageBackendConfigCreate_StowRs,
}

# Fields that must be non-empty for each backend type (flat form checks).
BACKEND_REQUIRED_FIELDS: Dict[StorageBackendType, List[str]] = {
    StorageBackendType.FILESYSTEM: ["path"],
    StorageBackendType.CSTORE: ["remote_ae_title", "remote_host", "remote_port"],
    StorageBackendType.GCS: ["bucket"],
    StorageBackendType.GOOGLE_HEALTHCARE: ["gcp_project_id", "gcp_location", "gcp_dataset_id", "gcp_dicom_store_id"],
    StorageBackendType.STOW_RS: ["base_url"],
}


def fields_for_backend_type(backend_type: Union[StorageBackendType, str]) -> List[str]:
    """All payload field names of one backend variant, common fields included."""
    return list(CREATE_MODEL_BY_TYPE[StorageBackendType(backend_type)].model_fields.keys())


# --- Update Schema (flat, all fields optional) ---

class StorageBackendConfigUpdate(_StrictModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_enabled: Optional[bool] = None

    # Filesystem
    path: Optional[str] = Field(None, max_length=512)
    # GCS
    bucket: Optional[str] = Field(None, max_length=255)
    prefix: Optional[str] = Field(None, max_length=512)
    # CStore
    remote_ae_title: Optional[str] = None
    remote_host: Optional[str] = Field(None, max_length=255)
    remote_port: Optional[int] = Field(None, gt=0, le=65535)
    local_ae_title: Optional[str] = None
    tls_enabled: Optional[bool] = None
    # tls_ca_cert_secret_name is shared by CStore and STOW-RS for their respective custom CAs
    tls_ca_cert_secret_name: Optional[str] = None
    tls_client_cert_secret_name: Optional[str] = None
    tls_client_key_secret_name: Optional[str] = None
    # Google Healthcare
    gcp_project_id: Optional[str] = Field(None, max_length=255)
    gcp_location: Optional[str] = Field(None, max_length=100)
    gcp_dataset_id: Optional[str] = Field(None, max_length=100)
    gcp_dicom_store_id: Optional[str] = Field(None, max_length=100)
    # StowRs
    base_url: Optional[str] = Field(None, max_length=512)
    auth_type: Optional[StowRsAuthType] = Field(None, description="STOW-RS authentication type.")
    basic_auth_username_secret_name: Optional[str] = None
    basic_auth_password_secret_name: Optional[str] = None
    bearer_token_secret_name: Optional[str] = None
    api_key_secret_name: Optional[str] = None
    api_key_header_name_override: Optional[str] = Field(None, max_length=100)

    _validate_name = field_validator('name', mode='before')(
        lambda v: _require_non_blank(v) if v is not None else None
    )
    _validate_description = field_validator('description', mode='before')(_blank_to_none)
    _check_prefix = field_validator('prefix')(_validate_prefix)
    _validate_remote_ae = field_validator('remote_ae_title', 'local_ae_title')(_validate_ae_title)
    _check_base_url = field_validator('base_url')(_validate_base_url)
    _validate_secrets = field_validator(
        'tls_ca_cert_secret_name', 'tls_client_cert_secret_name', 'tls_client_key_secret_name',
        'basic_auth_username_secret_name', 'basic_auth_password_secret_name', 'bearer_token_secret_name',
        'api_key_secret_name', mode='before'
    )(_validate_secret_name)

    @model_validator(mode='after')
    def ensure_at_least_one_field_for_update(self) -> 'StorageBackendConfigUpdate':
        if not self.model_fields_set:
            raise PydanticCustomError(IssueKind.EMPTY_UPDATE.value, "At least one field must be provided for update.")
        return self


# --- Flat form schema ---

class StorageBackendFormData(_StrictModel):
    """
    Flat shape an editing form works with: every variant's fields at once,
    all optional. Which ones are required depends on ``backend_type`` and is
    checked by the ``backend_required_fields`` refinement; the rest are
    dropped by ``to_create_payload``.
    """
    name: str = Field(..., max_length=100)
    backend_type: StorageBackendType
    is_enabled: Optional[bool] = None
    description: Optional[str] = Field(None, max_length=500)

    path: Optional[str] = Field(None, max_length=512)

    remote_ae_title: Optional[str] = None
    remote_host: Optional[str] = Field(None, max_length=255)
    remote_port: Optional[int] = Field(None, ge=1, le=65535)
    local_ae_title: Optional[str] = None
    tls_enabled: Optional[bool] = None
    tls_ca_cert_secret_name: Optional[str] = None
    tls_client_cert_secret_name: Optional[str] = None
    tls_client_key_secret_name: Optional[str] = None

    bucket: Optional[str] = Field(None, max_length=255)
    prefix: Optional[str] = Field(None, max_length=512)

    gcp_project_id: Optional[str] = Field(None, max_length=255)
    gcp_location: Optional[str] = Field(None, max_length=100)
    gcp_dataset_id: Optional[str] = Field(None, max_length=100)
    gcp_dicom_store_id: Optional[str] = Field(None, max_length=100)

    base_url: Optional[str] = Field(None, max_length=512)
    auth_type: Optional[StowRsAuthType] = None
    basic_auth_username_secret_name: Optional[str] = None
    basic_auth_password_secret_name: Optional[str] = None
    bearer_token_secret_name: Optional[str] = None
    api_key_secret_name: Optional[str] = None
    api_key_header_name_override: Optional[str] = Field(None, max_length=100)

    _validate_name = field_validator('name', mode='before')(_require_non_blank)
    _blank_optional = field_validator(
        'description', 'path', 'remote_ae_title', 'remote_host', 'local_ae_title', 'bucket', 'prefix',
        'gcp_project_id', 'gcp_location', 'gcp_dataset_id', 'gcp_dicom_store_id', 'base_url',
        'api_key_header_name_override', 'remote_port', mode='before'
    )(_blank_to_none)
    _validate_secrets = field_validator(
        'tls_ca_cert_secret_name', 'tls_client_cert_secret_name', 'tls_client_key_secret_name',
        'basic_auth_username_secret_name', 'basic_auth_password_secret_name', 'bearer_token_secret_name',
        'api_key_secret_name', mode='before'
    )(_validate_secret_name)
    _check_prefix = field_validator('prefix')(_validate_prefix)
    _check_base_url = field_validator('base_url')(_validate_base_url)

    @field_validator('remote_ae_title', 'local_ae_title')
    @classmethod
    def ae_title_format(cls, v: Optional[str]) -> Optional[str]:
        # Forms may pad AE titles; trim before checking the strict pattern.
        return _validate_ae_title(v.strip()) if v is not None else None

    def to_create_payload(self) -> Dict[str, Any]:
        """
        Builds the discriminated create payload: only the fields of the chosen
        backend type survive, everything belonging to other types is ignored.
        """
        allowed = set(fields_for_backend_type(self.backend_type))
        data = self.model_dump(mode='json', exclude_none=True)
        dropped = sorted(key for key in data if key not in allowed)
        if dropped:
            logger.debug("Dropping fields not used by backend type", backend_type=self.backend_type.value, dropped=dropped)
        payload = {key: value for key, value in data.items() if key in allowed}
        payload['backend_type'] = self.backend_type.value
        payload.setdefault('is_enabled', True)
        return payload
