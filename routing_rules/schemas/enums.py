# routing_rules/schemas/enums.py

import enum


class MatchOperation(str, enum.Enum):
    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"
    GREATER_EQUAL = "ge"
    LESS_EQUAL = "le"
    CONTAINS = "contains"
    STARTS_WITH = "startswith"
    ENDS_WITH = "endswith"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    REGEX = "regex"
    IN = "in"
    NOT_IN = "not_in"
    IP_ADDRESS_EQUALS = "ip_eq"
    IP_ADDRESS_STARTS_WITH = "ip_startswith"
    IP_ADDRESS_IN_SUBNET = "ip_in_subnet"


class ModifyAction(str, enum.Enum):
    SET = "set"
    DELETE = "delete"
    PREPEND = "prepend"
    SUFFIX = "suffix"
    REGEX_REPLACE = "regex_replace"
    COPY = "copy"
    MOVE = "move"
    CROSSWALK = "crosswalk"


class AssociationParameter(str, enum.Enum):
    """Network association parameters an association criterion can test."""
    SOURCE_IP = "SOURCE_IP"
    CALLING_AE_TITLE = "CALLING_AE_TITLE"
    CALLED_AE_TITLE = "CALLED_AE_TITLE"


class StorageBackendType(str, enum.Enum):
    FILESYSTEM = "filesystem"
    CSTORE = "cstore"
    GCS = "gcs"
    GOOGLE_HEALTHCARE = "google_healthcare"
    STOW_RS = "stow_rs"


class StowRsAuthType(str, enum.Enum):
    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    APIKEY = "apikey"


class PollingSourceType(str, enum.Enum):
    """Polled input sources that carry the is_enabled/is_active pair."""
    GOOGLE_HEALTHCARE = "google_healthcare"
    DIMSE_QR = "dimse_qr"


class IssueKind(str, enum.Enum):
    """
    Kinds of validation failure. These values double as pydantic custom
    error types, so an error raised with one of them keeps its kind when
    it is converted into a ValidationIssue.
    """
    INVALID_IDENTIFIER = "invalid_identifier"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    MALFORMED_LIST = "malformed_list"
    OPERATOR_PARAMETER_MISMATCH = "operator_parameter_mismatch"
    OPERATOR_ARITY_MISMATCH = "operator_arity_mismatch"
    VARIANT_FIELD_MISMATCH = "variant_field_mismatch"
    CROSS_FIELD_INVARIANT_VIOLATION = "cross_field_invariant_violation"
    EMPTY_UPDATE = "empty_update"
    MALFORMED_JSON_CONTENT = "malformed_json_content"
    INVALID_VALUE = "invalid_value"  # type/range constraints with no dedicated kind
