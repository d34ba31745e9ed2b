# routing_rules/schemas/rule.py

import ipaddress
import re
from typing import Any, List, Literal, Optional, Union

import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PositiveInt, TypeAdapter, ValidationInfo, field_validator, model_validator
from pydantic_core import PydanticCustomError
from typing_extensions import Annotated

from routing_rules.core.config import settings
from routing_rules.core.exceptions import InvalidTagIdentifierError
from routing_rules.schemas.enums import AssociationParameter, IssueKind, MatchOperation
from routing_rules.services.operator_catalog import ValueArity, is_ip_operator, required_arity
from routing_rules.utils.dicom_tags import normalize_tag

logger = structlog.get_logger(__name__)

VR_PATTERN = re.compile(r"^[A-Z]{2}$")
_COLLECTION_TYPES = (list, tuple, set, dict)


def _error(kind: IssueKind, message: str) -> PydanticCustomError:
    return PydanticCustomError(kind.value, message)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# --- Shared field validators ---

def _validate_tag_format_or_keyword(v: Any) -> str:
    if _is_blank(v):
        raise _error(IssueKind.MISSING_REQUIRED_FIELD, "Tag cannot be empty.")
    if isinstance(v, str) and v.strip().upper() in AssociationParameter.__members__:
        raise _error(
            IssueKind.OPERATOR_PARAMETER_MISMATCH,
            f"'{v.strip().upper()}' is an association parameter; use an association criterion instead.",
        )
    try:
        return normalize_tag(v, require_known=settings.STRICT_TAG_KEYWORDS)
    except InvalidTagIdentifierError as e:
        raise _error(IssueKind.INVALID_IDENTIFIER, e.reason)


def _validate_vr_format(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    if not isinstance(v, str):
        raise _error(IssueKind.INVALID_VALUE, "VR must be a string.")
    v = v.strip().upper()
    if not VR_PATTERN.match(v):
        raise _error(IssueKind.INVALID_VALUE, "VR must be two uppercase letters.")
    return v


def _check_value_for_operator(value: Any, info: ValidationInfo) -> Any:
    """Checks a criterion's value against the arity of the operator validated just before it."""
    op: Optional[MatchOperation] = info.data.get('op')
    if op is None:
        # The operator itself was rejected; nothing sensible to compare against.
        return value

    arity = required_arity(op)

    if arity is ValueArity.NONE:
        if not _is_blank(value):
            logger.warning("Value provided for operator that takes none; ignoring it.", op=op.value)
        return None

    if arity is ValueArity.LIST:
        if value is None:
            raise _error(IssueKind.MISSING_REQUIRED_FIELD, f"Value is required for operator '{op.value}'.")
        if not isinstance(value, str) or not value.strip():
            raise _error(
                IssueKind.MALFORMED_LIST,
                f"Value must be a comma-separated list for operator '{op.value}'.",
            )
        tokens = [token.strip() for token in value.split(",")]
        if any(not token for token in tokens):
            raise _error(IssueKind.MALFORMED_LIST, f"Value for operator '{op.value}' contains an empty list entry.")
        return ",".join(tokens)

    if _is_blank(value):
        raise _error(IssueKind.MISSING_REQUIRED_FIELD, f"Value is required for operator '{op.value}'.")
    if isinstance(value, _COLLECTION_TYPES):
        raise _error(
            IssueKind.OPERATOR_ARITY_MISMATCH,
            f"Operator '{op.value}' compares against a single value, not a {type(value).__name__}.",
        )

    if op == MatchOperation.REGEX:
        if not isinstance(value, str):
            raise _error(IssueKind.INVALID_VALUE, "Value must be a string (regex pattern) for operator 'regex'.")
        try:
            re.compile(value)
        except re.error as e:
            raise _error(IssueKind.INVALID_VALUE, f"Invalid regex pattern: {e}")
    elif op == MatchOperation.IP_ADDRESS_IN_SUBNET:
        if not isinstance(value, str) or '/' not in value:
            raise _error(IssueKind.INVALID_VALUE, "Value for 'ip_in_subnet' must be a CIDR string (e.g., '192.168.1.0/24').")
        try:
            ipaddress.ip_network(value.strip(), strict=False)
        except ValueError as e:
            raise _error(IssueKind.INVALID_VALUE, f"Invalid CIDR network: {e}")
        return value.strip()
    elif op == MatchOperation.IP_ADDRESS_EQUALS:
        try:
            ipaddress.ip_address(str(value).strip())
        except ValueError:
            raise _error(IssueKind.INVALID_VALUE, "Value for 'ip_eq' must be an IP address.")
        return str(value).strip()
    elif op == MatchOperation.IP_ADDRESS_STARTS_WITH and not isinstance(value, str):
        raise _error(IssueKind.INVALID_VALUE, "Value for 'ip_startswith' must be a string.")

    return value


DicomTag = Annotated[str, BeforeValidator(_validate_tag_format_or_keyword)]


# --- Match Criteria ---

class MatchCriterion(BaseModel):
    model_config = ConfigDict(extra='forbid')

    tag: str = Field(..., description="DICOM tag, keyword ('PatientName') or 'GGGG,EEEE'. Stored in canonical form.")
    op: MatchOperation = Field(..., description="Matching operation.")
    value: Any = Field(None, validate_default=True, description="Value to compare against; required unless op is exists/not_exists. 'in'/'not_in' take a comma-separated string.")

    _validate_tag = field_validator('tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_value = field_validator('value')(_check_value_for_operator)

    @field_validator('op')
    @classmethod
    def reject_ip_operators(cls, v: MatchOperation) -> MatchOperation:
        if is_ip_operator(v):
            raise _error(
                IssueKind.OPERATOR_PARAMETER_MISMATCH,
                f"Operation '{v.value}' is only valid for association parameter 'SOURCE_IP'.",
            )
        return v


class AssociationMatchCriterion(BaseModel):
    model_config = ConfigDict(extra='forbid')

    parameter: AssociationParameter = Field(..., description="Association parameter to match.")
    op: MatchOperation = Field(..., description="Matching operation.")
    value: Any = Field(None, validate_default=True, description="Value to compare against.")

    _validate_value = field_validator('value')(_check_value_for_operator)

    @field_validator('parameter', mode='before')
    @classmethod
    def parameter_present(cls, v: Any) -> Any:
        if _is_blank(v):
            raise _error(IssueKind.MISSING_REQUIRED_FIELD, "Association parameter is required.")
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator('op')
    @classmethod
    def ip_operators_need_source_ip(cls, v: MatchOperation, info: ValidationInfo) -> MatchOperation:
        parameter = info.data.get('parameter')
        if parameter is not None and is_ip_operator(v) and parameter is not AssociationParameter.SOURCE_IP:
            raise _error(
                IssueKind.OPERATOR_PARAMETER_MISMATCH,
                f"Operation '{v.value}' is only valid for parameter 'SOURCE_IP', not '{parameter.value}'.",
            )
        return v


# --- Tag Modifications ---

class TagModificationBase(BaseModel):
    # A variant accepts its own fields and nothing else.
    model_config = ConfigDict(extra='forbid')


def _require_set_value(v: Any) -> Any:
    if _is_blank(v):
        raise _error(IssueKind.MISSING_REQUIRED_FIELD, "Value is required for 'set'.")
    return v


def _require_text(action: str):
    def check(v: Any) -> str:
        if v is None or (isinstance(v, str) and v == ""):
            raise _error(IssueKind.MISSING_REQUIRED_FIELD, f"Value for '{action}' action is required.")
        if not isinstance(v, str):
            raise _error(IssueKind.INVALID_VALUE, f"Value for '{action}' action must be a string.")
        return v
    return check


class TagSetModification(TagModificationBase):
    action: Literal["set"] = "set"
    tag: str = Field(..., description="DICOM tag to set.")
    value: Any = Field(..., description="New value for the tag.")
    vr: Optional[str] = Field(None, description="Explicit VR (e.g., 'PN', 'DA') - strongly recommended.")
    _validate_tag = field_validator('tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_value = field_validator('value')(_require_set_value)
    _validate_vr = field_validator('vr', mode='before')(_validate_vr_format)


class TagDeleteModification(TagModificationBase):
    action: Literal["delete"] = "delete"
    tag: str = Field(..., description="DICOM tag to delete.")
    _validate_tag = field_validator('tag', mode='before')(_validate_tag_format_or_keyword)


class TagPrependModification(TagModificationBase):
    action: Literal["prepend"] = "prepend"
    tag: str = Field(..., description="DICOM tag to prepend to.")
    value: str = Field(..., description="String value to prepend.")
    _validate_tag = field_validator('tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_value = field_validator('value', mode='before')(_require_text("prepend"))


class TagSuffixModification(TagModificationBase):
    action: Literal["suffix"] = "suffix"
    tag: str = Field(..., description="DICOM tag to append to.")
    value: str = Field(..., description="String value to append (suffix).")
    _validate_tag = field_validator('tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_value = field_validator('value', mode='before')(_require_text("suffix"))


class TagRegexReplaceModification(TagModificationBase):
    action: Literal["regex_replace"] = "regex_replace"
    tag: str = Field(..., description="DICOM tag to perform regex replace on.")
    pattern: str = Field(..., description="Python-compatible regex pattern to find.")
    replacement: str = Field(..., description="Replacement string (can use capture groups like \\1). May be empty.")
    _validate_tag = field_validator('tag', mode='before')(_validate_tag_format_or_keyword)

    @field_validator('pattern', mode='before')
    @classmethod
    def check_pattern_is_valid_regex(cls, v: Any) -> str:
        if v is None or v == "":
            raise _error(IssueKind.MISSING_REQUIRED_FIELD, "Regex pattern is required.")
        if not isinstance(v, str):
            raise _error(IssueKind.INVALID_VALUE, "Pattern for 'regex_replace' action must be a string.")
        try:
            re.compile(v)
        except re.error as e:
            raise _error(IssueKind.INVALID_VALUE, f"Invalid regex pattern: {e}")
        return v

    @field_validator('replacement', mode='before')
    @classmethod
    def check_replacement_is_string(cls, v: Any) -> str:
        # "" is a deliberate replacement (strip the match); only absence is an error.
        if v is None:
            raise _error(IssueKind.MISSING_REQUIRED_FIELD, "Replacement string is required (can be empty string).")
        if not isinstance(v, str):
            raise _error(IssueKind.INVALID_VALUE, "Replacement for 'regex_replace' action must be a string.")
        return v


class TagCopyModification(TagModificationBase):
    action: Literal["copy"] = "copy"
    source_tag: str = Field(..., description="DICOM tag to copy value FROM.")
    destination_tag: str = Field(..., description="DICOM tag to copy value TO (will be created/overwritten).")
    destination_vr: Optional[str] = Field(None, description="Optional: Explicit VR for the destination tag. If omitted, source VR is used.")
    _validate_source_tag = field_validator('source_tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_destination_tag = field_validator('destination_tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_vr = field_validator('destination_vr', mode='before')(_validate_vr_format)


class TagMoveModification(TagModificationBase):
    action: Literal["move"] = "move"
    source_tag: str = Field(..., description="DICOM tag to move value FROM (will be deleted).")
    destination_tag: str = Field(..., description="DICOM tag to move value TO (will be created/overwritten).")
    destination_vr: Optional[str] = Field(None, description="Optional: Explicit VR for the destination tag. If omitted, source VR is used.")
    _validate_source_tag = field_validator('source_tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_destination_tag = field_validator('destination_tag', mode='before')(_validate_tag_format_or_keyword)
    _validate_vr = field_validator('destination_vr', mode='before')(_validate_vr_format)


class TagCrosswalkModification(TagModificationBase):
    action: Literal["crosswalk"] = "crosswalk"
    # Existence of the map is the caller's concern; only shape is checked here.
    crosswalk_map_id: PositiveInt = Field(..., description="ID of the CrosswalkMap configuration to use.")


TagModification = Annotated[
    Union[
        TagSetModification, TagDeleteModification, TagPrependModification,
        TagSuffixModification, TagRegexReplaceModification,
        TagCopyModification, TagMoveModification,
        TagCrosswalkModification
    ],
    Field(discriminator="action")
]

tag_modification_adapter: TypeAdapter = TypeAdapter(TagModification)
tag_modification_list_adapter: TypeAdapter = TypeAdapter(List[TagModification])


# --- Rule field validators (shared by create and update) ---

def _validate_rule_name(v: Any) -> str:
    if _is_blank(v):
        raise _error(IssueKind.MISSING_REQUIRED_FIELD, "Rule name is required.")
    if not isinstance(v, str):
        raise _error(IssueKind.INVALID_VALUE, "Rule name must be a string.")
    v = v.strip()
    if len(v) > settings.RULE_NAME_MAX_LENGTH:
        raise _error(IssueKind.INVALID_VALUE, f"Rule name must be at most {settings.RULE_NAME_MAX_LENGTH} characters.")
    return v


def _blank_description_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _require_match_criteria(v: Optional[List[MatchCriterion]]) -> List[MatchCriterion]:
    if not v:
        raise _error(IssueKind.MISSING_REQUIRED_FIELD, "At least one match criterion is required.")
    return v


def _require_destinations(v: Optional[List[int]]) -> List[int]:
    if not v:
        raise _error(IssueKind.MISSING_REQUIRED_FIELD, "At least one destination is required.")
    return v


def _none_to_empty_list(v: Any) -> Any:
    return [] if v is None else v


def _dedupe_ai_tags(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return None
    unique_tags = list(dict.fromkeys(v))
    if len(unique_tags) != len(v):
        logger.warning("Duplicate tags found in ai_standardization_tags, using unique list.",
                       original_tags=v, unique_tags=unique_tags)
    return unique_tags


def _validate_applicable_sources(v: Any) -> Any:
    if v is None:
        return None
    if not isinstance(v, list):
        raise _error(IssueKind.INVALID_VALUE, "applicable_sources must be a list of strings or null.")
    cleaned: List[str] = []
    for source in v:
        if not isinstance(source, str) or not source.strip():
            raise _error(IssueKind.MISSING_REQUIRED_FIELD, "Each item in applicable_sources must be a non-empty string.")
        source = source.strip()
        if settings.REJECT_GENERATED_SOURCE_IDS and source.startswith(settings.GENERATED_SOURCE_ID_PREFIXES):
            raise _error(
                IssueKind.INVALID_VALUE,
                f"Invalid source identifier '{source}'. Use the source's name (e.g. 'DCM4CHE_LISTENER'), not an auto-generated ID.",
            )
        cleaned.append(source)
    unique_sources = list(dict.fromkeys(cleaned))
    if len(unique_sources) != len(cleaned):
        logger.warning("Duplicate entries found in applicable_sources, using unique list.",
                       original_sources=cleaned, unique_sources=unique_sources)
    return unique_sources


# --- Schemas for Rules ---

class RuleBase(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: str = Field(..., description="Rule name, unique within its ruleset.")
    description: Optional[str] = None
    is_active: bool = True
    priority: int = 0
    match_criteria: List[MatchCriterion] = Field(..., description="All criteria must match. At least one is required.")
    association_criteria: Optional[List[AssociationMatchCriterion]] = Field(None)
    tag_modifications: List[TagModification] = Field(default_factory=list, description="Applied in order; duplicates are kept.")
    ai_standardization_tags: Optional[List[DicomTag]] = Field(None, description="Tags to run AI vocabulary standardization on.")
    applicable_sources: Optional[List[str]] = Field(None, description="Source names this rule applies to; empty or null means all.")
    destination_ids: List[PositiveInt] = Field(..., description="Storage backend IDs to send to.")
    schedule_id: Optional[PositiveInt] = Field(None)

    _validate_name = field_validator('name', mode='before')(_validate_rule_name)
    _validate_description = field_validator('description', mode='before')(_blank_description_to_none)
    _validate_match_criteria = field_validator('match_criteria')(_require_match_criteria)
    _validate_tag_modifications = field_validator('tag_modifications', mode='before')(_none_to_empty_list)
    _validate_ai_tags = field_validator('ai_standardization_tags')(_dedupe_ai_tags)
    _validate_sources = field_validator('applicable_sources', mode='before')(_validate_applicable_sources)
    _validate_destinations = field_validator('destination_ids')(_require_destinations)


class RuleCreate(RuleBase):
    ruleset_id: PositiveInt = Field(..., description="Owning ruleset; fixed at creation.")


class RuleUpdate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None
    match_criteria: Optional[List[MatchCriterion]] = None
    association_criteria: Optional[List[AssociationMatchCriterion]] = None
    tag_modifications: Optional[List[TagModification]] = None
    ai_standardization_tags: Optional[List[DicomTag]] = None
    applicable_sources: Optional[List[str]] = None
    destination_ids: Optional[List[PositiveInt]] = None
    schedule_id: Optional[PositiveInt] = None

    _validate_name = field_validator('name', mode='before')(_validate_rule_name)
    _validate_description = field_validator('description', mode='before')(_blank_description_to_none)
    _validate_match_criteria = field_validator('match_criteria')(_require_match_criteria)
    _validate_ai_tags = field_validator('ai_standardization_tags')(_dedupe_ai_tags)
    _validate_sources = field_validator('applicable_sources', mode='before')(_validate_applicable_sources)
    _validate_destinations = field_validator('destination_ids')(_require_destinations)

    # A stored rule always has these; an update may change them but not null them.
    @field_validator('is_active', 'priority', 'tag_modifications', mode='before')
    @classmethod
    def reject_explicit_null(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            raise _error(IssueKind.MISSING_REQUIRED_FIELD, f"'{info.field_name}' cannot be null; omit it to leave it unchanged.")
        return v

    @model_validator(mode='after')
    def ensure_at_least_one_field_for_update(self) -> 'RuleUpdate':
        if not self.model_fields_set:
            raise _error(IssueKind.EMPTY_UPDATE, "At least one field must be provided for rule update.")
        return self
