# routing_rules/utils/dicom_tags.py
import re
import structlog
from functools import lru_cache
from typing import Dict, NamedTuple, Optional

from pydicom.datadict import DicomDictionary, keyword_dict

from routing_rules.core.exceptions import InvalidTagIdentifierError

logger = structlog.get_logger(__name__)

TAG_PAIR_PATTERN = re.compile(r"^([0-9A-F]{4})\s*,\s*([0-9A-F]{4})$")
KEYWORD_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*$")


class TagInfo(NamedTuple):
    tag: str  # canonical GGGG,EEEE
    keyword: str  # dictionary spelling, e.g. PatientName
    name: str
    vr: str


def normalize_tag(value: str, require_known: bool = False) -> str:
    """
    Canonicalizes a DICOM attribute identifier.

    Accepts a keyword (``PatientName``) or a group/element pair (``0010,0010``,
    whitespace around the comma allowed), case-insensitively. Returns either the
    uppercased keyword or ``GGGG,EEEE`` with uppercase hex digits. Applying it to
    its own output returns the same string.

    With ``require_known`` a keyword must also exist in the DICOM dictionary;
    tag pairs are never checked since private tags are legitimate.
    """
    if not isinstance(value, str):
        raise InvalidTagIdentifierError(value, "Tag must be a string.")

    candidate = value.strip().upper()
    if not candidate:
        raise InvalidTagIdentifierError(value, "Tag cannot be empty.")

    pair_match = TAG_PAIR_PATTERN.match(candidate)
    if pair_match:
        return f"{pair_match.group(1)},{pair_match.group(2)}"

    if KEYWORD_PATTERN.match(candidate):
        if require_known and lookup_by_keyword(candidate) is None:
            raise InvalidTagIdentifierError(value, f"'{value.strip()}' is not a recognized DICOM keyword.")
        return candidate

    logger.debug("Rejected DICOM tag identifier", value=value)
    raise InvalidTagIdentifierError(value)


def is_tag_pair(identifier: str) -> bool:
    return bool(TAG_PAIR_PATTERN.match(identifier))


# --- Dictionary resolver (read-only, backed by pydicom's data dictionary) ---

@lru_cache(maxsize=1)
def _upper_keyword_index() -> Dict[str, str]:
    return {kw.upper(): kw for kw in keyword_dict}


def _format_pair(tag_value: int) -> str:
    return f"{tag_value >> 16:04X},{tag_value & 0xFFFF:04X}"


def _info_for_tag_value(tag_value: int) -> Optional[TagInfo]:
    entry = DicomDictionary.get(tag_value)
    if entry is None:
        return None
    vr, _vm, name, _retired, keyword = entry
    return TagInfo(tag=_format_pair(tag_value), keyword=keyword, name=name, vr=vr)


def lookup_by_keyword(keyword: str) -> Optional[TagInfo]:
    """Finds a dictionary entry by keyword, ignoring case. None when unknown."""
    if not isinstance(keyword, str):
        return None
    dictionary_keyword = _upper_keyword_index().get(keyword.strip().upper())
    if dictionary_keyword is None:
        return None
    return _info_for_tag_value(keyword_dict[dictionary_keyword])


def lookup_by_tag_pair(tag: str) -> Optional[TagInfo]:
    """Finds a dictionary entry by GGGG,EEEE pair. None when unknown or malformed."""
    if not isinstance(tag, str):
        return None
    pair_match = TAG_PAIR_PATTERN.match(tag.strip().upper())
    if not pair_match:
        return None
    tag_value = (int(pair_match.group(1), 16) << 16) | int(pair_match.group(2), 16)
    return _info_for_tag_value(tag_value)


def tag_pair_for(identifier: str) -> Optional[str]:
    """
    Resolves an identifier in either form to its GGGG,EEEE pair.
    Used for display only; validation and storage keep the canonical identifier.
    """
    try:
        canonical = normalize_tag(identifier)
    except InvalidTagIdentifierError:
        return None
    if is_tag_pair(canonical):
        return canonical
    info = lookup_by_keyword(canonical)
    return info.tag if info else None
