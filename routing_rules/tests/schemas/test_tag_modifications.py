# routing_rules/tests/schemas/test_tag_modifications.py

import pytest

from routing_rules.schemas.enums import IssueKind, ModifyAction
from routing_rules.schemas.rule import (
    TagCopyModification,
    TagCrosswalkModification,
    TagDeleteModification,
    TagMoveModification,
    TagPrependModification,
    TagRegexReplaceModification,
    TagSetModification,
    TagSuffixModification,
)
from routing_rules.services.validation import validate_tag_modification, validate_tag_modifications

# Exactly the required fields of each variant.
MINIMAL_MODIFICATIONS = {
    "set": {"action": "set", "tag": "PatientName", "value": "ANON"},
    "delete": {"action": "delete", "tag": "PatientBirthDate"},
    "prepend": {"action": "prepend", "tag": "StudyDescription", "value": "EXT_"},
    "suffix": {"action": "suffix", "tag": "StudyDescription", "value": "_RAD"},
    "regex_replace": {"action": "regex_replace", "tag": "AccessionNumber", "pattern": "^0+", "replacement": ""},
    "copy": {"action": "copy", "source_tag": "PatientID", "destination_tag": "OtherPatientIDs"},
    "move": {"action": "move", "source_tag": "0009,1001", "destination_tag": "0011,1001"},
    "crosswalk": {"action": "crosswalk", "crosswalk_map_id": 7},
}

EXPECTED_MODELS = {
    "set": TagSetModification,
    "delete": TagDeleteModification,
    "prepend": TagPrependModification,
    "suffix": TagSuffixModification,
    "regex_replace": TagRegexReplaceModification,
    "copy": TagCopyModification,
    "move": TagMoveModification,
    "crosswalk": TagCrosswalkModification,
}

REQUIRED_FIELD_CASES = [
    (action, field_name)
    for action, payload in MINIMAL_MODIFICATIONS.items()
    for field_name in payload
    if field_name != "action"
]


def test_every_action_has_a_fixture():
    assert set(MINIMAL_MODIFICATIONS) == {action.value for action in ModifyAction}


@pytest.mark.parametrize("action", sorted(MINIMAL_MODIFICATIONS))
def test_minimal_variant_validates(action):
    result = validate_tag_modification(dict(MINIMAL_MODIFICATIONS[action]))
    assert result.ok, result.issues
    assert isinstance(result.value, EXPECTED_MODELS[action])
    assert result.value.action == ModifyAction(action)


@pytest.mark.parametrize("action, field_name", REQUIRED_FIELD_CASES)
def test_missing_required_field(action, field_name):
    payload = dict(MINIMAL_MODIFICATIONS[action])
    del payload[field_name]
    result = validate_tag_modification(payload)
    assert not result.ok
    assert result.kinds() == [IssueKind.MISSING_REQUIRED_FIELD]
    assert result.issues[0].field == field_name


def test_valid_set_rule():
    result = validate_tag_modification({"action": "set", "tag": "PatientName", "value": "ANON"})
    assert result.ok
    assert result.value.tag == "PATIENTNAME"
    assert result.value.value == "ANON"
    assert result.value.vr is None


def test_invalid_crosswalk_id():
    result = validate_tag_modification({"action": "crosswalk", "crosswalk_map_id": 0})
    assert not result.ok
    assert result.kinds() == [IssueKind.INVALID_VALUE]
    assert result.issues[0].field == "crosswalk_map_id"
    assert "greater than 0" in result.issues[0].message


class TestVariantShape:

    def test_missing_action(self):
        result = validate_tag_modification({"tag": "PatientName", "value": "ANON"})
        assert result.kinds() == [IssueKind.VARIANT_FIELD_MISMATCH]
        assert result.issues[0].field == "action"

    def test_unknown_action(self):
        result = validate_tag_modification({"action": "explode", "tag": "PatientName"})
        assert result.kinds() == [IssueKind.VARIANT_FIELD_MISMATCH]
        assert result.issues[0].field == "action"

    def test_field_from_another_variant(self):
        result = validate_tag_modification({"action": "delete", "tag": "PatientName", "value": "x"})
        assert result.kinds() == [IssueKind.VARIANT_FIELD_MISMATCH]
        assert result.issues[0].field == "value"

    def test_copy_does_not_take_a_tag(self):
        payload = dict(MINIMAL_MODIFICATIONS["copy"], tag="PatientName")
        result = validate_tag_modification(payload)
        assert result.kinds() == [IssueKind.VARIANT_FIELD_MISMATCH]


class TestVariantFields:

    def test_set_blank_value(self):
        result = validate_tag_modification({"action": "set", "tag": "PatientName", "value": ""})
        assert result.kinds() == [IssueKind.MISSING_REQUIRED_FIELD]

    def test_set_accepts_non_string_values(self):
        result = validate_tag_modification({"action": "set", "tag": "SeriesNumber", "value": 3, "vr": "is"})
        assert result.ok
        assert result.value.value == 3
        assert result.value.vr == "IS"

    @pytest.mark.parametrize("vr", ["P", "PNX", "1A", ""])
    def test_bad_vr(self, vr):
        result = validate_tag_modification({"action": "set", "tag": "PatientName", "value": "X", "vr": vr})
        assert result.kinds() == [IssueKind.INVALID_VALUE]
        assert result.issues[0].field == "vr"

    def test_vr_is_trimmed_and_uppercased(self):
        result = validate_tag_modification(dict(MINIMAL_MODIFICATIONS["copy"], destination_vr=" lo "))
        assert result.value.destination_vr == "LO"

    @pytest.mark.parametrize("action", ["prepend", "suffix"])
    def test_empty_text(self, action):
        payload = dict(MINIMAL_MODIFICATIONS[action], value="")
        result = validate_tag_modification(payload)
        assert result.kinds() == [IssueKind.MISSING_REQUIRED_FIELD]

    def test_regex_pattern_must_compile(self):
        payload = dict(MINIMAL_MODIFICATIONS["regex_replace"], pattern="([a-z")
        result = validate_tag_modification(payload)
        assert result.kinds() == [IssueKind.INVALID_VALUE]
        assert result.issues[0].field == "pattern"

    def test_regex_empty_pattern(self):
        payload = dict(MINIMAL_MODIFICATIONS["regex_replace"], pattern="")
        assert validate_tag_modification(payload).kinds() == [IssueKind.MISSING_REQUIRED_FIELD]

    def test_regex_null_replacement(self):
        payload = dict(MINIMAL_MODIFICATIONS["regex_replace"], replacement=None)
        assert validate_tag_modification(payload).kinds() == [IssueKind.MISSING_REQUIRED_FIELD]

    def test_copy_tags_are_canonical(self):
        result = validate_tag_modification(
            {"action": "copy", "source_tag": "0010 , 0020", "destination_tag": "otherpatientids"}
        )
        assert result.value.source_tag == "0010,0020"
        assert result.value.destination_tag == "OTHERPATIENTIDS"

    def test_bad_destination_tag(self):
        result = validate_tag_modification({"action": "move", "source_tag": "PatientID", "destination_tag": "bad tag"})
        assert result.kinds() == [IssueKind.INVALID_IDENTIFIER]
        assert result.issues[0].field == "destination_tag"

    def test_crosswalk_rejects_non_integer(self):
        result = validate_tag_modification({"action": "crosswalk", "crosswalk_map_id": "abc"})
        assert result.kinds() == [IssueKind.INVALID_VALUE]


class TestModificationList:

    def test_order_and_duplicates_are_kept(self):
        first = {"action": "prepend", "tag": "StudyDescription", "value": "A_"}
        second = {"action": "suffix", "tag": "StudyDescription", "value": "_B"}
        result = validate_tag_modifications([first, second, first])
        assert result.ok
        assert [m.action for m in result.value] == [ModifyAction.PREPEND, ModifyAction.SUFFIX, ModifyAction.PREPEND]

    def test_issue_paths_carry_the_index(self):
        result = validate_tag_modifications([
            MINIMAL_MODIFICATIONS["delete"],
            {"action": "set", "tag": "bad tag", "value": "x"},
            {"action": "crosswalk", "crosswalk_map_id": -1},
        ])
        assert not result.ok
        assert [issue.field for issue in result.issues] == ["1.tag", "2.crosswalk_map_id"]

    def test_empty_list(self):
        result = validate_tag_modifications([])
        assert result.ok
        assert result.value == []
