# routing_rules/tests/test_cli.py

import json
import logging

import pytest

from routing_rules.cli import main


@pytest.fixture(autouse=True)
def reset_root_handlers():
    # main() points the root handler at the captured stderr of the running test.
    root = logging.getLogger()
    saved = list(root.handlers)
    yield
    root.handlers = saved


def _write(tmp_path, payload, name="payload.json"):
    path = tmp_path / name
    path.write_text(json.dumps(payload))
    return str(path)


def test_no_command_prints_help(capsys):
    assert main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_normalize_tag(capsys):
    assert main(["normalize-tag", "patientname", "0010, 0020"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert [row["canonical"] for row in rows] == ["PATIENTNAME", "0010,0020"]
    assert [row["tag"] for row in rows] == ["0010,0010", "0010,0020"]
    assert rows[0]["dictionary"]["keyword"] == "PatientName"


def test_normalize_tag_private_pair(capsys):
    assert main(["normalize-tag", "0009,1001"]) == 0
    row = json.loads(capsys.readouterr().out)[0]
    assert row["tag"] == "0009,1001"
    assert row["dictionary"] is None


def test_normalize_tag_error(capsys):
    assert main(["normalize-tag", "Patient Name"]) == 1
    rows = json.loads(capsys.readouterr().out)
    assert "error" in rows[0]


def test_operators_for_dataset_tags(capsys):
    assert main(["operators"]) == 0
    ops = {row["op"] for row in json.loads(capsys.readouterr().out)}
    assert "in" in ops
    assert "ip_eq" not in ops


def test_operators_for_source_ip(capsys):
    main(["operators", "--parameter", "SOURCE_IP"])
    ops = {row["op"] for row in json.loads(capsys.readouterr().out)}
    assert "ip_in_subnet" in ops


def test_validate_rule(tmp_path, capsys, rule_payload):
    assert main(["validate-rule", _write(tmp_path, rule_payload)]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["match_criteria"][0]["tag"] == "MODALITY"


def test_validate_rule_with_issues(tmp_path, capsys, rule_payload):
    rule_payload["destination_ids"] = []
    assert main(["validate-rule", _write(tmp_path, rule_payload)]) == 1
    output = json.loads(capsys.readouterr().out)
    assert output["ok"] is False
    assert output["issues"][0]["field"] == "destination_ids"
    assert output["issues"][0]["kind"] == "missing_required_field"


def test_validate_rule_update_prints_only_given_fields(tmp_path, capsys):
    assert main(["validate-rule", "--update", _write(tmp_path, {"priority": 5})]) == 0
    assert json.loads(capsys.readouterr().out) == {"priority": 5}


def test_validate_backend_form(tmp_path, capsys):
    form = {"name": "Local", "backend_type": "filesystem", "path": "/dicom/out", "remote_host": "ignored"}
    assert main(["validate-backend", "--form", _write(tmp_path, form)]) == 0
    output = json.loads(capsys.readouterr().out)
    assert "remote_host" not in output


def test_validate_backend_rule_name_in_output(tmp_path, capsys, cstore_payload):
    cstore_payload["tls_enabled"] = True
    assert main(["validate-backend", _write(tmp_path, cstore_payload)]) == 1
    output = json.loads(capsys.readouterr().out)
    assert output["issues"][0]["rule"] == "tls_requires_ca"


def test_validate_backend_modes_are_exclusive(tmp_path):
    with pytest.raises(SystemExit):
        main(["validate-backend", "--form", "--update", _write(tmp_path, {})])


def test_validate_source(tmp_path, capsys, dimse_qr_source_payload):
    assert main(["validate-source", "--type", "dimse_qr", _write(tmp_path, dimse_qr_source_payload)]) == 0


def test_missing_file(tmp_path, capsys):
    assert main(["validate-rule", str(tmp_path / "nope.json")]) == 2
    assert "error" in capsys.readouterr().err


def test_invalid_json(tmp_path, capsys):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    assert main(["validate-rule", str(path)]) == 2
