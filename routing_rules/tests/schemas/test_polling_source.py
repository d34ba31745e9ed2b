# routing_rules/tests/schemas/test_polling_source.py

import pytest

from routing_rules.schemas.enums import IssueKind, PollingSourceType
from routing_rules.schemas.polling_source import DimseQueryRetrieveSourceCreate, GoogleHealthcareSourceUpdate
from routing_rules.services.validation import validate_polling_source


class TestGoogleHealthcareSource:

    def test_defaults(self, google_healthcare_source_payload):
        result = validate_polling_source(google_healthcare_source_payload, PollingSourceType.GOOGLE_HEALTHCARE)
        assert result.ok, result.issues
        assert result.value.is_enabled is True
        assert result.value.is_active is True
        assert result.value.polling_interval_seconds == 300
        assert result.value.query_filters is None

    def test_active_requires_enabled(self, google_healthcare_source_payload):
        google_healthcare_source_payload.update(is_enabled=False, is_active=True)
        result = validate_polling_source(google_healthcare_source_payload, "google_healthcare")
        assert result.kinds() == [IssueKind.CROSS_FIELD_INVARIANT_VIOLATION]
        assert result.issues[0].rule == "active_requires_enabled"
        assert result.issues[0].field == "is_active"

    def test_disabled_and_inactive(self, google_healthcare_source_payload):
        google_healthcare_source_payload.update(is_enabled=False, is_active=False)
        assert validate_polling_source(google_healthcare_source_payload, "google_healthcare").ok

    def test_query_filters_from_json_string(self, google_healthcare_source_payload):
        google_healthcare_source_payload["query_filters"] = '{"StudyDate": "-1d", "ModalitiesInStudy": "CT"}'
        result = validate_polling_source(google_healthcare_source_payload, "google_healthcare")
        assert result.value.query_filters == {"StudyDate": "-1d", "ModalitiesInStudy": "CT"}

    def test_query_filters_blank_string(self, google_healthcare_source_payload):
        google_healthcare_source_payload["query_filters"] = "  "
        assert validate_polling_source(google_healthcare_source_payload, "google_healthcare").value.query_filters is None

    @pytest.mark.parametrize("query_filters", ['{"StudyDate": ', '["CT", "MR"]', '"CT"', 42])
    def test_malformed_query_filters(self, google_healthcare_source_payload, query_filters):
        google_healthcare_source_payload["query_filters"] = query_filters
        result = validate_polling_source(google_healthcare_source_payload, "google_healthcare")
        assert result.kinds() == [IssueKind.MALFORMED_JSON_CONTENT]
        assert result.issues[0].field == "query_filters"

    def test_json_array_message_names_the_type(self, google_healthcare_source_payload):
        google_healthcare_source_payload["query_filters"] = '["CT"]'
        result = validate_polling_source(google_healthcare_source_payload, "google_healthcare")
        assert "list" in result.issues[0].message

    def test_blank_gcp_id(self, google_healthcare_source_payload):
        google_healthcare_source_payload["gcp_dataset_id"] = " "
        result = validate_polling_source(google_healthcare_source_payload, "google_healthcare")
        assert result.kinds() == [IssueKind.MISSING_REQUIRED_FIELD]
        assert result.issues[0].field == "gcp_dataset_id"

    def test_update(self):
        result = validate_polling_source({"is_active": False}, "google_healthcare", update=True)
        assert isinstance(result.value, GoogleHealthcareSourceUpdate)
        assert validate_polling_source({}, "google_healthcare", update=True).kinds() == [IssueKind.EMPTY_UPDATE]

    def test_update_checks_pair_when_both_given(self):
        result = validate_polling_source({"is_enabled": False, "is_active": True}, "google_healthcare", update=True)
        assert [issue.rule for issue in result.issues] == ["active_requires_enabled"]
        assert validate_polling_source({"is_enabled": False}, "google_healthcare", update=True).ok


class TestDimseQueryRetrieveSource:

    def test_defaults(self, dimse_qr_source_payload):
        result = validate_polling_source(dimse_qr_source_payload, PollingSourceType.DIMSE_QR)
        assert result.ok, result.issues
        assert isinstance(result.value, DimseQueryRetrieveSourceCreate)
        assert result.value.local_ae_title == "ROUTER_QR_SCU"
        assert result.value.query_level == "STUDY"
        assert result.value.tls_enabled is False

    def test_bad_query_level(self, dimse_qr_source_payload):
        dimse_qr_source_payload["query_level"] = "IMAGE"
        result = validate_polling_source(dimse_qr_source_payload, "dimse_qr")
        assert result.issues[0].field == "query_level"

    @pytest.mark.parametrize("host, kind", [
        ("  ", IssueKind.MISSING_REQUIRED_FIELD),
        ("pacs host", IssueKind.INVALID_VALUE),
        ("http://pacs", IssueKind.INVALID_VALUE),
    ])
    def test_bad_host(self, dimse_qr_source_payload, host, kind):
        dimse_qr_source_payload["remote_host"] = host
        result = validate_polling_source(dimse_qr_source_payload, "dimse_qr")
        assert result.kinds() == [kind]

    def test_tls_requires_ca(self, dimse_qr_source_payload):
        dimse_qr_source_payload["tls_enabled"] = True
        result = validate_polling_source(dimse_qr_source_payload, "dimse_qr")
        assert [issue.rule for issue in result.issues] == ["tls_requires_ca"]

    def test_all_source_rules_reported(self, dimse_qr_source_payload):
        dimse_qr_source_payload.update(
            is_enabled=False, tls_enabled=True, tls_ca_cert_secret_name="qr-ca",
            tls_client_cert_secret_name="qr-client-cert",
        )
        result = validate_polling_source(dimse_qr_source_payload, "dimse_qr")
        assert {issue.rule for issue in result.issues} == {"active_requires_enabled", "mtls_pairing"}

    def test_full_mtls(self, dimse_qr_source_payload):
        dimse_qr_source_payload.update(
            tls_enabled=True, tls_ca_cert_secret_name="qr-ca",
            tls_client_cert_secret_name="qr-client-cert", tls_client_key_secret_name="qr-client-key",
        )
        assert validate_polling_source(dimse_qr_source_payload, "dimse_qr").ok

    def test_update_may_enable_tls_alone(self):
        assert validate_polling_source({"tls_enabled": True}, "dimse_qr", update=True).ok

    def test_unknown_source_type(self, dimse_qr_source_payload):
        with pytest.raises(ValueError):
            validate_polling_source(dimse_qr_source_payload, "dicomweb")
