# routing_rules/tests/conftest.py

import pytest
from typing import Any, Dict

from routing_rules.core.config import settings


@pytest.fixture
def rule_payload() -> Dict[str, Any]:
    """Smallest rule create payload that passes every check."""
    return {
        "ruleset_id": 1,
        "name": "CT to archive",
        "priority": 10,
        "is_active": True,
        "match_criteria": [{"tag": "Modality", "op": "eq", "value": "CT"}],
        "destination_ids": [3],
    }


@pytest.fixture
def cstore_payload() -> Dict[str, Any]:
    return {
        "backend_type": "cstore",
        "name": "Main PACS",
        "remote_ae_title": "PACS_SCP",
        "remote_host": "pacs.example.org",
        "remote_port": 104,
    }


@pytest.fixture
def google_healthcare_source_payload() -> Dict[str, Any]:
    return {
        "name": "GHC Store",
        "gcp_project_id": "imaging-prod",
        "gcp_location": "us-central1",
        "gcp_dataset_id": "radiology",
        "gcp_dicom_store_id": "incoming",
    }


@pytest.fixture
def dimse_qr_source_payload() -> Dict[str, Any]:
    return {
        "name": "Orthanc QR",
        "remote_ae_title": "ORTHANC",
        "remote_host": "10.0.0.5",
        "remote_port": 4242,
    }


@pytest.fixture
def strict_tag_keywords(monkeypatch):
    """Require keyword tags to exist in the DICOM dictionary for the duration of a test."""
    monkeypatch.setattr(settings, "STRICT_TAG_KEYWORDS", True)
    yield
