# routing_rules/core/config.py
from typing import Optional, Tuple

from pydantic import field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

    PROJECT_NAME: str = "DICOM Routing Rules"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: Optional[str] = None

    # --- Rule Limits ---
    RULE_NAME_MAX_LENGTH: int = 100

    # --- Rule Wizard ---
    WIZARD_PRIORITY_MIN: int = 1
    WIZARD_PRIORITY_MAX: int = 1000
    WIZARD_DEFAULT_PRIORITY: int = 100

    # --- Tag Handling ---
    # Keywords are structurally valid without a dictionary hit unless this is on
    STRICT_TAG_KEYWORDS: bool = False

    # --- Source Identifiers ---
    REJECT_GENERATED_SOURCE_IDS: bool = True
    GENERATED_SOURCE_ID_PREFIXES: Tuple[str, ...] = ("dimse_listener-id-", "dicomweb_source-id-")

    @field_validator("LOG_LEVEL", mode='before')
    @classmethod
    def normalize_log_level(cls, v: Optional[str]) -> str:
        if not v:
            return "INFO"
        return str(v).strip().upper()

    @field_validator("WIZARD_DEFAULT_PRIORITY")
    @classmethod
    def default_priority_in_range(cls, v: int, info: ValidationInfo) -> int:
        low = info.data.get("WIZARD_PRIORITY_MIN", 1)
        high = info.data.get("WIZARD_PRIORITY_MAX", 1000)
        if not (low <= v <= high):
            raise ValueError(f"WIZARD_DEFAULT_PRIORITY must be between {low} and {high}")
        return v


settings = Settings()
