from typing import Literal

from pydantic import BaseModel, Field

from backend.schemas.lab_report import LabReport

APP_SCHEMA_VERSION = 2
APP_STORAGE_KEY = "trt_lab_tracker_v1"

SamplingFilter = Literal["all", "trough", "peak"]


class AppSettings(BaseModel):
    unit_system: Literal["eu", "us"] = "eu"
    language: Literal["en", "nl"] = "en"
    sampling_filter: SamplingFilter = "all"
    enable_calculated_free_testosterone: bool = False
    protocol_window_size: int = Field(default=2, ge=1, le=4)
    marker_alias_overrides: dict[str, str] = Field(default_factory=dict)


class AppSettingsUpdate(BaseModel):
    unit_system: Literal["eu", "us"] | None = None
    language: Literal["en", "nl"] | None = None
    sampling_filter: SamplingFilter | None = None
    enable_calculated_free_testosterone: bool | None = None
    protocol_window_size: int | None = Field(default=None, ge=1, le=4)
    marker_alias_overrides: dict[str, str] | None = None


class StoredAppData(BaseModel):
    """Full state dump: the only durable data are reports and settings."""
    schema_version: int = APP_SCHEMA_VERSION
    storage_key: str = APP_STORAGE_KEY
    reports: list[LabReport] = Field(default_factory=list)
    settings: AppSettings = Field(default_factory=AppSettings)


class ImportRequest(BaseModel):
    data: dict
    mode: Literal["replace", "append"] = "append"
