from datetime import date, datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from backend.services.unit_conversion import AbnormalFlag, derive_abnormal_flag

SamplingTiming = Literal["unknown", "trough", "mid", "peak"]
ExtractionProvider = Literal["claude", "gemini", "fallback", "manual"]


def _new_id() -> str:
    return str(uuid4())


class MarkerValue(BaseModel):
    """One measurement inside a lab report.

    ``abnormal`` is always derived from value and reference range; any value
    passed in is overwritten during validation.
    """
    id: str = Field(default_factory=_new_id)
    marker: str = Field(description="Raw label as printed on the report")
    canonical_marker: str
    value: float
    unit: str = ""
    reference_min: float | None = None
    reference_max: float | None = None
    abnormal: AbnormalFlag = "unknown"
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    is_calculated: bool = False
    source: Literal["measured", "calculated"] = "measured"

    @model_validator(mode="after")
    def _derive_flags(self):
        self.abnormal = derive_abnormal_flag(self.value, self.reference_min, self.reference_max)
        self.source = "calculated" if self.is_calculated else "measured"
        return self

    def with_changes(self, **changes) -> "MarkerValue":
        # model_copy(update=...) skips validation, so rebuild to keep the abnormal flag in sync.
        return MarkerValue.model_validate({**self.model_dump(), **changes})


class ReportAnnotations(BaseModel):
    dosage_mg_per_week: float | None = Field(default=None, ge=0)
    protocol: str = ""
    supplements: str = ""
    symptoms: str = ""
    notes: str = ""
    sampling_timing: SamplingTiming = "unknown"


class ExtractionMeta(BaseModel):
    provider: ExtractionProvider = "manual"
    model: str = "manual-entry"
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    needs_review: bool = False


class LabReport(BaseModel):
    """A single lab draw with its measurements and user annotations."""
    id: str = Field(default_factory=_new_id)
    source_file_name: str = "Manual entry"
    test_date: date
    created_at: datetime = Field(default_factory=datetime.utcnow)
    markers: list[MarkerValue] = Field(default_factory=list)
    annotations: ReportAnnotations = Field(default_factory=ReportAnnotations)
    extraction: ExtractionMeta = Field(default_factory=ExtractionMeta)
    is_baseline: bool = False


class MarkerValueInput(BaseModel):
    """A marker row as entered by the user or returned by the extraction proxy."""
    marker: str = Field(min_length=1)
    value: float
    unit: str | None = None
    reference_min: float | None = None
    reference_max: float | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class LabReportCreate(BaseModel):
    source_file_name: str = "Manual entry"
    test_date: date
    markers: list[MarkerValueInput] = Field(default_factory=list)
    annotations: ReportAnnotations = Field(default_factory=ReportAnnotations)
    extraction: ExtractionMeta = Field(default_factory=ExtractionMeta)
    is_baseline: bool = False


class ExtractionDraft(BaseModel):
    """Response body of the PDF extraction proxy."""
    source_file_name: str
    test_date: date | None = None
    markers: list[MarkerValueInput] = Field(default_factory=list)
    extraction: ExtractionMeta


class AnnotationUpdate(BaseModel):
    dosage_mg_per_week: float | None = Field(default=None, ge=0)
    protocol: str | None = None
    supplements: str | None = None
    symptoms: str | None = None
    notes: str | None = None
    sampling_timing: SamplingTiming | None = None
    is_baseline: bool | None = None


class MarkerRenameRequest(BaseModel):
    source_marker: str = Field(min_length=1)
    target_marker: str = Field(min_length=1)


class ReportListItem(BaseModel):
    id: str
    source_file_name: str
    test_date: date
    created_at: datetime
    total_markers: int
    abnormal_markers: int
    dosage_mg_per_week: float | None
    sampling_timing: SamplingTiming
    is_baseline: bool
    needs_review: bool
