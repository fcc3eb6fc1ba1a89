from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from backend.schemas.lab_report import SamplingTiming
from backend.services.unit_conversion import AbnormalFlag

TrendDirection = Literal["rising", "falling", "stable", "volatile", "insufficient"]
Confidence = Literal["high", "medium", "low"]


class PointContext(BaseModel):
    dosage_mg_per_week: float | None = None
    protocol: str = ""
    supplements: str = ""
    symptoms: str = ""
    notes: str = ""
    sampling_timing: SamplingTiming = "unknown"


class MarkerSeriesPoint(BaseModel):
    key: str
    date: date
    report_id: str
    created_at: datetime
    value: float
    unit: str
    reference_min: float | None = None
    reference_max: float | None = None
    abnormal: AbnormalFlag
    is_calculated: bool = False
    context: PointContext


class MarkerTrendSummary(BaseModel):
    marker: str
    direction: TrendDirection
    slope: float | None = None
    std_dev: float | None = None
    mean: float | None = None
    n_points: int = 0
    explanation: str


class ExcludedDosePoint(BaseModel):
    report_id: str
    date: date
    dose_mg_per_week: float | None = None
    value: float | None = None
    unit: str | None = None
    reason: str


class DoseScenario(BaseModel):
    dose_mg_per_week: float
    predicted_value: float


class DoseEvidence(BaseModel):
    citation: str
    study_type: str
    relevance: str
    quality: Literal["high", "medium", "low"]


class DosePrior(BaseModel):
    """Literature-derived dose slope. Informational only, never fitted to user data."""
    marker: str
    unit_system: Literal["eu", "us"]
    unit: str
    slope_per_mg: float
    sigma: float
    dose_range_min: float
    dose_range_max: float
    evidence: list[DoseEvidence] = Field(default_factory=list)
    anchor_dose: float | None = None
    anchor_value: float | None = None
    intercept: float | None = None


class DosePrediction(BaseModel):
    marker: str
    unit: str | None = None
    unit_system: Literal["eu", "us"]
    status: Literal["clear", "unclear", "insufficient"]
    reason: str
    estimate_source: Literal["user_fit", "literature_prior", "none"]
    model_type: Literal["linear", "theil-sen"] | None = None
    sample_count: int = 0
    slope: float | None = None
    intercept: float | None = None
    r_squared: float | None = None
    correlation_r: float | None = None
    confidence: Confidence = "low"
    current_dose: float | None = None
    current_estimate: float | None = None
    suggested_dose: float | None = None
    suggested_estimate: float | None = None
    scenarios: list[DoseScenario] = Field(default_factory=list)
    excluded_points: list[ExcludedDosePoint] = Field(default_factory=list)
    used_report_dates: list[date] = Field(default_factory=list)
    sampling_mode: Literal["trough", "all"] = "all"
    sampling_warning: str | None = None
    prior: DosePrior | None = None


class DoseCorrelationInsight(BaseModel):
    marker: str
    r: float
    n: int


class DosePhaseBlock(BaseModel):
    id: str
    from_key: str
    to_key: str
    dosage_mg_per_week: float | None = None
    protocol: str = ""


class ProtocolImpactMarkerRow(BaseModel):
    marker: str
    unit: str
    before_avg: float | None = None
    after_avg: float | None = None
    delta_abs: float | None = None
    delta_pct: float | None = None
    before_count: int
    after_count: int
    trend: Literal["up", "down", "flat", "insufficient"]
    confidence: Confidence
    confidence_reason: str


class ProtocolImpactDoseEvent(BaseModel):
    id: str
    from_dose: float | None = None
    to_dose: float | None = None
    change_date: date
    before_report_ids: list[str] = Field(default_factory=list)
    after_report_ids: list[str] = Field(default_factory=list)
    before_count: int
    after_count: int
    rows: list[ProtocolImpactMarkerRow] = Field(default_factory=list)
    top_impacts: list[ProtocolImpactMarkerRow] = Field(default_factory=list)


class TrtStabilityResult(BaseModel):
    score: int | None = None
    components: dict[str, float] = Field(default_factory=dict)
    variation: dict[str, float] = Field(default_factory=dict)


class TrtStabilityPoint(BaseModel):
    key: str
    date: date
    report_id: str
    score: int


class MarkerMergeSuggestion(BaseModel):
    source_canonical: str
    target_canonical: str
    score: float


class MergeSuggestionRequest(BaseModel):
    incoming: list[str]
    existing: list[str] | None = None
