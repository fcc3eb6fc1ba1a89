from datetime import date

from pydantic import BaseModel

from backend.services.unit_conversion import AbnormalFlag


class BiomarkerSummaryItem(BaseModel):
    biomarker: str
    category: str
    latest_value: float
    unit: str
    reference_min: float | None
    reference_max: float | None
    abnormal: AbnormalFlag
    report_date: date
    points: int


class BiomarkerCategoryCount(BaseModel):
    category: str
    total: int
    flagged: int
    normal: int
