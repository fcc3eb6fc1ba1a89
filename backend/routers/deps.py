from fastapi import Depends, Query
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.schemas.lab_report import LabReport
from backend.schemas.settings import AppSettings, SamplingFilter
from backend.services.report_store import analysis_reports, load_settings


def get_app_settings(db: Session = Depends(get_db)) -> AppSettings:
    return load_settings(db)


def get_analysis_reports(
    sampling_filter: SamplingFilter | None = Query(default=None),
    db: Session = Depends(get_db),
    app_settings: AppSettings = Depends(get_app_settings),
) -> list[LabReport]:
    """Reports ready for analytics: calculated markers added, sampling filter applied."""
    if sampling_filter is not None:
        app_settings = app_settings.model_copy(update={"sampling_filter": sampling_filter})
    return analysis_reports(db, app_settings)
