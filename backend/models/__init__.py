from backend.models.app_settings import AppSettingsRecord
from backend.models.biomarker import BiomarkerReference
from backend.models.lab_report import LabReportRecord, MarkerValueRecord

__all__ = [
    "AppSettingsRecord",
    "BiomarkerReference",
    "LabReportRecord",
    "MarkerValueRecord",
]
