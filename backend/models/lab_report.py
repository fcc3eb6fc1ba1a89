from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.database import Base


class LabReportRecord(Base):
    __tablename__ = "lab_reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    source_file_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Manual entry")
    test_date: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    dosage_mg_per_week: Mapped[float | None] = mapped_column(Float, nullable=True)
    protocol: Mapped[str] = mapped_column(Text, nullable=False, default="")
    supplements: Mapped[str] = mapped_column(Text, nullable=False, default="")
    symptoms: Mapped[str] = mapped_column(Text, nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sampling_timing: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")

    extraction_provider: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    extraction_model: Mapped[str] = mapped_column(String(100), nullable=False, default="manual-entry")
    extraction_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_baseline: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    markers = relationship(
        "MarkerValueRecord",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="MarkerValueRecord.position",
    )


class MarkerValueRecord(Base):
    __tablename__ = "marker_values"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    report_id: Mapped[str] = mapped_column(String(36), ForeignKey("lab_reports.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    marker: Mapped[str] = mapped_column(String(255), nullable=False)
    canonical_marker: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    reference_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    reference_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    abnormal: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    report = relationship("LabReportRecord", back_populates="markers")
