from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.database import Base


class AppSettingsRecord(Base):
    __tablename__ = "app_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    unit_system: Mapped[str] = mapped_column(String(2), nullable=False, default="eu")
    language: Mapped[str] = mapped_column(String(2), nullable=False, default="en")
    sampling_filter: Mapped[str] = mapped_column(String(10), nullable=False, default="all")
    enable_calculated_free_testosterone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    protocol_window_size: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    marker_alias_overrides: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
