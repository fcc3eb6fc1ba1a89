from collections.abc import Generator
from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.database import Base, get_db
from backend.main import app
from backend.schemas.lab_report import LabReport, MarkerValue, ReportAnnotations


@pytest.fixture()
def db_session() -> Generator:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Tests use an in-memory DB via dependency override; skip app startup side effects.
    original_startup = list(app.router.on_startup)
    app.router.on_startup.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.router.on_startup[:] = original_startup
    app.dependency_overrides.clear()


@pytest.fixture()
def make_report():
    """Build an in-memory LabReport from ``{canonical: (value, unit)}`` pairs."""
    counter = {"n": 0}

    def _make(
        markers: dict,
        test_date: date | None = None,
        dose: float | None = None,
        sampling_timing: str = "unknown",
        report_id: str | None = None,
    ) -> LabReport:
        counter["n"] += 1
        test_date = test_date or date(2024, 1, 1) + timedelta(days=30 * counter["n"])
        rows = []
        for name, entry in markers.items():
            value, unit = entry[0], entry[1]
            ref_min, ref_max = (entry[2], entry[3]) if len(entry) == 4 else (None, None)
            rows.append(
                MarkerValue(
                    marker=name,
                    canonical_marker=name,
                    value=value,
                    unit=unit,
                    reference_min=ref_min,
                    reference_max=ref_max,
                )
            )
        return LabReport(
            id=report_id or f"r{counter['n']}",
            test_date=test_date,
            created_at=datetime(2024, 1, 1) + timedelta(minutes=counter["n"]),
            markers=rows,
            annotations=ReportAnnotations(dosage_mg_per_week=dose, sampling_timing=sampling_timing),
        )

    return _make
