import logging
from datetime import datetime, timezone
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import settings
from backend.core.logging import setup_logging
from backend.database import engine
from backend.models import app_settings, biomarker, lab_report  # noqa: F401
from backend.routers import analysis, biomarkers, dose, reports, trends
from backend.routers import settings as settings_router
from backend.seed.biomarker_seed import seed_biomarkers

setup_logging()

app = FastAPI(title="TRT Lab Tracker API", version="0.1.0")
logger = logging.getLogger(__name__)

allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _assert_database_at_head() -> None:
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    script = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script.get_heads())

    with engine.connect() as connection:
        context = MigrationContext.configure(connection)
        current_heads = set(context.get_current_heads())

    if current_heads != expected_heads:
        raise RuntimeError(
            "Database schema is not at Alembic head. "
            "Run `alembic upgrade head` before starting the API. "
            f"Current revisions: {sorted(current_heads) or ['<none>']}, "
            f"expected: {sorted(expected_heads)}."
        )


@app.on_event("startup")
def startup_event():
    _assert_database_at_head()
    seed_biomarkers()
    logger.info("TRT Lab Tracker API started (env=%s)", settings.app_env)


@app.get("/")
def root():
    return {"statusCode": 200, "message": "Success", "data": {"status": "ok", "service": "trt-lab-tracker"}}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "trt-lab-tracker",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


ERROR_NAMES = {
    400: "BadRequest",
    404: "NotFound",
    422: "ValidationError",
    502: "BadGateway",
    503: "ServiceUnavailable",
}


def _error_name(status_code: int) -> str:
    if status_code in ERROR_NAMES:
        return ERROR_NAMES[status_code]
    return "InternalServerError" if status_code >= 500 else "HTTPError"


def _error_response(status_code: int, message: str, error: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"statusCode": status_code, "message": message, "error": error, **extra},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    message = str(exc.detail) if exc.detail else "Request failed"
    return _error_response(exc.status_code, message, _error_name(exc.status_code))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    return _error_response(422, "Invalid request payload", "ValidationError", details={"errors": exc.errors()})


@app.exception_handler(Exception)
async def unhandled_exception_handler(_: Request, exc: Exception):
    logger.exception("Unhandled server error: %s", exc)
    return _error_response(500, str(exc) or "An unexpected error occurred", "InternalServerError")


for module in (reports, biomarkers, trends, dose, settings_router, analysis):
    app.include_router(module.router)
