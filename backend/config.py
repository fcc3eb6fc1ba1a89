from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = "sqlite:///./trt_lab_tracker.db"
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    allowed_origins: str = "http://localhost:5173"
    max_upload_size_mb: int = 20

    # External collaborators (PDF extraction proxy, AI analysis proxy)
    pdf_extraction_url: str = "http://localhost:3000/api/gemini/extract"
    ai_analysis_url: str | None = None
    external_timeout_seconds: float = 60.0

    default_unit_system: str = "eu"
    classifier_fuzzy_threshold: int = 85

    trend_window: int = 6
    trend_min_points: int = 3
    trend_slope_threshold: float = 0.03
    trend_volatility_threshold: float = 0.15

    dose_min_samples: int = 3
    dose_min_spread_mg: float = 20.0

    protocol_window_size: int = 2
    protocol_flat_threshold_pct: float = 2.0

    merge_suggestion_threshold: float = 0.82


settings = Settings()
