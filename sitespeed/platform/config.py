from pathlib import Path
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "SiteSpeed Scan"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = ["*"]

    # ── PageSpeed Insights ──────────────────────
    PSI_API_URL: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
    # Server-side fallback when neither the request nor the stored preferences carry a key
    PSI_API_KEY: Optional[str] = None
    PSI_REQUEST_TIMEOUT: float = 120.0

    # ── Scan scheduling ─────────────────────────
    SCAN_PACE_SECONDS: float = 3.0  # mandatory gap after every backend call
    SSE_HEARTBEAT_SECONDS: float = 30.0

    # ── Sitemap ─────────────────────────────────
    SITEMAP_FETCH_TIMEOUT: float = 30.0
    SITEMAP_MAX_DEPTH: int = 3

    # ── Preferences / logging ───────────────────
    PREFERENCES_FILE: str = str(Path.home() / ".sitespeed" / "preferences.json")
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
