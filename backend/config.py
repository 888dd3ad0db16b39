from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()
_PROJECT_ROOT = _BACKEND_DIR.parent.resolve()
DATA_DIR = _BACKEND_DIR / "data" / "crisis_data"


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "RefugeeWatch AI Backend"
    APP_VERSION: str = "2.0.0"
    APP_DESCRIPTION: str = (
        "Humanitarian crisis monitoring: conflict, displacement and country data "
        "with AI-assisted analysis and response planning"
    )
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    LOG_FILE: Optional[str] = None

    # CORS
    CORS_ORIGIN: Optional[str] = None  # Single extra origin (e.g. deployed dashboard)
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
        "http://localhost:5173",
        "http://localhost:4173",
    ]

    # GDELT
    GDELT_DOC_API_URL: str = "https://api.gdeltproject.org/api/v2"
    GDELT_EVENTS_API_URL: str = "https://api.gdeltproject.org/api/v2/events/query"
    GDELT_TIMEOUT_SECONDS: float = 15.0
    GDELT_ARTICLE_DAYS: int = 7
    GDELT_HOTSPOT_DAYS: int = 3

    # REST Countries
    REST_COUNTRIES_API_URL: str = "https://restcountries.com/v3.1"
    REST_COUNTRIES_TIMEOUT_SECONDS: float = 15.0
    # /all rejects requests without a field list (max 10 fields). cca2 and
    # the flag emoji are derived from cca3 through the country catalog.
    REST_COUNTRIES_FIELDS: str = (
        "name,cca3,capital,region,subregion,population,latlng,languages,currencies,borders"
    )
    COUNTRY_REFERENCE_SYNC_ENABLED: bool = True

    # UNHCR
    UNHCR_API_URL: str = "https://api.unhcr.org/population/v1"
    UNHCR_TIMEOUT_SECONDS: float = 30.0

    # Cache windows (seconds)
    COUNTRY_CACHE_TTL_SECONDS: int = 12 * 3600
    REFUGEE_CACHE_TTL_SECONDS: int = 6 * 3600
    CONFLICT_CACHE_TTL_SECONDS: int = 3600
    STALE_FALLBACK_MAX_AGE_SECONDS: int = 6 * 3600
    AI_CACHE_TTL_SECONDS: int = 3600

    # Hugging Face router (OpenAI-compatible chat completions)
    HUGGINGFACE_API_KEY: Optional[str] = None
    HUGGINGFACE_BASE_URL: str = "https://router.huggingface.co/v1"
    HUGGINGFACE_MODEL: str = "deepseek-ai/DeepSeek-R1"
    HUGGINGFACE_BACKUP_MODELS: list[str] = [
        "Qwen/Qwen2.5-7B-Instruct",
        "meta-llama/Llama-3.3-70B-Instruct",
    ]
    HUGGINGFACE_TIMEOUT_SECONDS: float = 60.0
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 2.0

    # Background monitoring
    ENABLE_BACKGROUND_MONITORING: bool = False
    MONITOR_INTERVAL_SECONDS: int = 300
    MONITORED_COUNTRIES: list[str] = ["Sudan", "Myanmar", "Syria", "Yemen", "Afghanistan"]
    CONFLICT_HOTSPOT_COUNTRIES: list[str] = [
        "Sudan",
        "Myanmar",
        "Syria",
        "Yemen",
        "Afghanistan",
        "Ukraine",
        "Somalia",
        "Ethiopia",
        "Democratic Republic of the Congo",
        "Mali",
        "Burkina Faso",
        "Haiti",
    ]
    COUNTRY_FETCH_DELAY_SECONDS: float = 0.5

    # WebSocket
    WS_HEARTBEAT_SECONDS: float = 30.0

    @field_validator(
        "GDELT_DOC_API_URL",
        "GDELT_EVENTS_API_URL",
        "REST_COUNTRIES_API_URL",
        "UNHCR_API_URL",
        "HUGGINGFACE_BASE_URL",
        mode="before",
    )
    @classmethod
    def _normalize_url_field(cls, value: object) -> object:
        """Trim accidental quotes/whitespace and trailing slashes from URL env vars."""
        if value is None:
            return value
        return str(value).strip().strip('"').strip("'").rstrip("/")

    @field_validator("HUGGINGFACE_API_KEY", "CORS_ORIGIN", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def allowed_origins(self) -> list[str]:
        origins = list(self.CORS_ORIGINS)
        if self.CORS_ORIGIN and self.CORS_ORIGIN not in origins:
            origins.append(self.CORS_ORIGIN)
        return origins

    class Config:
        # Load project-root .env first (common workflow), then backend/.env
        # as an override if present.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
