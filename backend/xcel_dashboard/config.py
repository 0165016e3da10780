"""Application configuration"""
from pydantic_settings import BaseSettings
from typing import Optional, Literal
from pathlib import Path


class Settings(BaseSettings):
    """Settings from environment. Every value has a local-development default."""

    DATABASE_URL: str = "sqlite:///./xcel_dashboard.db"

    AI_PROVIDER: Literal["openai", "azure", "none"] = "openai"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None  # OpenAI-compatible gateways (e.g. aimlapi)
    OPENAI_MODEL: str = "gpt-4o"

    AZURE_OPENAI_ENDPOINT: str = ""
    AZURE_OPENAI_KEY: str = ""
    AZURE_OPENAI_DEPLOYMENT: str = ""
    AZURE_OPENAI_API_VERSION: str = "2024-12-01-preview"

    AI_TIMEOUT_SECONDS: float = 30.0
    AI_MAX_RETRIES: int = 1

    UPLOAD_DIR: str = "./data/uploads"
    MAX_UPLOAD_MB: int = 10

    MAX_DISPLAYED_KPIS: int = 4
    MAX_DISPLAYED_CHARTS: int = 2
    PREVIEW_SAMPLE_ROWS: int = 5
    PREVIEW_TTL_MINUTES: int = 60
    MAX_PREVIEWS: int = 200
    TABLE_MAX_ROWS: int = 10

    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "http://localhost:3000"
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Xcel Dashboard"
    VERSION: str = "1.0.0"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def ai_enabled(self) -> bool:
        """True if an AI provider is configured with credentials."""
        if self.AI_PROVIDER == "azure":
            return bool(self.AZURE_OPENAI_ENDPOINT and self.AZURE_OPENAI_KEY)
        if self.AI_PROVIDER == "openai":
            return bool(self.OPENAI_API_KEY)
        return False

    @property
    def upload_path(self) -> Path:
        return Path(self.UPLOAD_DIR)

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024

    def ensure_upload_dir(self):
        """Create the upload directory if missing."""
        self.upload_path.mkdir(parents=True, exist_ok=True)

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
