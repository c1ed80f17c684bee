"""Environment configuration using Pydantic Settings."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early to ensure environment variables are set
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000"
    app_url: str = "http://localhost:3000"

    # Storage backend selector: local, s3 or supabase
    storage_type: str = "local"
    storage_local_path: str = "./uploads"

    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_endpoint: str | None = None
    s3_force_path_style: bool | None = None

    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    supabase_anon_key: str | None = None
    supabase_bucket: str = "attachments"

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse allowed origins as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]

    @property
    def attachments_base_url(self) -> str:
        """Base URL of the attachment retrieval endpoint."""
        return f"{self.app_url.rstrip('/')}/api/attachments"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
