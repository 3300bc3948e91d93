from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    API_PORT: int = 8000
    # VideoDB API URL - only set for dev override, SDK uses prod by default
    VIDEODB_API_URL: Optional[str] = None
    API_KEY: Optional[str] = None
    # When set (e.g. production), the tunnel is skipped and this URL is advertised
    WEBHOOK_URL: Optional[str] = None
    TUNNEL_ENABLED: bool = True
    RUNTIME_CONFIG_PATH: str = "runtime.json"

    DATABASE_URL: str = "sqlite:///./async_recorder.db"

    # Client session tokens handed to the capture client
    SESSION_TOKEN_TTL: int = 86400
    TOKEN_REFRESH_BUFFER: int = 300

    RECORDINGS_PAGE_SIZE: int = 20
    DRAIN_ENRICHMENT_ON_SHUTDOWN: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

settings = Settings()
