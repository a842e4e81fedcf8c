from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "API Integracao CETTPRO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./api_integracao.db"
    DATABASE_ECHO: bool = False

    # CETTPRO partner API
    CETTPRO_BASE_URL: str = "https://api.cettpro.com.br/"
    CETTPRO_EMAIL: str = ""
    CETTPRO_PASSWORD: str = ""
    CETTPRO_TIMEOUT_SECONDS: int = 30
    CETTPRO_TOKEN_EXPIRATION_BUFFER: int = 300  # seconds before actual expiry
    CETTPRO_RATE_LIMIT_FALLBACK_SECONDS: int = 60

    # Sync settings
    SYNC_MAX_RETRY_ATTEMPTS: int = 3
    SYNC_RETRY_BASE_DELAY: float = 1.0
    SYNC_RETRY_MAX_DELAY: float = 60.0

    @field_validator("CETTPRO_BASE_URL")
    @classmethod
    def validate_base_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("CETTPRO_BASE_URL must be an http(s) URL")
        return v if v.endswith("/") else v + "/"

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    @field_validator("SYNC_MAX_RETRY_ATTEMPTS", "CETTPRO_TIMEOUT_SECONDS")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
