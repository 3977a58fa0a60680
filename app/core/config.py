from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'till_user'
    POSTGRES_PASSWORD: str = 'till_pass'
    POSTGRES_DB: str = 'till_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432

    # Full URL override (e.g. sqlite:///./till.db for local runs)
    DATABASE_URL: Optional[str] = None

    # Store calls are bounded by this timeout (statement, lock and pool waits)
    STORE_TIMEOUT_SECONDS: float = 5.0
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # JWT settings (tokens are issued by the identity service)
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Display only; all amounts are stored in minor units
    CURRENCY_CODE: str = 'BRL'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("STORE_TIMEOUT_SECONDS")
    @classmethod
    def validate_store_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("STORE_TIMEOUT_SECONDS must be positive")
        return v

settings = Settings()
