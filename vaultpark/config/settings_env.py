from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Development
    DEV_MODE: bool = Field(default=True, description="Enable debug mode")

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./vaultpark.db", description="Database connection URL")
    ASYNC_DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./vaultpark.db", description="Async database URL")
    STORE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0, description="Upper bound for a single store call")
    STORE_MAX_RETRIES: int = Field(default=3, ge=1, description="Attempts for a conflicting or timed-out write")

    # FastAPI
    FASTAPI_HOST: str = Field(default="localhost", description="FastAPI host")
    FASTAPI_PORT: int = Field(default=8080, description="FastAPI port")

    # Access tokens
    TOKEN_ISSUER: str = Field(default="VAULTPARK", description="Issuer tag expected in the first token field")
    TOKEN_TTL_MILLIS: int = Field(default=120_000, gt=0, description="Token freshness window")

    # Capacity and billing
    CAPACITY_POLICY: Literal["clamp", "reject"] = Field(
        default="clamp", description="What an entry into a full lot does"
    )
    DEFAULT_MEMBERSHIP: str = Field(default="GOLD", description="Tier used when a driver has none")
    LOCAL_TIMEZONE: str = Field(default="UTC", description="Zone used for calendar days and hours")


# Create settings instance
settings = Settings()
