from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    REDIS_URL: str
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000
    BASE_URL: str = "http://localhost:8000"
    ALLOWED_ORIGINS: List[str] = []

    # Short codes
    CODE_LENGTH: int = 7
    MAX_CODE_RETRIES: int = 5

    # Cache
    CACHE_TTL_SECONDS: int = 300
    NEGATIVE_CACHE_TTL_SECONDS: int = 30

    # Pools
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: float = 5.0
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 0.5
    HTTP_TIMEOUT: float = 5.0

    # SSO
    SSO_HOST: str = "http://localhost:9000"
    CLIENT_ID: str = ""
    CLIENT_SECRET: str = ""
    REDIRECT_URI: str = ""
    AUTH_CACHE_TTL_SECONDS: int = 30

    VERIFY_TARGET_REACHABLE: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
