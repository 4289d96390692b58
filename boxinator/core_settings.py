from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # sql | rest | memory (memory is for tests and local development)
    STORAGE_BACKEND: str = "sql"

    DATABASE_URL: Optional[str] = None
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "boxinator"
    POSTGRES_USER: str = "boxinator"
    POSTGRES_PASSWORD: str = "boxinator"
    SQL_ECHO: bool = False

    # PostgREST-style document API (e.g. Supabase)
    REST_API_URL: Optional[str] = None
    REST_API_KEY: Optional[str] = None
    REST_TIMEOUT: float = 10.0

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 60 * 24
    BCRYPT_ROUNDS: int = 12
    TWO_FA_SERVICE_NAME: str = "Boxinator"
    TWO_FA_ISSUER: str = "Boxinator Inc."

    AUTH_RATE_LIMIT_MAX: int = 5
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60

    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    FROM_EMAIL: str = "no-reply@boxinator.com"
    FRONTEND_URL: str = "http://localhost:3000"

    ADMIN_EMAIL: str = "admin@boxinator.com"
    ADMIN_PASSWORD: Optional[str] = None
    DEMO_USER_EMAIL: str = "user@boxinator.com"
    DEMO_USER_PASSWORD: Optional[str] = None
    SEED_ON_STARTUP: bool = False

    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # JSON list in the environment, e.g. CORS_ORIGINS='["https://boxinator.app"]'
    CORS_ORIGINS: list[str] = ["*"]

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
