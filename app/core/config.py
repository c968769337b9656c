from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    sql_echo: bool = Field(False, alias="SQL_ECHO")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(24 * 60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    cors_origins: str = Field("*", alias="CORS_ORIGINS")

    rate_limit_max: int = Field(100, alias="RATE_LIMIT_MAX")
    rate_limit_window_seconds: int = Field(60, alias="RATE_LIMIT_WINDOW_SECONDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    seed_admin_username: Optional[str] = Field(None, alias="SEED_ADMIN_USERNAME")
    seed_admin_password: Optional[str] = Field(None, alias="SEED_ADMIN_PASSWORD")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
