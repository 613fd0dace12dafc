from functools import lru_cache
from typing import Any, Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _unquote(value: str) -> str:
    # Only one pair of outer quotes goes; secrets may contain +, = and /
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


class Settings(BaseSettings):
    APP_NAME: str = "PontoCarro API"
    APP_ENV: str = "production"
    APP_URL: str = "http://localhost:3001"
    FRONTEND_URL: str = "https://pontocarro.com"

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000,https://pontocarro.com"  # comma-separated list
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    JWT_SECRET_KEY: str
    JWT_REFRESH_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12
    RESET_TOKEN_TTL_MINUTES: int = 60

    # Image storage: "s3" for any S3-compatible bucket, "local" for MEDIA_ROOT
    IMAGE_STORAGE: Literal["s3", "local"] = "s3"
    MEDIA_ROOT: str = "uploads"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_S3_BUCKET_NAME: Optional[str] = None
    AWS_S3_REGION: str = "us-east-1"
    AWS_S3_ENDPOINT_URL: Optional[str] = None

    # CDN in front of the bucket, e.g. https://res.cloudinary.com/<cloud>/image/fetch
    IMAGE_CDN_BASE_URL: Optional[str] = None
    IMAGE_MAX_DIMENSION: int = 1920
    MAX_IMAGES_PER_VEHICLE: int = 10
    MAX_IMAGE_SIZE_MB: int = 10

    # Redis is optional; without it the forgot-password throttle is off
    REDIS_URL: Optional[str] = None
    FORGOT_PASSWORD_LIMIT_PER_HOUR: int = 5

    # Mail
    MAIL_FROM: str = ".CARRO <no-reply@pontocarro.com>"
    MAIL_RETRY_ATTEMPTS: int = 3
    MAIL_RETRY_DELAY_SECONDS: float = 1.0
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    RESEND_API_KEY: Optional[str] = None
    RESEND_FROM: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def map_env_names(cls, data: Any) -> Any:
        """Accept the short AWS variable names used by older deployments."""
        if isinstance(data, dict):
            result = dict(data)

            mappings = [
                ("AWS_ACCESS_KEY", "AWS_ACCESS_KEY_ID"),
                ("AWS_SECRET_KEY", "AWS_SECRET_ACCESS_KEY"),
                ("AWS_BUCKET_NAME", "AWS_S3_BUCKET_NAME"),
                ("REGION", "AWS_S3_REGION"),
            ]

            for env_name, internal_name in mappings:
                if internal_name in result or internal_name.lower() in result:
                    continue
                for key in [env_name, env_name.lower()]:
                    if key in data:
                        result[internal_name] = data[key]
                        break

            return result

        return data

    @model_validator(mode="after")
    def validate_required_fields(self):
        if self.IMAGE_STORAGE == "s3":
            required = [
                ("AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY"),
                ("AWS_SECRET_ACCESS_KEY", "AWS_SECRET_KEY"),
                ("AWS_S3_BUCKET_NAME", "AWS_BUCKET_NAME"),
            ]
            for name, short_name in required:
                if not getattr(self, name):
                    raise ValueError(f"{name} (or {short_name}) is required when IMAGE_STORAGE=s3")
                setattr(self, name, _unquote(getattr(self, name)))
            self.AWS_S3_REGION = _unquote(self.AWS_S3_REGION)

        if self.IMAGE_CDN_BASE_URL:
            self.IMAGE_CDN_BASE_URL = self.IMAGE_CDN_BASE_URL.rstrip("/")

        return self

    @property
    def cors_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.BACKEND_CORS_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def max_image_size_bytes(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
