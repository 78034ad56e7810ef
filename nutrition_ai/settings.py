import logging
import os
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

# Load .env once at startup
load_dotenv()


class Settings(BaseModel):
    gemini_api_key: str | None = Field(alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    gemini_vision_model: str = Field(
        default="gemini-2.5-flash", alias="GEMINI_VISION_MODEL"
    )
    gemini_request_timeout_seconds: float = Field(
        default=20.0, alias="GEMINI_REQUEST_TIMEOUT_SECONDS"
    )
    gemini_max_retries: int = Field(default=2, ge=0, alias="GEMINI_MAX_RETRIES")
    gemini_retry_delay_seconds: float = Field(
        default=1.0, ge=0, alias="GEMINI_RETRY_DELAY_SECONDS"
    )
    analysis_cache_size: int = Field(default=256, ge=0, alias="ANALYSIS_CACHE_SIZE")
    max_image_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_IMAGE_BYTES")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value):
        name = str(value or "").strip().upper()
        # getLevelName returns an int only for registered level names
        return name if isinstance(logging.getLevelName(name), int) else "INFO"

    @classmethod
    def from_env(cls):
        data = {
            "GEMINI_API_KEY": os.getenv("GEMINI_API_KEY"),
            "GEMINI_MODEL": os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            "GEMINI_VISION_MODEL": os.getenv("GEMINI_VISION_MODEL", "gemini-2.5-flash"),
            "GEMINI_REQUEST_TIMEOUT_SECONDS": os.getenv("GEMINI_REQUEST_TIMEOUT_SECONDS", "20"),
            "GEMINI_MAX_RETRIES": os.getenv("GEMINI_MAX_RETRIES", "2"),
            "GEMINI_RETRY_DELAY_SECONDS": os.getenv("GEMINI_RETRY_DELAY_SECONDS", "1"),
            "ANALYSIS_CACHE_SIZE": os.getenv("ANALYSIS_CACHE_SIZE", "256"),
            "MAX_IMAGE_BYTES": os.getenv("MAX_IMAGE_BYTES", str(10 * 1024 * 1024)),
            "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        }
        return cls.model_validate(data)


settings = Settings.from_env()
