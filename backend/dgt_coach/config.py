"""
DGT Coach Backend: Application Configuration
==============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by the app factory, the Gemini service and the middleware.
When:  Loaded once at module import time.

A missing GEMINI_API_KEY does not stop the process from starting. It is
reported as a warning during startup and every upstream call then fails at
request time with an upstream error.
"""

from enum import Enum
from typing import List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class ResponseContract(str, Enum):
    """
    Which prompt/response contract the image-analysis mode speaks.

    JSON:         canonical contract; the model is asked for a strict JSON array.
    LEGACY_TAGS:  historical contract with paired [TAG]...[/TAG] markers, kept
                  for regression testing against old replies.
    """

    JSON = "json"
    LEGACY_TAGS = "legacy_tags"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes are grouped by concern for readability.
    """

    # ── Google Gemini ─────────────────────────────────────────────────────
    # Required for every upstream call; read once when GeminiService is built.
    # How to obtain: https://aistudio.google.com/app/apikey
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key used for every upstream call",
    )

    # The analysis prompts were tuned against the pro model; flash works but
    # is noticeably weaker on the traffic-law reasoning.
    gemini_model: str = Field(default="gemini-1.5-pro-latest")

    # ── Response Contract ─────────────────────────────────────────────────
    response_contract: ResponseContract = Field(default=ResponseContract.JSON)

    @field_validator("response_contract", mode="before")
    @classmethod
    def normalize_contract(cls, v):
        """Accepts `JSON`, `Legacy_Tags` and friends from the environment."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    # ── Inbound HTTP ──────────────────────────────────────────────────────
    # Base64 photos from phone cameras easily reach 10-20MB
    max_body_size: int = Field(default=52_428_800, ge=1_048_576, le=209_715_200)

    # Comma-separated list; "*" lets any origin call the API
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        validation_alias=AliasChoices("port", "backend_port"),
    )

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Retry Configuration ───────────────────────────────────────────────
    # Tenacity settings for Gemini calls. The default of one attempt keeps
    # the relay at a single upstream call per request; only 503/504 replies
    # are ever retried when this is raised.
    retry_max_attempts: int = Field(default=1, ge=1, le=10)
    retry_min_wait: int = Field(default=2, ge=1, le=30)
    retry_max_wait: int = Field(default=10, ge=5, le=120)

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key) and self.gemini_api_key != "your_gemini_api_key_here"

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        How:   Collects every problem and raises one ValueError with guidance.
        """
        errors = []
        if not self.has_api_key:
            errors.append(
                "GEMINI_API_KEY is not set. "
                "Get a free key at https://aistudio.google.com/app/apikey"
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Singleton instance, imported throughout the application
settings = Settings()
