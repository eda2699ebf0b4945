from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


# ──────────────────────────────────────────────
# Settings (from environment variables / .env)
# ──────────────────────────────────────────────
class Settings(BaseSettings):
    """Service settings loaded from environment variables or .env file."""

    # Model artifacts in the object store (no defaults – must be provided)
    model_bucket: str
    model_prefix: str
    params_file: str
    symbol_file: str
    labels_file: str

    # S3-compatible endpoint override (e.g. MinIO for local runs)
    aws_endpoint_url: str | None = None

    # Local ephemeral cache for downloaded artifacts
    artifact_dir: Path = Path("/tmp/model")

    # Prediction settings
    top_k: int = 5
    fetch_timeout: float = 10.0
    max_image_bytes: int = 10 * 1024 * 1024  # 10 MB

    # Collapse every non-success outcome to ``200 {}``
    legacy_empty_responses: bool = False

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    def object_key(self, name: str) -> str:
        """Return the full object-store key for artifact *name*."""
        prefix = self.model_prefix.strip("/")
        return f"{prefix}/{name}" if prefix else name


@lru_cache
def get_settings() -> Settings:
    """Build the settings once per process."""
    return Settings()


# ──────────────────────────────────────────────
# Model input contract
#   (batch, channels, height, width) – RGB, channels first
# ──────────────────────────────────────────────
IMAGE_SIZE: tuple[int, int] = (224, 224)
INPUT_SHAPE: tuple[int, int, int, int] = (1, 3, *IMAGE_SIZE)
