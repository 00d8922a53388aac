"""
Application configuration and settings.
"""

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # External collaborators
    storage_backend: str = "local"  # "local" or "http"
    storage_url: str = "http://localhost:9100"
    storage_public_url: str = "http://localhost:8802/files"
    storage_api_key: str | None = None
    inference_url: str = "http://localhost:9200"
    speech_url: str = "http://localhost:9300"
    whisper_url: str = "http://localhost:9000"
    whisper_language: str = "en"
    entitlements_backend: str = "static"  # "static" or "http"
    entitlements_url: str = "http://localhost:9400"
    distribution_url: str = "http://localhost:9500"
    anthropic_api_key: str | None = None
    script_model: str = "claude-sonnet-4-5"
    script_max_words: int = 120
    llm_timeout: int = 300
    http_timeout: float = 60.0

    # Authorization
    elevated_tiers: list[str] = ["pro", "business", "enterprise"]

    # Paths
    uploads_dir: Path = Path("/data/uploads")
    work_dir: Path = Path("/data/work")
    archive_dir: Path = Path("/data/archive")
    config_dir: Path = Path("/app/config")

    # Pipeline behaviour
    cleanup_artifacts: bool = True  # Disable to keep intermediates for debugging
    ffmpeg_timeout: int = 900
    preview_folder: str = "previews"
    output_folder: str = "outputs"

    # Real-time sessions
    session_ttl_seconds: int = 3600
    subscriber_queue_size: int = 100
    heartbeat_interval: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"

    # Per-module log levels (optional overrides)
    log_level_executor: str | None = None
    log_level_broadcaster: str | None = None
    log_level_fanout: str | None = None
    log_level_media: str | None = None
    log_level_storage: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def _load_yaml(path: Path) -> dict:
    """Read a YAML file, returning an empty dict for empty documents."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_entitlements_config(settings: Settings | None = None) -> dict:
    """
    Load static user tiers from config/entitlements.yaml.

    Used by StaticEntitlementProvider in development deployments where
    no entitlement service is available.

    Args:
        settings: Optional settings instance

    Returns:
        Mapping with "users" (user_id -> tier) and optional "default_tier"
    """
    if settings is None:
        settings = get_settings()

    path = settings.config_dir / "entitlements.yaml"
    if not path.exists():
        return {"users": {}}
    return _load_yaml(path)


def load_stage_defaults(settings: Settings | None = None) -> dict:
    """
    Load default stage parameters from config/stages.yaml.

    Keys are stage option names (autoCrop, privacyBlur, ...), values are
    parameter dicts merged under the request-supplied parameters.

    Args:
        settings: Optional settings instance

    Returns:
        Mapping of option name -> default parameters
    """
    if settings is None:
        settings = get_settings()

    path = settings.config_dir / "stages.yaml"
    if not path.exists():
        return {}
    return _load_yaml(path)
