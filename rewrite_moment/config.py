"""
Process configuration.

Read once at startup from the environment (.env supported) into an explicit
Settings object that is handed to adapter constructors. Nothing else in the
package reads credentials from os.environ.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_PRIORITY = ["veo", "kie", "replicate"]


def _secret(*names: str) -> str:
    """First non-empty env var among names, stripped of whitespace and a BOM."""
    for name in names:
        value = (os.environ.get(name) or "").replace("\ufeff", "").strip()
        if value:
            return value
    return ""


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _number(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class StorageSettings(BaseModel):
    """Cloudflare R2 (S3 API). Optional: adapters fall back to data URLs."""

    account_id: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    bucket_name: str = "assets"
    public_url: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.account_id and self.access_key_id and self.secret_access_key and self.public_url)


class Settings(BaseModel):
    # ── Credentials ──────────────────────────────────────────────────────
    google_api_key: str = ""
    kie_api_key: str = ""
    replicate_api_token: str = ""

    # ── Models ───────────────────────────────────────────────────────────
    compose_model: str = "gemini-2.0-flash-preview-image-generation"
    veo_model: str = "veo-3.0-fast-generate-001"
    kie_model: str = "veo-3.1-fast"
    replicate_model: str = "minimax"

    # ── Orchestration ────────────────────────────────────────────────────
    video_provider_priority: list[str] = Field(default_factory=lambda: list(DEFAULT_PRIORITY))
    compose_max_attempts: int = 3
    compose_retry_delay: float = 2.0
    submit_max_attempts: int = 2
    submit_retry_delay: float = 2.0
    compose_degrade_on_failure: bool = True
    fallback_on_moderation: bool = True

    # ── Client-side polling sugar ────────────────────────────────────────
    poll_interval: float = 5.0
    max_poll_attempts: int = 120

    # ── Request guard ────────────────────────────────────────────────────
    worker_shared_secret: str = ""
    environment: str = "development"

    storage: StorageSettings = Field(default_factory=StorageSettings)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()

        priority = [
            p.strip().lower()
            for p in os.environ.get("VIDEO_PROVIDER_PRIORITY", "").split(",")
            if p.strip()
        ] or list(DEFAULT_PRIORITY)

        defaults = cls()
        return cls(
            google_api_key=_secret("GOOGLE_API_KEY", "GEMINI_API_KEY"),
            kie_api_key=_secret("KIE_API_KEY"),
            replicate_api_token=_secret("REPLICATE_API_TOKEN"),
            compose_model=os.environ.get("COMPOSE_MODEL") or defaults.compose_model,
            veo_model=os.environ.get("VEO_MODEL") or defaults.veo_model,
            kie_model=os.environ.get("KIE_MODEL") or defaults.kie_model,
            replicate_model=os.environ.get("REPLICATE_MODEL") or defaults.replicate_model,
            video_provider_priority=priority,
            compose_max_attempts=max(1, int(_number("COMPOSE_MAX_ATTEMPTS", defaults.compose_max_attempts))),
            compose_retry_delay=_number("COMPOSE_RETRY_DELAY", defaults.compose_retry_delay),
            submit_max_attempts=max(1, int(_number("SUBMIT_MAX_ATTEMPTS", defaults.submit_max_attempts))),
            submit_retry_delay=_number("SUBMIT_RETRY_DELAY", defaults.submit_retry_delay),
            compose_degrade_on_failure=_flag("COMPOSE_DEGRADE_ON_FAILURE", defaults.compose_degrade_on_failure),
            fallback_on_moderation=_flag("FALLBACK_ON_MODERATION", defaults.fallback_on_moderation),
            poll_interval=_number("POLL_INTERVAL", defaults.poll_interval),
            max_poll_attempts=max(1, int(_number("MAX_POLL_ATTEMPTS", defaults.max_poll_attempts))),
            worker_shared_secret=_secret("WORKER_SHARED_SECRET"),
            environment=os.environ.get("ENVIRONMENT", "development"),
            storage=StorageSettings(
                account_id=os.environ.get("R2_ACCOUNT_ID", ""),
                access_key_id=os.environ.get("R2_ACCESS_KEY_ID", ""),
                secret_access_key=os.environ.get("R2_SECRET_ACCESS_KEY", ""),
                bucket_name=os.environ.get("R2_BUCKET_NAME", "assets"),
                public_url=os.environ.get("R2_PUBLIC_URL", ""),
            ),
        )

    def credential_for(self, provider: str) -> Optional[str]:
        return {
            "gemini": self.google_api_key,
            "veo": self.google_api_key,
            "kie": self.kie_api_key,
            "replicate": self.replicate_api_token,
        }.get(provider) or None
