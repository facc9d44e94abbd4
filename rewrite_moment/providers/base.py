"""
Adapter base classes and the shared vendor HTTP helper.

An adapter is a protocol translator: it turns a ProviderCall into one vendor
request and a vendor response into a JobHandle / JobStatus. Adapters never
retry; the orchestrator owns retry and fallback.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from .. import metrics
from ..errors import (
    AuthError,
    ModerationRejected,
    ProviderError,
    TransientError,
    ValidationError,
)
from ..models import FailureKind, JobHandle, JobState, JobStatus, ProviderCall, ProviderId

logger = logging.getLogger(__name__)

MODERATION_MARKERS = (
    "safety",
    "moderation",
    "content policy",
    "nsfw",
    "prohibited",
    "sensitive",
    "violat",
    "blocked",
)


def looks_like_moderation(text: Optional[str]) -> bool:
    if not text:
        return False
    lower = text.lower()
    return any(marker in lower for marker in MODERATION_MARKERS)


# Google answers a bad or revoked key with 400 INVALID_ARGUMENT, not 401
AUTH_MARKERS = (
    "api_key_invalid",
    "api key not valid",
    "api_key_expired",
    "api key expired",
    "permission_denied",
    "unauthenticated",
)


def looks_like_auth_failure(text: Optional[str]) -> bool:
    if not text:
        return False
    lower = text.lower()
    return any(marker in lower for marker in AUTH_MARKERS)


def classify_http_error(provider: str, status_code: int, body: str = "", message: str = "") -> ProviderError:
    """Map a vendor error status onto the shared taxonomy."""
    hint = message or body
    if status_code in (401, 403) or (status_code == 400 and looks_like_auth_failure(f"{message} {body}")):
        return AuthError(
            f"{provider} rejected the credentials",
            provider=provider, status_code=status_code, body=body,
        )
    if status_code in (408, 429) or status_code >= 500:
        return TransientError(
            f"{provider} is unavailable",
            provider=provider, status_code=status_code, body=body,
        )
    if looks_like_moderation(hint):
        return ModerationRejected(
            f"{provider} safety filter rejected the request",
            provider=provider, status_code=status_code, body=body,
        )
    return ValidationError(
        f"{provider} rejected the request",
        provider=provider, status_code=status_code, body=body,
    )


class ProviderAdapter(ABC):
    provider_id: ProviderId
    api_base: str = ""
    timeout: float = 30.0

    def __init__(self, api_key: str = "", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self._transport = transport

    @property
    def name(self) -> str:
        return self.provider_id.value

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def require_credentials(self):
        if not self.configured:
            raise AuthError(f"{self.name} credentials are not configured", provider=self.name)

    def auth_headers(self) -> dict:
        return {}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        """
        One HTTP round-trip. Returns the decoded JSON body or raises a typed
        ProviderError; no retries happen here.
        """
        headers = {"Content-Type": "application/json", **self.auth_headers()}
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=timeout or self.timeout, transport=self._transport) as client:
                resp = await client.request(method, url, headers=headers, json=json, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"{self.name} timed out", provider=self.name) from e
        except httpx.HTTPError as e:
            raise TransientError(f"{self.name} request failed: {type(e).__name__}", provider=self.name) from e
        finally:
            metrics.record_latency(f"{self.name}.{method.lower()}", (time.monotonic() - started) * 1000)

        if resp.status_code >= 400:
            error = classify_http_error(self.name, resp.status_code, resp.text)
            logger.warning(f"{self.name} {method} {resp.status_code}: {resp.text[:300]}")
            raise error

        try:
            data = resp.json()
        except ValueError as e:
            raise TransientError(
                f"{self.name} returned a non-JSON response",
                provider=self.name, status_code=resp.status_code, body=resp.text,
            ) from e

        if not isinstance(data, dict):
            raise TransientError(
                f"{self.name} returned an unexpected payload",
                provider=self.name, status_code=resp.status_code, body=resp.text,
            )
        return data


class ComposeAdapter(ProviderAdapter):
    """Image compositor. Answers synchronously with the composed still."""

    @abstractmethod
    async def compose(self, call: ProviderCall) -> JobStatus:
        """
        Return a Succeeded status whose artifact_url is the composed image
        (data URL or http URL). Raises ArtifactMissing on a soft failure.
        """


class VideoAdapter(ProviderAdapter):
    """Image-to-video vendor with an asynchronous submit / poll protocol."""

    # Vendor state string (lower-cased) -> normalized state
    STATE_MAP: dict[str, JobState] = {}

    @abstractmethod
    async def submit(self, call: ProviderCall) -> JobHandle:
        ...

    @abstractmethod
    async def poll(self, job_id: str) -> JobStatus:
        ...

    @abstractmethod
    def owns(self, job_id: str) -> bool:
        """True when job_id has the shape this adapter hands out."""

    def map_state(self, raw: Any) -> Optional[JobState]:
        """Normalized state for a vendor value, or None when undocumented."""
        if raw is None:
            return None
        return self.STATE_MAP.get(str(raw).strip().lower())

    def unmapped(self, raw: Any) -> JobStatus:
        logger.error(f"{self.name} reported an undocumented state: {raw!r}")
        return JobStatus.failed(
            f"{self.name} reported an unrecognized job state: {raw!r}",
            FailureKind.UNMAPPED_STATE,
        )
