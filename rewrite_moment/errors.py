"""
Typed error taxonomy shared by adapters, orchestrator and routes.

Adapters raise these (never bare vendor exceptions); the orchestrator is the
only place that decides retry vs. surface; the HTTP layer renders them as a
normalized {error, details} pair and never echoes the vendor body.
"""

from typing import Optional


class ProviderError(Exception):
    """Base for every failure that crosses the adapter boundary."""

    http_status = 500
    kind = "error"
    public_message = "Video generation failed"

    def __init__(
        self,
        details: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(details)
        self.details = details
        self.provider = provider
        self.status_code = status_code
        # Raw vendor body, kept for logs only
        self.body = body[:500] if body else body

    def __str__(self) -> str:
        prefix = f"[{self.provider}] " if self.provider else ""
        code = f" (HTTP {self.status_code})" if self.status_code else ""
        return f"{prefix}{self.details}{code}"


class ValidationError(ProviderError):
    """Bad caller input. Surfaced as 4xx, never retried."""

    http_status = 400
    kind = "validation"
    public_message = "Invalid request"


class UnknownJobError(ValidationError):
    """No adapter recognizes the shape of a job id."""

    kind = "unknown_job"
    public_message = "Unknown job id"


class AuthError(ProviderError):
    """Missing or rejected credentials. A deployment problem, never retried."""

    http_status = 500
    kind = "auth"
    public_message = "Video provider is not configured"


class TransientError(ProviderError):
    """Network failure or vendor 5xx/429. Retried by the orchestrator."""

    http_status = 502
    kind = "transient"
    public_message = "Video provider is temporarily unavailable"


class ModerationRejected(ProviderError):
    """The vendor's safety filter refused the request or its output."""

    http_status = 422
    kind = "moderation_rejected"
    public_message = "The content was blocked by the provider's safety filter"


class ArtifactMissing(ProviderError):
    """A success-level response that carried no usable artifact."""

    http_status = 502
    kind = "artifact_missing"
    public_message = "The provider returned no result"
