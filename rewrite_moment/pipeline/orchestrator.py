"""
VideoGenerationService: turns one GenerationRequest into one JobHandle.

  SingleStepAnimate:   animate(primary)
  ComposeThenAnimate:  compose(primary, secondary) -> animate(composed)

The compose step is retried on soft failures (200 with no image) and
transient errors up to a fixed attempt count; when it still fails, the
configurable degrade policy animates the uncomposed primary image instead.
The animate step walks the provider priority chain: each provider gets a
bounded number of submit attempts before the next one is tried. The
service holds no per-job state; the returned handle is all a poller needs.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Optional

from .. import media, metrics, prompts
from ..config import Settings
from ..errors import (
    ArtifactMissing,
    AuthError,
    ModerationRejected,
    ProviderError,
    TransientError,
    ValidationError,
)
from ..models import (
    GenerationRequest,
    ImageBlob,
    JobHandle,
    PipelineKind,
    PromptSpec,
    ProviderCall,
    StepKind,
)
from ..providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class VideoGenerationService:
    """
    Usage:
        service = VideoGenerationService(settings, registry)
        handle = await service.submit(request)
        # later, possibly in another process:
        status = await JobPoller(registry).poll(handle.job_id)
    """

    def __init__(
        self,
        settings: Settings,
        registry: ProviderRegistry,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        image_loader: Callable[[str], Awaitable[ImageBlob]] = media.load_image,
    ):
        self.settings = settings
        self.registry = registry
        self._sleep = sleep
        self._load_image = image_loader

    async def submit(self, request: GenerationRequest) -> JobHandle:
        ref = uuid.uuid4().hex[:8]
        params = request.creative_params
        aspect_ratio = prompts.normalize_aspect_ratio(params.aspect_ratio)
        subjects = request.subject_count
        image = request.primary_image

        logger.info(f"[{ref}] Submitting {request.pipeline_kind.value} ({subjects} subject(s), {aspect_ratio})")

        if request.pipeline_kind == PipelineKind.COMPOSE_THEN_ANIMATE:
            composed = await self._compose(request, aspect_ratio, ref)
            if composed is not None:
                image = composed
            else:
                # Only the primary subject is in frame now
                subjects = 1

        prompt = prompts.build(params, StepKind.ANIMATE, subject_count=subjects)
        handle = await self._animate(prompt, image, aspect_ratio, ref)
        logger.info(f"[{ref}] Accepted by {handle.provider.value}: {handle.job_id}")
        return handle

    # ── Compose step ─────────────────────────────────────────────────────

    async def _compose(self, request: GenerationRequest, aspect_ratio: str, ref: str) -> Optional[ImageBlob]:
        """
        Run the compose step with bounded retries.

        Returns the composed image, or None when compose failed and the
        degrade policy says to animate the uncomposed primary instead.
        """
        adapter = self.registry.compose_adapter
        images = [request.primary_image]
        if request.secondary_image is not None:
            images.append(request.secondary_image)
        prompt = prompts.build(request.creative_params, StepKind.COMPOSE, subject_count=len(images))

        max_attempts = self.settings.compose_max_attempts
        last_error: ProviderError = ArtifactMissing("Compose step was not attempted", provider=adapter.name)

        if not adapter.configured:
            last_error = AuthError(f"{adapter.name} credentials are not configured", provider=adapter.name)
            logger.error(f"[{ref}] Compose provider unavailable: {last_error}")
            return self._compose_exhausted(last_error, 0, ref)

        for attempt in range(1, max_attempts + 1):
            call = ProviderCall(
                provider=adapter.provider_id,
                step_kind=StepKind.COMPOSE,
                prompt=prompt,
                images=images,
                aspect_ratio=aspect_ratio,
                attempt_number=attempt,
            )
            metrics.inc_counter("compose.attempts")
            try:
                status = await adapter.compose(call)
                try:
                    composed = await self._load_image(status.artifact_url)
                except ValidationError as e:
                    raise ArtifactMissing(f"Composed image is unusable: {e}", provider=adapter.name) from e
                logger.info(f"[{ref}] Compose succeeded on attempt {attempt}/{max_attempts}")
                return composed

            except ArtifactMissing as e:
                metrics.inc_counter("compose.soft_failures")
                logger.warning(f"[{ref}] Compose attempt {attempt}/{max_attempts} returned no image: {e}")
                last_error = e
            except TransientError as e:
                metrics.inc_counter("errors.transient")
                logger.warning(f"[{ref}] Compose attempt {attempt}/{max_attempts} failed: {e}")
                last_error = e
            except AuthError as e:
                metrics.inc_counter("errors.auth")
                logger.error(f"[{ref}] Compose provider rejected credentials: {e}")
                return self._compose_exhausted(e, attempt, ref)
            except ModerationRejected:
                metrics.inc_counter("errors.moderation_rejected")
                raise

            if attempt < max_attempts:
                await self._sleep(self.settings.compose_retry_delay)

        return self._compose_exhausted(last_error, max_attempts, ref)

    def _compose_exhausted(self, error: ProviderError, attempts: int, ref: str) -> None:
        if not self.settings.compose_degrade_on_failure:
            metrics.inc_counter(f"errors.{error.kind}")
            logger.error(f"[{ref}] Compose failed after {attempts} attempt(s), degrade disabled: {error}")
            if isinstance(error, ArtifactMissing):
                raise ArtifactMissing(
                    f"Compose step produced no image after {attempts} attempt(s)",
                    provider=error.provider,
                ) from error
            raise error

        metrics.inc_counter("compose.degraded")
        metrics.record_event("compose_degraded", str(error), provider=error.provider or "", job_id=ref)
        logger.warning(
            f"[{ref}] DEGRADED: compose failed after {attempts} attempt(s) ({error}); "
            f"animating the uncomposed primary image instead"
        )
        return None

    # ── Animate step ─────────────────────────────────────────────────────

    async def _animate(self, prompt: PromptSpec, image: ImageBlob, aspect_ratio: str, ref: str) -> JobHandle:
        chain = self.registry.video_chain()
        if not chain:
            metrics.inc_counter("errors.auth")
            logger.error(f"[{ref}] No video provider is configured")
            raise AuthError("No video provider is configured")

        max_attempts = self.settings.submit_max_attempts
        last_error: Optional[ProviderError] = None

        for position, adapter in enumerate(chain):
            if position > 0:
                metrics.inc_counter("provider.fallback")
                metrics.record_event(
                    "provider_fallback", f"falling back after: {last_error}", provider=adapter.name, job_id=ref
                )
                logger.warning(f"[{ref}] Falling back to {adapter.name} after: {last_error}")

            for attempt in range(1, max_attempts + 1):
                call = ProviderCall(
                    provider=adapter.provider_id,
                    step_kind=StepKind.ANIMATE,
                    prompt=prompt,
                    images=[image],
                    aspect_ratio=aspect_ratio,
                    attempt_number=attempt,
                )
                try:
                    handle = await adapter.submit(call)
                    metrics.inc_counter(f"submit.{adapter.name}")
                    return handle

                except TransientError as e:
                    metrics.inc_counter("errors.transient")
                    logger.warning(f"[{ref}] {adapter.name} submit attempt {attempt}/{max_attempts} failed: {e}")
                    last_error = e
                    if attempt < max_attempts:
                        await self._sleep(self.settings.submit_retry_delay)
                except AuthError as e:
                    metrics.inc_counter("errors.auth")
                    logger.error(f"[{ref}] {adapter.name} rejected credentials, check deployment config: {e}")
                    last_error = e
                    break
                except ModerationRejected as e:
                    metrics.inc_counter("errors.moderation_rejected")
                    last_error = e
                    if not self.settings.fallback_on_moderation:
                        raise
                    logger.warning(f"[{ref}] {adapter.name} safety filter rejected the request: {e}")
                    break

        logger.error(f"[{ref}] Every video provider failed; last error: {last_error}")
        raise last_error
