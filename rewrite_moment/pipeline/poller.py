"""
JobPoller: one polling contract over every vendor's async model.

The owning adapter is recovered from the job id's shape, so a poll can land
in a different process from the submit with nothing shared but the id.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .. import metrics
from ..errors import TransientError
from ..models import FailureKind, JobStatus, ProviderId
from ..providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5  # seconds
MAX_POLL_ATTEMPTS = 120  # 10 minutes max


class JobPoller:
    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self._sleep = sleep

    def provider_for(self, job_id: str) -> ProviderId:
        return self.registry.resolve(job_id).provider_id

    async def poll_with_provider(self, job_id: str) -> tuple[ProviderId, JobStatus]:
        """Idempotent single poll. Raises UnknownJobError, AuthError or TransientError."""
        adapter = self.registry.resolve(job_id)
        adapter.require_credentials()

        status = await adapter.poll(job_id)
        metrics.inc_counter(f"poll.{status.state.value}")
        if status.failure_kind is not None:
            metrics.inc_counter(f"jobs.failed.{status.failure_kind.value}")
        return adapter.provider_id, status

    async def poll(self, job_id: str) -> JobStatus:
        _, status = await self.poll_with_provider(job_id)
        return status

    async def wait_for_completion(
        self,
        job_id: str,
        *,
        interval: float = POLL_INTERVAL,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        on_progress: Optional[Callable[[int, JobStatus], None]] = None,
    ) -> JobStatus:
        """
        Client-side convenience: poll until terminal or the attempt ceiling.

        Transient poll errors use up an attempt and polling continues. Hitting
        the ceiling yields a Failed(timeout) status; the vendor job itself
        keeps running and its result is discarded.
        """
        for attempt in range(1, max_attempts + 1):
            try:
                status = await self.poll(job_id)
            except TransientError as e:
                logger.warning(f"Poll #{attempt} for {job_id} failed transiently: {e}")
            else:
                logger.info(f"Poll #{attempt} for {job_id}: {status.state.value}")
                if on_progress is not None:
                    on_progress(attempt, status)
                if status.is_terminal:
                    return status

            if attempt < max_attempts:
                await self._sleep(interval)

        metrics.inc_counter("jobs.failed.timeout")
        return JobStatus.failed(
            f"Generation timed out after {max_attempts} polls",
            FailureKind.TIMEOUT,
        )
