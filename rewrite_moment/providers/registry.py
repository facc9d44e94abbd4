"""
Provider registry: builds adapters from Settings, orders the video fallback
chain, and routes an opaque job id back to the adapter that issued it.
"""

import logging
from typing import Optional

from ..config import Settings
from ..errors import UnknownJobError
from ..storage import ImageStore
from .base import ComposeAdapter, VideoAdapter
from .gemini import GeminiComposeAdapter
from .kie import KieAdapter
from .replicate import ReplicateAdapter
from .veo import VeoAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(
        self,
        settings: Settings,
        *,
        video_adapters: Optional[list[VideoAdapter]] = None,
        compose_adapter: Optional[ComposeAdapter] = None,
        transport=None,
    ):
        self.settings = settings
        if video_adapters is None:
            store = ImageStore(settings.storage)
            video_adapters = [
                VeoAdapter(settings.google_api_key, model=settings.veo_model, transport=transport),
                KieAdapter(settings.kie_api_key, model=settings.kie_model, store=store, transport=transport),
                ReplicateAdapter(settings.replicate_api_token, model=settings.replicate_model, transport=transport),
            ]
        if compose_adapter is None:
            compose_adapter = GeminiComposeAdapter(
                settings.google_api_key, model=settings.compose_model, transport=transport
            )

        self.video_adapters = {adapter.name: adapter for adapter in video_adapters}
        self.compose_adapter = compose_adapter

    def video_chain(self) -> list[VideoAdapter]:
        """Configured video adapters in priority order. Unconfigured ones are skipped."""
        chain = []
        for name in self.settings.video_provider_priority:
            adapter = self.video_adapters.get(name)
            if adapter is None:
                logger.warning(f"Unknown provider '{name}' in priority list, ignoring")
                continue
            if not adapter.configured:
                logger.info(f"Provider '{name}' has no credentials, excluded from fallback chain")
                continue
            chain.append(adapter)
        return chain

    def resolve(self, job_id: str) -> VideoAdapter:
        """Find the adapter that issued job_id, from the id's shape alone."""
        if job_id:
            # Prefixed shapes first; Replicate's bare-id shape is the loosest
            for adapter in sorted(self.video_adapters.values(), key=lambda a: a.name == "replicate"):
                if adapter.owns(job_id):
                    return adapter
        raise UnknownJobError(f"No provider recognizes job id {job_id[:80]!r}")

    def describe(self) -> dict:
        return {
            "compose": {self.compose_adapter.name: self.compose_adapter.configured},
            "video": {name: adapter.configured for name, adapter in self.video_adapters.items()},
            "chain": [adapter.name for adapter in self.video_chain()],
        }
