"""
Provider adapters: one per vendor, plus the registry that picks and routes them.
"""

from .base import ComposeAdapter, ProviderAdapter, VideoAdapter
from .gemini import GeminiComposeAdapter
from .kie import KieAdapter
from .registry import ProviderRegistry
from .replicate import ReplicateAdapter
from .veo import VeoAdapter

__all__ = [
    "ComposeAdapter",
    "ProviderAdapter",
    "VideoAdapter",
    "GeminiComposeAdapter",
    "KieAdapter",
    "ReplicateAdapter",
    "VeoAdapter",
    "ProviderRegistry",
]
