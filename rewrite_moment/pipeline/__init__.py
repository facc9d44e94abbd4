"""
Generation Pipeline

  Submit — Prompt build → (Compose with retry/degrade) → Animate over the provider chain
  Poll   — Job id shape → owning adapter → normalized JobStatus
"""

from .orchestrator import VideoGenerationService
from .poller import JobPoller
from .routes import pipeline_router

__all__ = [
    "VideoGenerationService",
    "JobPoller",
    "pipeline_router",
]
