"""
FastAPI routes for the generation pipeline.

  POST /generate      — Submit a job, returns {id, status: "processing", provider}
  GET  /status/{id}   — Poll a job by its opaque, provider-self-describing id
  POST /upload        — Validate a data-URL image and hand it back unchanged
"""

import logging

import pydantic
from fastapi import APIRouter, Request

from .. import media, metrics
from ..errors import ValidationError
from ..models import (
    FailureKind,
    GenerateBody,
    GenerateResponse,
    GenerationRequest,
    JobState,
    PipelineKind,
    StatusResponse,
    UploadBody,
)
from .orchestrator import VideoGenerationService
from .poller import JobPoller

logger = logging.getLogger(__name__)

MODERATION_MESSAGE = (
    "The provider's safety filter blocked this video. Try a different photo or story."
)

pipeline_router = APIRouter(tags=["pipeline"])


def _service(request: Request) -> VideoGenerationService:
    return request.app.state.service


def _poller(request: Request) -> JobPoller:
    return request.app.state.poller


@pipeline_router.post("/generate", response_model=GenerateResponse)
async def generate(body: GenerateBody, request: Request):
    metrics.inc_counter("requests.generate")

    if not body.image_url:
        raise ValidationError("Image URL is required")

    primary = await media.load_image(body.image_url)
    secondary = await media.load_image(body.second_image_url) if body.second_image_url else None

    kind = body.pipeline_kind
    if kind is None:
        kind = PipelineKind.COMPOSE_THEN_ANIMATE if secondary is not None else PipelineKind.SINGLE_STEP_ANIMATE

    try:
        generation = GenerationRequest(
            primary_image=primary,
            secondary_image=secondary,
            creative_params=body.creative_params(),
            pipeline_kind=kind,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(e.errors()[0].get("msg", "Invalid request")) from e

    handle = await _service(request).submit(generation)
    return GenerateResponse(id=handle.job_id, provider=handle.provider)


@pipeline_router.get("/status/{job_id:path}", response_model=StatusResponse)
async def job_status(job_id: str, request: Request):
    metrics.inc_counter("requests.status")

    provider, status = await _poller(request).poll_with_provider(job_id)

    error = None
    if status.state == JobState.FAILED:
        if status.failure_kind == FailureKind.MODERATION_REJECTED:
            error = MODERATION_MESSAGE
        else:
            error = status.error_detail

    return StatusResponse(
        id=job_id,
        status=status.state,
        output=status.artifact_url,
        error=error,
        provider=provider,
    )


@pipeline_router.post("/upload")
async def upload(body: UploadBody):
    if not body.image:
        raise ValidationError("Image data is required")
    if not body.image.startswith("data:image/"):
        raise ValidationError("Invalid image format")

    # Raises on bad base64 or oversize
    blob = media.parse_image(body.image)
    logger.info(f"Upload accepted: {body.filename or 'unnamed'} ({len(blob.data)} bytes, {blob.mime_type})")

    return {
        "success": True,
        "imageUrl": body.image,
        "message": "Image ready for processing",
    }
