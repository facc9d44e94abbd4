"""
Video vendor A: Veo via the Gemini API long-running operations.

  POST models/{model}:predictLongRunning  -> {"name": "models/{model}/operations/{id}"}
  GET  {operation name}                   -> {"done": bool, "response" | "error": ...}

The operation name is the job id; it already names the model, so polling
needs nothing but the id.
"""

import logging
import re
from typing import Callable, Optional
from urllib.parse import quote

from ..errors import TransientError
from ..models import FailureKind, JobHandle, JobStatus, ProviderCall, ProviderId
from .base import VideoAdapter, looks_like_moderation

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GCS_PUBLIC_BASE = "https://storage.googleapis.com"

OPERATION_RE = re.compile(r"^models/[\w.\-]+/operations/[\w\-]+$")

# Veo renders landscape or portrait only
SUPPORTED_ASPECT_RATIOS = {"16:9", "9:16"}


def gcs_to_public_url(uri: str) -> str:
    """gs://bucket/path/to/video.mp4 -> https://storage.googleapis.com/bucket/path/to/video.mp4"""
    bucket, _, path = uri[len("gs://"):].partition("/")
    return f"{GCS_PUBLIC_BASE}/{bucket}/{quote(path)}"


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _samples(response: dict) -> list[dict]:
    """Candidate video dicts across the response layouts Veo has shipped."""
    found = []
    generated = _as_dict(response.get("generateVideoResponse"))
    for sample in _as_list(generated.get("generatedSamples")):
        if isinstance(sample, dict):
            found.append(_as_dict(sample.get("video")) or sample)
    for video in _as_list(response.get("videos")):
        if isinstance(video, dict):
            found.append(video)
    for sample in _as_list(response.get("generatedVideos")):
        if isinstance(sample, dict):
            found.append(_as_dict(sample.get("video")) or sample)
    return found


def _direct_url(video: dict) -> Optional[str]:
    uri = video.get("uri")
    if isinstance(uri, str) and uri.startswith(("http://", "https://")):
        return uri
    return None


def _bucket_url(video: dict) -> Optional[str]:
    for key in ("gcsUri", "uri"):
        uri = video.get(key)
        if isinstance(uri, str) and uri.startswith("gs://"):
            return gcs_to_public_url(uri)
    return None


def _inline_video(video: dict) -> Optional[str]:
    data = video.get("bytesBase64Encoded") or video.get("videoBytes")
    if isinstance(data, str) and data:
        mime_type = video.get("mimeType") or "video/mp4"
        return f"data:{mime_type};base64,{data}"
    return None


# Tried in order against every sample
ARTIFACT_SHAPES: list[Callable[[dict], Optional[str]]] = [_direct_url, _bucket_url, _inline_video]


def extract_artifact(response: dict) -> Optional[str]:
    for video in _samples(response):
        for shape in ARTIFACT_SHAPES:
            url = shape(video)
            if url:
                return url
    return None


def _filtered(response: dict) -> tuple[int, list]:
    generated = _as_dict(response.get("generateVideoResponse")) or response
    try:
        count = int(generated.get("raiMediaFilteredCount") or 0)
    except (TypeError, ValueError):
        count = 0
    reasons = _as_list(generated.get("raiMediaFilteredReasons"))
    if reasons and not count:
        count = len(reasons)
    return count, reasons


class VeoAdapter(VideoAdapter):
    provider_id = ProviderId.VEO
    api_base = API_BASE

    def __init__(self, api_key: str = "", model: str = "veo-3.0-fast-generate-001", transport=None):
        super().__init__(api_key, transport=transport)
        self.model = model

    def owns(self, job_id: str) -> bool:
        return bool(OPERATION_RE.match(job_id))

    def _build_body(self, call: ProviderCall) -> dict:
        instance: dict = {"prompt": call.prompt.instruction_text}
        if call.images:
            image = call.images[0]
            instance["image"] = {"bytesBase64Encoded": image.to_base64(), "mimeType": image.mime_type}

        aspect_ratio = call.aspect_ratio if call.aspect_ratio in SUPPORTED_ASPECT_RATIOS else "16:9"
        parameters: dict = {"aspectRatio": aspect_ratio, "personGeneration": "allow_adult"}
        if call.prompt.negative_text:
            parameters["negativePrompt"] = call.prompt.negative_text

        return {"instances": [instance], "parameters": parameters}

    async def submit(self, call: ProviderCall) -> JobHandle:
        self.require_credentials()
        logger.info(f"Veo submit: model={self.model}, aspect={call.aspect_ratio}, images={len(call.images)}")

        data = await self._request(
            "POST",
            f"{self.api_base}/models/{self.model}:predictLongRunning",
            params={"key": self.api_key},
            json=self._build_body(call),
        )

        operation = data.get("name")
        if not isinstance(operation, str) or not self.owns(operation):
            logger.warning(f"Veo submit returned no operation name: {str(data)[:300]}")
            raise TransientError("Veo returned no operation name", provider=self.name, body=str(data))

        logger.info(f"Veo operation started: {operation}")
        return JobHandle(job_id=operation, provider=self.provider_id)

    async def poll(self, job_id: str) -> JobStatus:
        self.require_credentials()
        data = await self._request("GET", f"{self.api_base}/{job_id}", params={"key": self.api_key})
        return self.parse_operation(data)

    def parse_operation(self, data: dict) -> JobStatus:
        done = data.get("done")
        if done is None or done is False:
            return JobStatus.processing()
        if done is not True:
            return self.unmapped(done)

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            message = str(message or "Veo operation failed")
            kind = FailureKind.MODERATION_REJECTED if looks_like_moderation(message) else FailureKind.ERROR
            return JobStatus.failed(message, kind)

        response = _as_dict(data.get("response"))
        url = extract_artifact(response)
        if url:
            return JobStatus.succeeded(url)

        count, reasons = _filtered(response)
        if count:
            detail = "; ".join(str(r) for r in reasons) or f"{count} video(s) filtered"
            return JobStatus.failed(f"Veo safety filter removed the video: {detail}", FailureKind.MODERATION_REJECTED)

        return JobStatus.failed("Veo finished without a playable video", FailureKind.ARTIFACT_MISSING)
