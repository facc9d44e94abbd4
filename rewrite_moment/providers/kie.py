"""
Video vendor B: Kie.ai task-id API.

  POST /{segment}/generate              -> {"code": 200, "data": {"taskId": ...}}
  GET  /{segment}/record-info?taskId=   -> {"code": 200, "data": {...record...}}

Kie answers HTTP 200 with an error `code` in the envelope, so the envelope
code is checked as well as the transport status. Job ids are
"kie:{model}:{taskId}"; the model picks the status endpoint at poll time.
"""

import json
import logging
from typing import Callable, Optional

from ..errors import TransientError, ValidationError
from ..models import FailureKind, JobHandle, JobState, JobStatus, ProviderCall, ProviderId
from ..storage import ImageStore
from .base import VideoAdapter, classify_http_error, looks_like_moderation

logger = logging.getLogger(__name__)

API_BASE = "https://api.kie.ai/api/v1"
JOB_PREFIX = "kie:"

# Map model names to their API path segments for GENERATION
MODEL_ENDPOINTS = {
    "veo-3.1-fast": "veo",
    "veo-3.1-quality": "veo",
    "kling-2.6-pro": "kling",
    "hailuo-2.3": "hailuo",
    "seedance-1.5-pro": "seedance",
}

# Map model names to their STATUS polling path
MODEL_STATUS_PATHS = {
    "veo-3.1-fast": "veo/record-info",
    "veo-3.1-quality": "veo/record-info",
    "kling-2.6-pro": "kling/record-info",
    "hailuo-2.3": "hailuo/record-info",
    "seedance-1.5-pro": "seedance/record-info",
}

# Map our internal model IDs to Kie.ai API model names
MODEL_API_NAMES = {
    "veo-3.1-fast": "veo3_fast",
    "veo-3.1-quality": "veo3",
    "kling-2.6-pro": "kling2.6_pro",
    "hailuo-2.3": "hailuo2.3",
    "seedance-1.5-pro": "seedance1.5_pro",
}

# Aspect ratios the Kie video models accept
SUPPORTED_ASPECT_RATIOS = {"16:9", "9:16"}
DEFAULT_ASPECT_RATIO = "9:16"

# Only veo3_fast takes reference images as a scene anchor
REFERENCE_MODELS = {"veo3_fast"}

# Numeric successFlag used by record-info
SUCCESS_FLAGS = {
    0: JobState.PROCESSING,   # generating
    1: JobState.SUCCEEDED,
    2: JobState.FAILED,       # task creation failed
    3: JobState.FAILED,       # generation failed
}


def _result_urls(value) -> Optional[str]:
    # resultUrls arrives either as a list or as a JSON-encoded list
    if isinstance(value, str):
        if value.startswith("http"):
            return value
        try:
            value = json.loads(value)
        except ValueError:
            return None
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.startswith("http"):
                return item
    return None


def _response_block(record: dict) -> Optional[str]:
    response = record.get("response")
    if isinstance(response, str):
        try:
            response = json.loads(response)
        except ValueError:
            return None
    if isinstance(response, dict):
        return _result_urls(response.get("resultUrls")) or _result_urls(response.get("originUrls"))
    return None


def _top_level(record: dict) -> Optional[str]:
    for key in ("resultUrls", "videoUrl", "video_url", "resultUrl"):
        url = _result_urls(record.get(key))
        if url:
            return url
    return None


def _works(record: dict) -> Optional[str]:
    works = record.get("works")
    if isinstance(works, list) and works and isinstance(works[0], dict):
        resource = works[0].get("resource") or {}
        url = resource.get("resource") if isinstance(resource, dict) else None
        if isinstance(url, str) and url.startswith("http"):
            return url
    return None


ARTIFACT_SHAPES: list[Callable[[dict], Optional[str]]] = [_response_block, _top_level, _works]


def extract_artifact(record: dict) -> Optional[str]:
    for shape in ARTIFACT_SHAPES:
        url = shape(record)
        if url:
            return url
    return None


class KieAdapter(VideoAdapter):
    provider_id = ProviderId.KIE
    api_base = API_BASE

    STATE_MAP = {
        "waiting": JobState.PROCESSING,
        "queuing": JobState.PROCESSING,
        "pending": JobState.PROCESSING,
        "generating": JobState.PROCESSING,
        "processing": JobState.PROCESSING,
        "running": JobState.PROCESSING,
        "success": JobState.SUCCEEDED,
        "succeeded": JobState.SUCCEEDED,
        "completed": JobState.SUCCEEDED,
        "fail": JobState.FAILED,
        "failed": JobState.FAILED,
        "error": JobState.FAILED,
        "create_task_failed": JobState.FAILED,
        "generate_failed": JobState.FAILED,
    }

    def __init__(self, api_key: str = "", model: str = "veo-3.1-fast", store: Optional[ImageStore] = None, transport=None):
        super().__init__(api_key, transport=transport)
        if model not in MODEL_ENDPOINTS:
            raise ValueError(f"Unknown Kie model: {model}. Available: {list(MODEL_ENDPOINTS)}")
        self.model = model
        self.store = store

    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def owns(self, job_id: str) -> bool:
        return job_id.startswith(JOB_PREFIX) and job_id.count(":") >= 2

    @staticmethod
    def split_job_id(job_id: str) -> tuple[str, str]:
        _, model, task_id = job_id.split(":", 2)
        return model, task_id

    def _unwrap(self, envelope: dict) -> dict:
        code = envelope.get("code")
        if code is not None and str(code) != "200":
            message = str(envelope.get("msg") or envelope.get("message") or "")
            try:
                status = int(code)
            except (TypeError, ValueError):
                status = 500
            raise classify_http_error(self.name, status, json.dumps(envelope)[:500], message)
        if "data" not in envelope:
            return envelope
        data = envelope["data"]
        return data if isinstance(data, dict) else {}

    async def _image_urls(self, call: ProviderCall) -> list[str]:
        urls = []
        for image in call.images:
            if self.store is not None:
                urls.append(await self.store.url_for(image))
            else:
                urls.append(image.to_data_url())
        return urls

    async def submit(self, call: ProviderCall) -> JobHandle:
        self.require_credentials()
        if not call.images:
            raise ValidationError("Kie image-to-video needs a subject image", provider=self.name)

        url = f"{self.api_base}/{MODEL_ENDPOINTS[self.model]}/generate"
        aspect_ratio = call.aspect_ratio if call.aspect_ratio in SUPPORTED_ASPECT_RATIOS else DEFAULT_ASPECT_RATIO
        payload = {
            "prompt": call.prompt.instruction_text,
            "aspectRatio": aspect_ratio,
            "model": MODEL_API_NAMES[self.model],
            "imageUrls": await self._image_urls(call),
        }
        if payload["model"] in REFERENCE_MODELS:
            payload["mode"] = "REFERENCE_2_VIDEO"

        logger.info(f"Kie.ai request to {url}: model={payload['model']}, mode={payload.get('mode', 'default')}, aspect={aspect_ratio}")
        record = self._unwrap(await self._request("POST", url, json=payload))

        task_id = record.get("taskId") or record.get("task_id")
        if not task_id:
            raise TransientError("Kie.ai submit returned no taskId", provider=self.name)

        return JobHandle(job_id=f"{JOB_PREFIX}{self.model}:{task_id}", provider=self.provider_id)

    async def poll(self, job_id: str) -> JobStatus:
        self.require_credentials()
        model, task_id = self.split_job_id(job_id)
        status_path = MODEL_STATUS_PATHS.get(model, "veo/record-info")
        url = f"{self.api_base}/{status_path}"

        logger.info(f"Polling status at {url}?taskId={task_id}")
        record = self._unwrap(await self._request("GET", url, params={"taskId": task_id}))
        if not record:
            logger.warning(f"Kie.ai returned an empty record for {task_id}, treating as still processing")
            return JobStatus.processing()
        return self.parse_record(record)

    def _state(self, record: dict):
        """(normalized state or None, raw vendor value)"""
        if "successFlag" in record:
            raw = record.get("successFlag")
            try:
                return SUCCESS_FLAGS.get(int(raw)), raw
            except (TypeError, ValueError):
                return None, raw
        raw = record.get("status", record.get("state"))
        return self.map_state(raw), raw

    def parse_record(self, record: dict) -> JobStatus:
        state, raw = self._state(record)
        if state is None:
            return self.unmapped(raw)

        if state == JobState.PROCESSING:
            return JobStatus.processing()

        if state == JobState.FAILED:
            message = str(
                record.get("errorMessage") or record.get("failMsg")
                or record.get("message") or record.get("msg") or "Kie.ai generation failed"
            )
            kind = FailureKind.MODERATION_REJECTED if looks_like_moderation(message) else FailureKind.ERROR
            return JobStatus.failed(message, kind)

        url = extract_artifact(record)
        if not url:
            logger.warning(f"Kie.ai completed but no video URL in record: {str(record)[:300]}")
            return JobStatus.failed("Kie.ai finished without a video URL", FailureKind.ARTIFACT_MISSING)
        return JobStatus.succeeded(url)
