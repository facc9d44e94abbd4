"""
Video vendor C: Replicate predictions.

  POST /predictions  (versioned)  or  POST /models/{owner}/{name}/predictions
  GET  /predictions/{id}          -> prediction object with status/output/error

Job ids are "replicate:{prediction id}". Bare prediction ids, as older
clients stored them, are still recognized by shape.
"""

import logging
import re
from typing import Any, Callable, Optional

from ..errors import TransientError, ValidationError
from ..models import FailureKind, ImageBlob, JobHandle, JobState, JobStatus, ProviderCall, ProviderId
from .base import VideoAdapter, looks_like_moderation

logger = logging.getLogger(__name__)

API_BASE = "https://api.replicate.com/v1"
JOB_PREFIX = "replicate:"
BARE_ID_RE = re.compile(r"^[a-z0-9]{20,40}$")


def _svd_input(call: ProviderCall, image: ImageBlob) -> dict:
    # Stable Video Diffusion ignores text; motion comes from these knobs
    return {
        "input_image": image.to_data_url(),
        "motion_bucket_id": 127,
        "fps": 7,
        "cond_aug": 0.02,
        "decoding_t": 14,
    }


def _minimax_input(call: ProviderCall, image: ImageBlob) -> dict:
    return {
        "prompt": call.prompt.instruction_text,
        "first_frame_image": image.to_data_url(),
        "prompt_optimizer": True,
    }


MODELS: dict[str, dict[str, Any]] = {
    "svd": {
        "version": "3f0457e4619daac51203dedb472816fd4af51f3149fa7a9e0b5ffcf1b8172438",
        "input": _svd_input,
    },
    "minimax": {
        "path": "models/minimax/video-01/predictions",
        "input": _minimax_input,
    },
}


def _playable(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.startswith(("http://", "https://", "data:")):
        return value
    return None


def _string_output(output: Any) -> Optional[str]:
    return _playable(output)


def _list_output(output: Any) -> Optional[str]:
    if not isinstance(output, list):
        return None
    urls = [u for u in (_playable(item) for item in output) if u]
    videos = [u for u in urls if ".mp4" in u.lower() or u.startswith("data:video")]
    if videos:
        return videos[-1]
    return urls[-1] if urls else None


def _dict_output(output: Any) -> Optional[str]:
    if not isinstance(output, dict):
        return None
    for key in ("video", "url", "output"):
        url = _playable(output.get(key))
        if url:
            return url
    return None


ARTIFACT_SHAPES: list[Callable[[Any], Optional[str]]] = [_string_output, _list_output, _dict_output]


def extract_artifact(output: Any) -> Optional[str]:
    for shape in ARTIFACT_SHAPES:
        url = shape(output)
        if url:
            return url
    return None


class ReplicateAdapter(VideoAdapter):
    provider_id = ProviderId.REPLICATE
    api_base = API_BASE

    STATE_MAP = {
        "starting": JobState.PROCESSING,
        "processing": JobState.PROCESSING,
        "succeeded": JobState.SUCCEEDED,
        "failed": JobState.FAILED,
        "canceled": JobState.FAILED,
    }

    def __init__(self, api_token: str = "", model: str = "minimax", transport=None):
        super().__init__(api_token, transport=transport)
        if model not in MODELS:
            raise ValueError(f"Unknown Replicate model: {model}. Available: {list(MODELS)}")
        self.model = model

    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def owns(self, job_id: str) -> bool:
        if job_id.startswith(JOB_PREFIX):
            return len(job_id) > len(JOB_PREFIX)
        return bool(BARE_ID_RE.match(job_id))

    @staticmethod
    def prediction_id(job_id: str) -> str:
        return job_id[len(JOB_PREFIX):] if job_id.startswith(JOB_PREFIX) else job_id

    async def submit(self, call: ProviderCall) -> JobHandle:
        self.require_credentials()
        if not call.images:
            raise ValidationError("Replicate image-to-video needs a subject image", provider=self.name)

        spec = MODELS[self.model]
        body: dict = {"input": spec["input"](call, call.images[0])}
        if "version" in spec:
            url = f"{self.api_base}/predictions"
            body["version"] = spec["version"]
        else:
            url = f"{self.api_base}/{spec['path']}"

        logger.info(f"Replicate submit: model={self.model}")
        prediction = await self._request("POST", url, json=body)

        prediction_id = prediction.get("id")
        if not prediction_id:
            raise TransientError("Replicate returned no prediction id", provider=self.name)

        return JobHandle(job_id=f"{JOB_PREFIX}{prediction_id}", provider=self.provider_id)

    async def poll(self, job_id: str) -> JobStatus:
        self.require_credentials()
        prediction = await self._request("GET", f"{self.api_base}/predictions/{self.prediction_id(job_id)}")
        return self.parse_prediction(prediction)

    def parse_prediction(self, prediction: dict) -> JobStatus:
        raw = prediction.get("status")
        state = self.map_state(raw)
        if state is None:
            return self.unmapped(raw)

        if state == JobState.PROCESSING:
            return JobStatus.processing()

        if state == JobState.FAILED:
            if str(raw).lower() == "canceled":
                return JobStatus.failed("Prediction was canceled")
            error = str(prediction.get("error") or "Replicate prediction failed")
            kind = FailureKind.MODERATION_REJECTED if looks_like_moderation(error) else FailureKind.ERROR
            return JobStatus.failed(error, kind)

        url = extract_artifact(prediction.get("output"))
        if not url:
            return JobStatus.failed("Replicate prediction finished without an output video", FailureKind.ARTIFACT_MISSING)
        return JobStatus.succeeded(url)
