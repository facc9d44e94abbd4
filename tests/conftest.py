"""Shared fixtures and in-memory fake adapters."""

import base64
import json
from typing import Optional

import httpx
import pytest

from rewrite_moment import metrics
from rewrite_moment.config import Settings
from rewrite_moment.models import ImageBlob, JobHandle, JobStatus, ProviderCall, ProviderId
from rewrite_moment.providers.base import ComposeAdapter, VideoAdapter

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x01" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x02" * 24
COMPOSED_BYTES = b"\x89PNG\r\n\x1a\n" + b"composed-scene" * 4

# Google's answer to a bad key
BAD_KEY_ERROR = {
    "error": {
        "code": 400,
        "message": "API key not valid. Please pass a valid API key.",
        "status": "INVALID_ARGUMENT",
        "details": [{"reason": "API_KEY_INVALID", "domain": "googleapis.com"}],
    }
}


def data_url(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def primary_image() -> ImageBlob:
    return ImageBlob(data=JPEG_BYTES, mime_type="image/jpeg")


@pytest.fixture
def secondary_image() -> ImageBlob:
    return ImageBlob(data=PNG_BYTES, mime_type="image/png")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        google_api_key="google-key",
        kie_api_key="kie-key",
        replicate_api_token="r8-token",
        compose_retry_delay=2.0,
        submit_retry_delay=1.0,
    )


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


class FakeVideoAdapter(VideoAdapter):
    """Video adapter driven by scripted submit outcomes and poll statuses."""

    def __init__(
        self,
        provider_id: ProviderId,
        configured: bool = True,
        submit_effects: Optional[list] = None,
        statuses: Optional[list] = None,
    ):
        super().__init__("key" if configured else "")
        self.provider_id = provider_id
        self.submit_effects = list(submit_effects or [])
        self.statuses = list(statuses or [])
        self.calls: list[ProviderCall] = []
        self.polled: list[str] = []

    @property
    def prefix(self) -> str:
        return f"{self.name}-fake:"

    def owns(self, job_id: str) -> bool:
        return job_id.startswith(self.prefix)

    async def submit(self, call: ProviderCall) -> JobHandle:
        self.calls.append(call)
        if self.submit_effects:
            effect = self.submit_effects.pop(0)
            if isinstance(effect, Exception):
                raise effect
        return JobHandle(job_id=f"{self.prefix}{len(self.calls)}", provider=self.provider_id)

    async def poll(self, job_id: str) -> JobStatus:
        self.polled.append(job_id)
        if self.statuses:
            effect = self.statuses.pop(0)
            if isinstance(effect, Exception):
                raise effect
            return effect
        return JobStatus.processing()


class FakeComposeAdapter(ComposeAdapter):
    provider_id = ProviderId.GEMINI

    def __init__(self, effects: Optional[list] = None, configured: bool = True):
        super().__init__("key" if configured else "")
        self.effects = list(effects or [])
        self.calls: list[ProviderCall] = []

    async def compose(self, call: ProviderCall) -> JobStatus:
        self.calls.append(call)
        effect = self.effects.pop(0) if self.effects else JobStatus.succeeded(data_url(COMPOSED_BYTES))
        if isinstance(effect, Exception):
            raise effect
        return effect


def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload), headers={"content-type": "application/json"})


class VendorStub:
    """httpx.MockTransport handler that records requests and replays responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)
