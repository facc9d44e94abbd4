"""Tests for the Kie.ai adapter."""

import json

import pytest

from conftest import VendorStub, json_response
from rewrite_moment.errors import AuthError, TransientError, ValidationError
from rewrite_moment.models import FailureKind, JobState, PromptSpec, ProviderCall, ProviderId, StepKind
from rewrite_moment.providers.kie import KieAdapter


class StubStore:
    def __init__(self):
        self.published = []

    async def url_for(self, image):
        self.published.append(image)
        return f"https://assets.example.com/inputs/{len(self.published)}.jpg"


def animate_call(image, aspect_ratio="9:16"):
    return ProviderCall(
        provider=ProviderId.KIE,
        step_kind=StepKind.ANIMATE,
        prompt=PromptSpec(instruction_text="First dance"),
        images=[image],
        aspect_ratio=aspect_ratio,
    )


class TestSubmit:
    @pytest.mark.asyncio
    async def test_job_id_carries_model_and_task(self, primary_image):
        stub = VendorStub(json_response({"code": 200, "msg": "success", "data": {"taskId": "task-42"}}))
        adapter = KieAdapter("kie-key", model="veo-3.1-fast", transport=stub.transport)

        handle = await adapter.submit(animate_call(primary_image))

        assert handle.job_id == "kie:veo-3.1-fast:task-42"
        assert handle.provider == ProviderId.KIE
        request = stub.requests[0]
        assert request.url.path == "/api/v1/veo/generate"
        assert request.headers["authorization"] == "Bearer kie-key"
        body = stub.body()
        assert body["model"] == "veo3_fast"
        assert body["aspectRatio"] == "9:16"
        assert body["mode"] == "REFERENCE_2_VIDEO"
        assert body["imageUrls"] == [primary_image.to_data_url()]

    @pytest.mark.asyncio
    async def test_store_publishes_images(self, primary_image):
        stub = VendorStub(json_response({"code": 200, "data": {"taskId": "t1"}}))
        store = StubStore()
        adapter = KieAdapter("kie-key", model="kling-2.6-pro", store=store, transport=stub.transport)

        handle = await adapter.submit(animate_call(primary_image))

        assert store.published == [primary_image]
        assert stub.body()["imageUrls"] == ["https://assets.example.com/inputs/1.jpg"]
        assert stub.requests[0].url.path == "/api/v1/kling/generate"
        assert handle.job_id == "kie:kling-2.6-pro:t1"
        assert "mode" not in stub.body()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested,sent", [("1:1", "9:16"), ("16:9", "16:9"), ("", "9:16")])
    async def test_aspect_ratio_is_clamped(self, primary_image, requested, sent):
        stub = VendorStub(json_response({"code": 200, "data": {"taskId": "t1"}}))
        adapter = KieAdapter("kie-key", transport=stub.transport)

        await adapter.submit(animate_call(primary_image, aspect_ratio=requested))
        assert stub.body()["aspectRatio"] == sent

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code,error",
        [(401, AuthError), (429, TransientError), (500, TransientError), (422, ValidationError)],
    )
    async def test_envelope_error_codes(self, primary_image, code, error):
        stub = VendorStub(json_response({"code": code, "msg": "something went wrong"}))
        adapter = KieAdapter("kie-key", transport=stub.transport)

        with pytest.raises(error):
            await adapter.submit(animate_call(primary_image))

    @pytest.mark.asyncio
    async def test_missing_task_id(self, primary_image):
        stub = VendorStub(json_response({"code": 200, "data": {}}))
        adapter = KieAdapter("kie-key", transport=stub.transport)

        with pytest.raises(TransientError):
            await adapter.submit(animate_call(primary_image))

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            KieAdapter("kie-key", model="sora-9")


class TestPoll:
    @pytest.mark.asyncio
    async def test_status_path_comes_from_job_id(self):
        stub = VendorStub(json_response({"code": 200, "data": {"taskId": "t9", "successFlag": 0}}))
        adapter = KieAdapter("kie-key", model="veo-3.1-fast", transport=stub.transport)

        status = await adapter.poll("kie:hailuo-2.3:t9")

        assert status.state == JobState.PROCESSING
        assert stub.requests[0].url.path == "/api/v1/hailuo/record-info"
        assert stub.requests[0].url.params["taskId"] == "t9"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("envelope", [{"code": 200, "data": None}, {"code": 200, "data": "pending"}])
    async def test_empty_record_is_still_processing(self, envelope):
        stub = VendorStub(json_response(envelope))
        adapter = KieAdapter("kie-key", transport=stub.transport)

        status = await adapter.poll("kie:veo-3.1-fast:t1")
        assert status.state == JobState.PROCESSING

    @pytest.mark.asyncio
    async def test_null_data_on_submit_is_transient(self, primary_image):
        stub = VendorStub(json_response({"code": 200, "data": None}))
        adapter = KieAdapter("kie-key", transport=stub.transport)

        with pytest.raises(TransientError):
            await adapter.submit(animate_call(primary_image))

    @pytest.mark.asyncio
    async def test_success_with_stringified_response(self):
        response = json.dumps({"resultUrls": ["https://cdn.kie.ai/v/1.mp4"]})
        stub = VendorStub(json_response({"code": 200, "data": {"successFlag": 1, "response": response}}))
        adapter = KieAdapter("kie-key", transport=stub.transport)

        status = await adapter.poll("kie:veo-3.1-fast:t1")
        assert status.state == JobState.SUCCEEDED
        assert status.artifact_url == "https://cdn.kie.ai/v/1.mp4"


class TestParseRecord:
    def setup_method(self):
        self.adapter = KieAdapter("kie-key")

    @pytest.mark.parametrize("flag,state", [(0, JobState.PROCESSING), (2, JobState.FAILED), (3, JobState.FAILED)])
    def test_success_flags(self, flag, state):
        assert self.adapter.parse_record({"successFlag": flag}).state == state

    def test_unknown_success_flag(self):
        status = self.adapter.parse_record({"successFlag": 7})
        assert status.failure_kind == FailureKind.UNMAPPED_STATE

    @pytest.mark.parametrize("raw", sorted(KieAdapter.STATE_MAP))
    def test_every_documented_state_is_mapped(self, raw):
        record = {"status": raw.upper(), "resultUrls": ["https://cdn.kie.ai/v.mp4"]}
        status = self.adapter.parse_record(record)
        assert status.failure_kind != FailureKind.UNMAPPED_STATE
        assert status.state == KieAdapter.STATE_MAP[raw]

    def test_undocumented_status(self):
        status = self.adapter.parse_record({"status": "teleporting"})
        assert status.state == JobState.FAILED
        assert status.failure_kind == FailureKind.UNMAPPED_STATE

    def test_missing_state(self):
        assert self.adapter.parse_record({}).failure_kind == FailureKind.UNMAPPED_STATE

    def test_failure_message(self):
        status = self.adapter.parse_record({"successFlag": 3, "errorMessage": "GPU exploded"})
        assert status.error_detail == "GPU exploded"
        assert status.failure_kind == FailureKind.ERROR

    def test_moderation_failure(self):
        status = self.adapter.parse_record({"successFlag": 2, "failMsg": "Image violates content policy"})
        assert status.failure_kind == FailureKind.MODERATION_REJECTED

    def test_works_shape(self):
        record = {"status": "success", "works": [{"resource": {"resource": "https://cdn.kie.ai/w.mp4"}}]}
        assert self.adapter.parse_record(record).artifact_url == "https://cdn.kie.ai/w.mp4"

    def test_video_url_shape(self):
        record = {"state": "completed", "videoUrl": "https://cdn.kie.ai/x.mp4"}
        assert self.adapter.parse_record(record).artifact_url == "https://cdn.kie.ai/x.mp4"

    def test_success_without_url(self):
        status = self.adapter.parse_record({"successFlag": 1, "response": {"resultUrls": []}})
        assert status.state == JobState.FAILED
        assert status.failure_kind == FailureKind.ARTIFACT_MISSING


def test_owns():
    adapter = KieAdapter("kie-key")
    assert adapter.owns("kie:veo-3.1-fast:abc")
    assert not adapter.owns("kie:abc")
    assert not adapter.owns("replicate:abc")
    assert KieAdapter.split_job_id("kie:veo-3.1-fast:a:b") == ("veo-3.1-fast", "a:b")
