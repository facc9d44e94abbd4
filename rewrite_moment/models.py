"""
Pydantic models and enums for the generation pipeline.
"""

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ── Enums ────────────────────────────────────────────────────────────────────

class ProviderId(str, Enum):
    GEMINI = "gemini"        # image compositor
    VEO = "veo"              # long-running operations
    KIE = "kie"              # task-id polling
    REPLICATE = "replicate"  # prediction objects


class StepKind(str, Enum):
    COMPOSE = "compose"
    ANIMATE = "animate"


class PipelineKind(str, Enum):
    SINGLE_STEP_ANIMATE = "single_step_animate"
    COMPOSE_THEN_ANIMATE = "compose_then_animate"


class JobState(str, Enum):
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureKind(str, Enum):
    ERROR = "error"
    MODERATION_REJECTED = "moderation_rejected"
    ARTIFACT_MISSING = "artifact_missing"
    UNMAPPED_STATE = "unmapped_state"
    TIMEOUT = "timeout"


# ── Creative Parameters ──────────────────────────────────────────────────────

class _Lenient(BaseModel):
    """Creative inputs are optional and partial; garbage becomes None, never an error."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Sliders(_Lenient):
    realism: Optional[float] = None
    intensity: Optional[float] = None
    pace: Optional[float] = None

    @field_validator("realism", "intensity", "pace", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any):
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return None
        return None


class CreativeParams(_Lenient):
    prompt: Optional[str] = None
    stage: Optional[str] = None          # teen, 20s, newlywed, parenting
    genre: Optional[str] = None          # docu, comedy, drama, melo, fantasy
    distance: Optional[str] = None       # closeup, medium, wide
    ending: Optional[str] = None         # happy, sad, open, twist
    mode: Optional[str] = None           # quick, story, trailer
    aspect_ratio: Optional[str] = None   # 9:16, 16:9, 1:1
    movie_theme: Optional[str] = None
    rewrite_text: Optional[str] = None
    sliders: Sliders = Field(default_factory=Sliders)

    @field_validator(
        "prompt", "stage", "genre", "distance", "ending",
        "mode", "aspect_ratio", "movie_theme", "rewrite_text",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            return None
        return value.strip() or None

    @field_validator("sliders", mode="before")
    @classmethod
    def _coerce_sliders(cls, value: Any):
        return value if isinstance(value, (dict, Sliders)) else {}


# ── Media & Prompts ──────────────────────────────────────────────────────────

class ImageBlob(BaseModel):
    """Decoded image bytes plus MIME type. Built by media.parse_image."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/jpeg"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


class PromptSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    instruction_text: str
    negative_text: Optional[str] = None


# ── Pipeline Models ──────────────────────────────────────────────────────────

class GenerationRequest(BaseModel):
    """Normalized input to one pipeline run. Discarded after submission."""

    primary_image: ImageBlob
    secondary_image: Optional[ImageBlob] = None
    creative_params: CreativeParams = Field(default_factory=CreativeParams)
    pipeline_kind: PipelineKind = PipelineKind.SINGLE_STEP_ANIMATE

    @model_validator(mode="after")
    def _secondary_requires_compose(self):
        if self.secondary_image is not None and self.pipeline_kind != PipelineKind.COMPOSE_THEN_ANIMATE:
            raise ValueError("a second image requires the compose_then_animate pipeline")
        return self

    @property
    def subject_count(self) -> int:
        return 1 + (1 if self.secondary_image is not None else 0)


class ProviderCall(BaseModel):
    """One attempt against one provider."""

    provider: ProviderId
    step_kind: StepKind
    prompt: PromptSpec
    images: list[ImageBlob] = Field(default_factory=list)
    aspect_ratio: str = "9:16"
    attempt_number: int = 1


class JobHandle(BaseModel):
    """The only state that survives between submit and poll."""

    job_id: str
    provider: ProviderId
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JobStatus(BaseModel):
    state: JobState
    artifact_url: Optional[str] = None
    error_detail: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    @model_validator(mode="after")
    def _terminal_payload(self):
        if self.state == JobState.SUCCEEDED and not self.artifact_url:
            raise ValueError("succeeded status requires an artifact_url")
        if self.state == JobState.FAILED and not self.error_detail:
            raise ValueError("failed status requires an error_detail")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.state != JobState.PROCESSING

    @classmethod
    def processing(cls) -> "JobStatus":
        return cls(state=JobState.PROCESSING)

    @classmethod
    def succeeded(cls, artifact_url: str) -> "JobStatus":
        return cls(state=JobState.SUCCEEDED, artifact_url=artifact_url)

    @classmethod
    def failed(cls, detail: str, kind: FailureKind = FailureKind.ERROR) -> "JobStatus":
        return cls(state=JobState.FAILED, error_detail=detail, failure_kind=kind)


# ── API Request / Response Models ────────────────────────────────────────────

class GenerateBody(BaseModel):
    """POST /generate. Images arrive as data URLs, raw base64 or http(s) URLs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_url: Optional[str] = Field(None, description="Primary subject image")
    second_image_url: Optional[str] = Field(None, description="Second subject, enables composition")
    pipeline_kind: Optional[PipelineKind] = None

    prompt: Optional[Any] = None
    stage: Optional[Any] = None
    genre: Optional[Any] = None
    distance: Optional[Any] = None
    ending: Optional[Any] = None
    mode: Optional[Any] = None
    aspect_ratio: Optional[Any] = None
    movie_theme: Optional[Any] = None
    rewrite_text: Optional[Any] = None
    sliders: Optional[Any] = None

    def creative_params(self) -> CreativeParams:
        fields = self.model_dump(
            exclude={"image_url", "second_image_url", "pipeline_kind"},
            exclude_none=True,
        )
        return CreativeParams.model_validate(fields)


class GenerateResponse(BaseModel):
    id: str
    status: JobState = JobState.PROCESSING
    provider: ProviderId
    message: str = "Video generation started"


class StatusResponse(BaseModel):
    id: str
    status: JobState
    output: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[ProviderId] = None


class UploadBody(BaseModel):
    image: Optional[str] = None
    filename: Optional[str] = None
