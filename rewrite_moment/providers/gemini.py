"""
Compose step: Gemini image generation via the REST generateContent endpoint.

Both subject photos go in as inline reference parts together with the
compose instruction. The endpoint answers synchronously; the composed still
comes back as an inline image part.

Known soft failure: a 200 response whose parts hold only text (no image).
That is raised as ArtifactMissing so the orchestrator can retry it.
"""

import logging
from typing import Optional

from ..errors import ArtifactMissing, ModerationRejected, ValidationError
from ..models import JobStatus, ProviderCall, ProviderId
from .base import ComposeAdapter

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

SAFETY_FINISH_REASONS = {"SAFETY", "IMAGE_SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}

SUBJECT_LABELS = [
    "This is the first subject's reference photo.",
    "This is the second subject's reference photo.",
]


def _inline_part(part: dict) -> Optional[dict]:
    # REST responses use camelCase; some API versions answer in snake_case
    return part.get("inlineData") or part.get("inline_data")


class GeminiComposeAdapter(ComposeAdapter):
    provider_id = ProviderId.GEMINI
    api_base = API_BASE
    timeout = 120.0

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash-preview-image-generation", transport=None):
        super().__init__(api_key, transport=transport)
        self.model = model

    def _build_body(self, call: ProviderCall) -> dict:
        parts = []
        for index, image in enumerate(call.images[:2]):
            parts.append({"inlineData": {"mimeType": image.mime_type, "data": image.to_base64()}})
            parts.append({"text": SUBJECT_LABELS[index]})

        instruction = call.prompt.instruction_text
        if call.prompt.negative_text:
            instruction += f"\n\nAvoid: {call.prompt.negative_text}"
        parts.append({"text": instruction})

        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "temperature": 0.7,
            },
        }

    async def compose(self, call: ProviderCall) -> JobStatus:
        self.require_credentials()
        if not call.images:
            raise ValidationError("Compose step needs at least one subject image", provider=self.name)

        logger.info(f"Gemini compose attempt {call.attempt_number}: {len(call.images)} subject(s), model={self.model}")

        result = await self._request(
            "POST",
            f"{self.api_base}/models/{self.model}:generateContent",
            params={"key": self.api_key},
            json=self._build_body(call),
        )
        return self.parse_response(result)

    def parse_response(self, result: dict) -> JobStatus:
        feedback = result.get("promptFeedback")
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if block_reason:
            raise ModerationRejected(f"Gemini blocked the prompt ({block_reason})", provider=self.name)

        candidates = result.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise ArtifactMissing("Gemini returned no candidates", provider=self.name)

        candidate = candidates[0]
        if not isinstance(candidate, dict):
            raise ArtifactMissing("Gemini returned a malformed candidate", provider=self.name)

        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        for part in parts if isinstance(parts, list) else []:
            if not isinstance(part, dict):
                continue
            inline = _inline_part(part)
            if isinstance(inline, dict) and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return JobStatus.succeeded(f"data:{mime_type};base64,{inline['data']}")

            file_data = part.get("fileData") or part.get("file_data")
            if isinstance(file_data, dict):
                file_uri = file_data.get("fileUri") or file_data.get("file_uri")
                if file_uri:
                    return JobStatus.succeeded(file_uri)

        finish_reason = str(candidate.get("finishReason") or "")
        if finish_reason in SAFETY_FINISH_REASONS:
            raise ModerationRejected(f"Gemini withheld the image ({finish_reason})", provider=self.name)

        raise ArtifactMissing("Gemini response contained no image data", provider=self.name)
