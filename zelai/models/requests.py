"""Request payloads for the WebSocket generation operations."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

SEED_MAX = 2_000_000_000
DIMENSION_MIN = 320
DIMENSION_MAX = 1344


class RequestPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ImageRequest(RequestPayload):
    """Text-to-image generation."""

    prompt: str
    style: Optional[str] = None
    format: Optional[str] = None
    negative_prompt: Optional[str] = Field(default=None, alias="negativePrompt")
    seed: Optional[int] = Field(default=None, ge=0, le=SEED_MAX)
    width: Optional[int] = Field(default=None, ge=DIMENSION_MIN, le=DIMENSION_MAX)
    height: Optional[int] = Field(default=None, ge=DIMENSION_MIN, le=DIMENSION_MAX)


class Img2ImgRequest(RequestPayload):
    """Edit an existing CDN image with a prompt."""

    image_id: str = Field(alias="imageId")
    prompt: str
    negative_prompt: Optional[str] = Field(default=None, alias="negativePrompt")
    seed: Optional[int] = Field(default=None, ge=0, le=SEED_MAX)
    width: Optional[int] = Field(default=None, ge=DIMENSION_MIN, le=DIMENSION_MAX)
    height: Optional[int] = Field(default=None, ge=DIMENSION_MIN, le=DIMENSION_MAX)
    resize_pad: Optional[bool] = Field(default=None, alias="resizePad")


class VideoRequest(RequestPayload):
    image_id: str = Field(alias="imageId")
    prompt: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=1, le=10)
    fps: Optional[int] = Field(default=None, ge=8, le=60)


class LlmStreamRequest(RequestPayload):
    """LLM generation options that are valid for streaming."""

    prompt: str
    system: Optional[str] = None
    memory: Optional[List[str]] = None
    use_random_seed: Optional[bool] = Field(default=None, alias="useRandomSeed")
    use_markdown: Optional[bool] = Field(default=None, alias="useMarkdown")
    image_id: Optional[str] = Field(default=None, alias="imageId")


class LlmRequest(LlmStreamRequest):
    json_format: Optional[bool] = Field(default=None, alias="jsonFormat")
    json_template: Optional[Dict[str, str]] = Field(default=None, alias="jsonTemplate")


class UpscaleRequest(RequestPayload):
    image_id: str = Field(alias="imageId")
    factor: Optional[int] = Field(default=None, ge=2, le=4)
    seed: Optional[int] = Field(default=None, ge=0, le=SEED_MAX)


class SttRequest(RequestPayload):
    """Speech-to-text; ``audio`` is base64 encoded."""

    audio: str
    audio_format: Optional[str] = Field(default=None, alias="audioFormat")
    language: Optional[str] = None
    prompt: Optional[str] = None


class TtsRequest(RequestPayload):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    text: str
    voice: Optional[str] = None
    language: Optional[str] = None
    realtime: Optional[bool] = None


class UsageRequest(RequestPayload):
    days: Optional[int] = Field(default=None, ge=1)
