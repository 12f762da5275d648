"""Response payloads carried by terminal frames."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ImageResult(ResponsePayload):
    image_id: str = Field(alias="imageId")
    width: Optional[int] = None
    height: Optional[int] = None
    seed: Optional[int] = None


class ImageResponse(ResponsePayload):
    result: ImageResult


class UpscaleResponse(ResponsePayload):
    result: ImageResult


class VideoResult(ResponsePayload):
    video_id: str = Field(alias="videoId")
    duration: Optional[float] = None
    fps: Optional[int] = None


class VideoResponse(ResponsePayload):
    result: VideoResult


class LlmResult(ResponsePayload):
    text: str = ""
    json_data: Any = Field(default=None, alias="json")
    tokens_used: Optional[int] = Field(default=None, alias="tokensUsed")


class LlmResponse(ResponsePayload):
    result: LlmResult


class SttResult(ResponsePayload):
    text: str = ""
    language: Optional[str] = None


class SttResponse(ResponsePayload):
    result: SttResult


class TtsResult(ResponsePayload):
    audio: Optional[str] = None
    cdn_file_id: Optional[str] = Field(default=None, alias="cdnFileId")
    format: Optional[str] = None
    character_count: Optional[int] = Field(default=None, alias="characterCount")


class TtsResponse(ResponsePayload):
    result: TtsResult


class SettingsResponse(ResponsePayload):
    settings: Dict[str, Any] = Field(default_factory=dict)


class UsageResponse(ResponsePayload):
    usage: Dict[str, Any] = Field(default_factory=dict)


class RateLimitsResponse(ResponsePayload):
    rate_limits: List[Dict[str, Any]] = Field(default_factory=list, alias="rateLimits")
