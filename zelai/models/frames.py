"""Wire frames exchanged over the generation WebSocket."""

from __future__ import annotations

import enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FrameType(enum.Enum):
    """Closed set of server frame tags understood by the session."""

    AUTH_SUCCESS = "auth_success"
    ERROR = "error"
    GENERATION_COMPLETE = "generation_complete"
    SETTINGS_RESPONSE = "settings_response"
    LLM_CHUNK = "llm_chunk"
    STT_CHUNK = "stt_chunk"
    TTS_CHUNK = "tts_chunk"
    PONG = "pong"
    UNKNOWN = "unknown"


class StreamKind(enum.Enum):
    LLM = "llm"
    STT = "stt"
    TTS = "tts"


TERMINAL_FRAME_TYPES = frozenset({FrameType.GENERATION_COMPLETE, FrameType.SETTINGS_RESPONSE})

CHUNK_FRAME_KINDS: Dict[FrameType, StreamKind] = {
    FrameType.LLM_CHUNK: StreamKind.LLM,
    FrameType.STT_CHUNK: StreamKind.STT,
    FrameType.TTS_CHUNK: StreamKind.TTS,
}

AUTH_ERROR_CODE = "AUTH_ERROR"


class ClientFrame(BaseModel):
    """Frame sent from the client: ``{type, data?, requestId?}``."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    data: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = Field(default=None, alias="requestId")


class ServerFrame(BaseModel):
    """Frame received from the service: ``{type, requestId?, data?}``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    request_id: Optional[str] = Field(default=None, alias="requestId")
    data: Any = None

    @property
    def kind(self) -> FrameType:
        try:
            return FrameType(self.type)
        except ValueError:
            return FrameType.UNKNOWN


def _scalar_text(value: Any) -> Any:
    """Coerce numeric/boolean scalars to text; ``None`` becomes empty."""

    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


class ErrorData(BaseModel):
    """Payload of an ``error`` frame; any shape the service sends is accepted."""

    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    message: str = "Unknown error"

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        data = dict(value)
        code = data.get("code")
        data["code"] = str(code) if code not in (None, "") else None
        message = data.get("message")
        data["message"] = str(message) if message else "Unknown error"
        return data


class LlmChunkData(BaseModel):
    model_config = ConfigDict(extra="allow")

    chunk: str = ""

    @field_validator("chunk", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _scalar_text(value)


class SttChunkData(BaseModel):
    model_config = ConfigDict(extra="allow")

    chunk: str = ""
    language: Optional[str] = None

    @field_validator("chunk", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _scalar_text(value)

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, value: Any) -> Any:
        return None if value is None else _scalar_text(value)


class TtsChunkData(BaseModel):
    model_config = ConfigDict(extra="allow")

    audio: str = ""
    text: str = ""
    language: Optional[str] = None

    @field_validator("audio", "text", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return _scalar_text(value)

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, value: Any) -> Any:
        return None if value is None else _scalar_text(value)
