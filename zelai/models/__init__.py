from .frames import (
    AUTH_ERROR_CODE,
    CHUNK_FRAME_KINDS,
    TERMINAL_FRAME_TYPES,
    ClientFrame,
    ErrorData,
    FrameType,
    LlmChunkData,
    ServerFrame,
    SttChunkData,
    StreamKind,
    TtsChunkData,
)
from .requests import (
    ImageRequest,
    Img2ImgRequest,
    LlmRequest,
    LlmStreamRequest,
    RequestPayload,
    SttRequest,
    TtsRequest,
    UpscaleRequest,
    UsageRequest,
    VideoRequest,
)
from .responses import (
    ImageResponse,
    ImageResult,
    LlmResponse,
    LlmResult,
    RateLimitsResponse,
    SettingsResponse,
    SttResponse,
    SttResult,
    TtsResponse,
    TtsResult,
    UpscaleResponse,
    UsageResponse,
    VideoResponse,
    VideoResult,
)

__all__ = [
    "AUTH_ERROR_CODE",
    "CHUNK_FRAME_KINDS",
    "TERMINAL_FRAME_TYPES",
    "ClientFrame",
    "ErrorData",
    "FrameType",
    "LlmChunkData",
    "ServerFrame",
    "SttChunkData",
    "StreamKind",
    "TtsChunkData",
    "ImageRequest",
    "Img2ImgRequest",
    "LlmRequest",
    "LlmStreamRequest",
    "RequestPayload",
    "SttRequest",
    "TtsRequest",
    "UpscaleRequest",
    "UsageRequest",
    "VideoRequest",
    "ImageResponse",
    "ImageResult",
    "LlmResponse",
    "LlmResult",
    "RateLimitsResponse",
    "SettingsResponse",
    "SttResponse",
    "SttResult",
    "TtsResponse",
    "TtsResult",
    "UpscaleResponse",
    "UsageResponse",
    "VideoResponse",
    "VideoResult",
]
