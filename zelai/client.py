"""High-level client facade: typed generation operations over one session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Type, TypeVar

from pydantic import BaseModel

from zelai.config import ClientSettings
from zelai.config.settings import API_KEY_PREFIX
from zelai.models import (
    ImageRequest,
    ImageResponse,
    Img2ImgRequest,
    LlmRequest,
    LlmResponse,
    LlmStreamRequest,
    RateLimitsResponse,
    SettingsResponse,
    StreamKind,
    SttRequest,
    SttResponse,
    TtsRequest,
    TtsResponse,
    UpscaleRequest,
    UpscaleResponse,
    UsageRequest,
    UsageResponse,
    VideoRequest,
    VideoResponse,
)
from zelai.network.session import Session
from zelai.network.session_state import SessionState
from zelai.network.streams import StreamController
from zelai.network.transport import BaseTransport, DummyTransport, WebSocketTransport

LOGGER = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def default_transport_factory(settings: ClientSettings) -> BaseTransport:
    if settings.transport == "dummy":
        return DummyTransport(settings)
    return WebSocketTransport(settings)


@dataclass
class ZelAIClient:
    """Typed generation API on top of a single authenticated session."""

    settings: ClientSettings
    transport_factory: Callable[[ClientSettings], BaseTransport] = default_transport_factory

    session: Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        api_key = self.settings.api_key
        if not api_key:
            raise ValueError("API key is required")
        if not api_key.startswith(API_KEY_PREFIX):
            raise ValueError(f"Invalid API key format. Must start with {API_KEY_PREFIX!r}")
        self.session = Session(settings=self.settings, transport_factory=self.transport_factory)

    @classmethod
    def from_api_key(cls, api_key: str, **overrides: Any) -> ZelAIClient:
        transport_factory = overrides.pop("transport_factory", default_transport_factory)
        return cls(ClientSettings(api_key=api_key, **overrides), transport_factory=transport_factory)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> SessionState:
        return self.session.state

    def is_connected(self) -> bool:
        return self.session.is_connected()

    async def connect(self) -> None:
        await self.session.connect()

    async def close(self) -> None:
        await self.session.close()

    async def abort(self, request_id: str) -> bool:
        return await self.session.abort(request_id)

    async def __aenter__(self) -> ZelAIClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------ #
    # Request / response
    # ------------------------------------------------------------------ #
    async def generate_image(
        self, request: ImageRequest | Img2ImgRequest, *, timeout_ms: Optional[int] = None
    ) -> ImageResponse:
        """Text-to-image, or image-to-image when the request carries ``image_id``."""

        return await self._request("generate_image", request, ImageResponse, timeout_ms)

    async def generate_video(self, request: VideoRequest, *, timeout_ms: Optional[int] = None) -> VideoResponse:
        return await self._request("generate_video", request, VideoResponse, timeout_ms)

    async def generate_llm(self, request: LlmRequest, *, timeout_ms: Optional[int] = None) -> LlmResponse:
        return await self._request("generate_llm", request, LlmResponse, timeout_ms)

    async def upscale_image(self, request: UpscaleRequest, *, timeout_ms: Optional[int] = None) -> UpscaleResponse:
        return await self._request("generate_upscale", request, UpscaleResponse, timeout_ms)

    async def transcribe_audio(self, request: SttRequest, *, timeout_ms: Optional[int] = None) -> SttResponse:
        return await self._request("generate_stt", request, SttResponse, timeout_ms)

    async def generate_speech(self, request: TtsRequest, *, timeout_ms: Optional[int] = None) -> TtsResponse:
        return await self._request("generate_tts", request, TtsResponse, timeout_ms)

    # ------------------------------------------------------------------ #
    # Streaming
    # ------------------------------------------------------------------ #
    async def generate_llm_stream(
        self,
        request: LlmStreamRequest,
        *,
        on_chunk: Callable[[str], None],
        on_complete: Optional[Callable[[LlmResponse], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        timeout_ms: Optional[int] = None,
    ) -> StreamController:
        """Stream LLM text; ``on_chunk`` receives each text fragment."""

        if isinstance(request, LlmRequest) and (request.json_format or request.json_template):
            raise ValueError("JSON format is not supported for streaming LLM requests")
        return await self._stream(
            "generate_llm", request, StreamKind.LLM, LlmResponse, on_chunk, on_complete, on_error, timeout_ms
        )

    async def transcribe_audio_stream(
        self,
        request: SttRequest,
        *,
        on_chunk: Callable[[str, Optional[str]], None],
        on_complete: Optional[Callable[[SttResponse], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        timeout_ms: Optional[int] = None,
    ) -> StreamController:
        """Stream transcription; ``on_chunk`` receives ``(text, language)``."""

        return await self._stream(
            "generate_stt", request, StreamKind.STT, SttResponse, on_chunk, on_complete, on_error, timeout_ms
        )

    async def generate_speech_stream(
        self,
        request: TtsRequest,
        *,
        on_chunk: Callable[[str, str, Optional[str]], None],
        on_complete: Optional[Callable[[TtsResponse], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        timeout_ms: Optional[int] = None,
    ) -> StreamController:
        """Stream synthesized audio; ``on_chunk`` receives ``(audio, text, language)``."""

        return await self._stream(
            "generate_tts", request, StreamKind.TTS, TtsResponse, on_chunk, on_complete, on_error, timeout_ms
        )

    # ------------------------------------------------------------------ #
    # Account queries
    # ------------------------------------------------------------------ #
    async def get_settings(self, *, timeout_ms: Optional[int] = None) -> SettingsResponse:
        return await self._request("get_settings", None, SettingsResponse, self._query_timeout(timeout_ms))

    async def get_usage(
        self, request: Optional[UsageRequest] = None, *, timeout_ms: Optional[int] = None
    ) -> UsageResponse:
        payload = request.to_payload() if request is not None else {}
        return await self._request("get_usage", payload, UsageResponse, self._query_timeout(timeout_ms))

    async def get_rate_limits(self, *, timeout_ms: Optional[int] = None) -> RateLimitsResponse:
        return await self._request("get_rate_limits", None, RateLimitsResponse, self._query_timeout(timeout_ms))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _query_timeout(self, timeout_ms: Optional[int]) -> int:
        return timeout_ms if timeout_ms is not None else self.settings.query_timeout_ms

    async def _request(
        self,
        message_type: str,
        request: Any,
        model: Type[ResponseT],
        timeout_ms: Optional[int],
    ) -> ResponseT:
        data = await self.session.send_and_await(message_type, request, timeout_ms=timeout_ms)
        return model.model_validate(data or {})

    async def _stream(
        self,
        message_type: str,
        request: BaseModel,
        kind: StreamKind,
        model: Type[ResponseT],
        on_chunk: Callable[..., None],
        on_complete: Optional[Callable[[ResponseT], None]],
        on_error: Optional[Callable[[Exception], None]],
        timeout_ms: Optional[int],
    ) -> StreamController:
        def parse(data: Any) -> ResponseT:
            return model.model_validate(data or {})

        def complete(data: Any) -> None:
            if on_complete is not None:
                on_complete(parse(data))

        return await self.session.start_stream(
            message_type,
            request,
            kind=kind,
            on_chunk=on_chunk,
            on_complete=complete if on_complete is not None else None,
            on_error=on_error,
            timeout_ms=timeout_ms,
            parser=parse,
        )
