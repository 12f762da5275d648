"""Stream subscriptions for requests that deliver incremental chunks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from pydantic import ValidationError

from zelai.models.frames import LlmChunkData, StreamKind, SttChunkData, TtsChunkData

if TYPE_CHECKING:
    from zelai.network.session import Session

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[..., None]
CompleteCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


def chunk_arguments(kind: StreamKind, data: Any) -> Optional[tuple[Any, ...]]:
    """Positional ``on_chunk`` arguments for a chunk frame, or ``None`` if empty."""

    payload = data if isinstance(data, dict) else {}
    try:
        if kind is StreamKind.LLM:
            llm = LlmChunkData.model_validate(payload)
            return (llm.chunk,) if llm.chunk else None
        if kind is StreamKind.STT:
            stt = SttChunkData.model_validate(payload)
            return (stt.chunk, stt.language) if stt.chunk else None
        tts = TtsChunkData.model_validate(payload)
        return (tts.audio, tts.text, tts.language) if tts.audio else None
    except ValidationError as exc:
        LOGGER.debug("Dropping %s chunk with unexpected payload: %s", kind.value, exc)
        return None


@dataclass
class StreamSubscription:
    request_id: str
    kind: StreamKind
    on_chunk: ChunkCallback
    on_complete: Optional[CompleteCallback] = None
    on_error: Optional[ErrorCallback] = None

    def chunk(self, *args: Any) -> None:
        try:
            self.on_chunk(*args)
        except Exception:  # noqa: BLE001
            LOGGER.exception("on_chunk callback failed for %s", self.request_id)

    def complete(self, value: Any) -> None:
        if self.on_complete is None:
            return
        try:
            self.on_complete(value)
        except Exception:  # noqa: BLE001
            LOGGER.exception("on_complete callback failed for %s", self.request_id)

    def fail(self, exc: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(exc)
        except Exception:  # noqa: BLE001
            LOGGER.exception("on_error callback failed for %s", self.request_id)


class StreamRegistry:
    """Stream callbacks keyed by request id, kept apart from the request table."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, StreamSubscription] = {}

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add(self, subscription: StreamSubscription) -> None:
        self._subscriptions[subscription.request_id] = subscription

    def get(self, request_id: str) -> Optional[StreamSubscription]:
        return self._subscriptions.get(request_id)

    def pop(self, request_id: str) -> Optional[StreamSubscription]:
        return self._subscriptions.pop(request_id, None)

    def pop_all(self) -> list[StreamSubscription]:
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        return subscriptions


class StreamController:
    """Handle returned by ``Session.start_stream``."""

    def __init__(
        self,
        session: Session,
        request_id: str,
        future: asyncio.Future[Any],
        *,
        parser: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self._session = session
        self.request_id = request_id
        self._future = future
        self._parser = parser

    @property
    def done(self) -> bool:
        return self._future.done()

    async def abort(self) -> bool:
        """Stop the stream; returns ``False`` when it had already finished."""

        return await self._session.abort(self.request_id)

    async def wait(self) -> Any:
        """Wait for the terminal frame's data."""

        data = await asyncio.shield(self._future)
        return self._parser(data) if self._parser else data
