import asyncio
import logging

import pytest

from zelai.config import ClientSettings
from zelai.models import StreamKind
from zelai.network.errors import (
    AuthenticationError,
    ClientClosedError,
    ConnectError,
    NotConnectedError,
    ReconnectFailedError,
    RemoteError,
    RequestTimeoutError,
    StreamAbortedError,
)
from zelai.network.session import Session
from zelai.network.session_state import SessionState
from zelai.network.transport.dummy import DummyTransport


def _settings(**overrides) -> ClientSettings:
    values = dict(
        api_key="zelai_pk_test",
        transport="dummy",
        reconnect_base_delay_ms=1,
        reconnect_max_delay_ms=5,
        heartbeat_interval_ms=60_000,
        auth_timeout_ms=500,
        request_timeout_ms=2_000,
        stream_timeout_ms=2_000,
        query_timeout_ms=2_000,
    )
    values.update(overrides)
    return ClientSettings(**values)


class _Factory:
    """Transport factory that keeps every transport it hands out."""

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.connect_error = None
        self.reject_auth_at: set[int] = set()
        self.transport_cls_at: dict[int, type[DummyTransport]] = {}
        self.transports: list[DummyTransport] = []
        self.created_at: list[float] = []

    def __call__(self, settings: ClientSettings) -> DummyTransport:
        index = len(self.transports)
        kwargs = dict(self.kwargs)
        if index in self.reject_auth_at:
            kwargs["reject_auth"] = True
        transport_cls = self.transport_cls_at.get(index, DummyTransport)
        transport = transport_cls(settings, connect_error=self.connect_error, **kwargs)
        self.transports.append(transport)
        self.created_at.append(asyncio.get_running_loop().time())
        return transport

    @property
    def current(self) -> DummyTransport:
        return self.transports[-1]


class _BinaryTransport(DummyTransport):
    """Fails to read queued ``binary`` frames the way a bad UTF-8 payload would."""

    async def receive(self):
        item = await super().receive()
        if item.get("type") == "binary":
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        return item


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def _request_id(transport: DummyTransport, message_type: str, index: int = 0) -> str:
    return transport.sent_of_type(message_type)[index]["requestId"]


async def _ready_session(**overrides) -> tuple[Session, _Factory]:
    factory = _Factory()
    session = Session(settings=_settings(**overrides), transport_factory=factory)
    await session.connect()
    return session, factory


@pytest.mark.asyncio
async def test_connect_authenticates_and_becomes_ready():
    session, factory = await _ready_session()

    assert session.state is SessionState.READY
    assert session.is_connected()
    assert factory.current.sent_of_type("auth") == [{"type": "auth", "data": {"apiKey": "zelai_pk_test"}}]
    assert session.tracker.authenticated

    await session.close()


@pytest.mark.asyncio
async def test_connect_rejected_credential_fails_without_reconnecting():
    factory = _Factory(reject_auth=True)
    session = Session(settings=_settings(), transport_factory=factory)

    with pytest.raises(AuthenticationError) as info:
        await session.connect()

    assert info.value.message == "Invalid API key"
    assert session.state is SessionState.DISCONNECTED
    assert not session.is_connected()
    assert factory.current.closed_with is not None
    await asyncio.sleep(0.02)
    assert len(factory.transports) == 1


@pytest.mark.asyncio
async def test_connect_socket_failure_raises_connect_error():
    factory = _Factory()
    factory.connect_error = OSError("connection refused")
    session = Session(settings=_settings(), transport_factory=factory)

    with pytest.raises(ConnectError) as info:
        await session.connect()

    assert isinstance(info.value.__cause__, OSError)
    assert info.value.code == "connect_failed"
    assert session.state is SessionState.DISCONNECTED
    await asyncio.sleep(0.02)
    assert len(factory.transports) == 1


@pytest.mark.asyncio
async def test_auth_without_answer_times_out():
    factory = _Factory(auto_auth=False)
    session = Session(settings=_settings(auth_timeout_ms=20), transport_factory=factory)

    with pytest.raises(AuthenticationError) as info:
        await session.connect()

    assert info.value.code == "auth_timeout"
    assert session.state is SessionState.DISCONNECTED
    assert factory.current.closed_with is not None


@pytest.mark.asyncio
async def test_concurrent_connect_calls_share_one_socket():
    factory = _Factory()
    session = Session(settings=_settings(), transport_factory=factory)

    await asyncio.gather(session.connect(), session.connect(), session.connect())
    await session.connect()

    assert len(factory.transports) == 1
    assert len(factory.current.sent_of_type("auth")) == 1
    await session.close()


@pytest.mark.asyncio
async def test_send_and_await_round_trip():
    session, factory = await _ready_session()
    transport = factory.current

    def echo(frame):
        if frame.get("requestId"):
            transport.feed(
                {"type": "generation_complete", "requestId": frame["requestId"], "data": {"echo": frame["data"]}}
            )

    transport.on_send = echo
    result = await session.send_and_await("generate_image", {"prompt": "a cat"})

    assert result == {"echo": {"prompt": "a cat"}}
    assert session.pending_count == 0
    request_id = _request_id(transport, "generate_image")
    assert request_id.startswith("req_")
    await session.close()


@pytest.mark.asyncio
async def test_send_requires_ready_session():
    session = Session(settings=_settings(), transport_factory=_Factory())

    with pytest.raises(NotConnectedError):
        await session.send_and_await("generate_image", {"prompt": "x"})
    with pytest.raises(NotConnectedError):
        await session.start_stream("generate_llm", {"prompt": "x"}, kind=StreamKind.LLM, on_chunk=print)

    assert session.pending_count == 0


@pytest.mark.asyncio
async def test_request_times_out_and_late_answer_is_dropped():
    session, factory = await _ready_session()
    transport = factory.current

    with pytest.raises(RequestTimeoutError):
        await session.send_and_await("generate_video", {"imageId": "img"}, timeout_ms=20)

    assert session.pending_count == 0
    request_id = _request_id(transport, "generate_video")
    transport.feed({"type": "generation_complete", "requestId": request_id, "data": {}})
    await asyncio.sleep(0.01)
    assert session.is_connected()
    await session.close()


@pytest.mark.asyncio
async def test_answer_inside_timeout_window_resolves():
    session, factory = await _ready_session()
    transport = factory.current

    task = asyncio.create_task(session.send_and_await("generate_llm", {"prompt": "x"}, timeout_ms=200))
    await _wait_for(lambda: transport.sent_of_type("generate_llm"))
    await asyncio.sleep(0.02)
    transport.feed(
        {"type": "generation_complete", "requestId": _request_id(transport, "generate_llm"), "data": {"ok": True}}
    )

    assert await task == {"ok": True}
    await session.close()


@pytest.mark.asyncio
async def test_error_frame_rejects_only_its_request():
    session, factory = await _ready_session()
    transport = factory.current

    first = asyncio.create_task(session.send_and_await("generate_image", {"prompt": "a"}))
    second = asyncio.create_task(session.send_and_await("generate_video", {"imageId": "b"}))
    await _wait_for(lambda: transport.sent_of_type("generate_image") and transport.sent_of_type("generate_video"))

    transport.feed(
        {
            "type": "error",
            "requestId": _request_id(transport, "generate_image"),
            "data": {"code": "INVALID_PROMPT", "message": "bad prompt"},
        }
    )
    with pytest.raises(RemoteError) as info:
        await first
    assert info.value.code == "INVALID_PROMPT"
    assert info.value.message == "bad prompt"
    assert not second.done()

    transport.feed(
        {"type": "generation_complete", "requestId": _request_id(transport, "generate_video"), "data": {"v": 1}}
    )
    assert await second == {"v": 1}
    assert session.pending_count == 0
    await session.close()


@pytest.mark.asyncio
async def test_error_frame_without_code_uses_default():
    session, factory = await _ready_session()
    transport = factory.current

    task = asyncio.create_task(session.send_and_await("generate_tts", {"text": "hi"}))
    await _wait_for(lambda: transport.sent_of_type("generate_tts"))
    transport.feed({"type": "error", "requestId": _request_id(transport, "generate_tts")})

    with pytest.raises(RemoteError) as info:
        await task
    assert info.value.code == "remote_error"
    assert info.value.message == "Unknown error"
    await session.close()


@pytest.mark.asyncio
async def test_error_frame_with_null_message_still_rejects():
    session, factory = await _ready_session()
    transport = factory.current
    errors = []

    task = asyncio.create_task(session.send_and_await("generate_image", {"prompt": "a"}))
    controller = await session.start_stream(
        "generate_llm", {"prompt": "b"}, kind=StreamKind.LLM, on_chunk=print, on_error=errors.append
    )
    await _wait_for(lambda: transport.sent_of_type("generate_image"))

    transport.feed({"type": "error", "requestId": _request_id(transport, "generate_image"), "data": {"message": None}})
    transport.feed({"type": "error", "requestId": controller.request_id, "data": {"code": None, "message": None}})

    with pytest.raises(RemoteError) as info:
        await task
    assert info.value.message == "Unknown error"
    assert info.value.code == "remote_error"
    with pytest.raises(RemoteError):
        await controller.wait()
    assert len(errors) == 1 and errors[0].message == "Unknown error"
    assert session.pending_count == 0 and session.stream_count == 0
    await session.close()


@pytest.mark.asyncio
async def test_error_frame_with_numeric_code_keeps_code_as_text():
    session, factory = await _ready_session()
    transport = factory.current

    task = asyncio.create_task(session.send_and_await("generate_video", {"imageId": "img"}))
    await _wait_for(lambda: transport.sent_of_type("generate_video"))
    transport.feed(
        {
            "type": "error",
            "requestId": _request_id(transport, "generate_video"),
            "data": {"code": 429, "message": "slow down"},
        }
    )

    with pytest.raises(RemoteError) as info:
        await asyncio.wait_for(task, 0.5)
    assert info.value.code == "429"
    assert info.value.message == "slow down"
    await session.close()


@pytest.mark.asyncio
async def test_request_timeout_does_not_fire_early():
    session, _ = await _ready_session()
    loop = asyncio.get_running_loop()

    started = loop.time()
    with pytest.raises(RequestTimeoutError):
        await session.send_and_await("generate_image", {"prompt": "a"}, timeout_ms=50)
    elapsed = loop.time() - started

    assert elapsed >= 0.049
    assert elapsed < 1.0
    await session.close()


@pytest.mark.asyncio
async def test_abnormal_close_replays_pending_request_once():
    session, factory = await _ready_session()
    first = factory.current

    task = asyncio.create_task(session.send_and_await("generate_llm", {"prompt": "hello"}))
    await _wait_for(lambda: first.sent_of_type("generate_llm"))
    request_id = _request_id(first, "generate_llm")

    first.drop()
    await _wait_for(lambda: len(factory.transports) == 2 and session.state is SessionState.READY)

    second = factory.transports[1]
    replayed = second.sent_of_type("generate_llm")
    assert len(replayed) == 1
    assert replayed[0]["requestId"] == request_id
    assert replayed[0]["data"] == {"prompt": "hello"}
    assert not task.done()

    second.feed({"type": "generation_complete", "requestId": request_id, "data": {"result": {"text": "hi"}}})
    assert await task == {"result": {"text": "hi"}}
    assert session.tracker.reconnect_attempts == 0
    assert len(first.sent_of_type("generate_llm")) == 1
    await session.close()


@pytest.mark.asyncio
async def test_reconnect_gives_up_after_max_attempts():
    session, factory = await _ready_session(reconnect_max_attempts=2)
    transport = factory.current
    errors = []

    task = asyncio.create_task(session.send_and_await("generate_image", {"prompt": "a"}))
    await _wait_for(lambda: transport.sent_of_type("generate_image"))
    await session.start_stream(
        "generate_llm", {"prompt": "b"}, kind=StreamKind.LLM, on_chunk=print, on_error=errors.append
    )

    factory.connect_error = OSError("refused")
    transport.drop()

    with pytest.raises(ReconnectFailedError):
        await task
    assert session.state is SessionState.DISCONNECTED
    assert len(factory.transports) == 3
    assert len(errors) == 1 and isinstance(errors[0], ReconnectFailedError)
    assert session.pending_count == 0 and session.stream_count == 0
    await session.close()


@pytest.mark.asyncio
async def test_receive_failure_closes_old_socket_before_reconnecting():
    factory = _Factory()
    factory.transport_cls_at[0] = _BinaryTransport
    session = Session(settings=_settings(), transport_factory=factory)
    await session.connect()
    first = factory.current

    task = asyncio.create_task(session.send_and_await("generate_llm", {"prompt": "hello"}))
    await _wait_for(lambda: first.sent_of_type("generate_llm"))
    request_id = _request_id(first, "generate_llm")

    first.feed({"type": "binary"})
    await _wait_for(lambda: len(factory.transports) == 2 and session.state is SessionState.READY)

    assert first.closed_with == (1011, "receive failed")
    assert not first.is_open
    second = factory.transports[1]
    assert [frame["requestId"] for frame in second.sent_of_type("generate_llm")] == [request_id]

    second.feed({"type": "generation_complete", "requestId": request_id, "data": {"ok": True}})
    assert await task == {"ok": True}
    await session.close()


@pytest.mark.asyncio
async def test_reconnect_delays_double_up_to_ceiling(caplog):
    caplog.set_level(logging.INFO, logger="zelai.network.session")
    session, factory = await _ready_session(
        reconnect_base_delay_ms=20, reconnect_max_delay_ms=50, reconnect_max_attempts=4
    )
    loop = asyncio.get_running_loop()

    factory.connect_error = OSError("refused")
    dropped_at = loop.time()
    factory.current.drop()
    await _wait_for(lambda: session.state is SessionState.DISCONNECTED and len(factory.transports) == 5)

    delays = [record.args[0] for record in caplog.records if record.msg.startswith("Reconnecting in")]
    assert delays == pytest.approx([0.02, 0.04, 0.05, 0.05])
    attempts_at = [dropped_at] + factory.created_at[1:]
    gaps = [later - earlier for earlier, later in zip(attempts_at, attempts_at[1:])]
    for gap, delay in zip(gaps, delays):
        assert gap >= delay - 0.001
    await session.close()


@pytest.mark.asyncio
async def test_auth_rejected_during_reconnect_retries_and_replays_once(caplog):
    caplog.set_level(logging.WARNING, logger="zelai.network.session")
    factory = _Factory()
    factory.reject_auth_at = {1}
    session = Session(settings=_settings(), transport_factory=factory)
    await session.connect()
    first = factory.current

    task = asyncio.create_task(session.send_and_await("generate_llm", {"prompt": "hello"}))
    await _wait_for(lambda: first.sent_of_type("generate_llm"))
    request_id = _request_id(first, "generate_llm")

    first.drop()
    await _wait_for(lambda: len(factory.transports) == 3 and session.state is SessionState.READY)

    rejected, accepted = factory.transports[1], factory.transports[2]
    assert rejected.sent_of_type("generate_llm") == []
    assert rejected.closed_with is not None and not rejected.is_open
    assert [frame["requestId"] for frame in accepted.sent_of_type("generate_llm")] == [request_id]
    assert any(record.msg.startswith("Reconnect attempt") for record in caplog.records)
    assert session.tracker.reconnect_attempts == 0
    assert not task.done()

    accepted.feed({"type": "generation_complete", "requestId": request_id, "data": {"text": "hi"}})
    assert await task == {"text": "hi"}
    await session.close()


@pytest.mark.asyncio
async def test_normal_close_does_not_reconnect():
    session, factory = await _ready_session()

    factory.current.drop(code=1000, reason="bye")
    await _wait_for(lambda: session.state is SessionState.DISCONNECTED)
    await asyncio.sleep(0.02)

    assert len(factory.transports) == 1
    assert not session.is_connected()
    await session.close()


@pytest.mark.asyncio
async def test_abnormal_close_without_auto_reconnect_disconnects():
    session, factory = await _ready_session(auto_reconnect=False)

    factory.current.drop()
    await _wait_for(lambda: session.state is SessionState.DISCONNECTED)
    await asyncio.sleep(0.02)

    assert len(factory.transports) == 1
    await session.close()


@pytest.mark.asyncio
async def test_llm_stream_delivers_chunks_then_completes():
    session, factory = await _ready_session()
    transport = factory.current
    chunks, completed, errors = [], [], []

    controller = await session.start_stream(
        "generate_llm",
        {"prompt": "hi"},
        kind=StreamKind.LLM,
        on_chunk=chunks.append,
        on_complete=completed.append,
        on_error=errors.append,
    )
    sent = transport.sent_of_type("generate_llm")[0]
    assert sent["data"] == {"prompt": "hi", "stream": True}
    assert sent["requestId"] == controller.request_id

    transport.feed({"type": "llm_chunk", "requestId": controller.request_id, "data": {"chunk": "hi"}})
    transport.feed({"type": "llm_chunk", "requestId": controller.request_id, "data": {"chunk": ""}})
    transport.feed(
        {"type": "generation_complete", "requestId": controller.request_id, "data": {"result": {"text": "hi"}}}
    )

    assert await controller.wait() == {"result": {"text": "hi"}}
    assert chunks == ["hi"]
    assert completed == [{"result": {"text": "hi"}}]
    assert errors == []
    assert controller.done
    assert session.pending_count == 0 and session.stream_count == 0
    await session.close()


@pytest.mark.asyncio
async def test_interleaved_streams_stay_isolated():
    session, factory = await _ready_session()
    transport = factory.current
    llm_chunks, stt_chunks = [], []

    llm = await session.start_stream(
        "generate_llm", {"prompt": "p"}, kind=StreamKind.LLM, on_chunk=llm_chunks.append
    )
    stt = await session.start_stream(
        "generate_stt",
        {"audio": "AAAA"},
        kind=StreamKind.STT,
        on_chunk=lambda text, language: stt_chunks.append((text, language)),
    )

    transport.feed({"type": "llm_chunk", "requestId": llm.request_id, "data": {"chunk": "one"}})
    transport.feed({"type": "stt_chunk", "requestId": stt.request_id, "data": {"chunk": "hola", "language": "es"}})
    transport.feed({"type": "stt_chunk", "requestId": llm.request_id, "data": {"chunk": "wrong kind"}})
    transport.feed({"type": "llm_chunk", "requestId": llm.request_id, "data": {"chunk": "two"}})
    transport.feed({"type": "error", "requestId": stt.request_id, "data": {"message": "stt failed"}})
    transport.feed({"type": "generation_complete", "requestId": llm.request_id, "data": {"result": {}}})

    assert await llm.wait() == {"result": {}}
    with pytest.raises(RemoteError):
        await stt.wait()
    assert llm_chunks == ["one", "two"]
    assert stt_chunks == [("hola", "es")]
    await session.close()


@pytest.mark.asyncio
async def test_abort_sends_cancel_and_silences_callbacks():
    session, factory = await _ready_session()
    transport = factory.current
    chunks, completed, errors = [], [], []

    controller = await session.start_stream(
        "generate_tts",
        {"text": "hello"},
        kind=StreamKind.TTS,
        on_chunk=lambda audio, text, language: chunks.append(audio),
        on_complete=completed.append,
        on_error=errors.append,
    )

    assert await controller.abort() is True
    assert transport.sent_of_type("cancel") == [{"type": "cancel", "requestId": controller.request_id}]
    assert session.pending_count == 0 and session.stream_count == 0

    transport.feed({"type": "tts_chunk", "requestId": controller.request_id, "data": {"audio": "AAA", "text": "hi"}})
    transport.feed({"type": "generation_complete", "requestId": controller.request_id, "data": {}})
    await asyncio.sleep(0.01)

    assert chunks == [] and completed == [] and errors == []
    with pytest.raises(StreamAbortedError):
        await controller.wait()
    assert await controller.abort() is False
    assert len(transport.sent_of_type("cancel")) == 1
    await session.close()


@pytest.mark.asyncio
async def test_abort_after_completion_is_noop():
    session, factory = await _ready_session()
    transport = factory.current

    controller = await session.start_stream("generate_llm", {"prompt": "x"}, kind=StreamKind.LLM, on_chunk=print)
    transport.feed({"type": "generation_complete", "requestId": controller.request_id, "data": {"ok": 1}})
    await controller.wait()

    assert await session.abort(controller.request_id) is False
    assert transport.sent_of_type("cancel") == []
    await session.close()


@pytest.mark.asyncio
async def test_stream_timeout_reports_error_once():
    session, factory = await _ready_session()
    errors = []

    controller = await session.start_stream(
        "generate_llm", {"prompt": "x"}, kind=StreamKind.LLM, on_chunk=print, on_error=errors.append, timeout_ms=20
    )

    with pytest.raises(RequestTimeoutError):
        await controller.wait()
    assert len(errors) == 1 and isinstance(errors[0], RequestTimeoutError)
    assert session.stream_count == 0
    await session.close()


@pytest.mark.asyncio
async def test_orphan_and_unknown_frames_are_ignored():
    session, factory = await _ready_session()
    transport = factory.current

    transport.feed({"type": "llm_chunk", "requestId": "req_0_missing", "data": {"chunk": "x"}})
    transport.feed({"type": "generation_complete", "requestId": "req_0_missing", "data": {}})
    transport.feed({"type": "error", "requestId": "req_0_missing", "data": {"message": "late"}})
    transport.feed({"type": "generation_complete", "data": {}})
    transport.feed({"type": "something_new", "data": {}})
    transport.feed({"type": "pong"})
    transport.feed({"data": "no type"})
    transport.feed({"type": "error", "data": {"message": "server hiccup"}})

    transport.on_send = lambda frame: frame.get("requestId") and transport.feed(
        {"type": "settings_response", "requestId": frame["requestId"], "data": {"settings": {}}}
    )
    assert await session.send_and_await("get_settings") == {"settings": {}}
    assert session.is_connected()
    await session.close()


@pytest.mark.asyncio
async def test_close_rejects_pending_before_closing_socket():
    session, factory = await _ready_session()
    transport = factory.current
    observed = []
    transport.on_close = lambda code, reason: observed.append((code, reason, session.pending_count))

    first = asyncio.create_task(session.send_and_await("generate_image", {"prompt": "a"}))
    second = asyncio.create_task(session.send_and_await("generate_image", {"prompt": "b"}))
    await _wait_for(lambda: len(transport.sent_of_type("generate_image")) == 2)

    await session.close()

    assert observed == [(1000, "Client closed", 0)]
    for task in (first, second):
        with pytest.raises(ClientClosedError) as info:
            await task
        assert info.value.message == "Client closed"
    assert session.state is SessionState.DISCONNECTED
    assert not session.is_connected()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_final():
    session, factory = await _ready_session()

    await session.close()
    await session.close()

    assert factory.current.closed_with == (1000, "Client closed")
    with pytest.raises(ClientClosedError):
        await session.connect()
    with pytest.raises(ClientClosedError):
        await session.send_and_await("get_settings")


@pytest.mark.asyncio
async def test_close_stops_reconnection():
    session, factory = await _ready_session(reconnect_base_delay_ms=50, reconnect_max_delay_ms=50)

    factory.current.drop()
    await _wait_for(lambda: session.state is SessionState.RECONNECTING)
    await session.close()
    await asyncio.sleep(0.08)

    assert len(factory.transports) == 1
    assert session.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_heartbeat_pings_while_ready():
    session, factory = await _ready_session(heartbeat_interval_ms=5)
    transport = factory.current

    await _wait_for(lambda: transport.pings >= 2)
    await session.close()
    pings = transport.pings
    await asyncio.sleep(0.03)

    assert transport.pings == pings


@pytest.mark.asyncio
async def test_async_context_manager_connects_and_closes():
    factory = _Factory()

    async with Session(settings=_settings(), transport_factory=factory) as session:
        assert session.is_connected()

    assert session.state is SessionState.DISCONNECTED
    assert factory.current.closed_with == (1000, "Client closed")
