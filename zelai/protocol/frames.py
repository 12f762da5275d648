"""Helpers for building/parsing generation WebSocket frames."""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel

from zelai.models.frames import ClientFrame, ServerFrame

Payload = Dict[str, Any] | BaseModel

AUTH = "auth"
CANCEL = "cancel"


def _payload_dict(payload: Optional[Payload]) -> Optional[Dict[str, Any]]:
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_none=True, by_alias=True)
    return payload


def new_request_id() -> str:
    """Return ``req_<epoch ms>_<random suffix>``."""

    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def build_frame(
    message_type: str,
    payload: Optional[Payload] = None,
    *,
    request_id: Optional[str] = None,
    stream: bool = False,
) -> Dict[str, Any]:
    """Construct a client frame dict ready for transport."""

    data = _payload_dict(payload)
    if stream:
        data = {**(data or {}), "stream": True}
    frame = ClientFrame(type=message_type, data=data, request_id=request_id)
    return frame.model_dump(by_alias=True, exclude_none=True)


def build_auth_frame(api_key: str) -> Dict[str, Any]:
    return build_frame(AUTH, {"apiKey": api_key})


def build_cancel_frame(request_id: str) -> Dict[str, Any]:
    return build_frame(CANCEL, request_id=request_id)


def parse_frame(raw: Dict[str, Any]) -> ServerFrame:
    """Validate and parse a raw server frame dict."""

    return ServerFrame.model_validate(raw)
