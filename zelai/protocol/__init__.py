from .frames import (
    AUTH,
    CANCEL,
    build_auth_frame,
    build_cancel_frame,
    build_frame,
    new_request_id,
    parse_frame,
)

__all__ = [
    "AUTH",
    "CANCEL",
    "build_auth_frame",
    "build_cancel_frame",
    "build_frame",
    "new_request_id",
    "parse_frame",
]
