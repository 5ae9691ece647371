"""Shared error codes, exceptions and user-facing messages."""

from __future__ import annotations

import json
import re

PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
ALREADY_ACTIVE = "ALREADY_ACTIVE"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
TRANSPORT_ERROR = "TRANSPORT_ERROR"
GENERATION_FAILED = "GENERATION_FAILED"
NO_IMAGE = "NO_IMAGE"
INVALID_IMAGE = "INVALID_IMAGE"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone permission is required in system settings.",
    DEVICE_UNAVAILABLE: "No microphone is available.",
    ALREADY_ACTIVE: "Voice capture is already running.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid or expired.",
    TRANSPORT_ERROR: "Voice connection dropped, start listening again.",
    GENERATION_FAILED: "An unexpected error occurred.",
    NO_IMAGE: "Sorry, no image was generated.",
    INVALID_IMAGE: "The image could not be decoded.",
}

_ENVELOPE_RE = re.compile(r'{"error":(.*)}', re.DOTALL)


class CodedError(Exception):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code))
        self.code = code

    @property
    def message(self) -> str:
        return str(self)


class CaptureError(CodedError):
    """Microphone could not be started; the recorder is back in STOPPED."""


class TranscriptionTransportError(CodedError):
    """The live transcription channel could not be opened or dropped mid-session."""


class GenerationError(CodedError):
    """The image-generation call failed; canvas and history are untouched."""


class SurfaceError(CodedError):
    pass


def parse_error_message(raw: str) -> str:
    """Return the message of a JSON error envelope embedded in ``raw``.

    SDKs often stringify the server body into the exception text, e.g.
    ``got status 400 {"error":{"code":400,"message":"bad image"}}``. When the
    envelope parses and carries a message, that message is returned,
    otherwise ``raw`` comes back unchanged.
    """
    match = _ENVELOPE_RE.search(raw)
    if match is None:
        return raw
    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError:
        return raw
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return raw
