"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class CaptureState(str, Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    STREAMING = "STREAMING"
    STOPPING = "STOPPING"
    ERRORED = "ERRORED"


class TranscriptionState(str, Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


class TranscriptKind(str, Enum):
    OPEN = "open"
    PARTIAL = "partial"
    CLOSED = "closed"
    ERROR = "error"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0
    token: int = 0


@dataclass
class TranscriptEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""


@dataclass(frozen=True)
class Snapshot:
    """Encoded surface pixels at one instant."""

    png_bytes: bytes
    width: int
    height: int
    mime_type: str = "image/png"


@dataclass(frozen=True)
class SessionConfig:
    model: str
    instruction: str
    transcription_model: str = "gummy-realtime-v1"
    sample_rate: int = 16000


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    image_bytes: bytes
    instruction: str
    mime_type: str = "image/png"


@dataclass(frozen=True)
class ImageFound:
    image_bytes: bytes
    mime_type: str = "image/png"


class _NotFound(Enum):
    NOT_FOUND = "not_found"


NOT_FOUND = _NotFound.NOT_FOUND

GenerationResult = Union[ImageFound, _NotFound]
