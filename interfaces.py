"""Protocol interfaces used by the controllers."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Protocol

from models import AudioFrame, CaptureState, GenerationRequest, GenerationResult, SessionConfig, TranscriptEvent


class CaptureSource(Protocol):
    @property
    def state(self) -> CaptureState: ...

    def start(self, on_frame: Callable[[AudioFrame], None], token: int) -> None: ...

    def stop(self) -> None: ...


class TranscriptionSession(Protocol):
    def open(
        self,
        config: SessionConfig,
        token: int,
        on_event: Callable[[TranscriptEvent], None],
    ) -> None: ...

    def send(self, frame: AudioFrame) -> None: ...

    def close(self) -> None: ...


class ImageGenerator(Protocol):
    def generate(self, request: GenerationRequest) -> GenerationResult: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_image_model(self) -> str: ...

    def set_image_model(self, model: str) -> None: ...

    def get_transcription_model(self) -> str: ...

    def get_history_depth(self) -> int: ...

    def get_export_dir(self) -> Path: ...

    def get_system_instruction(self) -> str: ...

    def get_prompt_suffix(self) -> str: ...
