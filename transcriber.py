"""Live transcription session over DashScope's realtime omni API.

A session owns a websocket conversation configured for audio in, text out,
with input-audio transcription switched on. Captured PCM frames are queued
by ``send`` and pushed to the socket by a worker thread in capture order;
frames queued while the socket is still connecting go out once it opens.
Completed input transcriptions come back through ``on_event`` as
``PARTIAL`` events, one fragment per recognised utterance.
"""

from __future__ import annotations

import base64
import logging
import os
import threading
from queue import Empty, Full, Queue
from typing import Any, Callable, Optional

from errors import AUTH_FAILED, NETWORK_ERROR, TRANSPORT_ERROR
from models import AudioFrame, SessionConfig, TranscriptEvent, TranscriptKind, TranscriptionState

try:
    from dashscope.audio.qwen_omni import AudioFormat, MultiModality, OmniRealtimeConversation
except Exception:  # pragma: no cover
    AudioFormat = None  # type: ignore
    MultiModality = None  # type: ignore
    OmniRealtimeConversation = None  # type: ignore

LOGGER = logging.getLogger(__name__)

REALTIME_URL = "wss://dashscope.aliyuncs.com/api-ws/v1/realtime"
TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
TRANSCRIPTION_FAILED = "conversation.item.input_audio_transcription.failed"


def encode_pcm16(pcm: bytes) -> str:
    """Base64-encode raw PCM16 bytes for the realtime ``append_audio`` call."""
    return base64.b64encode(pcm).decode("ascii")


class DashscopeLiveTranscriber:
    def __init__(
        self,
        api_key: str,
        url: str = REALTIME_URL,
        queue_maxsize: int = 50,
        join_timeout_s: float = 0.5,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._queue_maxsize = queue_maxsize
        self._join_timeout_s = join_timeout_s
        self._lock = threading.Lock()
        self._state = TranscriptionState.IDLE
        self._token = 0
        self._config: Optional[SessionConfig] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._outbound: Queue[AudioFrame | None] = Queue(maxsize=queue_maxsize)
        self._on_event: Optional[Callable[[TranscriptEvent], None]] = None
        self._conversation: Any = None
        self.dropped_frames = 0

    @property
    def state(self) -> TranscriptionState:
        return self._state

    @property
    def token(self) -> int:
        return self._token

    def open(
        self,
        config: SessionConfig,
        token: int,
        on_event: Callable[[TranscriptEvent], None],
    ) -> None:
        with self._lock:
            if self._state not in (TranscriptionState.IDLE, TranscriptionState.CLOSED):
                return
            self._config = config
            self._token = token
            self._on_event = on_event
            self._outbound = Queue(maxsize=self._queue_maxsize)
            self._stop_event.clear()
            self._state = TranscriptionState.CONNECTING
            self._thread = threading.Thread(target=self._worker, daemon=True)
            self._thread.start()

    def send(self, frame: AudioFrame) -> None:
        if frame.token != self._token:
            LOGGER.debug("Dropping frame from stale capture token %s", frame.token)
            return
        if self._state not in (TranscriptionState.CONNECTING, TranscriptionState.OPEN):
            return
        config = self._config
        if config is not None and frame.sample_rate != config.sample_rate:
            LOGGER.warning(
                "Dropping %d Hz frame on a %d Hz session", frame.sample_rate, config.sample_rate
            )
            self.dropped_frames += 1
            return
        try:
            self._outbound.put_nowait(frame)
        except Full:
            self.dropped_frames += 1

    def close(self) -> None:
        with self._lock:
            if self._state in (
                TranscriptionState.IDLE,
                TranscriptionState.CLOSING,
                TranscriptionState.CLOSED,
            ):
                return
            self._state = TranscriptionState.CLOSING
            self._stop_event.set()
            try:
                self._outbound.put_nowait(None)
            except Full:
                pass
            thread = self._thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=self._join_timeout_s)
        with self._lock:
            self._state = TranscriptionState.CLOSED
        LOGGER.info("Transcription session %s closed (dropped=%d)", self._token, self.dropped_frames)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        """Connect, then pump queued frames until closed."""
        conversation = self._connect()
        if conversation is None:
            return
        with self._lock:
            if self._stop_event.is_set():
                self._close_conversation(conversation)
                return
            self._conversation = conversation
            self._state = TranscriptionState.OPEN
        self._emit(TranscriptEvent(kind=TranscriptKind.OPEN.value))

        while not self._stop_event.is_set():
            try:
                frame = self._outbound.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:  # Sentinel
                break
            if frame.token != self._token:
                continue
            try:
                conversation.append_audio(encode_pcm16(frame.pcm16_bytes))
            except Exception as exc:
                self._emit(self._to_error_event(exc))
                break

        self._conversation = None
        self._close_conversation(conversation)

    def _connect(self) -> Any:
        config = self._config
        if config is None:
            return None
        if OmniRealtimeConversation is None:
            self._emit(
                TranscriptEvent(
                    kind=TranscriptKind.ERROR.value,
                    code=TRANSPORT_ERROR,
                    message="dashscope is not installed",
                )
            )
            return None

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            self._emit(
                TranscriptEvent(
                    kind=TranscriptKind.ERROR.value,
                    code=AUTH_FAILED,
                    message="No API key configured",
                )
            )
            return None

        try:
            conversation = OmniRealtimeConversation(
                model=config.model,
                callback=_CallbackBridge(self, self._token),
                url=self._url,
                api_key=api_key,
            )
            conversation.connect()
            conversation.update_session(
                output_modalities=[MultiModality.TEXT],
                input_audio_format=AudioFormat.PCM_16000HZ_MONO_16BIT,
                enable_input_audio_transcription=True,
                input_audio_transcription_model=config.transcription_model,
                enable_turn_detection=True,
                turn_detection_type="server_vad",
                instructions=config.instruction,
            )
        except Exception as exc:
            self._emit(self._to_error_event(exc))
            return None
        LOGGER.info("Transcription session %s connected to %s", self._token, config.model)
        return conversation

    def _close_conversation(self, conversation: Any) -> None:
        try:
            conversation.close()
        except Exception as exc:
            LOGGER.warning("Closing realtime conversation failed: %s", exc)

    def _handle_server_event(self, token: int, response: Any) -> None:
        if token != self._token or not isinstance(response, dict):
            return
        kind = response.get("type", "")
        if kind == TRANSCRIPTION_COMPLETED:
            text = str(response.get("transcript", "")).strip()
            if text:
                self._emit(TranscriptEvent(kind=TranscriptKind.PARTIAL.value, text=text))
            return
        if kind == "error" or kind == TRANSCRIPTION_FAILED:
            error = response.get("error") or {}
            message = str(error.get("message", "")) if isinstance(error, dict) else str(error)
            self._emit(
                TranscriptEvent(
                    kind=TranscriptKind.ERROR.value,
                    code=TRANSPORT_ERROR,
                    message=message or kind,
                )
            )

    def _handle_remote_close(self, token: int, code: Any, reason: Any) -> None:
        if token != self._token:
            return
        LOGGER.info("Remote closed transcription session %s: %s %s", token, code, reason)
        self._emit(TranscriptEvent(kind=TranscriptKind.CLOSED.value, message=str(reason or "")))

    def _emit(self, event: TranscriptEvent) -> None:
        on_event = self._on_event
        if on_event is None:
            return
        if self._state in (TranscriptionState.CLOSING, TranscriptionState.CLOSED):
            return
        on_event(event)

    def _to_error_event(self, exc: Exception) -> TranscriptEvent:
        """Map an SDK/network exception to a standard error event."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low or "apikey" in low:
            code = AUTH_FAILED
        elif "timeout" in low or "network" in low or "connection" in low:
            code = NETWORK_ERROR
        else:
            code = TRANSPORT_ERROR
        return TranscriptEvent(
            kind=TranscriptKind.ERROR.value,
            code=code,
            message=message,
        )


class _CallbackBridge:
    """Routes SDK callbacks to the session that created the conversation."""

    def __init__(self, session: DashscopeLiveTranscriber, token: int) -> None:
        self._session = session
        self._token = token

    def on_open(self) -> None:
        LOGGER.debug("Realtime socket open for token %s", self._token)

    def on_event(self, response: Any) -> None:
        self._session._handle_server_event(self._token, response)

    def on_close(self, close_status_code: Any = None, close_msg: Any = None) -> None:
        self._session._handle_remote_close(self._token, close_status_code, close_msg)
