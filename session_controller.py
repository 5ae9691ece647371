"""State-machine based voice session orchestration."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import TRANSPORT_ERROR, CaptureError, CodedError, TranscriptionTransportError
from interfaces import CaptureSource, TranscriptionSession
from merge import PromptBuffer
from models import AudioFrame, SessionConfig, TranscriptEvent, TranscriptKind

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[], TranscriptionSession]
ListeningCallback = Callable[[bool], None]
ErrorCallback = Callable[[str, str], None]


class VoiceSessionController:
    """Couples one capture run to one transcription session.

    Every ``start_listening`` takes a fresh token. Frames are tagged with it
    by the recorder and routed to the session opened for that token, and
    events from any other token are ignored, so a late callback from a torn
    down session can never write into the prompt or reach a newer session.
    """

    def __init__(
        self,
        recorder: CaptureSource,
        session_factory: SessionFactory,
        prompt: PromptBuffer,
        config: SessionConfig,
        on_listening_change: Optional[ListeningCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._session_factory = session_factory
        self._prompt = prompt
        self._config = config
        self._on_listening_change = on_listening_change
        self._on_error = on_error

        self._lock = threading.RLock()
        self._listening = False
        self._token = 0
        self._session: Optional[TranscriptionSession] = None

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def token(self) -> int:
        return self._token

    def replace_session_factory(self, session_factory: SessionFactory) -> None:
        with self._lock:
            self._session_factory = session_factory

    def toggle_listening(self) -> None:
        if self._listening:
            self.stop_listening()
        else:
            self.start_listening()

    def start_listening(self) -> None:
        with self._lock:
            if self._listening:
                return
            self._token += 1
            token = self._token
            self._set_listening(True)
            try:
                session = self._session_factory()
                self._session = session
                session.open(
                    self._config,
                    token,
                    lambda event: self._handle_event(token, event),
                )
                self._recorder.start(lambda frame: self._route_frame(session, frame), token)
            except CaptureError as exc:
                self._teardown()
                self._report(exc)
            except Exception as exc:
                self._teardown()
                self._report(TranscriptionTransportError(TRANSPORT_ERROR, str(exc)))

    def stop_listening(self) -> None:
        with self._lock:
            self._teardown()

    def _route_frame(self, session: TranscriptionSession, frame: AudioFrame) -> None:
        if frame.token != self._token:
            return
        session.send(frame)

    def _handle_event(self, token: int, event: TranscriptEvent) -> None:
        with self._lock:
            if token != self._token or not self._listening:
                return
            kind = event.kind
            if kind == TranscriptKind.PARTIAL.value:
                self._prompt.append_fragment(event.text)
                return
            if kind == TranscriptKind.CLOSED.value:
                self._teardown()
                return
            if kind == TranscriptKind.ERROR.value:
                self._teardown()
                code = event.code or TRANSPORT_ERROR
                self._report(TranscriptionTransportError(code, event.message))

    def _teardown(self) -> None:
        self._safe_stop_recorder()
        session = self._session
        self._session = None
        if session is not None:
            self._safe_close_session(session)
        self._set_listening(False)

    def _report(self, exc: CodedError) -> None:
        LOGGER.error("Voice session failed with %s: %s", exc.code, exc.message)
        if self._on_error:
            self._on_error(exc.code, exc.message)

    def _safe_stop_recorder(self) -> None:
        try:
            self._recorder.stop()
        except Exception as exc:  # pragma: no cover
            LOGGER.warning("Recorder stop failed: %s", exc)

    def _safe_close_session(self, session: TranscriptionSession) -> None:
        try:
            session.close()
        except Exception as exc:  # pragma: no cover
            LOGGER.warning("Session close failed: %s", exc)

    def _set_listening(self, listening: bool) -> None:
        if self._listening == listening:
            return
        self._listening = listening
        if self._on_listening_change:
            self._on_listening_change(listening)
