"""Transcript merge policy and the shared prompt buffer."""

from __future__ import annotations

import threading
from typing import Callable, Optional


def merge_fragment(buffer: str, fragment: str) -> str:
    """Append ``fragment`` to ``buffer`` with at most one separating space."""
    if not fragment:
        return buffer
    if buffer and not buffer[-1].isspace():
        return f"{buffer} {fragment}"
    return buffer + fragment


class PromptBuffer:
    """Single owner of the prompt text.

    Manual edits replace the text, transcript fragments are appended with
    ``merge_fragment``. Both go through the same lock so writes apply in
    arrival order.
    """

    def __init__(self, text: str = "", on_change: Optional[Callable[[str], None]] = None) -> None:
        self._text = text
        self._lock = threading.RLock()
        self._on_change = on_change

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    def set_on_change(self, on_change: Optional[Callable[[str], None]]) -> None:
        self._on_change = on_change

    def set_text(self, text: str) -> None:
        with self._lock:
            if text == self._text:
                return
            self._text = text
            self._notify(text)

    def append_fragment(self, fragment: str) -> str:
        with self._lock:
            merged = merge_fragment(self._text, fragment)
            if merged != self._text:
                self._text = merged
                self._notify(merged)
            return merged

    def clear(self) -> None:
        self.set_text("")

    def _notify(self, text: str) -> None:
        if self._on_change:
            self._on_change(text)
