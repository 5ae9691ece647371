"""Snapshot-based undo/redo history for a Surface."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

from models import Snapshot
from surface import Surface

LOGGER = logging.getLogger(__name__)


class HistoryManager:
    """Undo and redo stacks of surface snapshots.

    Callers take a ``snapshot`` right before mutating the surface, so every
    undo entry is the pre-image of one operation. ``undo``/``redo`` only move
    snapshots between the stacks and hand the popped one back; drawing it onto
    the surface is up to the caller. The undo stack keeps at most
    ``max_depth`` entries and discards the oldest first.
    """

    def __init__(self, max_depth: int = 50) -> None:
        if max_depth <= 0:
            raise ValueError("max_depth must be positive")
        self.max_depth = max_depth
        self._undo: Deque[Snapshot] = deque(maxlen=max_depth)
        self._redo: Deque[Snapshot] = deque(maxlen=max_depth)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def snapshot(self, surface: Surface) -> None:
        if len(self._undo) == self.max_depth:
            LOGGER.debug("History full at %d entries, dropping oldest", self.max_depth)
        self._undo.append(surface.snapshot())
        self._redo.clear()

    def undo(self, surface: Surface) -> Optional[Snapshot]:
        if not self._undo:
            return None
        previous = self._undo.pop()
        self._redo.append(surface.snapshot())
        return previous

    def redo(self, surface: Surface) -> Optional[Snapshot]:
        if not self._redo:
            return None
        following = self._redo.pop()
        self._undo.append(surface.snapshot())
        return following

    def reset(self) -> None:
        self._undo.clear()
        self._redo.clear()
