"""Drawing workspace: surface edits, history and generation rounds."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from errors import GENERATION_FAILED, NO_IMAGE, GenerationError, SurfaceError
from history import HistoryManager
from interfaces import ImageGenerator
from merge import PromptBuffer
from models import GenerationRequest, ImageFound
from surface import BLACK, DEFAULT_PEN_WIDTH, Color, Point, Surface, decode_image

LOGGER = logging.getLogger(__name__)

EXPORT_PREFIX = "codraw"


class DrawingWorkspace:
    """Every mutating call snapshots the surface first, then changes it."""

    def __init__(
        self,
        surface: Surface,
        history: HistoryManager,
        generator: ImageGenerator,
        prompt: PromptBuffer,
        model: str,
        prompt_suffix: str = "",
    ) -> None:
        self.surface = surface
        self.history = history
        self.prompt = prompt
        self.model = model
        self.prompt_suffix = prompt_suffix
        self.pen_color: Color = BLACK
        self.pen_width = DEFAULT_PEN_WIDTH
        self._generator = generator
        self._busy = threading.Event()
        self._submit_lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.is_set()

    def replace_generator(self, generator: ImageGenerator) -> None:
        self._generator = generator

    # ------------------------------------------------------------------
    # Canvas edits
    # ------------------------------------------------------------------

    def begin_stroke(self, point: Point) -> None:
        self.history.snapshot(self.surface)
        self.surface.begin_stroke(point, self.pen_color, self.pen_width)

    def extend_stroke(self, point: Point) -> None:
        self.surface.extend_stroke(point)

    def end_stroke(self) -> None:
        self.surface.end_stroke()

    def clear(self) -> None:
        self.history.snapshot(self.surface)
        self.surface.clear()

    def undo(self) -> bool:
        snapshot = self.history.undo(self.surface)
        if snapshot is None:
            return False
        self.surface.restore(snapshot)
        return True

    def redo(self) -> bool:
        snapshot = self.history.redo(self.surface)
        if snapshot is None:
            return False
        self.surface.restore(snapshot)
        return True

    def import_image(self, source: Union[Path, bytes]) -> None:
        data = source if isinstance(source, bytes) else Path(source).read_bytes()
        self._apply_background(data)

    def export(self, directory: Path) -> Path:
        return self.surface.export(directory, prefix=EXPORT_PREFIX)

    def _apply_background(self, data: bytes) -> None:
        # decode before touching history so a bad payload leaves no entry
        decode_image(data)
        self.history.snapshot(self.surface)
        self.surface.composite_background(data)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def build_request(self) -> GenerationRequest:
        text = self.prompt.text.strip()
        if not text:
            raise GenerationError(GENERATION_FAILED, "Prompt is empty.")
        instruction = f"{text}. {self.prompt_suffix}".strip() if self.prompt_suffix else text
        return GenerationRequest(
            model=self.model,
            image_bytes=self.surface.to_png(),
            instruction=instruction,
        )

    def begin_request(self) -> GenerationRequest:
        """Claim the workspace for one round and build its request.

        Call on the UI thread; the claim holds until ``finish_request``.
        """
        with self._submit_lock:
            if self._busy.is_set():
                raise GenerationError(GENERATION_FAILED, "A generation request is already in progress.")
            self._busy.set()
        try:
            return self.build_request()
        except Exception:
            self._busy.clear()
            raise

    def finish_request(self) -> None:
        self._busy.clear()

    def generate(self, request: Optional[GenerationRequest] = None) -> ImageFound:
        """Send the canvas and prompt out and return the generated image.

        With a ``request`` from ``begin_request`` this never touches the
        surface or the busy claim, so it can run on a worker thread. Without
        one it claims, builds and releases on its own. Raises
        ``GenerationError`` on any failure, including a response without an
        image.
        """
        if request is None:
            request = self.begin_request()
            try:
                return self._call_generator(request)
            finally:
                self.finish_request()
        if not request.instruction.strip():
            raise GenerationError(GENERATION_FAILED, "Prompt is empty.")
        return self._call_generator(request)

    def _call_generator(self, request: GenerationRequest) -> ImageFound:
        result = self._generator.generate(request)
        if not isinstance(result, ImageFound):
            raise GenerationError(NO_IMAGE)
        return result

    def apply_generated(self, result: ImageFound) -> None:
        try:
            self._apply_background(result.image_bytes)
        except SurfaceError as exc:
            raise GenerationError(exc.code, exc.message) from exc
        LOGGER.info("Applied generated image (%d bytes)", len(result.image_bytes))

    def submit(self) -> None:
        """Generate and apply in one go; canvas and history stay put on failure."""
        self.apply_generated(self.generate())
