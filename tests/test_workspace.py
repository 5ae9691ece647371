"""Tests for DrawingWorkspace."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from errors import GENERATION_FAILED, NO_IMAGE, GenerationError, SurfaceError
from history import HistoryManager
from merge import PromptBuffer
from models import NOT_FOUND, GenerationRequest, GenerationResult, ImageFound
from surface import WHITE, Surface
from workspace import DrawingWorkspace

RED = (255, 0, 0)


def _png(color: tuple, size: tuple[int, int] = (8, 4)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeGenerator:
    def __init__(self, result: Optional[GenerationResult] = None, error: Optional[Exception] = None) -> None:
        self.result = result if result is not None else ImageFound(_png(RED))
        self.error = error
        self.requests: list[GenerationRequest] = []

    def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


def _workspace(generator: Optional[FakeGenerator] = None, prompt: str = "") -> DrawingWorkspace:
    return DrawingWorkspace(
        surface=Surface(40, 20),
        history=HistoryManager(),
        generator=generator or FakeGenerator(),
        prompt=PromptBuffer(prompt),
        model="qwen-image-edit",
        prompt_suffix="Use this as context.",
    )


def _draw(ws: DrawingWorkspace, y: float = 10) -> None:
    ws.begin_stroke((2, y))
    ws.extend_stroke((37, y))
    ws.end_stroke()


def test_stroke_is_undoable() -> None:
    ws = _workspace()
    blank = ws.surface.image.tobytes()
    _draw(ws)

    assert ws.history.undo_depth == 1
    assert ws.undo() is True
    assert ws.surface.image.tobytes() == blank
    assert ws.undo() is False


def test_clear_is_undoable() -> None:
    ws = _workspace()
    _draw(ws)
    drawn = ws.surface.image.tobytes()

    ws.clear()
    assert ws.surface.pixel(20, 10) == WHITE

    ws.undo()
    assert ws.surface.image.tobytes() == drawn
    ws.redo()
    assert ws.surface.pixel(20, 10) == WHITE


def test_redo_after_fresh_stroke_is_empty() -> None:
    ws = _workspace()
    _draw(ws, 5)
    _draw(ws, 15)
    ws.undo()
    _draw(ws, 10)

    assert ws.redo() is False


def test_pen_color_is_used() -> None:
    ws = _workspace()
    ws.pen_color = (0, 0, 255)
    _draw(ws)
    assert ws.surface.pixel(20, 10) == (0, 0, 255)


def test_import_image_snapshots_first(tmp_path: Path) -> None:
    path = tmp_path / "photo.png"
    path.write_bytes(_png(RED))
    ws = _workspace()

    ws.import_image(path)

    assert ws.surface.pixel(20, 10) == RED
    assert ws.history.undo_depth == 1
    ws.undo()
    assert ws.surface.pixel(20, 10) == WHITE


def test_import_garbage_leaves_history_alone() -> None:
    ws = _workspace()
    with pytest.raises(SurfaceError):
        ws.import_image(b"not an image")
    assert ws.history.undo_depth == 0


def test_export_uses_codraw_prefix(tmp_path: Path) -> None:
    ws = _workspace()
    target = ws.export(tmp_path)
    assert target.name.startswith("codraw-")
    assert target.suffix == ".png"
    assert target.exists()


def test_build_request_combines_prompt_and_suffix() -> None:
    ws = _workspace(prompt="turn the sky blue ")
    request = ws.build_request()

    assert request.model == "qwen-image-edit"
    assert request.instruction == "turn the sky blue. Use this as context."
    assert request.mime_type == "image/png"
    with Image.open(io.BytesIO(request.image_bytes)) as img:
        assert img.size == (40, 20)


def test_submit_applies_image_and_pushes_history() -> None:
    generator = FakeGenerator()
    ws = _workspace(generator, prompt="make it red")
    _draw(ws)
    before = ws.surface.image.tobytes()

    ws.submit()

    assert len(generator.requests) == 1
    assert ws.surface.pixel(20, 10) == RED
    assert ws.history.undo_depth == 2
    ws.undo()
    assert ws.surface.image.tobytes() == before
    assert ws.busy is False


def test_submit_without_image_leaves_canvas_untouched() -> None:
    ws = _workspace(FakeGenerator(result=NOT_FOUND), prompt="make it red")
    _draw(ws)
    before = ws.surface.image.tobytes()

    with pytest.raises(GenerationError) as info:
        ws.submit()

    assert info.value.code == NO_IMAGE
    assert ws.surface.image.tobytes() == before
    assert ws.history.undo_depth == 1


def test_submit_failure_propagates_and_leaves_history() -> None:
    failure = GenerationError(GENERATION_FAILED, "quota exceeded")
    ws = _workspace(FakeGenerator(error=failure), prompt="make it red")

    with pytest.raises(GenerationError, match="quota exceeded"):
        ws.submit()

    assert ws.history.undo_depth == 0
    assert ws.busy is False


def test_undecodable_result_is_generation_error() -> None:
    ws = _workspace(FakeGenerator(result=ImageFound(b"garbage")), prompt="x")
    with pytest.raises(GenerationError):
        ws.submit()
    assert ws.history.undo_depth == 0


def test_empty_prompt_is_rejected() -> None:
    generator = FakeGenerator()
    ws = _workspace(generator, prompt="   ")

    with pytest.raises(GenerationError):
        ws.submit()
    assert generator.requests == []


def test_resubmission_blocked_while_busy() -> None:
    ws = _workspace(prompt="make it red")
    nested: list[Exception] = []

    class ReentrantGenerator(FakeGenerator):
        def generate(self, request: GenerationRequest) -> GenerationResult:
            assert ws.busy is True
            try:
                ws.generate()
            except GenerationError as exc:
                nested.append(exc)
            return super().generate(request)

    ws.replace_generator(ReentrantGenerator())
    ws.submit()

    assert len(nested) == 1
    assert "in progress" in str(nested[0])
    assert ws.busy is False


def test_begin_request_claims_until_finished() -> None:
    generator = FakeGenerator()
    ws = _workspace(generator, prompt="make it red")

    request = ws.begin_request()
    assert ws.busy is True
    with pytest.raises(GenerationError, match="in progress"):
        ws.begin_request()

    result = ws.generate(request)
    assert ws.busy is True  # the round is still open until the result is applied
    ws.apply_generated(result)
    ws.finish_request()

    assert ws.busy is False
    assert generator.requests == [request]
    ws.begin_request()
    assert ws.busy is True


def test_begin_request_with_empty_prompt_leaves_workspace_free() -> None:
    ws = _workspace(prompt="")

    with pytest.raises(GenerationError):
        ws.begin_request()
    assert ws.busy is False


def test_prebuilt_request_survives_cleared_prompt() -> None:
    generator = FakeGenerator()
    ws = _workspace(generator, prompt="make it red")

    request = ws.begin_request()
    ws.prompt.clear()
    result = ws.generate(request)
    ws.finish_request()

    assert isinstance(result, ImageFound)
    assert generator.requests[0].instruction == "make it red. Use this as context."
