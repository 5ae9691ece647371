"""Raster drawing surface backed by Pillow."""

from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from PIL import Image, ImageDraw, UnidentifiedImageError

from errors import INVALID_IMAGE, SurfaceError
from models import Snapshot

LOGGER = logging.getLogger(__name__)

Point = tuple[float, float]
Color = tuple[int, int, int]

WHITE: Color = (255, 255, 255)
BLACK: Color = (0, 0, 0)
DEFAULT_PEN_WIDTH = 5


def export_filename(prefix: str, when: Optional[datetime] = None) -> str:
    """Build ``prefix-YYYY-MM-DDTHH-MM-SS.png`` from a UTC timestamp."""
    moment = when or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return f"{prefix}-{moment.strftime('%Y-%m-%dT%H-%M-%S')}.png"


def decode_image(data: bytes) -> Image.Image:
    if not data:
        raise SurfaceError(INVALID_IMAGE, "empty image payload")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise SurfaceError(INVALID_IMAGE, f"unable to decode image: {exc}") from exc
    return img


class Surface:
    def __init__(
        self,
        width: int = 960,
        height: int = 540,
        background: Color = WHITE,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("surface dimensions must be positive")
        self.width = width
        self.height = height
        self.background = background
        self._image = Image.new("RGB", (width, height), background)
        self._draw = ImageDraw.Draw(self._image)
        self._pen: Optional[tuple[Color, int]] = None
        self._last_point: Optional[Point] = None

    @property
    def image(self) -> Image.Image:
        return self._image

    def pixel(self, x: int, y: int) -> Color:
        return self._image.getpixel((x, y))

    # ------------------------------------------------------------------
    # Drawing primitives
    # ------------------------------------------------------------------

    def begin_stroke(self, point: Point, color: Color = BLACK, width: int = DEFAULT_PEN_WIDTH) -> None:
        self._pen = (color, width)
        self._last_point = point

    def extend_stroke(self, point: Point) -> None:
        if self._pen is None or self._last_point is None:
            return
        color, width = self._pen
        self._segment(self._last_point, point, color, width)
        self._last_point = point

    def end_stroke(self) -> None:
        self._pen = None
        self._last_point = None

    @property
    def stroke_active(self) -> bool:
        return self._pen is not None

    def draw_line(self, points: Iterable[Point], color: Color = BLACK, width: int = DEFAULT_PEN_WIDTH) -> None:
        pts = list(points)
        for start, end in zip(pts, pts[1:]):
            self._segment(start, end, color, width)

    def _segment(self, start: Point, end: Point, color: Color, width: int) -> None:
        self._draw.line([start, end], fill=color, width=width)
        # round caps double as round joins between consecutive segments
        radius = width / 2.0
        for x, y in (start, end):
            self._draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=color)

    def clear(self) -> None:
        self.end_stroke()
        self._draw.rectangle((0, 0, self.width, self.height), fill=self.background)

    def composite_background(self, image_bytes: bytes) -> None:
        """Fill, then draw the image scaled to fit and centered."""
        img = decode_image(image_bytes)
        self.end_stroke()
        self._paste_fitted(img)

    def _paste_fitted(self, img: Image.Image) -> None:
        flat = _flatten(img, self.background)
        scale = min(self.width / flat.width, self.height / flat.height)
        size = (max(1, round(flat.width * scale)), max(1, round(flat.height * scale)))
        if size != flat.size:
            flat = flat.resize(size, Image.LANCZOS)
        x = (self.width - size[0]) // 2
        y = (self.height - size[1]) // 2
        self._draw.rectangle((0, 0, self.width, self.height), fill=self.background)
        self._image.paste(flat, (x, y))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self._image.save(buf, format="PNG")
        return buf.getvalue()

    def snapshot(self) -> Snapshot:
        return Snapshot(png_bytes=self.to_png(), width=self.width, height=self.height)

    def restore(self, snapshot: Snapshot) -> None:
        img = decode_image(snapshot.png_bytes)
        self.end_stroke()
        if img.size == (self.width, self.height):
            self._image.paste(_flatten(img, self.background), (0, 0))
        else:
            LOGGER.warning(
                "Snapshot size %sx%s differs from surface %sx%s, fitting",
                img.width,
                img.height,
                self.width,
                self.height,
            )
            self._paste_fitted(img)

    def export(self, directory: Path, prefix: str = "codraw", when: Optional[datetime] = None) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / export_filename(prefix, when)
        target.write_bytes(self.to_png())
        LOGGER.info("Exported drawing to %s", target)
        return target


def _flatten(img: Image.Image, background: Color) -> Image.Image:
    if img.mode in {"RGBA", "LA"} or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        base = Image.new("RGB", rgba.size, background)
        base.paste(rgba, mask=rgba.split()[-1])
        return base
    if img.mode != "RGB":
        return img.convert("RGB")
    return img
