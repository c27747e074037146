"""Pillow implementation of CaptchaRenderer.

Draws the answer text onto a small PNG:
- white canvas with light-grey speckle noise
- each glyph on its own transparent tile, rotated independently and
  coloured from a fixed palette
- straight grey interference lines drawn over the text

The output is cosmetic; nothing downstream depends on exact pixels. All
randomness comes from the ``rng`` argument so a seeded generator gives a
byte-identical image.
"""

from __future__ import annotations

import io
import random
from functools import lru_cache
from typing import Optional, Union

from PIL import Image, ImageDraw, ImageFont

Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

NOISE_DOTS = 100
INTERFERENCE_LINES = 5
MAX_ROTATION_DEGREES = 15.0
FONT_SIZE = 24
GLYPH_ADVANCE = 26
GLYPH_TILE = 34
LEFT_MARGIN = 6

BACKGROUND = (255, 255, 255)
NOISE_COLOR = (211, 211, 211)
LINE_COLOR = (128, 128, 128)
GLYPH_PALETTE = (
    (0, 0, 0),  # black
    (0, 0, 139),  # dark blue
    (139, 0, 0),  # dark red
    (0, 100, 0),  # dark green
)


@lru_cache(maxsize=4)
def load_font(font_path: Optional[str], size: int = FONT_SIZE) -> Font:
    if font_path:
        return ImageFont.truetype(font_path, size)
    return ImageFont.load_default(size=size)


class PillowCaptchaRenderer:
    def __init__(
        self,
        width: int = 120,
        height: int = 40,
        font_path: Optional[str] = None,
    ) -> None:
        self.width = width
        self.height = height
        self._font_path = font_path

    def render(self, text: str, rng: random.Random) -> bytes:
        """Render *text* and return PNG bytes.

        Raises whatever Pillow raises (``OSError`` for a missing font,
        ``ValueError`` for bad geometry); the caller maps it to RenderingError.
        """
        image = Image.new("RGB", (self.width, self.height), BACKGROUND)
        draw = ImageDraw.Draw(image)
        font = load_font(self._font_path)

        self._add_noise(draw, rng)
        self._draw_text(image, text, font, rng)
        self._add_interference_lines(draw, rng)

        buf = io.BytesIO()
        image.save(buf, format="PNG")
        return buf.getvalue()

    def _add_noise(self, draw: ImageDraw.ImageDraw, rng: random.Random) -> None:
        for _ in range(NOISE_DOTS):
            x = rng.randrange(self.width)
            y = rng.randrange(self.height)
            draw.point((x, y), fill=NOISE_COLOR)

    def glyph_offsets(self, count: int) -> list[int]:
        """Left edge of each glyph tile, spread so every tile stays on the canvas."""
        if count <= 0:
            return []
        advance = GLYPH_ADVANCE
        if count > 1:
            usable = self.width - 2 * LEFT_MARGIN - GLYPH_TILE
            advance = max(min(GLYPH_ADVANCE, usable // (count - 1)), 1)
        span = advance * (count - 1) + GLYPH_TILE
        start = max((self.width - span) // 2, 0)
        return [start + i * advance for i in range(count)]

    def _draw_text(
        self, image: Image.Image, text: str, font: Font, rng: random.Random
    ) -> None:
        top = (self.height - GLYPH_TILE) // 2
        for char, x in zip(text, self.glyph_offsets(len(text))):
            tile = Image.new("RGBA", (GLYPH_TILE, GLYPH_TILE), (0, 0, 0, 0))
            tile_draw = ImageDraw.Draw(tile)

            left, upper, right, lower = tile_draw.textbbox((0, 0), char, font=font)
            origin = (
                (GLYPH_TILE - (right - left)) / 2 - left,
                (GLYPH_TILE - (lower - upper)) / 2 - upper,
            )
            tile_draw.text(origin, char, font=font, fill=rng.choice(GLYPH_PALETTE))

            angle = rng.uniform(-MAX_ROTATION_DEGREES, MAX_ROTATION_DEGREES)
            tile = tile.rotate(angle, resample=Image.Resampling.BICUBIC)

            image.paste(tile, (x, top), tile)

    def _add_interference_lines(
        self, draw: ImageDraw.ImageDraw, rng: random.Random
    ) -> None:
        for _ in range(INTERFERENCE_LINES):
            start = (rng.randrange(self.width), rng.randrange(self.height))
            end = (rng.randrange(self.width), rng.randrange(self.height))
            draw.line([start, end], fill=LINE_COLOR, width=1)
