"""Frame signatures -- downsampled luminance snapshots of a rendering surface.

Two signatures taken a few hundred milliseconds apart tell us whether the
surface is visibly changing. The capture is downscaled so its longer side is
at most 128 px, which keeps the comparison cheap and tolerant of sub-pixel
noise.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image

MAX_DIMENSION = 128


def luminance(r: float, g: float, b: float) -> float:
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


@dataclass(frozen=True)
class FrameSignature:
    width: int
    height: int
    luminances: tuple[float, ...]

    @classmethod
    def from_image(cls, image: Image.Image, max_dimension: int = MAX_DIMENSION) -> "FrameSignature | None":
        width, height = image.size
        if not width or not height:
            return None
        scale = min(1.0, max_dimension / max(width, height))
        target = (max(1, round(width * scale)), max(1, round(height * scale)))
        rgb = image.convert("RGB")
        if target != rgb.size:
            rgb = rgb.resize(target, Image.BILINEAR)
        raw = rgb.tobytes()
        values = tuple(luminance(raw[i], raw[i + 1], raw[i + 2]) for i in range(0, len(raw), 3))
        return cls(width=target[0], height=target[1], luminances=values)

    @classmethod
    def from_png(cls, data: bytes, max_dimension: int = MAX_DIMENSION) -> "FrameSignature | None":
        with Image.open(io.BytesIO(data)) as image:
            return cls.from_image(image, max_dimension)


def signature_delta(a: FrameSignature | None, b: FrameSignature | None) -> float | None:
    """Mean absolute luminance difference normalised to [0, 1].

    Returns None when the signatures are incomparable: either is missing,
    the dimensions differ, or the buffers are empty.
    """
    if a is None or b is None:
        return None
    if a.width != b.width or a.height != b.height:
        return None
    length = len(a.luminances)
    if length == 0 or length != len(b.luminances):
        return None
    total = sum(abs(x - y) for x, y in zip(a.luminances, b.luminances))
    return total / (length * 255)
