from __future__ import annotations

import io
import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Sequence

from PIL import Image, ImageDraw, ImageFont

from schedule_graphic.core.config import settings
from schedule_graphic.core.logger import get_logger

log = get_logger("services.surface")

Color = tuple[int, int, int, int]

_ANCHORS = {"left": "lm", "center": "mm", "right": "rm"}
_BOLD_CANDIDATES = ("DejaVuSans-Bold.ttf", "Inter-Bold.ttf", "arialbd.ttf", "Arial Bold.ttf")
_REGULAR_CANDIDATES = ("DejaVuSans.ttf", "Inter-Regular.ttf", "arial.ttf", "Arial.ttf")
_MIME_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}


@dataclass(frozen=True)
class FontSpec:
    size: int
    bold: bool = False


def normalize_format(fmt: str | None) -> str:
    name = (fmt or "PNG").strip().upper()
    if name == "JPG":
        name = "JPEG"
    if name not in _MIME_TYPES:
        raise ValueError(f"unsupported image format: {fmt}")
    return name


def mime_type(fmt: str | None) -> str:
    return _MIME_TYPES[normalize_format(fmt)]


@lru_cache(maxsize=32)
def load_font(size: int, bold: bool = False, fonts_dir: str | None = None) -> ImageFont.FreeTypeFont:
    """Bundled DejaVu Sans first, then the same names from the system font path."""
    base = Path(fonts_dir or settings.fonts_dir)
    names = _BOLD_CANDIDATES if bold else _REGULAR_CANDIDATES
    bundled = [str(base / name) for name in names if (base / name).is_file()]
    # Bare names are looked up by FreeType in the system font directories.
    for candidate in [*bundled, *names]:
        try:
            return ImageFont.truetype(candidate, size=size)
        except OSError:
            continue
    log.warning("font_fallback size=%s bold=%s dir=%s", size, bold, base)
    return ImageFont.load_default(size=size)


def encode_image(image: Image.Image, fmt: str = "PNG", quality: int = 100) -> bytes:
    name = normalize_format(fmt)
    quality = max(1, min(100, int(quality)))
    buf = io.BytesIO()
    if name == "JPEG":
        image.convert("RGB").save(buf, format="JPEG", quality=quality)
    elif name == "WEBP":
        image.save(buf, format="WEBP", quality=quality, lossless=quality >= 100)
    else:
        image.save(buf, format="PNG")
    return buf.getvalue()


class RenderSurface:
    """Drawing backend the compositor paints against.

    Coordinates are canvas pixels; text is vertically centred on ``y`` and
    horizontally anchored by ``align``.
    """

    width: int = 0
    height: int = 0

    def begin(self, width: int, height: int) -> None:
        raise NotImplementedError

    def text_width(self, text: str, font: FontSpec) -> float:
        raise NotImplementedError

    def fill_gradient(self, top: Color, bottom: Color) -> None:
        raise NotImplementedError

    def fill_rect(self, x: float, y: float, width: float, height: float, color: Color) -> None:
        raise NotImplementedError

    def fill_path(self, points: Sequence[tuple[float, float]], color: Color) -> None:
        raise NotImplementedError

    def draw_image(self, image: Image.Image, x: float, y: float, width: float, height: float) -> None:
        raise NotImplementedError

    def draw_text(self, text: str, x: float, y: float, font: FontSpec, color: Color, align: str = "left") -> None:
        raise NotImplementedError

    def encode(self, fmt: str = "PNG", quality: int = 100) -> bytes:
        raise NotImplementedError


class PillowSurface(RenderSurface):
    def __init__(self, fonts_dir: str | None = None):
        self.fonts_dir = fonts_dir
        self.image: Image.Image | None = None
        self._draw: ImageDraw.ImageDraw | None = None

    def begin(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 255))
        self._draw = ImageDraw.Draw(self.image)

    def _font(self, font: FontSpec) -> ImageFont.FreeTypeFont:
        return load_font(font.size, font.bold, self.fonts_dir)

    def _measure_draw(self) -> ImageDraw.ImageDraw:
        if self._draw is None:
            self._draw = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        return self._draw

    def text_width(self, text: str, font: FontSpec) -> float:
        return float(self._measure_draw().textlength(text, font=self._font(font)))

    def _composite(self, layer: Image.Image, x: int, y: int) -> None:
        # alpha_composite rejects negative offsets, so crop the hidden part first.
        left = max(0, -x)
        top = max(0, -y)
        if left >= layer.width or top >= layer.height:
            return
        if left or top:
            layer = layer.crop((left, top, layer.width, layer.height))
        self.image.alpha_composite(layer, dest=(max(0, x), max(0, y)))

    def fill_gradient(self, top: Color, bottom: Color) -> None:
        span = max(1, self.height - 1)
        column = Image.new("RGBA", (1, self.height))
        column.putdata(
            [tuple(int(round(a + (b - a) * row / span)) for a, b in zip(top, bottom)) for row in range(self.height)]
        )
        self.image.paste(column.resize((self.width, self.height), Image.Resampling.NEAREST), (0, 0))

    def fill_rect(self, x: float, y: float, width: float, height: float, color: Color) -> None:
        if color[3] >= 255:
            self._draw.rectangle((x, y, x + width - 1, y + height - 1), fill=color)
            return
        overlay = Image.new("RGBA", self.image.size, (0, 0, 0, 0))
        ImageDraw.Draw(overlay).rectangle((x, y, x + width - 1, y + height - 1), fill=color)
        self.image.alpha_composite(overlay)

    def fill_path(self, points: Sequence[tuple[float, float]], color: Color) -> None:
        overlay = Image.new("RGBA", self.image.size, (0, 0, 0, 0))
        ImageDraw.Draw(overlay).polygon(list(points), fill=color)
        self.image.alpha_composite(overlay)

    def draw_image(self, image: Image.Image, x: float, y: float, width: float, height: float) -> None:
        size = (max(1, int(round(width))), max(1, int(round(height))))
        layer = image.convert("RGBA")
        if layer.size != size:
            layer = layer.resize(size, Image.Resampling.LANCZOS)
        self._composite(layer, int(round(x)), int(round(y)))

    def draw_text(self, text: str, x: float, y: float, font: FontSpec, color: Color, align: str = "left") -> None:
        self._draw.text((x, y), text, font=self._font(font), fill=color, anchor=_ANCHORS.get(align, "lm"))

    def encode(self, fmt: str = "PNG", quality: int = 100) -> bytes:
        return encode_image(self.image, fmt, quality)


@dataclass
class PaintOp:
    kind: str
    params: dict[str, Any] = field(default_factory=dict)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Image.Image):
        return {"image": list(value.size)}
    if isinstance(value, FontSpec):
        return {"size": value.size, "bold": value.bold}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class RecordingSurface(RenderSurface):
    """Records paint operations instead of rasterizing them.

    Text is measured as ``char_width * font.size`` per character so truncation
    is deterministic without a font backend.
    """

    def __init__(self, char_width: float = 0.5):
        self.char_width = char_width
        self.ops: list[PaintOp] = []

    def _record(self, kind: str, **params: Any) -> None:
        self.ops.append(PaintOp(kind, params))

    def begin(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.ops.clear()
        self._record("begin", width=width, height=height)

    def text_width(self, text: str, font: FontSpec) -> float:
        return len(text) * font.size * self.char_width

    def fill_gradient(self, top: Color, bottom: Color) -> None:
        self._record("gradient", top=top, bottom=bottom)

    def fill_rect(self, x: float, y: float, width: float, height: float, color: Color) -> None:
        self._record("rect", x=x, y=y, width=width, height=height, color=color)

    def fill_path(self, points: Sequence[tuple[float, float]], color: Color) -> None:
        self._record("path", points=list(points), color=color)

    def draw_image(self, image: Image.Image, x: float, y: float, width: float, height: float) -> None:
        self._record("image", image=image, x=x, y=y, width=width, height=height)

    def draw_text(self, text: str, x: float, y: float, font: FontSpec, color: Color, align: str = "left") -> None:
        self._record("text", text=text, x=x, y=y, font=font, color=color, align=align)

    def of_kind(self, kind: str) -> list[PaintOp]:
        return [op for op in self.ops if op.kind == kind]

    def texts(self) -> list[str]:
        return [op.params["text"] for op in self.of_kind("text")]

    def dump(self) -> bytes:
        """Recorded operations as JSON, for golden comparisons in tests."""
        payload = [{"kind": op.kind, **{k: _jsonable(v) for k, v in op.params.items()}} for op in self.ops]
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

    def encode(self, fmt: str = "PNG", quality: int = 100) -> bytes:
        raise TypeError("RecordingSurface holds paint operations, not pixels; use dump()")
