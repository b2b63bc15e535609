from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from clip_pipeline.errors import UnsupportedFontError

DEFAULT_FONT_KEY = "roboto"


@dataclass(frozen=True, slots=True)
class FontSpec:
    name: str
    family: str
    description: str


@dataclass(frozen=True, slots=True)
class CaptionStyle:
    font_size: int
    outline_width: int
    font_color: str = "white"
    outline_color: str = "black"


FONTS: Mapping[str, FontSpec] = MappingProxyType(
    {
        "roboto": FontSpec("Roboto", "Roboto", "Standard & Reliable - Universal support"),
        "montserrat": FontSpec("Montserrat", "Montserrat", "Clean & Modern - Professional look"),
        "bebasNeue": FontSpec("Bebas Neue", "Bebas Neue", "Bold & Condensed - Perfect for viral content"),
        "anton": FontSpec("Anton", "Anton", "Heavy & Impactful - Attention-grabbing"),
        "oswald": FontSpec("Oswald", "Oswald", "Tall & Narrow - Space-efficient"),
    }
)

PLATFORM_STYLES: Mapping[str, CaptionStyle] = MappingProxyType(
    {
        "tiktok": CaptionStyle(font_size=48, outline_width=3),
        "instagram": CaptionStyle(font_size=44, outline_width=2),
        "youtube": CaptionStyle(font_size=40, outline_width=2),
    }
)
DEFAULT_STYLE = CaptionStyle(font_size=42, outline_width=2)

CAPTION_MARGIN = 150
POSITIONS: Mapping[str, str] = MappingProxyType(
    {
        "top": str(CAPTION_MARGIN),
        "center": "(h-text_h)/2",
        "bottom": f"h-text_h-{CAPTION_MARGIN}",
    }
)


class FontRegistry:
    """Read-only lookup of the caption fonts ffmpeg can draw with."""

    def __init__(self, fonts: Mapping[str, FontSpec] = FONTS, default_key: str = DEFAULT_FONT_KEY) -> None:
        if default_key not in fonts:
            raise ValueError(f"Default font {default_key!r} is not in the registry.")
        self._fonts = MappingProxyType(dict(fonts))
        self.default_key = default_key

    def keys(self) -> list[str]:
        return list(self._fonts)

    def is_supported(self, font_key: str) -> bool:
        return font_key in self._fonts

    def get(self, font_key: str) -> FontSpec:
        try:
            return self._fonts[font_key]
        except KeyError:
            raise UnsupportedFontError(font_key, self.keys()) from None

    def items(self) -> list[tuple[str, FontSpec]]:
        return list(self._fonts.items())


def style_for_platform(platform: str | None) -> CaptionStyle:
    return PLATFORM_STYLES.get(platform or "", DEFAULT_STYLE)


def y_expression(position: str) -> str:
    # unknown positions fall back to bottom
    return POSITIONS.get(position, POSITIONS["bottom"])
