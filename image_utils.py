"""
Image utility functions for poster composition.

This module provides image processing utilities including:
- Font loading and caching
- Right-to-left text shaping
- Color parsing
- Decoding uploaded images with orientation fixing
- Stretching overlays to a pixel box
- Drawing anchored, aligned text
"""

import os
import re
from io import BytesIO
from typing import Optional, Tuple

import arabic_reshaper
from bidi.algorithm import get_display
from loguru import logger
from PIL import Image, ImageColor, ImageDraw, ImageFont, UnidentifiedImageError

import config
from models import TextAlign

RGB = Tuple[int, int, int]


# ========= TEXT HELPERS =========
# Hebrew, Arabic, Syriac, Thaana and the presentation-form blocks
_RTL_PATTERN = re.compile(r"[\u0590-\u08FF\uFB1D-\uFDFF\uFE70-\uFEFF]")


def is_rtl(text: str) -> bool:
    """Return True when the text contains right-to-left script."""
    return bool(text) and _RTL_PATTERN.search(text) is not None


def shape_text(text: str) -> str:
    """Convert RTL text to its visual display order; other text is returned untouched."""
    if not is_rtl(text):
        return text
    return get_display(arabic_reshaper.reshape(text))


# ========= FONT LOADING =========
# Cache stores: (size, family) -> font
_font_cache: dict[tuple[int, str], ImageFont.FreeTypeFont] = {}


def _font_candidates(family: Optional[str]) -> list[str]:
    candidates: list[str] = []
    if family:
        candidates.extend(config.FONT_FAMILY_FILES.get(family.strip().lower(), []))
        candidates.append(f"{family.strip()}.ttf")
    candidates.extend(config.FONT_CANDIDATES_REGULAR)
    return candidates


def _resolve_font_file(name: str) -> Optional[str]:
    if os.path.isfile(name):
        return name
    for font_dir in config.FONT_DIRS:
        path = os.path.join(font_dir, name)
        if os.path.isfile(path):
            return path
    return None


def load_font(size: int, family: Optional[str] = None) -> ImageFont.FreeTypeFont:
    """
    Load a scalable font at an exact pixel size, with caching.

    Args:
        size: Font size in pixels
        family: Advisory font family name (e.g. "Arial"); ignored when no file matches

    Returns:
        Loaded font object
    """
    size = max(1, int(size))
    cache_key = (size, (family or "").strip().lower())

    # Return cached font if available
    if cache_key in _font_cache:
        return _font_cache[cache_key]

    for name in _font_candidates(family):
        path = _resolve_font_file(name)
        if path is None:
            continue
        try:
            font = ImageFont.truetype(path, size=size)
        except OSError:
            continue
        _font_cache[cache_key] = font
        return font

    # Pillow's bundled scalable default font
    font = ImageFont.load_default(size=size)
    _font_cache[cache_key] = font
    return font


def clear_font_cache() -> None:
    """Clear the font cache. Useful for testing."""
    _font_cache.clear()


# ========= COLOR HELPERS =========

def parse_color(value: Optional[str], default: str = config.DEFAULT_TEXT_COLOR) -> RGB:
    """
    Parse a '#RRGGBB' / '#RGB' / CSS color name into an RGB tuple.

    Unparseable values fall back to the default color.
    """
    if value:
        candidate = value.strip()
        if re.fullmatch(r"[0-9a-fA-F]{3}|[0-9a-fA-F]{6}", candidate):
            candidate = f"#{candidate}"
        try:
            return ImageColor.getrgb(candidate)[:3]
        except ValueError:
            logger.warning(f"Unparseable color {value!r}, using {default}")
    return ImageColor.getrgb(default)[:3]


# ========= IMAGE HELPERS =========
# EXIF orientation tag and rotation values
_EXIF_ORIENTATION_TAG = 274
_ORIENTATION_ROTATIONS = {
    3: 180,
    6: 270,
    8: 90,
}


def fix_image_orientation(img: Image.Image) -> Image.Image:
    """
    Fix image orientation based on EXIF data.

    Phone photos are usually stored sideways with an EXIF orientation tag.

    Args:
        img: PIL Image object

    Returns:
        Image rotated to correct orientation
    """
    try:
        exif = img.getexif()
        orientation = exif.get(_EXIF_ORIENTATION_TAG)
        rotation = _ORIENTATION_ROTATIONS.get(orientation)
        if rotation:
            return img.rotate(rotation, expand=True)
    except (AttributeError, KeyError, TypeError):
        pass
    return img


def decode_image(data: bytes) -> Image.Image:
    """
    Decode raw bytes into a fully loaded RGB image.

    Raises:
        ValueError: if the bytes are not a readable raster image
    """
    if not data:
        raise ValueError("empty image data")
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            oriented = fix_image_orientation(img)
            rgb = oriented.convert("RGB")
            if oriented is not img:
                oriented.close()
            return rgb
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"could not decode image: {e}") from e


def stretch_to_box(img: Image.Image, width: int, height: int) -> Image.Image:
    """Resize to exactly width x height, ignoring the aspect ratio."""
    if img.size == (width, height):
        return img.copy()
    return img.resize((width, height), Image.LANCZOS)


def encode_jpeg(img: Image.Image, quality: int = config.OUTPUT_JPEG_QUALITY) -> bytes:
    """Encode an image as JPEG bytes."""
    buffer = BytesIO()
    img.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


# ========= TEXT DRAWING =========
# Horizontal anchor per alignment; vertical anchor is the ascender line so
# the text's top edge sits on the field's top edge.
_ANCHORS = {
    TextAlign.LEFT: "la",
    TextAlign.CENTER: "ma",
    TextAlign.RIGHT: "ra",
}


def anchor_point(box: Tuple[int, int, int, int], align: TextAlign) -> Tuple[int, int]:
    """
    Get the anchor point for text in a pixel box.

    left anchors at the box's left edge, center at its horizontal midpoint,
    right at its right edge. The vertical anchor is always the box's top.
    """
    x, y, width, _ = box
    if align == TextAlign.CENTER:
        return (x + width // 2, y)
    if align == TextAlign.RIGHT:
        return (x + width, y)
    return (x, y)


def get_text_width(text: str, font: ImageFont.FreeTypeFont) -> int:
    """
    Get the width of text rendered with the given font.

    Args:
        text: Text to measure
        font: Font to use

    Returns:
        Width in pixels
    """
    bbox = font.getbbox(shape_text(text))
    return bbox[2] - bbox[0]


def draw_aligned_text(
    draw: ImageDraw.ImageDraw,
    box: Tuple[int, int, int, int],
    text: str,
    font: ImageFont.FreeTypeFont,
    fill: RGB,
    align: TextAlign = TextAlign.LEFT,
) -> None:
    """
    Draw text inside a pixel box, anchored according to the alignment.

    Args:
        draw: PIL ImageDraw object
        box: (x, y, width, height) in pixels
        text: Text to draw (RTL script is shaped first)
        font: Font to use
        fill: Text fill color
        align: Horizontal alignment
    """
    draw.text(
        anchor_point(box, align),
        shape_text(text),
        font=font,
        fill=fill,
        anchor=_ANCHORS[align],
        align=align.value,
    )
