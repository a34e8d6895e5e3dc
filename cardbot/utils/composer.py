"""Resident card rendering.

Layout, in canvas pixels (the canvas is the background's native size)::

    photo        280 px wide at (100, 160), height kept to the photo's ratio
    text x       photo right edge + 20
    first name   photo bottom - h(first) - h(last) - 60
    last name    photo bottom - h(last) - 60
    number       last name y + 60
    validity     number y + FONT_SIZE + 20
"""

from __future__ import annotations

import io
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Sequence, Union

from dateutil.relativedelta import relativedelta
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from cardbot.errors import MissingAssetError, ValidationError
from cardbot.utils.formatting import format_validity

logger = logging.getLogger(__name__)

PHOTO_ORIGIN = (100, 160)
PHOTO_WIDTH = 280
TEXT_GAP = 20
NAME_OFFSET = 60
NUMBER_OFFSET = 60
FONT_SIZE = 30

NAME_COLOR = (32, 55, 49)
INFO_COLOR = "#e2deaf"

JPEG_QUALITY = 90

FONT_CANDIDATES: Sequence[str] = (
    "arial.ttf",
    "Arial.ttf",
    "/usr/share/fonts/truetype/msttcorefonts/Arial.ttf",
    "DejaVuSans.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
)

Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


def compute_expiration(issued_at: Union[date, datetime]) -> date:
    """Last day of the month after the two-year anniversary month.

    Issued any day of March 2024 -> 2026-04-30.
    """
    first_of_month = date(issued_at.year, issued_at.month, 1)
    return first_of_month + relativedelta(years=2, months=2) - relativedelta(days=1)


def load_font(font_path: Optional[Path] = None, size: int = FONT_SIZE) -> Font:
    candidates = [str(font_path)] if font_path else []
    candidates.extend(FONT_CANDIDATES)
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.warning("No TrueType font found, falling back to Pillow's default font")
    return ImageFont.load_default(size=size)


def load_background(path: Path) -> Image.Image:
    if not path.is_file():
        raise MissingAssetError(f"Tło karty nie zostało znalezione: {path}")
    try:
        with Image.open(path) as background:
            background.load()
            return background.copy()
    except (UnidentifiedImageError, OSError) as exc:
        raise MissingAssetError(f"Nie można odczytać tła karty {path}: {exc}") from exc


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info


def _text_height(draw: ImageDraw.ImageDraw, text: str, font: Font) -> int:
    return draw.textbbox((0, 0), text, font=font)[3]


def compose_card(
    background: Image.Image,
    photo: Image.Image,
    first_name: str,
    last_name: str,
    card_number: Union[int, str],
    issued_at: Union[date, datetime],
    font: Optional[Font] = None,
) -> Image.Image:
    if photo.height == 0 or photo.width == 0:
        raise ValidationError("Zdjęcie ma zerowy wymiar")

    aspect_ratio = photo.width / photo.height
    photo_height = int(PHOTO_WIDTH / aspect_ratio)
    if photo_height <= 0:
        raise ValidationError("Zdjęcie jest zbyt szerokie względem wysokości")

    card = Image.new("RGB", background.size)
    card.paste(background.convert("RGB"), (0, 0))

    left, top = PHOTO_ORIGIN
    right, bottom = left + PHOTO_WIDTH, top + photo_height
    if _has_alpha(photo):
        # Transparent areas show the background.
        resized = photo.convert("RGBA").resize((PHOTO_WIDTH, photo_height), Image.Resampling.LANCZOS)
        card.paste(resized, (left, top), resized)
    else:
        resized = photo.convert("RGB").resize((PHOTO_WIDTH, photo_height), Image.Resampling.LANCZOS)
        card.paste(resized, (left, top))

    if font is None:
        font = load_font()
    draw = ImageDraw.Draw(card)
    x = right + TEXT_GAP

    first_height = _text_height(draw, first_name, font)
    last_height = _text_height(draw, last_name, font)
    draw.text((x, bottom - first_height - last_height - NAME_OFFSET), first_name, font=font, fill=NAME_COLOR)
    draw.text((x, bottom - last_height - NAME_OFFSET), last_name, font=font, fill=NAME_COLOR)

    number_y = bottom - last_height - NAME_OFFSET + NUMBER_OFFSET
    draw.text((x, number_y), f"NUMER KARTY: {card_number}", font=font, fill=INFO_COLOR)

    expires_at = compute_expiration(issued_at)
    validity_y = number_y + FONT_SIZE + TEXT_GAP
    draw.text(
        (x, validity_y),
        f"WAŻNA DO: {format_validity(expires_at)}",
        font=font,
        fill=INFO_COLOR,
    )
    return card


def encode_card(card: Image.Image) -> bytes:
    buffer = io.BytesIO()
    card.convert("RGB").save(buffer, format="JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()


__all__ = [
    "FONT_SIZE",
    "PHOTO_ORIGIN",
    "PHOTO_WIDTH",
    "compute_expiration",
    "load_font",
    "load_background",
    "compose_card",
    "encode_card",
]
