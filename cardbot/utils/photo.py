from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from cardbot.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_PHOTO_SIZE = 5 * 1024 * 1024  # 5 MiB
ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


def validate_photo(filename: str, length: int) -> bool:
    """Accept a photo by its declared extension and size.

    Only the extension is checked, not the content: a renamed file passes.
    """
    extension = Path(filename or "").suffix.lower()
    return extension in ALLOWED_EXTENSIONS and 0 <= length <= MAX_PHOTO_SIZE


def load_photo(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Could not decode uploaded photo: %s", exc)
        raise ValidationError("Nie można odczytać zdjęcia") from exc
    return image


__all__ = ["MAX_PHOTO_SIZE", "ALLOWED_EXTENSIONS", "validate_photo", "load_photo"]
