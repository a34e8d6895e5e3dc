"""Card file storage.

Cards live in an authoritative directory (a network share in production)
and are mirrored into the directory the cards are served from::

    <authoritative>/
    ├── 1_JAN KOWALSKI.jpg
    ├── 2_ANNA NOWAK.jpg
    └── counter.json
    <mirror>/
    ├── 1_JAN KOWALSKI.jpg
    └── 2_ANNA NOWAK.jpg
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Set, Tuple

from cardbot.errors import StorageError
from cardbot.utils.counter import scan_card_numbers
from cardbot.utils.formatting import card_filename

logger = logging.getLogger(__name__)


class CardStore:
    def __init__(self, authoritative_dir: Path, mirror_dir: Path) -> None:
        self.authoritative_dir = Path(authoritative_dir)
        self.mirror_dir = Path(mirror_dir)

    @staticmethod
    def card_filename(card_number: int, first_name: str, last_name: str) -> str:
        return card_filename(card_number, first_name, last_name)

    def list_numbers(self) -> Set[int]:
        return scan_card_numbers(self.authoritative_dir)

    def files_for(self, card_number: int) -> List[Path]:
        if not self.authoritative_dir.is_dir():
            return []
        return sorted(self.authoritative_dir.glob(f"{int(card_number)}_*.jpg"))

    def find_card(self, card_number: int) -> Optional[Path]:
        files = self.files_for(card_number)
        return files[0] if files else None

    def read(self, filename: str) -> bytes:
        path = self.authoritative_dir / filename
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Nie można odczytać pliku karty {path}: {exc}") from exc

    def persist(self, data: bytes, filename: str) -> Tuple[Path, Path]:
        """Write the card to the authoritative directory, then to the mirror.

        Existing files with the same name are overwritten. A mirror failure
        leaves the authoritative copy in place and raises a partial
        ``StorageError``.
        """
        authoritative_path = self.authoritative_dir / filename
        try:
            self.authoritative_dir.mkdir(parents=True, exist_ok=True)
            authoritative_path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Nie można zapisać karty w {self.authoritative_dir}: {exc}") from exc
        logger.info("Saved card %s (%s bytes)", authoritative_path, len(data))

        mirror_path = self.mirror_dir / filename
        try:
            self.mirror_dir.mkdir(parents=True, exist_ok=True)
            mirror_path.write_bytes(data)
        except OSError as exc:
            logger.warning("Card %s saved, but the mirror copy failed: %s", authoritative_path, exc)
            raise StorageError(
                f"Karta zapisana w {authoritative_path}, ale kopia w {self.mirror_dir} nie powiodła się: {exc}",
                partial=True,
                authoritative_path=authoritative_path,
            ) from exc
        return authoritative_path, mirror_path

    def remove_stale(self, card_number: int, keep: str) -> List[str]:
        """Delete other files issued under ``card_number`` from both locations."""
        removed: List[str] = []
        for path in self.files_for(card_number):
            if path.name == keep:
                continue
            for directory in (self.authoritative_dir, self.mirror_dir):
                stale = directory / path.name
                try:
                    stale.unlink(missing_ok=True)
                except OSError as exc:
                    raise StorageError(f"Nie można usunąć starej karty {stale}: {exc}") from exc
            logger.info("Removed superseded card file %s", path.name)
            removed.append(path.name)
        return removed


__all__ = ["CardStore"]
