from __future__ import annotations

# Wymagane biblioteki zewnętrzne: aiogram, Pillow, openpyxl, jinja2, Babel, python-dateutil, python-dotenv

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass
class Config:
    bot_token: Optional[str]
    cards_dir: Path
    mirror_dir: Path
    background_path: Path
    ledger_file: Path
    counter_file: Path
    font_path: Optional[Path] = None


def _path_from_env(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value).expanduser() if value else default


def load_config(require_token: bool = True) -> Config:
    load_dotenv()
    token = os.getenv("BOT_TOKEN") or os.getenv("TOKEN_BOT")
    if require_token and not token:
        raise RuntimeError("BOT_TOKEN (or TOKEN_BOT) environment variable is required")

    base_path = Path(__file__).resolve().parent.parent
    cards_dir = _path_from_env("CARDS_NETWORK_DIR", base_path / "data" / "cards")
    mirror_dir = _path_from_env("CARDS_MIRROR_DIR", base_path / "wwwroot" / "cards")
    background_path = _path_from_env("CARD_BACKGROUND", base_path / "wwwroot" / "cards" / "karta_a.jpg")
    ledger_file = _path_from_env("CARD_LEDGER", cards_dir / "rejestr_kart.xlsx")
    font = os.getenv("CARD_FONT")

    return Config(
        bot_token=token,
        cards_dir=cards_dir,
        mirror_dir=mirror_dir,
        background_path=background_path,
        ledger_file=ledger_file,
        counter_file=cards_dir / "counter.json",
        font_path=Path(font) if font else None,
    )
