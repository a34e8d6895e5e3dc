import io
import os
import sys

import pytest
from PIL import Image

# Ensure repository root is on sys.path so tests can import "cardbot".
REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from cardbot.service import CardIssuer  # noqa: E402
from cardbot.utils.ledger import Ledger  # noqa: E402
from cardbot.utils.storage import CardStore  # noqa: E402

BACKGROUND_SIZE = (1000, 640)
BACKGROUND_COLOR = (200, 200, 200)


def make_photo_bytes(size=(300, 400), color=(255, 0, 0), fmt="PNG") -> bytes:
    img = Image.new("RGB", size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def photo_bytes() -> bytes:
    return make_photo_bytes()


@pytest.fixture
def background_path(tmp_path):
    path = tmp_path / "assets" / "karta_a.jpg"
    path.parent.mkdir(parents=True)
    Image.new("RGB", BACKGROUND_SIZE, color=BACKGROUND_COLOR).save(path, format="JPEG")
    return path


@pytest.fixture
def store(tmp_path):
    return CardStore(tmp_path / "network", tmp_path / "mirror")


@pytest.fixture
def ledger(tmp_path):
    return Ledger(tmp_path / "ledger" / "rejestr_kart.xlsx")


@pytest.fixture
def issuer(store, ledger, background_path):
    return CardIssuer(store=store, ledger=ledger, background_path=background_path)
