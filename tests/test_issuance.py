from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as ResultTimeout
from dataclasses import replace
from datetime import date, datetime

import pytest

from cardbot.errors import (
    LedgerError,
    MissingAssetError,
    OverwriteConfirmationRequired,
    StorageError,
    ValidationError,
)
from cardbot.models import IssueCardRequest
from cardbot.service import CardIssuer
from cardbot.utils.storage import CardStore

from conftest import make_photo_bytes

NOW = datetime(2024, 3, 15, 10, 30)


def _request(photo_bytes, **overrides):
    request = IssueCardRequest(
        first_name="jan",
        last_name="kowalski",
        photo_bytes=photo_bytes,
        photo_filename="face.png",
        photo_length=len(photo_bytes),
    )
    return replace(request, **overrides)


def test_first_card_in_empty_store(issuer, photo_bytes):
    result = issuer.issue(_request(photo_bytes), now=NOW)

    assert result.card_number == "1"
    assert result.stored_path.endswith("1_JAN KOWALSKI.jpg")
    assert result.valid_until == "04/2026"
    assert result.overwritten is False

    stored = issuer.store.authoritative_dir / "1_JAN KOWALSKI.jpg"
    mirror = issuer.store.mirror_dir / "1_JAN KOWALSKI.jpg"
    assert stored.read_bytes() == mirror.read_bytes()

    row = issuer.ledger.get("1")
    assert row.full_name == "JAN KOWALSKI"
    assert row.start_date == "2024-03-15"
    assert row.end_date == ""


def test_number_follows_highest_existing(issuer, photo_bytes):
    issuer.store.authoritative_dir.mkdir(parents=True)
    for name in ("1_A B.jpg", "2_C D.jpg", "5_E F.jpg"):
        (issuer.store.authoritative_dir / name).write_bytes(b"x")

    result = issuer.issue(_request(photo_bytes), now=NOW)

    assert result.card_number == "6"


def test_deleted_newest_card_number_is_not_reused(issuer, photo_bytes):
    for _ in range(3):
        issuer.issue(_request(photo_bytes), now=NOW)
    (issuer.store.authoritative_dir / "3_JAN KOWALSKI.jpg").unlink()

    assert issuer.issue(_request(photo_bytes), now=NOW).card_number == "4"


def test_explicit_number_overwrite_requires_confirmation_for_other_person(issuer, photo_bytes):
    for _ in range(3):
        issuer.issue(_request(photo_bytes, first_name="anna", last_name="nowak"), now=NOW)
    rows_before = len(issuer.ledger.rows())

    with pytest.raises(OverwriteConfirmationRequired) as excinfo:
        issuer.issue(_request(photo_bytes, explicit_card_number="3"), now=NOW)
    assert excinfo.value.existing_name == "ANNA NOWAK"
    assert issuer.ledger.get("3").full_name == "ANNA NOWAK"
    assert (issuer.store.authoritative_dir / "3_ANNA NOWAK.jpg").exists()

    result = issuer.issue(
        _request(photo_bytes, explicit_card_number="3", confirm_overwrite=True),
        now=NOW,
    )

    assert result.card_number == "3"
    assert result.overwritten is True
    assert len(issuer.ledger.rows()) == rows_before
    assert issuer.ledger.get("3").full_name == "JAN KOWALSKI"
    assert (issuer.store.authoritative_dir / "3_JAN KOWALSKI.jpg").exists()
    assert not (issuer.store.authoritative_dir / "3_ANNA NOWAK.jpg").exists()
    assert not (issuer.store.mirror_dir / "3_ANNA NOWAK.jpg").exists()


def test_idempotent_reissue(issuer, photo_bytes):
    request = _request(photo_bytes, explicit_card_number="3")

    first = issuer.issue(request, now=NOW)
    first_bytes = (issuer.store.authoritative_dir / "3_JAN KOWALSKI.jpg").read_bytes()
    second = issuer.issue(request, now=NOW)
    second_bytes = (issuer.store.authoritative_dir / "3_JAN KOWALSKI.jpg").read_bytes()

    assert first.overwritten is False
    assert second.overwritten is True
    assert first_bytes == second_bytes
    assert [row.card_number for row in issuer.ledger.rows()] == ["3"]


def test_reissue_overwrites_every_ledger_column(issuer, photo_bytes):
    issuer.issue(
        _request(photo_bytes, explicit_card_number="3", end_date=date(2026, 4, 30)),
        now=NOW,
    )
    issuer.issue(
        _request(photo_bytes, explicit_card_number="3", start_date=date(2025, 6, 1)),
        now=NOW,
    )

    row = issuer.ledger.get("3")
    assert row.start_date == "2025-06-01"
    assert row.end_date == ""
    assert len(issuer.ledger.rows()) == 1


def test_explicit_number_not_in_store(issuer, photo_bytes):
    result = issuer.issue(_request(photo_bytes, explicit_card_number="40"), now=NOW)
    assert result.card_number == "40"
    assert issuer.issue(_request(photo_bytes), now=NOW).card_number == "41"


def test_supplied_dates_are_recorded(issuer, photo_bytes):
    issuer.issue(
        _request(photo_bytes, start_date=date(2024, 4, 1), end_date=date(2026, 4, 30)),
        now=NOW,
    )
    row = issuer.ledger.get("1")
    assert row.start_date == "2024-04-01"
    assert row.end_date == "2026-04-30"


@pytest.mark.parametrize(
    "overrides",
    [
        {"first_name": ""},
        {"last_name": "   "},
        {"photo_bytes": b""},
        {"photo_filename": "face.gif"},
        {"photo_length": 5 * 1024 * 1024 + 1},
        {"explicit_card_number": "abc"},
        {"photo_bytes": b"not an image"},
    ],
)
def test_validation_errors_have_no_side_effects(issuer, photo_bytes, overrides):
    request = replace(_request(photo_bytes), **overrides)
    with pytest.raises(ValidationError):
        issuer.issue(request, now=NOW)
    assert not issuer.store.authoritative_dir.exists()
    assert not issuer.store.mirror_dir.exists()
    assert not issuer.ledger.path.exists()


def test_missing_background_fails_before_any_write(store, ledger, tmp_path, photo_bytes):
    issuer = CardIssuer(store=store, ledger=ledger, background_path=tmp_path / "missing.jpg")
    with pytest.raises(MissingAssetError):
        issuer.issue(_request(photo_bytes), now=NOW)
    assert not store.authoritative_dir.exists()
    assert not ledger.path.exists()


def test_mirror_failure_leaves_no_ledger_row(tmp_path, ledger, background_path, photo_bytes):
    blocker = tmp_path / "mirror"
    blocker.write_bytes(b"")
    issuer = CardIssuer(
        store=CardStore(tmp_path / "network", blocker),
        ledger=ledger,
        background_path=background_path,
    )

    with pytest.raises(StorageError) as excinfo:
        issuer.issue(_request(photo_bytes), now=NOW)

    assert excinfo.value.partial is True
    assert (tmp_path / "network" / "1_JAN KOWALSKI.jpg").exists()
    assert ledger.get("1") is None


def test_edit_normalizes_names(issuer, photo_bytes):
    issuer.issue(_request(photo_bytes), now=NOW)
    row = issuer.edit("1", last_name="nowak")
    assert row.full_name == "JAN NOWAK"


def test_edit_unknown_card(issuer, photo_bytes):
    issuer.issue(_request(photo_bytes), now=NOW)
    with pytest.raises(LedgerError):
        issuer.edit("2", first_name="piotr")


def test_lookup(issuer, photo_bytes):
    issuer.issue(_request(photo_bytes), now=NOW)
    row, path = issuer.lookup("1")
    assert row.full_name == "JAN KOWALSKI"
    assert path.name == "1_JAN KOWALSKI.jpg"
    assert issuer.lookup(" 2 ") == (None, None)
    with pytest.raises(ValidationError):
        issuer.lookup("abc")


def test_lookup_waits_for_running_issuance(issuer, photo_bytes):
    issuer.issue(_request(photo_bytes), now=NOW)
    with ThreadPoolExecutor(max_workers=1) as pool:
        with issuer._lock:
            pending = pool.submit(issuer.lookup, "1")
            with pytest.raises(ResultTimeout):
                pending.result(timeout=0.2)
        row, _ = pending.result(timeout=5)
    assert row.full_name == "JAN KOWALSKI"


def test_concurrent_issuance_allocates_distinct_numbers(issuer):
    requests = [
        _request(make_photo_bytes(color=(0, 0, 10 * i)), first_name=f"osoba{i}", last_name="test")
        for i in range(6)
    ]
    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda r: issuer.issue(r, now=NOW), requests))

    assert sorted(int(r.card_number) for r in results) == [1, 2, 3, 4, 5, 6]
    assert len(issuer.ledger.rows()) == 6
