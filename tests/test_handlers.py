from cardbot.handlers import overwrite_prompt, render_issued, render_row
from cardbot.models import CardResult, IssueCardRequest, LedgerRow


def test_issued_caption_escapes_names():
    request = IssueCardRequest(
        first_name="a<b",
        last_name="c&d",
        photo_bytes=b"",
        photo_filename="face.png",
        photo_length=0,
    )
    result = CardResult(card_number="7", stored_path="7_A<B C&D.jpg", valid_until="04/2026")

    text = render_issued(result, request)

    assert "A&lt;B C&amp;D" in text
    assert "<b>7</b>" in text
    assert "<B" not in text


def test_row_escapes_full_name():
    row = LedgerRow("3", "JAN <KOWALSKI>", start_date="2024-03-15")

    text = render_row(row)

    assert "JAN &lt;KOWALSKI&gt;" in text
    assert "<b>3</b>" in text
    assert "15 marca 2024" in text


def test_overwrite_prompt_escapes_existing_name():
    text = overwrite_prompt("3", "ANNA <NOWAK> & S-KA")
    assert "ANNA &lt;NOWAK&gt; &amp; S-KA" in text
    assert "<NOWAK>" not in text
