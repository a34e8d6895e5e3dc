from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import date
from functools import partial
from pathlib import Path
from typing import Optional

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, FSInputFile, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from aiogram.utils.text_decorations import html_decoration
from jinja2 import Environment

from cardbot.errors import CardError, OverwriteConfirmationRequired
from cardbot.models import CardResult, IssueCardRequest, LedgerRow
from cardbot.service import CardIssuer
from cardbot.states import EditStates, IssueStates
from cardbot.utils.formatting import format_long_date, parse_edit_text

logger = logging.getLogger(__name__)

router = Router()

# Replies are sent as HTML; names and ledger values are escaped.
templates = Environment(autoescape=True)
quote = html_decoration.quote

ISSUED_TEMPLATE = templates.from_string(
    "✅ Karta nr <b>{{ result.card_number }}</b> wydana.\n"
    "{{ first_name }} {{ last_name }}\n"
    "Ważna do: {{ result.valid_until }}"
    "{% if result.overwritten %}\n⚠️ Poprzednia karta o tym numerze została nadpisana.{% endif %}"
)

ROW_TEMPLATE = templates.from_string(
    "Karta nr <b>{{ row.card_number }}</b>\n"
    "Imię i nazwisko: {{ row.full_name }}\n"
    "Data wydania: {{ start_date or '—' }}\n"
    "Data ważności: {{ end_date or '—' }}"
)

EDIT_HELP = (
    "Wyślij zmiany w formacie (dowolne z pól):\n"
    "Imię: JAN\n"
    "Nazwisko: KOWALSKI\n"
    "Data wydania: 15.03.2024\n"
    "Data ważności: 30.04.2026"
)


def _long_date(value: str) -> Optional[str]:
    return format_long_date(date.fromisoformat(value)) if value else None


def render_row(row: LedgerRow) -> str:
    return ROW_TEMPLATE.render(row=row, start_date=_long_date(row.start_date), end_date=_long_date(row.end_date))


def render_issued(result: CardResult, request: IssueCardRequest) -> str:
    return ISSUED_TEMPLATE.render(
        result=result,
        first_name=request.first_name.strip().upper(),
        last_name=request.last_name.strip().upper(),
    )


def overwrite_prompt(card_number: str, existing_name: str) -> str:
    return (
        f"⚠️ Karta nr {quote(str(card_number))} jest już wydana dla {quote(existing_name)}. "
        "Czy nadpisać ją nowymi danymi?"
    )


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext) -> None:
    await state.clear()
    await message.answer(
        "Dzień dobry! Wydaję Podkowiańskie Karty Mieszkańca.\n"
        "/new — nowa karta\n"
        "/edit — korekta wpisu w rejestrze\n"
        "/card NUMER — podgląd wydanej karty\n"
        "/cancel — przerwanie bieżącej operacji"
    )


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext) -> None:
    await state.clear()
    await message.answer("Operacja przerwana.")


@router.message(Command("new"))
async def cmd_new(message: Message, state: FSMContext) -> None:
    await state.clear()
    await state.set_state(IssueStates.waiting_for_first_name)
    await message.answer("Podaj imię mieszkańca.")


@router.message(IssueStates.waiting_for_first_name, F.text)
async def handle_first_name(message: Message, state: FSMContext) -> None:
    await state.update_data(first_name=message.text.strip())
    await state.set_state(IssueStates.waiting_for_last_name)
    await message.answer("Podaj nazwisko mieszkańca.")


@router.message(IssueStates.waiting_for_last_name, F.text)
async def handle_last_name(message: Message, state: FSMContext) -> None:
    await state.update_data(last_name=message.text.strip())
    await state.set_state(IssueStates.waiting_for_number)
    await message.answer("Podaj numer karty albo wyślij „-”, aby nadać kolejny wolny numer.")


@router.message(IssueStates.waiting_for_number, F.text)
async def handle_number(message: Message, state: FSMContext) -> None:
    text = message.text.strip()
    if text in ("-", "—"):
        explicit = None
    elif text.isdigit() and int(text) > 0:
        explicit = text
    else:
        await message.answer("Numer karty musi być dodatnią liczbą. Spróbuj ponownie lub wyślij „-”.")
        return
    await state.update_data(explicit_card_number=explicit)
    await state.set_state(IssueStates.waiting_for_photo)
    await message.answer("Wyślij zdjęcie mieszkańca (JPG lub PNG, najlepiej jako plik, maks. 5 MB).")


async def _download(message: Message, file_id: str) -> bytes:
    buffer = await message.bot.download(file_id)
    return buffer.read()


async def _issue(message: Message, state: FSMContext, issuer: CardIssuer, request: IssueCardRequest) -> None:
    await message.answer("Generuję kartę, proszę czekać…")
    loop = asyncio.get_running_loop()
    try:
        result: CardResult = await loop.run_in_executor(None, partial(issuer.issue, request))
    except OverwriteConfirmationRequired as exc:
        logger.info("Card %s requires overwrite confirmation", request.explicit_card_number)
        await state.update_data(pending_request=request)
        builder = InlineKeyboardBuilder()
        builder.button(text="Nadpisz", callback_data="confirm_overwrite")
        builder.button(text="Anuluj", callback_data="cancel_overwrite")
        builder.adjust(2)
        await message.answer(
            overwrite_prompt(request.explicit_card_number, exc.existing_name),
            reply_markup=builder.as_markup(),
        )
        await state.set_state(IssueStates.overwrite_confirmation)
        return
    except CardError as exc:
        logger.warning("Card issuance failed: %s", exc)
        await message.answer(f"Wystąpił błąd: {quote(exc.detail)}")
        await state.clear()
        return
    except Exception as exc:  # pragma: no cover - unexpected errors
        logger.exception("Unexpected error while issuing a card", exc_info=exc)
        await message.answer("Wystąpił nieoczekiwany błąd. Spróbuj ponownie później.")
        await state.clear()
        return

    await state.clear()
    caption = render_issued(result, request)
    try:
        await message.answer_document(FSInputFile(result.stored_path), caption=caption)
    except TelegramBadRequest as exc:
        logger.exception("Failed to send card: %s", exc)
        await message.answer(caption + "\n\nNie udało się wysłać pliku karty.")


async def _handle_upload(
    message: Message,
    state: FSMContext,
    issuer: CardIssuer,
    file_id: str,
    filename: str,
    length: int,
) -> None:
    data = await state.get_data()
    photo_bytes = await _download(message, file_id)
    request = IssueCardRequest(
        first_name=data["first_name"],
        last_name=data["last_name"],
        photo_bytes=photo_bytes,
        photo_filename=filename,
        photo_length=length or len(photo_bytes),
        explicit_card_number=data.get("explicit_card_number"),
    )
    await _issue(message, state, issuer, request)


@router.message(IssueStates.waiting_for_photo, F.document)
async def handle_photo_document(message: Message, state: FSMContext, issuer: CardIssuer) -> None:
    document = message.document
    await _handle_upload(
        message,
        state,
        issuer,
        document.file_id,
        document.file_name or "",
        document.file_size or 0,
    )


@router.message(IssueStates.waiting_for_photo, F.photo)
async def handle_photo(message: Message, state: FSMContext, issuer: CardIssuer) -> None:
    photo = message.photo[-1]
    await _handle_upload(
        message,
        state,
        issuer,
        photo.file_id,
        f"{photo.file_unique_id}.jpg",
        photo.file_size or 0,
    )


@router.message(IssueStates.waiting_for_photo)
async def prompt_for_photo(message: Message) -> None:
    await message.answer("Pozostało tylko zdjęcie. Wyślij plik JPG lub PNG albo użyj /cancel.")


@router.callback_query(IssueStates.overwrite_confirmation, F.data == "confirm_overwrite")
async def confirm_overwrite(callback: CallbackQuery, state: FSMContext, issuer: CardIssuer) -> None:
    await callback.message.edit_reply_markup()
    data = await state.get_data()
    request: Optional[IssueCardRequest] = data.get("pending_request")
    await callback.answer()
    if request is None:
        await state.clear()
        await callback.message.answer("Brak oczekującej karty. Zacznij od /new.")
        return
    await _issue(callback.message, state, issuer, replace(request, confirm_overwrite=True))


@router.callback_query(IssueStates.overwrite_confirmation, F.data == "cancel_overwrite")
async def cancel_overwrite(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.message.edit_reply_markup()
    await state.clear()
    await callback.message.answer("Karta nie została wydana.")
    await callback.answer()


@router.message(Command("edit"))
async def cmd_edit(message: Message, state: FSMContext) -> None:
    await state.clear()
    await state.set_state(EditStates.waiting_for_number)
    await message.answer("Podaj numer karty do korekty.")


@router.message(EditStates.waiting_for_number, F.text)
async def handle_edit_number(message: Message, state: FSMContext, issuer: CardIssuer) -> None:
    loop = asyncio.get_running_loop()
    try:
        row, _ = await loop.run_in_executor(None, partial(issuer.lookup, message.text))
    except CardError as exc:
        await message.answer(quote(exc.detail))
        return
    if row is None:
        await message.answer("Nie znaleziono karty o tym numerze. Podaj inny numer lub użyj /cancel.")
        return
    await state.update_data(card_number=row.card_number)
    await state.set_state(EditStates.waiting_for_changes)
    await message.answer(render_row(row) + "\n\n" + EDIT_HELP)


@router.message(EditStates.waiting_for_changes, F.text)
async def handle_edit_changes(message: Message, state: FSMContext, issuer: CardIssuer) -> None:
    try:
        changes = parse_edit_text(message.text)
    except CardError as exc:
        await message.answer(f"Nie udało się odczytać zmian: {quote(exc.detail)}\n\n{EDIT_HELP}")
        return

    data = await state.get_data()
    loop = asyncio.get_running_loop()
    try:
        row = await loop.run_in_executor(None, partial(issuer.edit, data["card_number"], **changes))
    except CardError as exc:
        logger.warning("Ledger edit failed: %s", exc)
        await message.answer(f"Wystąpił błąd: {quote(exc.detail)}")
        await state.clear()
        return

    await state.clear()
    await message.answer("✅ Wpis zaktualizowany.\n" + render_row(row))


@router.message(Command("card"))
async def cmd_card(message: Message, command: CommandObject, issuer: CardIssuer) -> None:
    if not command.args:
        await message.answer("Użycie: /card NUMER")
        return
    loop = asyncio.get_running_loop()
    try:
        row, path = await loop.run_in_executor(None, partial(issuer.lookup, command.args))
    except CardError as exc:
        await message.answer(quote(exc.detail))
        return
    if row is None and path is None:
        await message.answer("Nie znaleziono karty o tym numerze.")
        return
    if row is not None:
        await message.answer(render_row(row))
    else:
        await message.answer("Karta nie ma wpisu w rejestrze.")
    if path is not None and Path(path).exists():
        await message.answer_document(FSInputFile(path))


__all__ = ["router", "render_row", "render_issued", "overwrite_prompt"]
