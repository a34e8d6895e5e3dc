"""Excel ledger of issued cards.

Row 1 is a header. Columns A-D are the published layout
``[cardNumber, fullName, startDate, endDate]``; E and F keep the first and
last name separately so a partial name correction never has to split the
combined cell. Rows written before E/F existed are split on the first space.
"""

from __future__ import annotations

import logging
import zipfile
from datetime import date
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from cardbot.errors import LedgerError
from cardbot.models import LedgerRow
from cardbot.utils.formatting import format_ledger_date, full_name as join_names

logger = logging.getLogger(__name__)

SHEET_TITLE = "Karty"
HEADERS = ("cardNumber", "fullName", "startDate", "endDate", "firstName", "lastName")
FIRST_DATA_ROW = 2

DateLike = Union[date, str, None]


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return format_ledger_date(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class Ledger:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    # -- workbook io -------------------------------------------------------

    def _load(self) -> Tuple[Workbook, Worksheet]:
        if not self.path.exists():
            workbook = Workbook()
            sheet = workbook.active
            sheet.title = SHEET_TITLE
            sheet.append(list(HEADERS))
            for cell in sheet[1]:
                cell.font = Font(bold=True)
            return workbook, sheet
        try:
            workbook = load_workbook(self.path)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            raise LedgerError(f"Nie można odczytać rejestru {self.path}: {exc}") from exc
        return workbook, workbook.active

    def _save(self, workbook: Workbook) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            workbook.save(self.path)
        except OSError as exc:
            raise LedgerError(f"Nie można zapisać rejestru {self.path}: {exc}") from exc

    @staticmethod
    def _iter_rows(sheet: Worksheet) -> Iterator[Tuple[int, LedgerRow]]:
        for index, values in enumerate(
            sheet.iter_rows(min_row=FIRST_DATA_ROW, max_col=len(HEADERS), values_only=True),
            start=FIRST_DATA_ROW,
        ):
            texts = [_cell_text(value) for value in values]
            texts.extend([""] * (len(HEADERS) - len(texts)))
            if not texts[0]:
                continue
            yield index, LedgerRow(*texts)

    @staticmethod
    def _find(sheet: Worksheet, card_number: str) -> Optional[Tuple[int, LedgerRow]]:
        for index, row in Ledger._iter_rows(sheet):
            if row.card_number == card_number:
                return index, row
        return None

    @staticmethod
    def _next_free_row(sheet: Worksheet) -> int:
        row = sheet.max_row + 1
        while row > FIRST_DATA_ROW and sheet.cell(row=row - 1, column=1).value in (None, ""):
            row -= 1
        return max(row, FIRST_DATA_ROW)

    @staticmethod
    def _write_row(sheet: Worksheet, index: int, row: LedgerRow) -> None:
        values = (row.card_number, row.full_name, row.start_date, row.end_date, row.first_name, row.last_name)
        for column, value in enumerate(values, start=1):
            sheet.cell(row=index, column=column).value = value or None

    # -- public api ----------------------------------------------------------

    def rows(self) -> List[LedgerRow]:
        if not self.path.exists():
            return []
        _, sheet = self._load()
        return [row for _, row in self._iter_rows(sheet)]

    def get(self, card_number: Union[int, str]) -> Optional[LedgerRow]:
        if not self.path.exists():
            return None
        _, sheet = self._load()
        found = self._find(sheet, str(card_number).strip())
        return found[1] if found else None

    def upsert(
        self,
        card_number: Union[int, str],
        full_name: Optional[str] = None,
        start_date: DateLike = None,
        end_date: DateLike = None,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> LedgerRow:
        """Overwrite the row keyed by ``card_number`` or append a new one."""
        key = str(card_number).strip()
        if not full_name and (first_name or last_name):
            full_name = join_names(first_name or "", last_name or "")
        row = LedgerRow(
            card_number=key,
            full_name=full_name or "",
            start_date=format_ledger_date(start_date or date.today()),
            end_date=format_ledger_date(end_date),
            first_name=first_name or "",
            last_name=last_name or "",
        )

        workbook, sheet = self._load()
        found = self._find(sheet, key)
        if found:
            index = found[0]
            logger.info("Ledger: overwriting row %s for card %s", index, key)
        else:
            index = self._next_free_row(sheet)
            logger.info("Ledger: appending card %s at row %s", key, index)
        self._write_row(sheet, index, row)
        self._save(workbook)
        return row

    def edit(
        self,
        card_number: Union[int, str],
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        start_date: DateLike = None,
        end_date: DateLike = None,
    ) -> LedgerRow:
        """Update only the supplied, non-empty fields of an existing row."""
        key = str(card_number).strip()
        if not self.path.exists():
            raise LedgerError(f"Nie znaleziono karty o numerze {key} (card number not found)")
        workbook, sheet = self._load()
        found = self._find(sheet, key)
        if not found:
            raise LedgerError(f"Nie znaleziono karty o numerze {key} (card number not found)")
        index, row = found

        if first_name or last_name:
            current_first, current_last = row.names()
            row.first_name = first_name or current_first
            row.last_name = last_name or current_last
            row.full_name = join_names(row.first_name, row.last_name)
        if start_date:
            row.start_date = format_ledger_date(start_date)
        if end_date:
            row.end_date = format_ledger_date(end_date)

        self._write_row(sheet, index, row)
        self._save(workbook)
        logger.info("Ledger: edited card %s at row %s", key, index)
        return row


__all__ = ["Ledger", "HEADERS"]
