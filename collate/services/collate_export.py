from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import IllegalCharacterError

from collate.models.common import is_zero_time
from collate.schemas.collate import FieldSpec

logger = logging.getLogger(__name__)

SHEET_NAME = "Sheet1"
# Excel built-in number format 14
DATE_NUMBER_FORMAT = "mm-dd-yy"
DATE_COLUMN_WIDTH = 15


class ExportError(RuntimeError):
    pass


def export_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"export_{stamp}.xlsx"


def _excel_datetime(value: datetime) -> datetime:
    # openpyxl refuses timezone-aware datetimes.
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _cell_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def build_workbook_bytes(rows: Sequence[Any], fields: Sequence[FieldSpec]) -> bytes:
    """Write ``rows`` into a single-sheet workbook, one column per export field."""
    try:
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_NAME

        for col_idx, spec in enumerate(fields, start=1):
            ws.cell(row=1, column=col_idx, value=spec.label)

        for row_idx, row in enumerate(rows, start=2):
            for col_idx, spec in enumerate(fields, start=1):
                value = getattr(row, spec.field, None)
                if isinstance(value, datetime):
                    if is_zero_time(value):
                        continue
                    cell = ws.cell(row=row_idx, column=col_idx, value=_excel_datetime(value))
                    cell.number_format = DATE_NUMBER_FORMAT
                    ws.column_dimensions[get_column_letter(col_idx)].width = DATE_COLUMN_WIDTH
                    continue
                ws.cell(row=row_idx, column=col_idx, value=_cell_value(value))

        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()
    except (IllegalCharacterError, ValueError, TypeError, OSError) as exc:
        logger.error("collate export failed: %s", exc, exc_info=True)
        raise ExportError("Error generating Excel file") from exc
