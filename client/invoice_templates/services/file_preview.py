"""Local preview of a picked spreadsheet using openpyxl.

Reads only what the picker already has on the device; nothing is uploaded.
"""
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, List, Optional
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from invoice_templates.errors import UnsupportedFileSource
from invoice_templates.services.file_adapter import BlobFile, PickedFile, UriFile, local_path_for
from invoice_templates.utils.logging import logger


@dataclass
class FilePreview:
    sheets: List[str] = field(default_factory=list)
    active_sheet: Optional[str] = None
    row_count: int = 0
    column_count: int = 0
    cells: Dict[str, str] = field(default_factory=dict)


def _workbook_source(picked: PickedFile):
    if isinstance(picked, BlobFile):
        return BytesIO(picked.content)
    if isinstance(picked, UriFile):
        return str(local_path_for(picked))
    raise UnsupportedFileSource(f"Unknown picked file type: {type(picked).__name__}")


def preview(picked: PickedFile, max_cells: int = 20) -> FilePreview:
    """First non-empty cells of the active sheet, plus sheet names and size."""
    source = _workbook_source(picked)
    try:
        workbook = load_workbook(source, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, OSError, KeyError, ValueError) as e:
        raise UnsupportedFileSource(f"Cannot open {picked.name} as a workbook: {e}") from e

    try:
        sheet = workbook.active or workbook[workbook.sheetnames[0]]
        result = FilePreview(
            sheets=list(workbook.sheetnames),
            active_sheet=sheet.title,
            row_count=sheet.max_row or 0,
            column_count=sheet.max_column or 0,
        )

        for row_idx, row in enumerate(sheet.iter_rows(values_only=True), start=1):
            for col_idx, value in enumerate(row, start=1):
                if value is None or str(value).strip() == "":
                    continue
                result.cells[f"{get_column_letter(col_idx)}{row_idx}"] = str(value).strip()
                if len(result.cells) >= max_cells:
                    break
            if len(result.cells) >= max_cells:
                break
    finally:
        workbook.close()

    logger.info(f"Previewed {picked.name}: {len(result.sheets)} sheets, {len(result.cells)} cells")
    return result
