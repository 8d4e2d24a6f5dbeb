from datetime import datetime
from typing import Optional

from invoice_templates.models import AnalysisResult


def format_date(value: Optional[str]) -> str:
    if not value:
        return "Not available"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


def field_display_name(field_name: str) -> str:
    """vendor_name -> Vendor Name"""
    return " ".join(part.capitalize() for part in field_name.split("_") if part)


def format_cell_ref(cell: Optional[str]) -> str:
    return (cell or "").strip().upper()


def cell_preview(analysis: Optional[AnalysisResult], cell: str) -> Optional[str]:
    """Text the analysis saw in `cell`, if any."""
    if analysis is None:
        return None
    return analysis.cell_data.get(cell) or None
