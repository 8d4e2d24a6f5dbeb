# client/invoice_templates/models.py
import re
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, List, Any

from invoice_templates.errors import ValidationError

# Column letters followed by a row number, e.g. "B12"
CELL_REF_PATTERN = re.compile(r"^[A-Z]+[0-9]+$")


def is_cell_ref(value: str) -> bool:
    return bool(value) and CELL_REF_PATTERN.match(value) is not None


def _stringify_mapping(v):
    """Backend stores mappings as loosely-typed JSON; keep keys and values as text."""
    if not isinstance(v, dict):
        return {}
    return {str(key): "" if value is None else str(value) for key, value in v.items()}


# ---------- Persisted template ----------
class Template(BaseModel):
    """Template record as owned by the backend."""
    id: str
    name: str
    description: str = ""
    field_mappings: Dict[str, str] = Field(default_factory=dict)
    template_url: Optional[str] = None  # set once a master file is uploaded
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("field_mappings", mode="before")
    def normalize_mappings(cls, v):
        return _stringify_mapping(v)

    @field_validator("template_url", mode="before")
    def empty_url_is_none(cls, v):
        # Backend serializes "no file" as an empty string
        return v or None

    @field_validator("description", mode="before")
    def none_description(cls, v):
        return v or ""

    @property
    def has_file(self) -> bool:
        return self.template_url is not None


class DraftFields(BaseModel):
    """Request body for create/update."""
    name: str = ""
    description: str = ""
    field_mappings: Dict[str, str] = Field(default_factory=dict)
    is_active: bool = True

    def validated(self) -> "DraftFields":
        """Return a trimmed copy, or raise ValidationError when the name is blank."""
        name = (self.name or "").strip()
        if not name:
            raise ValidationError("Template name is required", field="name")
        return DraftFields(
            name=name,
            description=(self.description or "").strip(),
            field_mappings=dict(self.field_mappings),
            is_active=self.is_active,
        )

    def create_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "field_mappings": dict(self.field_mappings),
        }

    def update_payload(self) -> Dict[str, Any]:
        payload = self.create_payload()
        payload["is_active"] = self.is_active
        return payload


class UploadResult(BaseModel):
    success: bool = True
    message: Optional[str] = None
    filename: Optional[str] = None
    url: Optional[str] = None


# ---------- Analysis ----------
class FillableField(BaseModel):
    """A placeholder detected in the workbook, e.g. "Invoice No: ____"."""
    field_name: str = ""
    cell: str = ""
    pattern_type: str = ""
    data_type: str = ""
    value: str = ""

    class Config:
        extra = "allow"

    @field_validator("field_name", "cell", "pattern_type", "data_type", "value", mode="before")
    def none_to_text(cls, v):
        return "" if v is None else str(v)


class FillableFields(BaseModel):
    total_count: int = 0
    fields: List[FillableField] = Field(default_factory=list)
    patterns: Dict[str, int] = Field(default_factory=dict)

    class Config:
        extra = "allow"

    @field_validator("total_count", mode="before")
    def none_count(cls, v):
        return v or 0

    @field_validator("fields", mode="before")
    def fields_list(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @field_validator("patterns", mode="before")
    def patterns_map(cls, v):
        if not isinstance(v, dict):
            return {}
        return {str(key): count or 0 for key, count in v.items()}


class AnalysisResult(BaseModel):
    """Read-only analysis payload. Every key may be missing or empty."""
    sheets: List[str] = Field(default_factory=list)
    active_sheet: Optional[str] = None
    row_count: Optional[int] = None
    column_count: Optional[int] = None
    suggestions: Dict[str, str] = Field(default_factory=dict)
    cell_data: Dict[str, str] = Field(default_factory=dict)
    fillable_fields: Optional[FillableFields] = None
    field_candidates: List[Dict[str, Any]] = Field(default_factory=list)
    data_structure: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "allow"

    @field_validator("suggestions", "cell_data", mode="before")
    def normalize_cell_maps(cls, v):
        return _stringify_mapping(v)

    @field_validator("fillable_fields", mode="before")
    def fillable_map(cls, v):
        return v if isinstance(v, dict) else None

    @field_validator("sheets", mode="before")
    def sheet_names(cls, v):
        if not isinstance(v, list):
            return []
        return [str(name) for name in v if name is not None]

    @field_validator("field_candidates", mode="before")
    def candidate_list(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @field_validator("data_structure", mode="before")
    def structure_map(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("row_count", "column_count", mode="before")
    def blank_count(cls, v):
        return None if v == "" else v

    @property
    def has_suggestions(self) -> bool:
        return bool(self.suggestions)
