"""In-progress (unsaved) template being authored on a screen."""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from invoice_templates.config import Settings
from invoice_templates.models import AnalysisResult, DraftFields, Template, is_cell_ref
from invoice_templates.services.file_adapter import PickedFile
from invoice_templates.utils.logging import logger


@dataclass(frozen=True)
class DraftSnapshot:
    """Immutable view handed to observers after each mutation."""
    name: str
    description: str
    field_mappings: Dict[str, str]
    selected_file: Optional[PickedFile] = None
    suggestions: Optional[AnalysisResult] = None
    warnings: Dict[str, str] = field(default_factory=dict)

    @property
    def preview_mode(self) -> bool:
        return self.selected_file is not None


def cell_warning(value: str) -> Optional[str]:
    """Soft warning for a mapping that does not look like a cell reference."""
    if is_cell_ref(value):
        return None
    return f"{value!r} is not a cell reference like B12"


class TemplateDraft:
    """Holds name, description and the field-mapping table being edited.

    Every mutation is applied in one step and observers are notified once,
    after the change is complete.
    """

    def __init__(self, name: str = "", description: str = "", field_mappings: Optional[Dict[str, str]] = None):
        self.name = name
        self.description = description
        self._field_mappings: Dict[str, str] = dict(field_mappings or {})
        self.selected_file: Optional[PickedFile] = None
        self.suggestions: Optional[AnalysisResult] = None
        self._listeners: List[Callable[[DraftSnapshot], None]] = []

    @classmethod
    def from_settings(cls, source: Settings) -> "TemplateDraft":
        return cls(field_mappings=source.default_field_mappings)

    @classmethod
    def from_template(cls, template: Template) -> "TemplateDraft":
        return cls(
            name=template.name,
            description=template.description,
            field_mappings=template.field_mappings,
        )

    @property
    def field_mappings(self) -> Dict[str, str]:
        return dict(self._field_mappings)

    @property
    def preview_mode(self) -> bool:
        return self.selected_file is not None

    # ---------- observers ----------

    def subscribe(self, listener: Callable[[DraftSnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(
            name=self.name,
            description=self.description,
            field_mappings=dict(self._field_mappings),
            selected_file=self.selected_file,
            suggestions=self.suggestions,
            warnings=self.cell_warnings(),
        )

    def _notify(self):
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # ---------- user edits ----------

    def set_name(self, name: str):
        self.name = name
        self._notify()

    def set_description(self, description: str):
        self.description = description
        self._notify()

    def set_field(self, field_name: str, value: str) -> Optional[str]:
        """Overwrite one mapping (last write wins). Returns a soft warning, if any."""
        self._field_mappings = {**self._field_mappings, field_name: value}
        self._notify()
        return cell_warning(value)

    def cell_warnings(self) -> Dict[str, str]:
        warnings = {}
        for field_name, value in self._field_mappings.items():
            warning = cell_warning(value)
            if warning:
                warnings[field_name] = warning
        return warnings

    # ---------- file / analysis ----------

    def select_file(self, picked: PickedFile):
        self.selected_file = picked
        self._notify()

    def set_suggestions(self, analysis: Optional[AnalysisResult]):
        """Store an analysis for display without touching field_mappings."""
        self.suggestions = analysis
        self._notify()

    def apply_suggestions(self, analysis: AnalysisResult):
        """Merge suggested mappings; a suggested cell replaces the current one.

        Keys absent from the suggestions are left alone. The merged table
        replaces the old one in a single assignment.
        """
        suggested = analysis.suggestions or {}
        if suggested:
            self._field_mappings = {**self._field_mappings, **suggested}
            logger.info(f"Applied {len(suggested)} suggested field mappings")
        self.suggestions = analysis
        self._notify()

    def reset(self):
        """Drop the selected file and its analysis. Mappings are kept."""
        self.selected_file = None
        self.suggestions = None
        self._notify()

    def to_fields(self) -> DraftFields:
        """Fields for submission; raises ValidationError when the name is blank."""
        return DraftFields(
            name=self.name,
            description=self.description,
            field_mappings=dict(self._field_mappings),
        ).validated()
