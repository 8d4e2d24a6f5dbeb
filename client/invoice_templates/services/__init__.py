from .analysis_orchestrator import AnalysisOrchestrator, AnalysisOutcome, AnalysisState, ErrorStage
from .draft_state import TemplateDraft
from .file_adapter import BlobFile, FileAdapter, PickedFile, UriFile
from .template_client import RemoteTemplateClient
from .template_list import TemplateListCoordinator

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisOutcome",
    "AnalysisState",
    "ErrorStage",
    "TemplateDraft",
    "BlobFile",
    "FileAdapter",
    "PickedFile",
    "UriFile",
    "RemoteTemplateClient",
    "TemplateListCoordinator",
]
