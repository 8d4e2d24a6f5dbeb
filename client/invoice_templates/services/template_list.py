"""Template list and lifecycle coordination (list, detail, create, delete)."""
from dataclasses import dataclass
from typing import Callable, List, Optional

from invoice_templates.errors import NotFound, TemplateClientError
from invoice_templates.models import AnalysisResult, Template
from invoice_templates.services.analysis_orchestrator import AnalysisOrchestrator
from invoice_templates.services.draft_state import TemplateDraft
from invoice_templates.services.template_client import RemoteTemplateClient
from invoice_templates.utils.logging import logger

DETAIL_VIEW = "TemplateDetail"

Navigate = Callable[..., None]


@dataclass
class TemplateDetail:
    template: Template
    analysis: Optional[AnalysisResult] = None


class TemplateListCoordinator:
    """Keeps the persisted template list in sync with the backend."""

    def __init__(self, client: RemoteTemplateClient, navigate: Optional[Navigate] = None):
        self.client = client
        self.navigate = navigate
        self.templates: List[Template] = []
        self.error: Optional[TemplateClientError] = None
        self._generation = 0

    async def refresh(self) -> List[Template]:
        """Replace the list with the backend's.

        Overlapping calls are allowed: only the most recently started call
        may update the list or surface an error.
        """
        self._generation += 1
        generation = self._generation
        try:
            templates = await self.client.list_templates()
        except TemplateClientError as e:
            if generation != self._generation:
                logger.info("Discarding failure from superseded refresh")
                return list(self.templates)
            self.error = e
            raise

        if generation != self._generation:
            logger.info("Discarding stale template list")
            return list(self.templates)

        self.templates = templates
        self.error = None
        return list(self.templates)

    async def remove(self, template_id: str) -> List[Template]:
        """Delete then refresh. An already-missing template counts as deleted.

        If the delete fails the list is left as it was and the error is raised.
        """
        try:
            await self.client.delete_template(template_id)
        except NotFound:
            logger.info(f"Template {template_id} already deleted", extra={"template_id": template_id})
        except TemplateClientError as e:
            self.error = e
            raise
        return await self.refresh()

    async def create_and_navigate(self, draft: TemplateDraft) -> Template:
        """Submit the draft and open the new template's detail view.

        On failure the draft is untouched so the user can fix and retry.
        """
        fields = draft.to_fields()
        try:
            template = await self.client.create_template(fields)
        except TemplateClientError as e:
            self.error = e
            raise

        if self.navigate:
            self.navigate(DETAIL_VIEW, template_id=template.id, template_name=template.name)
        return template

    async def load(self, template_id: str, orchestrator: Optional[AnalysisOrchestrator] = None) -> TemplateDetail:
        """Fetch one template; analyze its file when one is attached."""
        template = await self.client.get_template(template_id)
        detail = TemplateDetail(template=template)
        if template.has_file:
            orchestrator = orchestrator or AnalysisOrchestrator(self.client, TemplateDraft.from_template(template))
            detail.analysis = await orchestrator.analyze_existing(template)
        return detail
