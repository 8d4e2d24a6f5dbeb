"""Template analysis orchestration.

Pre-save flow ("try before you save"): the backend can only analyze a file that
belongs to a template, so a provisional template is created to host the picked
file, the file is uploaded and analyzed, suggestions are merged into the draft,
and the provisional template is deleted again on every exit path.

    IDLE -> FILE_SELECTED -> PROVISIONING_TEMP -> UPLOADING -> ANALYZING
         -> MERGED -> CLEANING_UP -> DONE
    ERRORED(stage, cause) is reachable from every state except IDLE/DONE.

Only _provision_host() and _cleanup_host() know the hosting template is
provisional; upload/analyze just see a template id.

Post-save flow: a persisted template that already has a file is analyzed and
the result is stored for display only (saved mappings are never rewritten).
"""
import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Set

from invoice_templates.config import Settings, settings as default_settings
from invoice_templates.errors import (
    AnalysisUnavailable,
    NotFound,
    TemplateClientError,
    UploadError,
    ValidationError,
    WorkflowBusy,
)
from invoice_templates.models import AnalysisResult, DraftFields, Template, UploadResult
from invoice_templates.services.draft_state import TemplateDraft
from invoice_templates.services.file_adapter import FileAdapter, PickedFile
from invoice_templates.services.template_client import RemoteTemplateClient
from invoice_templates.utils.logging import logger

ANALYSIS_UNAVAILABLE_NOTE = "File selected successfully. Analysis not available."


class AnalysisState(str, Enum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    PROVISIONING_TEMP = "provisioning_temp"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    MERGED = "merged"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    ERRORED = "errored"


class ErrorStage(str, Enum):
    PROVISION = "provision"
    UPLOAD = "upload"
    LOAD = "load"


@dataclass
class WorkflowError:
    stage: ErrorStage
    cause: TemplateClientError


@dataclass
class AnalysisOutcome:
    """How a finished run ended. Errored runs raise instead of returning."""
    run_id: str
    state: AnalysisState
    analysis: Optional[AnalysisResult] = None
    notice: Optional[str] = None
    cleanup_ok: Optional[bool] = None  # None when no provisional template was involved


StateListener = Callable[[AnalysisState, Optional[WorkflowError]], None]


class AnalysisOrchestrator:
    """Drives one screen's analysis runs, one run at a time."""

    def __init__(
        self,
        client: RemoteTemplateClient,
        draft: TemplateDraft,
        file_adapter: Optional[FileAdapter] = None,
        settings: Optional[Settings] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        self.client = client
        self.draft = draft
        self.file_adapter = file_adapter or FileAdapter()
        self.settings = settings or default_settings
        self.on_state_change = on_state_change

        self.state = AnalysisState.IDLE
        self.error: Optional[WorkflowError] = None
        self.notice: Optional[str] = None

        self._running = False
        self._disposed = False
        self._run_id: Optional[str] = None
        self._host_template_id: Optional[str] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def busy(self) -> bool:
        return self._running

    def _set_state(self, state: AnalysisState, error: Optional[WorkflowError] = None):
        self.state = state
        self.error = error
        logger.info(f"Analysis state -> {state.value}", extra={"run_id": self._run_id})
        if self.on_state_change:
            self.on_state_change(state, error)

    def _fail(self, stage: ErrorStage, cause: TemplateClientError):
        logger.error(
            f"Analysis run failed at {stage.value}: {cause.message}",
            extra={"run_id": self._run_id},
        )
        self._set_state(AnalysisState.ERRORED, WorkflowError(stage, cause))

    def _claim(self):
        # Check-and-set happens before any await, so it cannot interleave
        if self._running:
            raise WorkflowBusy()
        self._running = True
        self._run_id = uuid.uuid4().hex[:12]
        self.notice = None

    def _release(self):
        self._running = False

    # ==================== Pre-save flow ====================

    def pick_file(self, raw_pick: Any) -> PickedFile:
        """Record a user-picked file on the draft. No network activity."""
        if self._running:
            raise WorkflowBusy()
        picked = self.file_adapter.normalize(raw_pick)
        self.draft.select_file(picked)
        self.notice = None
        self._set_state(AnalysisState.FILE_SELECTED)
        return picked

    def clear_file(self):
        """User removed the file: forget it and its analysis, keep mappings."""
        if self._running:
            raise WorkflowBusy()
        self.draft.reset()
        self.notice = None
        self._set_state(AnalysisState.IDLE)

    async def begin_analysis(self) -> AnalysisOutcome:
        """Run provision -> upload -> analyze -> merge -> cleanup for the selected file.

        Returns:
            AnalysisOutcome in state DONE (analysis may be None when the
            backend could not analyze the file)

        Raises:
            WorkflowBusy: another run is active
            ValidationError: no file selected
            TemplateClientError: provisioning or upload failed; the state is
                ERRORED and any provisional template has been deleted
        """
        picked = self.draft.selected_file
        if picked is None:
            raise ValidationError("Select a spreadsheet before running analysis", field="file")

        self._claim()
        try:
            return await self._run_pre_save(picked)
        except asyncio.CancelledError:
            # Screen went away mid-run; cleanup must not block navigation
            logger.info("Analysis run cancelled", extra={"run_id": self._run_id})
            self._cleanup_in_background()
            self._settle_after_cancel()
            raise
        finally:
            self._release()

    async def _run_pre_save(self, picked: PickedFile) -> AnalysisOutcome:
        self._set_state(AnalysisState.PROVISIONING_TEMP)
        try:
            host_id = await self._provision_host()
        except TemplateClientError as e:
            # selected_file stays on the draft so the user can retry
            self._fail(ErrorStage.PROVISION, e)
            raise

        self._set_state(AnalysisState.UPLOADING)
        try:
            await self._upload(host_id, picked)
        except TemplateClientError as e:
            await self._cleanup_host()
            self._fail(ErrorStage.UPLOAD, e)
            raise

        self._set_state(AnalysisState.ANALYZING)
        analysis = await self._analyze_best_effort(host_id)

        if analysis is not None and not self._disposed:
            self.draft.apply_suggestions(analysis)
            self._set_state(AnalysisState.MERGED)

        cleanup_ok = await self._cleanup_host()
        self._set_state(AnalysisState.DONE)
        return AnalysisOutcome(
            run_id=self._run_id,
            state=self.state,
            analysis=analysis,
            notice=self.notice,
            cleanup_ok=cleanup_ok,
        )

    async def _provision_host(self) -> str:
        fields = DraftFields(
            name=self.draft.name.strip() or self.settings.temp_template_name,
            description=self.draft.description.strip(),
            field_mappings=self.draft.field_mappings,
        )
        template = await self.client.create_provisional(fields)
        self._host_template_id = template.id
        logger.info(
            "Provisional template created for analysis",
            extra={"run_id": self._run_id, "template_id": template.id},
        )
        return template.id

    async def _cleanup_host(self) -> Optional[bool]:
        """Delete the provisional template, at most once per run. Never raises."""
        template_id = self._host_template_id
        if template_id is None:
            return None
        self._host_template_id = None

        self._set_state(AnalysisState.CLEANING_UP)
        return await self._delete_host(template_id, self._run_id)

    async def _delete_host(self, template_id: str, run_id: Optional[str]) -> bool:
        try:
            await self.client.delete_template(template_id)
        except NotFound:
            return True
        except TemplateClientError as e:
            logger.warning(
                f"Could not delete provisional template: {e.message}",
                extra={"run_id": run_id, "template_id": template_id},
            )
            return False
        return True

    def _cleanup_in_background(self):
        # Runs after the owning run has ended, so it leaves the state alone
        template_id = self._host_template_id
        if template_id is None:
            return
        self._host_template_id = None
        task = asyncio.ensure_future(self._delete_host(template_id, self._run_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _settle_after_cancel(self):
        if self.draft.selected_file is not None:
            self._set_state(AnalysisState.FILE_SELECTED)
        else:
            self._set_state(AnalysisState.IDLE)

    async def _upload(self, template_id: str, picked: PickedFile) -> UploadResult:
        result = await self.client.upload_file(template_id, picked)
        if not result.success:
            raise UploadError(result.message or "Upload failed")
        return result

    async def _analyze_best_effort(self, template_id: str) -> Optional[AnalysisResult]:
        try:
            return await self.client.analyze(template_id)
        except AnalysisUnavailable as e:
            logger.info(
                f"Analysis unavailable, continuing without suggestions: {e.message}",
                extra={"run_id": self._run_id, "template_id": template_id},
            )
            self.notice = ANALYSIS_UNAVAILABLE_NOTE
            return None

    # ==================== Post-save flow ====================

    async def analyze_existing(self, template: Template) -> Optional[AnalysisResult]:
        """Analyze a saved template's file for display; saved mappings are untouched."""
        if not template.has_file:
            return None
        self._claim()
        try:
            return await self._run_post_save(template.id)
        finally:
            self._release()

    async def _run_post_save(self, template_id: str) -> Optional[AnalysisResult]:
        self._set_state(AnalysisState.ANALYZING)
        analysis = await self._analyze_best_effort(template_id)
        if analysis is not None:
            self.draft.set_suggestions(analysis)
            self._set_state(AnalysisState.MERGED)
        self._set_state(AnalysisState.DONE)
        return analysis

    async def upload_to_existing(self, template_id: str, raw_pick: Any) -> Template:
        """Upload a master file to a saved template, then reload and analyze it.

        Raises:
            UploadError / TransportError: upload failed; nothing else changes
            UnsupportedFileSource: the pick has no readable file; state is ERRORED
        """
        self._claim()
        try:
            try:
                picked = self.file_adapter.normalize(raw_pick)
                self._set_state(AnalysisState.UPLOADING)
                await self._upload(template_id, picked)
            except TemplateClientError as e:
                self._fail(ErrorStage.UPLOAD, e)
                raise

            try:
                template = await self.client.get_template(template_id)
            except TemplateClientError as e:
                self._fail(ErrorStage.LOAD, e)
                raise

            if template.has_file:
                await self._run_post_save(template.id)
            else:
                self._set_state(AnalysisState.DONE)
            return template
        finally:
            self._release()

    # ==================== Lifecycle ====================

    def dispose(self):
        """Screen is going away.

        An active run finishes on its own and still deletes its provisional
        template, but no longer merges into the discarded draft.
        """
        self._disposed = True
        if not self._running:
            self._cleanup_in_background()
