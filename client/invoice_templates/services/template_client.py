"""Typed client for the template backend.

Routes consumed (relative to the configured base URL):
    GET    /templates
    GET    /templates/{id}
    POST   /templates
    PUT    /templates/{id}
    DELETE /templates/{id}
    POST   /templates/{id}/upload     (multipart, field "file")
    GET    /templates/{id}/download
    GET    /templates/{id}/analyze
    GET    /health                    (server root, outside the API prefix)

Every httpx failure is translated into the errors in invoice_templates.errors
before it leaves this module.
"""
from typing import Any, Dict, List, Optional, Set

import httpx
import pydantic

from invoice_templates.config import ClientConfig
from invoice_templates.errors import (
    AnalysisUnavailable,
    NotFound,
    TransportError,
    UploadError,
)
from invoice_templates.models import AnalysisResult, DraftFields, Template, UploadResult
from invoice_templates.services.file_adapter import PickedFile, to_upload_part
from invoice_templates.utils.logging import logger


def _error_message(response: httpx.Response) -> str:
    """Server-provided error text ({"error": ...} bodies, else raw text)."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return response.text.strip() or f"HTTP {response.status_code}"


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        raise TransportError(f"Invalid JSON from backend: {e}", response.status_code) from e
    if not isinstance(body, dict):
        raise TransportError("Unexpected response shape from backend", response.status_code)
    return body


def _to_template(raw: Any, status_code: Optional[int] = None) -> Template:
    try:
        return Template.model_validate(raw)
    except pydantic.ValidationError as e:
        logger.error(f"Malformed template record from backend: {e}")
        raise TransportError(f"Malformed template record from backend: {e}", status_code) from e


class RemoteTemplateClient:
    """Template CRUD, upload, analysis and download against one backend.

    Each call opens its own httpx.AsyncClient, so calls share no connection
    state. `transport` lets tests plug in an httpx.MockTransport.
    """

    def __init__(self, config: ClientConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        # Templates created only to host a file for analysis; hidden from list()
        self._provisional_ids: Set[str] = set()

    @property
    def base_url(self) -> str:
        return self.config.base_url

    def _http(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=float(timeout or self.config.timeout_seconds),
            transport=self._transport,
        )

    async def _send(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> httpx.Response:
        try:
            async with self._http(timeout) as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e!r}")
            raise TransportError(f"{method} {path} failed: {e}") from e

    # ==================== Template CRUD ====================

    async def list_templates(self) -> List[Template]:
        response = await self._send("GET", "/templates")
        if not response.is_success:
            logger.error(f"Listing templates failed: HTTP {response.status_code}")
            raise TransportError(_error_message(response), response.status_code)

        raw_templates = _json_body(response).get("templates") or []
        if not isinstance(raw_templates, list):
            raise TransportError("Unexpected templates list from backend", response.status_code)
        templates = [_to_template(item, response.status_code) for item in raw_templates]
        visible = [t for t in templates if t.id not in self._provisional_ids]
        logger.info(f"Fetched {len(visible)} templates")
        return visible

    async def get_template(self, template_id: str) -> Template:
        response = await self._send("GET", f"/templates/{template_id}")
        if not response.is_success:
            raise NotFound(_error_message(response), response.status_code)

        raw = _json_body(response).get("template")
        if not raw:
            raise NotFound(f"Template {template_id} not found")
        return _to_template(raw, response.status_code)

    async def create_template(self, fields: DraftFields) -> Template:
        """Create a template. The name is checked before any request is made."""
        fields = fields.validated()
        response = await self._send("POST", "/templates", json=fields.create_payload())
        if not response.is_success:
            logger.error(f"Creating template failed: HTTP {response.status_code}")
            raise TransportError(_error_message(response), response.status_code)

        raw = _json_body(response).get("template")
        if not raw:
            raise TransportError("Backend did not return the created template", response.status_code)
        template = _to_template(raw, response.status_code)
        logger.info(f"Created template: {template.id} ({template.name})", extra={"template_id": template.id})
        return template

    async def create_provisional(self, fields: DraftFields) -> Template:
        """Create a template that exists only to host a file for analysis."""
        template = await self.create_template(fields)
        self._provisional_ids.add(template.id)
        return template

    async def update_template(self, template_id: str, fields: DraftFields) -> Template:
        fields = fields.validated()
        response = await self._send("PUT", f"/templates/{template_id}", json=fields.update_payload())
        if response.status_code == 404:
            raise NotFound(_error_message(response))
        if not response.is_success:
            raise TransportError(_error_message(response), response.status_code)

        raw = _json_body(response).get("template")
        if not raw:
            raise TransportError("Backend did not return the updated template", response.status_code)
        logger.info(f"Updated template: {template_id}", extra={"template_id": template_id})
        return _to_template(raw, response.status_code)

    async def delete_template(self, template_id: str) -> None:
        """Delete a template and its stored file.

        Raises:
            NotFound: the template is already gone (callers may treat as done)
            TransportError: any other failure
        """
        response = await self._send("DELETE", f"/templates/{template_id}")
        if response.status_code == 404:
            self._provisional_ids.discard(template_id)
            raise NotFound(_error_message(response))
        if not response.is_success:
            logger.error(
                f"Deleting template failed: HTTP {response.status_code}",
                extra={"template_id": template_id},
            )
            raise TransportError(_error_message(response), response.status_code)

        self._provisional_ids.discard(template_id)
        logger.info(f"Deleted template: {template_id}", extra={"template_id": template_id})

    # ==================== Files ====================

    async def upload_file(self, template_id: str, picked: PickedFile) -> UploadResult:
        """Upload a spreadsheet to a template.

        The multipart Content-Type (with boundary) is left to httpx.

        Raises:
            UploadError: non-2xx response, with status and server message
            TransportError: the request never completed
            UnsupportedFileSource: the picked file could not be read
        """
        files = {"file": to_upload_part(picked)}
        logger.info(
            f"Uploading {picked.name} ({type(picked).__name__})",
            extra={"template_id": template_id},
        )
        response = await self._send(
            "POST",
            f"/templates/{template_id}/upload",
            timeout=self.config.upload_timeout_seconds,
            files=files,
        )
        if not response.is_success:
            message = _error_message(response)
            logger.error(
                f"Upload failed: {response.status_code} - {message}",
                extra={"template_id": template_id},
            )
            raise UploadError(message, response.status_code)

        try:
            body = response.json()
        except ValueError:
            body = {"success": True}
        try:
            result = UploadResult.model_validate(body if isinstance(body, dict) else {"success": True})
        except pydantic.ValidationError as e:
            raise UploadError(f"Unreadable upload response: {e}", response.status_code) from e
        if not result.success:
            message = result.message or "Upload rejected"
            logger.error(f"Upload rejected: {message}", extra={"template_id": template_id})
            raise UploadError(message, response.status_code)
        logger.info(f"Upload finished: success={result.success}", extra={"template_id": template_id})
        return result

    def download_url_for(self, template_id: str) -> str:
        return f"{self.config.base_url}/templates/{template_id}/download"

    async def download_url(self, template_id: str) -> str:
        """Download URL after checking the backend actually has a file to serve."""
        try:
            async with self._http() as client:
                async with client.stream("GET", f"/templates/{template_id}/download") as response:
                    status_code = response.status_code
                    if not response.is_success:
                        await response.aread()
                        message = _error_message(response)
        except httpx.HTTPError as e:
            raise TransportError(f"Download check failed: {e}") from e

        if status_code == 404:
            raise NotFound(message)
        if not 200 <= status_code < 300:
            raise TransportError(message, status_code)
        return self.download_url_for(template_id)

    async def download(self, template_id: str) -> bytes:
        response = await self._send("GET", f"/templates/{template_id}/download")
        if response.status_code == 404:
            raise NotFound(_error_message(response))
        if not response.is_success:
            raise TransportError(_error_message(response), response.status_code)
        return response.content

    # ==================== Analysis ====================

    async def analyze(self, template_id: str) -> AnalysisResult:
        """Fetch the backend's analysis of the template's spreadsheet.

        Any failure comes back as AnalysisUnavailable.
        """
        try:
            response = await self._send("GET", f"/templates/{template_id}/analyze")
        except TransportError as e:
            raise AnalysisUnavailable(e.message) from e

        if not response.is_success:
            raise AnalysisUnavailable(_error_message(response), response.status_code)

        try:
            body = response.json()
            raw = body.get("analysis") if isinstance(body, dict) else None
            analysis = AnalysisResult.model_validate(raw or {})
        except ValueError as e:
            # pydantic's ValidationError is a ValueError too
            raise AnalysisUnavailable(f"Unreadable analysis payload: {e}") from e

        logger.info(
            f"Analysis received: {len(analysis.sheets)} sheets, {len(analysis.suggestions)} suggestions",
            extra={"template_id": template_id},
        )
        return analysis

    # ==================== Misc ====================

    async def health(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                response = await client.get(f"{self.config.server_root}/health")
        except httpx.HTTPError as e:
            logger.warning(f"Health check failed: {e!r}")
            return False
        return response.is_success
