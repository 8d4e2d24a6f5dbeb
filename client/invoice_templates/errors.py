"""Error taxonomy for the template client and its workflows.

ValidationError never reaches the network. AnalysisUnavailable is always
non-fatal to callers; everything else surfaces to the user.
"""
from typing import Optional


class TemplateClientError(Exception):
    def __init__(self, message=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv.update({
            "error": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
        })
        return rv


class ValidationError(TemplateClientError):
    def __init__(self, message="Template name is required", field: Optional[str] = "name"):
        super().__init__(message, payload={"field": field} if field else None)
        self.field = field


class TransportError(TemplateClientError):
    def __init__(self, message="Could not reach the template service", status_code=None, payload=None):
        super().__init__(message, status_code, payload)


class NotFound(TemplateClientError):
    def __init__(self, message="Template not found", status_code=404, payload=None):
        super().__init__(message, status_code, payload)


class UploadError(TemplateClientError):
    """Upload rejected by the backend; carries its status and message text."""

    def __init__(self, message="Upload failed", status_code=None, payload=None):
        super().__init__(message, status_code, payload)


class AnalysisUnavailable(TemplateClientError):
    def __init__(self, message="Analysis not available", status_code=None, payload=None):
        super().__init__(message, status_code, payload)


class UnsupportedFileSource(TemplateClientError):
    def __init__(self, message="Selected file cannot be read on this platform", payload=None):
        super().__init__(message, None, payload)


class WorkflowBusy(TemplateClientError):
    def __init__(self, message="An analysis run is already in progress"):
        super().__init__(message, 409)
