"""Platform file adapter.

A document picker hands back different things depending on where the client
runs: a browser runtime exposes the picked file as an in-memory handle, a
native runtime only gives a file/content URI. Both are normalized here into a
PickedFile, which is either a BlobFile or a UriFile (never a mix of the two).
"""
import os
import sys
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Optional, Tuple, Union
from urllib.parse import unquote, urlparse

from invoice_templates.config import XLS_MIME_TYPE, XLSX_MIME_TYPE
from invoice_templates.errors import UnsupportedFileSource
from invoice_templates.utils.logging import logger

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES_BY_EXTENSION = {
    ".xlsx": XLSX_MIME_TYPE,
    ".xls": XLS_MIME_TYPE,
}


@dataclass(frozen=True)
class BlobFile:
    """File content held in memory (browser runtime)."""
    content: bytes
    name: str
    mime_type: str


@dataclass(frozen=True)
class UriFile:
    """Reference to a file on disk or behind a content provider (native runtime)."""
    uri: str
    name: str
    mime_type: str


PickedFile = Union[BlobFile, UriFile]


def detect_browser_runtime() -> bool:
    """True when running inside a browser-hosted interpreter.

    Pyodide reports the emscripten platform; INVOICE_TEMPLATES_RUNTIME=web
    forces the browser behaviour for embedded webviews.
    """
    if sys.platform == "emscripten":
        return True
    return os.getenv("INVOICE_TEMPLATES_RUNTIME", "").lower() == "web"


def _pick_value(raw: Any, *keys: str) -> Any:
    """Read the first present key from a dict-like or attribute-bearing pick."""
    for key in keys:
        if isinstance(raw, dict):
            value = raw.get(key)
        else:
            value = getattr(raw, key, None)
        if value is not None:
            return value
    return None


def guess_mime_type(name: str) -> str:
    return MIME_TYPES_BY_EXTENSION.get(PurePosixPath(name).suffix.lower(), DEFAULT_MIME_TYPE)


def _read_handle(handle: Any) -> Optional[bytes]:
    if isinstance(handle, (bytes, bytearray, memoryview)):
        return bytes(handle)
    read = getattr(handle, "read", None)
    if callable(read):
        data = read()
        if isinstance(data, (bytes, bytearray)):
            return bytes(data)
    return None


class FileAdapter:
    """Turns a raw picker asset into a transport-ready PickedFile."""

    def __init__(self, runtime_probe: Callable[[], bool] = detect_browser_runtime):
        self._runtime_probe = runtime_probe

    def normalize(self, raw_pick: Any) -> PickedFile:
        """Normalize one picked asset ({uri, name, mimeType, file?}).

        The runtime is probed on every call. In a browser runtime an in-memory
        handle wins; otherwise the URI is used. A handle alone is still usable
        when no URI was provided.

        Raises:
            UnsupportedFileSource: neither a readable handle nor a URI is present
        """
        handle = _pick_value(raw_pick, "file")
        uri = _pick_value(raw_pick, "uri")
        name = _pick_value(raw_pick, "name")
        mime_type = _pick_value(raw_pick, "mimeType", "mime_type", "type")

        if not name:
            name = self._derive_name(handle, uri)
        if not mime_type:
            mime_type = guess_mime_type(name)

        if handle is not None and (self._runtime_probe() or not uri):
            content = _read_handle(handle)
            if content is not None:
                return BlobFile(content=content, name=name, mime_type=mime_type)
            if not uri:
                raise UnsupportedFileSource(f"Picked file handle for {name!r} is not readable")
            logger.warning(f"Unreadable in-memory handle for {name}, falling back to URI")

        if uri:
            return UriFile(uri=str(uri), name=name, mime_type=mime_type)

        raise UnsupportedFileSource(f"Picked file {name!r} has neither content nor a URI")

    def pick_from_result(self, result: Any) -> Optional[PickedFile]:
        """Normalize the first asset of a picker result; None when cancelled."""
        if _pick_value(result, "canceled", "cancelled"):
            return None
        assets = _pick_value(result, "assets") or []
        if not assets:
            return None
        return self.normalize(assets[0])

    @staticmethod
    def _derive_name(handle: Any, uri: Any) -> str:
        handle_name = getattr(handle, "name", None)
        if isinstance(handle_name, str) and handle_name:
            return os.path.basename(handle_name)
        if uri:
            return PurePosixPath(unquote(urlparse(str(uri)).path)).name or "upload.xlsx"
        return "upload.xlsx"


def local_path_for(picked: UriFile) -> Path:
    """Filesystem path behind a URI reference (file:// URIs or bare paths)."""
    parsed = urlparse(picked.uri)
    if parsed.scheme in ("", "file"):
        return Path(unquote(parsed.path) if parsed.scheme else picked.uri)
    # Single-letter "scheme" is a Windows drive letter
    if len(parsed.scheme) == 1:
        return Path(picked.uri)
    raise UnsupportedFileSource(f"Cannot open {parsed.scheme}:// references from this runtime")


def read_content(picked: PickedFile) -> bytes:
    """Bytes of the picked file, whichever shape it has."""
    if isinstance(picked, BlobFile):
        return picked.content
    if isinstance(picked, UriFile):
        path = local_path_for(picked)
        try:
            return path.read_bytes()
        except OSError as e:
            raise UnsupportedFileSource(f"Cannot read {picked.name}: {e}") from e
    raise UnsupportedFileSource(f"Unknown picked file type: {type(picked).__name__}")


def to_upload_part(picked: PickedFile) -> Tuple[str, bytes, str]:
    """Multipart `file` part as httpx expects it: (filename, content, content type)."""
    return (picked.name, read_content(picked), picked.mime_type)
