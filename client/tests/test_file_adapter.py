from io import BytesIO
from pathlib import Path

import pytest

from invoice_templates.config import XLSX_MIME_TYPE
from invoice_templates.errors import UnsupportedFileSource
from invoice_templates.services.file_adapter import (
    BlobFile,
    FileAdapter,
    UriFile,
    read_content,
    to_upload_part,
)

browser = FileAdapter(runtime_probe=lambda: True)
native = FileAdapter(runtime_probe=lambda: False)


def test_browser_runtime_produces_blob():
    raw = {
        "uri": "blob:http://localhost/1234",
        "name": "invoice.xlsx",
        "mimeType": XLSX_MIME_TYPE,
        "file": BytesIO(b"PK-data"),
    }
    picked = browser.normalize(raw)
    assert isinstance(picked, BlobFile)
    assert picked == BlobFile(content=b"PK-data", name="invoice.xlsx", mime_type=XLSX_MIME_TYPE)
    assert not hasattr(picked, "uri")


def test_native_runtime_produces_uri_reference():
    raw = {"uri": "file:///cache/DocumentPicker/invoice.xlsx", "name": "invoice.xlsx", "mimeType": XLSX_MIME_TYPE}
    picked = native.normalize(raw)
    assert isinstance(picked, UriFile)
    assert picked.uri == "file:///cache/DocumentPicker/invoice.xlsx"
    assert not hasattr(picked, "content")


def test_native_runtime_ignores_handle_when_uri_present():
    raw = {"uri": "file:///tmp/invoice.xlsx", "name": "invoice.xlsx", "file": b"PK"}
    assert isinstance(native.normalize(raw), UriFile)


def test_handle_only_pick_is_usable_anywhere():
    picked = native.normalize({"name": "invoice.xlsx", "file": b"PK"})
    assert isinstance(picked, BlobFile)
    assert picked.mime_type == XLSX_MIME_TYPE


def test_runtime_is_probed_on_every_call():
    answers = iter([True, False])
    adapter = FileAdapter(runtime_probe=lambda: next(answers))
    raw = {"uri": "file:///tmp/invoice.xlsx", "name": "invoice.xlsx", "file": b"PK"}
    assert isinstance(adapter.normalize(raw), BlobFile)
    assert isinstance(adapter.normalize(raw), UriFile)


def test_pick_without_content_or_uri_is_rejected():
    with pytest.raises(UnsupportedFileSource):
        browser.normalize({"name": "invoice.xlsx"})


def test_name_and_mime_type_derived_from_uri():
    picked = native.normalize({"uri": "file:///tmp/My%20Invoice.xlsx"})
    assert picked.name == "My Invoice.xlsx"
    assert picked.mime_type == XLSX_MIME_TYPE


def test_cancelled_picker_result_yields_nothing():
    assert native.pick_from_result({"canceled": True, "assets": None}) is None
    assert native.pick_from_result({"canceled": False, "assets": []}) is None
    picked = native.pick_from_result({"canceled": False, "assets": [{"uri": "file:///tmp/a.xlsx", "name": "a.xlsx"}]})
    assert isinstance(picked, UriFile)


def test_upload_part_reads_uri_from_disk(tmp_path: Path):
    path = tmp_path / "invoice.xlsx"
    path.write_bytes(b"PK-disk")
    picked = native.normalize({"uri": path.as_uri(), "name": "invoice.xlsx", "mimeType": XLSX_MIME_TYPE})
    assert to_upload_part(picked) == ("invoice.xlsx", b"PK-disk", XLSX_MIME_TYPE)


def test_content_provider_uri_cannot_be_read_locally():
    picked = UriFile(uri="content://com.android.providers/doc/42", name="a.xlsx", mime_type=XLSX_MIME_TYPE)
    with pytest.raises(UnsupportedFileSource):
        read_content(picked)
