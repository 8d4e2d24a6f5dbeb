from io import BytesIO
from pathlib import Path

import pytest
from openpyxl import Workbook

from fake_backend import API_PREFIX, BASE_URL, FakeBackend
from invoice_templates.config import ClientConfig
from invoice_templates.services.template_client import RemoteTemplateClient


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend) -> RemoteTemplateClient:
    config = ClientConfig(base_url=BASE_URL, api_prefix=API_PREFIX)
    return RemoteTemplateClient(config, transport=backend.transport)


@pytest.fixture
def workbook_bytes() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Invoice"
    ws["A1"] = "Vendor:"
    ws["B1"] = "ACME Corp"
    ws["A2"] = "Invoice No:"
    ws["B2"] = "INV-001"
    ws["A4"] = "Total:"
    ws["D10"] = 1250
    wb.create_sheet("Notes")
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def workbook_path(tmp_path: Path, workbook_bytes: bytes) -> Path:
    path = tmp_path / "invoice.xlsx"
    path.write_bytes(workbook_bytes)
    return path
