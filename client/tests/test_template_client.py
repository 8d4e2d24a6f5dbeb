import asyncio

import pytest

from fake_backend import FakeBackend, sample_analysis
from invoice_templates.config import XLSX_MIME_TYPE
from invoice_templates.errors import (
    AnalysisUnavailable,
    NotFound,
    TransportError,
    UploadError,
    ValidationError,
)
from invoice_templates.models import DraftFields
from invoice_templates.services.file_adapter import BlobFile
from invoice_templates.services.template_client import RemoteTemplateClient

INVOICE = BlobFile(content=b"PK-invoice", name="invoice.xlsx", mime_type=XLSX_MIME_TYPE)


def test_list_and_get_templates(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice", {"vendor_name": "B1"}, with_file=True)

    templates = asyncio.run(client.list_templates())
    assert [t.id for t in templates] == [record["id"]]

    template = asyncio.run(client.get_template(record["id"]))
    assert template.field_mappings == {"vendor_name": "B1"}
    assert template.has_file


def test_get_missing_template_raises_not_found(client: RemoteTemplateClient):
    with pytest.raises(NotFound):
        asyncio.run(client.get_template("missing"))


def test_list_failure_is_transport_error(client: RemoteTemplateClient, backend: FakeBackend):
    backend.fail("list", 503)
    with pytest.raises(TransportError) as exc_info:
        asyncio.run(client.list_templates())
    assert exc_info.value.status_code == 503


def test_malformed_template_record_is_transport_error(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice")
    record["name"] = None

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(client.list_templates())
    assert exc_info.value.status_code == 200

    with pytest.raises(TransportError):
        asyncio.run(client.get_template(record["id"]))


def test_network_failure_is_transport_error(client: RemoteTemplateClient, backend: FakeBackend):
    backend.network_error("list")
    with pytest.raises(TransportError):
        asyncio.run(client.list_templates())


def test_create_with_blank_name_never_hits_network(client: RemoteTemplateClient, backend: FakeBackend):
    with pytest.raises(ValidationError):
        asyncio.run(client.create_template(DraftFields(name="  ")))
    assert backend.calls == []


def test_create_and_update(client: RemoteTemplateClient, backend: FakeBackend):
    created = asyncio.run(client.create_template(DraftFields(name=" Invoice ", field_mappings={"vendor_name": "B1"})))
    assert created.name == "Invoice"
    assert backend.templates[created.id]["field_mappings"] == {"vendor_name": "B1"}

    updated = asyncio.run(client.update_template(created.id, DraftFields(name="Invoice v2", is_active=False)))
    assert updated.name == "Invoice v2"
    assert updated.is_active is False


def test_delete_missing_template_raises_not_found(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice")
    asyncio.run(client.delete_template(record["id"]))
    assert record["id"] not in backend.templates

    with pytest.raises(NotFound):
        asyncio.run(client.delete_template(record["id"]))


def test_delete_server_error_is_transport_error(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice")
    backend.fail("delete", 500)
    with pytest.raises(TransportError):
        asyncio.run(client.delete_template(record["id"]))


def test_upload_sends_multipart_file_field(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice")
    result = asyncio.run(client.upload_file(record["id"], INVOICE))

    assert result.success
    upload = backend.uploads[0]
    assert upload["filename"] == "invoice.xlsx"
    assert upload["content_type"].startswith("multipart/form-data; boundary=")
    assert b"PK-invoice" in upload["body"]
    assert backend.templates[record["id"]]["template_url"].endswith("invoice.xlsx")


def test_upload_reported_unsuccessful_is_upload_error(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice")
    backend.fail("upload", 200, {"success": False, "message": "Disk full"})

    with pytest.raises(UploadError) as exc_info:
        asyncio.run(client.upload_file(record["id"], INVOICE))
    assert exc_info.value.message == "Disk full"


def test_upload_rejection_carries_status_and_message(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice")
    wrong_type = BlobFile(content=b"a,b", name="invoice.csv", mime_type="text/csv")

    with pytest.raises(UploadError) as exc_info:
        asyncio.run(client.upload_file(record["id"], wrong_type))
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Only .xlsx files allowed"


def test_analyze_returns_typed_result(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice", with_file=True)
    backend.analysis = sample_analysis()

    analysis = asyncio.run(client.analyze(record["id"]))
    assert analysis.sheets == ["Invoice"]
    assert analysis.suggestions == {"vendor_name": "C2", "total_amount": "D10"}
    assert analysis.fillable_fields.fields[0].cell == "B3"
    assert analysis.fillable_fields.patterns == {"underscore": 1}


def test_analyze_failures_are_analysis_unavailable(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Invoice")
    # No file uploaded yet
    with pytest.raises(AnalysisUnavailable):
        asyncio.run(client.analyze(record["id"]))

    backend.fail("analyze", 500)
    with pytest.raises(AnalysisUnavailable) as exc_info:
        asyncio.run(client.analyze(record["id"]))
    assert exc_info.value.status_code == 500

    backend.network_error("analyze")
    with pytest.raises(AnalysisUnavailable):
        asyncio.run(client.analyze(record["id"]))


def test_download_url_requires_a_file(client: RemoteTemplateClient, backend: FakeBackend):
    bare = backend.add_template("No file")
    with pytest.raises(NotFound):
        asyncio.run(client.download_url(bare["id"]))

    with_file = backend.add_template("With file", with_file=True)
    url = asyncio.run(client.download_url(with_file["id"]))
    assert url == f"http://testserver/api/v1/templates/{with_file['id']}/download"
    assert asyncio.run(client.download(with_file["id"])) == b"xlsx-bytes"


def test_provisional_templates_are_hidden_from_list(client: RemoteTemplateClient, backend: FakeBackend):
    backend.add_template("Real")
    temp = asyncio.run(client.create_provisional(DraftFields(name="Temp Analysis Template")))

    names = [t.name for t in asyncio.run(client.list_templates())]
    assert names == ["Real"]
    assert temp.id in backend.templates


def test_health_uses_server_root(client: RemoteTemplateClient):
    assert asyncio.run(client.health()) is True
