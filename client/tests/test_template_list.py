import asyncio

import pytest

from fake_backend import FakeBackend, sample_analysis
from invoice_templates.errors import TransportError, ValidationError
from invoice_templates.services.draft_state import TemplateDraft
from invoice_templates.services.template_client import RemoteTemplateClient
from invoice_templates.services.template_list import DETAIL_VIEW, TemplateListCoordinator


def test_refresh_replaces_list(client: RemoteTemplateClient, backend: FakeBackend):
    coordinator = TemplateListCoordinator(client)
    backend.add_template("First")
    assert [t.name for t in asyncio.run(coordinator.refresh())] == ["First"]

    backend.add_template("Second")
    asyncio.run(coordinator.refresh())
    assert [t.name for t in coordinator.templates] == ["First", "Second"]


def test_stale_refresh_response_is_discarded(client: RemoteTemplateClient, backend: FakeBackend):
    coordinator = TemplateListCoordinator(client)
    backend.add_template("Old")

    async def scenario():
        gate = backend.hold("list")
        first = asyncio.ensure_future(coordinator.refresh())
        while backend.count("list") < 1:
            await asyncio.sleep(0)
        # First response snapshot only has "Old"
        backend.add_template("New")
        await coordinator.refresh()
        gate.set()
        await first

    asyncio.run(scenario())
    assert [t.name for t in coordinator.templates] == ["Old", "New"]


def test_remove_deletes_and_refreshes(client: RemoteTemplateClient, backend: FakeBackend):
    keep = backend.add_template("Keep")
    drop = backend.add_template("Drop")
    coordinator = TemplateListCoordinator(client)
    asyncio.run(coordinator.refresh())

    templates = asyncio.run(coordinator.remove(drop["id"]))
    assert [t.id for t in templates] == [keep["id"]]


def test_remove_of_already_deleted_template_counts_as_success(client: RemoteTemplateClient, backend: FakeBackend):
    backend.add_template("Keep")
    coordinator = TemplateListCoordinator(client)

    templates = asyncio.run(coordinator.remove("already-gone"))

    assert [t.name for t in templates] == ["Keep"]
    assert backend.count("list") == 1
    assert coordinator.error is None


def test_failed_remove_leaves_list_unchanged(client: RemoteTemplateClient, backend: FakeBackend):
    record = backend.add_template("Keep")
    coordinator = TemplateListCoordinator(client)
    asyncio.run(coordinator.refresh())
    backend.fail("delete", 500)

    with pytest.raises(TransportError):
        asyncio.run(coordinator.remove(record["id"]))

    assert [t.id for t in coordinator.templates] == [record["id"]]
    assert isinstance(coordinator.error, TransportError)
    assert backend.count("list") == 1


def test_create_navigates_to_detail(client: RemoteTemplateClient, backend: FakeBackend):
    visits = []
    coordinator = TemplateListCoordinator(client, navigate=lambda view, **params: visits.append((view, params)))
    draft = TemplateDraft(name="Invoice", field_mappings={"vendor_name": "B1"})

    template = asyncio.run(coordinator.create_and_navigate(draft))

    assert visits == [(DETAIL_VIEW, {"template_id": template.id, "template_name": "Invoice"})]
    assert backend.templates[template.id]["field_mappings"] == {"vendor_name": "B1"}


def test_failed_create_preserves_draft(client: RemoteTemplateClient, backend: FakeBackend):
    visits = []
    coordinator = TemplateListCoordinator(client, navigate=lambda view, **params: visits.append(view))
    draft = TemplateDraft(name="Invoice", description="Monthly", field_mappings={"vendor_name": "B1"})
    backend.fail("create", 500)

    with pytest.raises(TransportError):
        asyncio.run(coordinator.create_and_navigate(draft))

    assert visits == []
    assert (draft.name, draft.description, draft.field_mappings) == ("Invoice", "Monthly", {"vendor_name": "B1"})


def test_create_with_blank_name_is_blocked(client: RemoteTemplateClient, backend: FakeBackend):
    coordinator = TemplateListCoordinator(client)
    with pytest.raises(ValidationError):
        asyncio.run(coordinator.create_and_navigate(TemplateDraft(name="  ")))
    assert backend.calls == []


def test_load_analyzes_templates_with_files(client: RemoteTemplateClient, backend: FakeBackend):
    with_file = backend.add_template("With file", {"vendor_name": "B1"}, with_file=True)
    bare = backend.add_template("Bare")
    backend.analysis = sample_analysis()
    coordinator = TemplateListCoordinator(client)

    detail = asyncio.run(coordinator.load(with_file["id"]))
    assert detail.analysis.suggestions["vendor_name"] == "C2"
    assert detail.template.field_mappings == {"vendor_name": "B1"}

    detail = asyncio.run(coordinator.load(bare["id"]))
    assert detail.analysis is None
    assert backend.count("analyze") == 1
