"""Tests for the export pipeline: entitlement checks, assembly and artifact persistence."""

from datetime import datetime, timezone

import pytest

from folio.core.auth import issue_token
from folio.core.errors import (
    ConflictError,
    FormatNotAllowedError,
    LimitExceededError,
    NotFoundError,
    PersistenceError,
    UnauthenticatedError,
)
from folio.core.metrics import exports_total
from folio.features.assembly.service import DocumentAssembler
from folio.features.exports.service import (
    ExportOrchestrator,
    ExportRun,
    ExportState,
    IllegalTransitionError,
)
from folio.models.artifact import ExportFormat, ExportRequest
from folio.models.entitlement import Tier
from folio.models.project import ChapterCreate, ProjectCreate
from folio.models.template import StyleParameters, TemplateUpdate
from folio.tests.mocks import FakeObjectStore


@pytest.fixture
def book(projects):
    project = projects.create_project("alice", ProjectCreate(title="Scenario Book", genre="Essay"))
    for title in ("Intro", "Body", "Conclusion"):
        projects.create_chapter("alice", project.id, ChapterCreate(title=title, content=f"{title} text."))
    return projects.get_project("alice", project.id)


def stored_html(store, descriptor):
    key = descriptor.url.split("/ebooks/", 1)[1]
    data, content_type = store.objects[("ebooks", key)]
    return data.decode("utf-8"), content_type


def test_scenario_a_html_export_without_watermark(orchestrator, ledger, store, book):
    ledger.upgrade_tier("alice", Tier.PRO)
    run = ExportRun("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))
    descriptor = orchestrator.submit(issue_token("alice"), run.request, run=run)

    assert descriptor.status == "completed"
    assert descriptor.format == ExportFormat.HTML
    assert run.history == [
        ExportState.VALIDATING, ExportState.ASSEMBLING, ExportState.PERSISTING, ExportState.COMPLETED,
    ]

    html, content_type = stored_html(store, descriptor)
    assert content_type == "text/html"
    assert 'class="watermark"' not in html

    cover = html.index('class="cover"')
    title = html.index("<h1>Scenario Book</h1>")
    copyright_block = html.index('class="copyright"')
    toc = html.index('class="toc"')
    toc_html = html[toc:html.index("</nav>")]
    assert cover < title < copyright_block < toc
    assert toc_html.count("<li>") == 3
    assert toc_html.index("Intro") < toc_html.index("Body") < toc_html.index("Conclusion")

    sections = [html.index(f"Chapter {n}: {t}") for n, t in enumerate(("Intro", "Body", "Conclusion"), start=1)]
    assert toc < sections[0] < sections[1] < sections[2]

    artifacts = orchestrator.list_exports("alice", book.id)
    assert len(artifacts) == 1
    assert artifacts[0].watermarked is False
    assert ledger.get_account("alice").exports_this_period == 1
    assert exports_total.value({"format": "html", "status": "completed"}) == 1


def test_scenario_b_free_tier_pdf_is_rejected(orchestrator, ledger, store, book):
    run = ExportRun("alice", ExportRequest(project_id=book.id, format=ExportFormat.PDF))
    with pytest.raises(FormatNotAllowedError):
        orchestrator.export("alice", run.request, run=run)

    assert run.history == [ExportState.VALIDATING, ExportState.REJECTED]
    assert orchestrator.list_exports("alice", book.id) == []
    assert store.objects == {}
    assert ledger.get_account("alice").exports_this_period == 0
    assert exports_total.value({"format": "pdf", "status": "rejected"}) == 1


def test_free_tier_exports_are_watermarked_and_stay_that_way(orchestrator, ledger, store, book):
    descriptor = orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))
    html, _ = stored_html(store, descriptor)
    assert 'class="watermark"' in html

    ledger.upgrade_tier("alice", Tier.PRO)
    orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))

    flags = sorted(a.watermarked for a in orchestrator.list_exports("alice", book.id))
    assert flags == [False, True]


def test_epub_export(orchestrator, store, book):
    descriptor = orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.EPUB))
    key = descriptor.url.split("/ebooks/", 1)[1]
    assert key.startswith(f"exports/{book.id}-") and key.endswith(".epub")
    data, content_type = store.objects[("ebooks", key)]
    assert content_type == "application/epub+zip"
    assert data[:2] == b"PK"


def test_export_with_template(orchestrator, template_service, store, book):
    academic = next(t for t in template_service.list_templates() if t.name == "Academic")
    descriptor = orchestrator.export(
        "alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML, template_id=academic.id)
    )
    html, _ = stored_html(store, descriptor)
    assert "Times New Roman, serif" in html
    assert orchestrator.list_exports("alice", book.id)[0].template_id == academic.id


def test_unknown_template_is_rejected_before_work(orchestrator, ledger, book):
    with pytest.raises(NotFoundError):
        orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML, template_id=999))
    assert ledger.get_account("alice").exports_this_period == 0


def test_other_users_project_is_not_found(orchestrator, book):
    with pytest.raises(NotFoundError):
        orchestrator.export("mallory", ExportRequest(project_id=book.id, format=ExportFormat.HTML))


def test_bad_token_is_unauthenticated(orchestrator, store, book):
    with pytest.raises(UnauthenticatedError):
        orchestrator.submit("not-a-token", ExportRequest(project_id=book.id, format=ExportFormat.HTML))
    assert store.objects == {}


def test_export_limit(orchestrator, book):
    for _ in range(5):
        orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))
    with pytest.raises(LimitExceededError):
        orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))
    assert len(orchestrator.list_exports("alice", book.id)) == 5


def test_persistence_failure_releases_the_export_slot(ledger, projects, template_service, book):
    failing = FakeObjectStore(fail=True)
    orchestrator = ExportOrchestrator(ledger=ledger, store=failing, projects=projects, templates=template_service)
    run = ExportRun("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))

    with pytest.raises(PersistenceError):
        orchestrator.export("alice", run.request, run=run)

    assert run.history[-2:] == [ExportState.PERSISTING, ExportState.FAILED]
    assert ledger.get_account("alice").exports_this_period == 0
    assert orchestrator.list_exports("alice", book.id) == []
    assert exports_total.value({"format": "html", "status": "failed"}) == 1


def test_same_millisecond_exports_get_distinct_keys(ledger, store, projects, template_service, book):
    frozen = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    orchestrator = ExportOrchestrator(
        ledger=ledger, store=store, projects=projects, templates=template_service, clock=lambda: frozen
    )
    first = orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))
    second = orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))

    millis = int(frozen.timestamp() * 1000)
    assert first.url.endswith(f"exports/{book.id}-{millis}.html")
    assert second.url.endswith(f"exports/{book.id}-{millis + 1}.html")


def test_key_taken_by_a_concurrent_export_moves_to_the_next_millisecond(ledger, store, projects, template_service, book):
    frozen = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    millis = int(frozen.timestamp() * 1000)
    store.objects[("ebooks", f"exports/{book.id}-{millis}.html")] = (b"other", "text/html")
    orchestrator = ExportOrchestrator(
        ledger=ledger, store=store, projects=projects, templates=template_service, clock=lambda: frozen
    )

    descriptor = orchestrator.export("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML))

    assert descriptor.url.endswith(f"exports/{book.id}-{millis + 1}.html")
    assert store.objects[("ebooks", f"exports/{book.id}-{millis}.html")] == (b"other", "text/html")
    assert orchestrator.list_exports("alice", book.id)[0].object_key == f"exports/{book.id}-{millis + 1}.html"


class EditingAssembler(DocumentAssembler):
    """Runs `edit` just before assembling, as a concurrent request would."""

    def __init__(self, edit):
        super().__init__()
        self.edit = edit

    def assemble(self, *args, **kwargs):
        self.edit()
        return super().assemble(*args, **kwargs)


def test_template_edited_during_assembly_fails_the_export(ledger, store, projects, template_service, book):
    academic = next(t for t in template_service.list_templates() if t.name == "Academic")

    def edit():
        template_service.update_template(academic.id, TemplateUpdate(style=StyleParameters(font_size="30px")))

    orchestrator = ExportOrchestrator(
        ledger=ledger, store=store, projects=projects, templates=template_service, assembler=EditingAssembler(edit)
    )
    run = ExportRun("alice", ExportRequest(project_id=book.id, format=ExportFormat.HTML, template_id=academic.id))

    with pytest.raises(ConflictError):
        orchestrator.export("alice", run.request, run=run)

    assert run.history[-2:] == [ExportState.PERSISTING, ExportState.FAILED]
    assert store.objects == {}
    assert orchestrator.list_exports("alice", book.id) == []
    assert ledger.get_account("alice").exports_this_period == 0


def test_terminal_states_accept_no_transitions():
    run = ExportRun("alice", ExportRequest(project_id=1, format=ExportFormat.HTML))
    run.advance(ExportState.REJECTED)
    assert run.terminal
    with pytest.raises(IllegalTransitionError):
        run.advance(ExportState.ASSEMBLING)
