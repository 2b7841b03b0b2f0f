"""Tests for style templates."""

import pytest

from folio.core.errors import ConflictError, NotFoundError
from folio.models.artifact import ExportFormat, ExportRequest
from folio.models.project import ProjectCreate
from folio.models.template import StyleParameters, TemplateUpdate


def test_defaults_are_seeded_once(template_service):
    assert template_service.seed_defaults() == 0
    names = [t.name for t in template_service.list_templates()]
    assert names == ["Academic", "Classic Literature", "Minimalist", "Modern Fiction"]


def test_default_styles(template_service):
    by_name = {t.name: t for t in template_service.list_templates()}
    assert by_name["Academic"].style.font_family == "Times New Roman, serif"
    assert by_name["Academic"].style.text_align == "left"
    assert by_name["Minimalist"].style.max_width == "700px"
    assert by_name["Modern Fiction"].style.text_align == "justify"


def test_missing_template(template_service):
    with pytest.raises(NotFoundError):
        template_service.get_template(999)
    with pytest.raises(NotFoundError):
        template_service.update_template(999, TemplateUpdate(description="x"))


def test_unreferenced_template_can_change(template_service):
    template = template_service.list_templates()[0]
    updated = template_service.update_template(
        template.id, TemplateUpdate(style=StyleParameters(font_size="18px"), description="Bigger")
    )
    assert updated.style.font_size == "18px"
    assert updated.description == "Bigger"


def test_template_is_frozen_once_an_export_uses_it(template_service, orchestrator, projects):
    project = projects.create_project("alice", ProjectCreate(title="Book", genre="Essay"))
    template = template_service.list_templates()[0]
    orchestrator.export("alice", ExportRequest(project_id=project.id, format=ExportFormat.HTML, template_id=template.id))

    with pytest.raises(ConflictError):
        template_service.update_template(template.id, TemplateUpdate(style=StyleParameters(font_size="30px")))
    assert template_service.get_template(template.id).style == template.style
