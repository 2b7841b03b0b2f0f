"""
Service wiring for the HTTP layer.

Each getter builds its service once per process; tests swap them through
`app.dependency_overrides`.
"""

from functools import lru_cache
from typing import Any, Dict

from starlette.requests import Request

from folio.core.logging import get_request_id
from folio.features.ai.service import AuthoringService
from folio.features.analysis.jobs import AnalysisDispatcher
from folio.features.entitlements.service import EntitlementLedger
from folio.features.exports.service import ExportOrchestrator
from folio.features.generation.client import GroqGenerationClient
from folio.features.projects.service import ProjectService
from folio.features.storage.object_store import LocalObjectStore
from folio.features.templates.service import TemplateService


@lru_cache(maxsize=1)
def get_ledger() -> EntitlementLedger:
    return EntitlementLedger()


@lru_cache(maxsize=1)
def get_object_store() -> LocalObjectStore:
    return LocalObjectStore()


@lru_cache(maxsize=1)
def get_analysis() -> AnalysisDispatcher:
    return AnalysisDispatcher()


@lru_cache(maxsize=1)
def get_project_service() -> ProjectService:
    return ProjectService(ledger=get_ledger(), store=get_object_store(), analysis=get_analysis())


@lru_cache(maxsize=1)
def get_template_service() -> TemplateService:
    return TemplateService()


@lru_cache(maxsize=1)
def get_export_orchestrator() -> ExportOrchestrator:
    return ExportOrchestrator(
        ledger=get_ledger(),
        store=get_object_store(),
        projects=get_project_service(),
        templates=get_template_service(),
    )


@lru_cache(maxsize=1)
def get_authoring_service() -> AuthoringService:
    return AuthoringService(
        ledger=get_ledger(),
        projects=get_project_service(),
        generator=GroqGenerationClient(),
        analysis=get_analysis(),
    )


def reset_services() -> None:
    for getter in (
        get_ledger,
        get_object_store,
        get_analysis,
        get_project_service,
        get_template_service,
        get_export_orchestrator,
        get_authoring_service,
    ):
        getter.cache_clear()


def respond(request: Request, data: Any) -> Dict[str, Any]:
    """Standard success envelope: {"data": ..., "request_id": ...}."""
    rid = getattr(request.state, "request_id", None) or get_request_id()
    return {"data": data, "request_id": rid}
