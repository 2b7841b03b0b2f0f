"""Export API."""

from fastapi import APIRouter, Depends, Path, Request

from folio.api.deps import get_export_orchestrator, respond
from folio.core.auth import get_bearer_token, get_current_user_id
from folio.features.exports.service import ExportOrchestrator
from folio.models.artifact import ExportDescriptor, ExportRequest

router = APIRouter(prefix="/v1", tags=["exports"])


@router.post("/exports", status_code=201)
def create_export(
    body: ExportRequest,
    request: Request,
    token: str = Depends(get_bearer_token),
    orchestrator: ExportOrchestrator = Depends(get_export_orchestrator),
):
    """
    Export a project.

    Request body:
    - project_id: project to export
    - format: html | pdf | epub | mobi
    - template_id: optional style template

    Every entitlement check runs before any work; a rejected export leaves
    no artifact and no usage behind.
    """
    return respond(request, orchestrator.submit(token, body))


@router.get("/projects/{project_id}/exports")
def list_exports(
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    orchestrator: ExportOrchestrator = Depends(get_export_orchestrator),
):
    artifacts = orchestrator.list_exports(user_id, project_id)
    return respond(request, [ExportDescriptor.from_artifact(a) for a in artifacts])
