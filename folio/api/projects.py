"""Projects and chapters API."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Request
from pydantic import BaseModel

from folio.api.deps import get_project_service, respond
from folio.core.auth import get_current_user_id
from folio.features.analysis.jobs import get_readability
from folio.features.projects.service import ProjectService
from folio.models.project import ChapterCreate, ChapterUpdate, ProjectCreate, ProjectUpdate

router = APIRouter(prefix="/v1", tags=["projects"])


class CoverUploadRequest(BaseModel):
    file_extension: str


@router.post("/projects", status_code=201)
def create_project(
    body: ProjectCreate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.create_project(user_id, body))


@router.get("/projects")
def list_projects(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.list_projects(user_id))


@router.get("/projects/{project_id}")
def get_project(
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.get_project(user_id, project_id))


@router.patch("/projects/{project_id}")
def update_project(
    body: ProjectUpdate,
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.update_project(user_id, project_id, body))


@router.delete("/projects/{project_id}")
def delete_project(
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    service.delete_project(user_id, project_id)
    return respond(request, {"deleted": True, "project_id": project_id})


@router.post("/projects/{project_id}/cover-upload")
def cover_upload_url(
    body: CoverUploadRequest,
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    """Presigned PUT URL for a cover image; valid for one hour."""
    return respond(request, service.generate_cover_upload_url(user_id, project_id, body.file_extension))


@router.get("/projects/{project_id}/chapters")
def list_chapters(
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.list_chapters(user_id, project_id))


@router.post("/projects/{project_id}/chapters", status_code=201)
def create_chapter(
    body: ChapterCreate,
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.create_chapter(user_id, project_id, body))


@router.get("/chapters/{chapter_id}")
def get_chapter(
    request: Request,
    chapter_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.get_chapter(user_id, chapter_id))


@router.patch("/chapters/{chapter_id}")
def update_chapter(
    body: ChapterUpdate,
    request: Request,
    chapter_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    return respond(request, service.update_chapter(user_id, chapter_id, body))


@router.delete("/chapters/{chapter_id}")
def delete_chapter(
    request: Request,
    chapter_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    service.delete_chapter(user_id, chapter_id)
    return respond(request, {"deleted": True, "chapter_id": chapter_id})


@router.get("/chapters/{chapter_id}/readability")
def chapter_readability(
    request: Request,
    chapter_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: ProjectService = Depends(get_project_service),
):
    """Latest readability scores; null until the analysis worker has run."""
    service.get_chapter(user_id, chapter_id)
    scores: Optional[Dict[str, Any]] = get_readability(chapter_id)
    return respond(request, scores)
