"""Style templates API (read-only)."""

from fastapi import APIRouter, Depends, Path, Request

from folio.api.deps import get_template_service, respond
from folio.features.templates.service import TemplateService

router = APIRouter(prefix="/v1/templates", tags=["templates"])


@router.get("")
def list_templates(request: Request, service: TemplateService = Depends(get_template_service)):
    return respond(request, service.list_templates())


@router.get("/{template_id}")
def get_template(
    request: Request,
    template_id: int = Path(..., ge=1),
    service: TemplateService = Depends(get_template_service),
):
    return respond(request, service.get_template(template_id))
