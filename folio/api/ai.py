"""AI authoring API: outlines, chapter generation and streamed span edits (server-sent events)."""

import json
import logging
from typing import Iterator, Literal, Optional

from fastapi import APIRouter, Depends, Path, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from folio.api.deps import get_authoring_service, respond
from folio.core.auth import get_current_user_id
from folio.core.errors import AppError
from folio.features.ai.service import AuthoringService
from folio.features.generation.client import StreamFragment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/ai", tags=["ai"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class GenerateOutlineRequest(BaseModel):
    structure: Optional[Literal["linear", "story_arc", "framework", "anthology"]] = None
    chapter_count: int = Field(default=12, ge=3, le=50)


class GenerateChapterRequest(BaseModel):
    prompt: str = Field(min_length=1)
    context: Optional[str] = None


class SpanEditRequest(BaseModel):
    start: int = Field(ge=0)
    end: int = Field(ge=1)
    mode: Literal["rewrite", "expand"] = "rewrite"
    instruction: Optional[str] = None


def sse_events(fragments: Iterator[StreamFragment]) -> Iterator[str]:
    """Fragments as `data:` events; a failure after the stream opened becomes an `error` event."""
    try:
        for fragment in fragments:
            yield f"data: {json.dumps({'content': fragment.content, 'done': fragment.done})}\n\n"
    except AppError as e:
        logger.warning(f"[ai] stream ended with {e.code}: {e.message}")
        yield f"event: error\ndata: {json.dumps({'code': e.code, 'message': e.message})}\n\n"


@router.post("/projects/{project_id}/outline")
def generate_outline(
    body: GenerateOutlineRequest,
    request: Request,
    project_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: AuthoringService = Depends(get_authoring_service),
):
    """Plan the book and store it as the project outline (1 credit)."""
    return respond(request, service.generate_outline(user_id, project_id, body.structure, body.chapter_count))


@router.post("/chapters/{chapter_id}/generate")
def generate_chapter(
    body: GenerateChapterRequest,
    request: Request,
    chapter_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: AuthoringService = Depends(get_authoring_service),
):
    """Write the whole chapter (1 credit)."""
    return respond(request, service.generate_chapter(user_id, chapter_id, body.prompt, body.context))


@router.post("/chapters/{chapter_id}/rewrite")
def rewrite_span(
    body: SpanEditRequest,
    chapter_id: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: AuthoringService = Depends(get_authoring_service),
):
    """Stream a rewrite or expansion of content[start:end] (1 credit), then splice it in."""
    fragments = service.stream_span_edit(
        user_id, chapter_id, body.start, body.end, mode=body.mode, instruction=body.instruction
    )
    return StreamingResponse(sse_events(fragments), media_type="text/event-stream", headers=SSE_HEADERS)
