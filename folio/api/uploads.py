"""Object store routes: signed cover uploads and public object reads."""

import logging

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.responses import FileResponse

from folio.api.deps import get_object_store, respond
from folio.core.config import settings
from folio.core.errors import UnauthenticatedError, ValidationError
from folio.features.storage.object_store import LocalObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/uploads", tags=["uploads"])

MAX_COVER_BYTES = 10 * 1024 * 1024


@router.put("/{bucket}/{key:path}")
async def upload_object(
    request: Request,
    bucket: str = Path(...),
    key: str = Path(...),
    expires: int = Query(...),
    signature: str = Query(...),
    store: LocalObjectStore = Depends(get_object_store),
):
    if bucket != settings.COVER_BUCKET:
        raise ValidationError("Uploads are only accepted for cover images")
    if not store.verify_presigned(bucket, key, expires, signature):
        raise UnauthenticatedError("Upload URL is invalid or expired")

    content_type = request.headers.get("content-type", "application/octet-stream")
    if not content_type.startswith("image/"):
        raise ValidationError(f"Unsupported content type: {content_type}")
    data = await request.body()
    if not data or len(data) > MAX_COVER_BYTES:
        raise ValidationError("Cover image must be between 1 byte and 10 MB")

    url = store.put(bucket, key, data, content_type)
    return respond(request, {"url": url})


@router.get("/{bucket}/{key:path}")
def read_object(
    bucket: str = Path(...),
    key: str = Path(...),
    store: LocalObjectStore = Depends(get_object_store),
):
    return FileResponse(store.file_path(bucket, key))
