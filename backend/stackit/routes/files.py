"""
StackIt Backend — Uploaded File Route
=======================================

What:  Serves attachments written by LocalObjectStore.
When:  Only meaningful with OBJECT_STORE_BACKEND=local; with Cloudinary the
       attachment URLs point at Cloudinary and this route answers 404.

Security:
    Paths are resolved against STORAGE_ROOT and anything outside it (../)
    is rejected with 400 by LocalObjectStore.resolve().
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from stackit.dependencies import get_object_store
from stackit.exceptions import NotFoundError
from stackit.gateways.object_store import LocalObjectStore, ObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Files"])


@router.get(
    "/files/{file_path:path}",
    summary="Serve an uploaded attachment",
    responses={
        200: {"description": "The stored file"},
        404: {"description": "File not found"},
    },
)
async def serve_file(
    file_path: str,
    object_store: ObjectStore = Depends(get_object_store),
) -> FileResponse:
    if not isinstance(object_store, LocalObjectStore):
        raise NotFoundError(resource="file", resource_id=file_path)

    full_path = object_store.resolve(file_path)
    if full_path is None:
        raise NotFoundError(resource="file", resource_id=file_path)

    # Stored names are UUIDs, so content never changes under a URL
    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
