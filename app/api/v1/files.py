from fastapi import APIRouter, Query
from fastapi.responses import Response

from app.core.errors import ApiError, NotFound
from app.storage.object_store import LocalObjectStore, StorageError, get_object_store

router = APIRouter()


@router.get("/{key:path}", include_in_schema=False)
async def download(
    key: str,
    expires: int = Query(...),
    nonce: str = Query(..., max_length=32),
    signature: str = Query(..., max_length=128),
):
    store = get_object_store()
    if not isinstance(store, LocalObjectStore):
        raise NotFound()
    if not store.verify(key, expires=expires, nonce=nonce, signature=signature):
        raise ApiError("FORBIDDEN", "Download link is invalid or expired", status_code=403)
    try:
        content = store.get_object(key)
    except StorageError as exc:
        raise NotFound("File not found") from exc
    content_type = store.read_metadata(key).get("contentType") or "application/octet-stream"
    filename = key.rsplit("/", 1)[-1]
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
