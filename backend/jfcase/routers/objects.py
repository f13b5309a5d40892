from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse

from jfcase.config import settings
from jfcase.dependencies import get_storage_registry
from jfcase.errors import AppError, ErrorCode
from jfcase.services.object_storage import (
    AREAS,
    NAMESPACES,
    TEMP,
    ObjectNotFoundError,
    StorageError,
    StorageRegistry,
)
from jfcase.utils.filesystem import normalize_key

router = APIRouter(prefix="/objects", tags=["objects"])


def _media_type(value: str | None) -> str:
    return (value or "").split(";")[0].strip().lower()


def _check_target(area: str, namespace: str, key: str) -> str:
    if area not in AREAS or namespace not in NAMESPACES:
        raise AppError(ErrorCode.SIGNED_URL_INVALID, f"unknown bucket {area}/{namespace}")
    try:
        return normalize_key(key)
    except ValueError as exc:
        raise AppError(ErrorCode.SIGNED_URL_INVALID, str(exc)) from exc


@router.get("/{area}/{namespace}/{key:path}")
async def get_object(
    area: str,
    namespace: str,
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    registry: StorageRegistry = Depends(get_storage_registry),
):
    key = _check_target(area, namespace, key)
    if not registry.signer.verify("GET", area, namespace, key, expires, signature):
        raise AppError(ErrorCode.SIGNED_URL_INVALID)

    storage = registry.get(namespace)
    try:
        read_metadata = storage.get_metadata if area != TEMP else storage.get_metadata_temp
        meta = await run_in_threadpool(read_metadata, key)
    except ObjectNotFoundError as exc:
        raise AppError(ErrorCode.STORAGE_FILE_NOT_FOUND, f"{namespace}/{key}") from exc
    except StorageError as exc:
        raise AppError(ErrorCode.STORAGE_GET_METADATA_FAIL, str(exc)) from exc

    return FileResponse(
        path=str(storage.local_path(area, key)),
        filename=key.rsplit("/", 1)[-1],
        media_type=meta.content_type or "application/octet-stream",
    )


@router.put("/{area}/{namespace}/{key:path}", status_code=201)
async def put_object(
    area: str,
    namespace: str,
    key: str,
    request: Request,
    expires: int = Query(...),
    signature: str = Query(...),
    content_type: str = Query(...),
    registry: StorageRegistry = Depends(get_storage_registry),
):
    """Upload into the temporary area through a URL issued by one of the upload-url endpoints."""
    key = _check_target(area, namespace, key)
    if area != TEMP:
        raise AppError(ErrorCode.SIGNED_URL_INVALID, "uploads go to the temporary area only")
    if not registry.signer.verify("PUT", area, namespace, key, expires, signature, content_type):
        raise AppError(ErrorCode.SIGNED_URL_INVALID)
    if _media_type(request.headers.get("content-type")) != _media_type(content_type):
        raise AppError(ErrorCode.MIME_TYPE_NOT_SUPPORTED, "Content-Type does not match the signed upload URL")

    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise AppError(ErrorCode.UPLOAD_TOO_LARGE, f"max {max_bytes} bytes")
        chunks.append(chunk)

    content = b"".join(chunks)
    if not content:
        raise AppError(ErrorCode.REQUEST_BODY_NIL)

    try:
        result = await run_in_threadpool(registry.get(namespace).put_temp, key, content_type, content)
    except (StorageError, OSError) as exc:
        raise AppError(ErrorCode.STORAGE_PUT_FAIL, str(exc)) from exc
    return {"filename": result.filename, "checksum": result.checksum, "size": size}
