"""Signed downloads for files kept by the local blob store."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from services.blob_storage import BlobStore, LocalBlobStore, decode_download_token, get_blob_store
from services.share_errors import BlobStorageError

router = APIRouter()


@router.get("/{share_id}/{file_name}")
async def download_share_file(
    share_id: str,
    file_name: str,
    token: str,
    blobs: BlobStore = Depends(get_blob_store),
):
    if not isinstance(blobs, LocalBlobStore):
        raise HTTPException(status_code=404, detail="File downloads are served by the storage provider.")

    try:
        claims = decode_download_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    locator = f"{share_id}/{file_name}"
    if claims.get("locator") != locator:
        raise HTTPException(status_code=401, detail="Download token does not match file.")

    try:
        path = blobs.resolve_path(locator)
    except BlobStorageError as exc:
        raise HTTPException(status_code=404, detail="File not found.") from exc
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found.")

    return FileResponse(path, filename=file_name)
