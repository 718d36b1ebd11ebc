"""Blob storage backends for file shares.

The lifecycle engine addresses blobs only by locator (``<share_id>/<file name>``)
through three calls: upload, delete, signed_url. ``LocalBlobStore`` keeps files on
disk and signs download links with the API's JWT secret; ``SupabaseBlobStore``
talks to the Supabase Storage REST API.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from jose import JWTError, jwt

from config import require_supabase_credentials, settings
from services.share_errors import BlobStorageError

logger = logging.getLogger(__name__)

DOWNLOAD_TOKEN_PURPOSE = "share_file_download"


def sanitize_filename(filename: str) -> str:
    base = os.path.basename(filename or "upload.bin")
    safe = "".join(ch if ch.isalnum() or ch in ("-", "_", ".") else "_" for ch in base)
    safe = safe.lstrip(".")
    return safe or "upload.bin"


def build_locator(share_id: str, filename: str) -> str:
    return f"{share_id}/{sanitize_filename(filename)}"


class BlobStore:
    """Narrow blob interface consumed by the share lifecycle engine."""

    backend_name = "abstract"

    async def upload(self, locator: str, content: bytes, mime_type: Optional[str] = None) -> str:
        raise NotImplementedError

    async def delete(self, locator: str) -> None:
        raise NotImplementedError

    async def signed_url(self, locator: str, expires_in: int = 3600) -> str:
        raise NotImplementedError


def create_download_token(locator: str, expires_in: int) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "locator": locator,
        "purpose": DOWNLOAD_TOKEN_PURPOSE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=max(int(expires_in), 1))).timestamp()),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_download_token(token: str) -> Dict[str, Any]:
    """Decode a local download token. Raises ValueError when invalid or expired."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired download token.") from exc
    if payload.get("purpose") != DOWNLOAD_TOKEN_PURPOSE:
        raise ValueError("Invalid download token purpose.")
    if not str(payload.get("locator", "")).strip():
        raise ValueError("Download token missing locator.")
    return payload


class LocalBlobStore(BlobStore):
    """Filesystem-backed blobs served through ``GET /files/{share_id}/{file_name}``."""

    backend_name = "local"

    def __init__(self, root: str | Path, public_base_url: str = ""):
        self.root = Path(root)
        self.public_base_url = (public_base_url or "").rstrip("/")

    def resolve_path(self, locator: str) -> Path:
        root = self.root.resolve()
        path = (root / locator).resolve()
        if path == root or root not in path.parents:
            raise BlobStorageError("Invalid storage locator.")
        return path

    def _write(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("xb") as out:
            out.write(content)

    def _remove(self, path: Path) -> None:
        path.unlink(missing_ok=True)
        if path.parent == self.root.resolve():
            return
        try:
            path.parent.rmdir()
        except OSError:
            # share directory still holds other files
            pass

    async def upload(self, locator: str, content: bytes, mime_type: Optional[str] = None) -> str:
        path = self.resolve_path(locator)
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as exc:
            raise BlobStorageError(f"Failed to store file: {exc}") from exc
        return locator

    async def delete(self, locator: str) -> None:
        path = self.resolve_path(locator)
        try:
            await asyncio.to_thread(self._remove, path)
        except OSError as exc:
            raise BlobStorageError(f"Failed to delete file: {exc}") from exc

    async def signed_url(self, locator: str, expires_in: int = 3600) -> str:
        path = self.resolve_path(locator)
        if not path.is_file():
            raise BlobStorageError("File not found in storage.")
        token = create_download_token(locator, expires_in)
        return f"{self.public_base_url}/files/{quote(locator)}?token={token}"


class SupabaseBlobStore(BlobStore):
    """Supabase Storage REST client (service role)."""

    backend_name = "supabase"

    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        bucket: str = "files",
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._service_key = service_key
        self._client = client
        self._timeout = timeout_seconds

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
        }
        if extra:
            headers.update(extra)
        return headers

    def _object_url(self, *parts: str) -> str:
        return "/".join([f"{self.base_url}/storage/v1/object", *parts])

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(method, url, timeout=self._timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise BlobStorageError(f"Storage request failed: {exc}") from exc

        if response.status_code >= 400:
            message = response.text[:300]
            try:
                body = response.json()
                message = str(body.get("message") or body.get("error") or message)
            except (ValueError, AttributeError):
                pass
            raise BlobStorageError(f"Storage returned {response.status_code}: {message}")
        return response

    @staticmethod
    def _json_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise BlobStorageError("Storage returned an unreadable response.") from exc
        if not isinstance(body, dict):
            raise BlobStorageError("Storage returned an unexpected response.")
        return body

    async def upload(self, locator: str, content: bytes, mime_type: Optional[str] = None) -> str:
        response = await self._request(
            "POST",
            self._object_url(self.bucket, quote(locator)),
            content=content,
            headers=self._headers(
                {
                    "Content-Type": mime_type or "application/octet-stream",
                    "x-upsert": "false",
                }
            ),
        )
        key = str(self._json_body(response).get("Key") or "")
        prefix = f"{self.bucket}/"
        return key[len(prefix):] if key.startswith(prefix) else locator

    async def delete(self, locator: str) -> None:
        await self._request(
            "DELETE",
            self._object_url(self.bucket),
            json={"prefixes": [locator]},
            headers=self._headers(),
        )

    async def signed_url(self, locator: str, expires_in: int = 3600) -> str:
        response = await self._request(
            "POST",
            self._object_url("sign", self.bucket, quote(locator)),
            json={"expiresIn": int(expires_in)},
            headers=self._headers(),
        )
        body = self._json_body(response)
        signed_path = str(body.get("signedURL") or body.get("signedUrl") or "")
        if not signed_path:
            raise BlobStorageError("Storage did not return a signed URL.")
        if signed_path.startswith("http"):
            return signed_path
        return f"{self.base_url}/storage/v1{signed_path}"


def build_blob_store() -> BlobStore:
    """Build the blob store selected by SHARE_STORAGE_BACKEND."""
    if settings.SHARE_STORAGE_BACKEND == "supabase":
        url, key = require_supabase_credentials()
        return SupabaseBlobStore(base_url=url, service_key=key, bucket=settings.SUPABASE_BUCKET)
    return LocalBlobStore(settings.SHARE_STORAGE_DIR, settings.PUBLIC_API_URL)


# Module-level shared store, built lazily from settings.
_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = build_blob_store()
    return _blob_store
