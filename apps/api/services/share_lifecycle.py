"""Share lifecycle engine: create, gated view, delete, reclaim and sweep.

There is no persisted state column. A share's state is derived on every call
from ``expires_at``, ``view_count``, ``view_limit`` and ``one_time_view``, so
each check can be repeated safely under concurrent access. No in-process lock
guards a share: correctness rests on the store's atomic increment and on
reclaim being idempotent.

Known tolerance: two viewers can both pass the one-time / view-limit gate
before either increments, so a limit can be exceeded by the number of requests
in flight at the boundary.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple

from config import settings
from database import async_session_maker
from services.blob_storage import BlobStore, build_locator, get_blob_store
from services.share_credentials import DEFAULT_ITERATIONS, hash_password, verify_password
from services.share_errors import (
    AlreadyConsumed,
    AuthenticationRequired,
    BlobStorageError,
    DuplicateShareId,
    Forbidden,
    IdExhaustion,
    InvalidPassword,
    InvalidViewLimit,
    LimitReached,
    PasswordRequired,
    PayloadConflict,
    PayloadTooLarge,
    ShareError,
    ShareExpired,
    ShareNotFound,
    StorageFailure,
)
from services.share_expiry import resolve_expiry
from services.share_ids import generate_share_id
from services.share_requests import CreateShareRequest
from services.share_store import (
    PAYLOAD_FILE,
    PAYLOAD_TEXT,
    ShareRecord,
    ShareStore,
    ShareSummary,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShareState(str, Enum):
    ACTIVE = "active"
    VIEWED_OUT = "viewed_out"
    LIMIT_REACHED = "limit_reached"
    EXPIRED = "expired"


def derive_state(share: ShareRecord | ShareSummary, now: datetime) -> ShareState:
    """Derive the lifecycle state of a share at ``now``."""
    if now > share.expires_at:
        return ShareState.EXPIRED
    if share.one_time_view and share.view_count > 0:
        return ShareState.VIEWED_OUT
    if share.view_limit is not None and share.view_count >= share.view_limit:
        return ShareState.LIMIT_REACHED
    return ShareState.ACTIVE


@dataclass(frozen=True)
class CreatedShare:
    share_id: str
    expires_at: datetime


@dataclass(frozen=True)
class ShareView:
    share_id: str
    content_type: str
    view_count: int
    content: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class ShareInfo:
    share_id: str
    content_type: str
    state: ShareState
    created_at: datetime
    expires_at: datetime
    owner_id: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    password_protected: bool = False
    one_time_view: bool = False
    view_count: int = 0
    view_limit: Optional[int] = None


@dataclass(frozen=True)
class ReclaimResult:
    share_id: str
    record_deleted: bool
    blob_deleted: Optional[bool] = None


@dataclass
class SweepReport:
    scanned: int = 0
    reclaimed: int = 0
    already_gone: int = 0
    blob_failures: int = 0
    failed: int = 0


class ShareLifecycle:
    """Orchestrates share records and their blobs."""

    def __init__(
        self,
        store: ShareStore,
        blobs: BlobStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_share_id,
        one_time_grace_seconds: float = 30.0,
        signed_url_ttl_seconds: int = 3600,
        max_id_attempts: int = 5,
        max_upload_bytes: Optional[int] = None,
        password_iterations: int = DEFAULT_ITERATIONS,
        sweep_batch_size: int = 200,
    ):
        self._store = store
        self._blobs = blobs
        self._clock = clock
        self._id_factory = id_factory
        self._grace_seconds = max(float(one_time_grace_seconds), 0.0)
        self._signed_url_ttl = int(signed_url_ttl_seconds)
        self._max_id_attempts = max(int(max_id_attempts), 1)
        self._max_upload_bytes = max_upload_bytes
        self._password_iterations = password_iterations
        self._sweep_batch_size = max(int(sweep_batch_size), 1)
        self._pending: Set[asyncio.Task] = set()

    def now(self) -> datetime:
        return self._clock()

    @property
    def pending_reclaims(self) -> Tuple[asyncio.Task, ...]:
        return tuple(self._pending)

    # Create

    async def create(self, request: CreateShareRequest, owner_id: Optional[str] = None) -> CreatedShare:
        has_text = bool(request.text)
        has_file = request.file is not None
        if not has_text and not has_file:
            raise PayloadConflict("Either text or file must be provided.")
        if has_text and has_file:
            raise PayloadConflict("Cannot upload both text and file. Choose one.")

        now = self._clock()
        expires_at = resolve_expiry(request.expiry_minutes, request.expiry_at, now=now)

        view_limit = request.view_limit
        if view_limit is not None and (
            isinstance(view_limit, bool) or not isinstance(view_limit, int) or view_limit < 1
        ):
            raise InvalidViewLimit()

        if has_file and self._max_upload_bytes and request.file.size > self._max_upload_bytes:
            raise PayloadTooLarge(
                f"File too large. Max upload size is {self._max_upload_bytes // (1024 * 1024)}MB."
            )

        password_hash = None
        if request.password:
            password_hash = await asyncio.to_thread(
                hash_password, request.password, self._password_iterations
            )

        share_id = self._id_factory()
        locator = None
        cached_file_url = None
        if has_file:
            # Blob first: a record must never point at a missing upload.
            locator = await self._blobs.upload(
                build_locator(share_id, request.file.filename),
                request.file.content,
                request.file.mime_type,
            )
            try:
                cached_file_url = await self._blobs.signed_url(locator, self._signed_url_ttl)
            except BlobStorageError as exc:
                logger.warning("Could not pre-sign file %s for new share: %s", locator, exc)

        for attempt in range(1, self._max_id_attempts + 1):
            record = ShareRecord(
                share_id=share_id,
                owner_id=owner_id,
                payload_kind=PAYLOAD_FILE if has_file else PAYLOAD_TEXT,
                text_content=request.text if has_text else None,
                file_name=request.file.filename if has_file else None,
                storage_path=locator,
                cached_file_url=cached_file_url,
                file_size=request.file.size if has_file else None,
                mime_type=request.file.mime_type if has_file else None,
                password_hash=password_hash,
                password_protected=password_hash is not None,
                one_time_view=bool(request.one_time_view),
                view_limit=view_limit,
                view_count=0,
                created_at=now,
                expires_at=expires_at,
            )
            try:
                await self._store.insert(record)
            except DuplicateShareId:
                logger.warning("Share id collision on attempt %s/%s", attempt, self._max_id_attempts)
                share_id = self._id_factory()
                continue
            except ShareError:
                if locator:
                    await self._discard_blob(locator)
                raise
            logger.info(
                "Created %s share %s (owner=%s, expires_at=%s)",
                record.payload_kind,
                share_id,
                owner_id or "anonymous",
                expires_at.isoformat(),
            )
            return CreatedShare(share_id=share_id, expires_at=expires_at)

        if locator:
            await self._discard_blob(locator)
        raise IdExhaustion()

    async def _discard_blob(self, locator: str) -> None:
        try:
            await self._blobs.delete(locator)
        except BlobStorageError as exc:
            logger.warning("Could not discard orphaned blob %s: %s", locator, exc)

    # Read

    async def _reclaim_expired(self, record: ShareRecord) -> None:
        try:
            await self.reclaim(record)
        except StorageFailure as exc:
            logger.warning("Read-time reclaim of expired share %s failed: %s", record.share_id, exc)

    async def view(self, share_id: str, password: Optional[str] = None) -> ShareView:
        """Serve a share after every gate passes; gates never touch ``view_count``."""
        record = await self._store.find_by_id(share_id)
        if record is None:
            raise ShareNotFound()

        state = derive_state(record, self._clock())
        if state is ShareState.EXPIRED:
            await self._reclaim_expired(record)
            raise ShareExpired()

        if record.password_protected:
            if not password:
                raise PasswordRequired()
            valid = await asyncio.to_thread(verify_password, password, record.password_hash or "")
            if not valid:
                raise InvalidPassword()

        if state is ShareState.VIEWED_OUT:
            raise AlreadyConsumed()
        if state is ShareState.LIMIT_REACHED:
            raise LimitReached()

        updated = await self._store.record_view(share_id)
        if updated is None:
            raise ShareNotFound()

        try:
            if not updated.is_file:
                return ShareView(
                    share_id=share_id,
                    content_type=PAYLOAD_TEXT,
                    view_count=updated.view_count,
                    content=updated.text_content,
                )
            # Cached URLs can expire independently of the share; always re-sign.
            file_url = await self._blobs.signed_url(updated.storage_path, self._signed_url_ttl)
            return ShareView(
                share_id=share_id,
                content_type=PAYLOAD_FILE,
                view_count=updated.view_count,
                file_name=updated.file_name,
                file_url=file_url,
                file_size=updated.file_size,
                mime_type=updated.mime_type,
            )
        finally:
            if record.one_time_view:
                self._schedule_reclaim(updated)

    async def info(self, share_id: str) -> ShareInfo:
        record = await self._store.find_by_id(share_id)
        if record is None:
            raise ShareNotFound()

        state = derive_state(record, self._clock())
        if state is ShareState.EXPIRED:
            await self._reclaim_expired(record)
            raise ShareExpired()

        return ShareInfo(
            share_id=record.share_id,
            content_type=record.payload_kind,
            state=state,
            created_at=record.created_at,
            expires_at=record.expires_at,
            owner_id=record.owner_id,
            file_name=record.file_name,
            file_size=record.file_size,
            mime_type=record.mime_type,
            password_protected=record.password_protected,
            one_time_view=record.one_time_view,
            view_count=record.view_count,
            view_limit=record.view_limit,
        )

    async def list_for_owner(self, owner_id: str) -> List[ShareSummary]:
        return await self._store.list_by_owner(owner_id)

    # Destroy

    async def reclaim(self, record: ShareRecord) -> ReclaimResult:
        """Delete the blob (best effort) and then the record. Safe to repeat."""
        blob_deleted = None
        if record.is_file and record.storage_path:
            try:
                await self._blobs.delete(record.storage_path)
                blob_deleted = True
            except BlobStorageError as exc:
                blob_deleted = False
                logger.warning(
                    "Failed to delete file %s for share %s: %s",
                    record.storage_path,
                    record.share_id,
                    exc,
                )

        deleted = await self._store.delete_by_id(record.share_id)
        return ReclaimResult(
            share_id=record.share_id,
            record_deleted=deleted > 0,
            blob_deleted=blob_deleted,
        )

    async def delete(self, share_id: str, requester_id: Optional[str] = None) -> ReclaimResult:
        """Owner-initiated delete. Anonymous shares are deletable by anyone holding the id."""
        record = await self._store.find_by_id(share_id)
        if record is None:
            raise ShareNotFound()

        if record.owner_id is not None:
            if requester_id is None:
                raise AuthenticationRequired("Authentication required to delete this share.")
            if requester_id != record.owner_id:
                raise Forbidden()

        result = await self.reclaim(record)
        logger.info("Share %s deleted by %s", share_id, requester_id or "anonymous holder")
        return result

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Reclaim every expired share; one failure never aborts the batch.

        The backlog is read in pages of ``sweep_batch_size`` records keyed on
        ``(expires_at, share_id)``, so records that fail to reclaim are skipped
        on the next page instead of being read again.
        """
        now = now or self._clock()
        report = SweepReport()
        cursor: Optional[Tuple[datetime, str]] = None

        while True:
            batch = await self._store.find_expired(now, limit=self._sweep_batch_size, after=cursor)
            report.scanned += len(batch)
            for record in batch:
                try:
                    result = await self.reclaim(record)
                except Exception:
                    report.failed += 1
                    logger.exception("Sweep could not reclaim share %s", record.share_id)
                    continue
                if result.record_deleted:
                    report.reclaimed += 1
                else:
                    report.already_gone += 1
                if result.blob_deleted is False:
                    report.blob_failures += 1

            if len(batch) < self._sweep_batch_size:
                break
            cursor = (batch[-1].expires_at, batch[-1].share_id)

        if report.scanned:
            logger.info(
                "Share sweep: scanned=%s reclaimed=%s already_gone=%s blob_failures=%s failed=%s",
                report.scanned,
                report.reclaimed,
                report.already_gone,
                report.blob_failures,
                report.failed,
            )
        return report

    # Deferred one-time deletion

    def _schedule_reclaim(self, record: ShareRecord) -> None:
        task = asyncio.create_task(
            self._reclaim_after_grace(record),
            name=f"share-reclaim:{record.share_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reclaim_after_grace(self, record: ShareRecord) -> None:
        # Grace period lets an in-flight download finish. Lost on restart; the
        # consumed share stays unservable and the sweeper removes it at expiry.
        await asyncio.sleep(self._grace_seconds)
        try:
            result = await self.reclaim(record)
        except Exception:
            logger.exception("Deferred reclaim of one-time share %s failed", record.share_id)
            return
        logger.info(
            "One-time share %s reclaimed (record_deleted=%s)",
            record.share_id,
            result.record_deleted,
        )

    async def shutdown(self) -> None:
        """Cancel pending deferred reclaims."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


_share_lifecycle: Optional[ShareLifecycle] = None


def get_share_lifecycle() -> ShareLifecycle:
    """Process-wide engine built from settings on first use."""
    global _share_lifecycle
    if _share_lifecycle is None:
        _share_lifecycle = ShareLifecycle(
            ShareStore(async_session_maker, settings.STORE_TIMEOUT_SECONDS),
            get_blob_store(),
            id_factory=lambda: generate_share_id(settings.SHARE_ID_LENGTH),
            one_time_grace_seconds=settings.SHARE_ONE_TIME_GRACE_SECONDS,
            signed_url_ttl_seconds=settings.SHARE_SIGNED_URL_TTL_SECONDS,
            max_id_attempts=settings.SHARE_ID_MAX_ATTEMPTS,
            max_upload_bytes=settings.SHARE_MAX_UPLOAD_BYTES,
            password_iterations=settings.PASSWORD_HASH_ITERATIONS,
            sweep_batch_size=settings.SHARE_SWEEP_BATCH_SIZE,
        )
    return _share_lifecycle
