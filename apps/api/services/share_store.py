"""Share record store over the async SQLAlchemy session maker.

The lifecycle engine only ever talks to this class. Each operation runs in its
own short session and is bounded by ``timeout_seconds``; the only mutation of
``view_count`` is :meth:`ShareStore.record_view`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, List, Optional, Tuple, TypeVar

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.share import Share
from services.share_errors import DuplicateShareId, RecordStoreError, StorageUnavailable
from services.share_expiry import ensure_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAYLOAD_TEXT = "text"
PAYLOAD_FILE = "file"


@dataclass(frozen=True)
class ShareRecord:
    share_id: str
    payload_kind: str
    expires_at: datetime
    created_at: datetime
    owner_id: Optional[str] = None
    text_content: Optional[str] = None
    file_name: Optional[str] = None
    storage_path: Optional[str] = None
    cached_file_url: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    password_hash: Optional[str] = None
    password_protected: bool = False
    one_time_view: bool = False
    view_limit: Optional[int] = None
    view_count: int = 0

    @property
    def is_file(self) -> bool:
        return self.payload_kind == PAYLOAD_FILE


@dataclass(frozen=True)
class ShareSummary:
    """Metadata projection: no payload, no credential, no cached URL."""

    share_id: str
    payload_kind: str
    created_at: datetime
    expires_at: datetime
    owner_id: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    password_protected: bool = False
    one_time_view: bool = False
    view_limit: Optional[int] = None
    view_count: int = 0


_SUMMARY_COLUMNS = (
    Share.share_id,
    Share.payload_kind,
    Share.created_at,
    Share.expires_at,
    Share.owner_id,
    Share.file_name,
    Share.file_size,
    Share.mime_type,
    Share.password_protected,
    Share.one_time_view,
    Share.view_limit,
    Share.view_count,
)


def _to_record(row: Share) -> ShareRecord:
    return ShareRecord(
        share_id=row.share_id,
        payload_kind=row.payload_kind,
        expires_at=ensure_utc(row.expires_at),
        created_at=ensure_utc(row.created_at),
        owner_id=row.owner_id,
        text_content=row.text_content,
        file_name=row.file_name,
        storage_path=row.storage_path,
        cached_file_url=row.cached_file_url,
        file_size=row.file_size,
        mime_type=row.mime_type,
        password_hash=row.password_hash,
        password_protected=bool(row.password_protected),
        one_time_view=bool(row.one_time_view),
        view_limit=row.view_limit,
        view_count=int(row.view_count or 0),
    )


def _to_summary(row) -> ShareSummary:
    return ShareSummary(
        share_id=row.share_id,
        payload_kind=row.payload_kind,
        created_at=ensure_utc(row.created_at),
        expires_at=ensure_utc(row.expires_at),
        owner_id=row.owner_id,
        file_name=row.file_name,
        file_size=row.file_size,
        mime_type=row.mime_type,
        password_protected=bool(row.password_protected),
        one_time_view=bool(row.one_time_view),
        view_limit=row.view_limit,
        view_count=int(row.view_count or 0),
    )


class ShareStore:
    """Persistence for share records with atomic view accounting."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 10.0,
    ):
        self._session_maker = session_maker
        self._timeout_seconds = timeout_seconds

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("Share store %s timed out after %ss", operation, self._timeout_seconds)
            raise StorageUnavailable() from exc
        except SQLAlchemyError as exc:
            logger.exception("Share store %s failed", operation)
            raise RecordStoreError() from exc

    async def insert(self, record: ShareRecord) -> None:
        """Persist a new share. Raises DuplicateShareId when the id is taken."""

        async def _insert() -> None:
            async with self._session_maker() as db:
                db.add(
                    Share(
                        share_id=record.share_id,
                        owner_id=record.owner_id,
                        payload_kind=record.payload_kind,
                        text_content=record.text_content,
                        file_name=record.file_name,
                        storage_path=record.storage_path,
                        cached_file_url=record.cached_file_url,
                        file_size=record.file_size,
                        mime_type=record.mime_type,
                        password_hash=record.password_hash,
                        password_protected=record.password_protected,
                        one_time_view=record.one_time_view,
                        view_limit=record.view_limit,
                        view_count=0,
                        created_at=record.created_at,
                        expires_at=record.expires_at,
                    )
                )
                try:
                    await db.commit()
                except IntegrityError as exc:
                    await db.rollback()
                    existing = await db.get(Share, record.share_id)
                    if existing is not None:
                        raise DuplicateShareId(record.share_id) from exc
                    raise

        await self._bounded("insert", _insert())

    async def find_by_id(self, share_id: str) -> Optional[ShareRecord]:
        async def _find() -> Optional[ShareRecord]:
            async with self._session_maker() as db:
                result = await db.execute(select(Share).where(Share.share_id == share_id))
                row = result.scalar_one_or_none()
                return _to_record(row) if row else None

        return await self._bounded("find_by_id", _find())

    async def record_view(self, share_id: str) -> Optional[ShareRecord]:
        """Increment ``view_count`` and return the post-increment record.

        Returns None when the record is already gone. No gating happens here.
        """

        async def _record() -> Optional[ShareRecord]:
            async with self._session_maker() as db:
                result = await db.execute(
                    update(Share)
                    .where(Share.share_id == share_id)
                    .values(view_count=Share.view_count + 1)
                    .execution_options(synchronize_session=False)
                )
                if not result.rowcount:
                    await db.rollback()
                    return None
                refreshed = await db.execute(
                    select(Share)
                    .where(Share.share_id == share_id)
                    .execution_options(populate_existing=True)
                )
                row = refreshed.scalar_one()
                record = _to_record(row)
                await db.commit()
                return record

        return await self._bounded("record_view", _record())

    async def delete_by_id(self, share_id: str) -> int:
        async def _delete() -> int:
            async with self._session_maker() as db:
                result = await db.execute(delete(Share).where(Share.share_id == share_id))
                await db.commit()
                return int(result.rowcount or 0)

        return await self._bounded("delete_by_id", _delete())

    async def list_by_owner(self, owner_id: str) -> List[ShareSummary]:
        async def _list() -> List[ShareSummary]:
            async with self._session_maker() as db:
                result = await db.execute(
                    select(*_SUMMARY_COLUMNS)
                    .where(Share.owner_id == owner_id)
                    .order_by(Share.created_at.desc(), Share.share_id)
                )
                return [_to_summary(row) for row in result.all()]

        return await self._bounded("list_by_owner", _list())

    async def find_expired(
        self,
        now: datetime,
        limit: Optional[int] = None,
        after: Optional[Tuple[datetime, str]] = None,
    ) -> List[ShareRecord]:
        """Expired records ordered by ``(expires_at, share_id)``.

        ``after`` is the key of the last record of a previous page, so callers
        can walk the backlog in batches even when some records stay behind.
        """

        async def _find() -> List[ShareRecord]:
            async with self._session_maker() as db:
                query = select(Share).where(Share.expires_at < now)
                if after is not None:
                    after_expiry, after_id = after
                    query = query.where(
                        or_(
                            Share.expires_at > after_expiry,
                            and_(Share.expires_at == after_expiry, Share.share_id > after_id),
                        )
                    )
                query = query.order_by(Share.expires_at, Share.share_id)
                if limit:
                    query = query.limit(limit)
                result = await db.execute(query)
                return [_to_record(row) for row in result.scalars().all()]

        return await self._bounded("find_expired", _find())
