from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    desc,
    func,
    select,
    update,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .base import (
    CacheAdapter,
    CacheEntry,
    CacheError,
    CacheStats,
    GalleryQuery,
    NewCacheEntry,
    utcnow,
)

Base = declarative_base()


class ImageCacheRow(Base):
    __tablename__ = "image_cache"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    prompt_hash = Column(String(64), nullable=False)  # sha-256 of the normalized request
    prompt_text = Column(Text, nullable=False)
    theme = Column(String(100), nullable=False, index=True)
    subject = Column(String(200), nullable=False)
    difficulty = Column(String(10), nullable=False)
    custom_prompt = Column(Text, nullable=True)
    provider = Column(String(50), nullable=False)
    image_url = Column(Text, nullable=False)
    storage_path = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)
    last_accessed_at = Column(DateTime, nullable=False)
    access_count = Column(Integer, nullable=False, default=0)
    meta = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (Index("ix_image_cache_hash_provider", "prompt_hash", "provider"),)


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _aware(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def _to_entry(row: ImageCacheRow) -> CacheEntry:
    return CacheEntry(
        id=row.id,
        prompt_hash=row.prompt_hash,
        prompt_text=row.prompt_text,
        theme=row.theme,
        subject=row.subject,
        difficulty=row.difficulty,
        custom_prompt=row.custom_prompt,
        provider=row.provider,
        image_url=row.image_url,
        storage_path=row.storage_path,
        created_at=_aware(row.created_at),
        last_accessed_at=_aware(row.last_accessed_at),
        access_count=row.access_count or 0,
        metadata=dict(row.meta or {}),
    )


class SqlCacheAdapter(CacheAdapter):
    """Cache table in any SQLAlchemy-supported database.

    Sessions are synchronous and run in a worker thread so the event loop is
    never blocked on the database.
    """

    def __init__(
        self,
        url: str = "sqlite:///image_cache.db",
        create_tables: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        engine_args: dict[str, Any] = {}
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            engine_args["connect_args"] = {"check_same_thread": False}
            if parsed.database in (None, "", ":memory:"):
                # worker threads must share the one in-memory database
                engine_args["poolclass"] = StaticPool
        self.engine = create_engine(url, echo=False, **engine_args)
        self._session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        self._clock = clock
        if create_tables:
            Base.metadata.create_all(self.engine)

    def _now(self) -> datetime:
        return _naive_utc(self._clock())

    async def _run(self, fn: Callable[[Session], Any]) -> Any:
        def work() -> Any:
            with self._session() as session:
                try:
                    result = fn(session)
                    session.commit()
                    return result
                except SQLAlchemyError:
                    session.rollback()
                    raise

        try:
            return await asyncio.to_thread(work)
        except SQLAlchemyError as e:
            raise CacheError(f"Cache database error: {e}") from e

    async def find_exact_match(self, prompt_hash: str, provider: str) -> Optional[CacheEntry]:
        def fn(session: Session) -> Optional[CacheEntry]:
            row = session.scalars(
                select(ImageCacheRow)
                .where(ImageCacheRow.prompt_hash == prompt_hash, ImageCacheRow.provider == provider)
                .order_by(desc(ImageCacheRow.created_at))
                .limit(1)
            ).first()
            return _to_entry(row) if row else None

        return await self._run(fn)

    async def insert(self, entry: NewCacheEntry) -> str:
        now = self._now()
        entry_id = str(uuid.uuid4())

        def fn(session: Session) -> str:
            session.add(
                ImageCacheRow(
                    id=entry_id,
                    prompt_hash=entry.prompt_hash,
                    prompt_text=entry.prompt_text,
                    theme=entry.theme,
                    subject=entry.subject,
                    difficulty=entry.difficulty,
                    custom_prompt=entry.custom_prompt,
                    provider=entry.provider,
                    image_url=entry.image_url,
                    storage_path=entry.storage_path,
                    created_at=now,
                    last_accessed_at=now,
                    access_count=0,
                    meta=dict(entry.metadata),
                )
            )
            return entry_id

        return await self._run(fn)

    async def touch(self, entry_id: str) -> None:
        now = self._now()

        def fn(session: Session) -> None:
            session.execute(
                update(ImageCacheRow)
                .where(ImageCacheRow.id == entry_id)
                .values(
                    access_count=ImageCacheRow.access_count + 1,
                    last_accessed_at=now,
                )
            )

        await self._run(fn)

    async def find_similar(
        self, theme: str, difficulty: str, subject: str, limit: int
    ) -> list[CacheEntry]:
        def fn(session: Session) -> list[CacheEntry]:
            rows = session.scalars(
                select(ImageCacheRow)
                .where(
                    ImageCacheRow.theme == theme,
                    ImageCacheRow.difficulty == difficulty,
                    func.lower(ImageCacheRow.subject, type_=String).contains(subject, autoescape=True),
                )
                .order_by(desc(ImageCacheRow.access_count))
                .limit(limit)
            ).all()
            return [_to_entry(r) for r in rows]

        return await self._run(fn)

    async def gallery(self, query: GalleryQuery) -> list[CacheEntry]:
        def fn(session: Session) -> list[CacheEntry]:
            stmt = select(ImageCacheRow).where(
                ImageCacheRow.image_url.is_not(None), ImageCacheRow.image_url != ""
            )
            theme = (query.theme or "").strip().lower()
            if theme and theme != "all":
                stmt = stmt.where(ImageCacheRow.theme == theme)
            if query.order_by == "popular":
                stmt = stmt.order_by(desc(ImageCacheRow.access_count), desc(ImageCacheRow.created_at))
            else:
                stmt = stmt.order_by(desc(ImageCacheRow.created_at))
            rows = session.scalars(stmt.offset(query.offset).limit(query.limit)).all()
            return [_to_entry(r) for r in rows]

        return await self._run(fn)

    async def cleanup(self, cutoff: datetime, min_access_count: int) -> int:
        naive_cutoff = _naive_utc(cutoff)

        def fn(session: Session) -> int:
            result = session.execute(
                delete(ImageCacheRow).where(
                    ImageCacheRow.last_accessed_at < naive_cutoff,
                    ImageCacheRow.access_count <= min_access_count,
                )
            )
            return result.rowcount or 0

        return await self._run(fn)

    async def stats(self) -> CacheStats:
        def fn(session: Session) -> CacheStats:
            total = session.scalar(select(func.count()).select_from(ImageCacheRow)) or 0
            hits = session.scalar(select(func.coalesce(func.sum(ImageCacheRow.access_count), 0))) or 0
            n = func.count().label("n")
            top = session.execute(
                select(ImageCacheRow.theme, n)
                .group_by(ImageCacheRow.theme)
                .order_by(desc(n), ImageCacheRow.theme)
                .limit(5)
            ).all()
            return CacheStats(
                total_entries=int(total),
                total_hits=int(hits),
                top_themes=[(theme or "unknown", int(count)) for theme, count in top],
            )

        return await self._run(fn)

    def dispose(self) -> None:
        self.engine.dispose()
