"""
SQLAlchemy 仓库实现
"""
import logging
from typing import Optional, List, Any, Dict
from datetime import timedelta
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import select, delete, and_
from sqlalchemy.exc import SQLAlchemyError

from ..models.context import Context, as_utc, utcnow
from ..models.session import Session, SessionStatus
from ..exceptions import ConflictError, ContextError, SessionNotFound, StorageError
from .repository import SessionRepository
from .sqlalchemy_models import SessionRecord, Base


logger = logging.getLogger(__name__)


class DatabaseManager:
    """数据库管理器"""

    def __init__(self, database_url: str, echo: bool = False, **engine_options: Any):
        self.database_url = database_url
        self.echo = echo
        self.engine_options = engine_options
        self.engine: Optional[AsyncEngine] = None
        self.async_session_maker = None

    async def initialize(self):
        """初始化数据库连接并自动建表"""
        options: Dict[str, Any] = {"echo": self.echo, "pool_pre_ping": True}
        if not self.database_url.startswith("sqlite"):
            # SQLite 使用默认连接池
            options.update(pool_size=20, max_overflow=10)
        options.update(self.engine_options)

        try:
            self.engine = create_async_engine(self.database_url, **options)
            self.async_session_maker = sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to initialize database: {e}") from e

        logger.info(f"Session database initialized ({self.engine.url.get_backend_name()})")

    async def close(self):
        """关闭数据库连接"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None

    @asynccontextmanager
    async def get_session(self):
        """获取数据库会话，退出时提交，异常时回滚"""
        if self.async_session_maker is None:
            raise StorageError("Database not initialized, call initialize() first")

        async with self.async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(f"Database operation failed: {e}") from e
            except Exception:
                await session.rollback()
                raise


class SQLAlchemySessionRepository(SessionRepository):
    """
    SQLAlchemy 会话仓库实现

    每个会话一行，上下文存放在 JSON 列中。默认后写覆盖；
    开启 optimistic_locking 后，版本号不一致的保存会抛出 ConflictError。
    """

    def __init__(self, db_manager: DatabaseManager, optimistic_locking: bool = False):
        self.db = db_manager
        self.optimistic_locking = optimistic_locking

    @classmethod
    async def connect(
        cls,
        database_url: str,
        optimistic_locking: bool = False,
        **engine_options: Any
    ) -> "SQLAlchemySessionRepository":
        """连接数据库并返回仓库"""
        db_manager = DatabaseManager(database_url, **engine_options)
        await db_manager.initialize()
        return cls(db_manager, optimistic_locking=optimistic_locking)

    async def save(self, session: Session) -> str:
        """保存会话（upsert）"""
        now = utcnow()
        payload = session.context.to_dict()

        async with self.db.get_session() as db:
            result = await db.execute(
                select(SessionRecord)
                .where(SessionRecord.id == session.id)
                .with_for_update()
            )
            record = result.scalar_one_or_none()

            current_version = record.version if record else 0
            if self.optimistic_locking and session.version != current_version:
                raise ConflictError(session.id, session.version, current_version)

            if record is None:
                record = SessionRecord(id=session.id, created_at=session.created_at)
                db.add(record)

            record.graph_id = session.graph_id
            record.current_task_id = session.current_task_id
            record.previous_task_id = session.previous_task_id
            record.status = session.status.value
            record.status_message = session.status_message
            record.context = payload
            record.version = current_version + 1
            record.updated_at = now

            await db.flush()

        session.version = current_version + 1
        session.updated_at = now
        logger.debug(f"Saved session {session.id} (version {session.version})")
        return session.id

    async def get(self, session_id: str) -> Optional[Session]:
        """获取会话"""
        async with self.db.get_session() as db:
            result = await db.execute(
                select(SessionRecord).where(SessionRecord.id == session_id)
            )
            record = result.scalar_one_or_none()

            if not record:
                return None

            return self._record_to_session(record)

    async def delete(self, session_id: str):
        """删除会话"""
        async with self.db.get_session() as db:
            result = await db.execute(
                delete(SessionRecord).where(SessionRecord.id == session_id)
            )
            if result.rowcount == 0:
                raise SessionNotFound(session_id)

    async def list_by_graph(
        self,
        graph_id: str,
        status: SessionStatus = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[Session]:
        """根据图ID列出会话"""
        async with self.db.get_session() as db:
            query = select(SessionRecord).where(SessionRecord.graph_id == graph_id)

            if status:
                query = query.where(SessionRecord.status == status.value)

            query = query.order_by(SessionRecord.created_at.desc())
            query = query.offset(offset).limit(limit)

            result = await db.execute(query)
            records = result.scalars().all()

            return [self._record_to_session(r) for r in records]

    async def cleanup_stale_sessions(
        self,
        older_than: timedelta,
        completed_only: bool = False
    ) -> int:
        """清理长时间未更新的会话"""
        cutoff = utcnow() - older_than
        async with self.db.get_session() as db:
            condition = SessionRecord.updated_at < cutoff
            if completed_only:
                condition = and_(condition, SessionRecord.status == SessionStatus.COMPLETED.value)

            result = await db.execute(delete(SessionRecord).where(condition))
            deleted = result.rowcount

        if deleted:
            logger.info(f"Removed {deleted} stale sessions older than {older_than}")
        return deleted

    async def close(self):
        await self.db.close()

    def _record_to_session(self, record: SessionRecord) -> Session:
        """数据库对象转会话"""
        try:
            context = Context.from_dict(record.context or {})
        except ContextError as e:
            raise StorageError(f"Stored context for session '{record.id}' is corrupt: {e}") from e

        return Session(
            id=record.id,
            graph_id=record.graph_id,
            current_task_id=record.current_task_id,
            previous_task_id=record.previous_task_id,
            status=SessionStatus(record.status),
            status_message=record.status_message,
            context=context,
            created_at=as_utc(record.created_at),
            updated_at=as_utc(record.updated_at),
            version=record.version
        )
