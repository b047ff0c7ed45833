"""
会话存储测试
"""
import asyncio
from datetime import timedelta

import pytest

from graph_runtime.models.context import Context
from graph_runtime.models.session import Session, SessionStatus
from graph_runtime.storage.sqlalchemy_models import SessionRecord
from graph_runtime.storage.sqlalchemy_repository import DatabaseManager
from graph_runtime.exceptions import ConflictError, SessionNotFound, StorageError


def make_session(graph_id="g", task_id="start", **kwargs) -> Session:
    context = Context(max_chat_messages=5)
    context.set("cart", ["tea"])
    context.add_user_message("hello")
    return Session(graph_id=graph_id, current_task_id=task_id, context=context, **kwargs)


class TestSessionRepository:
    """会话仓库测试类（内存与 SQLite）"""

    @pytest.mark.asyncio
    async def test_save_and_get(self, repository):
        """测试保存和获取会话"""
        session = make_session(previous_task_id="intro", status=SessionStatus.PAUSED,
                               status_message="moved")

        await repository.save(session)
        loaded = await repository.get(session.id)

        assert loaded is not session
        assert loaded.graph_id == "g"
        assert loaded.current_task_id == "start"
        assert loaded.previous_task_id == "intro"
        assert loaded.status == SessionStatus.PAUSED
        assert loaded.status_message == "moved"
        assert loaded.context.get("cart") == ["tea"]
        assert loaded.context.max_chat_messages == 5
        assert [m.content for m in loaded.context.get_messages()] == ["hello"]
        assert loaded.created_at == session.created_at
        assert loaded.updated_at.utcoffset() == timedelta(0)

    @pytest.mark.asyncio
    async def test_get_missing(self, repository):
        """测试获取不存在的会话"""
        assert await repository.get("missing") is None

    @pytest.mark.asyncio
    async def test_save_bumps_version(self, repository):
        """测试保存时递增版本号"""
        session = make_session()

        await repository.save(session)
        first_update = session.updated_at
        assert session.version == 1

        session.current_task_id = "next"
        await repository.save(session)

        loaded = await repository.get(session.id)
        assert loaded.version == session.version == 2
        assert loaded.current_task_id == "next"
        assert session.updated_at >= first_update

    @pytest.mark.asyncio
    async def test_stored_state_is_not_aliased(self, repository):
        """测试存储的状态不与调用方共享"""
        session = make_session()
        await repository.save(session)

        session.context.set("cart", ["coffee"])

        loaded = await repository.get(session.id)
        assert loaded.context.get("cart") == ["tea"]

    @pytest.mark.asyncio
    async def test_delete(self, repository):
        """测试删除会话"""
        session = make_session()
        await repository.save(session)

        await repository.delete(session.id)

        assert await repository.get(session.id) is None
        with pytest.raises(SessionNotFound):
            await repository.delete(session.id)

    @pytest.mark.asyncio
    async def test_list_by_graph(self, repository):
        """测试按图列出会话"""
        await repository.save(make_session("orders"))
        await repository.save(make_session("orders", status=SessionStatus.COMPLETED))
        await repository.save(make_session("support"))

        orders = await repository.list_by_graph("orders")
        completed = await repository.list_by_graph("orders", status=SessionStatus.COMPLETED)
        limited = await repository.list_by_graph("orders", limit=1)

        assert len(orders) == 2
        assert {s.graph_id for s in orders} == {"orders"}
        assert [s.status for s in completed] == [SessionStatus.COMPLETED]
        assert len(limited) == 1

    @pytest.mark.asyncio
    async def test_cleanup_stale_sessions(self, repository):
        """测试清理过期会话"""
        active = make_session()
        finished = make_session(status=SessionStatus.COMPLETED)
        await repository.save(active)
        await repository.save(finished)

        assert await repository.cleanup_stale_sessions(timedelta(hours=1)) == 0

        await asyncio.sleep(0.05)
        removed = await repository.cleanup_stale_sessions(
            timedelta(milliseconds=10), completed_only=True
        )

        assert removed == 1
        assert await repository.get(finished.id) is None
        assert await repository.get(active.id) is not None

        assert await repository.cleanup_stale_sessions(timedelta(milliseconds=10)) == 1
        assert await repository.get(active.id) is None

    @pytest.mark.asyncio
    async def test_last_write_wins_by_default(self, repository):
        """测试默认后写覆盖"""
        session = make_session()
        await repository.save(session)
        first = await repository.get(session.id)
        second = await repository.get(session.id)

        first.context.set("writer", "first")
        second.context.set("writer", "second")
        await repository.save(first)
        await repository.save(second)

        loaded = await repository.get(session.id)
        assert loaded.context.get("writer") == "second"

    @pytest.mark.asyncio
    async def test_optimistic_locking_conflict(self, repository):
        """测试乐观锁版本冲突"""
        repository.optimistic_locking = True
        session = make_session()
        await repository.save(session)
        first = await repository.get(session.id)
        second = await repository.get(session.id)

        await repository.save(first)

        with pytest.raises(ConflictError) as exc_info:
            await repository.save(second)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        loaded = await repository.get(session.id)
        assert loaded.version == 2


class TestSQLAlchemyStorage:
    """SQLAlchemy 存储测试类"""

    @pytest.mark.asyncio
    async def test_schema_created(self, sql_storage):
        """测试自动建表"""
        session = make_session()
        await sql_storage.save(session)

        async with sql_storage.db.get_session() as db:
            record = await db.get(SessionRecord, session.id)

        assert record.graph_id == "g"
        assert record.version == 1
        assert record.context["data"] == {"cart": ["tea"]}
        assert record.context["chat_history"]["max_messages"] == 5

    @pytest.mark.asyncio
    async def test_corrupt_context_raises_storage_error(self, sql_storage):
        """测试损坏的上下文抛出存储异常"""
        session = make_session()
        await sql_storage.save(session)

        async with sql_storage.db.get_session() as db:
            record = await db.get(SessionRecord, session.id)
            record.context = {"data": "not a mapping"}

        with pytest.raises(StorageError):
            await sql_storage.get(session.id)

    @pytest.mark.asyncio
    async def test_uninitialized_manager(self, sqlite_url):
        """测试未初始化的数据库管理器"""
        manager = DatabaseManager(sqlite_url)

        with pytest.raises(StorageError):
            async with manager.get_session():
                pass
