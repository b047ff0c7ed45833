"""
Pytest 配置和公共 fixtures
"""
import pytest
import pytest_asyncio
from typing import AsyncGenerator

from graph_runtime.core.graph import GraphBuilder
from graph_runtime.models.task import FunctionTask, TaskResult
from graph_runtime.storage.repository import InMemorySessionRepository
from graph_runtime.storage.sqlalchemy_repository import SQLAlchemySessionRepository


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    """每个测试独立的 SQLite 数据库文件"""
    return f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}"


@pytest.fixture
def memory_storage() -> InMemorySessionRepository:
    """内存会话存储"""
    return InMemorySessionRepository()


@pytest_asyncio.fixture
async def sql_storage(sqlite_url) -> AsyncGenerator[SQLAlchemySessionRepository, None]:
    """SQLite 会话存储"""
    repository = await SQLAlchemySessionRepository.connect(sqlite_url)
    yield repository
    await repository.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def repository(request, sqlite_url):
    """分别在两种存储上运行的会话仓库"""
    if request.param == "memory":
        yield InMemorySessionRepository()
        return

    repository = await SQLAlchemySessionRepository.connect(sqlite_url)
    yield repository
    await repository.close()


@pytest.fixture
def greeting_graph():
    """
    示例对话图：询问名字 → 问候

    ask_name 在上下文没有 name 时等待输入，有了之后直接执行 greet。
    """
    async def ask_name(context):
        if not context.contains("name"):
            return TaskResult.wait_for_input("What is your name?", "waiting for name")
        return TaskResult.move_to_next_direct(status_message="name received")

    async def greet(context):
        return TaskResult.end(f"Hello, {context.get('name')}!", "done")

    return (
        GraphBuilder("greeting")
        .add_task(FunctionTask("ask_name", ask_name))
        .add_task(FunctionTask("greet", greet))
        .add_edge("ask_name", "greet")
        .build()
    )
