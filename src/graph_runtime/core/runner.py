"""
会话运行器：加载 → 合并输入 → 执行一步 → 保存
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional, Union

from ..models.context import Context, DEFAULT_MAX_MESSAGES
from ..models.execution import ExecutionResult
from ..models.session import Session, SessionStatus
from ..models.snapshot import SessionSnapshot
from ..exceptions import GraphNotFound, SessionAlreadyExists, SessionNotFound, TaskNotFound
from ..storage.repository import GraphRepository, SessionRepository
from .engine import DEFAULT_MAX_CHAIN_STEPS, ExecutionEngine
from .graph import Graph


logger = logging.getLogger(__name__)


_UNSET = object()


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class SessionLockManager:
    """
    按会话ID分配的异步锁

    同一会话的调用串行执行，不同会话互不阻塞。
    锁按引用计数管理，没有等待者时立即释放。
    """

    def __init__(self):
        self._locks: Dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def acquire(self, session_id: str):
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _LockEntry()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[session_id]

    def is_locked(self, session_id: str) -> bool:
        entry = self._locks.get(session_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class FlowRunner:
    """
    会话运行器

    每次 ``run`` 在会话锁内完成加载、合并输入、执行和保存。
    执行出错时不保存，存储中的会话保持调用前的状态。

    会话锁只在进程内生效。同一进程中多个运行器共用一个存储时，
    需要传入同一个 ``locks``；跨进程并发请开启存储的乐观锁。
    """

    def __init__(
        self,
        graphs: Union[Graph, GraphRepository],
        storage: SessionRepository,
        default_timeout: Optional[float] = None,
        max_chain_steps: int = DEFAULT_MAX_CHAIN_STEPS,
        max_chat_messages: Optional[int] = DEFAULT_MAX_MESSAGES,
        locks: Optional[SessionLockManager] = None
    ):
        if isinstance(graphs, Graph):
            self._graph: Optional[Graph] = graphs
            self._graph_repository: Optional[GraphRepository] = None
        elif isinstance(graphs, GraphRepository):
            self._graph = None
            self._graph_repository = graphs
        else:
            raise TypeError(f"graphs must be a Graph or GraphRepository, got {type(graphs).__name__}")

        self.storage = storage
        self.default_timeout = default_timeout
        self.max_chain_steps = max_chain_steps
        self.max_chat_messages = max_chat_messages
        self.locks = locks if locks is not None else SessionLockManager()
        self._engines: Dict[str, ExecutionEngine] = {}

    async def create_session(
        self,
        graph_id: Optional[str] = None,
        start_task_id: Optional[str] = None,
        initial_data: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        max_chat_messages: Any = _UNSET
    ) -> str:
        """创建会话并返回会话ID"""
        graph = await self._get_graph(graph_id)

        start = start_task_id or graph.start_task_id
        if not graph.has_task(start):
            raise TaskNotFound(start)

        if max_chat_messages is _UNSET:
            max_chat_messages = self.max_chat_messages
        context = Context(max_chat_messages)
        if initial_data:
            context.update(initial_data)

        session = Session(graph_id=graph.id, current_task_id=start, context=context)
        if session_id is not None:
            session.id = session_id

        async with self.locks.acquire(session.id):
            if session_id is not None and await self.storage.get(session_id) is not None:
                raise SessionAlreadyExists(session_id)
            await self.storage.save(session)

        logger.info(f"Created session {session.id} for graph '{graph.id}' at task '{start}'")
        return session.id

    async def run(
        self,
        session_id: str,
        data: Optional[Mapping[str, Any]] = None,
        message: Optional[str] = None
    ) -> ExecutionResult:
        """
        执行会话的一步

        Args:
            session_id: 会话ID
            data: 合并到上下文的输入数据
            message: 追加为用户消息的文本

        Returns:
            ExecutionResult: 执行结果；状态为 ERROR 时会话未被修改
        """
        async with self.locks.acquire(session_id):
            session = await self._load(session_id)
            engine = await self._engine_for(session.graph_id)

            if data:
                session.context.update(data)
            if message is not None:
                session.context.add_user_message(message)

            result = await engine.step(session)
            if result.is_error:
                return result

            await self.storage.save(session)
            logger.debug(
                f"Session {session_id} -> {result.status.value} at '{session.current_task_id}'"
            )
            return result

    async def get_session(self, session_id: str) -> Session:
        """获取会话，不存在时抛出 SessionNotFound"""
        return await self._load(session_id)

    async def inspect(self, session_id: str) -> SessionSnapshot:
        """会话检查快照"""
        return SessionSnapshot.from_session(await self._load(session_id))

    async def delete_session(self, session_id: str):
        """删除会话"""
        async with self.locks.acquire(session_id):
            await self.storage.delete(session_id)
        logger.info(f"Deleted session {session_id}")

    async def list_sessions(
        self,
        graph_id: str,
        status: SessionStatus = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[Session]:
        """列出图的会话"""
        return await self.storage.list_by_graph(graph_id, status, offset, limit)

    async def close(self):
        await self.storage.close()

    async def _load(self, session_id: str) -> Session:
        session = await self.storage.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def _get_graph(self, graph_id: Optional[str]) -> Graph:
        if self._graph is not None:
            if graph_id is not None and graph_id != self._graph.id:
                raise GraphNotFound(graph_id)
            return self._graph

        if graph_id is None:
            raise ValueError("graph_id is required when graphs come from a repository")
        graph = await self._graph_repository.get(graph_id)
        if graph is None:
            raise GraphNotFound(graph_id)
        return graph

    async def _engine_for(self, graph_id: str) -> ExecutionEngine:
        graph = await self._get_graph(graph_id)
        engine = self._engines.get(graph_id)
        # 仓库中的图被替换后重新创建引擎
        if engine is None or engine.graph is not graph:
            engine = ExecutionEngine(
                graph,
                default_timeout=self.default_timeout,
                max_chain_steps=self.max_chain_steps
            )
            self._engines[graph_id] = engine
        return engine
