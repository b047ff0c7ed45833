"""
存储仓库接口定义
"""
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..core.graph import Graph
from ..models.context import as_utc, utcnow
from ..models.session import Session, SessionStatus
from ..exceptions import ConflictError, SessionNotFound


class SessionRepository(ABC):
    """会话存储仓库接口"""

    @abstractmethod
    async def save(self, session: Session) -> str:
        """保存会话（不存在则插入，存在则覆盖），更新 updated_at 和版本号"""
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        """获取会话"""
        pass

    @abstractmethod
    async def delete(self, session_id: str):
        """删除会话，不存在时抛出 SessionNotFound"""
        pass

    @abstractmethod
    async def list_by_graph(
        self,
        graph_id: str,
        status: SessionStatus = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[Session]:
        """根据图ID列出会话"""
        pass

    @abstractmethod
    async def cleanup_stale_sessions(
        self,
        older_than: timedelta,
        completed_only: bool = False
    ) -> int:
        """清理长时间未更新的会话，返回删除数量"""
        pass

    async def close(self):
        """释放资源"""
        pass


class GraphRepository(ABC):
    """图存储仓库接口"""

    @abstractmethod
    async def save(self, graph: Graph) -> str:
        pass

    @abstractmethod
    async def get(self, graph_id: str) -> Optional[Graph]:
        pass

    @abstractmethod
    async def delete(self, graph_id: str) -> bool:
        pass

    @abstractmethod
    async def list_ids(self) -> List[str]:
        pass


# 内存实现
class InMemorySessionRepository(SessionRepository):
    """
    内存会话仓库

    保存序列化后的快照，读取时重建会话对象，调用方之间不会共享可变状态。
    进程重启后数据丢失，且不会自动过期。
    """

    def __init__(self, optimistic_locking: bool = False):
        self.optimistic_locking = optimistic_locking
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    async def save(self, session: Session) -> str:
        now = utcnow()
        snapshot = session.to_dict()

        with self._lock:
            stored = self._sessions.get(session.id)
            current_version = stored["version"] if stored else 0
            if self.optimistic_locking and session.version != current_version:
                raise ConflictError(session.id, session.version, current_version)

            snapshot["version"] = current_version + 1
            snapshot["updated_at"] = now.isoformat()
            self._sessions[session.id] = snapshot

        session.version = current_version + 1
        session.updated_at = now
        return session.id

    async def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            snapshot = self._sessions.get(session_id)
        if snapshot is None:
            return None
        return Session.from_dict(snapshot)

    async def delete(self, session_id: str):
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFound(session_id)
            del self._sessions[session_id]

    async def list_by_graph(
        self,
        graph_id: str,
        status: SessionStatus = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[Session]:
        with self._lock:
            snapshots = [
                snapshot for snapshot in self._sessions.values()
                if snapshot["graph_id"] == graph_id
                and (status is None or snapshot["status"] == status.value)
            ]
        snapshots.sort(key=lambda s: s["created_at"], reverse=True)
        return [Session.from_dict(s) for s in snapshots[offset:offset + limit]]

    async def cleanup_stale_sessions(
        self,
        older_than: timedelta,
        completed_only: bool = False
    ) -> int:
        cutoff = utcnow() - older_than
        with self._lock:
            to_delete = []
            for session_id, snapshot in self._sessions.items():
                if completed_only and snapshot["status"] != SessionStatus.COMPLETED.value:
                    continue
                updated_at = as_utc(datetime.fromisoformat(snapshot["updated_at"]))
                if updated_at < cutoff:
                    to_delete.append(session_id)

            for session_id in to_delete:
                del self._sessions[session_id]

        return len(to_delete)


class InMemoryGraphRepository(GraphRepository):
    """内存图仓库"""

    def __init__(self):
        self.graphs: Dict[str, Graph] = {}

    async def save(self, graph: Graph) -> str:
        self.graphs[graph.id] = graph
        return graph.id

    async def get(self, graph_id: str) -> Optional[Graph]:
        return self.graphs.get(graph_id)

    async def delete(self, graph_id: str) -> bool:
        if graph_id in self.graphs:
            del self.graphs[graph_id]
            return True
        return False

    async def list_ids(self) -> List[str]:
        return list(self.graphs.keys())