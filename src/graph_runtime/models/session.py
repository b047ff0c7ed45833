"""
会话模型
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from .context import Context, utcnow


class SessionStatus(Enum):
    """会话状态"""
    PENDING = "pending"
    PAUSED = "paused"
    WAITING_FOR_INPUT = "waiting_for_input"
    COMPLETED = "completed"


@dataclass
class Session:
    """会话：图中位置与上下文的持久绑定"""
    graph_id: str
    current_task_id: str
    id: str = field(default_factory=lambda: str(uuid4()))
    previous_task_id: Optional[str] = None
    status: SessionStatus = SessionStatus.PENDING
    status_message: Optional[str] = None
    context: Context = field(default_factory=Context)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    def is_completed(self) -> bool:
        """是否为终止状态"""
        return self.status == SessionStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "graph_id": self.graph_id,
            "current_task_id": self.current_task_id,
            "previous_task_id": self.previous_task_id,
            "status": self.status.value,
            "status_message": self.status_message,
            "context": self.context.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            graph_id=data["graph_id"],
            current_task_id=data["current_task_id"],
            previous_task_id=data.get("previous_task_id"),
            status=SessionStatus(data.get("status", SessionStatus.PENDING.value)),
            status_message=data.get("status_message"),
            context=Context.from_dict(data.get("context") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            version=data.get("version", 0),
        )
