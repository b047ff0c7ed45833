"""
执行结果模型
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .session import SessionStatus


class ExecutionStatus(Enum):
    """单步执行状态"""
    PAUSED = "paused"                        # 已移动到下一个任务，但未执行
    WAITING_FOR_INPUT = "waiting_for_input"  # 需要更多输入后再次调用
    COMPLETED = "completed"                  # 终止
    ERROR = "error"                          # 失败，可用相同会话和输入重试

    def to_session_status(self) -> SessionStatus:
        if self == ExecutionStatus.ERROR:
            raise ValueError("Error outcomes are never persisted")
        return SessionStatus(self.value)


@dataclass
class ExecutionResult:
    """单步执行结果"""
    session_id: str
    status: ExecutionStatus
    response: Optional[str] = None
    responses: List[str] = field(default_factory=list)
    next_task_id: Optional[str] = None
    status_message: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status == ExecutionStatus.ERROR

    def to_dict(self):
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "response": self.response,
            "responses": list(self.responses),
            "next_task_id": self.next_task_id,
            "status_message": self.status_message,
            "error": self.error,
        }
