"""Context, task, session and execution models"""

from .context import Context, ChatHistory, Message, MessageRole, DEFAULT_MAX_MESSAGES
from .task import Task, FunctionTask, TaskResult, NextAction, ActionType
from .session import Session, SessionStatus
from .execution import ExecutionStatus, ExecutionResult
from .snapshot import SessionSnapshot, ContextModel, ChatHistoryModel, MessageModel

__all__ = [
    "Context",
    "ChatHistory",
    "Message",
    "MessageRole",
    "DEFAULT_MAX_MESSAGES",
    "Task",
    "FunctionTask",
    "TaskResult",
    "NextAction",
    "ActionType",
    "Session",
    "SessionStatus",
    "ExecutionStatus",
    "ExecutionResult",
    "SessionSnapshot",
    "ContextModel",
    "ChatHistoryModel",
    "MessageModel"
]
