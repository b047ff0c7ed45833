"""
Graph Workflow Runtime - 可恢复的有状态任务图运行时
"""

__version__ = "0.1.0"

from .core.graph import Graph, GraphBuilder
from .core.engine import ExecutionEngine
from .core.parser import GraphParser
from .core.runner import FlowRunner
from .models.context import Context, ChatHistory, Message, MessageRole
from .models.task import Task, FunctionTask, TaskResult, NextAction, ActionType
from .models.session import Session, SessionStatus
from .models.execution import ExecutionResult, ExecutionStatus
from .storage.repository import InMemorySessionRepository, InMemoryGraphRepository
from .storage.sqlalchemy_repository import SQLAlchemySessionRepository

__all__ = [
    "Graph",
    "GraphBuilder",
    "ExecutionEngine",
    "GraphParser",
    "FlowRunner",
    "Context",
    "ChatHistory",
    "Message",
    "MessageRole",
    "Task",
    "FunctionTask",
    "TaskResult",
    "NextAction",
    "ActionType",
    "Session",
    "SessionStatus",
    "ExecutionResult",
    "ExecutionStatus",
    "InMemorySessionRepository",
    "InMemoryGraphRepository",
    "SQLAlchemySessionRepository"
]
