"""Core graph runtime components"""

from .graph import Graph, GraphBuilder, UnconditionalTransition, ConditionalTransition
from .engine import ExecutionEngine
from .parser import GraphParser, ContextKeyCondition
from .runner import FlowRunner, SessionLockManager

__all__ = [
    "Graph",
    "GraphBuilder",
    "UnconditionalTransition",
    "ConditionalTransition",
    "ExecutionEngine",
    "GraphParser",
    "ContextKeyCondition",
    "FlowRunner",
    "SessionLockManager"
]
