"""
图运行时异常定义
"""
from typing import Iterable, List, Optional


class GraphRuntimeError(Exception):
    """图运行时基础异常"""
    pass


class GraphParseError(GraphRuntimeError):
    """图定义解析异常"""
    pass


class GraphValidationError(GraphRuntimeError):
    """图构建验证异常，携带全部发现的问题"""
    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = list(errors)
        details = "; ".join(self.errors) if self.errors else "unknown error"
        super().__init__(f"Graph validation failed: {details}")


class TaskNotFound(GraphRuntimeError):
    """任务不存在"""
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task '{task_id}' is not registered in the graph")


class InvalidTransition(GraphRuntimeError):
    """非法转换"""
    def __init__(self, source: str, target: Optional[str], message: str = None):
        self.source = source
        self.target = target
        msg = f"Invalid transition from '{source}' to '{target}'"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class WorkflowExecutionError(GraphRuntimeError):
    """工作流执行异常"""
    pass


class TaskExecutionFailed(WorkflowExecutionError):
    """任务执行异常"""
    def __init__(self, task_id: str, message: str, cause: Exception = None):
        self.task_id = task_id
        self.cause = cause
        super().__init__(f"Task '{task_id}' execution failed: {message}")


class TaskTimeoutError(TaskExecutionFailed):
    """任务超时异常"""
    def __init__(self, task_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(task_id, f"timed out after {timeout}s")


class StepLimitExceeded(WorkflowExecutionError):
    """单步内链式执行次数超限"""
    def __init__(self, limit: int, task_id: str):
        self.limit = limit
        self.task_id = task_id
        super().__init__(
            f"Step exceeded {limit} chained task executions (last task '{task_id}')"
        )


class ContextError(GraphRuntimeError):
    """上下文取值异常"""
    def __init__(self, key: Optional[str], message: str):
        self.key = key
        if key is None:
            super().__init__(f"Context error: {message}")
        else:
            super().__init__(f"Context key '{key}': {message}")


class SessionNotFound(GraphRuntimeError):
    """会话不存在"""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found")


class SessionAlreadyExists(GraphRuntimeError):
    """会话已存在"""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' already exists")


class GraphNotFound(GraphRuntimeError):
    """图不存在"""
    def __init__(self, graph_id: str):
        self.graph_id = graph_id
        super().__init__(f"Graph '{graph_id}' not found")


class StorageError(GraphRuntimeError):
    """存储异常"""
    pass


class ConflictError(StorageError):
    """乐观锁版本冲突"""
    def __init__(self, session_id: str, expected_version: int, actual_version: int):
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Session '{session_id}' was modified concurrently "
            f"(expected version {expected_version}, stored version {actual_version})"
        )
