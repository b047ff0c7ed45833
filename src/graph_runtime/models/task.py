"""
任务模型
"""
import asyncio
import functools
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from .context import Context


class ActionType(Enum):
    """任务完成后的动作类型"""
    CONTINUE = "continue"                          # 移动到下一个任务，交还控制权
    CONTINUE_AND_EXECUTE = "continue_and_execute"  # 移动并立即执行下一个任务
    WAIT_FOR_INPUT = "wait_for_input"              # 停留在当前任务等待输入
    GOTO = "goto"                                  # 跳转到指定任务并执行
    GO_BACK = "go_back"                            # 回到上一个任务
    END = "end"                                    # 结束


@dataclass(frozen=True)
class NextAction:
    """转换指令"""
    type: ActionType
    target: Optional[str] = None

    def __post_init__(self):
        if self.type == ActionType.GOTO and not self.target:
            raise ValueError("GOTO actions must specify a target task id")
        if self.type != ActionType.GOTO and self.target is not None:
            raise ValueError(f"{self.type.value} actions do not take a target")

    @classmethod
    def goto(cls, target: str) -> "NextAction":
        return cls(ActionType.GOTO, target)

    def __str__(self) -> str:
        if self.type == ActionType.GOTO:
            return f"goto({self.target})"
        return self.type.value


NextAction.CONTINUE = NextAction(ActionType.CONTINUE)
NextAction.CONTINUE_AND_EXECUTE = NextAction(ActionType.CONTINUE_AND_EXECUTE)
NextAction.WAIT_FOR_INPUT = NextAction(ActionType.WAIT_FOR_INPUT)
NextAction.GO_BACK = NextAction(ActionType.GO_BACK)
NextAction.END = NextAction(ActionType.END)


@dataclass
class TaskResult:
    """任务执行结果"""
    response: Optional[str] = None
    next_action: NextAction = NextAction.CONTINUE
    status_message: Optional[str] = None
    task_id: str = ""  # 由引擎填写

    @classmethod
    def move_to_next(cls, response: str = None, status_message: str = None) -> "TaskResult":
        return cls(response, NextAction.CONTINUE, status_message)

    @classmethod
    def move_to_next_direct(cls, response: str = None, status_message: str = None) -> "TaskResult":
        return cls(response, NextAction.CONTINUE_AND_EXECUTE, status_message)

    @classmethod
    def wait_for_input(cls, response: str = None, status_message: str = None) -> "TaskResult":
        return cls(response, NextAction.WAIT_FOR_INPUT, status_message)

    @classmethod
    def goto(cls, target: str, response: str = None, status_message: str = None) -> "TaskResult":
        return cls(response, NextAction.goto(target), status_message)

    @classmethod
    def go_back(cls, response: str = None, status_message: str = None) -> "TaskResult":
        return cls(response, NextAction.GO_BACK, status_message)

    @classmethod
    def end(cls, response: str = None, status_message: str = None) -> "TaskResult":
        return cls(response, NextAction.END, status_message)


class Task(ABC):
    """
    任务基类

    子类需提供稳定的 ``id`` 并实现 ``execute``。任务只能通过传入的
    Context 产生副作用；等待输入时同一任务会被再次执行，因此实现应当幂等。
    """

    timeout: Optional[float] = None

    @property
    @abstractmethod
    def id(self) -> str:
        """任务唯一标识"""
        raise NotImplementedError

    @abstractmethod
    async def execute(self, context: Context) -> TaskResult:
        """执行任务"""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


TaskFunction = Callable[[Context], Union[TaskResult, Awaitable[TaskResult]]]


class FunctionTask(Task):
    """把普通函数或协程函数包装为任务"""

    def __init__(self, task_id: str, func: TaskFunction, timeout: Optional[float] = None):
        if not task_id:
            raise ValueError("task_id must be a non-empty string")
        self._id = task_id
        self.func = func
        self.timeout = timeout

    @property
    def id(self) -> str:
        return self._id

    async def execute(self, context: Context) -> TaskResult:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(context)
        # 同步函数放到线程中执行，避免阻塞其他会话
        result: Any = await asyncio.to_thread(functools.partial(self.func, context))
        if inspect.isawaitable(result):
            result = await result
        return result
