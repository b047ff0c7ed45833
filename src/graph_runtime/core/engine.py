"""
图执行引擎
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..models.context import Context
from ..models.execution import ExecutionResult, ExecutionStatus
from ..models.session import Session
from ..models.task import ActionType, NextAction, Task, TaskResult
from ..exceptions import (
    GraphRuntimeError, InvalidTransition, StepLimitExceeded,
    TaskExecutionFailed, TaskNotFound, TaskTimeoutError
)
from .graph import Graph


logger = logging.getLogger(__name__)


DEFAULT_MAX_CHAIN_STEPS = 100


@dataclass
class _StepState:
    """单步执行过程中的工作副本，只有成功时才提交到会话"""
    current_task_id: str
    previous_task_id: Optional[str]
    context: Context
    status_message: Optional[str] = None
    response: Optional[str] = None
    responses: List[str] = field(default_factory=list)

    def record(self, result: TaskResult):
        self.status_message = result.status_message
        if result.response:
            self.response = result.response
            self.responses.append(result.response)

    def advance(self, target: str):
        self.previous_task_id = self.current_task_id
        self.current_task_id = target


class ExecutionEngine:
    """
    图执行引擎

    ``step`` 执行会话的当前任务，根据任务返回的动作和图的转换规则决定
    下一个位置。引擎只修改内存中的会话对象，从不访问存储。
    """

    def __init__(
        self,
        graph: Graph,
        default_timeout: Optional[float] = None,
        max_chain_steps: int = DEFAULT_MAX_CHAIN_STEPS
    ):
        if max_chain_steps < 1:
            raise ValueError("max_chain_steps must be >= 1")
        self.graph = graph
        self.default_timeout = default_timeout
        self.max_chain_steps = max_chain_steps

    async def step(self, session: Session) -> ExecutionResult:
        """执行一步；出错时会话保持不变"""
        if session.is_completed():
            return ExecutionResult(
                session_id=session.id,
                status=ExecutionStatus.COMPLETED,
                status_message=session.status_message
            )

        state = _StepState(
            current_task_id=session.current_task_id,
            previous_task_id=session.previous_task_id,
            context=session.context.copy(),
            status_message=session.status_message
        )

        try:
            status, next_task_id = await self._run(state)
        except GraphRuntimeError as e:
            logger.warning(
                f"Step failed for session {session.id} at task '{state.current_task_id}': {e}"
            )
            return ExecutionResult(
                session_id=session.id,
                status=ExecutionStatus.ERROR,
                error=str(e)
            )

        self._commit(session, state, status)
        return ExecutionResult(
            session_id=session.id,
            status=status,
            response=state.response,
            responses=state.responses,
            next_task_id=next_task_id,
            status_message=state.status_message
        )

    async def _run(self, state: _StepState):
        """执行任务链，返回 (状态, 下一个任务ID)"""
        executed = 0

        while True:
            if executed >= self.max_chain_steps:
                raise StepLimitExceeded(self.max_chain_steps, state.current_task_id)
            executed += 1

            task = self.graph.get_task(state.current_task_id)
            if task is None:
                raise TaskNotFound(state.current_task_id)

            result = await self._execute_task(task, state.context)
            state.record(result)
            action = result.next_action

            if action.type == ActionType.END:
                return ExecutionStatus.COMPLETED, None

            if action.type == ActionType.WAIT_FOR_INPUT:
                return ExecutionStatus.WAITING_FOR_INPUT, None

            if action.type == ActionType.GO_BACK:
                if state.previous_task_id is None:
                    raise InvalidTransition(
                        state.current_task_id, None, "no previous task to go back to"
                    )
                self._ensure_registered(state.current_task_id, state.previous_task_id)
                # 只保留一级历史
                state.current_task_id = state.previous_task_id
                state.previous_task_id = None
                return ExecutionStatus.PAUSED, state.current_task_id

            if action.type == ActionType.GOTO:
                self._ensure_registered(state.current_task_id, action.target)
                state.advance(action.target)
                continue

            target = self.graph.resolve_next(state.current_task_id, state.context)
            if target is None:
                return ExecutionStatus.COMPLETED, None

            state.advance(target)
            if action.type == ActionType.CONTINUE:
                return ExecutionStatus.PAUSED, target
            # CONTINUE_AND_EXECUTE：继续执行下一个任务

    async def _execute_task(self, task: Task, context: Context) -> TaskResult:
        """执行单个任务（带超时）"""
        timeout = task.timeout if task.timeout is not None else self.default_timeout
        logger.debug(f"Executing task '{task.id}' (timeout={timeout})")

        if timeout is not None:
            try:
                result = await asyncio.wait_for(self._invoke(task, context), timeout=timeout)
            except asyncio.TimeoutError:
                raise TaskTimeoutError(task.id, timeout)
        else:
            result = await self._invoke(task, context)

        if not isinstance(result, TaskResult):
            raise TaskExecutionFailed(
                task.id, f"expected TaskResult, got {type(result).__name__}"
            )
        if not isinstance(result.next_action, NextAction):
            raise TaskExecutionFailed(
                task.id, f"expected NextAction, got {type(result.next_action).__name__}"
            )

        result.task_id = task.id
        logger.debug(f"Task '{task.id}' finished with action {result.next_action}")
        return result

    @staticmethod
    async def _invoke(task: Task, context: Context) -> TaskResult:
        """调用任务；任务自身抛出的异常（包括它自己的 TimeoutError）统一包装"""
        try:
            return await task.execute(context)
        except GraphRuntimeError:
            raise
        except Exception as e:
            raise TaskExecutionFailed(task.id, f"{type(e).__name__}: {e}", e) from e

    def _ensure_registered(self, source: str, target: str):
        if not self.graph.has_task(target):
            raise InvalidTransition(source, target, "target is not registered in the graph")

    @staticmethod
    def _commit(session: Session, state: _StepState, status: ExecutionStatus):
        session.current_task_id = state.current_task_id
        session.previous_task_id = state.previous_task_id
        session.status_message = state.status_message
        session.status = status.to_session_status()
        session.context = state.context
