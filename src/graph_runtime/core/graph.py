"""
任务图与构建器
"""
import logging
from collections import deque
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from ..models.context import Context
from ..models.task import Task
from ..exceptions import GraphValidationError, InvalidTransition


logger = logging.getLogger(__name__)


Predicate = Callable[[Context], bool]


@dataclass(frozen=True)
class UnconditionalTransition:
    """无条件转换"""
    source: str
    target: str

    def resolve(self, context: Context) -> str:
        return self.target

    def targets(self) -> Tuple[str, ...]:
        return (self.target,)


@dataclass(frozen=True)
class ConditionalTransition:
    """条件转换：谓词为真走 yes 分支，否则走 no 分支"""
    source: str
    predicate: Predicate
    yes_target: str
    no_target: str

    def resolve(self, context: Context) -> str:
        try:
            matched = bool(self.predicate(context))
        except Exception as e:
            raise InvalidTransition(self.source, None, f"predicate raised {type(e).__name__}: {e}") from e
        return self.yes_target if matched else self.no_target

    def targets(self) -> Tuple[str, ...]:
        return (self.yes_target, self.no_target)


Transition = Union[UnconditionalTransition, ConditionalTransition]


class Graph:
    """
    不可变的任务图

    由 GraphBuilder 构建，构建后可在并发执行的会话之间共享。
    """

    def __init__(
        self,
        graph_id: str,
        tasks: Mapping[str, Task],
        transitions: Mapping[str, Transition],
        start_task_id: str,
        orphaned_task_ids: FrozenSet[str] = frozenset()
    ):
        self._id = graph_id
        self._tasks = MappingProxyType(dict(tasks))
        self._transitions = MappingProxyType(dict(transitions))
        self._start_task_id = start_task_id
        self._orphaned = frozenset(orphaned_task_ids)

    @property
    def id(self) -> str:
        return self._id

    @property
    def start_task_id(self) -> str:
        return self._start_task_id

    @property
    def orphaned_task_ids(self) -> FrozenSet[str]:
        """从起始任务不可达的任务"""
        return self._orphaned

    @property
    def task_ids(self) -> List[str]:
        return list(self._tasks.keys())

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def has_task(self, task_id: str) -> bool:
        return task_id in self._tasks

    def transition_for(self, task_id: str) -> Optional[Transition]:
        """获取任务的出边规则，终止任务返回 None"""
        return self._transitions.get(task_id)

    def resolve_next(self, task_id: str, context: Context) -> Optional[str]:
        """根据出边规则和上下文计算下一个任务ID"""
        transition = self._transitions.get(task_id)
        if transition is None:
            return None
        target = transition.resolve(context)
        if target not in self._tasks:
            raise InvalidTransition(task_id, target, "target is not registered in the graph")
        return target

    def __repr__(self) -> str:
        return f"Graph(id={self._id!r}, tasks={len(self._tasks)}, start={self._start_task_id!r})"


class GraphBuilder:
    """带验证的图构建器，build 时一次性报告全部问题"""

    def __init__(self, graph_id: str):
        self.graph_id = graph_id
        self._tasks: Dict[str, Task] = {}
        self._transitions: Dict[str, Transition] = {}
        self._start_task_id: Optional[str] = None
        self._errors: List[str] = []

    def add_task(self, task: Task) -> "GraphBuilder":
        """注册任务，第一个注册的任务默认作为起始任务"""
        task_id = task.id
        if task_id in self._tasks:
            self._errors.append(f"Duplicate task id '{task_id}'")
            return self
        self._tasks[task_id] = task
        return self

    def add_edge(self, source: str, target: str) -> "GraphBuilder":
        """添加无条件转换"""
        return self._add_transition(UnconditionalTransition(source, target))

    def add_conditional_edge(
        self,
        source: str,
        predicate: Predicate,
        yes_target: str,
        no_target: str
    ) -> "GraphBuilder":
        """添加条件转换"""
        if not callable(predicate):
            self._errors.append(f"Predicate for conditional edge from '{source}' is not callable")
            return self
        return self._add_transition(
            ConditionalTransition(source, predicate, yes_target, no_target)
        )

    def set_start_task(self, task_id: str) -> "GraphBuilder":
        self._start_task_id = task_id
        return self

    def build(self) -> Graph:
        """验证并构建图"""
        errors = list(self._errors)

        if not self._tasks:
            errors.append("Graph has no tasks")

        for source, transition in self._transitions.items():
            if source not in self._tasks:
                errors.append(f"Transition source '{source}' is not a registered task")
            for target in transition.targets():
                if target not in self._tasks:
                    errors.append(
                        f"Transition target '{target}' (from '{source}') is not a registered task"
                    )

        start_task_id = self._start_task_id
        if start_task_id is None and self._tasks:
            start_task_id = next(iter(self._tasks))
        if start_task_id is not None and start_task_id not in self._tasks:
            errors.append(f"Start task '{start_task_id}' is not a registered task")

        if errors:
            raise GraphValidationError(errors)

        orphaned = self._find_orphaned(start_task_id)
        if orphaned:
            logger.warning(
                f"Graph '{self.graph_id}' has tasks unreachable from '{start_task_id}': "
                f"{sorted(orphaned)}"
            )

        graph = Graph(
            graph_id=self.graph_id,
            tasks=self._tasks,
            transitions=self._transitions,
            start_task_id=start_task_id,
            orphaned_task_ids=orphaned
        )
        logger.debug(f"Built graph {graph!r}")
        return graph

    def _add_transition(self, transition: Transition) -> "GraphBuilder":
        if transition.source in self._transitions:
            self._errors.append(f"Duplicate transition rule for task '{transition.source}'")
            return self
        self._transitions[transition.source] = transition
        return self

    def _find_orphaned(self, start_task_id: str) -> FrozenSet[str]:
        """广度优先遍历找出不可达任务（GOTO 跳转无法静态分析，不计入）"""
        visited = {start_task_id}
        queue = deque([start_task_id])

        while queue:
            task_id = queue.popleft()
            transition = self._transitions.get(task_id)
            if transition is None:
                continue
            for target in transition.targets():
                if target not in visited:
                    visited.add(target)
                    queue.append(target)

        return frozenset(set(self._tasks) - visited)
