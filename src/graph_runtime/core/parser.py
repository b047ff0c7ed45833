"""
图定义解析器
"""
import yaml
import json
from dataclasses import dataclass
from typing import Dict, Any, Mapping, Union
from pathlib import Path

from ..models.context import Context
from ..models.task import Task
from ..exceptions import GraphParseError
from .graph import Graph, GraphBuilder


_MISSING = object()


@dataclass(frozen=True)
class ContextKeyCondition:
    """
    基于上下文键的条件

    未指定 equals 时判断值是否为真，否则判断值是否等于 equals。
    """
    key: str
    equals: Any = _MISSING

    def __call__(self, context: Context) -> bool:
        value = context.get(self.key)
        if self.equals is _MISSING:
            return bool(value)
        return value == self.equals


class GraphParser:
    """
    图定义解析器

    定义只描述拓扑结构，任务对象由调用方按ID提供::

        graph:
          id: order-flow
          start: greet
          tasks: [greet, ask, confirm, done]
          transitions:
            - {from: greet, to: ask}
            - {from: ask, condition: {key: confirmed, equals: true}, yes: done, no: confirm}
    """

    def __init__(self):
        self.parsers = {
            'yaml': self._parse_yaml,
            'yml': self._parse_yaml,
            'json': self._parse_json
        }

    def parse(self, source: Union[str, Path, Dict[str, Any]], tasks: Mapping[str, Task]) -> Graph:
        """
        解析图定义

        Args:
            source: 图定义来源，可以是文件路径、字符串或字典
            tasks: 任务ID到任务对象的映射

        Returns:
            Graph: 构建并验证后的图
        """
        if isinstance(source, dict):
            return self.parse_dict(source, tasks)

        if isinstance(source, Path) or (isinstance(source, str) and '\n' not in source):
            path = Path(source)
            try:
                is_file = path.is_file()
            except OSError:
                is_file = False
            if is_file:
                return self.parse_file(path, tasks)

        if isinstance(source, (str, Path)):
            return self.parse_string(str(source), tasks)

        raise GraphParseError(f"Unsupported source type: {type(source)}")

    def parse_file(self, file_path: Path, tasks: Mapping[str, Task]) -> Graph:
        """解析图定义文件"""
        suffix = file_path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise GraphParseError(f"Unsupported file format: {suffix}")

        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()

        data = self.parsers[suffix](content)
        return self.parse_dict(data, tasks)

    def parse_string(self, content: str, tasks: Mapping[str, Task]) -> Graph:
        """解析图定义字符串（JSON 是 YAML 的子集，统一按 YAML 读取）"""
        return self.parse_dict(self._parse_yaml(content), tasks)

    def _parse_yaml(self, content: str) -> Dict[str, Any]:
        """解析YAML格式"""
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise GraphParseError(f"Failed to parse YAML: {e}") from e

    def _parse_json(self, content: str) -> Dict[str, Any]:
        """解析JSON格式"""
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise GraphParseError(f"Failed to parse JSON: {e}") from e

    def parse_dict(self, data: Dict[str, Any], tasks: Mapping[str, Task]) -> Graph:
        """解析字典格式的图定义"""
        if not isinstance(data, dict):
            raise GraphParseError(f"Graph definition must be a mapping, got {type(data).__name__}")
        if 'graph' in data:
            data = data['graph']
        if not isinstance(data, dict):
            raise GraphParseError("'graph' section must be a mapping")

        graph_id = data.get('id')
        if not graph_id:
            raise GraphParseError("Graph definition is missing 'id'")

        builder = GraphBuilder(str(graph_id))

        task_ids = data.get('tasks')
        if task_ids is None:
            task_ids = list(tasks.keys())
        if not isinstance(task_ids, list):
            raise GraphParseError("'tasks' must be a list of task ids")

        for task_id in task_ids:
            task = tasks.get(task_id)
            if task is None:
                raise GraphParseError(f"No task object provided for '{task_id}'")
            if task.id != task_id:
                raise GraphParseError(
                    f"Task object registered as '{task_id}' reports id '{task.id}'"
                )
            builder.add_task(task)

        for index, transition in enumerate(data.get('transitions') or []):
            self._parse_transition(builder, index, transition)

        if data.get('start') is not None:
            builder.set_start_task(data['start'])

        # 未知任务ID等问题交给构建器统一报告
        return builder.build()

    def _parse_transition(self, builder: GraphBuilder, index: int, data: Any):
        """解析转换规则"""
        if not isinstance(data, dict):
            raise GraphParseError(f"Transition #{index} must be a mapping")

        source = data.get('from')
        if not source:
            raise GraphParseError(f"Transition #{index} is missing 'from'")

        if 'condition' in data:
            # YAML 1.1 会把未加引号的 yes/no 键解析为布尔值
            yes_target = data.get('yes', data.get(True))
            no_target = data.get('no', data.get(False))
            if yes_target is None or no_target is None:
                raise GraphParseError(
                    f"Conditional transition from '{source}' needs both 'yes' and 'no'"
                )
            builder.add_conditional_edge(
                source, self._parse_condition(source, data['condition']), yes_target, no_target
            )
        elif 'to' in data:
            builder.add_edge(source, data['to'])
        else:
            raise GraphParseError(f"Transition from '{source}' needs 'to' or 'condition'")

    def _parse_condition(self, source: str, data: Any) -> ContextKeyCondition:
        """解析条件"""
        if isinstance(data, str):
            return ContextKeyCondition(data)

        if isinstance(data, dict) and data.get('key'):
            if 'equals' in data:
                return ContextKeyCondition(data['key'], data['equals'])
            return ContextKeyCondition(data['key'])

        raise GraphParseError(
            f"Condition for transition from '{source}' must be a key or a mapping with 'key'"
        )
