"""
图定义解析器测试
"""
import json

import pytest

from graph_runtime.core.parser import GraphParser, ContextKeyCondition
from graph_runtime.models.context import Context
from graph_runtime.models.task import FunctionTask, TaskResult
from graph_runtime.exceptions import GraphParseError, GraphValidationError


def make_tasks(*task_ids):
    async def run(context):
        return TaskResult.move_to_next()
    return {task_id: FunctionTask(task_id, run) for task_id in task_ids}


def sample_definition():
    return {
        "graph": {
            "id": "order-flow",
            "start": "greet",
            "tasks": ["greet", "ask", "confirm", "done"],
            "transitions": [
                {"from": "greet", "to": "ask"},
                {"from": "ask", "condition": {"key": "confirmed", "equals": True},
                 "yes": "done", "no": "confirm"},
                {"from": "confirm", "condition": "retry", "yes": "ask", "no": "done"},
            ],
        }
    }


class TestGraphParser:
    """图定义解析器测试类"""

    @pytest.fixture
    def parser(self):
        return GraphParser()

    @pytest.fixture
    def tasks(self):
        return make_tasks("greet", "ask", "confirm", "done")

    def test_parse_dict(self, parser, tasks):
        """测试解析字典定义"""
        graph = parser.parse(sample_definition(), tasks)

        assert graph.id == "order-flow"
        assert graph.start_task_id == "greet"
        assert graph.get_task("ask") is tasks["ask"]

        context = Context()
        assert graph.resolve_next("greet", context) == "ask"
        assert graph.resolve_next("ask", context) == "confirm"
        context.set("confirmed", True)
        assert graph.resolve_next("ask", context) == "done"
        assert graph.resolve_next("done", context) is None

    def test_truthy_condition(self, parser, tasks):
        """测试按真值判断的条件"""
        graph = parser.parse(sample_definition(), tasks)
        context = Context()

        assert graph.resolve_next("confirm", context) == "done"
        context.set("retry", 1)
        assert graph.resolve_next("confirm", context) == "ask"

    def test_parse_yaml_string(self, parser):
        """测试解析 YAML 字符串"""
        content = """
graph:
  id: yaml-flow
  tasks: [a, b]
  transitions:
    - {from: a, to: b}
"""
        graph = parser.parse(content, make_tasks("a", "b"))

        assert graph.id == "yaml-flow"
        # 未指定 start 时使用第一个任务
        assert graph.start_task_id == "a"

    def test_yaml_yes_no_keys(self, parser):
        """测试 YAML 中的 yes/no 分支键"""
        content = """
graph:
  id: branching
  tasks: [check, vip, regular]
  transitions:
    - from: check
      condition: {key: tier, equals: gold}
      yes: vip
      no: regular
"""
        graph = parser.parse(content, make_tasks("check", "vip", "regular"))
        context = Context()

        assert graph.resolve_next("check", context) == "regular"
        context.set("tier", "gold")
        assert graph.resolve_next("check", context) == "vip"

    def test_parse_files(self, parser, tasks, tmp_path):
        """测试解析 JSON 和 YAML 文件"""
        json_file = tmp_path / "flow.json"
        json_file.write_text(json.dumps(sample_definition()), encoding="utf-8")
        yaml_file = tmp_path / "flow.yaml"
        yaml_file.write_text(
            "graph:\n  id: from-yaml\n  tasks: [greet]\n", encoding="utf-8"
        )

        assert parser.parse(json_file, tasks).id == "order-flow"
        assert parser.parse(str(yaml_file), tasks).id == "from-yaml"

    def test_tasks_default_to_mapping(self, parser):
        """测试未列出任务时使用全部任务对象"""
        graph = parser.parse({"graph": {"id": "implicit"}}, make_tasks("x", "y"))

        assert sorted(graph.task_ids) == ["x", "y"]

    def test_unsupported_file_format(self, parser, tasks, tmp_path):
        """测试不支持的文件格式"""
        text_file = tmp_path / "flow.txt"
        text_file.write_text("graph: {id: x}", encoding="utf-8")

        with pytest.raises(GraphParseError):
            parser.parse(text_file, tasks)

    def test_invalid_yaml(self, parser, tasks):
        """测试无效的 YAML"""
        with pytest.raises(GraphParseError):
            parser.parse("graph: [unclosed", tasks)

    def test_missing_id(self, parser, tasks):
        """测试缺少图ID"""
        with pytest.raises(GraphParseError):
            parser.parse({"graph": {"tasks": ["greet"]}}, tasks)

    def test_missing_task_object(self, parser):
        """测试缺少任务对象"""
        with pytest.raises(GraphParseError) as exc_info:
            parser.parse(sample_definition(), make_tasks("greet"))
        assert "ask" in str(exc_info.value)

    def test_conditional_needs_both_branches(self, parser, tasks):
        """测试条件转换需要两个分支"""
        definition = sample_definition()
        del definition["graph"]["transitions"][1]["no"]

        with pytest.raises(GraphParseError):
            parser.parse(definition, tasks)

    def test_unknown_target_reported_by_builder(self, parser, tasks):
        """测试未知目标由构建器报告"""
        definition = sample_definition()
        definition["graph"]["transitions"].append({"from": "done", "to": "ghost"})

        with pytest.raises(GraphValidationError) as exc_info:
            parser.parse(definition, tasks)
        assert "ghost" in str(exc_info.value)

    def test_non_mapping_definition(self, parser, tasks):
        """测试非字典的图定义"""
        with pytest.raises(GraphParseError):
            parser.parse("- just\n- a list\n", tasks)


class TestContextKeyCondition:
    """上下文键条件测试类"""

    def test_equals(self):
        """测试按值相等判断"""
        condition = ContextKeyCondition("tier", "gold")
        context = Context()

        assert condition(context) is False
        context.set("tier", "gold")
        assert condition(context) is True

    def test_truthiness(self):
        """测试按真值判断"""
        condition = ContextKeyCondition("flag")
        context = Context()
        context.set("flag", [])

        assert condition(context) is False
