"""
执行上下文模型：键值存储 + 对话历史
"""
import copy
import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Type

from ..exceptions import ContextError


# 默认上限，防止历史无限增长
DEFAULT_MAX_MESSAGES = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """消息角色"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Message:
    """对话消息"""
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


class ChatHistory:
    """对话历史，可选地只保留最近 N 条"""

    def __init__(
        self,
        max_messages: Optional[int] = DEFAULT_MAX_MESSAGES,
        messages: Optional[List[Message]] = None
    ):
        if max_messages is not None and max_messages < 0:
            raise ValueError("max_messages must be >= 0 or None")
        self.max_messages = max_messages
        self._messages: List[Message] = []
        for message in messages or []:
            self.add(message)

    def add(self, message: Message):
        """追加消息，超出上限时丢弃最旧的消息"""
        self._messages.append(message)
        if self.max_messages is not None and len(self._messages) > self.max_messages:
            del self._messages[:len(self._messages) - self.max_messages]

    def clear(self):
        self._messages.clear()

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def last(self, n: int) -> List[Message]:
        """获取最近 n 条消息"""
        if n <= 0:
            return []
        return self._messages[-n:]

    def is_empty(self) -> bool:
        return not self._messages

    def copy(self) -> "ChatHistory":
        return ChatHistory(self.max_messages, self._messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages": [message.to_dict() for message in self._messages],
            "max_messages": self.max_messages,
        }

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))


class Context:
    """
    任务之间共享的执行上下文

    每个操作单独加锁，保证原子性；多次调用组成的读-改-写序列不是原子的。
    存入和取出的值都是副本，调用方拿不到内部对象的引用。
    """

    def __init__(self, max_chat_messages: Optional[int] = DEFAULT_MAX_MESSAGES):
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        self._history = ChatHistory(max_chat_messages)

    # 键值操作

    def set(self, key: str, value: Any):
        """设置值，值必须可 JSON 序列化"""
        stored = self._isolate(key, value)
        with self._lock:
            self._data[key] = stored

    def get(self, key: str, default: Any = None) -> Any:
        """获取值"""
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def require(self, key: str, expected_type: Optional[Type] = None) -> Any:
        """获取必需的值，缺失或类型不符时抛出 ContextError"""
        with self._lock:
            if key not in self._data:
                raise ContextError(key, "required value is missing")
            value = copy.deepcopy(self._data[key])
        if expected_type is not None and not isinstance(value, expected_type):
            raise ContextError(
                key,
                f"expected {expected_type.__name__}, got {type(value).__name__}"
            )
        return value

    def remove(self, key: str) -> Any:
        """删除值并返回旧值"""
        with self._lock:
            return self._data.pop(key, None)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def update(self, values: Mapping[str, Any]):
        """批量合并输入"""
        isolated = {key: self._isolate(key, value) for key, value in values.items()}
        with self._lock:
            self._data.update(isolated)

    def clear(self):
        """清空键值数据（保留对话历史）"""
        with self._lock:
            self._data.clear()

    def data(self) -> Dict[str, Any]:
        """键值数据快照"""
        with self._lock:
            return copy.deepcopy(self._data)

    # 对话历史

    def add_message(self, role: MessageRole, content: str) -> Message:
        message = Message(role=MessageRole(role), content=content)
        with self._lock:
            self._history.add(message)
        return message

    def add_user_message(self, content: str) -> Message:
        return self.add_message(MessageRole.USER, content)

    def add_assistant_message(self, content: str) -> Message:
        return self.add_message(MessageRole.ASSISTANT, content)

    def add_system_message(self, content: str) -> Message:
        return self.add_message(MessageRole.SYSTEM, content)

    def get_chat_history(self) -> ChatHistory:
        with self._lock:
            return self._history.copy()

    def get_messages(self, last_n: Optional[int] = None) -> List[Message]:
        """获取全部或最近 last_n 条消息"""
        with self._lock:
            if last_n is None:
                return self._history.messages
            return self._history.last(last_n)

    def chat_history_len(self) -> int:
        with self._lock:
            return len(self._history)

    def clear_chat_history(self):
        with self._lock:
            self._history.clear()

    @property
    def max_chat_messages(self) -> Optional[int]:
        return self._history.max_messages

    # 序列化

    def copy(self) -> "Context":
        """深拷贝上下文"""
        with self._lock:
            clone = Context(self._history.max_messages)
            clone._data = copy.deepcopy(self._data)
            clone._history = self._history.copy()
        return clone

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "data": copy.deepcopy(self._data),
                "chat_history": self._history.to_dict(),
            }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Context":
        """从序列化数据重建上下文"""
        from pydantic import ValidationError
        from .snapshot import ContextModel

        try:
            model = ContextModel.model_validate(payload)
        except ValidationError as e:
            raise ContextError(None, f"malformed context payload: {e}") from e

        context = cls(model.chat_history.max_messages)
        context._data = copy.deepcopy(model.data)
        for item in model.chat_history.messages:
            context._history.add(
                Message(role=item.role, content=item.content, timestamp=as_utc(item.timestamp))
            )
        return context

    @classmethod
    def from_json(cls, raw: str) -> "Context":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ContextError(None, f"invalid JSON: {e}") from e
        return cls.from_dict(payload)

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __repr__(self) -> str:
        with self._lock:
            return f"Context(keys={list(self._data)}, messages={len(self._history)})"

    @staticmethod
    def _isolate(key: str, value: Any) -> Any:
        if not isinstance(key, str):
            raise ContextError(str(key), "keys must be strings")
        try:
            return json.loads(json.dumps(value, allow_nan=False))
        except (TypeError, ValueError) as e:
            raise ContextError(key, f"value is not JSON serializable: {e}") from e


def as_utc(value: datetime) -> datetime:
    """统一为带时区的 UTC 时间"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
