"""
序列化与检查用的数据模型
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime

from .context import DEFAULT_MAX_MESSAGES, MessageRole
from .session import Session, SessionStatus


class MessageModel(BaseModel):
    """对话消息"""
    role: MessageRole = Field(..., description="消息角色")
    content: str = Field(..., description="消息内容")
    timestamp: datetime = Field(..., description="消息时间（UTC）")


class ChatHistoryModel(BaseModel):
    """对话历史"""
    messages: List[MessageModel] = Field(default_factory=list, description="按时间顺序的消息")
    max_messages: Optional[int] = Field(DEFAULT_MAX_MESSAGES, ge=0, description="保留的最大消息数")


class ContextModel(BaseModel):
    """上下文序列化格式"""
    data: Dict[str, Any] = Field(default_factory=dict, description="键值数据")
    chat_history: ChatHistoryModel = Field(default_factory=ChatHistoryModel, description="对话历史")


class SessionSnapshot(BaseModel):
    """会话检查快照"""
    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(..., description="会话ID")
    graph_id: str = Field(..., description="图ID")
    current_task_id: str = Field(..., description="当前任务ID")
    previous_task_id: Optional[str] = Field(None, description="上一个任务ID")
    status: SessionStatus = Field(..., description="会话状态")
    status_message: Optional[str] = Field(None, description="状态消息")
    context: ContextModel = Field(..., description="上下文快照")
    version: int = Field(0, description="版本号")
    created_at: datetime = Field(..., description="创建时间")
    updated_at: datetime = Field(..., description="更新时间")

    @classmethod
    def from_session(cls, session: Session) -> "SessionSnapshot":
        return cls(
            id=session.id,
            graph_id=session.graph_id,
            current_task_id=session.current_task_id,
            previous_task_id=session.previous_task_id,
            status=session.status,
            status_message=session.status_message,
            context=ContextModel.model_validate(session.context.to_dict()),
            version=session.version,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )
