"""
SQLAlchemy 数据库模型定义
"""
from sqlalchemy import (
    Column, String, Text, Integer, DateTime, CheckConstraint, Index, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base


Base = declarative_base()


# PostgreSQL 下使用 JSONB，其他数据库使用通用 JSON
ContextJSON = JSON().with_variant(JSONB(), "postgresql")


class SessionRecord(Base):
    """会话持久化模型"""
    __tablename__ = 'graph_sessions'

    id = Column(String(255), primary_key=True)
    graph_id = Column(String(255), nullable=False)
    current_task_id = Column(String(255), nullable=False)
    previous_task_id = Column(String(255))
    status = Column(String(50), nullable=False)
    status_message = Column(Text)
    context = Column(ContextJSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    # 约束
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paused', 'waiting_for_input', 'completed')",
            name='check_session_status'
        ),
        Index('idx_graph_sessions_graph_id', 'graph_id'),
        Index('idx_graph_sessions_status', 'status'),
        Index('idx_graph_sessions_updated_at', 'updated_at'),
    )
