"""
运行时配置
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .core.engine import DEFAULT_MAX_CHAIN_STEPS
from .models.context import DEFAULT_MAX_MESSAGES
from .storage.repository import InMemorySessionRepository, SessionRepository
from .storage.sqlalchemy_repository import SQLAlchemySessionRepository


logger = logging.getLogger(__name__)


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


def _optional_int(value: Optional[str], default: Optional[int]) -> Optional[int]:
    if value is None or value.strip() == "":
        return default
    if value.strip().lower() == "none":
        return None
    return int(value)


@dataclass
class RuntimeSettings:
    """运行时配置"""
    database_url: Optional[str] = None
    task_timeout: Optional[float] = None
    max_chain_steps: int = DEFAULT_MAX_CHAIN_STEPS
    chat_history_limit: Optional[int] = DEFAULT_MAX_MESSAGES
    optimistic_locking: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, load_env_file: bool = True) -> "RuntimeSettings":
        """从环境变量（以及 .env 文件）读取配置，已存在的环境变量优先"""
        if load_env_file:
            load_dotenv(env_file)

        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            task_timeout=_optional_float(os.getenv("GRAPH_RUNTIME_TASK_TIMEOUT")),
            max_chain_steps=int(os.getenv("GRAPH_RUNTIME_MAX_CHAIN_STEPS", str(DEFAULT_MAX_CHAIN_STEPS))),
            chat_history_limit=_optional_int(
                os.getenv("GRAPH_RUNTIME_CHAT_HISTORY_LIMIT"), DEFAULT_MAX_MESSAGES
            ),
            optimistic_locking=os.getenv("GRAPH_RUNTIME_OPTIMISTIC_LOCKING", "false").lower() == "true",
            log_level=os.getenv("GRAPH_RUNTIME_LOG_LEVEL", "INFO").upper()
        )


def configure_logging(level: str = "INFO"):
    """配置日志"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT
    )


async def create_session_repository(settings: RuntimeSettings) -> SessionRepository:
    """根据配置创建会话存储：配置了 DATABASE_URL 时使用数据库，否则使用内存"""
    if settings.database_url:
        logger.info("Using SQLAlchemy session storage")
        return await SQLAlchemySessionRepository.connect(
            settings.database_url,
            optimistic_locking=settings.optimistic_locking
        )

    logger.info("DATABASE_URL not set, using in-memory session storage")
    return InMemorySessionRepository(optimistic_locking=settings.optimistic_locking)
