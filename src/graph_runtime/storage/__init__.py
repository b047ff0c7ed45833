"""Storage and repository interfaces"""

from .repository import (
    SessionRepository,
    GraphRepository,
    InMemorySessionRepository,
    InMemoryGraphRepository
)
from .sqlalchemy_repository import DatabaseManager, SQLAlchemySessionRepository

__all__ = [
    "SessionRepository",
    "GraphRepository",
    "InMemorySessionRepository",
    "InMemoryGraphRepository",
    "DatabaseManager",
    "SQLAlchemySessionRepository"
]
