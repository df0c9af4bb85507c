"""Sessions: conversation state, persistence, management."""

from agenttree.session.manager import SessionManager
from agenttree.session.session import Session
from agenttree.session.storage import (
    InMemorySessionStore,
    SessionMetadata,
    SessionStore,
    YamlSessionStore,
    get_sessions_dir,
)

__all__ = [
    "InMemorySessionStore",
    "Session",
    "SessionManager",
    "SessionMetadata",
    "SessionStore",
    "YamlSessionStore",
    "get_sessions_dir",
]
