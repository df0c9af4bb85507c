"""Session manager: creation, persistence and the driving guard."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from agenttree.conversation.history import DEFAULT_HISTORY_SIZE
from agenttree.errors import InvalidStateError, NotFoundError
from agenttree.logging import get_logger
from agenttree.session.session import Session
from agenttree.session.storage import InMemorySessionStore, SessionMetadata, SessionStore

log = get_logger("session")


class SessionManager:
    """Owns the sessions loaded into one agent context.

    At most one session drives (runs a turn) at a time; see ``driving``.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        *,
        workspace: str = ".",
        system_prompt: str | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
        provider_name: str | None = None,
        model: str | None = None,
        temperature: float = 0.7,
    ) -> None:
        self._store = store if store is not None else InMemorySessionStore()
        self._workspace = workspace
        self._system_prompt = system_prompt
        self._history_size = history_size
        self._provider_name = provider_name
        self._model = model
        self._temperature = temperature
        self._sessions: dict[str, Session] = {}
        self._driving: str | None = None

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def driving_session_id(self) -> str | None:
        return self._driving

    def create(
        self,
        name: str | None = None,
        *,
        system_prompt: str | None = None,
        workspace: str | None = None,
    ) -> Session:
        """Create and open a new session.

        The root is a system message when a system prompt is configured;
        otherwise the session starts empty.
        """
        session = Session(
            name=name,
            workspace=workspace or self._workspace,
            provider_name=self._provider_name,
            model=self._model,
            temperature=self._temperature,
            system_prompt=system_prompt if system_prompt is not None else self._system_prompt,
            history_size=self._history_size,
        )
        self._sessions[session.id] = session
        log.info("Created session %s (%s)", session.id, session.name)
        return session

    def get(self, session_id: str) -> Session:
        """Return an open session.

        Raises:
            NotFoundError: If the session is not open.
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise NotFoundError(f"Session not open: {session_id}") from None

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def save(self, session: Session) -> None:
        self._store.save(session.to_dict())

    def load(self, session_id: str) -> Session:
        """Open a persisted session. An already open session is returned as is."""
        if session_id in self._sessions:
            return self._sessions[session_id]
        session = Session.from_dict(self._store.load(session_id), history_size=self._history_size)
        self._sessions[session.id] = session
        log.info("Loaded session %s (%d nodes)", session.id, len(session.tree))
        return session

    def list(self) -> list[str]:
        """Ids of persisted and open sessions."""
        return sorted(set(self._store.list_ids()) | set(self._sessions))

    def list_metadata(self) -> list[SessionMetadata]:
        return self._store.list_metadata()

    def close(self, session: Session) -> None:
        """Forget an open session without saving it."""
        if self._driving == session.id:
            raise InvalidStateError(f"Session {session.id} is running a turn")
        self._sessions.pop(session.id, None)

    def delete(self, session_id: str) -> bool:
        if self._driving == session_id:
            raise InvalidStateError(f"Session {session_id} is running a turn")
        self._sessions.pop(session_id, None)
        return self._store.delete(session_id)

    def close_all(self) -> None:
        self._sessions.clear()
        self._driving = None

    @contextmanager
    def driving(self, session: Session) -> Iterator[Session]:
        """Mark ``session`` as the one running a turn.

        Raises:
            InvalidStateError: If any session is already driving.
        """
        if self._driving is not None:
            raise InvalidStateError(
                f"Session {self._driving} is already running a turn in this agent"
            )
        self._sessions.setdefault(session.id, session)
        self._driving = session.id
        try:
            yield session
        finally:
            self._driving = None
