"""Session persistence boundary.

SessionStore is the collaborator contract; InMemorySessionStore keeps
everything in process and backs tests and single-process deployments.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mnemos.agent.messages import Message
    from mnemos.session.models import Session


class SessionStore(ABC):
    @abstractmethod
    async def save_session(self, session: Session) -> None: ...

    @abstractmethod
    async def fetch_session(self, session_id: str) -> Session | None: ...

    @abstractmethod
    async def list_sessions(self) -> list[Session]: ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool: ...

    @abstractmethod
    async def append_message(self, session_id: str, message: Message) -> None: ...

    @abstractmethod
    async def fetch_messages(self, session_id: str) -> list[Message]:
        """All messages of a session, oldest first."""
        ...


class InMemorySessionStore(SessionStore):
    """Stores copies so callers cannot mutate persisted state by accident."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._messages: dict[str, list[Message]] = {}

    async def save_session(self, session: Session) -> None:
        self._sessions[session.id] = copy.deepcopy(session)

    async def fetch_session(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session is not None else None

    async def list_sessions(self) -> list[Session]:
        return sorted(
            (copy.deepcopy(s) for s in self._sessions.values()),
            key=lambda s: s.updated_at,
            reverse=True,
        )

    async def delete_session(self, session_id: str) -> bool:
        self._messages.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    async def append_message(self, session_id: str, message: Message) -> None:
        self._messages.setdefault(session_id, []).append(message)

    async def fetch_messages(self, session_id: str) -> list[Message]:
        return list(self._messages.get(session_id, []))
