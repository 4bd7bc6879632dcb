"""
In-memory session store implementation.
Volatile by design: a restart loses every live session.

Version: 1.0.0
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .errors import SessionNotFoundError
from .models import LiveSession
from .session_store import Mutator, SessionStore

logger = logging.getLogger(__name__)


class InMemorySessionStore(SessionStore):
    """
    In-memory implementation of SessionStore.

    Features:
    - One asyncio lock guards the whole registry
    - Mutators run in place while the lock is held
    - Reads return deep copies so callers never observe a half-applied update

    Limitations:
    - Sessions lost on restart
    - Not shared across multiple processes
    """

    def __init__(self):
        self.sessions: Dict[str, LiveSession] = {}
        self.lock = asyncio.Lock()

        logger.info("InMemorySessionStore initialized")

    async def create(self, session: LiveSession) -> str:
        async with self.lock:
            if session.id in self.sessions:
                raise ValueError(f"Session {session.id} already exists")

            self.sessions[session.id] = session.model_copy(deep=True)
            logger.debug(f"Created session {session.id}")
            return session.id

    async def get(self, session_id: str) -> Optional[LiveSession]:
        async with self.lock:
            session = self.sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    async def update(self, session_id: str, mutator: Mutator) -> Any:
        async with self.lock:
            session = self.sessions.get(session_id)

            if session is None:
                raise SessionNotFoundError(session_id)

            return mutator(session)

    async def delete(self, session_id: str) -> Optional[LiveSession]:
        async with self.lock:
            session = self.sessions.pop(session_id, None)
            if session:
                logger.debug(f"Deleted session {session_id}")
            return session

    async def list(self) -> List[LiveSession]:
        async with self.lock:
            return [s.model_copy(deep=True) for s in self.sessions.values()]

    async def status_map(self) -> Dict[str, str]:
        async with self.lock:
            return {sid: s.status.value for sid, s in self.sessions.items()}

    async def for_each(self, fn: Mutator) -> List[Any]:
        async with self.lock:
            results = []
            for session in self.sessions.values():
                result = fn(session)
                if result is not None:
                    results.append(result)
            return results

    async def pop_where(self, predicate: Callable[[LiveSession], bool]) -> List[LiveSession]:
        async with self.lock:
            doomed = [sid for sid, s in self.sessions.items() if predicate(s)]
            removed = [self.sessions.pop(sid) for sid in doomed]

            if removed:
                logger.debug(f"Removed {len(removed)} sessions: {doomed}")

            return removed

    async def count(self) -> int:
        async with self.lock:
            return len(self.sessions)


__all__ = ['InMemorySessionStore']
