"""
Abstract session store interface.
Defines the contract for the live session registry.

Version: 1.0.0
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .models import LiveSession, SessionStatus

T = TypeVar("T")

Mutator = Callable[[LiveSession], T]


class SessionStore(ABC):
    """
    Abstract base class for the live session registry.

    Implementations must serialize every mutation so that compound
    check-and-set operations (claims, transfers, sweeper transitions)
    observe a consistent session and never lose updates. Mutators run
    while the registry is locked and must not perform I/O.
    """

    @abstractmethod
    async def create(self, session: LiveSession) -> str:
        """
        Insert a new session.

        Args:
            session: Session to store (its id must be unique)

        Returns:
            The session id

        Raises:
            ValueError: If a session with the same id already exists
        """
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[LiveSession]:
        """
        Get a snapshot of a session.

        Returns:
            A copy of the session, or None if absent
        """
        pass

    @abstractmethod
    async def update(self, session_id: str, mutator: Mutator) -> Any:
        """
        Apply ``mutator`` to the stored session in place, atomically.

        Args:
            session_id: Session identifier
            mutator: Callable receiving the live session; its return value
                is passed back to the caller. Exceptions it raises
                propagate unchanged.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> Optional[LiveSession]:
        """
        Remove a session.

        Returns:
            The removed session, or None if it was absent
        """
        pass

    @abstractmethod
    async def list(self) -> List[LiveSession]:
        """Snapshot of every stored session."""
        pass

    @abstractmethod
    async def for_each(self, fn: Mutator) -> List[Any]:
        """
        Apply ``fn`` to every session under a single lock acquisition.

        Returns:
            The non-None results of ``fn``
        """
        pass

    @abstractmethod
    async def pop_where(self, predicate: Callable[[LiveSession], bool]) -> List[LiveSession]:
        """
        Remove every session matching ``predicate``.

        Returns:
            The removed sessions
        """
        pass

    async def exists(self, session_id: str) -> bool:
        return await self.get(session_id) is not None

    async def count(self) -> int:
        return len(await self.list())

    async def status_map(self) -> Dict[str, str]:
        """Status value per session id."""
        return {s.id: s.status.value for s in await self.list()}

    async def get_stats(self) -> Dict[str, Any]:
        """
        Get session counts by status.

        Returns:
            Dictionary with statistics
        """
        sessions = await self.list()
        by_status = {status.value: 0 for status in SessionStatus}
        for session in sessions:
            by_status[session.status.value] += 1

        return {
            "store_type": type(self).__name__,
            "total_sessions": len(sessions),
            "by_status": by_status,
        }

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on session store.

        Returns:
            Dictionary with health status
        """
        try:
            stats = await self.get_stats()
            return {"healthy": True, "stats": stats}
        except Exception as e:
            return {"healthy": False, "error": str(e)}


__all__ = ['SessionStore', 'Mutator']
