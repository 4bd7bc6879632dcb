"""
Conversation recorder.

Best-effort persistence of live chat sessions: a conversation row with
the running transcript, a structured per-session event log, and the
admin push-token registry. The broker only ever calls this from outbox
jobs, so a slow or failing database never stalls live traffic.

Version: 1.0.0
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..models.conversation import AdminPushToken, ConversationRecord, SessionLog

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConversationRecorder(ABC):
    """Persistence collaborator used by the session broker."""

    @abstractmethod
    async def create_conversation(
        self,
        session_id: str,
        visitor_name: str,
        visitor_email: str
    ) -> None:
        pass

    @abstractmethod
    async def record_claim(self, session_id: str, agent_name: str, agent_role: str) -> None:
        """Store the agent on the conversation (only if none is set yet)."""
        pass

    @abstractmethod
    async def append_transcript(self, session_id: str, line: str) -> None:
        pass

    @abstractmethod
    async def log_event(self, session_id: str, action: str, details: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def record_end(self, session_id: str, reason: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def record_rating(self, session_id: str, rating: str, rating_type: str) -> None:
        pass

    @abstractmethod
    async def get_agent_name(self, session_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def register_push_token(self, token: str, platform: Optional[str] = None) -> bool:
        """
        Returns:
            True if the token is new, False if it was already registered
        """
        pass

    @abstractmethod
    async def list_push_tokens(self) -> List[str]:
        pass

    async def close(self) -> None:
        pass


class SqlConversationRecorder(ConversationRecorder):
    """
    SQLAlchemy implementation.

    ORM work is synchronous; every call is moved to a worker thread so
    the event loop keeps serving streams.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Args:
            session_factory: SQLAlchemy sessionmaker bound to the target database
        """
        self.session_factory = session_factory

    async def _run(self, fn: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._transaction, fn)

    def _transaction(self, fn: Callable[[Session], T]) -> T:
        db = self.session_factory()
        try:
            result = fn(db)
            db.commit()
            return result
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def create_conversation(
        self,
        session_id: str,
        visitor_name: str,
        visitor_email: str
    ) -> None:
        def _create(db: Session) -> None:
            db.add(ConversationRecord(
                session_id=session_id,
                client_name=visitor_name,
                client_email=visitor_email,
                conversation_text="",
                status="active",
            ))

        await self._run(_create)
        logger.debug(f"Conversation record created for {session_id}")

    async def record_claim(self, session_id: str, agent_name: str, agent_role: str) -> None:
        def _claim(db: Session) -> None:
            db.execute(
                update(ConversationRecord)
                .where(ConversationRecord.session_id == session_id)
                .where(ConversationRecord.agent_name.is_(None))
                .values(agent_name=agent_name, status="claimed")
            )
            db.add(SessionLog(
                session_id=session_id,
                action="claim",
                details=f"Claimed by {agent_name} ({agent_role})",
            ))

        await self._run(_claim)

    async def append_transcript(self, session_id: str, line: str) -> None:
        def _append(db: Session) -> None:
            db.execute(
                update(ConversationRecord)
                .where(ConversationRecord.session_id == session_id)
                .values(conversation_text=ConversationRecord.conversation_text + line)
            )

        await self._run(_append)

    async def log_event(self, session_id: str, action: str, details: Optional[str] = None) -> None:
        def _log(db: Session) -> None:
            db.add(SessionLog(session_id=session_id, action=action, details=details))

        await self._run(_log)

    async def record_end(self, session_id: str, reason: Optional[str] = None) -> None:
        def _end(db: Session) -> None:
            db.execute(
                update(ConversationRecord)
                .where(ConversationRecord.session_id == session_id)
                .values(status="ended", ended_at=datetime.utcnow())
            )

        await self._run(_end)

    async def record_rating(self, session_id: str, rating: str, rating_type: str) -> None:
        def _rate(db: Session) -> None:
            db.execute(
                update(ConversationRecord)
                .where(ConversationRecord.session_id == session_id)
                .values(rating=rating, rating_type=rating_type)
            )
            db.add(SessionLog(session_id=session_id, action="rating", details=rating))

        await self._run(_rate)

    async def get_agent_name(self, session_id: str) -> Optional[str]:
        def _lookup(db: Session) -> Optional[str]:
            return db.execute(
                select(ConversationRecord.agent_name)
                .where(ConversationRecord.session_id == session_id)
            ).scalar_one_or_none()

        return await self._run(_lookup)

    async def register_push_token(self, token: str, platform: Optional[str] = None) -> bool:
        def _register(db: Session) -> bool:
            existing = db.execute(
                select(AdminPushToken).where(AdminPushToken.token == token)
            ).scalar_one_or_none()

            if existing is not None:
                existing.platform = platform or existing.platform
                return False

            db.add(AdminPushToken(token=token, platform=platform))
            return True

        try:
            return await self._run(_register)
        except IntegrityError:
            # Registered concurrently by another request
            return False

    async def list_push_tokens(self) -> List[str]:
        def _tokens(db: Session) -> List[str]:
            return list(db.execute(select(AdminPushToken.token)).scalars())

        return await self._run(_tokens)

    async def close(self) -> None:
        bind = getattr(self.session_factory, "kw", {}).get("bind")
        if bind is not None:
            await asyncio.to_thread(bind.dispose)


__all__ = ["ConversationRecorder", "SqlConversationRecorder"]
