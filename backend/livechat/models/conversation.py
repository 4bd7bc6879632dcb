"""
Conversation records written by the SQL recorder.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from ..database import Base


class ConversationRecord(Base):
    """
    One row per live chat session, with its running transcript.
    """
    __tablename__ = "livechat_conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), unique=True, nullable=False, index=True)

    client_name = Column(String(255), nullable=False, default="Guest")
    client_email = Column(String(255), nullable=False, default="")
    agent_name = Column(String(255), nullable=True)

    conversation_text = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="active")  # active, claimed, ended

    rating = Column(String(32), nullable=True)
    rating_type = Column(String(32), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ConversationRecord(session={self.session_id}, status={self.status})>"


class SessionLog(Base):
    """
    Structured event log per session (claim, message, close, ...).
    """
    __tablename__ = "livechat_session_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), nullable=False, index=True)
    action = Column(String(32), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<SessionLog(session={self.session_id}, action={self.action})>"


class AdminPushToken(Base):
    """
    Device token of an admin that wants incoming-chat push alerts.
    """
    __tablename__ = "admin_push_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(512), unique=True, nullable=False)
    platform = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AdminPushToken(platform={self.platform})>"
