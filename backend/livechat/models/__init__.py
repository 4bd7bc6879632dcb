"""
Models package.
SQLAlchemy conversation records and API request/response schemas.

Version: 1.0.0
"""

from .conversation import AdminPushToken, ConversationRecord, SessionLog

__all__ = [
    'ConversationRecord',
    'SessionLog',
    'AdminPushToken',
]
