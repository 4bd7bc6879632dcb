"""
Services package.
Session broker, timeout sweeper and their side-effect collaborators.
"""
from .outbox import SideEffectOutbox
from .recorder import ConversationRecorder, SqlConversationRecorder
from .push_service import PushNotifier, create_push_notifier
from .broker import SessionBroker
from .sweeper import TimeoutSweeper
from .scheduler import PeriodicTask

__all__ = [
    "SideEffectOutbox",
    "ConversationRecorder",
    "SqlConversationRecorder",
    "PushNotifier",
    "create_push_notifier",
    "SessionBroker",
    "TimeoutSweeper",
    "PeriodicTask",
]
