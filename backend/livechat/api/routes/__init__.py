"""
API routes module initialization.
"""
from . import admin, health, livechat

__all__ = ["admin", "health", "livechat"]
