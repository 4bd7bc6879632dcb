"""
Live Chat Broker
"""

__version__ = "1.0.0"

# Application metadata
APP_NAME = "Live Chat Broker"
APP_DESCRIPTION = "Real-time visitor/agent chat sessions with claim timeouts and SSE fan-out"
