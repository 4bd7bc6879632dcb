"""
Utility modules for the application.
Provides telemetry and middleware.

Version: 1.0.0
"""
from .telemetry import MetricsCollector, metrics_collector, setup_telemetry
from .middleware import (
    ErrorHandlingMiddleware,
    RateLimitMiddleware,
    RequestIDMiddleware,
    TimingMiddleware,
)

__all__ = [
    # Telemetry
    'MetricsCollector',
    'metrics_collector',
    'setup_telemetry',

    # Middleware
    'RequestIDMiddleware',
    'TimingMiddleware',
    'RateLimitMiddleware',
    'ErrorHandlingMiddleware',
]
