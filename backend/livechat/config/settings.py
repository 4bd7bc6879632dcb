"""
Application configuration for the live chat broker.
All timers are expressed in seconds so tests can run with compressed clocks.

Version: 1.0.0
"""
from functools import lru_cache
from typing import Annotated, List, Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
import json
import logging

logger = logging.getLogger(__name__)


DEFAULT_ROLES = ["sales", "consultant", "support", "account"]


def _parse_list(v, default: List[str]) -> List[str]:
    """Accept a JSON array or a comma-separated string."""
    if v is None:
        return list(default)

    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [item.strip() for item in v.split(',') if item.strip()]

    return v


class Settings(BaseSettings):
    """
    Live chat service settings.
    Values are read from the environment (or a .env file).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===========================
    # Application
    # ===========================

    app_name: str = Field(
        default="Live Chat Broker",
        description="Application display name"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    environment: str = Field(
        default="development",
        description="Deployment environment (development, testing, production)"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug logging and API docs"
    )

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3000, ge=1, le=65535)

    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins"
    )

    cors_allow_credentials: bool = Field(default=False)

    # ===========================
    # Session Timers
    # ===========================

    claim_timeout_seconds: float = Field(
        default=120,
        gt=0,
        description="How long a waiting session may stay unclaimed"
    )

    inactivity_timeout_seconds: float = Field(
        default=1800,
        gt=0,
        description="Age after which any session is expired and removed"
    )

    warning_threshold_seconds: float = Field(
        default=30,
        gt=0,
        description="Warn admins when this much claim time remains"
    )

    sweep_interval_seconds: float = Field(
        default=30,
        gt=0,
        description="Interval of the timeout/expiry sweep"
    )

    warning_interval_seconds: float = Field(
        default=10,
        gt=0,
        description="Interval of the claim-warning sweep"
    )

    heartbeat_interval_seconds: float = Field(
        default=25,
        gt=0,
        description="Interval of keep-alive events on open streams"
    )

    initial_data_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Delay before the admin initial_data snapshot is sent"
    )

    subscriber_queue_size: int = Field(
        default=256,
        ge=1,
        le=100000,
        description="Buffered events per subscriber before it is dropped"
    )

    # ===========================
    # Routing
    # ===========================

    valid_roles: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ROLES),
        description="Roles a session may be requested for or transferred to"
    )

    default_role: str = Field(
        default="support",
        description="Role used when the visitor does not choose one"
    )

    transfer_resets_claim_timeout: bool = Field(
        default=False,
        description="Restart the claim deadline when a session is transferred"
    )

    # ===========================
    # Persistence
    # ===========================

    persistence_enabled: bool = Field(
        default=True,
        description="Record conversations through the SQL recorder"
    )

    database_url: str = Field(
        default="sqlite:///./data/livechat.db",
        description="SQLAlchemy database URL"
    )

    database_echo: bool = Field(default=False)

    # ===========================
    # Push Notifications
    # ===========================

    push_gateway_url: Optional[str] = Field(
        default=None,
        description="HTTP endpoint that relays push messages (None disables push)"
    )

    push_timeout_seconds: float = Field(default=10.0, gt=0)
    push_retry_attempts: int = Field(default=3, ge=1, le=10)
    push_circuit_fail_max: int = Field(default=5, ge=1)
    push_circuit_timeout_seconds: int = Field(default=60, ge=1)

    # ===========================
    # Side-effect Outbox
    # ===========================

    outbox_workers: int = Field(default=2, ge=1, le=64)
    outbox_max_size: int = Field(default=10000, ge=1)
    outbox_shutdown_timeout_seconds: float = Field(default=5.0, ge=0)

    # ===========================
    # Telemetry / HTTP
    # ===========================

    enable_telemetry: bool = Field(default=True)
    rate_limit_enabled: bool = Field(default=False)
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_period: int = Field(default=60, ge=1)

    # ===========================
    # Validators
    # ===========================

    @field_validator('valid_roles', mode='before')
    @classmethod
    def parse_valid_roles(cls, v):
        """Parse roles from a list, JSON array or comma-separated string."""
        return [role.lower() for role in _parse_list(v, DEFAULT_ROLES)]

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from a list, JSON array or comma-separated string."""
        return _parse_list(v, ["*"])

    @field_validator('default_role')
    @classmethod
    def normalize_default_role(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode='after')
    def validate_timers(self) -> 'Settings':
        """Warning < claim timeout < inactivity timeout."""
        if self.warning_threshold_seconds >= self.claim_timeout_seconds:
            raise ValueError(
                "warning_threshold_seconds must be smaller than claim_timeout_seconds"
            )

        if self.claim_timeout_seconds >= self.inactivity_timeout_seconds:
            raise ValueError(
                "claim_timeout_seconds must be smaller than inactivity_timeout_seconds"
            )

        if self.default_role not in self.valid_roles:
            logger.warning(
                f"Default role '{self.default_role}' is not in valid roles {self.valid_roles}"
            )

        return self

    # ===========================
    # Helpers
    # ===========================

    @property
    def push_enabled(self) -> bool:
        return bool(self.push_gateway_url)

    def is_valid_role(self, role: Optional[str]) -> bool:
        """Check a role against the configured role set (case-insensitive)."""
        return bool(role) and role.strip().lower() in self.valid_roles


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


settings = get_settings()
