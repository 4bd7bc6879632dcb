"""
Pydantic schemas for request/response validation.
Wire names are camelCase to match the chat widget and admin dashboard.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CamelModel(BaseModel):
    """Accepts both the camelCase wire name and the Python field name."""
    model_config = ConfigDict(populate_by_name=True)


# Request Schemas

class RequestSessionRequest(CamelModel):
    """Visitor asks for a live agent."""
    name: Optional[str] = "Guest"
    email: Optional[str] = ""
    requested_role: Optional[str] = Field(default=None, alias="requestedRole")
    initial_messages: List[Dict[str, Any]] = Field(default_factory=list, alias="initialMessages")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "name": "Dana",
                "email": "dana@example.com",
                "requestedRole": "sales",
                "initialMessages": [{"from": "user", "text": "Do you ship abroad?"}]
            }
        }
    )


class ClaimSessionRequest(CamelModel):
    """Agent takes a waiting session."""
    session_id: str = Field(..., min_length=1, alias="sessionId")
    agent_name: str = Field(..., min_length=1, alias="agentName")
    agent_role: Optional[str] = Field(default=None, alias="agentRole")


class SendMessageRequest(CamelModel):
    """Message from either side of the conversation."""
    session_id: str = Field(..., min_length=1, alias="sessionId")
    text: Optional[str] = ""
    sender: str = Field(default="user", alias="from")
    name: Optional[str] = None


class AdminSendRequest(CamelModel):
    """Message typed by an agent in the dashboard."""
    session_id: str = Field(..., min_length=1, alias="sessionId")
    text: Optional[str] = ""
    agent_name: Optional[str] = Field(default=None, alias="agentName")


class TransferSessionRequest(CamelModel):
    """Hand a session to another role queue."""
    session_id: str = Field(..., min_length=1, alias="sessionId")
    target_role: str = Field(..., alias="targetRole")
    transferred_by: Optional[str] = Field(default=None, alias="transferredBy")


class CloseSessionRequest(CamelModel):
    session_id: str = Field(..., min_length=1, alias="sessionId")


class EndSessionRequest(CamelModel):
    """Agent ends the chat with a reason shown to the visitor."""
    session_id: str = Field(..., min_length=1, alias="sessionId")
    agent_name: str = Field(default="Admin", alias="agentName")
    agent_role: Optional[str] = Field(default=None, alias="agentRole")
    reason: str = "Chat ended by agent"


class RatingRequest(CamelModel):
    """Visitor feedback; unknown values are normalized, not rejected."""
    session_id: str = Field(..., min_length=1, alias="sessionId")
    rating: Optional[str] = None
    rating_type: Optional[str] = Field(default=None, alias="ratingType")


class PushRegisterRequest(CamelModel):
    """Admin device registering for incoming-chat alerts."""
    token: str = Field(..., min_length=1, max_length=512)
    platform: Optional[str] = "web"

    @field_validator('token')
    @classmethod
    def validate_token(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Token cannot be empty')
        return v.strip()


# Response Schemas

class RequestSessionResponse(BaseModel):
    sessionId: str
    timeout: int
    message: str

