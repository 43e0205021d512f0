"""
Pydantic Schemas for the HTTP API

Request and response bodies for the tool, session and usage endpoints.
Tool arguments themselves are validated by the models in
dineai.services.tools.catalog; the API passes them through untouched.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================

class RoleEnum(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    WAITER = "waiter"
    CASHIER = "cashier"


class MessageRoleEnum(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ResponseModeEnum(str, Enum):
    VOICE = "voice"
    TEXT = "text"


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class CallerContext(BaseModel):
    """Who is calling: tenant, user and role."""
    restaurant_id: str = Field(..., examples=["R1"])
    user_id: str = Field(..., min_length=1, examples=["staff-42"])
    role: Optional[str] = Field(
        None,
        description="Caller role; unknown or empty roles are treated as employee",
        examples=["waiter"],
    )

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v


class ExecuteToolRequest(CallerContext):
    """Run one tool on behalf of a caller."""
    tool_name: str = Field(..., min_length=1, examples=["place_order"])
    arguments: dict[str, Any] = Field(
        default_factory=dict,
        examples=[{"items": [{"name": "Paneer Tikka", "quantity": 2}], "table_number": "5"}],
    )


class SessionToolRequest(BaseModel):
    """Run one tool inside an existing conversation session."""
    tool_name: str = Field(..., min_length=1, examples=["get_tables"])
    arguments: dict[str, Any] = Field(default_factory=dict)


class StartSessionRequest(CallerContext):
    session_type: str = Field(default="voice", examples=["voice"])
    response_mode: ResponseModeEnum = Field(default=ResponseModeEnum.VOICE)


class MessageRequest(BaseModel):
    role: MessageRoleEnum = Field(..., examples=["user"])
    content: str = Field(..., examples=["What's on table 5?"])
    tool_name: Optional[str] = None
    tool_result: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    audio_url: Optional[str] = None


class EndSessionRequest(BaseModel):
    summary: Optional[str] = Field(
        None,
        description="Conversation summary; generated from the messages when omitted",
    )


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class ToolListResponse(BaseModel):
    version: str
    role: str
    tools: list[dict[str, Any]]
    capabilities: str


class UsageResponse(BaseModel):
    user_id: str
    restaurant_id: str
    role: str
    usage: dict[str, Any]
    limit: dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    timestamp: datetime
