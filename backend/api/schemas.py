"""Pydantic models for the API layer.

Defines request/response schemas for the proxy and the upstream backend.
"""

from pydantic import BaseModel, Field, field_validator

MAX_MESSAGE_LENGTH = 4000


class ChatRequest(BaseModel):
    """Incoming chat message from the client."""
    message: str = Field(..., description="User message")

    @field_validator("message")
    @classmethod
    def check_message(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty")
        if len(value) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")
        return value


class ChatResponse(BaseModel):
    """Successful completion returned to the client."""
    completion: str


class ErrorResponse(BaseModel):
    """Body of every non-2xx proxy response."""
    error: str


class CompleteRequest(BaseModel):
    """Body sent to the upstream completion backend."""
    content: str = ""


class CompleteResponse(BaseModel):
    completion: str
