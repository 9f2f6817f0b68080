"""
Schemas for the lobby chat

The credential record (User) lives server side only. Everything else is a wire
model shared by the FastAPI endpoints and the polling client.
- User -> credential store record
- ChatMessage, OnlineUser, PeerDetails -> lobby snapshot payloads
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class User(BaseModel):
    id: int
    username: str = Field(..., min_length=3, max_length=40)
    email: EmailStr
    password: str = Field(..., description="Hashed password")
    createdAt: Optional[datetime] = None


class UserProfile(BaseModel):
    id: int
    username: str
    email: EmailStr
    createdAt: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(id=user.id, username=user.username, email=user.email, createdAt=user.createdAt)


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserProfile


class ChatMessage(BaseModel):
    # "from" is a keyword, so the sender is exposed under an alias
    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field("", alias="from")
    text: str = ""
    timestampSeconds: int = 0


class OnlineUser(BaseModel):
    user: str
    ip: Optional[str] = None
    fileTcp: int = -1
    voiceUdp: int = -1


class PeerDetails(BaseModel):
    user: str
    ip: Optional[str] = None
    fileTcp: int = -1
    voiceUdp: int = -1


class JoinResponse(BaseModel):
    success: bool
    reason: Optional[str] = None
    user: Optional[str] = None
    users: List[OnlineUser] = Field(default_factory=list)
    messages: List[ChatMessage] = Field(default_factory=list)


class MessageAck(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    message: Optional[ChatMessage] = None
