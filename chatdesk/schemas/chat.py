from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TranscriptEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    sender: str
    body: Optional[str] = None
    media_ref: Optional[str] = None
    timestamp: datetime


class ChatSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identity: str
    state: str
    updated_at: datetime


class ChatDetail(ChatSummary):
    created_at: datetime
    transcript: list[TranscriptEntryOut] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    phone_number: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("phoneNumber", "phone_number", "to"),
    )
    message: Optional[str] = Field(default=None, validation_alias=AliasChoices("message", "text"))
    media_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("mediaId", "media_id", "mediaUrl", "media_url"),
    )


class SendMessageResponse(BaseModel):
    success: bool
    identity: str
    error: Optional[str] = None
    error_code: Optional[str] = None
    data: Optional[Any] = None
