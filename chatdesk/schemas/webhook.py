"""WhatsApp Cloud API webhook message and status shapes.

The dispatcher walks the envelope itself and validates each message and
status on its own; only the fields it reads are modelled.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

WHATSAPP_OBJECT = "whatsapp_business_account"
MEDIA_TYPES = ("image", "document", "audio", "video", "sticker")


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextContent(_Lenient):
    body: Optional[str] = None


class ReplyRef(_Lenient):
    id: Optional[str] = None
    title: Optional[str] = None


class InteractiveContent(_Lenient):
    type: Optional[str] = None  # button_reply, list_reply
    button_reply: Optional[ReplyRef] = None
    list_reply: Optional[ReplyRef] = None

    @property
    def reply(self) -> Optional[ReplyRef]:
        return self.button_reply or self.list_reply


class ButtonContent(_Lenient):
    """Quick-reply button on a template message."""

    payload: Optional[str] = None
    text: Optional[str] = None


class MediaContent(_Lenient):
    id: Optional[str] = None
    link: Optional[str] = None
    caption: Optional[str] = None
    mime_type: Optional[str] = None


class InboundMessage(_Lenient):
    id: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    timestamp: Optional[str] = None
    type: Optional[str] = "text"
    text: Optional[TextContent] = None
    interactive: Optional[InteractiveContent] = None
    button: Optional[ButtonContent] = None
    image: Optional[MediaContent] = None
    document: Optional[MediaContent] = None
    audio: Optional[MediaContent] = None
    video: Optional[MediaContent] = None
    sticker: Optional[MediaContent] = None

    def media(self) -> Optional[MediaContent]:
        if self.type in MEDIA_TYPES:
            return getattr(self, self.type)
        return None


class StatusUpdate(_Lenient):
    id: Optional[str] = None
    status: Optional[str] = None  # sent, delivered, read, failed
    timestamp: Optional[str] = None
    recipient_id: Optional[str] = None
