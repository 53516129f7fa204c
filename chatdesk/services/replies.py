"""Outbound reply plans.

A reply plan says *what* to send; ``WhatsAppService.build_payload`` decides how
it looks on the wire. Plans are immutable so a transition plan can be replayed.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20


@dataclass(frozen=True)
class TextReply:
    body: str


@dataclass(frozen=True)
class ReplyButton:
    id: str
    title: str

    def __post_init__(self):
        if not self.id or not self.title:
            raise ValueError("Reply button needs an id and a title")
        if len(self.title) > MAX_BUTTON_TITLE:
            raise ValueError(f"Button title too long (max {MAX_BUTTON_TITLE} chars): {self.title!r}")


@dataclass(frozen=True)
class ButtonsReply:
    body: str
    buttons: tuple[ReplyButton, ...]

    def __post_init__(self):
        if not 1 <= len(self.buttons) <= MAX_BUTTONS:
            raise ValueError(f"Interactive prompt takes 1-{MAX_BUTTONS} buttons, got {len(self.buttons)}")


@dataclass(frozen=True)
class TemplateReply:
    name: str
    language_code: str = "en_US"
    components: tuple[dict, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MediaReply:
    media_ref: str
    media_type: str = "image"
    caption: Optional[str] = None

    @property
    def is_link(self) -> bool:
        return self.media_ref.startswith(("http://", "https://"))


ReplyPlan = Union[TextReply, ButtonsReply, TemplateReply, MediaReply]


def transcript_body(reply: ReplyPlan) -> Optional[str]:
    """Text recorded in the transcript for a sent reply."""
    if isinstance(reply, (TextReply, ButtonsReply)):
        return reply.body
    if isinstance(reply, TemplateReply):
        return f"[template:{reply.name}]"
    if isinstance(reply, MediaReply):
        return reply.caption
    raise TypeError(f"Unknown reply plan: {reply!r}")


def transcript_media_ref(reply: ReplyPlan) -> Optional[str]:
    return reply.media_ref if isinstance(reply, MediaReply) else None
