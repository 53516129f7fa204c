from chatdesk.schemas.chat import ChatDetail, ChatSummary, SendMessageRequest, SendMessageResponse, TranscriptEntryOut
from chatdesk.schemas.webhook import InboundMessage, StatusUpdate

__all__ = [
    "ChatDetail",
    "ChatSummary",
    "InboundMessage",
    "SendMessageRequest",
    "SendMessageResponse",
    "StatusUpdate",
    "TranscriptEntryOut",
]
