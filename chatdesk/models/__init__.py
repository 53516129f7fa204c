from chatdesk.models.chat_session import ChatSession
from chatdesk.models.transcript_entry import TranscriptEntry

__all__ = ["ChatSession", "TranscriptEntry"]
