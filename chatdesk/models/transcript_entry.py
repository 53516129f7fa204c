import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from chatdesk.database import Base


class TranscriptEntry(Base):
    __tablename__ = "transcript_entries"
    __table_args__ = (
        UniqueConstraint("session_id", "position", name="uq_transcript_position"),
        UniqueConstraint("session_id", "provider_message_id", name="uq_transcript_provider_message"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("chat_sessions.id"), nullable=False)
    position = Column(Integer, nullable=False)
    sender = Column(Text, nullable=False)  # user, system, operator
    body = Column(Text)
    media_ref = Column(Text)
    provider_message_id = Column(Text)  # inbound wamid, used for redelivery detection
    timestamp = Column(DateTime(timezone=True), nullable=False)

    session = relationship("ChatSession", back_populates="transcript")
