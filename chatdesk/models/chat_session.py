import uuid

from sqlalchemy import Column, DateTime, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from chatdesk.database import Base


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    identity = Column(Text, nullable=False, unique=True)  # canonical +<cc><number>
    state = Column(Text, nullable=False, default="awaiting_menu_choice")
    version = Column(Integer, nullable=False, default=0)  # compare-and-set token
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    transcript = relationship(
        "TranscriptEntry",
        back_populates="session",
        order_by="TranscriptEntry.position",
    )
