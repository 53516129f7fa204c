"""Persistence for conversation sessions and their transcripts.

Sessions are keyed by canonical identity only. Every mutation goes through
``commit_mutation``, which bumps ``version`` with a conditional UPDATE and
inserts the new transcript entries in the same transaction: either the state
change and its entries land together or neither does.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatdesk.exceptions import NotFound, StoreConflict
from chatdesk.logging_config import get_logger
from chatdesk.models import ChatSession, TranscriptEntry
from chatdesk.services.state_machine import INITIAL_STATE, ConversationState

logger = get_logger("session_store")

SENDER_USER = "user"
SENDER_SYSTEM = "system"
SENDER_OPERATOR = "operator"
SENDERS = (SENDER_USER, SENDER_SYSTEM, SENDER_OPERATOR)


@dataclass(frozen=True)
class NewEntry:
    sender: str
    body: Optional[str] = None
    media_ref: Optional[str] = None
    provider_message_id: Optional[str] = None

    def __post_init__(self):
        if self.sender not in SENDERS:
            raise ValueError(f"Unknown sender: {self.sender}")
        if not self.body and not self.media_ref:
            raise ValueError("Transcript entry needs a body or a media reference")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def find_session(db: Session, identity: str) -> Optional[ChatSession]:
    return db.query(ChatSession).filter(ChatSession.identity == identity).first()


def get_session(db: Session, identity: str) -> ChatSession:
    session = find_session(db, identity)
    if session is None:
        raise NotFound(f"No conversation for {identity}")
    return session


def get_or_create_session(db: Session, identity: str) -> ChatSession:
    """Find the session for ``identity`` or create it in the initial state.

    A concurrent creator losing the race on the unique identity index
    re-reads the winner's row.
    """
    session = find_session(db, identity)
    if session:
        return session

    now = _utcnow()
    session = ChatSession(
        identity=identity,
        state=INITIAL_STATE.value,
        version=0,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(session)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Session for {identity} created concurrently, re-reading")
        session = find_session(db, identity)
        if session is None:
            raise
        return session

    logger.info(f"Created session for {identity}", extra={"context": {"identity": identity}})
    return session


def list_sessions(db: Session) -> list[ChatSession]:
    return db.query(ChatSession).order_by(ChatSession.updated_at.desc()).all()


def get_transcript(db: Session, session: ChatSession) -> list[TranscriptEntry]:
    return (
        db.query(TranscriptEntry)
        .filter(TranscriptEntry.session_id == session.id)
        .order_by(TranscriptEntry.position)
        .all()
    )


def has_provider_message(db: Session, session: ChatSession, provider_message_id: Optional[str]) -> bool:
    if not provider_message_id:
        return False
    found = (
        db.query(TranscriptEntry.id)
        .filter(
            TranscriptEntry.session_id == session.id,
            TranscriptEntry.provider_message_id == provider_message_id,
        )
        .first()
    )
    return found is not None


def _transcript_tail(db: Session, session: ChatSession) -> tuple[int, Optional[datetime]]:
    count, last_ts = db.execute(
        select(func.count(TranscriptEntry.id), func.max(TranscriptEntry.timestamp)).where(
            TranscriptEntry.session_id == session.id
        )
    ).one()
    return count or 0, _as_utc(last_ts)


def commit_mutation(
    db: Session,
    session: ChatSession,
    *,
    expected_version: int,
    entries: Iterable[NewEntry] = (),
    next_state: Optional[ConversationState] = None,
) -> ChatSession:
    """Atomically append ``entries`` and (optionally) move to ``next_state``.

    Raises StoreConflict when another writer bumped the session's version
    since it was read; nothing is written in that case.
    """
    now = _utcnow()
    values = {"version": expected_version + 1, "updated_at": now}
    if next_state is not None:
        values["state"] = ConversationState(next_state).value

    try:
        result = db.execute(
            update(ChatSession)
            .where(ChatSession.id == session.id, ChatSession.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StoreConflict(session.identity, expected_version)

        position, last_ts = _transcript_tail(db, session)
        for entry in entries:
            timestamp = now if last_ts is None or now >= last_ts else last_ts
            db.add(
                TranscriptEntry(
                    session_id=session.id,
                    position=position,
                    sender=entry.sender,
                    body=entry.body,
                    media_ref=entry.media_ref,
                    provider_message_id=entry.provider_message_id,
                    timestamp=timestamp,
                )
            )
            position += 1
            last_ts = timestamp

        db.flush()
        db.commit()
    except StoreConflict:
        db.rollback()
        raise
    except IntegrityError as e:
        # A concurrent writer took the same transcript position
        db.rollback()
        raise StoreConflict(session.identity, expected_version) from e

    db.refresh(session)
    return session


def append_entries(db: Session, identity: str, entries: Iterable[NewEntry], *, retries: int = 3) -> ChatSession:
    """Find-or-create and append without changing state, retrying on conflict."""
    entries = tuple(entries)
    attempt = 0
    while True:
        session = get_or_create_session(db, identity)
        try:
            return commit_mutation(db, session, expected_version=session.version, entries=entries)
        except StoreConflict:
            attempt += 1
            if attempt > retries:
                raise
            logger.warning(
                f"Append conflict for {identity}, retry {attempt}/{retries}",
                extra={"context": {"identity": identity}},
            )
            db.expire_all()
