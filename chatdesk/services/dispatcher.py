"""Webhook event dispatch.

Turns one provider envelope into per-message work: normalize the sender,
decide the transition, persist inbound entry + transition atomically, then try
to deliver the reply. Each message's outcome is independent of its siblings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from chatdesk.config import Settings
from chatdesk.exceptions import InvalidIdentity, StoreConflict
from chatdesk.logging_config import bind_logger, get_logger
from chatdesk.schemas.webhook import WHATSAPP_OBJECT, InboundMessage, StatusUpdate
from chatdesk.services import session_store
from chatdesk.services.identity import normalizer_for
from chatdesk.services.replies import ReplyPlan, transcript_body, transcript_media_ref
from chatdesk.services.result import Result
from chatdesk.services.session_store import SENDER_SYSTEM, SENDER_USER, NewEntry
from chatdesk.services.state_machine import (
    INITIAL_STATE,
    InboundInput,
    TransitionPlan,
    UnknownStateError,
    decide,
    parse_state,
)
from chatdesk.services.whatsapp_service import WhatsAppService

logger = get_logger("dispatcher")


class DispatchStatus(str, Enum):
    ACCEPTED = "accepted"
    NOT_RECOGNIZED = "not_recognized"


class MessageStatus(str, Enum):
    PROCESSED = "processed"  # transition persisted, reply (if any) delivered
    SEND_FAILED = "send_failed"  # transition persisted, reply delivery failed
    DUPLICATE = "duplicate"
    INVALID_IDENTITY = "invalid_identity"
    MALFORMED = "malformed"
    STORE_CONFLICT = "store_conflict"


@dataclass
class MessageOutcome:
    provider_message_id: Optional[str]
    status: MessageStatus
    identity: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class DispatchOutcome:
    status: DispatchStatus
    messages: list[MessageOutcome] = field(default_factory=list)
    statuses_seen: int = 0

    @property
    def accepted(self) -> bool:
        return self.status == DispatchStatus.ACCEPTED

    @property
    def failures(self) -> list[MessageOutcome]:
        ok = {MessageStatus.PROCESSED, MessageStatus.DUPLICATE}
        return [m for m in self.messages if m.status not in ok]


def _items(container: Any, key: str) -> list:
    value = container.get(key) if isinstance(container, dict) else None
    return value if isinstance(value, list) else []


def to_inbound_input(message: InboundMessage) -> tuple[InboundInput, Optional[str], Optional[str]]:
    """State-machine input plus the (body, media_ref) recorded in the transcript."""
    kind = message.type or "text"

    if kind == "text":
        text = message.text.body if message.text else None
        return InboundInput(text=text), text, None

    if kind == "interactive":
        reply = message.interactive.reply if message.interactive else None
        choice_id = reply.id if reply else None
        body = (reply.title or reply.id) if reply else None
        return InboundInput(choice_id=choice_id), body, None

    if kind == "button":
        payload = message.button.payload if message.button else None
        body = (message.button.text or payload) if message.button else None
        return InboundInput(choice_id=payload, text=body), body, None

    media = message.media()
    if media is not None:
        media_ref = media.id or media.link
        return InboundInput(text=media.caption, media_ref=media_ref), media.caption, media_ref

    return InboundInput(), f"[unsupported:{kind}]", None


class WebhookDispatcher:
    """Processes provider envelopes against the session store.

    ``settings`` and ``sender`` are given at construction so the dispatcher
    never reads process-wide configuration.
    """

    def __init__(self, settings: Settings, sender: WhatsAppService):
        self.settings = settings
        self.sender = sender
        self.normalize = normalizer_for(settings)

    def handle_event(self, db: Session, envelope: Any) -> DispatchOutcome:
        if not isinstance(envelope, dict) or envelope.get("object") != WHATSAPP_OBJECT:
            kind = envelope.get("object") if isinstance(envelope, dict) else type(envelope).__name__
            logger.info(f"Ignoring webhook for object {kind!r}")
            return DispatchOutcome(status=DispatchStatus.NOT_RECOGNIZED)

        # Past this point the envelope is acknowledged; bad parts are skipped one by one
        outcome = DispatchOutcome(status=DispatchStatus.ACCEPTED)
        for entry in _items(envelope, "entry"):
            for change in _items(entry, "changes"):
                if not isinstance(change, dict) or change.get("field") != "messages":
                    continue
                value = change.get("value")
                for raw_status in _items(value, "statuses"):
                    if self.record_status(raw_status):
                        outcome.statuses_seen += 1
                for raw_message in _items(value, "messages"):
                    outcome.messages.append(self.handle_raw_message(db, raw_message))

        if outcome.failures:
            logger.warning(
                f"Webhook processed with {len(outcome.failures)} failed message(s)",
                extra={"context": {"failures": [f.status.value for f in outcome.failures]}},
            )
        return outcome

    def record_status(self, raw_status: Any) -> bool:
        try:
            status = StatusUpdate.model_validate(raw_status)
        except ValidationError as e:
            logger.warning(f"Skipping malformed status update: {e.error_count()} errors")
            return False
        # Receipts are not correlated with transcript entries
        logger.info(
            f"Status update: message {status.id} is {status.status}",
            extra={"context": {"recipient_id": status.recipient_id, "timestamp": status.timestamp}},
        )
        return True

    def handle_raw_message(self, db: Session, raw_message: Any) -> MessageOutcome:
        try:
            message = InboundMessage.model_validate(raw_message)
        except ValidationError as e:
            message_id = raw_message.get("id") if isinstance(raw_message, dict) else None
            message_id = message_id if isinstance(message_id, str) else None
            logger.warning(f"Skipping malformed inbound message {message_id}: {e.error_count()} errors")
            return MessageOutcome(
                message_id, MessageStatus.MALFORMED, error=f"{e.error_count()} validation errors", error_code="malformed"
            )
        return self.handle_message(db, message)

    def handle_message(self, db: Session, message: InboundMessage) -> MessageOutcome:
        try:
            identity = self.normalize(message.from_)
        except InvalidIdentity as e:
            logger.warning(f"Dropping inbound message {message.id}: {e.message}")
            return MessageOutcome(message.id, MessageStatus.INVALID_IDENTITY, error=e.message, error_code=e.code)

        log = bind_logger("dispatcher", identity=identity, message_id=message.id)
        inbound, body, media_ref = to_inbound_input(message)
        inbound_entry = NewEntry(
            sender=SENDER_USER,
            body=body if body or media_ref else "[empty]",
            media_ref=media_ref,
            provider_message_id=message.id,
        )

        try:
            plan = self._apply_transition(db, identity, inbound, inbound_entry, log)
        except StoreConflict as e:
            log.error(f"Giving up after repeated store conflicts: {e.message}")
            return MessageOutcome(message.id, MessageStatus.STORE_CONFLICT, identity, error=e.message, error_code=e.code)

        if plan is None:
            log.info("Duplicate delivery skipped")
            return MessageOutcome(message.id, MessageStatus.DUPLICATE, identity)

        state = plan.next_state.value
        if plan.reply is None:
            return MessageOutcome(message.id, MessageStatus.PROCESSED, identity, state)

        result = self.deliver(identity, plan.reply)
        if not result.ok:
            log.warning(f"Reply not delivered: {result.error}", context={"error_code": result.error_code})
            return MessageOutcome(
                message.id, MessageStatus.SEND_FAILED, identity, state, error=result.error, error_code=result.error_code
            )

        try:
            session_store.append_entries(
                db,
                identity,
                [NewEntry(SENDER_SYSTEM, transcript_body(plan.reply), transcript_media_ref(plan.reply))],
                retries=self.settings.store_conflict_retries,
            )
        except StoreConflict as e:
            log.error(f"Reply sent but not recorded: {e.message}")
            return MessageOutcome(message.id, MessageStatus.STORE_CONFLICT, identity, state, e.message, e.code)

        return MessageOutcome(message.id, MessageStatus.PROCESSED, identity, state)

    def _apply_transition(
        self,
        db: Session,
        identity: str,
        inbound: InboundInput,
        inbound_entry: NewEntry,
        log,
    ) -> Optional[TransitionPlan]:
        """Persist inbound entry and transition; None when the message was already applied."""
        retries = self.settings.store_conflict_retries
        attempt = 0
        while True:
            session = session_store.get_or_create_session(db, identity)
            if session_store.has_provider_message(db, session, inbound_entry.provider_message_id):
                return None

            try:
                current = parse_state(session.state)
            except UnknownStateError:
                log.error(f"Session has unknown state {session.state!r}, restarting menu")
                current = INITIAL_STATE

            plan = decide(current, inbound)
            entries = [inbound_entry]
            entries.extend(NewEntry(sender=a.sender, body=a.body) for a in plan.transcript_additions)

            try:
                session_store.commit_mutation(
                    db,
                    session,
                    expected_version=session.version,
                    entries=entries,
                    next_state=plan.next_state,
                )
            except StoreConflict:
                attempt += 1
                if attempt > retries:
                    raise
                log.warning(f"Store conflict, re-deciding (retry {attempt}/{retries})")
                db.expire_all()
                continue

            log.info(
                f"Transition {current.value} -> {plan.next_state.value}",
                context={"reply": type(plan.reply).__name__ if plan.reply else None},
            )
            return plan

    def deliver(self, identity: str, reply: ReplyPlan) -> Result[dict]:
        """Send with up to ``outbound_retries`` extra attempts on transport errors."""
        result = self.sender.send(identity, reply)
        attempts = 0
        while result.retryable and attempts < self.settings.outbound_retries:
            attempts += 1
            logger.info(f"Retrying send to {identity} ({attempts}/{self.settings.outbound_retries})")
            result = self.sender.send(identity, reply)
        return result
