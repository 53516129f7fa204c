from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from chatdesk.config import Settings, get_settings
from chatdesk.database import get_db
from chatdesk.dependencies import get_sender
from chatdesk.exceptions import InvalidIdentity, NotFound, StoreConflict
from chatdesk.logging_config import get_logger
from chatdesk.schemas.chat import ChatDetail, ChatSummary, SendMessageRequest, SendMessageResponse, TranscriptEntryOut
from chatdesk.services import session_store
from chatdesk.services.identity import normalizer_for
from chatdesk.services.replies import MediaReply, TextReply
from chatdesk.services.session_store import SENDER_OPERATOR, NewEntry
from chatdesk.services.whatsapp_service import WhatsAppService

logger = get_logger("chats")

router = APIRouter(prefix="/api/chats", tags=["chats"])


@router.get("", response_model=list[ChatSummary])
def list_chats(db: Session = Depends(get_db)):
    """All conversations, most recently updated first."""
    return session_store.list_sessions(db)


@router.post("/sendMessage", response_model=SendMessageResponse)
def send_message(
    request: SendMessageRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sender: WhatsAppService = Depends(get_sender),
):
    """Operator-initiated message. The transcript records it even when delivery fails."""
    if not request.phone_number or not (request.message or request.media_id):
        raise HTTPException(status_code=400, detail="Phone number and message or mediaId are required.")

    try:
        identity = normalizer_for(settings)(request.phone_number)
    except InvalidIdentity as e:
        raise HTTPException(status_code=400, detail=e.message)

    if request.media_id:
        reply = MediaReply(media_ref=request.media_id, media_type="image", caption=request.message)
    else:
        reply = TextReply(body=request.message)

    result = sender.send(identity, reply)

    try:
        session_store.append_entries(
            db,
            identity,
            [NewEntry(sender=SENDER_OPERATOR, body=request.message, media_ref=request.media_id)],
            retries=settings.store_conflict_retries,
        )
    except StoreConflict as e:
        logger.error(f"Operator message to {identity} not recorded: {e.message}")
        raise

    if not result.ok:
        logger.warning(f"Operator message to {identity} not delivered: {result.error}")

    return SendMessageResponse(
        success=result.ok,
        identity=identity,
        error=result.error,
        error_code=result.error_code,
        data=result.value,
    )


@router.get("/{phone_number}", response_model=ChatDetail)
def get_chat(
    phone_number: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        identity = normalizer_for(settings)(phone_number)
    except InvalidIdentity as e:
        raise HTTPException(status_code=400, detail=e.message)

    try:
        session = session_store.get_session(db, identity)
    except NotFound:
        raise HTTPException(status_code=404, detail="Chat not found")

    return ChatDetail(
        identity=session.identity,
        state=session.state,
        created_at=session.created_at,
        updated_at=session.updated_at,
        transcript=[TranscriptEntryOut.model_validate(e) for e in session_store.get_transcript(db, session)],
    )
