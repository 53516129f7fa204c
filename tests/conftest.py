import os
from unittest.mock import Mock

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chatdesk.config import Settings
from chatdesk.database import Base
from chatdesk.services.result import Result
from chatdesk.services.whatsapp_service import WhatsAppService


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        whatsapp_token="test-token",
        phone_number_id="1234567890",
        verify_token="verify-me",
        whatsapp_app_secret="",
        default_country_code="233",
        identity_strict=False,
        store_conflict_retries=3,
        outbound_retries=0,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import chatdesk.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Real SQLite session with the chatdesk schema."""
    SessionTesting = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionTesting()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sender():
    """Sender double that accepts every message."""
    mock = Mock(spec=WhatsAppService)
    mock.send.return_value = Result.success({"messages": [{"id": "wamid.out"}]})
    return mock


def make_envelope(*messages, statuses=(), object_kind="whatsapp_business_account"):
    return {
        "object": object_kind,
        "entry": [
            {
                "id": "WABA_ID",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"display_phone_number": "15550000000", "phone_number_id": "1234567890"},
                            "messages": list(messages),
                            "statuses": list(statuses),
                        },
                    }
                ],
            }
        ],
    }


def text_message(sender_phone, body, message_id):
    return {
        "from": sender_phone,
        "id": message_id,
        "timestamp": "1702000000",
        "type": "text",
        "text": {"body": body},
    }


def button_message(sender_phone, button_id, title, message_id):
    return {
        "from": sender_phone,
        "id": message_id,
        "timestamp": "1702000000",
        "type": "interactive",
        "interactive": {"type": "button_reply", "button_reply": {"id": button_id, "title": title}},
    }


@pytest.fixture
def client(engine, settings, sender):
    """TestClient wired to the SQLite engine, test settings and the sender double."""
    from fastapi.testclient import TestClient

    from chatdesk.config import get_settings
    from chatdesk.database import get_db
    from chatdesk.dependencies import get_sender
    from chatdesk.main import app

    SessionTesting = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        db = SessionTesting()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_sender] = lambda: sender
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
