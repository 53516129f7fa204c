from sqlalchemy.orm import sessionmaker

from chatdesk.services import session_store
from chatdesk.services.replies import MediaReply, TextReply
from chatdesk.services.result import Result
from chatdesk.services.session_store import SENDER_OPERATOR, SENDER_USER, NewEntry, append_entries
from tests.conftest import make_envelope, text_message

IDENTITY = "+233241234567"


def _transcript(engine, identity=IDENTITY):
    db = sessionmaker(bind=engine)()
    try:
        session = session_store.find_session(db, identity)
        if session is None:
            return None
        return [(e.sender, e.body, e.media_ref) for e in session_store.get_transcript(db, session)]
    finally:
        db.close()


class TestSendMessage:
    def test_raw_phone_stored_under_canonical_identity(self, client, engine, sender):
        response = client.post("/api/chats/sendMessage", json={"phoneNumber": "0241234567", "message": "hello"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["identity"] == IDENTITY
        sender.send.assert_called_once_with(IDENTITY, TextReply("hello"))
        assert _transcript(engine) == [(SENDER_OPERATOR, "hello", None)]
        assert _transcript(engine, "0241234567") is None

    def test_media_message(self, client, engine, sender):
        response = client.post("/api/chats/sendMessage", json={"phoneNumber": IDENTITY, "mediaId": "media-42"})

        assert response.status_code == 200
        sender.send.assert_called_once_with(IDENTITY, MediaReply(media_ref="media-42", media_type="image"))
        assert _transcript(engine) == [(SENDER_OPERATOR, None, "media-42")]

    def test_delivery_failure_reported_but_recorded(self, client, engine, sender):
        sender.send.return_value = Result.failure("Provider rejected message: HTTP 401", "provider_rejected")

        response = client.post("/api/chats/sendMessage", json={"phoneNumber": "0241234567", "message": "hello"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "provider_rejected"
        assert _transcript(engine) == [(SENDER_OPERATOR, "hello", None)]

    def test_missing_phone_is_400(self, client, sender):
        response = client.post("/api/chats/sendMessage", json={"message": "hello"})
        assert response.status_code == 400
        sender.send.assert_not_called()

    def test_missing_content_is_400(self, client, sender):
        response = client.post("/api/chats/sendMessage", json={"phoneNumber": "0241234567"})
        assert response.status_code == 400

    def test_invalid_phone_is_400(self, client, sender):
        response = client.post("/api/chats/sendMessage", json={"phoneNumber": "call me", "message": "hi"})
        assert response.status_code == 400
        sender.send.assert_not_called()

    def test_appends_to_existing_conversation(self, client, engine):
        client.post("/api/webhook", json=make_envelope(text_message("233241234567", "3", "wamid.1")))
        client.post("/api/chats/sendMessage", json={"phoneNumber": "0241234567", "message": "Hi, I'm Kofi"})

        transcript = _transcript(engine)
        assert transcript[0][0] == SENDER_USER
        assert transcript[-1] == (SENDER_OPERATOR, "Hi, I'm Kofi", None)


class TestQueries:
    def test_list_most_recent_first(self, client, engine):
        db = sessionmaker(bind=engine)()
        try:
            append_entries(db, "+233200000001", [NewEntry(SENDER_USER, "first")])
            append_entries(db, "+233200000002", [NewEntry(SENDER_USER, "second")])
            append_entries(db, "+233200000001", [NewEntry(SENDER_USER, "again")])
        finally:
            db.close()

        response = client.get("/api/chats")

        assert response.status_code == 200
        chats = response.json()
        assert [c["identity"] for c in chats] == ["+233200000001", "+233200000002"]
        assert set(chats[0]) == {"identity", "state", "updated_at"}

    def test_empty_list(self, client):
        assert client.get("/api/chats").json() == []

    def test_lookup_normalizes_path(self, client):
        client.post("/api/webhook", json=make_envelope(text_message("233241234567", "2", "wamid.1")))

        response = client.get("/api/chats/0241234567")

        assert response.status_code == 200
        chat = response.json()
        assert chat["identity"] == IDENTITY
        assert chat["state"] == "awaiting_menu_choice"
        assert [e["sender"] for e in chat["transcript"]] == ["user", "system"]
        assert [e["position"] for e in chat["transcript"]] == [0, 1]

    def test_unknown_chat_is_404(self, client):
        assert client.get("/api/chats/0209999999").status_code == 404

    def test_invalid_identity_is_400(self, client):
        assert client.get("/api/chats/not-a-number").status_code == 400
