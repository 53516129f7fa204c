import json
import logging

from chatdesk.logging_config import JSONFormatter, bind_logger, get_logger


def _record(msg="hello", **extra):
    record = logging.LogRecord("chatdesk.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "chatdesk.test"
        assert data["message"] == "hello"
        assert "context" not in data

    def test_context_included(self):
        data = json.loads(JSONFormatter().format(_record(context={"identity": "+233241234567"})))
        assert data["context"] == {"identity": "+233241234567"}


class TestLoggers:
    def test_namespace(self):
        assert get_logger("dispatcher").name == "chatdesk.dispatcher"

    def test_bound_context_merged_with_call_context(self):
        adapter = bind_logger("dispatcher", identity="+233241234567")
        msg, kwargs = adapter.process("Transition", {"context": {"reply": "TextReply"}})
        assert msg == "Transition"
        assert kwargs["extra"]["context"] == {"identity": "+233241234567", "reply": "TextReply"}
