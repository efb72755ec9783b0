import asyncio

import pytest

from api import websocket_notifications
from api.websocket_notifications import ConnectionManager, WebSocketNotifier
from core.errors import SessionDisposedError
from core.notifier import CompositeNotifier, LoggingNotifier, Notification
from core.session import EditorSession, SessionState
from settings import Settings


def test_record_edit_counts_only_real_changes():
    session = EditorSession("SOP", content="abc")
    assert not session.record_edit("abc")
    assert session.record_edit("abcd")
    assert session.writing.keystrokes == 1
    assert session.content == "abcd"


def test_open_document_resets_writing_session_for_other_documents():
    session = EditorSession("SOP", document_id="d1", content="one")
    session.record_edit("one two")
    session.open_document("SOP", "one two", document_id="d1")
    assert session.writing.keystrokes == 1
    session.open_document("CV", "cv text", document_id="d2")
    assert session.writing.keystrokes == 0
    assert session.context.document_id == "d2"


def test_dispose_runs_callbacks_once():
    session = EditorSession("SOP")
    calls = []
    session.on_dispose(lambda: calls.append("x"))
    session.dispose()
    session.dispose()
    assert calls == ["x"]
    assert session.state is SessionState.DISPOSED
    with pytest.raises(SessionDisposedError):
        session.record_edit("late")


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def accept(self):
        pass

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("closed")
        self.sent.append(data)


def test_websocket_notifier_broadcasts_to_session_and_drops_dead_sockets(notifier):
    connections = ConnectionManager()
    alive, dead, other = FakeSocket(), FakeSocket(fail=True), FakeSocket()
    connections.active_connections = {"s1": [alive, dead], "s2": [other]}
    composite = CompositeNotifier([LoggingNotifier(), WebSocketNotifier(connections), notifier])

    asyncio.run(composite.notify(Notification("error", "Failed to generate feedback", "Try again", "s1", "503")))

    assert alive.sent[0]["type"] == "notification"
    assert alive.sent[0]["title"] == "Failed to generate feedback"
    assert alive.sent[0]["reason"] == "503"
    assert other.sent == []
    assert connections.active_connections["s1"] == [alive]
    assert notifier.titles() == ["Failed to generate feedback"]


def test_settings_fall_back_on_malformed_values(monkeypatch):
    monkeypatch.setenv("REALTIME_DEBOUNCE", "soon")
    monkeypatch.setenv("REALTIME_MIN_CHARS", "-4")
    monkeypatch.setenv("QUOTE_MATCH_THRESHOLD", "0.9")
    settings = Settings.load()
    assert settings.debounce_s == 2.0
    assert settings.min_realtime_chars == 50
    assert settings.match_threshold == 0.9


def test_heartbeat_to_closed_socket_unregisters_it(monkeypatch):
    connections = ConnectionManager()
    monkeypatch.setattr(websocket_notifications, "manager", connections)
    dead = FakeSocket(fail=True)

    asyncio.run(websocket_notifications.websocket_session(dead, "s1"))

    assert connections.active_connections == {}
