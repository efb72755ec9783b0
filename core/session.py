from __future__ import annotations

import uuid
from enum import Enum
from typing import Callable, List, Optional

from domain import AnalysisContext, WritingSession
from logger import log_event
from core.errors import SessionDisposedError


class SessionState(Enum):
    ACTIVE = "active"
    DISPOSED = "disposed"


class EditorSession:
    """One open editor: identity, live buffer and writing-session stats.

    Components that keep per-editor state (the realtime scheduler, the
    feedback flow) are handed a session explicitly and register a dispose
    callback so closing the editor stops them.
    """

    def __init__(self, document_type: str, *, user_id: Optional[str] = None,
                 document_id: Optional[str] = None, program_id: Optional[str] = None,
                 content: str = "", session_id: Optional[str] = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.document_type = document_type
        self.user_id = user_id
        self.document_id = document_id
        self.program_id = program_id
        self.content = content
        self.writing = WritingSession()
        self.state = SessionState.ACTIVE
        self._dispose_callbacks: List[Callable[[], None]] = []
        self._switch_callbacks: List[Callable[[], None]] = []

    @property
    def context(self) -> AnalysisContext:
        return AnalysisContext(user_id=self.user_id, document_id=self.document_id, program_id=self.program_id)

    @property
    def disposed(self) -> bool:
        return self.state is SessionState.DISPOSED

    def ensure_active(self) -> None:
        if self.disposed:
            raise SessionDisposedError(f"Session {self.session_id} is closed")

    def record_edit(self, content: str) -> bool:
        """Update the buffer; returns True when the content actually changed."""
        self.ensure_active()
        if content == self.content:
            return False
        self.content = content
        self.writing.keystrokes += 1
        return True

    def open_document(self, document_type: str, content: str, document_id: Optional[str] = None,
                      program_id: Optional[str] = None) -> None:
        """Load a document into this editor.

        Switching documents restarts the writing session and runs the switch
        callbacks so per-document state computed for the old buffer is dropped.
        """
        self.ensure_active()
        switched = document_id is None or document_id != self.document_id or document_type != self.document_type
        if switched:
            self.writing = WritingSession()
        self.document_type = document_type
        self.document_id = document_id
        self.program_id = program_id
        self.content = content
        if switched:
            for callback in list(self._switch_callbacks):
                callback()
            log_event("DOCUMENT_SWITCHED", f"{self.session_id} -> {document_type} {document_id or '(unsaved)'}")

    def on_document_switch(self, callback: Callable[[], None]) -> None:
        self._switch_callbacks.append(callback)

    def on_dispose(self, callback: Callable[[], None]) -> None:
        self._dispose_callbacks.append(callback)

    def dispose(self) -> None:
        if self.disposed:
            return
        self.state = SessionState.DISPOSED
        for callback in self._dispose_callbacks:
            callback()
        self._dispose_callbacks.clear()
        self._switch_callbacks.clear()
        log_event("SESSION_DISPOSED", f"{self.session_id} after {self.writing.keystrokes} edits")
