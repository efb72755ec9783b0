from __future__ import annotations

import os
import asyncio
import json
import time
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from settings import Settings
from logger import get_logger, log_exception, log_json
from language_model import OpenAIModel, analytics_store
from core.analysis_client import AnalysisClient
from core.backend import AnalysisBackend, LLMAnalysisBackend
from core.document_store import DocumentStore, FileDocumentStore
from core.draft import DraftRegenerator
from core.errors import (
    AnalysisError,
    DraftConflictError,
    EmptyContentError,
    InsufficientFeedbackError,
    SessionDisposedError,
)
from core.feedback import FeedbackAggregator
from core.feedback_flow import FeedbackFlow
from core.notifier import CompositeNotifier, LoggingNotifier, Notification, Notifier
from core.quote_matcher import QuotedImprovementMatcher
from core.realtime import RealtimeAnalysisScheduler
from core.session import EditorSession
from api.websocket_notifications import WebSocketNotifier, manager as ws_manager, router as ws_router

logger = get_logger('api.main')

VERSION = "1.0.0"


# Standardized error response utilities
class APIError(Exception):
    """Custom exception for API errors with standardized format"""
    def __init__(self, message: str, status_code: int = 500, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or f"ERROR_{status_code}"
        self.details = details or {}
        super().__init__(self.message)


def _make_json_safe(obj: Any) -> Any:
    """Recursively convert objects to JSON-serializable forms."""
    try:
        json.dumps(obj)
        return obj
    except TypeError:
        pass
    if isinstance(obj, BaseException):
        return str(obj)
    if isinstance(obj, dict):
        return {str(_make_json_safe(k)): _make_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_make_json_safe(v) for v in obj]
    return repr(obj)


def create_error_response(message: str, status_code: int = 500, error_code: str = None, details: Dict[str, Any] = None) -> JSONResponse:
    """Create a standardized error response (always JSON-serializable)."""
    error_data = {
        "error": message,
        "status_code": status_code,
        "error_code": error_code or f"ERROR_{status_code}",
        "timestamp": datetime.now().isoformat(),
        "details": details or {}
    }
    return JSONResponse(_make_json_safe(error_data), status_code=status_code)


# Lazily built collaborators; tests replace them before the app starts
_settings: Optional[Settings] = None
_backend: Optional[AnalysisBackend] = None
_store: Optional[DocumentStore] = None
_notifier: Optional[Notifier] = None
_global_lock = threading.RLock()


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        with _global_lock:
            if _settings is None:
                _settings = Settings.load()
    return _settings


def get_backend() -> AnalysisBackend:
    global _backend
    if _backend is None:
        with _global_lock:
            if _backend is None:
                s = get_settings()
                feedback_model = OpenAIModel(s.openai_api_key, model=s.feedback_model,
                                             timeout=s.request_timeout_s, max_input_tokens=s.max_input_tokens)
                realtime_model = OpenAIModel(s.openai_api_key, model=s.realtime_model,
                                             timeout=s.request_timeout_s, max_input_tokens=s.max_input_tokens)
                _backend = LLMAnalysisBackend(feedback_model, realtime_model)
    return _backend


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        with _global_lock:
            if _store is None:
                _store = FileDocumentStore(get_settings().documents_dir)
    return _store


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        with _global_lock:
            if _notifier is None:
                _notifier = CompositeNotifier([LoggingNotifier(), WebSocketNotifier(ws_manager)])
    return _notifier


@dataclass
class SessionEntry:
    session: EditorSession
    scheduler: RealtimeAnalysisScheduler
    flow: FeedbackFlow


_sessions: Dict[str, SessionEntry] = {}
_background: Set[asyncio.Task] = set()


def _spawn(coro) -> None:
    task = asyncio.get_running_loop().create_task(coro)
    _background.add(task)
    task.add_done_callback(_background.discard)


def _open_session(session: EditorSession) -> SessionEntry:
    settings = get_settings()
    client = AnalysisClient(get_backend(), timeout=settings.request_timeout_s)
    scheduler = RealtimeAnalysisScheduler(session, client, debounce_s=settings.debounce_s,
                                          min_chars=settings.min_realtime_chars)
    flow = FeedbackFlow(
        session,
        FeedbackAggregator(client, default_tone=settings.default_tone),
        DraftRegenerator(client),
        notifier=get_notifier(),
        store=get_store(),
        matcher=QuotedImprovementMatcher(threshold=settings.match_threshold),
    )

    def push_analysis(analysis, suggestions, seq):
        _spawn(ws_manager.broadcast(session.session_id, {
            "type": "analysis",
            "sessionId": session.session_id,
            "seq": seq,
            "analysis": analysis.to_dict(),
            "suggestions": [s.to_dict() for s in suggestions],
        }))

    scheduler.add_listener(push_analysis)
    entry = SessionEntry(session, scheduler, flow)
    _sessions[session.session_id] = entry
    return entry


def _get_entry(session_id: str) -> SessionEntry:
    entry = _sessions.get(session_id)
    if entry is None or entry.session.disposed:
        raise APIError(f"Session {session_id} not found", 404, "SESSION_NOT_FOUND")
    return entry


@asynccontextmanager
async def lifespan(app: FastAPI):
    s = get_settings()
    logger.info(f"Starting feedback service (feedback={s.feedback_model}, realtime={s.realtime_model})")
    if not s.openai_api_key and _backend is None:
        logger.warning("OPENAI_API_KEY is not set; analysis calls will fail")
    try:
        yield
    finally:
        logger.info(f"Shutting down; disposing {len(_sessions)} session(s)")
        for entry in list(_sessions.values()):
            entry.session.dispose()
        _sessions.clear()
        for task in list(_background):
            task.cancel()


app = FastAPI(title="Application Feedback Assistant API", version=VERSION, lifespan=lifespan)
app.include_router(ws_router)


# Global exception handlers for standardized errors
@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    logger.warning(f"APIError: {exc.message}")
    return create_error_response(exc.message, exc.status_code, exc.error_code, exc.details)


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    return create_error_response(exc.message, 502, exc.error_code, {"action": exc.action, "reason": exc.reason})


@app.exception_handler(EmptyContentError)
@app.exception_handler(InsufficientFeedbackError)
async def precondition_error_handler(request: Request, exc: ValueError):
    return create_error_response(str(exc), 400, exc.error_code)


@app.exception_handler(DraftConflictError)
async def draft_conflict_handler(request: Request, exc: DraftConflictError):
    return create_error_response(str(exc), 409, exc.error_code, {"hint": "Resend with confirm=true to overwrite"})


@app.exception_handler(SessionDisposedError)
async def session_disposed_handler(request: Request, exc: SessionDisposedError):
    return create_error_response(str(exc), 404, exc.error_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return create_error_response("Validation error", 422, "REQUEST_VALIDATION_ERROR", {"detail": exc.errors()})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_exception("UNHANDLED_API_ERROR", exc)
    return create_error_response("Internal server error", 500, "INTERNAL_ERROR")


app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("CORS_ALLOW_ORIGINS", "*")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logger(request, call_next):
    t0 = time.perf_counter()
    response = await call_next(request)
    if os.getenv("DEBUG_REQUEST_LOG", "").strip() == "1":
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} "
                    f"({(time.perf_counter() - t0) * 1000:.1f}ms)")
    return response


class SessionCreateRequest(BaseModel):
    document_type: str
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    program_id: Optional[str] = None
    content: Optional[str] = None


class ContentUpdateRequest(BaseModel):
    content: str


class OpenDocumentRequest(BaseModel):
    document_type: str
    content: str = ""
    document_id: Optional[str] = None
    program_id: Optional[str] = None


class FeedbackRequest(BaseModel):
    tone: Optional[str] = None
    file_name: Optional[str] = None


class ApplyDraftRequest(BaseModel):
    confirm: bool = False


class DocumentCreateRequest(BaseModel):
    document_type: str
    content: str
    program_id: Optional[str] = None
    user_id: Optional[str] = None
    file_name: Optional[str] = None
    session_id: Optional[str] = None


class DocumentUpdateRequest(BaseModel):
    content: Optional[str] = None
    feedback: Optional[Dict[str, Any]] = None
    file_name: Optional[str] = None
    program_id: Optional[str] = None


def _session_view(entry: SessionEntry) -> Dict[str, Any]:
    s = entry.session
    return {
        "sessionId": s.session_id,
        "documentType": s.document_type,
        "documentId": s.document_id,
        "programId": s.program_id,
        "userId": s.user_id,
        "state": s.state.value,
        "realtimeState": entry.scheduler.state.value,
        "writingSession": s.writing.to_dict(),
    }


@app.get("/")
async def root() -> Dict[str, Any]:
    """Root endpoint to show server is running."""
    return {
        "message": "Application Feedback Assistant API is running",
        "version": VERSION,
        "status": "online",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health() -> Dict[str, Any]:
    s = get_settings()
    checks: Dict[str, Any] = {
        "openai_key": bool(s.openai_api_key) or _backend is not None,
        "sessions": len(_sessions),
    }
    try:
        os.makedirs(s.documents_dir, exist_ok=True)
        checks["storage"] = os.access(s.documents_dir, os.W_OK)
    except OSError as e:
        logger.error(f"Storage check failed: {e}")
        checks["storage"] = False
    healthy = checks["openai_key"] and checks["storage"]
    return {
        "status": "healthy" if healthy else "degraded",
        "version": VERSION,
        "timestamp": time.time(),
        "checks": checks,
    }


@app.get("/analytics")
async def analytics() -> Dict[str, Any]:
    return {
        "total_requests": analytics_store.total_requests,
        "total_tokens_in": analytics_store.total_tokens_in,
        "total_tokens_out": analytics_store.total_tokens_out,
        "total_cost": round(analytics_store.total_cost, 6),
        "last_24h": analytics_store.summary_last_24h(),
    }


@app.post("/sessions")
async def create_session(req: SessionCreateRequest) -> Dict[str, Any]:
    content = req.content
    if content is None and req.document_id:
        stored = await get_store().get_document(req.document_id)
        if stored is None:
            raise APIError(f"Document {req.document_id} not found", 404, "DOCUMENT_NOT_FOUND")
        content = stored.content
    session = EditorSession(req.document_type, user_id=req.user_id, document_id=req.document_id,
                            program_id=req.program_id, content=content or "")
    entry = _open_session(session)
    entry.scheduler.on_content_change(session.content)
    log_json("SESSION_OPENED", "Editor session opened", session_id=session.session_id,
             document_type=req.document_type, document_id=req.document_id)
    return _session_view(entry)


@app.put("/sessions/{session_id}/content")
async def update_content(session_id: str, req: ContentUpdateRequest) -> Dict[str, Any]:
    entry = _get_entry(session_id)
    changed = entry.session.record_edit(req.content)
    armed = entry.scheduler.on_content_change(req.content) if changed else False
    view = _session_view(entry)
    view["changed"] = changed
    view["analysisScheduled"] = armed
    return view


@app.post("/sessions/{session_id}/open")
async def open_document(session_id: str, req: OpenDocumentRequest) -> Dict[str, Any]:
    entry = _get_entry(session_id)
    entry.session.open_document(req.document_type, req.content, document_id=req.document_id,
                                program_id=req.program_id)
    entry.scheduler.on_content_change(req.content)
    return _session_view(entry)


@app.get("/sessions/{session_id}/analysis")
async def get_analysis(session_id: str, wait: bool = False) -> Dict[str, Any]:
    """Latest accepted realtime snapshot. With wait=true, returns once pending work settles."""
    entry = _get_entry(session_id)
    if wait:
        await entry.scheduler.wait_idle()
    analysis = entry.scheduler.current_analysis
    return {
        "sessionId": session_id,
        "seq": entry.scheduler.analysis_seq,
        "state": entry.scheduler.state.value,
        "analysis": analysis.to_dict() if analysis else None,
        "suggestions": [s.to_dict() for s in entry.scheduler.suggestions],
        "writingSession": entry.session.writing.to_dict(),
    }


@app.post("/sessions/{session_id}/feedback")
async def request_feedback(session_id: str, req: FeedbackRequest) -> Dict[str, Any]:
    entry = _get_entry(session_id)
    feedback = await entry.flow.request_feedback(tone=req.tone, file_name=req.file_name)
    anchored = entry.flow.matcher.match_all(entry.session.content, feedback.quoted_improvements)
    return {
        "sessionId": session_id,
        "feedback": feedback.to_dict(),
        "quotes": [a.to_dict() for a in anchored],
    }


@app.get("/sessions/{session_id}/quotes")
async def resolve_quotes(session_id: str) -> Dict[str, Any]:
    entry = _get_entry(session_id)
    return {"sessionId": session_id, "quotes": [a.to_dict() for a in entry.flow.resolve_quotes()]}


@app.post("/sessions/{session_id}/draft")
async def generate_draft(session_id: str) -> Dict[str, Any]:
    entry = _get_entry(session_id)
    proposal = await entry.flow.regenerate_draft()
    return {"sessionId": session_id, "draft": proposal.to_dict()}


@app.post("/sessions/{session_id}/draft/apply")
async def apply_draft(session_id: str, req: ApplyDraftRequest) -> Dict[str, Any]:
    entry = _get_entry(session_id)
    content = await entry.flow.apply_draft(confirm=req.confirm)
    entry.scheduler.on_content_change(content)
    return {
        "sessionId": session_id,
        "content": content,
        "previousContent": entry.flow.proposal.previous_content,
    }


@app.delete("/sessions/{session_id}")
async def close_session(session_id: str) -> Dict[str, Any]:
    entry = _get_entry(session_id)
    entry.session.dispose()
    _sessions.pop(session_id, None)
    return {"sessionId": session_id, "disposed": True}


@app.post("/documents")
async def create_document(req: DocumentCreateRequest) -> Dict[str, Any]:
    store = get_store()
    document_id = await store.create_document(req.document_type, req.content, program_id=req.program_id,
                                              user_id=req.user_id, file_name=req.file_name)
    doc = await store.get_document(document_id)
    await get_notifier().notify(Notification(
        "success", "Document saved", f"{req.document_type} version {doc.version_number}", req.session_id))
    return doc.to_dict()


@app.get("/documents/versions")
async def list_versions(document_type: str, program_id: Optional[str] = None,
                        user_id: Optional[str] = None) -> Dict[str, Any]:
    versions = await get_store().list_versions(document_type, program_id=program_id, user_id=user_id)
    return {"versions": [d.to_dict() for d in versions]}


@app.get("/documents/{document_id}")
async def get_document(document_id: str) -> Dict[str, Any]:
    doc = await get_store().get_document(document_id)
    if doc is None:
        raise APIError(f"Document {document_id} not found", 404, "DOCUMENT_NOT_FOUND")
    return doc.to_dict()


@app.patch("/documents/{document_id}")
async def update_document(document_id: str, req: DocumentUpdateRequest) -> Dict[str, Any]:
    changes = req.model_dump(exclude_unset=True)
    try:
        doc = await get_store().update_document(document_id, **changes)
    except KeyError:
        raise APIError(f"Document {document_id} not found", 404, "DOCUMENT_NOT_FOUND")
    except ValueError as e:
        raise APIError(str(e), 400, "INVALID_UPDATE")
    return doc.to_dict()


def create_app() -> FastAPI:
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
