from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel

from domain import ActionKind, AnalysisContext
from logger import get_logger, log_exception, log_performance
from core.backend import AnalysisBackend
from core.contracts import parse_payload
from core.errors import AnalysisError, BackendError, NetworkError

logger = get_logger(__name__)


class AnalysisResult:
    """Outcome of one analysis call: a typed payload or a typed failure."""

    def __init__(self, action: ActionKind, payload: Optional[BaseModel] = None,
                 error: Optional[AnalysisError] = None, duration_ms: float = 0.0):
        self.action = action
        self.payload = payload
        self.error = error
        self.duration_ms = duration_ms

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> BaseModel:
        if self.error is not None:
            raise self.error
        return self.payload

    def __str__(self) -> str:
        status = "OK" if self.ok else f"FAILED({type(self.error).__name__})"
        return f"AnalysisResult({self.action.value}, {status})"


class AnalysisClient:
    """Issues single analysis requests. No retries: retry policy belongs to callers."""

    def __init__(self, backend: AnalysisBackend, timeout: Optional[float] = None) -> None:
        self.backend = backend
        self.timeout = timeout

    def build_request(self, content: str, document_type: str, action: ActionKind,
                      context: Optional[AnalysisContext] = None, **options: Any) -> Dict[str, Any]:
        request: Dict[str, Any] = {"content": content, "documentType": document_type, "action": action.value}
        if context is not None:
            for key, value in (("programId", context.program_id),
                               ("documentId", context.document_id),
                               ("userId", context.user_id)):
                if value is not None:
                    request[key] = value
        request.update({k: v for k, v in options.items() if v is not None})
        return request

    async def analyze(self, content: str, document_type: str, action: ActionKind,
                      context: Optional[AnalysisContext] = None, **options: Any) -> AnalysisResult:
        request = self.build_request(content, document_type, action, context, **options)
        t0 = time.perf_counter()
        try:
            if self.timeout:
                raw = await asyncio.wait_for(self.backend.invoke(request), self.timeout)
            else:
                raw = await self.backend.invoke(request)
            if not raw:
                raise BackendError("Empty response from reasoning service", action=action.value)
            if isinstance(raw, dict) and raw.get("error"):
                raise BackendError("Reasoning service reported an error", action=action.value,
                                   reason=str(raw["error"]))
            result = AnalysisResult(action, payload=parse_payload(action, raw))
        except AnalysisError as e:
            if e.action is None:
                e.action = action.value
            result = AnalysisResult(action, error=e)
        except asyncio.TimeoutError:
            result = AnalysisResult(action, error=NetworkError(
                "Reasoning service timed out", action=action.value, reason=f"after {self.timeout}s"))
        except Exception as e:
            log_exception("ANALYSIS_UNEXPECTED", e)
            result = AnalysisResult(action, error=BackendError(
                "Unexpected reasoning service failure", action=action.value, reason=repr(e)))

        result.duration_ms = (time.perf_counter() - t0) * 1000
        log_performance("ANALYSIS_CALL", result.duration_ms, action=action.value, success=result.ok,
                        error_type=type(result.error).__name__ if result.error else None)
        return result
