"""
Realtime writing assistant.

Debounces editor changes, fans out one call per analysis axis, and merges
the results into a single ContentAnalysis. Every cycle carries a sequence
number; only the most recently issued cycle may publish, so a slow older
cycle can never overwrite a newer snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from domain import REALTIME_AXES, ActionKind, ContentAnalysis, RealtimeSuggestion, SuggestionKind
from logger import get_logger, log_event, log_exception
from core.analysis_client import AnalysisClient, AnalysisResult
from core.session import EditorSession

logger = get_logger(__name__)

TONE_WARNING_BELOW = 70
REDUNDANCY_NOTE_BELOW = 70
COMPLETION_PRAISE_FROM = 80

AnalysisListener = Callable[[ContentAnalysis, Tuple[RealtimeSuggestion, ...], int], Any]


class SchedulerState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DISPOSED = "disposed"


def merge_axis_results(results: Iterable[AnalysisResult]) -> ContentAnalysis:
    """Merge per-axis results. Order-independent; failed axes keep their defaults."""
    fields: Dict[str, Any] = {}
    failed: List[str] = []
    for result in results:
        if not result.ok:
            failed.append(result.action.value)
            continue
        p = result.payload
        if result.action is ActionKind.REALTIME_SUGGESTIONS:
            fields.update(suggestions=tuple(p.suggestions), context=p.context)
        elif result.action is ActionKind.CONTENT_GAP_DETECTION:
            fields.update(missing_elements=tuple(p.missing_elements), gap_analysis=p.gap_analysis,
                          completion_score=p.completion_score)
        elif result.action is ActionKind.TONE_CONSISTENCY:
            fields.update(tone_score=p.tone_score, tone_analysis=p.tone_analysis)
        elif result.action is ActionKind.REDUNDANCY_CHECK:
            fields.update(redundancy_score=p.redundancy_score, redundant_phrases=tuple(p.redundant_phrases),
                          word_count=p.word_count)
    return ContentAnalysis(failed_axes=tuple(sorted(failed)), **fields)


def derive_suggestions(analysis: ContentAnalysis) -> List[RealtimeSuggestion]:
    """Suggestions first, then warnings, then improvements.

    Axes that failed this cycle contribute nothing, unlike the browser
    assistant which warned on any score below 70: a zero from an outage is
    not reported as a tone or redundancy problem.
    """
    out = [
        RealtimeSuggestion(SuggestionKind.SUGGESTION, "Writing Suggestion", s, actionable=True)
        for s in analysis.suggestions
    ]
    if analysis.missing_elements:
        out.append(RealtimeSuggestion(
            SuggestionKind.WARNING, "Missing Elements",
            f"Consider adding: {', '.join(analysis.missing_elements)}", actionable=True))
    if ActionKind.TONE_CONSISTENCY.value not in analysis.failed_axes and analysis.tone_score < TONE_WARNING_BELOW:
        out.append(RealtimeSuggestion(
            SuggestionKind.WARNING, "Tone Consistency",
            analysis.tone_analysis or "Your tone shifts in places. Keep the voice consistent.", actionable=True))
    if ActionKind.REDUNDANCY_CHECK.value not in analysis.failed_axes and analysis.redundancy_score < REDUNDANCY_NOTE_BELOW:
        content = "Some phrases might be repetitive. Consider varying your language."
        if analysis.redundant_phrases:
            content += f" Repeated: {', '.join(analysis.redundant_phrases[:3])}"
        out.append(RealtimeSuggestion(SuggestionKind.IMPROVEMENT, "Reduce Redundancy", content, actionable=True))
    if analysis.completion_score >= COMPLETION_PRAISE_FROM:
        out.append(RealtimeSuggestion(
            SuggestionKind.IMPROVEMENT, "Great Progress!",
            "Your document covers most essential elements. Consider refining for impact.", actionable=False))
    return out


class RealtimeAnalysisScheduler:
    def __init__(self, session: EditorSession, client: AnalysisClient, debounce_s: float = 2.0,
                 min_chars: int = 50) -> None:
        self.session = session
        self.client = client
        self.debounce_s = debounce_s
        self.min_chars = min_chars

        self._issued_seq = 0
        self._analysis: Optional[ContentAnalysis] = None
        self._analysis_seq = 0
        self._suggestions: Tuple[RealtimeSuggestion, ...] = ()
        self._last_analyzed: Optional[str] = None
        self._debounce_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._listeners: List[AnalysisListener] = []
        self._disposed = False
        session.on_dispose(self.dispose)
        session.on_document_switch(self.reset)

    @property
    def state(self) -> SchedulerState:
        if self._disposed:
            return SchedulerState.DISPOSED
        if self._debounce_task is not None and not self._debounce_task.done():
            return SchedulerState.PENDING
        if self._in_flight:
            return SchedulerState.IN_FLIGHT
        return SchedulerState.IDLE

    @property
    def current_analysis(self) -> Optional[ContentAnalysis]:
        return self._analysis

    @property
    def suggestions(self) -> Tuple[RealtimeSuggestion, ...]:
        return self._suggestions

    @property
    def issued_seq(self) -> int:
        return self._issued_seq

    @property
    def analysis_seq(self) -> int:
        return self._analysis_seq

    @property
    def last_analyzed(self) -> Optional[str]:
        return self._last_analyzed

    def add_listener(self, listener: AnalysisListener) -> None:
        self._listeners.append(listener)

    def should_analyze(self, content: str) -> bool:
        return len(content) > self.min_chars and bool(content.strip()) and content != self._last_analyzed

    def on_content_change(self, content: str) -> bool:
        """Restart the debounce timer for this content. Returns True if armed.

        Must be called from within the running event loop.
        """
        if self._disposed:
            return False
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        if not self.should_analyze(content):
            return False
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounce(content))
        return True

    async def _debounce(self, content: str) -> None:
        await asyncio.sleep(self.debounce_s)
        if self._disposed:
            return
        task = asyncio.get_running_loop().create_task(self._run_cycle(content))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run_cycle(self, content: str) -> bool:
        self._issued_seq += 1
        seq = self._issued_seq
        document_type = self.session.document_type
        context = self.session.context

        results = await asyncio.gather(*(
            self.client.analyze(content, document_type, axis, context) for axis in REALTIME_AXES
        ))
        for result in results:
            if not result.ok:
                log_event("REALTIME_AXIS_FAILED", f"seq={seq} {result.action.value}: {result.error}",
                          level=logging.WARNING)
        analysis = merge_axis_results(results)
        return self._accept(seq, content, analysis, any(r.ok for r in results))

    def _accept(self, seq: int, content: str, analysis: ContentAnalysis, any_ok: bool) -> bool:
        if self._disposed:
            logger.debug(f"Discarding seq={seq}: session disposed")
            return False
        if seq != self._issued_seq:
            log_event("REALTIME_STALE", f"Discarding seq={seq}, latest issued is {self._issued_seq}")
            return False

        self._analysis = analysis
        self._analysis_seq = seq
        self._suggestions = tuple(derive_suggestions(analysis))
        if any_ok:
            self._last_analyzed = content

        for listener in list(self._listeners):
            try:
                listener(analysis, self._suggestions, seq)
            except Exception as e:
                log_exception("REALTIME_LISTENER_ERROR", e)
        return True

    def reset(self) -> None:
        """Forget everything computed for the previous document.

        Bumping the issued sequence makes any cycle still in flight stale.
        """
        if self._disposed:
            return
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._issued_seq += 1
        self._analysis = None
        self._suggestions = ()
        self._last_analyzed = None

    async def wait_idle(self) -> None:
        """Wait until no debounce timer is armed and no cycle is in flight."""
        while True:
            pending = [t for t in [self._debounce_task, *self._in_flight] if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._listeners.clear()
