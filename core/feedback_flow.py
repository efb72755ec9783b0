"""
User-triggered feedback and draft flow for one editor session.

Owns the session's FeedbackResult slot and its pending DraftProposal. It is
independent of the realtime scheduler: neither writes the other's state.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from domain import AnchoredImprovement, FeedbackResult
from logger import get_logger, log_exception
from core.draft import DraftProposal, DraftRegenerator
from core.document_store import DocumentStore
from core.errors import AnalysisError, DraftConflictError, EmptyContentError, InsufficientFeedbackError
from core.feedback import FeedbackAggregator
from core.notifier import LoggingNotifier, Notification, Notifier
from core.quote_matcher import QuotedImprovementMatcher
from core.session import EditorSession

logger = get_logger(__name__)


class FeedbackFlow:
    def __init__(self, session: EditorSession, aggregator: FeedbackAggregator, regenerator: DraftRegenerator,
                 notifier: Optional[Notifier] = None, store: Optional[DocumentStore] = None,
                 matcher: Optional[QuotedImprovementMatcher] = None) -> None:
        self.session = session
        self.aggregator = aggregator
        self.regenerator = regenerator
        self.notifier = notifier or LoggingNotifier()
        self.store = store
        self.matcher = matcher or QuotedImprovementMatcher()

        self.result: Optional[FeedbackResult] = None
        self.proposal: Optional[DraftProposal] = None
        self._request_seq = 0
        session.on_document_switch(self._forget_document)

    def _forget_document(self) -> None:
        # feedback and drafts belong to the buffer they were computed from
        self._request_seq += 1
        self.result = None
        self.proposal = None

    async def _notify(self, kind: str, title: str, message: str = "", reason: Optional[str] = None) -> None:
        await self.notifier.notify(Notification(kind, title, message, self.session.session_id, reason))

    async def request_feedback(self, tone: Optional[str] = None, file_name: Optional[str] = None) -> FeedbackResult:
        """Request authoritative feedback for the current buffer.

        A newer request supersedes an older one still in flight: the older
        result is returned to its caller but does not replace the slot.
        """
        self.session.ensure_active()
        self._request_seq += 1
        seq = self._request_seq
        content = self.session.content
        try:
            feedback = await self.aggregator.request_feedback(
                content, self.session.document_type, self.session.program_id,
                tone=tone, context=self.session.context, file_name=file_name,
            )
        except EmptyContentError:
            await self._notify("error", "Failed to generate feedback", "Write something first.")
            raise
        except AnalysisError as e:
            log_exception("FEEDBACK_FAILED", e)
            await self._notify("error", "Failed to generate feedback",
                               "Error generating feedback. Please try again.", reason=e.reason)
            raise

        if self.session.disposed or seq != self._request_seq:
            logger.info(f"Feedback request {seq} superseded; not stored")
            return feedback

        self.result = feedback
        self.proposal = None
        await self._persist(feedback)
        await self._notify("success", "Feedback generated", f"Score {feedback.score:g}/10")
        return feedback

    async def _persist(self, feedback: FeedbackResult) -> None:
        """Attach feedback to the saved document. Best effort: the feedback itself already succeeded."""
        if self.store is None or not self.session.document_id:
            return
        try:
            await self.store.update_document(self.session.document_id, feedback=feedback.to_dict())
        except (KeyError, OSError) as e:
            log_exception("FEEDBACK_PERSIST_FAILED", e, level=logging.WARNING)

    def resolve_quotes(self) -> List[AnchoredImprovement]:
        """Anchor the current feedback's quotes against the live buffer."""
        if self.result is None:
            return []
        return self.matcher.match_all(self.session.content, self.result.quoted_improvements)

    async def regenerate_draft(self) -> DraftProposal:
        self.session.ensure_active()
        if self.result is None:
            raise InsufficientFeedbackError("Request feedback before generating an improved draft")
        try:
            proposal = await self.regenerator.propose(
                self.session.content, self.result, self.session.document_type, self.session.context)
        except (AnalysisError, InsufficientFeedbackError, EmptyContentError) as e:
            log_exception("DRAFT_FAILED", e)
            await self._notify("error", "Error generating improved draft",
                               "Error generating improved draft. Please try again.",
                               reason=getattr(e, "reason", None) or str(e))
            raise
        self.proposal = proposal
        await self._notify("success", "Improved draft ready",
                           "Review the changes before replacing your document.")
        return proposal

    async def apply_draft(self, confirm: bool = False) -> str:
        """Overwrite the buffer with the pending draft; the replaced text stays on the proposal."""
        self.session.ensure_active()
        if self.proposal is None:
            raise InsufficientFeedbackError("No improved draft to apply")
        try:
            new_content = self.proposal.apply_to(self.session.content, confirm=confirm)
        except DraftConflictError:
            await self._notify("info", "Document changed since the draft was generated",
                               "Confirm to overwrite your latest edits.")
            raise
        self.session.record_edit(new_content)
        await self._notify("success", "Draft applied", "Your previous version can still be restored.")
        return new_content
