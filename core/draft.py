"""
Improved-draft regeneration.

The regenerated text is a full replacement for the editor buffer, never a
patch. Callers apply it through DraftProposal so the buffer it was computed
from can be compared with the live one before overwriting.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from domain import ActionKind, AnalysisContext, FeedbackResult
from logger import get_logger, log_event
from core.analysis_client import AnalysisClient
from core.diff_utils import (
    TextChange,
    calculate_statistics,
    format_change_for_api,
    format_statistics_for_api,
    word_diff,
)
from core.errors import DraftConflictError, EmptyContentError, InsufficientFeedbackError

logger = get_logger(__name__)


@dataclass
class DraftProposal:
    base_content: str
    improved_content: str
    document_type: str
    created_at: float = field(default_factory=time.time)
    previous_content: Optional[str] = None  # buffer replaced on apply, kept for recovery
    applied: bool = False

    def conflicts_with(self, buffer: str) -> bool:
        return buffer != self.base_content

    def changes(self) -> List[TextChange]:
        return word_diff(self.base_content, self.improved_content)

    def apply_to(self, buffer: str, confirm: bool = False) -> str:
        """Return the new buffer. Raises DraftConflictError when the buffer
        moved on since the draft was requested, unless confirmed."""
        if self.conflicts_with(buffer) and not confirm:
            raise DraftConflictError(
                "The document was edited after this draft was generated; confirm to overwrite")
        self.previous_content = buffer
        self.applied = True
        return self.improved_content

    def to_dict(self) -> Dict[str, Any]:
        changes = self.changes()
        return {
            "improvedContent": self.improved_content,
            "documentType": self.document_type,
            "createdAt": self.created_at,
            "applied": self.applied,
            "changes": [format_change_for_api(c) for c in changes],
            "statistics": format_statistics_for_api(
                calculate_statistics(changes, self.base_content, self.improved_content)),
        }


class DraftRegenerator:
    def __init__(self, client: AnalysisClient) -> None:
        self.client = client

    async def regenerate(self, original_content: str, feedback: FeedbackResult, document_type: str,
                         context: Optional[AnalysisContext] = None) -> str:
        if not feedback.summary or not feedback.summary.strip():
            raise InsufficientFeedbackError("Feedback has no summary to build a draft from")
        if not original_content or not original_content.strip():
            raise EmptyContentError("Document content is empty")

        result = await self.client.analyze(
            original_content, document_type, ActionKind.IMPROVED_DRAFT, context,
            feedback=feedback.to_dict(),
        )
        improved = result.unwrap().improved_draft
        log_event("DRAFT_READY", f"{document_type} draft {len(original_content)} -> {len(improved)} chars")
        return improved

    async def propose(self, original_content: str, feedback: FeedbackResult, document_type: str,
                      context: Optional[AnalysisContext] = None) -> DraftProposal:
        improved = await self.regenerate(original_content, feedback, document_type, context)
        return DraftProposal(base_content=original_content, improved_content=improved,
                             document_type=document_type)
