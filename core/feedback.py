"""
One-shot document feedback.
"""

from typing import Any, Dict, Optional

from domain import ActionKind, AnalysisContext, DetailedScores, FeedbackResult, QuotedImprovement
from logger import get_logger, log_event
from core.analysis_client import AnalysisClient
from core.contracts import FeedbackPayload, parse_payload
from core.errors import EmptyContentError

logger = get_logger(__name__)


def to_feedback_result(payload: FeedbackPayload) -> FeedbackResult:
    scores = payload.detailed_scores
    return FeedbackResult(
        summary=payload.summary,
        score=payload.score,
        detailed_scores=DetailedScores(
            clarity=scores.clarity,
            authenticity=scores.authenticity,
            structure=scores.structure,
            impact=scores.impact,
            grammar=scores.grammar,
            program_fit=scores.program_fit,
        ),
        improvement_points=tuple(payload.improvement_points),
        quoted_improvements=tuple(
            QuotedImprovement(q.original_text, q.improved_text, q.explanation)
            for q in payload.quoted_improvements
        ),
        strengths_identified=tuple(payload.strengths_identified),
        industry_specific_advice=tuple(payload.industry_specific_advice),
    )


def feedback_from_dict(data: Dict[str, Any]) -> FeedbackResult:
    """Rebuild a FeedbackResult from its API/storage form (camelCase keys)."""
    return to_feedback_result(parse_payload(ActionKind.FULL_FEEDBACK, data))


class FeedbackAggregator:
    def __init__(self, client: AnalysisClient, default_tone: str = "conversational") -> None:
        self.client = client
        self.default_tone = default_tone

    async def request_feedback(self, content: str, document_type: str, program_id: Optional[str] = None,
                               tone: Optional[str] = None, context: Optional[AnalysisContext] = None,
                               file_name: Optional[str] = None) -> FeedbackResult:
        """Request full feedback and normalize it.

        Raises EmptyContentError before any network call when the content is
        blank, and the AnalysisError carried by the result when the call fails.
        """
        if not content or not content.strip():
            raise EmptyContentError("Document content is empty")

        ctx = AnalysisContext(
            user_id=context.user_id if context else None,
            document_id=context.document_id if context else None,
            program_id=program_id if program_id is not None else (context.program_id if context else None),
        )
        result = await self.client.analyze(
            content, document_type, ActionKind.FULL_FEEDBACK, ctx,
            tone=tone or self.default_tone, fileName=file_name,
        )
        feedback = to_feedback_result(result.unwrap())
        log_event("FEEDBACK_READY", f"{document_type} scored {feedback.score:.1f} with "
                                    f"{len(feedback.improvement_points)} points, "
                                    f"{len(feedback.quoted_improvements)} quotes")
        return feedback
