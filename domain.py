from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ActionKind(str, Enum):
    """Actions understood by the analysis backend."""
    REALTIME_SUGGESTIONS = "realtime_suggestions"
    CONTENT_GAP_DETECTION = "content_gap_detection"
    TONE_CONSISTENCY = "tone_consistency"
    REDUNDANCY_CHECK = "redundancy_check"
    FULL_FEEDBACK = "full_feedback"
    IMPROVED_DRAFT = "improved_draft"


# Realtime axes, in merge order
REALTIME_AXES: Tuple[ActionKind, ...] = (
    ActionKind.REALTIME_SUGGESTIONS,
    ActionKind.CONTENT_GAP_DETECTION,
    ActionKind.TONE_CONSISTENCY,
    ActionKind.REDUNDANCY_CHECK,
)


@dataclass(frozen=True)
class AnalysisContext:
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    program_id: Optional[str] = None


@dataclass(frozen=True)
class QuotedImprovement:
    original_text: str
    improved_text: str
    explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalText": self.original_text,
            "improvedText": self.improved_text,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    def slice(self, text: str) -> str:
        return text[self.start:self.end]


@dataclass(frozen=True)
class AnchoredImprovement:
    """A quoted improvement resolved against the live document.
    - anchor is None when the quote could not be located (still displayable)
    - strategy is one of {exact, normalized, similar} when anchored
    """
    improvement: QuotedImprovement
    anchor: Optional[Span] = None
    strategy: Optional[str] = None
    similarity: float = 0.0

    @property
    def anchored(self) -> bool:
        return self.anchor is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.improvement.to_dict(),
            "anchor": {"start": self.anchor.start, "end": self.anchor.end} if self.anchor else None,
            "strategy": self.strategy,
            "similarity": round(self.similarity, 3),
        }


@dataclass(frozen=True)
class DetailedScores:
    clarity: Optional[float] = None
    authenticity: Optional[float] = None
    structure: Optional[float] = None
    impact: Optional[float] = None
    grammar: Optional[float] = None
    program_fit: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            "clarity": self.clarity,
            "authenticity": self.authenticity,
            "structure": self.structure,
            "impact": self.impact,
            "grammar": self.grammar,
            "programFit": self.program_fit,
        }


@dataclass(frozen=True)
class FeedbackResult:
    summary: str
    score: float = 0.0
    detailed_scores: DetailedScores = field(default_factory=DetailedScores)
    improvement_points: Tuple[str, ...] = ()
    quoted_improvements: Tuple[QuotedImprovement, ...] = ()
    strengths_identified: Tuple[str, ...] = ()
    industry_specific_advice: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "score": self.score,
            "detailedScores": self.detailed_scores.to_dict(),
            "improvementPoints": list(self.improvement_points),
            "quotedImprovements": [q.to_dict() for q in self.quoted_improvements],
            "strengthsIdentified": list(self.strengths_identified),
            "industrySpecificAdvice": list(self.industry_specific_advice),
        }


@dataclass(frozen=True)
class ContentAnalysis:
    suggestions: Tuple[str, ...] = ()
    context: str = ""
    missing_elements: Tuple[str, ...] = ()
    gap_analysis: str = ""
    completion_score: int = 0
    tone_score: int = 0
    tone_analysis: str = ""
    redundancy_score: int = 0
    redundant_phrases: Tuple[str, ...] = ()
    word_count: int = 0
    failed_axes: Tuple[str, ...] = ()  # axes whose call failed this cycle

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestions": list(self.suggestions),
            "context": self.context,
            "missingElements": list(self.missing_elements),
            "gapAnalysis": self.gap_analysis,
            "completionScore": self.completion_score,
            "toneScore": self.tone_score,
            "toneAnalysis": self.tone_analysis,
            "redundancyScore": self.redundancy_score,
            "redundantPhrases": list(self.redundant_phrases),
            "wordCount": self.word_count,
            "failedAxes": list(self.failed_axes),
        }


class SuggestionKind(str, Enum):
    SUGGESTION = "suggestion"
    WARNING = "warning"
    IMPROVEMENT = "improvement"


@dataclass(frozen=True)
class RealtimeSuggestion:
    kind: SuggestionKind
    title: str
    content: str
    actionable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "content": self.content,
            "actionable": self.actionable,
        }


@dataclass
class WritingSession:
    start_time: float = field(default_factory=time.time)
    keystrokes: int = 0

    def elapsed_seconds(self, now: Optional[float] = None) -> float:
        return max(0.0, (now if now is not None else time.time()) - self.start_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.start_time,
            "keystrokes": self.keystrokes,
            "elapsedSeconds": round(self.elapsed_seconds(), 1),
        }
