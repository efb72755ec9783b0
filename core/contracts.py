"""
Typed response contracts for each analysis action.

The backend is treated as untrusted: every payload is validated here and
missing fields are filled with safe defaults before anything else sees it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from domain import ActionKind
from core.errors import MalformedResponse


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if not isinstance(value, (list, tuple)):
        raise ValueError("expected a list of strings")
    out = []
    for item in value:
        if isinstance(item, (str, int, float)) and str(item).strip():
            out.append(str(item).strip())
    return out


def _text(value: Any) -> Any:
    return "" if value is None else value


def _clamped(value: Any, lo: float, hi: float) -> Optional[float]:
    if value is None or value == "":
        return None
    number = float(value)
    return min(hi, max(lo, number))


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SuggestionsPayload(_Payload):
    suggestions: List[str] = Field(default_factory=list)
    context: str = ""

    @field_validator("suggestions", mode="before")
    @classmethod
    def _suggestions(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("context", mode="before")
    @classmethod
    def _context(cls, v: Any) -> Any:
        return _text(v)


class GapPayload(_Payload):
    missing_elements: List[str] = Field(default_factory=list, alias="missingElements")
    gap_analysis: str = Field("", alias="gapAnalysis")
    completion_score: int = Field(0, alias="completionScore")

    @field_validator("missing_elements", mode="before")
    @classmethod
    def _missing(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("gap_analysis", mode="before")
    @classmethod
    def _analysis(cls, v: Any) -> Any:
        return _text(v)

    @field_validator("completion_score", mode="before")
    @classmethod
    def _percent(cls, v: Any) -> int:
        clamped = _clamped(v, 0, 100)
        return 0 if clamped is None else round(clamped)


class TonePayload(_Payload):
    tone_score: int = Field(0, alias="toneScore")
    tone_analysis: str = Field("", alias="toneAnalysis")
    dominant_tone: str = Field("", alias="dominantTone")
    inconsistencies: List[str] = Field(default_factory=list)

    @field_validator("inconsistencies", mode="before")
    @classmethod
    def _inconsistencies(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("tone_analysis", "dominant_tone", mode="before")
    @classmethod
    def _analysis(cls, v: Any) -> Any:
        return _text(v)

    @field_validator("tone_score", mode="before")
    @classmethod
    def _percent(cls, v: Any) -> int:
        clamped = _clamped(v, 0, 100)
        return 0 if clamped is None else round(clamped)


class RedundancyPayload(_Payload):
    redundancy_score: int = Field(0, alias="redundancyScore")
    redundant_phrases: List[str] = Field(default_factory=list, alias="redundantPhrases")
    suggestions: List[str] = Field(default_factory=list)
    word_count: int = Field(0, alias="wordCount", ge=0)

    @field_validator("redundant_phrases", "suggestions", mode="before")
    @classmethod
    def _phrases(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("redundancy_score", mode="before")
    @classmethod
    def _percent(cls, v: Any) -> int:
        clamped = _clamped(v, 0, 100)
        return 0 if clamped is None else round(clamped)


class QuotedImprovementPayload(_Payload):
    original_text: str = Field(alias="originalText", min_length=1)
    improved_text: str = Field(alias="improvedText", min_length=1)
    explanation: str = ""

    @field_validator("explanation", mode="before")
    @classmethod
    def _explanation(cls, v: Any) -> Any:
        return _text(v)


class DetailedScoresPayload(_Payload):
    clarity: Optional[float] = None
    authenticity: Optional[float] = None
    structure: Optional[float] = None
    impact: Optional[float] = None
    grammar: Optional[float] = None
    program_fit: Optional[float] = Field(None, alias="programFit")

    @field_validator("*", mode="before")
    @classmethod
    def _out_of_ten(cls, v: Any) -> Optional[float]:
        return _clamped(v, 0, 10)


class FeedbackPayload(_Payload):
    summary: str = Field(min_length=1)
    score: float = 0.0
    detailed_scores: DetailedScoresPayload = Field(default_factory=DetailedScoresPayload, alias="detailedScores")
    improvement_points: List[str] = Field(default_factory=list, alias="improvementPoints")
    quoted_improvements: List[QuotedImprovementPayload] = Field(default_factory=list, alias="quotedImprovements")
    strengths_identified: List[str] = Field(default_factory=list, alias="strengthsIdentified")
    industry_specific_advice: List[str] = Field(default_factory=list, alias="industrySpecificAdvice")

    @field_validator("improvement_points", "strengths_identified", "industry_specific_advice", mode="before")
    @classmethod
    def _points(cls, v: Any) -> List[str]:
        return _string_list(v)

    @model_validator(mode="before")
    @classmethod
    def _overall_score(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("overallScore") is not None:
            data = {**data, "score": data["overallScore"]}
        if isinstance(data, dict) and data.get("detailedScores") is None:
            data = {k: v for k, v in data.items() if k != "detailedScores"}
        return data

    @field_validator("summary", mode="before")
    @classmethod
    def _strip_summary(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> float:
        clamped = _clamped(v, 0, 10)
        return 0.0 if clamped is None else clamped

    @field_validator("quoted_improvements", mode="before")
    @classmethod
    def _drop_incomplete_quotes(cls, v: Any) -> Any:
        # A quote without both sides cannot be shown; the rest of the feedback still can
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("quotedImprovements must be a list")
        return [
            q for q in v
            if isinstance(q, dict)
            and str(q.get("originalText") or "").strip()
            and str(q.get("improvedText") or "").strip()
        ]


class DraftPayload(_Payload):
    improved_draft: str = Field(alias="improvedDraft", min_length=1)

    @field_validator("improved_draft", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


ACTION_PAYLOADS: Dict[ActionKind, Type[_Payload]] = {
    ActionKind.REALTIME_SUGGESTIONS: SuggestionsPayload,
    ActionKind.CONTENT_GAP_DETECTION: GapPayload,
    ActionKind.TONE_CONSISTENCY: TonePayload,
    ActionKind.REDUNDANCY_CHECK: RedundancyPayload,
    ActionKind.FULL_FEEDBACK: FeedbackPayload,
    ActionKind.IMPROVED_DRAFT: DraftPayload,
}


def parse_payload(action: ActionKind, data: Any) -> _Payload:
    """Validate a raw backend response for the given action."""
    model = ACTION_PAYLOADS[action]
    if not isinstance(data, dict):
        raise MalformedResponse("Response is not a JSON object", action=action.value,
                                reason=type(data).__name__)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedResponse("Response does not match the expected shape",
                                action=action.value, reason=fields or str(e)) from e
