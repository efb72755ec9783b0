"""
Reasoning backend adapters.

An AnalysisBackend takes the request body
``{content, documentType, action, programId?, documentId?, userId?, ...}``
and returns the JSON object for that action. LLMAnalysisBackend serves every
action by prompting a language model directly.
"""

from __future__ import annotations

import json
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import openai

from domain import ActionKind
from language_model import LanguageModel, TokenBudgetExceeded
from logger import get_logger, log_performance
from prompt_schema import (
    ANALYSIS_ACTIONS,
    EXPECTED_SECTIONS,
    draft_system_prompt,
    feedback_system_prompt,
    format_feedback_for_draft,
    realtime_system_prompt,
)
from core.errors import AnalysisError, BackendError, MalformedResponse, NetworkError

logger = get_logger(__name__)

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_OUTER_OBJECT = re.compile(r"(\{[\s\S]*\})")


class AnalysisBackend(Protocol):
    async def invoke(self, request: Dict[str, Any]) -> Dict[str, Any]: ...


def parse_json_response(text: str, action: str = "") -> Any:
    """Recover a JSON object from model output.

    Tries the raw text, then a fenced ```json block, then the outermost braces.
    """
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass
    for pattern in (_FENCED_JSON, _OUTER_OBJECT):
        match = pattern.search(text or "")
        if match and match.group(1):
            try:
                return json.loads(match.group(1))
            except ValueError:
                continue
    raise MalformedResponse("Failed to parse JSON from model response", action=action,
                            reason=(text or "")[:120])


def find_missing_sections(content: str, document_type: str) -> List[str]:
    """Expected sections whose leading keyword never appears in the content."""
    lowered = content.lower()
    return [
        section for section in EXPECTED_SECTIONS.get(document_type, [])
        if section.lower().split("/")[0] not in lowered
    ]


def completion_score(content: str, document_type: str) -> int:
    expected = EXPECTED_SECTIONS.get(document_type, [])
    if not expected:
        return 0
    missing = find_missing_sections(content, document_type)
    return round((len(expected) - len(missing)) / len(expected) * 100)


class LLMAnalysisBackend:
    """Serves analysis actions with a feedback model and a cheaper realtime model."""

    def __init__(self, feedback_model: LanguageModel, realtime_model: Optional[LanguageModel] = None) -> None:
        self.feedback_model = feedback_model
        self.realtime_model = realtime_model or feedback_model
        self._handlers: Dict[ActionKind, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            ActionKind.REALTIME_SUGGESTIONS: self._realtime_suggestions,
            ActionKind.CONTENT_GAP_DETECTION: self._content_gaps,
            ActionKind.TONE_CONSISTENCY: self._tone,
            ActionKind.REDUNDANCY_CHECK: self._redundancy,
            ActionKind.FULL_FEEDBACK: self._full_feedback,
            ActionKind.IMPROVED_DRAFT: self._improved_draft,
        }

    async def invoke(self, request: Dict[str, Any]) -> Dict[str, Any]:
        raw_action = request.get("action")
        try:
            action = ActionKind(raw_action)
        except ValueError:
            raise BackendError("Unknown action", action=str(raw_action))

        t0 = time.perf_counter()
        try:
            return await self._handlers[action](request)
        except AnalysisError:
            raise
        except openai.APIConnectionError as e:
            raise NetworkError("Reasoning service unreachable", action=action.value, reason=str(e)) from e
        except openai.APIStatusError as e:
            raise BackendError("Reasoning service returned an error", action=action.value,
                               reason=f"{e.status_code}: {e.message}") from e
        except openai.APIError as e:
            raise BackendError("Reasoning service returned an error", action=action.value, reason=str(e)) from e
        except TokenBudgetExceeded as e:
            raise BackendError("Document too long to analyze", action=action.value, reason=str(e)) from e
        finally:
            log_performance("BACKEND_ACTION", (time.perf_counter() - t0) * 1000, action=action.value)

    async def _generate(self, action: ActionKind, system: str, user: str, json_mode: bool = False) -> str:
        spec = ANALYSIS_ACTIONS[action.value]
        model = self.feedback_model if spec["model"] == "feedback" else self.realtime_model
        return await model.generate(
            system, user,
            temperature=spec["temperature"],
            max_tokens=spec["max_tokens"],
            json_mode=json_mode,
            action=action.value,
        )

    async def _realtime_suggestions(self, request: Dict[str, Any]) -> Dict[str, Any]:
        content = request.get("content") or ""
        last_paragraph = content.split("\n\n")[-1].strip() or content[-200:]
        text = await self._generate(
            ActionKind.REALTIME_SUGGESTIONS,
            realtime_system_prompt("realtime_suggestions", request.get("documentType", "")),
            f'Current writing context: "{last_paragraph}"\n\n'
            "Provide 2-3 specific suggestions for improvement or continuation.",
        )
        suggestions = [_BULLET.sub("", line).strip() for line in text.splitlines()]
        return {
            "suggestions": [s for s in suggestions if s],
            "context": last_paragraph[:50] + "...",
        }

    async def _content_gaps(self, request: Dict[str, Any]) -> Dict[str, Any]:
        content = request.get("content") or ""
        document_type = request.get("documentType", "")
        analysis = await self._generate(
            ActionKind.CONTENT_GAP_DETECTION,
            realtime_system_prompt("content_gap_detection", document_type),
            content,
        )
        return {
            "missingElements": find_missing_sections(content, document_type),
            "gapAnalysis": analysis.strip(),
            "completionScore": completion_score(content, document_type),
        }

    async def _tone(self, request: Dict[str, Any]) -> Dict[str, Any]:
        text = await self._generate(
            ActionKind.TONE_CONSISTENCY,
            realtime_system_prompt("tone_consistency", request.get("documentType", "")),
            request.get("content") or "",
            json_mode=True,
        )
        return parse_json_response(text, ActionKind.TONE_CONSISTENCY.value)

    async def _redundancy(self, request: Dict[str, Any]) -> Dict[str, Any]:
        content = request.get("content") or ""
        text = await self._generate(
            ActionKind.REDUNDANCY_CHECK,
            realtime_system_prompt("redundancy_check", request.get("documentType", "")),
            content,
            json_mode=True,
        )
        data = parse_json_response(text, ActionKind.REDUNDANCY_CHECK.value)
        if isinstance(data, dict):
            data["wordCount"] = len(content.split())
        return data

    async def _full_feedback(self, request: Dict[str, Any]) -> Dict[str, Any]:
        content = request.get("content") or ""
        logger.info(f"Reviewing {request.get('documentType')} (length: {len(content)})")
        text = await self._generate(
            ActionKind.FULL_FEEDBACK,
            feedback_system_prompt(request.get("documentType", ""),
                                   request.get("tone") or "conversational",
                                   request.get("fileName")),
            content,
            json_mode=True,
        )
        return parse_json_response(text, ActionKind.FULL_FEEDBACK.value)

    async def _improved_draft(self, request: Dict[str, Any]) -> Dict[str, Any]:
        feedback = request.get("feedback")
        if not isinstance(feedback, dict):
            raise BackendError("Missing feedback for draft generation", action=ActionKind.IMPROVED_DRAFT.value)
        prompt = (
            f"ORIGINAL DOCUMENT:\n{request.get('content') or ''}\n\n"
            f"FEEDBACK TO ADDRESS:\n{format_feedback_for_draft(feedback)}\n\n"
            "Please generate an improved version that addresses all the feedback while keeping "
            "the writer's authentic voice."
        )
        text = await self._generate(
            ActionKind.IMPROVED_DRAFT,
            draft_system_prompt(request.get("documentType", "")),
            prompt,
        )
        return {"improvedDraft": text}
