import asyncio

import pytest

from core.draft import DraftProposal, DraftRegenerator
from core.errors import DraftConflictError, EmptyContentError, InsufficientFeedbackError, NetworkError
from domain import FeedbackResult


FEEDBACK = FeedbackResult(summary="Make the research section concrete.", score=6.0,
                          improvement_points=("Name the lab",))


def test_blank_summary_fails_without_calling_backend(backend, client):
    regenerator = DraftRegenerator(client)
    with pytest.raises(InsufficientFeedbackError):
        asyncio.run(regenerator.regenerate("My statement.", FeedbackResult(summary="  "), "SOP"))
    assert backend.calls == []


def test_empty_content_fails_without_calling_backend(backend, client):
    with pytest.raises(EmptyContentError):
        asyncio.run(DraftRegenerator(client).regenerate("", FEEDBACK, "SOP"))
    assert backend.calls == []


def test_regenerate_sends_feedback_and_returns_full_text(backend, client):
    improved = asyncio.run(DraftRegenerator(client).regenerate("My statement.", FEEDBACK, "SOP"))
    assert improved == "An improved draft of the statement."
    request = backend.calls[0]
    assert request["action"] == "improved_draft"
    assert request["feedback"]["summary"] == FEEDBACK.summary
    assert request["feedback"]["improvementPoints"] == ["Name the lab"]


def test_regenerate_failure_propagates(backend, client):
    backend.failures["improved_draft"] = NetworkError("offline")
    with pytest.raises(NetworkError):
        asyncio.run(DraftRegenerator(client).regenerate("My statement.", FEEDBACK, "SOP"))


def test_proposal_applies_cleanly_to_unchanged_buffer():
    proposal = DraftProposal("old text here", "new text here", "SOP")
    assert proposal.apply_to("old text here") == "new text here"
    assert proposal.previous_content == "old text here"
    assert proposal.applied


def test_proposal_conflict_requires_confirmation():
    proposal = DraftProposal("old text", "new text", "SOP")
    with pytest.raises(DraftConflictError):
        proposal.apply_to("old text, edited since")
    assert not proposal.applied
    assert proposal.apply_to("old text, edited since", confirm=True) == "new text"
    assert proposal.previous_content == "old text, edited since"


def test_proposal_reports_word_changes():
    proposal = DraftProposal("I like robots a lot.", "I love building robots a lot.", "SOP")
    data = proposal.to_dict()
    assert data["improvedContent"] == "I love building robots a lot."
    assert data["statistics"]["totalChanges"] == len(data["changes"]) >= 1
    assert any(c["type"] == "replace" for c in data["changes"])
