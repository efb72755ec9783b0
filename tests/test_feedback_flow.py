import asyncio

import pytest

from conftest import settle
from core.document_store import FileDocumentStore
from core.draft import DraftRegenerator
from core.errors import (
    BackendError,
    DraftConflictError,
    EmptyContentError,
    InsufficientFeedbackError,
    SessionDisposedError,
)
from core.feedback import FeedbackAggregator
from core.feedback_flow import FeedbackFlow
from core.session import EditorSession

CONTENT = "Hello admissions. I am very good at coding and I want to join your lab."


def _flow(client, notifier, content=CONTENT, store=None, document_id=None):
    session = EditorSession("SOP", user_id="u1", document_id=document_id, content=content)
    flow = FeedbackFlow(session, FeedbackAggregator(client), DraftRegenerator(client),
                        notifier=notifier, store=store)
    return session, flow


def test_feedback_success_notifies_and_anchors_quotes(client, notifier):
    session, flow = _flow(client, notifier)
    result = asyncio.run(flow.request_feedback())
    assert flow.result == result
    assert notifier.titles() == ["Feedback generated"]
    assert notifier.notifications[0].session_id == session.session_id
    anchored = flow.resolve_quotes()
    assert len(anchored) == 1
    assert anchored[0].anchor.slice(session.content) == "I am very good at coding"


def test_feedback_failure_notifies_with_reason_and_keeps_old_result(backend, client, notifier):
    _, flow = _flow(client, notifier)
    first = asyncio.run(flow.request_feedback())
    backend.failures["full_feedback"] = BackendError("Reasoning service returned an error", reason="429: slow down")
    with pytest.raises(BackendError):
        asyncio.run(flow.request_feedback())
    assert flow.result == first
    failure = notifier.notifications[-1]
    assert failure.kind == "error"
    assert failure.title == "Failed to generate feedback"
    assert failure.reason == "429: slow down"


def test_empty_buffer_is_reported(backend, client, notifier):
    _, flow = _flow(client, notifier, content="   ")
    with pytest.raises(EmptyContentError):
        asyncio.run(flow.request_feedback())
    assert backend.calls == []
    assert notifier.titles() == ["Failed to generate feedback"]


def test_later_feedback_request_wins(backend, client, notifier):
    session, flow = _flow(client, notifier)
    backend.payloads["full_feedback"] = lambda req: {"summary": f"About: {req['content'][:5]}"}

    async def scenario():
        gate = backend.gate(CONTENT)
        slow = asyncio.ensure_future(flow.request_feedback())
        await settle(lambda: len(backend.calls) == 1)
        session.record_edit("Second version of the statement.")
        fast = await flow.request_feedback()
        gate.set()
        stale = await slow
        return fast, stale

    fast, stale = asyncio.run(scenario())
    assert stale.summary == "About: Hello"
    assert fast.summary == "About: Secon"
    assert flow.result == fast


def test_feedback_is_persisted_for_saved_documents(tmp_path, client, notifier):
    store = FileDocumentStore(str(tmp_path))

    async def scenario():
        doc_id = await store.create_document("SOP", CONTENT, user_id="u1")
        _, flow = _flow(client, notifier, store=store, document_id=doc_id)
        await flow.request_feedback()
        return await store.get_document(doc_id)

    stored = asyncio.run(scenario())
    assert stored.feedback["summary"].startswith("A clear motivation")


def test_feedback_for_unsaved_document_id_still_succeeds(tmp_path, client, notifier):
    store = FileDocumentStore(str(tmp_path))
    _, flow = _flow(client, notifier, store=store, document_id="never-saved")

    result = asyncio.run(flow.request_feedback())

    assert flow.result == result
    assert notifier.titles() == ["Feedback generated"]
    assert asyncio.run(store.get_document("never-saved")) is None


def test_draft_requires_feedback_first(backend, client, notifier):
    _, flow = _flow(client, notifier)
    with pytest.raises(InsufficientFeedbackError):
        asyncio.run(flow.regenerate_draft())
    assert backend.calls == []


def test_draft_regenerate_and_apply(client, notifier):
    session, flow = _flow(client, notifier)

    async def scenario():
        await flow.request_feedback()
        proposal = await flow.regenerate_draft()
        content = await flow.apply_draft()
        return proposal, content

    proposal, content = asyncio.run(scenario())
    assert content == "An improved draft of the statement."
    assert session.content == content
    assert proposal.previous_content == CONTENT
    assert notifier.titles() == ["Feedback generated", "Improved draft ready", "Draft applied"]


def test_draft_apply_conflict_then_confirm(client, notifier):
    session, flow = _flow(client, notifier)

    async def scenario():
        await flow.request_feedback()
        await flow.regenerate_draft()
        session.record_edit(CONTENT + " One more sentence.")
        with pytest.raises(DraftConflictError):
            await flow.apply_draft()
        assert session.content == CONTENT + " One more sentence."
        return await flow.apply_draft(confirm=True)

    content = asyncio.run(scenario())
    assert session.content == content
    assert flow.proposal.previous_content == CONTENT + " One more sentence."


def test_draft_failure_notifies(backend, client, notifier):
    _, flow = _flow(client, notifier)
    backend.failures["improved_draft"] = BackendError("Reasoning service returned an error", reason="500")

    async def scenario():
        await flow.request_feedback()
        with pytest.raises(BackendError):
            await flow.regenerate_draft()

    asyncio.run(scenario())
    assert notifier.titles()[-1] == "Error generating improved draft"
    assert flow.proposal is None


def test_disposed_session_rejects_requests_and_drops_late_results(backend, client, notifier):
    session, flow = _flow(client, notifier)

    async def scenario():
        gate = backend.gate(CONTENT)
        pending = asyncio.ensure_future(flow.request_feedback())
        await settle(lambda: len(backend.calls) == 1)
        session.dispose()
        gate.set()
        await pending

    asyncio.run(scenario())
    assert flow.result is None
    with pytest.raises(SessionDisposedError):
        asyncio.run(flow.request_feedback())


def test_switching_documents_clears_feedback_and_draft(backend, client, notifier):
    session, flow = _flow(client, notifier)

    async def scenario():
        await flow.request_feedback()
        await flow.regenerate_draft()
        session.open_document("CV", "Education: BSc Physics.", document_id="cv-1")

    asyncio.run(scenario())
    assert flow.result is None
    assert flow.proposal is None
    assert flow.resolve_quotes() == []
    with pytest.raises(InsufficientFeedbackError):
        asyncio.run(flow.regenerate_draft())
    assert backend.actions().count("improved_draft") == 1


def test_feedback_finishing_after_document_switch_is_not_stored(backend, client, notifier):
    session, flow = _flow(client, notifier)

    async def scenario():
        gate = backend.gate(CONTENT)
        pending = asyncio.ensure_future(flow.request_feedback())
        await settle(lambda: len(backend.calls) == 1)
        session.open_document("CV", "Education: BSc Physics.", document_id="cv-1")
        gate.set()
        return await pending

    late = asyncio.run(scenario())
    assert late.summary.startswith("A clear motivation")
    assert flow.result is None
    assert notifier.titles() == []
