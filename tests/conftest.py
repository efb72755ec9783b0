import asyncio
import copy
import os
import tempfile

# Keep test runs from writing into the service's logs/ directory
os.environ.setdefault("ASSISTANT_LOG_DIR", tempfile.mkdtemp(prefix="assistant-logs-"))

import pytest

from core.analysis_client import AnalysisClient
from core.notifier import Notification


SAMPLE_FEEDBACK = {
    "summary": "A clear motivation, but the research experience needs specifics.",
    "overallScore": 7.5,
    "detailedScores": {"clarity": 8, "authenticity": 7, "structure": 6, "impact": 7, "grammar": 9, "programFit": 6},
    "strengthsIdentified": ["Genuine enthusiasm"],
    "improvementPoints": ["Name the lab you worked in", "Tie goals to the program"],
    "quotedImprovements": [
        {
            "originalText": "I am very good at coding",
            "improvedText": "I built a compiler for a teaching language in C++",
            "explanation": "Show, don't tell.",
        }
    ],
    "industrySpecificAdvice": ["Mention faculty whose work you follow"],
}

DEFAULT_PAYLOADS = {
    "realtime_suggestions": {"suggestions": ["Add a concrete example."], "context": "I want to..."},
    "content_gap_detection": {"missingElements": ["career goals"], "gapAnalysis": "Goals are missing.",
                              "completionScore": 60},
    "tone_consistency": {"toneScore": 85, "toneAnalysis": "Consistent and warm."},
    "redundancy_check": {"redundancyScore": 90, "redundantPhrases": [], "suggestions": [], "wordCount": 10},
    "full_feedback": SAMPLE_FEEDBACK,
    "improved_draft": {"improvedDraft": "An improved draft of the statement."},
}


class FakeBackend:
    """Scripted AnalysisBackend.

    payloads: action -> dict, or callable(request) -> dict
    failures: action -> exception raised instead of answering
    gates:    content -> asyncio.Event the call waits on before answering
    """

    def __init__(self, payloads=None, failures=None):
        self.payloads = dict(DEFAULT_PAYLOADS)
        self.payloads.update(payloads or {})
        self.failures = dict(failures or {})
        self.gates = {}
        self.calls = []

    def gate(self, content):
        event = asyncio.Event()
        self.gates[content] = event
        return event

    def actions(self):
        return [c["action"] for c in self.calls]

    async def invoke(self, request):
        self.calls.append(request)
        action = request["action"]
        gate = self.gates.get(request["content"])
        if gate is not None:
            await gate.wait()
        if action in self.failures:
            raise self.failures[action]
        payload = self.payloads[action]
        if callable(payload):
            return payload(request)
        return copy.deepcopy(payload)


class RecordingNotifier:
    def __init__(self):
        self.notifications = []

    async def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def titles(self):
        return [n.title for n in self.notifications]


async def settle(predicate, rounds=200):
    """Yield to the event loop until predicate() holds."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend):
    return AnalysisClient(backend)


@pytest.fixture
def notifier():
    return RecordingNotifier()
