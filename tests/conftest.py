"""
Shared fixtures: in-process fakes for the reasoning service and persistence.
"""

import os
import random
import sys
from typing import Callable, List, Optional

import pytest

# Add project root to path
project_root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
sys.path.insert(0, os.path.join(project_root, "eduvane_orchestrator", "src"))

from eduvane_orchestrator.config import OrchestratorConfig
from eduvane_orchestrator.exceptions import ReasoningError
from eduvane_orchestrator.models import AnalysisResult, InterpretationContext
from eduvane_orchestrator.orchestrator import Orchestrator
from eduvane_orchestrator.persistence import LocalPersistence
from eduvane_orchestrator.reasoning_service import ReasoningService
from eduvane_orchestrator.variation_generator import VariationGenerator


SAMPLE_ANALYSIS = {
    "score": {"value": 7, "label": "7/10", "reasoning": "Correct method with one arithmetic slip"},
    "feedback": [
        {"type": "strength", "text": "Isolated the variable correctly"},
        {"type": "gap", "text": "Sign error when subtracting 3", "reference": "line 2"},
    ],
    "insights": [{"title": "Inverse operations", "description": "Applies them in order", "trend": "new"}],
    "guidance": [{"step": "Re-check each subtraction", "rationale": "The slip changed the answer"}],
    "concept_stability": {"status": "emerging", "evidence": "First attempt at this topic"},
}


class FakeReasoningService(ReasoningService):
    """Scriptable ReasoningService that records every call."""

    def __init__(self):
        self.calls = []
        self.perceived_text = "2x + 3 = 7\n2x = 4\nx = 2"
        self.context = InterpretationContext(subject="Mathematics", topic="Linear Equations")
        self.payload = dict(SAMPLE_ANALYSIS)
        self.fragments = ["Here are ", "", "five questions ", "on fractions."]

        self.perceive_error: Optional[Exception] = None
        self.reason_error: Optional[Exception] = None
        self.stream_error: Optional[Exception] = None

        # Hooks let a test act (e.g. reset the session) while a call is in flight
        self.on_reason: Optional[Callable[[], None]] = None
        self.on_fragment: Optional[Callable[[int], None]] = None

        self.sessions_created = 0
        self.sessions_ended = []

    @property
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def create_session(self):
        self.sessions_created += 1
        return super().create_session()

    def end_session(self, session):
        self.sessions_ended.append(session)
        super().end_session(session)

    async def perceive(self, encoded, media_type):
        self.calls.append(("perceive", {"encoded": encoded, "media_type": media_type}))
        if self.perceive_error:
            raise self.perceive_error
        return self.perceived_text

    async def interpret(self, text):
        self.calls.append(("interpret", {"text": text}))
        return self.context

    async def reason(self, encoded, media_type, text, context, user_instruction, mode,
                     history_context=None, role=None):
        self.calls.append(("reason", {
            "encoded": encoded,
            "media_type": media_type,
            "text": text,
            "context": context,
            "user_instruction": user_instruction,
            "mode": mode,
            "history_context": history_context,
            "role": role,
        }))
        if self.on_reason:
            self.on_reason()
        if self.reason_error:
            raise self.reason_error
        return AnalysisResult.from_payload(self.payload, context, text)

    async def stream_learning_task(self, text, role, session):
        self.calls.append(("stream_learning_task", {"text": text, "role": role, "session": session}))
        for index, fragment in enumerate(self.fragments):
            if self.on_fragment:
                self.on_fragment(index)
            yield fragment
        if self.stream_error:
            raise self.stream_error

    def last_call(self, name: str) -> dict:
        for call_name, kwargs in reversed(self.calls):
            if call_name == name:
                return kwargs
        raise AssertionError(f"{name} was never called")


class RecordingPersistence(LocalPersistence):
    """In-memory LocalPersistence that records calls and can be told to fail."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = []
        self.failing = set()

    def _record(self, name: str):
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    async def get_user_profile(self):
        self._record("get_user_profile")
        return await super().get_user_profile()

    async def save_submission(self, submission):
        self._record("save_submission")
        await super().save_submission(submission)

    async def get_recent_insights(self, subject):
        self._record("get_recent_insights")
        return await super().get_recent_insights(subject)


@pytest.fixture
def reasoning():
    return FakeReasoningService()


@pytest.fixture
def persistence():
    return RecordingPersistence()


@pytest.fixture
def variations():
    return VariationGenerator(random.Random(7))


@pytest.fixture
def orchestrator(reasoning, persistence, variations):
    return Orchestrator(
        reasoning,
        persistence=persistence,
        variation_generator=variations,
        config=OrchestratorConfig(),
    )


@pytest.fixture
def collect():
    """Drain an orchestrator turn into a list of events."""
    async def _collect(turn):
        return [event async for event in turn]
    return _collect


@pytest.fixture
def reasoning_failure():
    return ReasoningError("Eduvane could not complete the diagnosis.")
