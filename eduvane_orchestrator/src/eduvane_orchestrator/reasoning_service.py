"""
Reasoning Service Contract

The orchestrator talks to the language model only through this interface:

1. perceive  - read text out of an uploaded file
2. interpret - subject, topic, intent and ownership of the content
3. reason    - full analysis of the work
4. stream_learning_task - free-form chat / question generation

Chat memory lives in a LearningSession handle that each orchestrator owns,
so two conversations never share model context.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional

from eduvane_orchestrator.models import (
    AnalysisResult,
    InterpretationContext,
    PipelineMode,
    UserRole,
)


def format_analysis_context(result: AnalysisResult) -> str:
    """Summary of a finished analysis, fed to later chat turns."""
    observations = "\n".join(f"- {item.type.upper()}: {item.text}" for item in result.feedback)
    gaps = ", ".join(result.gaps())
    insights = "\n".join(f"- {insight.title}: {insight.trend}" for insight in result.insights)
    stability = result.concept_stability
    stability_line = (
        f"{stability.status} ({stability.evidence or 'No specific evidence'})"
        if stability else "Unknown (No specific evidence)"
    )

    return (
        "[LEARNING CONTEXT AVAILABLE]\n"
        "New analysis completed.\n"
        f"Subject: {result.subject} ({result.topic}).\n"
        f"Ownership: {result.ownership.type}.\n\n"
        f"Observation Summary:\n{observations or '- None'}\n\n"
        f"Identified Learning Gaps:\n{gaps or 'None'}\n\n"
        f"Stability Signal: {stability_line}\n\n"
        f"Previous Insights (Longitudinal):\n{insights or '- None'}\n\n"
        f"Teacher Insight (If any): {result.teacher_insight or 'None'}\n\n"
        "Use this when generating follow-up tasks: tell misconceptions from slips "
        "and sequence diagnostics accordingly."
    )


@dataclass
class LearningSession:
    """Chat memory for the learning-task pipeline of one conversation."""
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    messages: List[Dict[str, str]] = field(default_factory=list)
    max_messages: int = 40
    closed: bool = False

    def add(self, role: str, content: str):
        if self.closed:
            return
        self.messages.append({"role": role, "content": content})
        if len(self.messages) > self.max_messages:
            self.messages = self.messages[-self.max_messages:]

    def add_exchange(self, user_content: str, assistant_content: str):
        self.add("user", user_content)
        self.add("assistant", assistant_content)

    def record_analysis(self, result: AnalysisResult):
        self.add("system", format_analysis_context(result))

    def end(self):
        self.messages.clear()
        self.closed = True


class ReasoningService(ABC):
    """Capability contract of the external reasoning service."""

    def create_session(self) -> LearningSession:
        return LearningSession()

    def end_session(self, session: Optional[LearningSession]):
        if session is not None:
            session.end()

    @abstractmethod
    async def perceive(self, encoded: str, media_type: str) -> str:
        """Extract text from base64 content. Raises PerceptionError."""

    @abstractmethod
    async def interpret(self, text: str) -> InterpretationContext:
        """Classify content. Must return InterpretationContext.default() instead of raising."""

    @abstractmethod
    async def reason(
        self,
        encoded: Optional[str],
        media_type: Optional[str],
        text: str,
        context: InterpretationContext,
        user_instruction: Optional[str],
        mode: PipelineMode,
        history_context: Optional[str] = None,
        role: Optional[UserRole] = None
    ) -> AnalysisResult:
        """Analyse the work. Raises ReasoningError."""

    @abstractmethod
    def stream_learning_task(
        self,
        text: str,
        role: Optional[UserRole],
        session: LearningSession
    ) -> AsyncIterator[str]:
        """Stream response fragments. Raises StreamError mid-stream."""
