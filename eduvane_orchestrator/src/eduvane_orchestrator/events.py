"""
Orchestrator Events

The closed set of events a turn produces. Order matters: callers must
observe them in the sequence they are yielded.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Union

from eduvane_orchestrator.models import AnalysisPhase, Submission


class EventType(str, Enum):
    PHASE_UPDATE = "PHASE_UPDATE"
    STREAM_CHUNK = "STREAM_CHUNK"
    SUBMISSION_COMPLETE = "SUBMISSION_COMPLETE"
    TASK_COMPLETE = "TASK_COMPLETE"
    ERROR = "ERROR"
    FOLLOW_UP = "FOLLOW_UP"


@dataclass(frozen=True)
class PhaseUpdate:
    phase: AnalysisPhase
    type: ClassVar[EventType] = EventType.PHASE_UPDATE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "phase": self.phase.value}


@dataclass(frozen=True)
class StreamChunk:
    text: str
    type: ClassVar[EventType] = EventType.STREAM_CHUNK

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "text": self.text}


@dataclass(frozen=True)
class SubmissionComplete:
    submission: Submission
    type: ClassVar[EventType] = EventType.SUBMISSION_COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "submission": self.submission.model_dump(mode="json", by_alias=True)}


@dataclass(frozen=True)
class TaskComplete:
    type: ClassVar[EventType] = EventType.TASK_COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    type: ClassVar[EventType] = EventType.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "message": self.message}


@dataclass(frozen=True)
class FollowUp:
    text: str
    type: ClassVar[EventType] = EventType.FOLLOW_UP

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "text": self.text}


OrchestratorEvent = Union[PhaseUpdate, StreamChunk, SubmissionComplete, TaskComplete, ErrorEvent, FollowUp]
