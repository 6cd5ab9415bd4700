"""
Data Model

Validated payloads exchanged between the orchestrator, the reasoning
service and the persistence layer.

Reasoning payloads come back from a language model and are loosely
structured, so every model here normalises its input: list fields are
always lists, unknown enum tags fall back to a neutral value and broken
optional sub-objects are dropped instead of failing the whole result.
"""

import base64
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    """Confirmed role of the person on the other side of the conversation."""
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class AnalysisPhase(str, Enum):
    """Coarse pipeline phase reported to the display layer."""
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class PipelineMode(str, Enum):
    """Latency/quality tier for the reasoning stage."""
    FAST = "fast"
    DEEP = "deep"


class SubmissionStatus(str, Enum):
    CREATED = "CREATED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


def _coerce_choice(value: Any, allowed: tuple, default: str) -> str:
    """Map a free-form tag onto an allowed value, falling back to default."""
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in allowed:
            return normalized
    return default


def _coerce_list(value: Any, item_model: Type[BaseModel]) -> List[BaseModel]:
    """Validate each entry of a list, dropping the ones that don't fit."""
    if not isinstance(value, list):
        return []
    items = []
    for raw in value:
        try:
            items.append(item_model.model_validate(raw))
        except ValidationError as e:
            logger.debug(f"⚠️ [Models] Dropping malformed {item_model.__name__}: {e.error_count()} error(s)")
    return items


def _coerce_optional(value: Any, item_model: Type[BaseModel]) -> Optional[BaseModel]:
    if value is None or isinstance(value, item_model):
        return value
    if not isinstance(value, dict):
        return None
    try:
        return item_model.model_validate(value)
    except ValidationError:
        logger.debug(f"⚠️ [Models] Dropping malformed {item_model.__name__}")
        return None


# ==================== Input ====================

class InputFile(BaseModel):
    """An uploaded file, already read into memory."""
    model_config = ConfigDict(frozen=True)

    name: str
    media_type: str
    data: bytes

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class UnifiedInput(BaseModel):
    """One turn's payload: free text and/or a file."""
    model_config = ConfigDict(frozen=True)

    text: str = ""
    file: Optional[InputFile] = None

    @field_validator("text", mode="before")
    @classmethod
    def _text_never_none(cls, value):
        return value or ""

    @property
    def has_text(self) -> bool:
        return bool(self.text.strip())


# ==================== Interpretation ====================

class StudentInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="class")
    confidence: Literal["high", "medium", "low"] = "low"

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value):
        return _coerce_choice(value, ("high", "medium", "low"), "low")


class OwnershipContext(BaseModel):
    """Whose work is being analysed."""
    type: Literal["student_direct", "teacher_uploaded_student_work"] = "student_direct"
    student: Optional[StudentInfo] = None

    @field_validator("type", mode="before")
    @classmethod
    def _ownership_type(cls, value):
        return _coerce_choice(
            value, ("student_direct", "teacher_uploaded_student_work"), "student_direct"
        )

    @field_validator("student", mode="before")
    @classmethod
    def _student(cls, value):
        return _coerce_optional(value, StudentInfo)


class InterpretationContext(BaseModel):
    """Output of the interpretation stage, consumed by reasoning."""
    subject: str = "General"
    topic: str = "Unknown"
    intent: Literal["solution", "explanation", "both"] = "explanation"
    difficulty: Optional[str] = None
    ownership: OwnershipContext = Field(default_factory=OwnershipContext)

    @field_validator("subject", mode="before")
    @classmethod
    def _subject(cls, value):
        return value.strip() if isinstance(value, str) and value.strip() else "General"

    @field_validator("topic", mode="before")
    @classmethod
    def _topic(cls, value):
        return value.strip() if isinstance(value, str) and value.strip() else "Unknown"

    @field_validator("intent", mode="before")
    @classmethod
    def _intent(cls, value):
        return _coerce_choice(value, ("solution", "explanation", "both"), "explanation")

    @field_validator("ownership", mode="before")
    @classmethod
    def _ownership(cls, value):
        return _coerce_optional(value, OwnershipContext) or OwnershipContext()

    @classmethod
    def default(cls) -> "InterpretationContext":
        """Safe context used when interpretation degrades."""
        return cls()


# ==================== Analysis result ====================

class Score(BaseModel):
    value: Union[int, float, str] = "-"
    label: str = "Pending"
    reasoning: str = "Analysis incomplete"

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, value):
        return "-" if value is None else value

    @field_validator("label", "reasoning", mode="before")
    @classmethod
    def _text(cls, value, info):
        if isinstance(value, str) and value.strip():
            return value
        return cls.model_fields[info.field_name].default


class FeedbackItem(BaseModel):
    type: Literal["strength", "gap", "neutral"] = "neutral"
    text: str
    reference: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, value):
        return _coerce_choice(value, ("strength", "gap", "neutral"), "neutral")


class Insight(BaseModel):
    title: str
    description: str = ""
    trend: Literal["stable", "improving", "declining", "new"] = "new"

    @field_validator("trend", mode="before")
    @classmethod
    def _trend(cls, value):
        return _coerce_choice(value, ("stable", "improving", "declining", "new"), "new")


class GuidanceStep(BaseModel):
    step: str
    rationale: str = ""


def _lower(value):
    return value.strip().lower() if isinstance(value, str) else value


class HandwritingAnalysis(BaseModel):
    quality: Literal["excellent", "good", "fair", "poor", "illegible"]
    feedback: str = ""

    @field_validator("quality", mode="before")
    @classmethod
    def _quality(cls, value):
        return _lower(value)


class ConceptStability(BaseModel):
    status: Literal["emerging", "unstable_pressure", "stabilizing", "robust", "unknown"] = "unknown"
    evidence: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        return _coerce_choice(
            value, ("emerging", "unstable_pressure", "stabilizing", "robust", "unknown"), "unknown"
        )


class TaskAlignment(BaseModel):
    goal: str = ""
    status: Literal["aligned", "misaligned", "partial"]
    reasoning: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        return _lower(value)


class AnalysisResult(BaseModel):
    """Durable output of a graded submission."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    subject: str = "General"
    topic: str = "Unknown"
    score: Score = Field(default_factory=Score)
    feedback: List[FeedbackItem] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    guidance: List[GuidanceStep] = Field(default_factory=list)
    handwriting: Optional[HandwritingAnalysis] = None
    concept_stability: Optional[ConceptStability] = None
    task_alignment: Optional[TaskAlignment] = None
    teacher_insight: Optional[str] = None
    ownership: OwnershipContext = Field(default_factory=OwnershipContext)
    raw_text: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value):
        return _coerce_optional(value, Score) or Score()

    @field_validator("feedback", mode="before")
    @classmethod
    def _feedback(cls, value):
        return _coerce_list(value, FeedbackItem)

    @field_validator("insights", mode="before")
    @classmethod
    def _insights(cls, value):
        return _coerce_list(value, Insight)

    @field_validator("guidance", mode="before")
    @classmethod
    def _guidance(cls, value):
        return _coerce_list(value, GuidanceStep)

    @field_validator("handwriting", mode="before")
    @classmethod
    def _handwriting(cls, value):
        return _coerce_optional(value, HandwritingAnalysis)

    @field_validator("concept_stability", mode="before")
    @classmethod
    def _concept_stability(cls, value):
        return _coerce_optional(value, ConceptStability)

    @field_validator("task_alignment", mode="before")
    @classmethod
    def _task_alignment(cls, value):
        return _coerce_optional(value, TaskAlignment)

    @field_validator("ownership", mode="before")
    @classmethod
    def _ownership(cls, value):
        return _coerce_optional(value, OwnershipContext) or OwnershipContext()

    @field_validator("teacher_insight", mode="before")
    @classmethod
    def _teacher_insight(cls, value):
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @classmethod
    def from_payload(
        cls,
        data: Any,
        context: InterpretationContext,
        extracted_text: str
    ) -> "AnalysisResult":
        """
        Build a result from a raw reasoning payload.

        Subject, topic and ownership come from the interpretation context;
        everything else from the payload, with defaults for whatever is
        missing or malformed.
        """
        if not isinstance(data, dict):
            data = {}
        return cls(
            subject=context.subject,
            topic=context.topic,
            score=data.get("score"),
            feedback=data.get("feedback"),
            insights=data.get("insights"),
            guidance=data.get("guidance"),
            handwriting=data.get("handwriting"),
            concept_stability=data.get("concept_stability"),
            task_alignment=data.get("task_alignment"),
            teacher_insight=data.get("teacher_insight"),
            ownership=context.ownership,
            raw_text=extracted_text,
        )

    def gaps(self) -> List[str]:
        return [f.text for f in self.feedback if f.type == "gap"]

    def strengths(self) -> List[str]:
        return [f.text for f in self.feedback if f.type == "strength"]


# ==================== Submission lifecycle ====================

_ALLOWED_TRANSITIONS: Dict[SubmissionStatus, tuple] = {
    SubmissionStatus.CREATED: (SubmissionStatus.PROCESSING, SubmissionStatus.ERROR),
    SubmissionStatus.PROCESSING: (SubmissionStatus.COMPLETED, SubmissionStatus.ERROR),
    SubmissionStatus.COMPLETED: (),
    SubmissionStatus.ERROR: (),
}


class Submission(BaseModel):
    """An AnalysisResult plus its lifecycle status."""
    id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    status: SubmissionStatus = SubmissionStatus.CREATED
    file_name: str = "Text Submission"
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None

    @classmethod
    def create(cls, file_name: Optional[str] = None) -> "Submission":
        return cls(id=str(uuid.uuid4()), file_name=file_name or "Text Submission")

    def _transition(self, target: SubmissionStatus):
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"Invalid submission transition {self.status.value} -> {target.value}")
        self.status = target

    def mark_processing(self):
        self._transition(SubmissionStatus.PROCESSING)

    def mark_completed(self, result: AnalysisResult):
        self._transition(SubmissionStatus.COMPLETED)
        self.result = result

    def mark_error(self, message: str):
        self._transition(SubmissionStatus.ERROR)
        self.error = message


class HistoryItem(BaseModel):
    """Denormalised summary of a persisted submission."""
    id: str
    date: str
    subject: str
    topic: str
    score_label: str

    @classmethod
    def from_submission(cls, submission: Submission) -> "HistoryItem":
        if submission.result is None:
            raise ValueError("Only submissions with a result can be listed in history")
        result = submission.result
        return cls(
            id=submission.id,
            date=submission.timestamp.isoformat(),
            subject=result.subject,
            topic=result.topic,
            score_label=result.score.label,
        )


class UserProfile(BaseModel):
    """Profile used to hydrate a session on its first turn."""
    name: str = ""
    role: Optional[UserRole] = None
    email: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value):
        # Older profiles only stored a role
        return value or ""

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, value):
        if isinstance(value, str):
            upper = value.strip().upper()
            return upper if upper in UserRole.__members__ else None
        return value
