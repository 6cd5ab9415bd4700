"""
Unit Tests for the Data Model

Reasoning payloads are loosely structured; models must fill in safe
defaults instead of failing.
"""

import pytest

from eduvane_orchestrator.models import (
    AnalysisResult,
    HistoryItem,
    InputFile,
    InterpretationContext,
    Submission,
    SubmissionStatus,
    UnifiedInput,
    UserProfile,
    UserRole,
)


class TestInterpretationContext:

    def test_default(self):
        context = InterpretationContext.default()
        assert context.subject == "General"
        assert context.topic == "Unknown"
        assert context.intent == "explanation"
        assert context.ownership.type == "student_direct"

    def test_unknown_tags_fall_back(self):
        context = InterpretationContext.model_validate({
            "subject": "  ",
            "intent": "rant",
            "ownership": {"type": "someone_else", "student": "not a dict"},
        })
        assert context.subject == "General"
        assert context.intent == "explanation"
        assert context.ownership.type == "student_direct"
        assert context.ownership.student is None

    def test_student_class_alias(self):
        context = InterpretationContext.model_validate({
            "subject": "Physics",
            "ownership": {
                "type": "teacher_uploaded_student_work",
                "student": {"name": "Tunde", "class": "JSS2", "confidence": "HIGH"},
            },
        })
        assert context.ownership.student.class_name == "JSS2"
        assert context.ownership.student.confidence == "high"


class TestAnalysisResult:

    @pytest.fixture
    def context(self):
        return InterpretationContext(subject="Mathematics", topic="Fractions")

    def test_empty_payload_gets_defaults(self, context):
        result = AnalysisResult.from_payload({}, context, "1/2 + 1/3")
        assert result.subject == "Mathematics"
        assert result.topic == "Fractions"
        assert result.score.value == "-"
        assert result.score.label == "Pending"
        assert result.score.reasoning == "Analysis incomplete"
        assert result.feedback == []
        assert result.insights == []
        assert result.guidance == []
        assert result.raw_text == "1/2 + 1/3"

    def test_non_dict_payload(self, context):
        result = AnalysisResult.from_payload(["not", "a", "dict"], context, "")
        assert result.score.label == "Pending"

    def test_malformed_entries_are_dropped(self, context):
        result = AnalysisResult.from_payload({
            "feedback": [{"type": "gap", "text": "Common denominator missing"}, {"type": "gap"}, "junk"],
            "insights": "not a list",
            "guidance": None,
            "handwriting": {"quality": "scribbly"},
            "task_alignment": {"goal": "add", "status": "Aligned"},
        }, context, "")
        assert [f.text for f in result.feedback] == ["Common denominator missing"]
        assert result.insights == []
        assert result.guidance == []
        assert result.handwriting is None
        assert result.task_alignment.status == "aligned"

    def test_unknown_feedback_type_is_neutral(self, context):
        result = AnalysisResult.from_payload({"feedback": [{"type": "praise", "text": "Neat"}]}, context, "")
        assert result.feedback[0].type == "neutral"

    def test_blank_teacher_insight_is_none(self, context):
        result = AnalysisResult.from_payload({"teacher_insight": "   "}, context, "")
        assert result.teacher_insight is None

    def test_gaps_and_strengths(self, context):
        result = AnalysisResult.from_payload({
            "feedback": [
                {"type": "strength", "text": "Good layout"},
                {"type": "gap", "text": "Wrong denominator"},
            ],
        }, context, "")
        assert result.gaps() == ["Wrong denominator"]
        assert result.strengths() == ["Good layout"]


class TestSubmissionLifecycle:

    def test_create(self):
        submission = Submission.create()
        assert submission.status == SubmissionStatus.CREATED
        assert submission.file_name == "Text Submission"
        assert submission.id != Submission.create().id

    def test_happy_path(self):
        submission = Submission.create("work.png")
        submission.mark_processing()
        result = AnalysisResult()
        submission.mark_completed(result)
        assert submission.status == SubmissionStatus.COMPLETED
        assert submission.result is result

    def test_error_path(self):
        submission = Submission.create()
        submission.mark_processing()
        submission.mark_error("Unable to read the document.")
        assert submission.status == SubmissionStatus.ERROR
        assert submission.error == "Unable to read the document."

    def test_cannot_complete_without_processing(self):
        with pytest.raises(ValueError):
            Submission.create().mark_completed(AnalysisResult())

    def test_terminal_states_are_final(self):
        submission = Submission.create()
        submission.mark_processing()
        submission.mark_completed(AnalysisResult())
        with pytest.raises(ValueError):
            submission.mark_error("late failure")

    def test_history_item_requires_result(self):
        with pytest.raises(ValueError):
            HistoryItem.from_submission(Submission.create())


class TestInputs:

    def test_input_file_base64(self):
        upload = InputFile(name="a.txt", media_type="text/plain", data=b"hi")
        assert upload.to_base64() == "aGk="

    def test_unified_input_text_defaults(self):
        assert UnifiedInput().text == ""
        assert UnifiedInput(text=None).has_text is False
        assert UnifiedInput(text="  ").has_text is False
        assert UnifiedInput(text="hello").has_text is True


class TestUserProfile:

    @pytest.mark.parametrize("raw,expected", [
        ("teacher", UserRole.TEACHER),
        ("STUDENT", UserRole.STUDENT),
        ("admin", None),
        (None, None),
    ])
    def test_role_normalisation(self, raw, expected):
        assert UserProfile(role=raw).role == expected
