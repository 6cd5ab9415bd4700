"""
Eduvane Orchestrator

Routes each turn of a conversation to one of three paths and streams the
resulting events back to the caller:

- Analysis: perceive -> interpret -> reason over submitted work
- Conversation: greetings, introductions and the role question (no model calls)
- Learning task: streamed chat / question generation

One orchestrator owns one session (SessionState + LearningSession). It is not
re-entrant: callers must finish consuming one process_input() before starting
the next.
"""

import logging
from enum import Enum
from typing import AsyncIterator, Optional

from eduvane_orchestrator.config import OrchestratorConfig
from eduvane_orchestrator.events import (
    ErrorEvent,
    FollowUp,
    OrchestratorEvent,
    PhaseUpdate,
    StreamChunk,
    SubmissionComplete,
    TaskComplete,
)
from eduvane_orchestrator.exceptions import PerceptionError, ReasoningError
from eduvane_orchestrator.intent_classifier import (
    IdentityClaim,
    extract_identity,
    is_conversational_intent,
    is_generation_intent,
    is_submission_intent,
    parse_simple_role,
)
from eduvane_orchestrator.models import (
    AnalysisPhase,
    PipelineMode,
    Submission,
    UnifiedInput,
    UserRole,
)
from eduvane_orchestrator.persistence import PersistenceAdapter
from eduvane_orchestrator.reasoning_service import LearningSession, ReasoningService
from eduvane_orchestrator.session_state import SessionState
from eduvane_orchestrator.variation_generator import (
    TEACHER_PRACTICE_OFFER,
    Situation,
    VariationGenerator,
)

logger = logging.getLogger(__name__)

ANALYSIS_FAILED_MESSAGE = "Analysis pipeline failed."
TASK_FAILED_MESSAGE = "I encountered an issue processing that task."


class Route(str, Enum):
    ANALYSIS = "ANALYSIS"
    CONVERSATION = "CONVERSATION"
    LEARNING_TASK = "LEARNING_TASK"
    NONE = "NONE"


def select_pipeline_mode(text: str, threshold: int = 800) -> PipelineMode:
    """Short work goes through the fast tier, everything else deep."""
    return PipelineMode.FAST if len(text or "") < threshold else PipelineMode.DEEP


class Orchestrator:
    """Single-session turn router and event producer."""

    def __init__(
        self,
        reasoning_service: ReasoningService,
        persistence: Optional[PersistenceAdapter] = None,
        variation_generator: Optional[VariationGenerator] = None,
        config: Optional[OrchestratorConfig] = None,
        chat_session: Optional[LearningSession] = None
    ):
        self.reasoning = reasoning_service
        self.persistence = persistence
        self.variations = variation_generator or VariationGenerator()
        self.config = config or OrchestratorConfig()
        self.chat_session = chat_session or self.reasoning.create_session()
        self.state = SessionState()
        # Advanced on every reset; turns from an older epoch go quiet
        self._epoch = 0

    # ==================== Session lifecycle ====================

    def reset_session(self):
        self._epoch += 1
        self.reasoning.end_session(self.chat_session)
        self.chat_session = self.reasoning.create_session()
        self.state = SessionState()
        logger.info(f"🔄 [Orchestrator] Session reset (epoch {self._epoch})")

    def _is_stale(self, epoch: int) -> bool:
        return epoch != self._epoch

    async def _initialize(self, is_guest: bool):
        profile = None
        if not is_guest and self.persistence is not None:
            try:
                profile = await self.persistence.get_user_profile()
            except Exception as e:
                logger.warning(f"⚠️ [Orchestrator] Could not load user profile: {e}")
        self.state.hydrate(profile)
        if profile:
            logger.info(f"📚 [Orchestrator] Hydrated session (role={profile.role.value if profile.role else None}, named={bool(profile.name)})")

    # ==================== Routing ====================

    def route(self, unified_input: UnifiedInput) -> Route:
        if unified_input.file is not None:
            return Route.ANALYSIS

        text = unified_input.text
        if not unified_input.has_text:
            return Route.NONE

        conversational = is_conversational_intent(text)
        generation = is_generation_intent(text)

        if is_submission_intent(text) and not conversational and not generation:
            return Route.ANALYSIS

        if not generation and (
            conversational
            or extract_identity(text).is_present
            or self.state.role_asked
        ):
            return Route.CONVERSATION

        return Route.LEARNING_TASK

    async def process_input(
        self,
        unified_input: UnifiedInput,
        is_guest: bool = False
    ) -> AsyncIterator[OrchestratorEvent]:
        """Handle one turn, yielding events in order."""
        epoch = self._epoch

        if not self.state.initialized:
            await self._initialize(is_guest)
            if self._is_stale(epoch):
                return

        route = self.route(unified_input)
        logger.info(f"🧭 [Orchestrator] Route: {route.value} (guest={is_guest}, file={unified_input.file is not None})")

        if route == Route.NONE:
            return

        if route == Route.ANALYSIS:
            async for event in self._run_analysis(unified_input, is_guest, epoch):
                yield event
            return

        claim = extract_identity(unified_input.text)
        if self.state.apply_identity(claim):
            logger.info(f"🪪 [Orchestrator] Identity update (role={self.state.user_role.value if self.state.user_role else None}, named={bool(self.state.user_name)})")

        if route == Route.CONVERSATION:
            for event in self._handle_conversation(unified_input.text, claim):
                yield event
            return

        self.state.has_introduced_self = True
        async for event in self._run_learning_task(unified_input.text, epoch):
            yield event

    # ==================== Conversation ====================

    def _handle_conversation(self, text: str, claim: IdentityClaim):
        state = self.state

        if state.role_asked and not state.role_confirmed:
            answered = parse_simple_role(text)
            if answered:
                state.confirm_role(answered)
                logger.info(f"✅ [Orchestrator] Role confirmed: {answered.value}")
            state.clear_role_inquiry()

        if not state.has_introduced_self or claim.is_present:
            state.has_introduced_self = True
            if state.user_role:
                reply = self.variations.generate(Situation.GREETING, state.user_role, state.first_name)
            else:
                reply = self.variations.generate(Situation.GREETING, None, state.first_name)
                state.mark_role_asked()
        else:
            reply = self.variations.generate(Situation.CONTINUITY, state.user_role, state.first_name)

        yield StreamChunk(reply)
        yield TaskComplete()

    # ==================== Analysis ====================

    def _analysis_follow_up(self, role: Optional[UserRole], teacher_insight: Optional[str]) -> str:
        if role == UserRole.TEACHER and teacher_insight:
            return f"{teacher_insight}\n\n{TEACHER_PRACTICE_OFFER}"
        return self.variations.generate(Situation.FOLLOW_UP_ANALYSIS, role, self.state.first_name)

    async def _run_analysis(
        self,
        unified_input: UnifiedInput,
        is_guest: bool,
        epoch: int
    ) -> AsyncIterator[OrchestratorEvent]:
        upload = unified_input.file
        submission = Submission.create(upload.name if upload else None)
        submission.mark_processing()
        yield PhaseUpdate(AnalysisPhase.PROCESSING)

        role = self.state.user_role
        try:
            encoded = None
            media_type = None
            if upload is not None:
                encoded = upload.to_base64()
                media_type = upload.media_type
                extracted_text = await self.reasoning.perceive(encoded, media_type)
                if self._is_stale(epoch):
                    return
            else:
                extracted_text = unified_input.text

            mode = select_pipeline_mode(extracted_text, self.config.fast_path_threshold)

            context = await self.reasoning.interpret(extracted_text)
            if self._is_stale(epoch):
                return

            history_context = ""
            if not is_guest and self.persistence is not None and context.subject:
                try:
                    history_context = await self.persistence.get_recent_insights(context.subject)
                except Exception as e:
                    logger.warning(f"⚠️ [Orchestrator] Could not load recent insights for {context.subject}: {e}")
                if self._is_stale(epoch):
                    return

            logger.info(f"🔬 [Orchestrator] Reasoning {submission.id[:8]} ({mode.value}, {len(extracted_text)} chars, subject={context.subject})")
            result = await self.reasoning.reason(
                encoded,
                media_type,
                extracted_text,
                context,
                user_instruction=unified_input.text or None,
                mode=mode,
                history_context=history_context or None,
                role=role,
            )
            if self._is_stale(epoch):
                return
            result = result.model_copy(update={"id": submission.id})

        except (PerceptionError, ReasoningError) as e:
            if self._is_stale(epoch):
                return
            logger.error(f"❌ [Orchestrator] Analysis {submission.id[:8]} failed: {e}")
            submission.mark_error(str(e))
            yield ErrorEvent(str(e))
            yield PhaseUpdate(AnalysisPhase.ERROR)
            return
        except Exception as e:
            if self._is_stale(epoch):
                return
            logger.error(f"❌ [Orchestrator] Unexpected analysis failure for {submission.id[:8]}: {e}", exc_info=True)
            submission.mark_error(ANALYSIS_FAILED_MESSAGE)
            yield ErrorEvent(ANALYSIS_FAILED_MESSAGE)
            yield PhaseUpdate(AnalysisPhase.ERROR)
            return

        submission.mark_completed(result)
        self.chat_session.record_analysis(result)

        if not is_guest and self.persistence is not None:
            try:
                await self.persistence.save_submission(submission)
            except Exception as e:
                logger.warning(f"⚠️ [Orchestrator] Could not save submission {submission.id[:8]}: {e}")
            if self._is_stale(epoch):
                return

        logger.info(f"✅ [Orchestrator] Analysis {submission.id[:8]} complete: {result.score.label}")
        yield SubmissionComplete(submission)
        yield PhaseUpdate(AnalysisPhase.COMPLETE)
        yield FollowUp(self._analysis_follow_up(role, result.teacher_insight))

    # ==================== Learning tasks ====================

    async def _run_learning_task(self, text: str, epoch: int) -> AsyncIterator[OrchestratorEvent]:
        session = self.chat_session
        role = self.state.user_role
        chunks = 0

        try:
            async for fragment in self.reasoning.stream_learning_task(text, role, session):
                if self._is_stale(epoch) or not fragment:
                    continue
                chunks += 1
                yield StreamChunk(fragment)
        except Exception as e:
            if self._is_stale(epoch):
                return
            logger.error(f"❌ [Orchestrator] Learning task failed after {chunks} chunks: {e}")
            yield ErrorEvent(TASK_FAILED_MESSAGE)
            return

        if self._is_stale(epoch):
            logger.info("⏭️ [Orchestrator] Dropped learning task output from a reset session")
            return

        logger.info(f"✅ [Orchestrator] Learning task streamed {chunks} chunks")
        yield TaskComplete()
        if is_generation_intent(text):
            yield FollowUp(self.variations.generate(Situation.FOLLOW_UP_TASK, role, self.state.first_name))
