"""
OpenAI Reasoning Service

ReasoningService backed by the OpenAI chat completions API:
- Perception: vision model reads images (data URLs) and PDFs (file parts)
- Interpretation / reasoning: JSON-mode completions
- Learning tasks: streamed completions over the session's chat memory

Fast mode uses the small model; deep mode the larger one.
"""

import base64
import json
import logging
import os
import re
from typing import Any, AsyncIterator, Dict, List, Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from eduvane_orchestrator.exceptions import PerceptionError, ReasoningError, StreamError
from eduvane_orchestrator.models import (
    AnalysisResult,
    InterpretationContext,
    PipelineMode,
    UserRole,
)
from eduvane_orchestrator.prompts import (
    INTERPRETATION_PROMPT,
    LEARNING_TASK_PROMPT,
    PERCEPTION_PROMPT,
    REASONING_PROMPT,
    build_reasoning_request,
)
from eduvane_orchestrator.reasoning_service import LearningSession, ReasoningService

load_dotenv()

logger = logging.getLogger(__name__)

IMAGE_MEDIA_TYPES = ("image/png", "image/jpeg", "image/jpg", "image/webp", "image/gif")
PDF_MEDIA_TYPE = "application/pdf"

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_json_payload(raw: Optional[str]) -> Dict[str, Any]:
    """Parse a model's JSON reply, tolerating Markdown code fences."""
    cleaned = _CODE_FENCE.sub("", raw or "").strip() or "{}"
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Fall back to the outermost object if the model wrapped it in prose
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            raise
        data = json.loads(match.group())
    return data if isinstance(data, dict) else {}


def content_part(encoded: str, media_type: str, file_name: str = "submission.pdf") -> Dict[str, Any]:
    """Chat completion content part for base64 file content."""
    data_url = f"data:{media_type};base64,{encoded}"
    if media_type == PDF_MEDIA_TYPE:
        return {"type": "file", "file": {"filename": file_name, "file_data": data_url}}
    return {"type": "image_url", "image_url": {"url": data_url}}


def role_label(role: Optional[UserRole], unknown: str) -> str:
    return role.value if role else unknown


class OpenAIReasoningService(ReasoningService):
    """Perception, interpretation, reasoning and chat on top of OpenAI."""

    def __init__(self, llm_client: Optional[AsyncOpenAI] = None, chat_history_messages: int = 40):
        if llm_client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY not found in environment variables")
            llm_client = AsyncOpenAI(api_key=api_key)
        self.llm_client = llm_client

        self.chat_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.fast_model = os.getenv("OPENAI_FAST_MODEL", "gpt-4o-mini")
        self.deep_model = os.getenv("OPENAI_DEEP_MODEL", "gpt-4o")
        self.vision_model = os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini")
        self.chat_history_messages = chat_history_messages

    def create_session(self) -> LearningSession:
        return LearningSession(max_messages=self.chat_history_messages)

    def model_for(self, mode: PipelineMode) -> str:
        return self.fast_model if mode == PipelineMode.FAST else self.deep_model

    # ==================== Perception ====================

    async def perceive(self, encoded: str, media_type: str) -> str:
        media_type = (media_type or "").lower()

        if media_type.startswith("text/"):
            # Plain text uploads need no vision pass
            try:
                return base64.b64decode(encoded).decode("utf-8")
            except (ValueError, UnicodeDecodeError) as e:
                raise PerceptionError("Unable to read the document.") from e

        if media_type not in IMAGE_MEDIA_TYPES and media_type != PDF_MEDIA_TYPE:
            raise PerceptionError(f"Unsupported file type: {media_type or 'unknown'}.")

        try:
            response = await self.llm_client.chat.completions.create(
                model=self.vision_model,
                messages=[
                    {"role": "system", "content": PERCEPTION_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            content_part(encoded, media_type),
                            {"type": "text", "text": "Extract all legible text from this content. Describe the layout briefly."},
                        ],
                    },
                ],
                temperature=0.1,
            )
            text = response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"❌ [OpenAIReasoning] Perception failed: {e}")
            raise PerceptionError("Unable to read the document.") from e

        logger.info(f"👁️ [OpenAIReasoning] Perceived {len(text)} characters from {media_type}")
        return text

    # ==================== Interpretation ====================

    async def interpret(self, text: str) -> InterpretationContext:
        try:
            response = await self.llm_client.chat.completions.create(
                model=self.fast_model,
                messages=[
                    {"role": "system", "content": INTERPRETATION_PROMPT},
                    {"role": "user", "content": f"Analyzed Text: {text}"},
                ],
                response_format={"type": "json_object"},
                temperature=0.1,
            )
            data = parse_json_payload(response.choices[0].message.content)
            context = InterpretationContext.model_validate(data)
        except Exception as e:
            logger.warning(f"⚠️ [OpenAIReasoning] Interpretation degraded to default context: {e}")
            return InterpretationContext.default()

        logger.info(f"🎯 [OpenAIReasoning] Interpreted: {context.subject} / {context.topic} (intent={context.intent}, ownership={context.ownership.type})")
        return context

    # ==================== Reasoning ====================

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
        student = context.ownership.student
        request = build_reasoning_request(
            text=text,
            subject=context.subject,
            topic=context.topic,
            intent=context.intent,
            ownership_type=context.ownership.type,
            student_name=(student.name if student and student.name else "Unknown"),
            student_class=(student.class_name if student and student.class_name else "Unknown"),
            user_instruction=user_instruction or "None",
            history_context=history_context or "None",
            role=role_label(role, "Unknown"),
        )

        user_content: List[Dict[str, Any]] = [{"type": "text", "text": request}]
        if encoded and media_type and (media_type in IMAGE_MEDIA_TYPES or media_type == PDF_MEDIA_TYPE):
            user_content.insert(0, content_part(encoded, media_type))

        model = self.model_for(mode)
        try:
            response = await self.llm_client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": REASONING_PROMPT},
                    {"role": "user", "content": user_content},
                ],
                response_format={"type": "json_object"},
                temperature=0.3,
            )
            data = parse_json_payload(response.choices[0].message.content)
        except Exception as e:
            logger.error(f"❌ [OpenAIReasoning] Reasoning failed ({model}): {e}")
            raise ReasoningError("Eduvane could not complete the diagnosis.") from e

        result = AnalysisResult.from_payload(data, context, text)
        logger.info(f"✅ [OpenAIReasoning] Analysis ready ({mode.value}/{model}): {result.score.label}, {len(result.feedback)} feedback items")
        return result

    # ==================== Learning tasks ====================

    async def stream_learning_task(
        self,
        text: str,
        role: Optional[UserRole],
        session: LearningSession
    ) -> AsyncIterator[str]:
        message = f"[Active User Role: {role_label(role, 'Ambiguous')}] {text}"
        messages = [{"role": "system", "content": LEARNING_TASK_PROMPT}]
        messages.extend(session.messages)
        messages.append({"role": "user", "content": message})

        full_response = ""
        try:
            stream = await self.llm_client.chat.completions.create(
                model=self.chat_model,
                messages=messages,
                stream=True,
                temperature=0.7,
            )
            async for chunk in stream:
                if chunk.choices and len(chunk.choices) > 0:
                    delta = chunk.choices[0].delta
                    if delta and delta.content:
                        full_response += delta.content
                        yield delta.content
        except Exception as e:
            logger.error(f"❌ [OpenAIReasoning] Learning task stream failed after {len(full_response)} characters: {e}")
            raise StreamError("The learning task stream failed.") from e

        session.add_exchange(message, full_response)
