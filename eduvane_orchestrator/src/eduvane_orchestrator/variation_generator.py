"""
Variation Generator

Picks one of several equivalent phrasings for a conversational situation so
repeated turns don't sound canned. Tone and content are fixed per
situation x role; only the wording varies.

Pass a seeded random.Random to get reproducible picks.
"""

import random
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from eduvane_orchestrator.models import UserRole


class Situation(str, Enum):
    GREETING = "GREETING"
    CONTINUITY = "CONTINUITY"
    FOLLOW_UP_ANALYSIS = "FOLLOW_UP_ANALYSIS"
    FOLLOW_UP_TASK = "FOLLOW_UP_TASK"


TEACHER_PRACTICE_OFFER = "Would you like to generate a practice set based on these errors?"

# {name} expands to ", FirstName" or to nothing
_GREETING_TEACHER = (
    "Hello{name}. I can take care of grading, surface the gaps your class shares and build targeted assessments.\n\n"
    "Upload a student submission to start, or tell me a topic you need questions on.",
    "Welcome{name}. I'm here to speed up your marking and show you what your students need next.\n\n"
    "Share a student's work or describe the questions you want.",
    "Good to see you{name}. I can analyse student performance or put together practice material.\n\n"
    "Upload a file or ask for a resource whenever you're ready.",
    "Hi{name}. Leave the grading details to me so you can focus on teaching.\n\n"
    "Upload a submission, or tell me which quiz to prepare.",
)

_GREETING_STUDENT = (
    "Hi{name}. I'm here to help you understand the material better. I can check your work or set you some practice questions.\n\n"
    "Upload your work whenever you're ready.",
    "Hello{name}. Let's build up your grasp of the topic together. I can go through your answers or start a practice session.\n\n"
    "Share an image of your work or ask me a question.",
    "Welcome{name}. Think of me as a study partner: I review your solutions and can give you new problems to try.\n\n"
    "Start by sharing your work and we'll go from there.",
    "Hey{name}. Ready to get going?\n\n"
    "Upload a problem you're stuck on, or ask me for some practice questions.",
)

_GREETING_UNKNOWN = (
    "Nice to meet you{name}. I'm Eduvane, a classroom feedback assistant.\n\n"
    "So I can pitch my feedback right, are you a Teacher or a Student?",
    "Hello{name}. I'm Eduvane. I turn schoolwork into feedback and insight.\n\n"
    "To support you properly I need to know: are you a Teacher or a Student?",
    "Hi{name}. I'm Eduvane, and I help turn student work into learning intelligence.\n\n"
    "Are you here as a Teacher or as a Student?",
    "Greetings{name}. I analyse academic work and create learning material.\n\n"
    "Are you a Teacher with a class, or a Student looking for help?",
)

_CONTINUITY = (
    "I'm listening{name}. What would you like to work on?",
    "I'm ready{name}. Upload an answer or tell me what you need.",
    "I'm here{name}. How can I help with your learning right now?",
    "Go ahead{name}. I can analyse work or generate questions.",
    "What's next{name}? I can review another file or start a practice session.",
    "Standing by. Do you have more work to upload, or a question to ask?",
)

_FOLLOW_UP_ANALYSIS_TEACHER = (
    "Analysis complete. I've marked the student's main gaps.\n\n" + TEACHER_PRACTICE_OFFER,
    "The diagnosis is done and the detailed feedback is above.\n\n"
    "Shall we create targeted questions for these issues?",
    "The assessment is ready, with the main areas to improve noted.\n\n"
    "Would you like follow-up exercises for this student?",
    "Review finished. The feedback above walks through the gaps in reasoning.\n\n"
    "I can put together a short remedial quiz on this topic if that helps.",
)

_FOLLOW_UP_ANALYSIS_STUDENT = (
    "I've gone through your work. Have a look at the feedback for tips.\n\n"
    "Want to try a few practice questions to push this score up?",
    "I've checked your solution and the feedback above shows where you stand.\n\n"
    "Shall we do some practice problems to reinforce it?",
    "All done. I've pointed out a few things to watch for.\n\n"
    "Would you like a quick quiz on these ideas?",
    "Finished. There are a couple of spots where the reasoning drifted.\n\n"
    "Ready to try a similar problem and lock it in?",
)

_FOLLOW_UP_ANALYSIS_UNKNOWN = (
    "Analysis complete. You can upload another answer for review,\n"
    "or I can generate practice questions on the areas identified.",
    "The review is finished. Upload more work, or ask me for a practice set.",
    "Your feedback is ready. We can look at another upload, or I can write questions on this topic.",
    "Result ready. Let me know if you'd like to practise this topic further.",
)

_FOLLOW_UP_TASK_TEACHER = (
    "These are ready for your class. Would you like an answer key as well?",
    "Here's the practice material. I can write out the solutions too if you need them.",
    "Questions ready. Tell me if you want an answer key or more variations.",
    "That's the set. Shall I prepare detailed worked solutions to go with it?",
)

_FOLLOW_UP_TASK_LEARNER = (
    "Have a go at these. You can upload your answers here and I'll check them.",
    "Here are some practice problems. When you're done, upload a photo and I'll review it.",
    "Give these a try. I'll mark your work whenever you upload it.",
    "See how you get on with these. I'm ready to review your answers when you share them.",
)

_POOLS: Dict[Tuple[Situation, Optional[UserRole]], Sequence[str]] = {
    (Situation.GREETING, UserRole.TEACHER): _GREETING_TEACHER,
    (Situation.GREETING, UserRole.STUDENT): _GREETING_STUDENT,
    (Situation.GREETING, None): _GREETING_UNKNOWN,
    (Situation.CONTINUITY, UserRole.TEACHER): _CONTINUITY,
    (Situation.CONTINUITY, UserRole.STUDENT): _CONTINUITY,
    (Situation.CONTINUITY, None): _CONTINUITY,
    (Situation.FOLLOW_UP_ANALYSIS, UserRole.TEACHER): _FOLLOW_UP_ANALYSIS_TEACHER,
    (Situation.FOLLOW_UP_ANALYSIS, UserRole.STUDENT): _FOLLOW_UP_ANALYSIS_STUDENT,
    (Situation.FOLLOW_UP_ANALYSIS, None): _FOLLOW_UP_ANALYSIS_UNKNOWN,
    (Situation.FOLLOW_UP_TASK, UserRole.TEACHER): _FOLLOW_UP_TASK_TEACHER,
    (Situation.FOLLOW_UP_TASK, UserRole.STUDENT): _FOLLOW_UP_TASK_LEARNER,
    (Situation.FOLLOW_UP_TASK, None): _FOLLOW_UP_TASK_LEARNER,
}


def pool(situation: Situation, role: Optional[UserRole] = None) -> Sequence[str]:
    """Raw (unformatted) phrasings for a situation x role pair."""
    return _POOLS[(situation, role)]


def render(template: str, name: Optional[str] = None) -> str:
    return template.format(name=f", {name}" if name else "")


class VariationGenerator:
    """Role- and situation-aware phrase picker."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate(
        self,
        situation: Situation,
        role: Optional[UserRole] = None,
        name: Optional[str] = None
    ) -> str:
        template = self.rng.choice(pool(situation, role))
        return render(template, name)

    def candidates(
        self,
        situation: Situation,
        role: Optional[UserRole] = None,
        name: Optional[str] = None
    ):
        """Every phrase generate() could return for these arguments."""
        return [render(template, name) for template in pool(situation, role)]
