"""
Intent Classifier

Heuristic predicates deciding what a turn of free text is:
- a piece of work to grade (submission)
- small talk or an introduction (conversational)
- a request for practice material (generation)

Plus identity extraction ("I'm Sarah, a teacher").

Everything here is pure and keyword-driven. The keyword tables are module
level so they can be extended without touching the routing logic.
"""

import re
from dataclasses import dataclass
from typing import Optional

from eduvane_orchestrator.models import UserRole


# ==================== Keyword tables ====================

SUBMISSION_KEYWORDS = (
    "solve", "calculate", "find", "evaluate", "simplify", "check", "analyze", "assess",
)

# Digits and arithmetic operators hint at a problem or a worked attempt
MATH_SIGNAL_PATTERN = re.compile(r"[\d=+\-*/^]")
MATH_SIGNAL_MIN_LENGTH = 5

GREETINGS = (
    "hi", "hello", "hey", "greetings", "yo", "hiya", "sup", "howdy",
    "good morning", "good afternoon", "good evening",
)

IDENTITY_OPENERS = ("i am ", "im ", "my name is ", "call me ")

PHATIC_PHRASES = ("ok", "okay", "thanks", "thank you", "cool", "nice")

META_QUESTIONS = (
    "who are you", "what is eduvane", "what is this", "what can you do", "help",
)

GENERATION_KEYWORDS = (
    "generate", "create", "make", "quiz", "test", "practice", "questions", "exercises",
)

NAME_PATTERN = re.compile(
    r"(?:^|\s)(?:i['’]m|i\s+am|my\s+name\s+is|call\s+me)\s+([a-z\s]+?)(?=$|[.!,])",
    re.IGNORECASE,
)

NAME_BLACKLIST = ("a teacher", "a student", "ready", "here", "listening", "eduvane")
NAME_MAX_WORDS = 3

TEACHER_KEYWORDS = ("teacher", "educator", "professor", "instructor")
STUDENT_KEYWORDS = ("student", "learner", "pupil")

TEACHER_ROLE_PATTERN = re.compile(r"(?:^|\s)(?:" + "|".join(TEACHER_KEYWORDS) + ")", re.IGNORECASE)
STUDENT_ROLE_PATTERN = re.compile(r"(?:^|\s)(?:" + "|".join(STUDENT_KEYWORDS) + ")", re.IGNORECASE)

# Looser check used only to answer the role question
SIMPLE_ROLE_KEYWORDS = (
    (UserRole.TEACHER, ("teacher", "educator")),
    (UserRole.STUDENT, ("student", "learner")),
)


@dataclass(frozen=True)
class IdentityClaim:
    """What a turn revealed about the user. Both fields may be absent."""
    name: Optional[str] = None
    role: Optional[UserRole] = None

    @property
    def is_present(self) -> bool:
        return bool(self.name or self.role)


def normalize(text: str) -> str:
    """Case-fold and strip punctuation."""
    lowered = (text or "").strip().lower()
    return re.sub(r"[^\w\s]", "", lowered).strip()


def is_submission_intent(text: str) -> bool:
    """
    Does the text look like a problem or an attempt at one?

    Biased toward yes: grading is the most valuable path, so ambiguous
    input with task verbs or math characters counts as gradable work.
    """
    lowered = (text or "").strip().lower()
    if any(keyword in lowered for keyword in SUBMISSION_KEYWORDS):
        return True
    return bool(MATH_SIGNAL_PATTERN.search(lowered)) and len(lowered) > MATH_SIGNAL_MIN_LENGTH


def is_conversational_intent(text: str) -> bool:
    """Greetings, thanks, introductions and questions about the assistant."""
    lowered = (text or "").strip().lower()
    clean = normalize(text)

    if any(clean == greeting or clean.startswith(greeting + " ") for greeting in GREETINGS):
        return True
    if any(clean.startswith(opener) or (" " + opener) in clean for opener in IDENTITY_OPENERS):
        return True
    if clean in PHATIC_PHRASES:
        return True
    return any(question in lowered for question in META_QUESTIONS)


def is_generation_intent(text: str) -> bool:
    lowered = (text or "").strip().lower()
    return any(keyword in lowered for keyword in GENERATION_KEYWORDS)


def _title_case(name: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in name.split())


def _plausible_name(candidate: str) -> bool:
    lowered = candidate.lower()
    if lowered in NAME_BLACKLIST:
        return False
    words = lowered.split()
    if not words or len(words) > NAME_MAX_WORDS:
        return False
    role_words = TEACHER_KEYWORDS + STUDENT_KEYWORDS
    return not any(word in role_words for word in words)


def extract_identity(text: str) -> IdentityClaim:
    """Pull a name and/or a role out of an introduction."""
    stripped = (text or "").strip()
    name = None

    match = NAME_PATTERN.search(stripped)
    if match:
        candidate = " ".join(match.group(1).split())
        if _plausible_name(candidate):
            name = _title_case(candidate)

    role = None
    if TEACHER_ROLE_PATTERN.search(stripped):
        role = UserRole.TEACHER
    elif STUDENT_ROLE_PATTERN.search(stripped):
        role = UserRole.STUDENT

    return IdentityClaim(name=name, role=role)


def parse_simple_role(text: str) -> Optional[UserRole]:
    """Answer to "are you a teacher or a student?"."""
    lowered = (text or "").lower()
    for role, keywords in SIMPLE_ROLE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return role
    return None
