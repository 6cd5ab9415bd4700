"""
Runtime configuration read from the environment (.env supported).
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class OrchestratorConfig:
    # Extracted text shorter than this goes through the fast reasoning tier
    fast_path_threshold: int = 800
    # Persisted history window
    history_limit: int = 50
    # Same-subject submissions summarised for reasoning
    insight_window: int = 5
    # Messages kept in a learning-task chat session
    chat_history_messages: int = 40

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        return cls(
            fast_path_threshold=_env_int("EDUVANE_FAST_PATH_THRESHOLD", 800),
            history_limit=_env_int("EDUVANE_HISTORY_LIMIT", 50),
            insight_window=_env_int("EDUVANE_INSIGHT_WINDOW", 5),
            chat_history_messages=_env_int("EDUVANE_CHAT_HISTORY_MESSAGES", 40),
        )
