from __future__ import annotations
import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from exceptions import ContentFetchError

ROUND_TIME = 30
POINTS_PER_LEVEL = 5
WRONG_GUESS_LOCKOUT = 1.0
DEFAULT_STYLE = "pixel art"
STYLE_PRESETS = ("wood carving", "pixel art", "claymation", "charcoal sketch")

_WHITESPACE = re.compile(r"\s")


class RoundStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"
    GAME_EVENT = "game_event"


@dataclass
class ChatMessage:
    role: ChatRole
    content: str


@dataclass(frozen=True)
class RoundContent:
    concept: str
    explanation: str
    image_url: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoundContent":
        """
        Build content from a provider payload. Accepts both `imageUrl`
        and `image_url`; every field must be a non-empty string.
        """
        if not isinstance(data, dict):
            raise ContentFetchError("The AI returned an invalid concept. Please try again.")
        concept = data.get("concept")
        explanation = data.get("explanation")
        image_url = data.get("imageUrl") or data.get("image_url")
        for value in (concept, explanation, image_url):
            if not isinstance(value, str) or not value.strip():
                raise ContentFetchError("The AI returned an invalid concept. Please try again.")
        return cls(concept=concept.strip(), explanation=explanation.strip(), image_url=image_url)


def sanitize_answer(answer: str) -> str:
    return _WHITESPACE.sub("", answer)


def level_for_score(score: int) -> int:
    return score // POINTS_PER_LEVEL + 1


@dataclass
class RoundState:
    status: RoundStatus = RoundStatus.IDLE
    round_id: int = 0
    answer: str = ""
    explanation: str = ""
    image_url: str = ""
    guess: str = ""
    wrong_guess: bool = False
    time_left: int = ROUND_TIME
    score: int = 0
    level: int = 1
    past_concepts: List[str] = field(default_factory=list)
    error: Optional[str] = None
    # "thinking" until content resolution starts, then "generating"
    loading_message: str = ""
    style: str = DEFAULT_STYLE

    @property
    def sanitized_answer(self) -> str:
        return sanitize_answer(self.answer)

    @property
    def round_over(self) -> bool:
        return self.status in (RoundStatus.WON, RoundStatus.LOST)


@dataclass
class PrefetchSlot:
    """
    Speculative content for the next round: empty, a pending task, or ready content.
    """
    task: Optional[asyncio.Task] = None
    content: Optional[RoundContent] = None

    @property
    def occupied(self) -> bool:
        return self.task is not None or self.content is not None

    @property
    def ready(self) -> bool:
        return self.content is not None

    def clear(self) -> None:
        self.task = None
        self.content = None
