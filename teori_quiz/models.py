"""
Core data models for the theory quiz session engine.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


DEFAULT_SESSION_DURATION = 50 * 60
DEFAULT_TEST_QUESTION_COUNT = 70


class SessionMode(Enum):
    """Screens a quiz session can be on."""
    MENU = "menu"
    CATEGORY_SELECT = "category_select"
    CONFIRM = "confirm"
    ACTIVE = "active"
    FINISHED = "finished"


class QuizMode(Enum):
    """Kind of attempt chosen from the menu."""
    TRAIN = "train"
    TEST = "test"


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question."""
    prompt: str
    options: Tuple[str, ...]
    answer_index: int
    id: Optional[str] = None
    category: Optional[str] = None
    explanation: Optional[str] = None
    image: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'options', tuple(self.options))
        if len(self.options) < 2:
            raise ValueError("A question needs at least two options")
        if isinstance(self.answer_index, bool) or not isinstance(self.answer_index, int):
            raise ValueError("Answer index must be an integer")
        if not 0 <= self.answer_index < len(self.options):
            raise ValueError(
                f"Answer index {self.answer_index} out of range for {len(self.options)} options"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        """
        Build a Question from its JSON form.

        Raises:
            ValueError: If required fields are missing or have the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("Question must be an object")

        prompt = data.get("question")
        if not isinstance(prompt, str):
            raise ValueError("'question' field must be a string")

        options = data.get("options")
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise ValueError("'options' field must be an array of strings")

        for key in ("id", "category", "explanation", "image"):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise ValueError(f"'{key}' field must be a string")

        return cls(
            prompt=prompt,
            options=tuple(options),
            answer_index=data.get("answer"),
            id=data.get("id"),
            category=data.get("category"),
            explanation=data.get("explanation"),
            image=data.get("image"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON form used by question files and snapshots."""
        data = {
            "question": self.prompt,
            "options": list(self.options),
            "answer": self.answer_index,
        }
        for key in ("id", "category", "explanation", "image"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    def is_correct(self, option_index: int) -> bool:
        return option_index == self.answer_index


@dataclass
class QuizSettings:
    """Configuration settings for quiz sessions."""
    session_duration_seconds: int = DEFAULT_SESSION_DURATION
    test_question_count: int = DEFAULT_TEST_QUESTION_COUNT
    resume_on_load: bool = True


@dataclass
class Session:
    """Mutable state of one quiz attempt."""
    mode: SessionMode = SessionMode.MENU
    selected_category: Optional[str] = None
    question_set: Tuple[Question, ...] = field(default_factory=tuple)
    current_index: int = 0
    selected_option: Optional[int] = None
    score: int = 0
    time_remaining_seconds: int = DEFAULT_SESSION_DURATION
    timer_running: bool = False

    @property
    def current_question(self) -> Optional[Question]:
        """The question at current_index, or None when the index is out of range."""
        if 0 <= self.current_index < len(self.question_set):
            return self.question_set[self.current_index]
        return None

    @property
    def total_questions(self) -> int:
        return len(self.question_set)

    @property
    def is_answered(self) -> bool:
        return self.selected_option is not None

    def copy(self) -> "Session":
        """Detached copy handed to observers."""
        return replace(self)
