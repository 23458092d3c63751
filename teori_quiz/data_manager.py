"""
Data manager for the question pool file and question validation.
"""
import json
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path

from .models import Question


SAMPLE_QUESTIONS = [
    {
        "id": "sample-1",
        "category": "Trafikregler",
        "question": "What is the speed limit in a built-up area unless signs say otherwise?",
        "options": ["30 km/h", "50 km/h", "70 km/h"],
        "answer": 1,
        "explanation": "The default limit inside a built-up area is 50 km/h."
    },
    {
        "id": "sample-2",
        "category": "Trafikregler",
        "question": "Who has priority at an unmarked intersection?",
        "options": ["Traffic from the left", "Traffic from the right", "The larger vehicle"],
        "answer": 1,
        "explanation": "The right-hand rule applies when nothing else is signposted."
    },
    {
        "id": "sample-3",
        "category": "Miljö",
        "question": "Which driving style uses the least fuel?",
        "options": ["Hard acceleration and braking", "Even speed and early gear changes"],
        "answer": 1
    }
]


class DataManager:
    """Loads and validates the question pool consumed by quiz sessions."""

    def __init__(self, questions_file: str = "./data/questions.json"):
        """
        Initialize DataManager with the question file path.

        Args:
            questions_file: Path to the JSON question file
        """
        self.questions_file = Path(questions_file)
        self.questions: List[Question] = []
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_pool_created = False
        self.sample_pool_created = False

    def load_questions(self) -> List[Question]:
        """
        Load the question pool with per-question error handling.

        A missing file is replaced by a sample file; a file that cannot be
        read or parsed leaves a small in-memory fallback pool.

        Returns:
            List of valid questions in file order
        """
        self.questions = []
        self.load_errors.clear()
        self.fallback_pool_created = False
        self.sample_pool_created = False

        if not self.questions_file.exists():
            self.logger.warning(f"Question file not found: {self.questions_file}")
            self.load_errors.append(f"Question file not found: {self.questions_file}")
            return self._create_sample_pool()

        data = self._load_file_safely(self.questions_file)
        if data is None:
            return self._create_fallback_pool()

        entries = self._extract_entries(data)
        if entries is None:
            return self._create_fallback_pool()

        for i, entry in enumerate(entries):
            try:
                self.questions.append(Question.from_dict(entry))
            except ValueError as e:
                self.load_errors.append(f"Question {i}: {e}")

        if not self.questions:
            self.logger.error("No valid questions in question file")
            self.load_errors.append("Question file contains no valid questions")
        else:
            self.logger.info(f"Loaded {len(self.questions)} questions from {self.questions_file}")

        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.questions

    def _load_file_safely(self, file_path: Path) -> Optional[Any]:
        """
        Load and parse the JSON file.

        Returns:
            Parsed JSON data or None if loading failed
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {file_path}: {e}")
            self.load_errors.append(f"Invalid JSON format: {e.msg} at line {e.lineno}")
        except UnicodeDecodeError as e:
            self.logger.error(f"Encoding error in {file_path}: {e}")
            self.load_errors.append("File encoding error (must be UTF-8)")
        except PermissionError:
            self.logger.error(f"Permission denied reading {file_path}")
            self.load_errors.append("Permission denied reading question file")
        except OSError as e:
            self.logger.error(f"Failed to read question file {file_path}: {e}")
            self.load_errors.append(f"Failed to read question file: {e}")
        return None

    def _extract_entries(self, data: Any) -> Optional[List[Any]]:
        """
        Find the question array in the parsed file.

        Expected structure is either a bare array of question objects or
        ``{"questions": [...]}``.
        """
        if isinstance(data, dict):
            data = data.get("questions")
        if not isinstance(data, list):
            self.logger.error("Question file must contain an array of questions")
            self.load_errors.append("Question file must contain an array of questions")
            return None
        return data

    def _create_sample_pool(self) -> List[Question]:
        """
        Write a sample question file when none exists and load it.
        """
        try:
            self.questions_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.questions_file, 'w', encoding='utf-8') as f:
                json.dump(SAMPLE_QUESTIONS, f, indent=2, ensure_ascii=False)
            self.logger.info(f"Created sample question file: {self.questions_file}")
        except OSError as e:
            self.logger.error(f"Failed to create sample question file: {e}")
            self.load_errors.append(f"Failed to create sample question file: {e}")
            return self._create_fallback_pool()

        self.questions = [Question.from_dict(q) for q in SAMPLE_QUESTIONS]
        self.sample_pool_created = True
        self.logger.info(f"Loaded sample pool with {len(self.questions)} questions")
        return self.questions

    def _create_fallback_pool(self) -> List[Question]:
        """
        Keep a minimal pool in memory when the question file is unusable.
        """
        self.questions = [
            Question(
                prompt="This is a fallback question. What should you do when the question file can't be loaded?",
                options=("Check the file path and format", "Ignore it"),
                answer_index=0,
                id="fallback-1",
                category="Fallback"
            )
        ]
        self.fallback_pool_created = True
        self.logger.warning("Created fallback question pool due to file loading failures")
        return self.questions

    def get_questions(self) -> List[Question]:
        """
        Get the loaded pool.

        Returns:
            Copy of the loaded question list
        """
        return list(self.questions)

    def get_question_count(self) -> int:
        return len(self.questions)

    def get_categories(self) -> List[str]:
        """
        Distinct categories in the order they first appear in the pool.
        """
        categories = []
        for question in self.questions:
            if question.category and question.category not in categories:
                categories.append(question.category)
        return categories

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_pool_active(self) -> bool:
        return self.fallback_pool_created

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last load for status displays.
        """
        return {
            'question_count': len(self.questions),
            'categories': self.get_categories(),
            'has_errors': self.has_load_errors(),
            'errors': self.get_load_errors(),
            'fallback_active': self.fallback_pool_created,
            'sample_created': self.sample_pool_created
        }
