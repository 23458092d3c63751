"""
Session persistence for the theory quiz.

A session snapshot is written as JSON bytes under one fixed key of a
key-value byte store, so an attempt in progress survives a restart.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .models import Question, Session, SessionMode

STORAGE_KEY = "quiz_timer_state_v1"

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Synchronous byte store the session snapshot is written to."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """In-memory key-value store, used in tests and when no directory is configured."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class FileStore:
    """Key-value store keeping one file per key inside a directory."""

    def __init__(self, directory: str = "./.quiz_state/"):
        """
        Initialize FileStore with its storage directory.

        Args:
            directory: Directory holding one ``<key>.json`` file per key
        """
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        # Write to a temp file first so a crash never leaves half a snapshot
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


def _as_count(value: Any) -> Optional[int]:
    """Accept ints and integral floats, never bools or negatives."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value >= 0:
        return value
    return None


class SessionStore:
    """Serializes session snapshots to a key-value byte store under one fixed key."""

    def __init__(self, backend: KeyValueStore, key: str = STORAGE_KEY):
        """
        Initialize the store.

        Args:
            backend: Key-value byte store to read and write
            key: Key the snapshot lives under
        """
        self.backend = backend
        self.key = key
        self.logger = logging.getLogger(__name__)

    def save(self, session: Session) -> None:
        """
        Write a snapshot of ``session``, replacing any previous one.

        Raises:
            OSError: If the backend cannot be written
        """
        snapshot = {
            'started': session.timer_running,
            'timeLeft': session.time_remaining_seconds,
            'current': session.current_index,
            'score': session.score,
            'shuffled': [q.to_dict() for q in session.question_set],
            'mode': session.mode.value,
            'category': session.selected_category,
            'selected': session.selected_option,
        }
        payload = json.dumps(snapshot, ensure_ascii=False).encode('utf-8')
        self.backend.set(self.key, payload)

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Read the saved snapshot.

        Returns:
            The snapshot dictionary, or None if nothing usable is stored
        """
        raw = self.backend.get(self.key)
        if raw is None:
            return None

        try:
            data = json.loads(raw.decode('utf-8'))
        except (ValueError, RecursionError) as e:
            self.logger.warning(f"Ignoring unreadable session snapshot: {e}")
            return None

        if not isinstance(data, dict):
            self.logger.warning("Ignoring session snapshot that is not a JSON object")
            return None

        return data

    def restore(
        self,
        snapshot: Dict[str, Any],
        session: Session,
        max_duration: Optional[int] = None
    ) -> Session:
        """
        Apply every well-typed field of ``snapshot`` onto ``session``.

        Each field is checked on its own; missing or malformed fields keep
        the session's current value.

        Args:
            snapshot: Dictionary returned by load()
            session: Session to update
            max_duration: Upper bound for the restored remaining time

        Returns:
            The updated session
        """
        started = snapshot.get('started')
        if isinstance(started, bool):
            session.timer_running = started

        time_left = _as_count(snapshot.get('timeLeft'))
        if time_left is not None:
            if max_duration is not None:
                time_left = min(time_left, max_duration)
            session.time_remaining_seconds = time_left

        current = _as_count(snapshot.get('current'))
        if current is not None:
            session.current_index = current

        score = _as_count(snapshot.get('score'))
        if score is not None:
            session.score = score

        questions = self._parse_questions(snapshot.get('shuffled'))
        if questions is not None:
            session.question_set = tuple(questions)

        if 'selected' in snapshot:
            selected = snapshot['selected']
            if selected is None:
                session.selected_option = None
            else:
                selected = _as_count(selected)
                if selected is not None:
                    session.selected_option = selected

        if 'category' in snapshot:
            category = snapshot['category']
            if category is None or isinstance(category, str):
                session.selected_category = category

        mode = snapshot.get('mode')
        if isinstance(mode, str):
            try:
                session.mode = SessionMode(mode)
            except ValueError:
                self.logger.debug(f"Ignoring unknown session mode in snapshot: {mode!r}")

        return session

    def _parse_questions(self, value: Any) -> Optional[List[Question]]:
        if not isinstance(value, list):
            return None
        try:
            return [Question.from_dict(item) for item in value]
        except ValueError as e:
            self.logger.warning(f"Ignoring question set in snapshot: {e}")
            return None

    def clear(self) -> None:
        """Delete the saved snapshot."""
        self.backend.delete(self.key)
