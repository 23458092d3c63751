"""
Quiz session controller for the theory quiz.
Owns the session state machine: mode transitions, scoring, the countdown
timer and write-through persistence of every change.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from .models import QuizMode, QuizSettings, Session, SessionMode
from .quiz_engine import QuizEngine, QuizTimer, TimerLifecycleLogger
from .data_manager import DataManager
from .config_manager import ConfigManager
from .session_store import SessionStore


SessionListener = Callable[[Session], Any]
TimerFactory = Callable[[Callable[[], None]], QuizTimer]


def format_time(seconds: int) -> str:
    """Format a second count as MM:SS."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class QuizController:
    """
    Orchestrates a single quiz session.

    Every intent either applies a transition or is ignored when the session
    is not in a state that accepts it. Ignored intents are not errors. Each
    transition that changes the session is written to the session store
    right away; store failures are logged and the in-memory session stays
    authoritative.
    """

    def __init__(
        self,
        data_manager: DataManager,
        session_store: SessionStore,
        config_manager: ConfigManager,
        quiz_engine: Optional[QuizEngine] = None,
        timer_factory: Optional[TimerFactory] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Provider of the question pool
            session_store: Where session snapshots are persisted
            config_manager: Source of session duration and test size
            quiz_engine: Question selection, a default engine if None
            timer_factory: Builds the tick source from a tick callback
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.session_store = session_store
        self.config_manager = config_manager
        self.quiz_engine = quiz_engine or QuizEngine()

        self.settings: QuizSettings = config_manager.get_quiz_settings()
        self._session = self._fresh_session()
        self._timer = (timer_factory or QuizTimer)(self.on_tick)

        self._listeners: List[SessionListener] = []
        self._expiry_listeners: List[SessionListener] = []

        self.logger.info("QuizController initialized")

    def _fresh_session(self) -> Session:
        return Session(time_remaining_seconds=self.settings.session_duration_seconds)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        """Read-only copy of the current session."""
        return self._session.copy()

    @property
    def mode(self) -> SessionMode:
        return self._session.mode

    @property
    def timer(self) -> QuizTimer:
        return self._timer

    @property
    def categories(self) -> List[str]:
        return self.data_manager.get_categories()

    def add_listener(self, callback: SessionListener) -> None:
        """Register a callback that receives a session copy after every transition."""
        self._listeners.append(callback)

    def add_expiry_listener(self, callback: SessionListener) -> None:
        """Register a callback fired once each time the countdown runs out."""
        self._expiry_listeners.append(callback)

    def _notify(self, listeners: List[SessionListener]) -> None:
        for listener in listeners:
            try:
                listener(self._session.copy())
            except Exception as e:
                self.logger.error(f"Session listener {listener!r} failed: {e}")

    def get_progress(self) -> Dict[str, Any]:
        """
        Get the numbers a presentation layer needs to render the session.

        Returns:
            Dictionary with mode, position, score and remaining time
        """
        session = self._session
        duration = self.settings.session_duration_seconds
        percent = round(session.time_remaining_seconds / duration * 100) if duration else 0
        return {
            'mode': session.mode.value,
            'category': session.selected_category,
            'current_question': session.current_index + 1 if session.question_set else 0,
            'total_questions': session.total_questions,
            'score': session.score,
            'answered': session.is_answered,
            'time_remaining': session.time_remaining_seconds,
            'time_remaining_display': format_time(session.time_remaining_seconds),
            'time_percent': percent,
            'timer_running': session.timer_running
        }

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def choose_mode(self, quiz_mode: QuizMode) -> Session:
        """
        Pick training or test from the menu.

        Training moves on to category selection; a test starts right away.
        """
        if self._session.mode is not SessionMode.MENU:
            return self._ignore("choose_mode", f"mode is {self._session.mode.value}")

        if quiz_mode is QuizMode.TRAIN:
            self._session.mode = SessionMode.CATEGORY_SELECT
            self.logger.info("Training chosen, waiting for category")
            return self._commit()

        if quiz_mode is QuizMode.TEST:
            self._session.selected_category = None
            return self._start_session()

        return self._ignore("choose_mode", f"unknown quiz mode {quiz_mode!r}")

    def choose_category(self, name: str) -> Session:
        """Pick the category to train on."""
        if self._session.mode is not SessionMode.CATEGORY_SELECT:
            return self._ignore("choose_category", f"mode is {self._session.mode.value}")

        self._session.selected_category = name
        self._session.mode = SessionMode.CONFIRM
        self.logger.info(f"Category selected: {name}")
        return self._commit()

    def confirm_start(self) -> Session:
        """Start the training session for the chosen category."""
        if self._session.mode is not SessionMode.CONFIRM:
            return self._ignore("confirm_start", f"mode is {self._session.mode.value}")
        return self._start_session()

    def select_option(self, index: int) -> Session:
        """
        Answer the current question.

        Only the first answer to a question counts; later answers, answers
        outside the option range and answers outside an active session are
        ignored. The question does not advance.
        """
        session = self._session
        if session.mode is not SessionMode.ACTIVE:
            return self._ignore("select_option", f"mode is {session.mode.value}")
        if session.selected_option is not None:
            return self._ignore("select_option", "question already answered")

        question = session.current_question
        if question is None:
            return self._ignore("select_option", "no current question")
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(question.options):
            return self._ignore("select_option", f"option {index!r} out of range")

        session.selected_option = index
        if question.is_correct(index):
            session.score += 1
        self.logger.debug(
            f"Question {session.current_index + 1}/{session.total_questions} answered "
            f"{'correctly' if question.is_correct(index) else 'incorrectly'}, score {session.score}"
        )
        return self._commit()

    def advance(self) -> Session:
        """Move to the next question, or finish after the last one."""
        session = self._session
        if session.mode is not SessionMode.ACTIVE:
            return self._ignore("advance", f"mode is {session.mode.value}")
        if session.selected_option is None:
            return self._ignore("advance", "current question not answered")

        if session.current_index + 1 >= session.total_questions:
            self._leave_active(SessionMode.FINISHED, "last question completed")
            return self._commit()

        session.current_index += 1
        session.selected_option = None
        return self._commit()

    def return_to_menu(self) -> Session:
        """
        Go back to the menu.

        From the result screen this discards the saved session and resets
        every field. From category selection or confirmation it drops the
        chosen category. An active session cannot be left this way.
        """
        mode = self._session.mode

        if mode is SessionMode.FINISHED:
            self._clear_saved_session()
            self._session = self._fresh_session()
            self.logger.info("Session discarded, back to menu")
            self._notify(self._listeners)
            return self._session.copy()

        if mode in (SessionMode.CATEGORY_SELECT, SessionMode.CONFIRM):
            self._session.selected_category = None
            self._session.mode = SessionMode.MENU
            return self._commit()

        return self._ignore("return_to_menu", f"mode is {mode.value}")

    def on_tick(self) -> None:
        """Count one second off the session clock; finish when it reaches zero."""
        session = self._session
        if session.mode is not SessionMode.ACTIVE or not session.timer_running:
            # Late tick from a timer that is being torn down
            self.logger.debug("Ignoring tick outside a running session")
            return

        session.time_remaining_seconds = max(0, session.time_remaining_seconds - 1)
        TimerLifecycleLogger.log_timer_update(
            session.time_remaining_seconds,
            self.settings.session_duration_seconds
        )

        if session.time_remaining_seconds == 0:
            self._leave_active(SessionMode.FINISHED, "time expired")
            self._commit()
            self.logger.info(
                f"Time expired at question {session.current_index + 1}/{session.total_questions}, "
                f"score {session.score}"
            )
            self._notify(self._expiry_listeners)
            return

        self._commit()

    def resume_timer(self) -> Session:
        """Re-arm the countdown of an active session whose timer is not running."""
        session = self._session
        if session.mode is not SessionMode.ACTIVE or session.timer_running:
            return self._ignore("resume_timer", "no paused active session")

        self._arm_timer()
        return self._commit()

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore_saved_session(self) -> Session:
        """
        Pick up a session saved by an earlier process.

        A snapshot that was running (or saved as active) and whose position
        is valid becomes an active session again; its countdown resumes at once when
        ``resume_on_load`` is set, otherwise it waits for resume_timer().
        A finished snapshot restores the result screen. Anything else
        leaves the menu in place.
        """
        if self._session.mode is not SessionMode.MENU:
            return self._ignore("restore_saved_session", f"mode is {self._session.mode.value}")

        try:
            snapshot = self.session_store.load()
        except Exception as e:
            self.logger.warning(f"Could not read saved session: {e}")
            snapshot = None

        if snapshot is None:
            self.logger.info("No saved session to restore")
            return self._session.copy()

        restored = self.session_store.restore(
            snapshot,
            self._fresh_session(),
            max_duration=self.settings.session_duration_seconds
        )
        question = restored.current_question
        if restored.selected_option is not None and (
                question is None or restored.selected_option >= len(question.options)):
            restored.selected_option = None

        # At most one point per question up to and including the current one
        max_score = restored.current_index + 1
        if restored.score > max_score:
            self.logger.warning(f"Saved score {restored.score} exceeds {max_score} reachable points, clamping")
            restored.score = max_score

        in_range = 0 <= restored.current_index < restored.total_questions
        was_active = restored.timer_running or restored.mode is SessionMode.ACTIVE

        if was_active and in_range and restored.time_remaining_seconds == 0:
            restored.mode = SessionMode.FINISHED
            restored.timer_running = False
            self._session = restored
            self.logger.info("Saved session ran out of time, restoring the result screen")
            return self._commit()

        if was_active and in_range:
            restored.mode = SessionMode.ACTIVE
            restored.timer_running = False
            self._session = restored
            self.logger.info(
                f"Restored active session at question {restored.current_index + 1}/"
                f"{restored.total_questions}, {format_time(restored.time_remaining_seconds)} left"
            )
            if self.settings.resume_on_load:
                self._arm_timer()
            return self._commit()

        if restored.mode is SessionMode.FINISHED and restored.question_set:
            restored.timer_running = False
            self._session = restored
            self.logger.info("Restored finished session")
            self._notify(self._listeners)
            return self._session.copy()

        self.logger.info("Saved session is not resumable, staying on the menu")
        return self._session.copy()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start_session(self) -> Session:
        session = self._session
        pool = self.data_manager.get_questions()

        if session.selected_category is None:
            questions = self.quiz_engine.select_test_questions(pool, self.settings.test_question_count)
        else:
            questions = self.quiz_engine.select_category_questions(pool, session.selected_category)

        session.question_set = tuple(questions)
        session.current_index = 0
        session.selected_option = None
        session.score = 0
        session.time_remaining_seconds = self.settings.session_duration_seconds
        session.mode = SessionMode.ACTIVE

        if not questions:
            self.logger.warning(
                f"No questions available for "
                f"{'category ' + repr(session.selected_category) if session.selected_category else 'test'}"
                f", finishing immediately"
            )
            session.timer_running = False
            session.mode = SessionMode.FINISHED
            return self._commit()

        self.logger.info(
            f"Started {'training on ' + repr(session.selected_category) if session.selected_category else 'test'} "
            f"with {len(questions)} questions"
        )
        self._arm_timer()
        return self._commit()

    def _arm_timer(self) -> None:
        self._session.timer_running = True
        TimerLifecycleLogger.log_timer_start(self._session.time_remaining_seconds)
        self._timer.start()

    def _leave_active(self, new_mode: SessionMode, reason: str) -> None:
        """Single exit from the active state; the tick source never outlives it."""
        self._timer.stop()
        self._session.timer_running = False
        TimerLifecycleLogger.log_timer_state_transition(
            self._session.mode.value, new_mode.value, reason
        )
        self._session.mode = new_mode

    def _commit(self) -> Session:
        self._persist()
        self._notify(self._listeners)
        return self._session.copy()

    def _persist(self) -> None:
        try:
            self.session_store.save(self._session)
        except Exception as e:
            self.logger.warning(f"Failed to save session, continuing in memory: {e}")

    def _clear_saved_session(self) -> None:
        try:
            self.session_store.clear()
        except Exception as e:
            self.logger.warning(f"Failed to clear saved session: {e}")

    def _ignore(self, intent: str, reason: str) -> Session:
        self.logger.debug(f"Ignoring {intent}: {reason}")
        return self._session.copy()
