"""
Quiz engine core logic for the theory quiz.
Handles question shuffling, selection and the session countdown timer.
"""
import random
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from .models import Question

# Set up logger for timer operations
logger = logging.getLogger(__name__)

T = TypeVar("T")


def shuffle(sequence: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """
    Return a uniformly random permutation of ``sequence``.

    Fisher-Yates: walk from the last index down to 1 and swap each element
    with one drawn uniformly from the positions at or before it. The input
    is left untouched.

    Args:
        sequence: Items to shuffle
        rng: Optional random generator, the module generator is used if None

    Returns:
        New list with the same items in random order
    """
    rng = rng or random
    result = list(sequence)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(duration: int) -> None:
        """Log timer countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Remaining {duration}s",
            extra={
                'event_type': 'timer_countdown_start',
                'remaining_time': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Once a minute, then every second of the last five
        if total_duration > 0 and (remaining_time % 60 == 0 or remaining_time <= 5):
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(completion_type: str, ticks: int) -> None:
        """Log timer completion (natural expiry or stop)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Type {completion_type}, Ticks {ticks}",
            extra={
                'event_type': 'timer_completed',
                'completion_type': completion_type,
                'ticks': ticks,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.info(
            f"Timer lifecycle: STATE_TRANSITION - {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


def _is_current_task(task: asyncio.Task) -> bool:
    try:
        return asyncio.current_task() is task
    except RuntimeError:
        return False


class QuizTimer:
    """
    Repeating tick source for the session countdown.

    The timer knows nothing about the session: it calls ``on_tick`` once per
    ``interval`` seconds while running. Counting down and expiry live in the
    tick handler.
    """

    def __init__(
        self,
        on_tick: Callable[[], Any],
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize the timer.

        Args:
            on_tick: Called once per elapsed interval while running
            interval: Seconds between ticks
            sleep: Coroutine function used to wait between ticks
        """
        self._on_tick = on_tick
        self._interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._tick_count = 0

    def start(self) -> None:
        """
        Start issuing ticks. Any tick task already running is stopped first
        so two tick streams never overlap.

        Raises:
            RuntimeError: If called outside a running event loop
        """
        if self._task is not None:
            TimerLifecycleLogger.log_timer_state_transition("running", "restarting", "start while running")
            self.stop()

        loop = asyncio.get_running_loop()
        self._tick_count = 0
        self._task = loop.create_task(self._run())
        TimerLifecycleLogger.log_timer_state_transition("stopped", "running", "start requested")

    def stop(self) -> None:
        """Stop issuing ticks. Stopping a stopped timer does nothing."""
        task, self._task = self._task, None
        if task is None:
            return

        # A tick handler may stop its own timer; the loop notices and exits
        if not task.done() and not _is_current_task(task):
            task.cancel()
        TimerLifecycleLogger.log_timer_state_transition("running", "stopped", "stop requested")

    @property
    def is_running(self) -> bool:
        """Check if the tick task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def tick_count(self) -> int:
        """Ticks delivered since the last start."""
        return self._tick_count

    async def _run(self) -> None:
        task = asyncio.current_task()
        try:
            while self._task is task:
                await self._sleep(self._interval)
                if self._task is not task:
                    break
                self._tick_count += 1
                self._on_tick()
            TimerLifecycleLogger.log_timer_completion("stopped", self._tick_count)
        except asyncio.CancelledError:
            TimerLifecycleLogger.log_timer_completion("cancelled", self._tick_count)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(type(e).__name__, str(e), "tick")
            if self._task is task:
                self._task = None
            raise


class QuizEngine:
    """Selects and orders the working question set for an attempt."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the quiz engine.

        Args:
            rng: Optional random generator used for shuffling
        """
        self._rng = rng

    def shuffle_questions(self, questions: Sequence[Question]) -> List[Question]:
        """
        Shuffle questions randomly.

        Returns:
            New list with questions in random order
        """
        return shuffle(questions, self._rng)

    def select_test_questions(self, pool: Sequence[Question], count: int) -> List[Question]:
        """
        Draw a test set from the full pool.

        Args:
            pool: Every available question
            count: Maximum number of questions in the test

        Returns:
            Up to ``count`` questions in random order. All questions are used
            when the pool is smaller than ``count``; an empty list when
            ``count`` is less than 1.
        """
        if count < 1:
            return []
        return self.shuffle_questions(pool)[:count]

    def select_category_questions(self, pool: Sequence[Question], category: str) -> List[Question]:
        """
        Draw every question of one category, in random order.

        An unknown category yields an empty list.
        """
        matches = [q for q in pool if q.category == category]
        return self.shuffle_questions(matches)
