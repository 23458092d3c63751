"""
Comprehensive integration tests for the theory quiz.
Tests complete session flows with real components, a real countdown and
snapshots on disk.
"""
import unittest
import asyncio
import json
import logging
import shutil
import tempfile
from pathlib import Path

from teori_quiz.config_manager import ConfigManager
from teori_quiz.data_manager import DataManager
from teori_quiz.models import QuizMode, SessionMode
from teori_quiz.quiz_controller import QuizController
from teori_quiz.quiz_engine import QuizTimer
from teori_quiz.session_store import FileStore, SessionStore, STORAGE_KEY


class TestCompleteQuizFlow(unittest.IsolatedAsyncioTestCase):
    """Test complete quiz flows from menu to result."""

    async def asyncSetUp(self):
        """Set up integration test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.questions_file = Path(self.temp_dir) / "questions.json"
        self.state_dir = Path(self.temp_dir) / "state"
        self._create_question_file()

        self.config_manager = ConfigManager()
        self.config_manager.set_questions_file(str(self.questions_file))
        self.config_manager.set_storage_directory(str(self.state_dir))
        self.config_manager.set_session_duration(1)

        self.data_manager = DataManager(self.config_manager.get_questions_file())
        self.data_manager.load_questions()

        self.controllers = []
        logging.disable(logging.CRITICAL)

    async def asyncTearDown(self):
        """Clean up test environment."""
        for controller in self.controllers:
            controller.timer.stop()
        logging.disable(logging.NOTSET)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _create_question_file(self):
        questions = []
        for i in range(12):
            questions.append({
                "id": f"{i}",
                "category": "Trafikregler" if i % 3 else "Miljö",
                "question": f"Question {i}?",
                "options": ["First", "Second", "Third"],
                "answer": i % 3
            })
        with open(self.questions_file, 'w', encoding='utf-8') as f:
            json.dump(questions, f, ensure_ascii=False)

    def _controller(self, interval: float = 0.001) -> QuizController:
        controller = QuizController(
            self.data_manager,
            SessionStore(FileStore(str(self.state_dir))),
            self.config_manager,
            timer_factory=lambda on_tick: QuizTimer(on_tick, interval=interval)
        )
        self.controllers.append(controller)
        return controller

    async def test_test_mode_runs_to_expiry(self):
        """A real countdown drives the session to the result screen exactly once."""
        controller = self._controller()
        expired = asyncio.Event()
        expiry_count = []

        def on_expired(session):
            expiry_count.append(session)
            expired.set()

        controller.add_expiry_listener(on_expired)
        session = controller.choose_mode(QuizMode.TEST)
        self.assertEqual(session.total_questions, 12)

        await asyncio.wait_for(expired.wait(), timeout=10.0)
        await asyncio.sleep(0.05)

        session = controller.session
        self.assertEqual(session.mode, SessionMode.FINISHED)
        self.assertEqual(session.time_remaining_seconds, 0)
        self.assertFalse(session.timer_running)
        self.assertFalse(controller.timer.is_running)
        self.assertEqual(len(expiry_count), 1)

        snapshot = json.loads((self.state_dir / f"{STORAGE_KEY}.json").read_text(encoding='utf-8'))
        self.assertFalse(snapshot['started'])
        self.assertEqual(snapshot['timeLeft'], 0)

    async def test_training_run_answering_every_question(self):
        controller = self._controller(interval=60.0)
        controller.choose_mode(QuizMode.TRAIN)
        self.assertEqual(controller.categories, ["Miljö", "Trafikregler"])
        controller.choose_category("Miljö")
        session = controller.confirm_start()

        self.assertEqual(session.total_questions, 4)
        self.assertTrue(controller.timer.is_running)

        for _ in range(session.total_questions):
            question = controller.session.current_question
            self.assertEqual(question.category, "Miljö")
            controller.select_option(question.answer_index)
            session = controller.advance()

        self.assertEqual(session.mode, SessionMode.FINISHED)
        self.assertEqual(session.score, 4)
        await asyncio.sleep(0)
        self.assertFalse(controller.timer.is_running)

        session = controller.return_to_menu()
        self.assertEqual(session.mode, SessionMode.MENU)
        self.assertFalse((self.state_dir / f"{STORAGE_KEY}.json").exists())

    async def test_restart_restores_session_from_disk(self):
        """A second controller over the same directory continues the session."""
        first = self._controller(interval=60.0)
        first.choose_mode(QuizMode.TEST)
        first.select_option(0)
        first.advance()
        first.select_option(1)
        first.timer.stop()
        saved = first.session

        second = self._controller(interval=60.0)
        session = second.restore_saved_session()

        self.assertEqual(session.mode, SessionMode.ACTIVE)
        self.assertEqual(session.question_set, saved.question_set)
        self.assertEqual(session.current_index, 1)
        self.assertEqual(session.selected_option, 1)
        self.assertEqual(session.score, saved.score)
        self.assertTrue(session.timer_running)
        self.assertTrue(second.timer.is_running)

        session = second.advance()
        self.assertEqual(session.current_index, 2)

    async def test_restart_waits_when_auto_resume_disabled(self):
        self.config_manager.set_resume_on_load(False)
        first = self._controller(interval=60.0)
        first.choose_mode(QuizMode.TEST)
        first.timer.stop()

        second = self._controller(interval=0.001)
        session = second.restore_saved_session()
        self.assertFalse(session.timer_running)

        await asyncio.sleep(0.05)
        self.assertEqual(second.session.time_remaining_seconds, 60)

        second.resume_timer()
        await asyncio.sleep(0.05)
        self.assertLess(second.session.time_remaining_seconds, 60)

    async def test_corrupt_snapshot_on_disk_is_ignored(self):
        self.state_dir.mkdir(parents=True)
        (self.state_dir / f"{STORAGE_KEY}.json").write_bytes(b"{broken")

        controller = self._controller()
        session = controller.restore_saved_session()

        self.assertEqual(session.mode, SessionMode.MENU)
        self.assertFalse(controller.timer.is_running)

        session = controller.choose_mode(QuizMode.TEST)
        self.assertEqual(session.mode, SessionMode.ACTIVE)


if __name__ == '__main__':
    unittest.main()
