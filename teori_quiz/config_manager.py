"""
Configuration manager for theory quiz settings and parameters.
"""
import logging
from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from .models import QuizSettings, DEFAULT_SESSION_DURATION, DEFAULT_TEST_QUESTION_COUNT


class ConfigManager:
    """Manages quiz configuration settings and file locations."""

    # Default configuration values
    DEFAULT_SESSION_MINUTES = DEFAULT_SESSION_DURATION // 60
    DEFAULT_TEST_QUESTION_COUNT = DEFAULT_TEST_QUESTION_COUNT
    DEFAULT_RESUME_ON_LOAD = True
    DEFAULT_QUESTIONS_FILE = "./data/questions.json"
    DEFAULT_STORAGE_DIRECTORY = "./.quiz_state/"

    # Validation limits
    MIN_SESSION_MINUTES = 1
    MAX_SESSION_MINUTES = 180
    MIN_TEST_QUESTION_COUNT = 1
    MAX_TEST_QUESTION_COUNT = 500

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._questions_file = self.DEFAULT_QUESTIONS_FILE
        self._storage_directory: Optional[str] = self.DEFAULT_STORAGE_DIRECTORY

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            session_duration_seconds=self._global_settings.session_duration_seconds,
            test_question_count=self._global_settings.test_question_count,
            resume_on_load=self._global_settings.resume_on_load
        )

    def set_session_duration(self, minutes: int) -> Dict[str, Any]:
        """
        Set the length of every session, in minutes.

        Args:
            minutes: Session length in minutes

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            error_msg = f"Session duration must be an integer, got {type(minutes).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number of minutes, got {type(minutes).__name__}"
            }

        if minutes < self.MIN_SESSION_MINUTES:
            error_msg = f"Session duration must be at least {self.MIN_SESSION_MINUTES} minute"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too short: Minimum is {self.MIN_SESSION_MINUTES} minute"
            }

        if minutes > self.MAX_SESSION_MINUTES:
            error_msg = f"Session duration cannot exceed {self.MAX_SESSION_MINUTES} minutes"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too long: Maximum is {self.MAX_SESSION_MINUTES} minutes"
            }

        self._global_settings.session_duration_seconds = minutes * 60
        self.logger.info(f"Session duration set to {minutes} minutes")
        return {
            'success': True,
            'message': f"Session duration set to {minutes} minutes",
            'user_message': f"✅ Sessions last {minutes} minutes"
        }

    def get_session_duration(self) -> int:
        """
        Get current session duration.

        Returns:
            Session duration in seconds
        """
        return self._global_settings.session_duration_seconds

    def set_test_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set how many questions a test draws from the pool.

        Args:
            count: Number of questions per test

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(count, bool) or not isinstance(count, int):
            error_msg = f"Test question count must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            }

        if count < self.MIN_TEST_QUESTION_COUNT:
            error_msg = f"Test question count must be at least {self.MIN_TEST_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too few questions: Minimum is {self.MIN_TEST_QUESTION_COUNT}"
            }

        if count > self.MAX_TEST_QUESTION_COUNT:
            error_msg = f"Test question count cannot exceed {self.MAX_TEST_QUESTION_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many questions: Maximum is {self.MAX_TEST_QUESTION_COUNT}"
            }

        self._global_settings.test_question_count = count
        self.logger.info(f"Test question count set to {count}")
        return {
            'success': True,
            'message': f"Test question count set to {count}",
            'user_message': f"✅ Tests draw {count} questions"
        }

    def get_test_question_count(self) -> int:
        return self._global_settings.test_question_count

    def set_resume_on_load(self, resume: bool) -> Dict[str, Any]:
        """
        Set whether a restored session resumes its countdown immediately.

        Args:
            resume: True to re-arm the timer on restore, False to wait for the user

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(resume, bool):
            error_msg = f"Resume on load must be a boolean, got {type(resume).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected true/false, got {type(resume).__name__}"
            }

        self._global_settings.resume_on_load = resume
        policy = "resume immediately" if resume else "wait for the user"
        self.logger.info(f"Restored sessions will {policy}")
        return {
            'success': True,
            'message': f"Restored sessions will {policy}",
            'user_message': f"✅ Restored sessions will {policy}"
        }

    def get_resume_on_load(self) -> bool:
        return self._global_settings.resume_on_load

    def set_questions_file(self, path: str) -> Dict[str, Any]:
        """
        Set the JSON file the question pool is read from.

        Args:
            path: Path to the question file

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(path, str) or not path.strip():
            error_msg = "Questions file must be a non-empty path string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Questions file path cannot be empty"
            }

        try:
            normalized_path = str(Path(path).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid questions file path: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {path}"
            }

        self._questions_file = normalized_path
        self.logger.info(f"Questions file set to {normalized_path}")
        return {
            'success': True,
            'message': f"Questions file set to {normalized_path}",
            'user_message': f"✅ Questions file set to {normalized_path}"
        }

    def get_questions_file(self) -> str:
        return self._questions_file

    def set_storage_directory(self, directory: Optional[str]) -> Dict[str, Any]:
        """
        Set where session snapshots are written. None keeps them in memory only.

        Args:
            directory: Snapshot directory, or None for in-memory storage

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if directory is None:
            self._storage_directory = None
            self.logger.info("Session snapshots will be kept in memory only")
            return {
                'success': True,
                'message': "Session snapshots kept in memory only",
                'user_message': "✅ Sessions will not survive a restart"
            }

        if not isinstance(directory, str) or not directory.strip():
            error_msg = "Storage directory must be a non-empty path string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Storage directory cannot be empty"
            }

        try:
            normalized_path = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid storage directory path: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {directory}"
            }

        self._storage_directory = normalized_path
        self.logger.info(f"Storage directory set to {normalized_path}")
        return {
            'success': True,
            'message': f"Storage directory set to {normalized_path}",
            'user_message': f"✅ Sessions saved in {normalized_path}"
        }

    def get_storage_directory(self) -> Optional[str]:
        return self._storage_directory

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the ``quiz`` section of a loaded config.json.

        Invalid values are logged and skipped so the defaults stay in place.

        Returns:
            Error messages for every rejected value
        """
        quiz_config = config.get('quiz', {}) if isinstance(config, dict) else {}
        results = []

        if 'questions_file' in quiz_config:
            results.append(self.set_questions_file(quiz_config['questions_file']))
        if 'storage_directory' in quiz_config:
            results.append(self.set_storage_directory(quiz_config['storage_directory']))
        if 'session_duration_minutes' in quiz_config:
            results.append(self.set_session_duration(quiz_config['session_duration_minutes']))
        if 'test_question_count' in quiz_config:
            results.append(self.set_test_question_count(quiz_config['test_question_count']))
        if 'resume_on_load' in quiz_config:
            results.append(self.set_resume_on_load(quiz_config['resume_on_load']))

        return [r['error'] for r in results if not r['success']]

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings()
        self._questions_file = self.DEFAULT_QUESTIONS_FILE
        self._storage_directory = self.DEFAULT_STORAGE_DIRECTORY
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        duration = self._global_settings.session_duration_seconds
        if (not isinstance(duration, int) or
                duration < self.MIN_SESSION_MINUTES * 60 or
                duration > self.MAX_SESSION_MINUTES * 60):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid session duration: {duration}")

        count = self._global_settings.test_question_count
        if (not isinstance(count, int) or
                count < self.MIN_TEST_QUESTION_COUNT or
                count > self.MAX_TEST_QUESTION_COUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid test question count: {count}")

        if not isinstance(self._global_settings.resume_on_load, bool):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid resume on load setting: {self._global_settings.resume_on_load}"
            )

        if not isinstance(self._questions_file, str) or not self._questions_file.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid questions file: {self._questions_file}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        minutes = self._global_settings.session_duration_seconds // 60
        resume_str = "resume immediately" if self._global_settings.resume_on_load else "wait for user"
        storage_str = self._storage_directory or "memory only"

        return (
            f"Quiz Settings:\n"
            f"• Session length: {minutes} minutes\n"
            f"• Test questions: {self._global_settings.test_question_count}\n"
            f"• Restored sessions: {resume_str}\n"
            f"• Questions file: {self._questions_file}\n"
            f"• Session storage: {storage_str}"
        )

    def get_configuration_health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of the configuration.

        Returns:
            Dictionary with health status and recommendations
        """
        health_check = {
            'healthy': True,
            'warnings': [],
            'errors': [],
            'recommendations': []
        }

        validation_result = self.validate_settings()
        if not validation_result['valid']:
            health_check['healthy'] = False
            health_check['errors'].extend(f"❌ {issue}" for issue in validation_result['issues'])

        questions_path = Path(self._questions_file)
        if not questions_path.exists():
            health_check['warnings'].append(
                f"⚠️ Questions file does not exist: {self._questions_file}"
            )
            health_check['recommendations'].append(
                "A sample question file will be created when questions are loaded."
            )
        elif not os.access(questions_path, os.R_OK):
            health_check['healthy'] = False
            health_check['errors'].append(f"❌ Cannot read questions file: {self._questions_file}")
            health_check['recommendations'].append("Check file permissions for the questions file.")

        if self._storage_directory is None:
            health_check['warnings'].append("⚠️ Sessions are kept in memory and will not survive a restart")
        else:
            storage_path = Path(self._storage_directory)
            if storage_path.exists() and not os.access(storage_path, os.W_OK):
                health_check['warnings'].append(
                    f"⚠️ Cannot write to storage directory: {self._storage_directory}"
                )
                health_check['recommendations'].append(
                    "Sessions will continue in memory but will not survive a restart."
                )

        return health_check
