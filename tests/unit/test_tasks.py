"""Unit tests for the Celery linking task and schedule."""

from unittest.mock import AsyncMock, MagicMock, patch

from judgelink.linking.errors import SetupError
from judgelink.linking.tasks import run_linking
from judgelink.worker import app


class TestRunLinkingTask:
    """Tests for the run_linking task."""

    def test_returns_report(self):
        """Test that the task returns the serialized report."""
        report = MagicMock()
        report.model_dump.return_value = {"run_id": "r1"}
        close = AsyncMock()

        with patch(
            "judgelink.linking.tasks.run_linking_pipeline",
            new=AsyncMock(return_value=report),
        ) as pipeline, patch("judgelink.linking.tasks.close_all_connections", new=close):
            result = run_linking.run(dry_run=True)

        assert result == {"status": "completed", "report": {"run_id": "r1"}}
        pipeline.assert_awaited_once_with(dry_run=True)
        report.model_dump.assert_called_once_with(mode="json")
        close.assert_awaited_once()

    def test_setup_failure_is_reported(self):
        """Test that a failed start returns a failure status and still cleans up."""
        close = AsyncMock()

        with patch(
            "judgelink.linking.tasks.run_linking_pipeline",
            new=AsyncMock(side_effect=SetupError("Cannot load judges")),
        ), patch("judgelink.linking.tasks.close_all_connections", new=close):
            result = run_linking.run()

        assert result == {"status": "failed", "error": "Cannot load judges"}
        close.assert_awaited_once()


class TestWorker:
    """Tests for the Celery app configuration."""

    def test_daily_schedule(self):
        """Test the beat entry for the linking run."""
        entry = app.conf.beat_schedule["run-case-judge-linking"]

        assert entry["task"] == "judgelink.linking.tasks.run_linking"
        assert entry["options"] == {"queue": "linking"}
        assert entry["schedule"].minute == {0}

    def test_task_is_registered(self):
        """Test that the linking task is known to the app."""
        assert "judgelink.linking.tasks.run_linking" in app.tasks
