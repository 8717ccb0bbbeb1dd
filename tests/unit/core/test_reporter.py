"""Tests for UploadReporter log and progress bookkeeping."""

from unittest.mock import Mock, patch

import pytest

from src.core.models import LogType, UploadStage
from src.core.reporter import UploadReporter


@pytest.fixture
def reporter():
    return UploadReporter()


class TestAppend:

    @pytest.mark.parametrize("log_type,icon", [
        ("log", "📝"),
        ("error", "❌"),
        ("success", "✅"),
        ("warning", "⚠️"),
        ("info", "ℹ️"),
    ])
    def test_entry_has_icon(self, reporter, log_type, icon):
        entry = reporter.append("hello", log_type)
        assert entry.icon == icon
        assert entry.type == LogType(log_type)
        assert entry.format().endswith(f"{icon} hello")

    def test_invalid_type_rejected(self, reporter):
        with pytest.raises(ValueError):
            reporter.append("hello", "fatal")

    def test_mirrors_to_console_log(self, reporter):
        with patch('src.core.reporter.log') as mock_log:
            reporter.append("Thumbnail upload failed", "warning")

        message = mock_log.call_args.args[0]
        assert message.startswith("[uploads]")
        assert mock_log.call_args.kwargs["level"] == "warning"

    def test_notifies_listeners(self, reporter):
        listener = Mock()
        reporter.add_log_listener(listener)
        reporter.add_log_listener(listener)

        entry = reporter.append("hello")
        listener.assert_called_once_with(entry)

        reporter.remove_log_listener(listener)
        reporter.append("again")
        assert listener.call_count == 1


class TestAttempts:

    def test_retry_keeps_logs(self, reporter):
        reporter.append("first attempt")
        reporter.begin_attempt(is_retry=True)
        assert [e.message for e in reporter.logs] == ["first attempt"]

    def test_fresh_attempt_resets_logs_and_progress(self, reporter):
        reporter.append("first attempt")
        reporter.set_progress(40, "Uploading image...")
        reporter.set_error("boom")

        reporter.begin_attempt(is_retry=False)

        assert reporter.logs == []
        assert reporter.state.progress == 0
        assert reporter.state.error is None
        assert reporter.state.uploading is True

    def test_clear(self, reporter):
        reporter.append("line")
        reporter.set_stage(UploadStage.UPLOADING_IMAGE)
        reporter.clear()

        assert reporter.logs == []
        assert reporter.state.stage == UploadStage.IDLE


class TestProgress:

    def test_progress_clamped(self, reporter):
        reporter.set_progress(140)
        assert reporter.state.progress == 100
        reporter.set_progress(-3)
        assert reporter.state.progress == 0

    def test_listeners_see_state(self, reporter):
        seen = []
        reporter.add_progress_listener(lambda s: seen.append((s.progress, s.status)))
        reporter.set_progress(15, "Uploading image...")
        assert seen == [(15, "Uploading image...")]

    def test_display_progress_not_broadcast(self, reporter):
        listener = Mock()
        reporter.add_progress_listener(listener)
        reporter.set_display_progress(12.5)

        assert reporter.state.display_progress == 12.5
        listener.assert_not_called()
