"""Tests for user-facing notifiers."""

import pytest

from livemarks.core.notifier import ConsoleNotifier, Notifier, RecordingNotifier


class TestNotifiers:
    """Test the notifier implementations."""

    def test_base_notifier_is_abstract(self):
        """Test a notifier must implement alert."""
        with pytest.raises(TypeError):
            Notifier()

    def test_recording_notifier_keeps_messages(self):
        notifier = RecordingNotifier()

        notifier.alert("Error loading bookmarks")
        notifier.alert("Error deleting bookmark")

        assert notifier.messages == ["Error loading bookmarks", "Error deleting bookmark"]

    def test_console_notifier_writes_stderr(self, capsys):
        ConsoleNotifier().alert("Error deleting bookmark")

        captured = capsys.readouterr()
        assert "Error deleting bookmark" in captured.err
        assert captured.out == ""
