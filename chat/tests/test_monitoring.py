"""
Tests for Sentry monitoring of inference calls.
"""
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase

from chat.monitoring import (
    CRITICAL_OPERATION_THRESHOLD,
    SLOW_OPERATION_THRESHOLD,
    InferenceSentryMonitor,
    track_inference,
)


class FakeClient:
    model = "gemma3n:e4b"

    def __init__(self, error=None):
        self.error = error

    @track_inference("generate")
    def complete(self, prompt, model=None):
        if self.error is not None:
            raise self.error
        return f"reply to {prompt}"


class TrackInferenceTests(SimpleTestCase):
    @patch("chat.monitoring.sentry_sdk")
    def test_span_is_named_after_operation_and_model(self, mock_sentry):
        span = MagicMock()
        mock_sentry.start_span.return_value.__enter__.return_value = span

        self.assertEqual(FakeClient().complete("hi"), "reply to hi")

        mock_sentry.start_span.assert_called_once_with(op="inference", name="generate gemma3n:e4b")
        span.set_data.assert_any_call("model", "gemma3n:e4b")
        mock_sentry.capture_exception.assert_not_called()

    @patch("chat.monitoring.sentry_sdk")
    def test_model_override_names_the_span(self, mock_sentry):
        FakeClient().complete("hi", model="other")
        self.assertEqual(mock_sentry.start_span.call_args.kwargs["name"], "generate other")

    @patch("chat.monitoring.sentry_sdk")
    def test_failure_is_captured_and_reraised(self, mock_sentry):
        error = RuntimeError("boom")

        with self.assertLogs("chat.monitoring", level="WARNING"):
            with self.assertRaises(RuntimeError):
                FakeClient(error=error).complete("hi")

        mock_sentry.capture_exception.assert_called_once_with(error)
        mock_sentry.add_breadcrumb.assert_called_once()


class LevelTests(SimpleTestCase):
    def test_levels_follow_thresholds(self):
        self.assertEqual(InferenceSentryMonitor._level_for(0.5), "info")
        self.assertEqual(InferenceSentryMonitor._level_for(SLOW_OPERATION_THRESHOLD + 1), "warning")
        self.assertEqual(InferenceSentryMonitor._level_for(CRITICAL_OPERATION_THRESHOLD + 1), "error")
