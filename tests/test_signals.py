"""
Tests for the signal system.
"""
import pytest

from ganttsync.signals import SignalError, signal


class Emitter:
    @signal
    def changed(self) -> None:
        """No arguments."""

    @signal
    def failed(self, error: Exception) -> None:
        """One typed argument."""


class TestSignals:
    """Test connection, validation and emission."""

    def test_emit_calls_subscribers(self):
        emitter = Emitter()
        calls = []
        emitter.changed.connect(lambda: calls.append("a"))
        emitter.changed.connect(lambda: calls.append("b"))

        emitter.changed()

        assert calls == ["a", "b"]

    def test_signals_are_per_instance(self):
        first, second = Emitter(), Emitter()
        calls = []
        first.changed.connect(lambda: calls.append(1))

        second.changed()

        assert calls == []

    def test_connect_is_idempotent(self):
        emitter = Emitter()
        calls = []

        def callback():
            calls.append(1)

        emitter.changed.connect(callback)
        emitter.changed.connect(callback)
        emitter.changed.emit()

        assert calls == [1]

    def test_disconnect(self):
        emitter = Emitter()

        def callback():
            pass

        emitter.changed.connect(callback)
        emitter.changed.disconnect(callback)

        assert not emitter.changed.is_connected(callback)

    def test_wrong_arity_rejected(self):
        emitter = Emitter()
        with pytest.raises(SignalError):
            emitter.changed.connect(lambda extra: None)

    def test_wrong_type_rejected(self):
        emitter = Emitter()

        def callback(error: str) -> None:
            pass

        with pytest.raises(SignalError):
            emitter.failed.connect(callback)

    def test_supertype_accepted(self):
        emitter = Emitter()

        def callback(error: BaseException) -> None:
            pass

        emitter.failed.connect(callback)
        assert emitter.failed.is_connected(callback)

    def test_varargs_accepted(self):
        emitter = Emitter()
        received = []
        emitter.failed.connect(lambda *args: received.append(args))
        emitter.failed(ValueError("x"))
        assert len(received) == 1

    def test_failing_subscriber_does_not_stop_others(self, log_messages):
        """Test a raising subscriber is logged and skipped."""
        emitter = Emitter()
        calls = []

        def broken():
            raise RuntimeError("boom")

        emitter.changed.connect(broken)
        emitter.changed.connect(lambda: calls.append(1))

        emitter.changed()

        assert calls == [1]
        assert any("Subscriber of signal 'changed' failed" in m for m in log_messages)

    def test_reassignment_rejected(self):
        emitter = Emitter()
        with pytest.raises(SignalError):
            emitter.changed = None
