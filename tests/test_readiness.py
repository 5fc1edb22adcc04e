"""Tests for the readiness state machine and its observer registry."""

from __future__ import annotations

import logging
import threading

from litemap.readiness import ReadinessController, ReadinessState


class TestTransitions:
    def test_starts_connecting(self):
        rc = ReadinessController()
        assert rc.state is ReadinessState.CONNECTING
        assert not rc.is_ready()

    def test_ready_is_final(self):
        rc = ReadinessController()
        assert rc.mark_ready() is True
        assert rc.mark_ready() is False
        assert rc.mark_failed(RuntimeError("late")) is False
        assert rc.state is ReadinessState.READY
        assert rc.error is None

    def test_failed_keeps_error(self):
        rc = ReadinessController()
        err = RuntimeError("unreachable")
        assert rc.mark_failed(err) is True
        assert rc.mark_ready() is False
        assert rc.state is ReadinessState.FAILED
        assert rc.error is err


class TestReadyObservers:
    def test_fire_once_in_order(self):
        rc = ReadinessController()
        calls = []
        rc.on_ready(lambda: calls.append("a"))
        rc.on_ready(lambda: calls.append("b"))
        assert calls == []
        rc.mark_ready()
        rc.notify_sync()
        assert calls == ["a", "b"]

    def test_registered_after_ready_fires_immediately(self):
        rc = ReadinessController()
        rc.mark_ready()
        calls = []
        rc.on_ready(lambda: calls.append(1))
        assert calls == [1]

    def test_failure_drops_pending(self):
        rc = ReadinessController()
        calls = []
        rc.on_ready(lambda: calls.append("pending"))
        rc.mark_failed(RuntimeError("x"))
        rc.on_ready(lambda: calls.append("late"))
        assert calls == []

    def test_callback_error_is_logged_and_others_run(self, caplog):
        rc = ReadinessController()
        calls = []

        def broken():
            raise ValueError("bad observer")

        rc.on_ready(broken)
        rc.on_ready(lambda: calls.append("ok"))
        with caplog.at_level(logging.ERROR, logger="litemap.readiness"):
            rc.mark_ready()
        assert calls == ["ok"]
        assert "bad observer" in caplog.text


class TestSyncObservers:
    def test_every_sync_in_registration_order(self):
        rc = ReadinessController()
        calls = []
        rc.on_sync(lambda: calls.append("first"))
        rc.on_sync(lambda: calls.append("second"))
        rc.notify_sync()
        rc.notify_sync()
        assert calls == ["first", "second", "first", "second"]

    def test_dispatch_receives_callbacks(self):
        posted = []
        rc = ReadinessController(dispatch=posted.append)
        calls = []
        rc.on_sync(lambda: calls.append(1))
        rc.notify_sync()
        assert calls == []
        (job,) = posted
        job()
        assert calls == [1]


class TestWaitReady:
    def test_times_out_while_connecting(self):
        assert ReadinessController().wait_ready(timeout=0.01) is False

    def test_wakes_on_ready_from_another_thread(self):
        rc = ReadinessController()
        timer = threading.Timer(0.05, rc.mark_ready)
        timer.start()
        try:
            assert rc.wait_ready(timeout=5) is True
        finally:
            timer.join()

    def test_returns_false_on_failure(self):
        rc = ReadinessController()
        rc.mark_failed(RuntimeError("x"))
        assert rc.wait_ready() is False
