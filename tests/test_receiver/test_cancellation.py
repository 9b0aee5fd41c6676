"""Tests for CancellationToken."""

from __future__ import annotations

import threading

from loopauth.receiver.cancellation import CancellationToken


class TestCancellationToken:
    def test_initial_state(self) -> None:
        assert CancellationToken().is_cancelled is False

    def test_cancel_runs_callbacks_once(self) -> None:
        token = CancellationToken()
        calls: list[str] = []
        token.register(lambda: calls.append("a"))
        token.register(lambda: calls.append("b"))
        token.cancel()
        token.cancel()
        assert token.is_cancelled
        assert calls == ["a", "b"]

    def test_register_after_cancel_runs_immediately(self) -> None:
        token = CancellationToken()
        token.cancel()
        calls: list[int] = []
        token.register(lambda: calls.append(1))
        assert calls == [1]

    def test_unregister(self) -> None:
        token = CancellationToken()
        calls: list[int] = []
        with token.register(lambda: calls.append(1)):
            pass
        token.cancel()
        assert calls == []

    def test_cancel_after(self) -> None:
        token = CancellationToken()
        fired = threading.Event()
        token.register(fired.set)
        token.cancel_after(0.05)
        assert fired.wait(timeout=5)
        assert token.is_cancelled

    def test_cancel_after_replaces_deadline(self) -> None:
        token = CancellationToken()
        token.cancel_after(0.2)
        token.cancel_after(60)
        fired = threading.Event()
        token.register(fired.set)
        assert not fired.wait(timeout=0.5)
        token.dispose()

    def test_dispose_stops_deadline(self) -> None:
        token = CancellationToken()
        token.cancel_after(0.2)
        token.dispose()
        fired = threading.Event()
        token.register(fired.set)
        assert not fired.wait(timeout=0.5)
        assert token.is_cancelled is False


class TestLinkedTokens:
    def test_cancelled_by_any_source(self) -> None:
        a, b = CancellationToken(), CancellationToken()
        linked = CancellationToken.linked(a, b)
        b.cancel()
        assert linked.is_cancelled
        assert a.is_cancelled is False

    def test_none_sources_ignored(self) -> None:
        a = CancellationToken()
        linked = CancellationToken.linked(None, a, None)
        a.cancel()
        assert linked.is_cancelled

    def test_already_cancelled_source(self) -> None:
        a = CancellationToken()
        a.cancel()
        assert CancellationToken.linked(a).is_cancelled

    def test_dispose_detaches_from_sources(self) -> None:
        a = CancellationToken()
        linked = CancellationToken.linked(a)
        linked.dispose()
        a.cancel()
        assert linked.is_cancelled is False

    def test_cancelling_linked_does_not_cancel_source(self) -> None:
        a = CancellationToken()
        linked = CancellationToken.linked(a)
        linked.cancel()
        assert a.is_cancelled is False
