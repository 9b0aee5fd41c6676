"""Process-wide chooser between the two loopback redirect URI templates.

Listening on ``127.0.0.1`` is the recommended loopback redirect, but it is
not always possible (older Windows releases refuse it to non-admin users).
:class:`CallbackUriChooser` prefers the loopback IP, falls back to
``localhost``, and learns from the outcomes receivers report back:

* a template that ever succeeded stays usable;
* a template that failed, or was served and never heard from again within
  the timeout window, is skipped;
* when neither template is usable, the one with fewer resets is reset and
  handed out anyway so that callers keep making progress.

One chooser is shared by every receiver in the process. The CLI builds it
from configuration at startup and installs it with :func:`set_chooser`;
library users may construct their own and pass it to
:class:`~loopauth.receiver.receiver.AuthorizationCodeReceiver` explicitly.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loopauth.models import CallbackUriStrategy

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/authorize/"
"""Path every redirect URI ends with; the listener matches it as a prefix."""

LOOPBACK_IP_TEMPLATE = "http://127.0.0.1:{port}" + CALLBACK_PATH
"""Loopback IP redirect URI template, formatted with ``port=``."""

LOCALHOST_TEMPLATE = "http://localhost:{port}" + CALLBACK_PATH
"""``localhost`` redirect URI template, formatted with ``port=``."""

DEFAULT_URI_TIMEOUT = 60.0


def find_free_port() -> int:
    """Find a free TCP port on the loopback interface."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def listener_fails_for(template: str) -> bool:
    """Probe whether a listener for *template* is refused on this machine.

    Binds and immediately releases a socket on the template's host. Only
    "access denied" counts as a failure; any other error is ignored here
    because it will surface again, with more context, when the real
    listener starts.
    """
    host = "127.0.0.1" if template == LOOPBACK_IP_TEMPLATE else "localhost"
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, 0))
            s.listen(1)
    except PermissionError:
        logger.debug("Listener probe denied for %s", template)
        return True
    except OSError as exc:
        logger.debug("Listener probe for %s failed: %s", template, exc)
    return False


class UriStatistics:
    """Outcome bookkeeping for one redirect URI template.

    Args:
        uri: The template this record tracks.
        timeout: Seconds without a known outcome after which the template
            counts as timed out.
        clock: Monotonic clock returning seconds.
    """

    def __init__(self, uri: str, timeout: float, clock: Callable[[], float]) -> None:
        self.uri = uri
        self._timeout = timeout
        self._clock = clock
        self.first_served_at = clock()
        self.known_to_succeed = False
        self.known_to_fail = False
        self.total_resets = 0

    @property
    def is_timed_out(self) -> bool:
        # A known outcome means it cannot be timed out.
        return (
            not self.known_to_succeed
            and not self.known_to_fail
            and self.first_served_at + self._timeout <= self._clock()
        )

    @property
    def can_be_used(self) -> bool:
        # Success wins over any later failure.
        return self.known_to_succeed or (not self.known_to_fail and not self.is_timed_out)

    def succeeded(self) -> None:
        self.known_to_succeed = True

    def failed(self) -> None:
        self.known_to_fail = True

    def reset(self) -> None:
        self.total_resets += 1
        self.first_served_at = self._clock()
        self.known_to_fail = False


@dataclass(frozen=True)
class UriStatisticsSnapshot:
    """Read-only copy of a :class:`UriStatistics` record."""

    uri: str
    known_to_succeed: bool
    known_to_fail: bool
    total_resets: int
    is_timed_out: bool
    can_be_used: bool


class CallbackUriChooser:
    """Pick a redirect URI template and learn from reported outcomes.

    All public methods hold a single lock, so concurrent receivers never
    interleave a usability check with a reset.

    Args:
        timeout: Seconds a served template may go without a reported
            outcome before it counts as timed out.
        clock: Monotonic clock, injectable for tests.
        listener_fails_for: Bind probe run once per template under the
            ``DEFAULT`` strategy; returns ``True`` if the template cannot
            be listened on.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_URI_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        listener_fails_for: Callable[[str], bool] = listener_fails_for,
    ) -> None:
        self._timeout = timeout
        self._clock = clock
        self._listener_fails_for = listener_fails_for
        self._lock = threading.Lock()
        self._loopback_ip: Optional[UriStatistics] = None
        self._localhost: Optional[UriStatistics] = None

    def get_uri_template(
        self, strategy: CallbackUriStrategy = CallbackUriStrategy.DEFAULT
    ) -> str:
        """Return the redirect URI template to use for a new receiver.

        Never raises: when both templates look unusable, the least-reset
        one is reset and returned.
        """
        with self._lock:
            if strategy == CallbackUriStrategy.FORCE_LOOPBACK_IP:
                return self._loopback_ip_stats(check_listener=False).uri
            if strategy == CallbackUriStrategy.FORCE_LOCALHOST:
                return self._localhost_stats(check_listener=False).uri

            loopback_ip = self._loopback_ip_stats(check_listener=True)
            if loopback_ip.can_be_used:
                return loopback_ip.uri

            localhost = self._localhost_stats(check_listener=True)
            if localhost.can_be_used:
                logger.debug("Loopback IP unusable, falling back to localhost")
                return localhost.uri

            if loopback_ip.total_resets < localhost.total_resets:
                retriable = loopback_ip
            elif loopback_ip.total_resets > localhost.total_resets:
                retriable = localhost
            elif loopback_ip.is_timed_out:
                retriable = loopback_ip
            elif localhost.is_timed_out:
                retriable = localhost
            else:
                retriable = loopback_ip

            retriable.reset()
            logger.debug(
                "No redirect URI template usable; reset %s (resets=%d)",
                retriable.uri,
                retriable.total_resets,
            )
            return retriable.uri

    def report_success(self, uri: str) -> None:
        """Record that a receiver completed a redirect on *uri*."""
        with self._lock:
            self._stats_for(uri).succeeded()

    def report_failure(self, uri: str) -> None:
        """Record that a receiver could not complete a redirect on *uri*."""
        with self._lock:
            self._stats_for(uri).failed()

    def snapshot(self) -> list[UriStatisticsSnapshot]:
        """Return copies of the records served so far, loopback IP first."""
        with self._lock:
            return [
                UriStatisticsSnapshot(
                    uri=stats.uri,
                    known_to_succeed=stats.known_to_succeed,
                    known_to_fail=stats.known_to_fail,
                    total_resets=stats.total_resets,
                    is_timed_out=stats.is_timed_out,
                    can_be_used=stats.can_be_used,
                )
                for stats in (self._loopback_ip, self._localhost)
                if stats is not None
            ]

    # ------------------------------------------------------------------ #
    # Private helpers (callers hold the lock)
    # ------------------------------------------------------------------ #

    def _loopback_ip_stats(self, check_listener: bool) -> UriStatistics:
        if self._loopback_ip is None:
            self._loopback_ip = self._new_stats(LOOPBACK_IP_TEMPLATE, check_listener)
        return self._loopback_ip

    def _localhost_stats(self, check_listener: bool) -> UriStatistics:
        if self._localhost is None:
            self._localhost = self._new_stats(LOCALHOST_TEMPLATE, check_listener)
        return self._localhost

    def _new_stats(self, uri: str, check_listener: bool) -> UriStatistics:
        stats = UriStatistics(uri, self._timeout, self._clock)
        if check_listener and self._listener_fails_for(uri):
            stats.failed()
        return stats

    def _stats_for(self, uri: str) -> UriStatistics:
        if uri == LOOPBACK_IP_TEMPLATE:
            return self._loopback_ip_stats(check_listener=False)
        if uri == LOCALHOST_TEMPLATE:
            return self._localhost_stats(check_listener=False)
        raise ValueError(f"Unknown redirect URI template: {uri!r}")


# ------------------------------------------------------------------ #
# Process-wide chooser (installed at startup)
# ------------------------------------------------------------------ #

_chooser: Optional[CallbackUriChooser] = None
_chooser_lock = threading.Lock()


def get_chooser() -> CallbackUriChooser:
    """Return the process-wide :class:`CallbackUriChooser`.

    If none has been installed via :func:`set_chooser`, one with default
    settings is created on first use.
    """
    global _chooser
    with _chooser_lock:
        if _chooser is None:
            _chooser = CallbackUriChooser()
        return _chooser


def set_chooser(chooser: CallbackUriChooser) -> None:
    """Install *chooser* as the process-wide instance."""
    global _chooser
    with _chooser_lock:
        _chooser = chooser


def reset_chooser() -> None:
    """Drop the process-wide chooser. Primarily useful in test suites."""
    global _chooser
    with _chooser_lock:
        _chooser = None
