"""Thread-safe cancellation tokens for the receive pipeline.

A :class:`CancellationToken` can be cancelled from any thread (a timer, a
signal handler, a UI callback). Code that waits on blocking-style I/O
registers a callback with :meth:`CancellationToken.register`; the callback
runs exactly once, either immediately if the token is already cancelled or
on the thread that calls :meth:`CancellationToken.cancel`.

:meth:`CancellationToken.linked` combines several tokens into one that is
cancelled as soon as any of its sources is.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional


class Registration:
    """Handle returned by :meth:`CancellationToken.register`.

    Usable as a context manager; leaving the block unregisters the callback.
    """

    def __init__(self, token: CancellationToken, callback: Callable[[], None]) -> None:
        self._token = token
        self._callback = callback

    def unregister(self) -> None:
        self._token._unregister(self._callback)

    def __enter__(self) -> Registration:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unregister()


class CancellationToken:
    """A cancellation flag with callbacks.

    Example::

        token = CancellationToken()
        token.cancel_after(120)
        params = await server.get_query_params(token)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None
        self._sources: list[Registration] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the token and run every registered callback once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        for callback in callbacks:
            callback()

    def cancel_after(self, seconds: float) -> None:
        """Cancel the token once *seconds* have elapsed.

        Replaces any deadline set earlier.
        """
        timer = threading.Timer(seconds, self.cancel)
        timer.daemon = True
        with self._lock:
            if self._cancelled:
                return
            previous, self._timer = self._timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def register(self, callback: Callable[[], None]) -> Registration:
        """Run *callback* when the token is cancelled.

        If the token is already cancelled the callback runs immediately on
        the calling thread.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return Registration(self, callback)
        callback()
        return Registration(self, callback)

    def dispose(self) -> None:
        """Stop any pending deadline and detach from linked sources."""
        with self._lock:
            timer, self._timer = self._timer, None
            sources, self._sources = self._sources, []
        if timer is not None:
            timer.cancel()
        for registration in sources:
            registration.unregister()

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    @classmethod
    def linked(cls, *sources: Optional[CancellationToken]) -> CancellationToken:
        """Return a token cancelled when any of *sources* is cancelled.

        ``None`` entries are ignored. Call :meth:`dispose` on the result
        once it is no longer needed so the sources drop their callbacks.
        """
        token = cls()
        for source in sources:
            if source is not None:
                token._sources.append(source.register(token.cancel))
        return token
