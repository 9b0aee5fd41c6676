"""Open a URL in the system default browser.

One small launcher per platform, selected by :func:`get_browser_launcher`:

* Windows -- ``cmd /c start "" "<url>"`` (the URL is escaped for ``cmd``).
* Linux -- ``xdg-open <url>``.
* macOS -- ``open <url>``.
* anything else -- the standard library :mod:`webbrowser` module.

:meth:`BrowserLauncher.open` returns ``False`` when the platform offers no
way to launch a browser; the receiver turns that into a
:class:`~loopauth.exceptions.PlatformError`.
"""

from __future__ import annotations

import platform
import re
import subprocess
import webbrowser
from abc import ABC, abstractmethod
from typing import Optional


class BrowserLauncher(ABC):
    """Opens URLs in the user's default browser."""

    @abstractmethod
    def open(self, url: str) -> bool:
        """Open *url*; return ``False`` if no browser could be launched.

        Raises:
            OSError: If the helper program cannot be started.
        """
        ...


class WindowsBrowserLauncher(BrowserLauncher):
    @staticmethod
    def escape(url: str) -> str:
        """Escape *url* so ``cmd`` passes it through as one quoted argument."""
        # Double the backslashes preceding a quote, then escape the quote.
        url = re.sub(r'(\\*)"', r'\1\1\\"', url)
        # Double trailing backslashes so they do not escape the closing quote.
        return re.sub(r"(\\+)$", r"\1\1", url)

    def open(self, url: str) -> bool:
        subprocess.Popen(
            f'cmd /c start "" "{self.escape(url)}"',
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
        return True


class LinuxBrowserLauncher(BrowserLauncher):
    def open(self, url: str) -> bool:
        subprocess.Popen(["xdg-open", url])
        return True


class MacOSBrowserLauncher(BrowserLauncher):
    def open(self, url: str) -> bool:
        subprocess.Popen(["open", url])
        return True


class WebbrowserLauncher(BrowserLauncher):
    """Fallback using :func:`webbrowser.open`, which reports whether it found a browser."""

    def open(self, url: str) -> bool:
        return webbrowser.open(url)


def get_browser_launcher(system: Optional[str] = None) -> BrowserLauncher:
    """Return the launcher for *system* (defaults to :func:`platform.system`)."""
    system = system or platform.system()
    if system == "Windows":
        return WindowsBrowserLauncher()
    if system == "Linux":
        return LinuxBrowserLauncher()
    if system == "Darwin":
        return MacOSBrowserLauncher()
    return WebbrowserLauncher()
