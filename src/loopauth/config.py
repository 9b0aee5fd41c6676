"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for loopauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.loopauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~loopauth.models.GlobalConfig`
  JSON file storing receiver defaults (strategy, timeouts, port, limits).
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables and the global config into the effective
  configuration.
* **Credential resolution** -- :func:`resolve_credential` reads the
  client id from env vars, files, or interactive prompts.
* **Receiver wiring** -- :func:`build_chooser` and :func:`load_close_page`
  turn the configuration into receiver collaborators.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Optional

from loopauth.exceptions import ConfigurationError
from loopauth.models import CallbackUriStrategy, GlobalConfig, ReceiverConfig
from loopauth.receiver.chooser import CallbackUriChooser
from loopauth.receiver.receiver import DEFAULT_CLOSE_PAGE_RESPONSE

_APP_NAME = "loopauth"
_CONFIG_FILENAME = "config.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/loopauth/`` (default ``~/.config/loopauth/``).
    On macOS/Windows: ``~/.loopauth/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/loopauth/`` (default ``~/.local/share/loopauth/``).
    On macOS/Windows: ``~/.loopauth/logs/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~loopauth.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigurationError: If the file exists but contains invalid JSON or
            fails Pydantic validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk.

    Args:
        config: The configuration to save.
    """
    data = config.model_dump(mode="json")
    _atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def _env_number(name: str, cast: type) -> Optional[float]:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from exc


def resolve_config(
    cli_strategy: Optional[str] = None,
    cli_port: Optional[int] = None,
    cli_timeout: Optional[float] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_strategy``, ``cli_port``, ``cli_timeout``)
        2. Environment variables (``LOOPAUTH_STRATEGY``, ``LOOPAUTH_PORT``,
           ``LOOPAUTH_TIMEOUT``)
        3. User config (``~/.config/loopauth/config.json``)
        4. Defaults

    Raises:
        ConfigurationError: If the config file or an override is invalid.
    """
    config = load_global_config()
    receiver = config.receiver

    strategy = cli_strategy or os.environ.get("LOOPAUTH_STRATEGY")
    if strategy:
        try:
            receiver.strategy = CallbackUriStrategy(strategy)
        except ValueError:
            allowed = ", ".join(s.value for s in CallbackUriStrategy)
            raise ConfigurationError(
                f"Unknown redirect URI strategy '{strategy}'. Expected one of: {allowed}"
            ) from None

    port = cli_port if cli_port is not None else _env_number("LOOPAUTH_PORT", int)
    if port is not None:
        receiver.port = int(port)

    timeout = cli_timeout if cli_timeout is not None else _env_number("LOOPAUTH_TIMEOUT", float)
    if timeout is not None:
        receiver.callback_timeout_seconds = float(timeout)

    return config


# --- Receiver wiring ---


def build_chooser(config: ReceiverConfig) -> CallbackUriChooser:
    """Create the process-wide chooser from receiver settings."""
    return CallbackUriChooser(timeout=config.uri_timeout_seconds)


def load_close_page(config: ReceiverConfig) -> str:
    """Return the HTML page served after the redirect.

    ``close_page`` may be ``None`` (built-in page), ``file:/path`` or
    inline HTML.

    Raises:
        ConfigurationError: If the referenced file cannot be read.
    """
    if not config.close_page:
        return DEFAULT_CLOSE_PAGE_RESPONSE
    if config.close_page.startswith("file:"):
        path = Path(config.close_page[5:]).expanduser()
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read close page {path}: {exc}") from exc
    return config.close_page


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Args:
        source: The source descriptor string.

    Returns:
        The resolved credential string.

    Raises:
        ConfigurationError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigurationError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigurationError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter client id: ")

    raise ConfigurationError(f"Unknown credential source format: {source}")
