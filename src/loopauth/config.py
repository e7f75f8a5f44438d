"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for loopauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.loopauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~loopauth.models.GlobalConfig`
  JSON file storing the provider, listener address, scopes and credential
  sources.
* **Precedence resolution** -- :func:`resolve_listener` merges CLI flags,
  environment variables, and the config file into the effective
  :class:`~loopauth.models.ListenerConfig`.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars, files, or interactive prompts, and
  :func:`load_client_credentials` turns them into
  :class:`~loopauth.models.ClientCredentials` before any network activity.

Tokens are never written here; nothing obtained by a flow outlives the
process.
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

from pydantic import ValidationError

from loopauth.exceptions import ConfigurationError
from loopauth.models import ClientCredentials, GlobalConfig, ListenerConfig
from loopauth.providers import Provider

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
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/loopauth/`` (default ``~/.local/share/loopauth/``).
    On macOS/Windows: ``~/.loopauth/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.
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
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~loopauth.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigurationError: If the file exists but contains invalid JSON or
            fails Pydantic validation.
    """
    path = config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


def set_config_value(config: GlobalConfig, key: str, value: str) -> GlobalConfig:
    """Return a copy of *config* with the dotted *key* set to *value*.

    Supports top-level keys (``provider``, ``open_browser``, ...) and
    ``listener.<field>``. ``scopes`` takes a comma-separated list; the
    literal ``none`` clears optional values.

    Raises:
        ConfigurationError: For unknown keys or values that fail validation.
    """
    data = config.model_dump(mode="json")
    parsed: object = None if value.lower() == "none" else value
    if key == "scopes" and parsed is not None:
        parsed = [s.strip() for s in value.split(",") if s.strip()]

    section, _, field = key.partition(".")
    if field:
        if section != "listener" or field not in ListenerConfig.model_fields:
            raise ConfigurationError(f"Unknown config key: {key}")
        data["listener"][field] = parsed
    else:
        if key not in GlobalConfig.model_fields or key == "listener":
            raise ConfigurationError(f"Unknown config key: {key}")
        data[key] = parsed

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid value for {key}: {exc}") from exc


# --- Precedence resolution ---


def resolve_listener(
    config: GlobalConfig,
    cli_host: Optional[str] = None,
    cli_port: Optional[int] = None,
    cli_timeout: Optional[float] = None,
) -> ListenerConfig:
    """Resolve the listener settings with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``--host``, ``--port``, ``--timeout``)
        2. Environment variables (``LOOPAUTH_HOST``, ``LOOPAUTH_PORT``,
           ``LOOPAUTH_TIMEOUT``)
        3. User config (``~/.config/loopauth/config.json``)
        4. Defaults (``127.0.0.1:8080``, no timeout)

    Raises:
        ConfigurationError: If an environment override is not a valid number.
    """
    data = config.listener.model_dump()

    env_host = os.environ.get("LOOPAUTH_HOST")
    if env_host:
        data["host"] = env_host
    for env_var, field in (("LOOPAUTH_PORT", "port"), ("LOOPAUTH_TIMEOUT", "timeout")):
        raw = os.environ.get(env_var)
        if raw:
            data[field] = raw

    if cli_host is not None:
        data["host"] = cli_host
    if cli_port is not None:
        data["port"] = cli_port
    if cli_timeout is not None:
        data["timeout"] = cli_timeout

    try:
        return ListenerConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid listener settings: {exc}") from exc


# --- Credential source resolution ---


def resolve_credential(source: str, label: str = "credential") -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Args:
        source: The source descriptor string.
        label: What is being resolved, used in prompts and error messages.

    Returns:
        The resolved credential string.

    Raises:
        ConfigurationError: If the source can't be resolved or is empty.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if not value:
            raise ConfigurationError(
                f"Missing the {var_name} environment variable ({label})."
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Credential file not found: {path} ({label})")
        try:
            value = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read credential file {path}: {exc}") from exc
        if not value:
            raise ConfigurationError(f"Credential file {path} is empty ({label})")
        return value

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigurationError(
                f"Cannot prompt for {label}: stdin is not a TTY (source: prompt)"
            )
        value = getpass.getpass(f"Enter {label}: ")
        if not value:
            raise ConfigurationError(f"No {label} entered")
        return value

    raise ConfigurationError(f"Unknown credential source format: {source}")


def load_client_credentials(config: GlobalConfig, provider: Provider) -> ClientCredentials:
    """Resolve the client id and secret for *provider*.

    Uses the sources configured in *config*, falling back to the provider's
    environment variables (e.g. ``GITHUB_CLIENT_ID``/``GITHUB_CLIENT_SECRET``).

    Raises:
        ConfigurationError: If either value is missing.
    """
    id_source = config.client_id_source or f"env:{provider.client_id_env}"
    secret_source = config.client_secret_source or f"env:{provider.client_secret_env}"
    return ClientCredentials(
        client_id=resolve_credential(id_source, "client id"),
        client_secret=resolve_credential(secret_source, "client secret"),
    )
