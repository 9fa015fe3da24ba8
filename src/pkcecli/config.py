"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for pkcecli:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.pkcecli/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_profiles_dir`.
* **Global config** -- A single :class:`~pkcecli.models.GlobalConfig`
  JSON file storing the default profile.
* **Profiles** -- One JSON file per identity provider client, each
  deserialised into a :class:`~pkcecli.models.Profile`.
* **Precedence resolution** -- :func:`resolve_client_config` merges CLI
  flags, environment variables, the selected profile and built-in defaults
  into one validated :class:`~pkcecli.models.ClientConfig`.
* **Credential resolution** -- :func:`resolve_credential` reads values
  given as ``env:VAR`` or ``file:/path`` sources.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from pkcecli.exceptions import ConfigurationError
from pkcecli.models import (
    ClientConfig,
    GlobalConfig,
    Profile,
)

_APP_NAME = "pkcecli"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "pkcecli.json"

ENV_PROFILE = "PKCECLI_PROFILE"
ENV_CLIENT_ID = "PKCECLI_CLIENT_ID"
ENV_TENANT_ID = "PKCECLI_TENANT_ID"
ENV_SCOPES = "PKCECLI_SCOPES"
ENV_ORIGIN = "PKCECLI_ORIGIN"


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

    On Linux/BSD: ``$XDG_CONFIG_HOME/pkcecli/`` (default ``~/.config/pkcecli/``).
    On macOS/Windows: ``~/.pkcecli/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/pkcecli/`` (default ``~/.local/share/pkcecli/``).
    On macOS/Windows: ``~/.pkcecli/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_profiles_dir() -> Path:
    """Return the profiles directory (``<config_dir>/profiles/``), creating it if necessary."""
    path = get_config_dir() / "profiles"
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
        fd = None
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


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Invalid {what} at {path}: {exc}") from exc


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration, or defaults when the file does not exist.

    Raises:
        ConfigurationError: If the file exists but is invalid.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Profiles ---


def _profile_path(name: str) -> Path:
    if not name or "/" in name or "\\" in name or name.startswith("."):
        raise ConfigurationError(f"Invalid profile name: {name!r}")
    return get_profiles_dir() / f"{name}.json"


def list_profiles() -> list[str]:
    """Return all saved profile names, sorted alphabetically."""
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def load_profile(name: str) -> Profile:
    """Load and validate a profile from disk.

    Raises:
        ConfigurationError: If the profile does not exist or is invalid.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigurationError(f"Profile '{name}' not found at {path}")
    data = _read_json(path, f"profile '{name}'")
    try:
        return Profile.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid profile '{name}' at {path}: {exc}") from exc


def save_profile(profile: Profile) -> Path:
    """Persist a profile atomically and return the file path."""
    path = _profile_path(profile.name)
    data = profile.model_dump(mode="json", exclude_none=True)
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./pkcecli.json`` if present.

    A repository can pin which profile to use with a ``default_profile`` key.

    Raises:
        ConfigurationError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid project config at {path}: expected an object")
    return data


def select_profile(cli_profile: Optional[str] = None) -> Optional[Profile]:
    """Pick the active profile.

    Precedence (high to low):
        1. ``cli_profile``
        2. ``PKCECLI_PROFILE``
        3. ``default_profile`` in ``./pkcecli.json``
        4. ``default_profile`` in the global config
        5. The only saved profile, when ``auto_select_single_profile`` is on

    Returns:
        The loaded profile, or ``None`` when none is selected.
    """
    global_cfg = load_global_config()
    name: Optional[str] = global_cfg.default_profile

    project = load_project_config()
    if project is not None and project.get("default_profile"):
        name = project["default_profile"]

    env_profile = os.environ.get(ENV_PROFILE)
    if env_profile:
        name = env_profile

    if cli_profile is not None:
        name = cli_profile

    if name is None and global_cfg.auto_select_single_profile:
        profiles = list_profiles()
        if len(profiles) == 1:
            name = profiles[0]

    return load_profile(name) if name is not None else None


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a value from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - anything else is returned unchanged

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

    return source


# --- Client configuration ---


def _pick(*values: Any) -> Any:
    """Return the first value that is not ``None``."""
    for value in values:
        if value is not None:
            return value
    return None


def resolve_client_config(
    profile: Optional[Profile] = None,
    client_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    authorization_endpoint: Optional[str] = None,
    token_endpoint: Optional[str] = None,
    scopes: Optional[list[str]] = None,
    origin_header: Optional[str] = None,
    redirect_host: Optional[str] = None,
    callback_path: Optional[str] = None,
    timeout: Optional[float] = None,
) -> ClientConfig:
    """Merge CLI values, environment variables and *profile* into a :class:`ClientConfig`.

    Precedence per field: explicit argument, then environment variable
    (``PKCECLI_CLIENT_ID``, ``PKCECLI_TENANT_ID``, ``PKCECLI_SCOPES``,
    ``PKCECLI_ORIGIN``), then the profile. When a tenant is known and an
    endpoint is missing, the Microsoft identity platform v2.0 endpoints are
    used and the Entra Origin header preset applies.

    Raises:
        ConfigurationError: If required values are missing or invalid.
    """
    profile = profile or Profile(name="")

    raw_client_id = _pick(client_id, os.environ.get(ENV_CLIENT_ID) or None, profile.client_id)
    if not raw_client_id:
        raise ConfigurationError(
            "No client id configured. Pass --client-id, set "
            f"{ENV_CLIENT_ID}, or select a profile."
        )
    resolved_client_id = resolve_credential(raw_client_id)

    tenant = _pick(tenant_id, os.environ.get(ENV_TENANT_ID) or None, profile.tenant_id)
    auth_endpoint = _pick(authorization_endpoint, profile.authorization_endpoint)
    tok_endpoint = _pick(token_endpoint, profile.token_endpoint)
    origin = _pick(origin_header, os.environ.get(ENV_ORIGIN), profile.origin_header)
    use_entra = bool(tenant) and (auth_endpoint is None or tok_endpoint is None)

    if not use_entra and (auth_endpoint is None or tok_endpoint is None):
        raise ConfigurationError(
            "No endpoints configured. Pass --tenant for Microsoft Entra ID, or both "
            "--authorization-endpoint and --token-endpoint."
        )

    env_scopes = os.environ.get(ENV_SCOPES)
    resolved_scopes = _pick(
        scopes or None,
        env_scopes if env_scopes else None,
        profile.scopes,
    )

    values: dict[str, Any] = {"scopes": resolved_scopes or ()}
    for key, value in (
        ("authorization_endpoint", auth_endpoint),
        ("token_endpoint", tok_endpoint),
        ("origin_header", origin),
        ("redirect_host", _pick(redirect_host, profile.redirect_host)),
        ("callback_path", _pick(callback_path, profile.callback_path)),
        ("timeout", _pick(timeout, profile.timeout)),
    ):
        if value is not None:
            values[key] = value

    try:
        if use_entra:
            return ClientConfig.for_entra(tenant, resolved_client_id, **values)
        return ClientConfig(client_id=resolved_client_id, tenant_id=tenant, **values)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid client configuration: {problems}") from exc
