"""Application configuration loaded from environment variables."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"
DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"

# Separator for list-valued environment variables.
LIST_SEPARATOR = ";"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})

# Instance names become part of variable names, e.g. DT_WORK_CLEANUP.
_INSTANCE_NAME = re.compile(r"[A-Za-z0-9_]+")


class ConfigurationError(ValueError):
    """Raised when a setting is present but blank or malformed."""


def require(value: str, name: str) -> str:
    """Return value unchanged, raising ConfigurationError if it is blank."""
    if not value or not value.strip():
        raise ConfigurationError(f"Empty {name}")
    return value


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Destination
    settings default to empty and are only validated when the destination
    is enabled.
    """

    # Required, a missing variable fails at startup
    google_client_id: str
    google_client_secret: str

    # Name of the instance these settings belong to; empty for a single instance
    instance: str = ""

    # Source settings
    file_fetch_size: int = 1000
    folder_fetch_size: int = 1000
    download_only: bool = False
    cleanup: bool = False
    root_dir_name: str = ""
    target_dir_name: str = "GDrive"
    protected_paths: tuple[str, ...] = ()
    data_dir: Path = field(default_factory=Path.cwd)
    local_server_host: str = "localhost"
    local_server_port: int = 5432
    workers: int = 1
    extra_extensions: tuple[tuple[str, str], ...] = ()

    # Destination settings
    graph_client_id: str = ""
    graph_client_secret: str = ""
    tenant_id: str = ""
    drive_user: str = ""
    root_folder_id: str = ""
    graph_endpoint: str = DEFAULT_GRAPH_ENDPOINT
    authority_host: str = DEFAULT_AUTHORITY_HOST

    @property
    def destination_enabled(self) -> bool:
        """True when uploads should go to the Graph document library."""
        return not self.download_only and bool(self.graph_client_id.strip())

    @property
    def local_root(self) -> Path:
        """Directory under which downloaded files are laid out."""
        return self.data_dir / self.target_dir_name


def _env(instance: str, key: str) -> str | None:
    """Return ``DT_<INSTANCE>_<key>`` if set, falling back to the shared ``DT_<key>``."""
    if instance:
        value = os.environ.get(f"DT_{instance.upper()}_{key}")
        if value is not None:
            return value
    return os.environ.get(f"DT_{key}")


def _env_required(instance: str, key: str) -> str:
    value = _env(instance, key)
    if value is None:
        raise KeyError(f"DT_{instance.upper()}_{key}" if instance else f"DT_{key}")
    return value


def _env_str(instance: str, key: str, default: str = "") -> str:
    value = _env(instance, key)
    return default if value is None else value


def _env_int(instance: str, key: str, default: int) -> int:
    """Parse an integer setting; a non-numeric value raises ValueError."""
    value = _env(instance, key)
    return default if value is None else int(value)


def _env_bool(instance: str, key: str, default: bool = False) -> bool:
    """Parse a boolean setting; anything outside the true values is False."""
    raw = _env(instance, key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_list(instance: str, key: str) -> tuple[str, ...]:
    raw = _env(instance, key) or ""
    return tuple(part.strip() for part in raw.split(LIST_SEPARATOR) if part.strip())


def _parse_extensions(entries: tuple[str, ...]) -> tuple[tuple[str, str], ...]:
    """Parse ``ext=content/type`` pairs into (content_type, ext) tuples."""
    pairs: list[tuple[str, str]] = []
    for entry in entries:
        ext, sep, content_type = entry.partition("=")
        if not sep or not ext.strip() or not content_type.strip():
            raise ConfigurationError(f"Invalid extension mapping: {entry!r}")
        pairs.append((content_type.strip(), ext.strip().lstrip(".")))
    return tuple(pairs)


def _data_dir(instance: str) -> Path:
    """Return the data directory of an instance.

    An instance's own ``DT_<INSTANCE>_DATA_DIR`` is used as given. Otherwise
    a named instance gets a subdirectory of the shared directory, so that
    tokens and downloads of different accounts never mix.
    """
    if instance:
        own = os.environ.get(f"DT_{instance.upper()}_DATA_DIR")
        if own:
            return Path(own).expanduser()
    raw = os.environ.get("DT_DATA_DIR")
    base = Path(raw).expanduser() if raw else Path.cwd()
    return base / instance if instance else base


def instance_names() -> list[str]:
    """Return the configured instance names, in order.

    ``DT_INSTANCES`` holds ``;``-separated names. When it is unset a single
    unnamed instance is configured from the plain ``DT_*`` variables.

    Raises:
        ConfigurationError: If a name contains anything besides letters,
            digits and underscores.
    """
    names: list[str] = []
    for name in _env_list("", "INSTANCES"):
        if not _INSTANCE_NAME.fullmatch(name):
            raise ConfigurationError(f"Invalid instance name: {name!r}")
        if name not in names:
            names.append(name)
    return names or [""]


def load_config(instance: str = "") -> AppConfig:
    """Construct an AppConfig from environment variables.

    Every variable below may also be given per instance as
    ``DT_<INSTANCE>_<NAME>`` (instance upper-cased), which takes precedence
    over the shared ``DT_<NAME>``.

    Required environment variables:
        DT_GOOGLE_CLIENT_ID: Google OAuth client ID (installed application).
        DT_GOOGLE_CLIENT_SECRET: Google OAuth client secret.

    Optional source variables (with defaults):
        DT_FILE_FETCH_SIZE: Page size when listing files (default: 1000).
        DT_FOLDER_FETCH_SIZE: Page size when listing folders (default: 1000).
        DT_DOWNLOAD_ONLY: Download locally without uploading (default: false).
        DT_CLEANUP: Delete source files after a verified transfer (default: false).
        DT_ROOT_DIR_NAME: Logical path of the drive root (default: "").
        DT_TARGET_DIR_NAME: Local directory label under DT_DATA_DIR (default: GDrive).
        DT_PROTECTED_PATHS: ``;``-separated path prefixes never deleted from the source.
        DT_DATA_DIR: Local data directory for downloads and tokens (default: cwd).
            A named instance without its own value uses ``<DT_DATA_DIR>/<instance>``.
        DT_LOCAL_SERVER_HOST: Host for the OAuth redirect receiver (default: localhost).
        DT_LOCAL_SERVER_PORT: Port for the OAuth redirect receiver (default: 5432).
        DT_WORKERS: Number of items processed concurrently (default: 1).
        DT_EXTRA_EXTENSIONS: ``;``-separated ``ext=content/type`` extension overrides.

    Optional destination variables:
        DT_GRAPH_CLIENT_ID: Azure AD application (client) ID. Enables uploads.
        DT_GRAPH_CLIENT_SECRET: Azure AD application client secret.
        DT_TENANT_ID: Azure AD tenant ID.
        DT_DRIVE_USER: UPN or object ID whose drive root receives the files.
        DT_ROOT_FOLDER_ID: Explicit destination root folder (overrides DT_DRIVE_USER root).
        DT_GRAPH_ENDPOINT: Graph API base URL (default: https://graph.microsoft.com/v1.0).
        DT_AUTHORITY_HOST: Azure AD authority host (default: https://login.microsoftonline.com).

    Args:
        instance: Instance name from instance_names(); empty for a single instance.

    Returns:
        Configured AppConfig instance.

    Raises:
        KeyError: If a required variable is missing.
        ValueError: If a numeric setting is not a number.
        ConfigurationError: If DT_EXTRA_EXTENSIONS is malformed.
    """
    return AppConfig(
        google_client_id=_env_required(instance, "GOOGLE_CLIENT_ID"),
        google_client_secret=_env_required(instance, "GOOGLE_CLIENT_SECRET"),
        instance=instance,
        file_fetch_size=_env_int(instance, "FILE_FETCH_SIZE", 1000),
        folder_fetch_size=_env_int(instance, "FOLDER_FETCH_SIZE", 1000),
        download_only=_env_bool(instance, "DOWNLOAD_ONLY"),
        cleanup=_env_bool(instance, "CLEANUP"),
        root_dir_name=_env_str(instance, "ROOT_DIR_NAME"),
        target_dir_name=_env_str(instance, "TARGET_DIR_NAME", "GDrive"),
        protected_paths=_env_list(instance, "PROTECTED_PATHS"),
        data_dir=_data_dir(instance),
        local_server_host=_env_str(instance, "LOCAL_SERVER_HOST", "localhost"),
        local_server_port=_env_int(instance, "LOCAL_SERVER_PORT", 5432),
        workers=_env_int(instance, "WORKERS", 1),
        extra_extensions=_parse_extensions(_env_list(instance, "EXTRA_EXTENSIONS")),
        graph_client_id=_env_str(instance, "GRAPH_CLIENT_ID"),
        graph_client_secret=_env_str(instance, "GRAPH_CLIENT_SECRET"),
        tenant_id=_env_str(instance, "TENANT_ID"),
        drive_user=_env_str(instance, "DRIVE_USER"),
        root_folder_id=_env_str(instance, "ROOT_FOLDER_ID"),
        graph_endpoint=_env_str(instance, "GRAPH_ENDPOINT", DEFAULT_GRAPH_ENDPOINT),
        authority_host=_env_str(instance, "AUTHORITY_HOST", DEFAULT_AUTHORITY_HOST),
    )
