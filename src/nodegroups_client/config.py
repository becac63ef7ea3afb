"""Configuration for the nodegroups client.

Merges built-in defaults, INI configuration files and explicit options
into a validated :class:`ClientConfig`. Explicit options win over file
values, which win over defaults.
"""

import configparser
import os
from pathlib import Path
from typing import Any

import pydantic
import structlog

from . import __version__

logger = structlog.get_logger(__name__)

CONFIG_ENV_VAR = "NODEGROUPS_CLIENT_CONFIG"
DEFAULT_CONFIG_FILE = "/usr/local/etc/nodegroups_client/config.ini"
DEFAULT_URI = "http://localhost/api"
DEFAULT_USER_AGENT = f"nodegroups-client/{__version__}"
DEFAULT_TIMEOUT = 30.0

# INI sections searched for client options; later sections win.
_OPTION_SECTIONS = ("perl", "python")
_OPTION_KEYS = (
    "ssl_cafile",
    "ssl_capath",
    "ssl_verify_hostname",
    "user_agent",
)


class ConfigFileError(OSError):
    """Raised when a configuration file cannot be read or parsed."""


class UriConfig(pydantic.BaseModel):
    """Base URIs of the read-only and read-write API endpoints."""

    model_config = pydantic.ConfigDict(extra="forbid")

    ro: str = pydantic.Field(DEFAULT_URI, description="Read-only API base URI")
    rw: str = pydantic.Field(DEFAULT_URI, description="Read-write API base URI")


class ClientConfig(pydantic.BaseModel):
    """Resolved client configuration."""

    model_config = pydantic.ConfigDict(extra="forbid", validate_assignment=True)

    uri: UriConfig = pydantic.Field(default_factory=UriConfig)
    ssl_cafile: str = pydantic.Field("", description="CA certificates file")
    ssl_capath: str = pydantic.Field("", description="CA certificates directory")
    ssl_verify_hostname: bool | str = pydantic.Field(
        "",
        description="Verify server hostname; empty keeps the transport default",
    )
    user_agent: str = pydantic.Field(
        DEFAULT_USER_AGENT,
        description="User-Agent request header",
    )
    timeout: float = pydantic.Field(
        DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )


def default_config_path() -> str:
    """Return the default config file path, honouring the environment."""
    return os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)


def load_config_file(config_path: str | Path) -> dict[str, Any]:
    """Read client options from an INI file.

    Recognised keys are ``uri.ro`` and ``uri.rw`` plus ``ssl_cafile``,
    ``ssl_capath``, ``ssl_verify_hostname`` and ``user_agent`` in the
    ``perl`` section. A ``python`` section may carry the same keys and
    ``timeout``; its values override the ``perl`` ones.

    Args:
        config_path: Path to the INI file.

    Returns:
        Mapping of the options present in the file, shaped like
        :class:`ClientConfig` input.

    Raises:
        ConfigFileError: If the file cannot be opened or parsed.
    """
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with Path(config_path).open("r", encoding="utf-8") as f:
            parser.read_file(f)
    except OSError as exc:
        raise ConfigFileError(exc.errno, exc.strerror, str(config_path)) from exc
    except (configparser.Error, UnicodeDecodeError) as exc:
        raise ConfigFileError(str(exc)) from exc

    options: dict[str, Any] = {}

    if parser.has_section("uri"):
        uri = {
            key: parser.get("uri", key)
            for key in ("ro", "rw")
            if parser.has_option("uri", key)
        }
        if uri:
            options["uri"] = uri

    for section in _OPTION_SECTIONS:
        if not parser.has_section(section):
            continue
        for key in _OPTION_KEYS:
            if parser.has_option(section, key):
                options[key] = parser.get(section, key)

    if parser.has_option("python", "timeout"):
        options["timeout"] = parser.get("python", "timeout")

    logger.debug("Loaded config file", path=str(config_path), keys=sorted(options))
    return options


def merge_options(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay options on ``base``; ``uri`` mappings are merged per key."""
    merged = dict(base)
    for key, value in overlay.items():
        if key == "uri" and isinstance(value, dict):
            merged["uri"] = {**merged.get("uri", {}), **value}
        else:
            merged[key] = value
    return merged


def resolve_config(
    config_file: str | Path | None = None,
    **options: Any,
) -> ClientConfig:
    """Build the client configuration from all sources.

    Args:
        config_file: Optional INI file read after the default config file.
        **options: Explicit options; these override every file value.

    Returns:
        Validated ClientConfig.

    Raises:
        ConfigFileError: If ``config_file`` cannot be read or parsed. An
            unreadable default config file is logged and skipped.
        pydantic.ValidationError: If the merged options are invalid.
    """
    merged: dict[str, Any] = {}

    default_path = Path(default_config_path())
    if default_path.is_file():
        try:
            merged = merge_options(merged, load_config_file(default_path))
        except ConfigFileError as exc:
            logger.warning(
                "Ignoring unreadable default config file",
                path=str(default_path),
                error=str(exc),
            )

    if config_file is not None:
        merged = merge_options(merged, load_config_file(config_file))

    # uri must be a mapping of ro/rw; anything else is dropped.
    if "uri" in options and not isinstance(options["uri"], dict):
        logger.warning("Ignoring non-mapping uri option", uri=options["uri"])
        options = {k: v for k, v in options.items() if k != "uri"}

    merged = merge_options(merged, options)
    return ClientConfig.model_validate(merged)
