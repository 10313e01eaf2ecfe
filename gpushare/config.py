"""The versioned configuration of the device plugin and feature discovery."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import IO, Any, Protocol

import yaml

from gpushare.consts import ConfigError
from gpushare.flags import CliContext, Flags, flags_from_value
from gpushare.resources import Resources, resources_from_value
from gpushare.sharing import Sharing, sharing_from_value

VERSION = "v1"


class WarningLogger(Protocol):
    """Anything that accepts warning messages, such as a logging.Logger."""

    def warning(self, msg: str, *args: Any) -> Any: ...


@dataclass
class Config:
    """Configuration: flags, resource naming and sharing settings."""

    version: str = VERSION
    flags: Flags = field(default_factory=Flags)
    resources: Resources = field(default_factory=Resources)
    sharing: Sharing = field(default_factory=Sharing)

    def to_json(self) -> dict:
        """Return the configuration as a JSON-ready dict."""
        return {
            "version": self.version,
            "flags": self.flags.to_json(),
            "resources": self.resources.to_json(),
            "sharing": self.sharing.to_json(),
        }


def new_config(context: CliContext, flag_names: Iterable[str]) -> Config:
    """Build a Config from the config file named by the context, then its flags.

    Explicitly set flags win over the config file, which wins over flag defaults.
    """
    config = Config()
    config_file = context.get("config-file")
    if config_file:
        try:
            config = parse_config(config_file)
        except ConfigError as err:
            raise ConfigError(f"unable to parse config file: {err}") from err
    config.flags.update_from_cli_flags(context, flag_names)
    return config


def parse_config(config_file: str) -> Config:
    """Read a YAML or JSON config file."""
    try:
        stream = open(config_file, encoding="utf-8")
    except OSError as err:
        raise ConfigError(f"error opening config file: {err}") from err
    with stream:
        try:
            return parse_config_from(stream)
        except ConfigError as err:
            raise ConfigError(f"error parsing config file: {err}") from err


def parse_config_from(stream: IO) -> Config:
    """Parse a YAML or JSON configuration from a text or binary stream."""
    try:
        data = stream.read()
    except OSError as err:
        raise ConfigError(f"read error: {err}") from err
    if isinstance(data, bytes):
        data = data.decode("utf-8")

    try:
        value = yaml.safe_load(data)
    except yaml.YAMLError as err:
        raise ConfigError(f"unmarshal error: {err}") from err
    if value is None:
        value = {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"unmarshal error: config must be an object: {value!r}")

    try:
        version = value.get("version")
        if version is not None and not isinstance(version, str):
            raise ConfigError(f"'version' must be a string: {version!r}")
        config = Config(
            version=version or "",
            flags=flags_from_value(value.get("flags")),
            resources=resources_from_value(value.get("resources")),
            sharing=sharing_from_value(value.get("sharing")),
        )
    except ConfigError as err:
        raise ConfigError(f"unmarshal error: {err}") from err

    if not config.version:
        config.version = VERSION
    if config.version != VERSION:
        raise ConfigError(f"unknown version: {config.version}")
    return config


def disable_resource_naming_in_config(logger: WarningLogger, config: Config) -> None:
    """Drop custom resource naming and device selection, warning when present."""
    if config.resources.gpus or config.resources.migs:
        logger.warning(
            "Customizing the 'resources' field is not yet supported in the config. "
            "Ignoring..."
        )
    config.resources.gpus = []
    config.resources.migs = []

    config.sharing.time_slicing.disable_resource_renaming(logger, "timeSlicing")
    if config.sharing.mps is not None:
        config.sharing.mps.disable_resource_renaming(logger, "mps")