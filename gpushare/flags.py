"""Command line flags shared by the device plugin and feature discovery."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from gpushare.consts import ConfigError
from gpushare.duration import Duration, duration_from_value

_STRING = "string"
_BOOL = "bool"
_STRINGS = "strings"
_DURATION = "duration"
_STRATEGY = "strategy"

_COMMON_FLAGS = {
    "mig-strategy": ("mig_strategy", _STRING),
    "fail-on-init-error": ("fail_on_init_error", _BOOL),
    "nvidia-driver-root": ("nvidia_driver_root", _STRING),
    "gds-enabled": ("gds_enabled", _BOOL),
    "mofed-enabled": ("mofed_enabled", _BOOL),
}

_PLUGIN_FLAGS = {
    "pass-device-specs": ("pass_device_specs", _BOOL),
    "device-list-strategy": ("device_list_strategy", _STRATEGY),
    "device-id-strategy": ("device_id_strategy", _STRING),
    "cdi-annotation-prefix": ("cdi_annotation_prefix", _STRING),
    "nvidia-ctk-path": ("nvidia_ctk_path", _STRING),
    "container-driver-root": ("container_driver_root", _STRING),
}

_GFD_FLAGS = {
    "oneshot": ("oneshot", _BOOL),
    "output-file": ("output_file", _STRING),
    "sleep-interval": ("sleep_interval", _DURATION),
    "no-timestamp": ("no_timestamp", _BOOL),
    "machine-type-file": ("machine_type_file", _STRING),
}


@dataclass
class CliContext:
    """Parsed command line values and the names the user set explicitly.

    ``values`` holds the effective value of every flag (defaults included);
    ``explicit`` holds the names given on the command line or in the environment.
    """

    values: dict[str, Any] = field(default_factory=dict)
    explicit: set[str] = field(default_factory=set)

    def is_set(self, name: str) -> bool:
        """Return whether the flag was set explicitly."""
        return name in self.explicit

    def get(self, name: str) -> Any:
        """Return the effective value of the flag, or None if it is unknown."""
        return self.values.get(name)


def _convert(kind: str, value: Any) -> Any:
    if kind == _STRING:
        return "" if value is None else str(value)
    if kind == _BOOL:
        return bool(value) if value is not None else False
    if kind in (_STRINGS, _STRATEGY):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]
    if kind == _DURATION:
        if value is None:
            return Duration(0)
        return duration_from_value(value)
    raise ConfigError(f"unsupported flag type: {kind}")


def _update(target: Any, table: Mapping, name: str, context: CliContext) -> None:
    entry = table.get(name)
    if entry is None:
        return
    attr, kind = entry
    if context.is_set(name) or getattr(target, attr) is None:
        setattr(target, attr, _convert(kind, context.get(name)))


@dataclass
class PluginCommandLineFlags:
    """Flags specific to the device plugin."""

    pass_device_specs: bool | None = None
    device_list_strategy: list[str] | None = None
    device_id_strategy: str | None = None
    cdi_annotation_prefix: str | None = None
    nvidia_ctk_path: str | None = None
    container_driver_root: str | None = None

    def to_json(self) -> dict:
        """Return the flags as a JSON-ready dict."""
        strategy = self.device_list_strategy
        return {
            "passDeviceSpecs": self.pass_device_specs,
            "deviceListStrategy": list(strategy) if strategy is not None else None,
            "deviceIDStrategy": self.device_id_strategy,
            "cdiAnnotationPrefix": self.cdi_annotation_prefix,
            "nvidiaCTKPath": self.nvidia_ctk_path,
            "containerDriverRoot": self.container_driver_root,
        }


@dataclass
class GFDCommandLineFlags:
    """Flags specific to feature discovery."""

    oneshot: bool | None = None
    no_timestamp: bool | None = None
    sleep_interval: Duration | None = None
    output_file: str | None = None
    machine_type_file: str | None = None

    def to_json(self) -> dict:
        """Return the flags as a JSON-ready dict."""
        interval = self.sleep_interval
        return {
            "oneshot": self.oneshot,
            "noTimestamp": self.no_timestamp,
            "sleepInterval": Duration(interval).to_json() if interval is not None else None,
            "outputFile": self.output_file,
            "machineTypeFile": self.machine_type_file,
        }


@dataclass
class Flags:
    """The full set of flags used by the device plugin and feature discovery."""

    mig_strategy: str | None = None
    fail_on_init_error: bool | None = None
    nvidia_driver_root: str | None = None
    gds_enabled: bool | None = None
    mofed_enabled: bool | None = None
    plugin: PluginCommandLineFlags | None = None
    gfd: GFDCommandLineFlags | None = None

    def to_json(self) -> dict:
        """Return the flags as a JSON-ready dict."""
        out: dict = {
            "migStrategy": self.mig_strategy,
            "failOnInitError": self.fail_on_init_error,
        }
        if self.nvidia_driver_root is not None:
            out["nvidiaDriverRoot"] = self.nvidia_driver_root
        out["gdsEnabled"] = self.gds_enabled
        out["mofedEnabled"] = self.mofed_enabled
        if self.plugin is not None:
            out["plugin"] = self.plugin.to_json()
        if self.gfd is not None:
            out["gfd"] = self.gfd.to_json()
        return out

    def update_from_cli_flags(self, context: CliContext, flag_names: Iterable[str]) -> None:
        """Take values for the named flags that are set, or not yet configured."""
        for name in flag_names:
            _update(self, _COMMON_FLAGS, name, context)
            if self.plugin is None:
                self.plugin = PluginCommandLineFlags()
            _update(self.plugin, _PLUGIN_FLAGS, name, context)
            if self.gfd is None:
                self.gfd = GFDCommandLineFlags()
            _update(self.gfd, _GFD_FLAGS, name, context)


def device_list_strategy_from_value(value: object) -> list[str]:
    """Accept a single strategy name or a list of names."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ConfigError(f"invalid deviceListStrategy: {json.dumps(value)}")


def _opt_str(value: Mapping, key: str) -> str | None:
    raw = value.get(key)
    if raw is not None and not isinstance(raw, str):
        raise ConfigError(f"'{key}' must be a string: {raw!r}")
    return raw


def _opt_bool(value: Mapping, key: str) -> bool | None:
    raw = value.get(key)
    if raw is not None and not isinstance(raw, bool):
        raise ConfigError(f"'{key}' must be a boolean: {raw!r}")
    return raw


def _mapping(value: object, what: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise ConfigError(f"{what} must be an object: {value!r}")
    return value


def _plugin_from_value(value: object) -> PluginCommandLineFlags:
    value = _mapping(value, "plugin flags")
    strategy = value.get("deviceListStrategy")
    return PluginCommandLineFlags(
        pass_device_specs=_opt_bool(value, "passDeviceSpecs"),
        device_list_strategy=(
            device_list_strategy_from_value(strategy) if strategy is not None else None
        ),
        device_id_strategy=_opt_str(value, "deviceIDStrategy"),
        cdi_annotation_prefix=_opt_str(value, "cdiAnnotationPrefix"),
        nvidia_ctk_path=_opt_str(value, "nvidiaCTKPath"),
        container_driver_root=_opt_str(value, "containerDriverRoot"),
    )


def _gfd_from_value(value: object) -> GFDCommandLineFlags:
    value = _mapping(value, "gfd flags")
    interval = value.get("sleepInterval")
    return GFDCommandLineFlags(
        oneshot=_opt_bool(value, "oneshot"),
        no_timestamp=_opt_bool(value, "noTimestamp"),
        sleep_interval=duration_from_value(interval) if interval is not None else None,
        output_file=_opt_str(value, "outputFile"),
        machine_type_file=_opt_str(value, "machineTypeFile"),
    )


def flags_from_value(value: object) -> Flags:
    """Build Flags from a decoded JSON or YAML mapping."""
    if value is None:
        return Flags()
    value = _mapping(value, "flags")
    plugin = value.get("plugin")
    gfd = value.get("gfd")
    return Flags(
        mig_strategy=_opt_str(value, "migStrategy"),
        fail_on_init_error=_opt_bool(value, "failOnInitError"),
        nvidia_driver_root=_opt_str(value, "nvidiaDriverRoot"),
        gds_enabled=_opt_bool(value, "gdsEnabled"),
        mofed_enabled=_opt_bool(value, "mofedEnabled"),
        plugin=_plugin_from_value(plugin) if plugin is not None else None,
        gfd=_gfd_from_value(gfd) if gfd is not None else None,
    )


def flags_from_json(text: str) -> Flags:
    """Parse Flags from JSON text."""
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError) as err:
        raise ConfigError(f"invalid JSON: {err}") from err
    if value is None:
        return Flags()
    return flags_from_value(value)