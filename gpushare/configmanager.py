"""Selecting a device plugin configuration file from a node label value."""

from __future__ import annotations

import enum
import logging
import os
import signal
import threading
from dataclasses import dataclass, field

import psutil

from gpushare.consts import ConfigError

log = logging.getLogger(__name__)

RESOURCE_NODES = "nodes"

DEFAULT_ONESHOT = False
DEFAULT_SEND_SIGNAL = True
DEFAULT_SIGNAL = int(signal.SIGHUP)
DEFAULT_PROCESS_TO_SIGNAL = "nvidia-device-plugin"
DEFAULT_CONFIG_LABEL = "nvidia.com/device-plugin.config"

NAMED_CONFIG_FALLBACK = "default"
EMPTY_CONFIG_SOURCE = "/dev/null"


class FallbackStrategy(str, enum.Enum):
    """Ways to choose a config when none is selected and no default is set."""

    NAMED = "named"
    SINGLE = "single"
    EMPTY = "empty"

    def __str__(self) -> str:
        return self.value


@dataclass
class ManagerFlags:
    """Settings of the config manager."""

    oneshot: bool = DEFAULT_ONESHOT
    kubeconfig: str = ""
    node_name: str = ""
    node_label: str = DEFAULT_CONFIG_LABEL
    config_file_srcdir: str = ""
    config_file_dst: str = ""
    default_config: str = ""
    fallback_strategies: list[str] = field(default_factory=list)
    send_signal: bool = DEFAULT_SEND_SIGNAL
    signal: int = DEFAULT_SIGNAL
    process_to_signal: str = DEFAULT_PROCESS_TO_SIGNAL


def validate_flags(flags: ManagerFlags) -> None:
    """Raise ConfigError if a required setting is empty."""
    required = (
        ("node-name", flags.node_name),
        ("node-label", flags.node_label),
        ("config-file-srcdir", flags.config_file_srcdir),
        ("config-file-dst", flags.config_file_dst),
    )
    for name, value in required:
        if not value:
            raise ConfigError(f"invalid <{name}>: must not be empty string")


class SyncableConfig:
    """A config value whose readers wait for the next change.

    A call to get() blocks until set() is called, unless a value has been set
    that was not yet read. Several set() calls do not queue.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._current = ""
        self._last_read = ""

    def set(self, value: str) -> None:
        """Store value and wake every waiting reader."""
        with self._cond:
            self._current = value
            self._cond.notify_all()

    def get(self, timeout: float | None = None) -> str:
        """Return the value, waiting for a set() if it was already read.

        Raises TimeoutError if timeout seconds pass without a set().
        """
        with self._cond:
            if self._last_read == self._current:
                if not self._cond.wait(timeout):
                    raise TimeoutError("no configuration change within timeout")
            self._last_read = self._current
            return self._last_read


def get_config_file_names(srcdir: str) -> set[str]:
    """Return the names of the config files in srcdir.

    Directories and the special '..'-prefixed entries of mounted ConfigMaps
    are left out.
    """
    try:
        with os.scandir(srcdir) as entries:
            return {
                entry.name
                for entry in entries
                if not entry.is_dir(follow_symlinks=False)
                and not entry.name.startswith("..")
            }
    except OSError as err:
        raise OSError(f"error reading directory: {err}") from err


def file_exists(filename: str) -> bool:
    """Return whether filename exists and is not a directory."""
    try:
        return not os.path.isdir(filename) if os.stat(filename) else False
    except FileNotFoundError:
        return False


def update_config_name(config: str, flags: ManagerFlags) -> str:
    """Choose the config name to use; an empty name means the empty config."""
    try:
        files = get_config_file_names(flags.config_file_srcdir)
    except OSError as err:
        raise ConfigError(f"error getting list of configuration files: {err}") from err

    if not files:
        raise ConfigError("no configuration files available")

    if config:
        if config not in files:
            raise ConfigError(f"specified config {config} does not exist")
        return config

    if flags.default_config:
        log.info("No value set. Selecting default name: %s", flags.default_config)
        if flags.default_config not in files:
            raise ConfigError(f"specified config {flags.default_config} does not exist")
        return flags.default_config

    log.info(
        "No value set and no default set. Attempting fallback strategies: %s",
        flags.fallback_strategies,
    )
    for fallback in flags.fallback_strategies:
        try:
            strategy = FallbackStrategy(fallback)
        except ValueError:
            raise ConfigError(f"unknown fallback strategy: {fallback}") from None

        if strategy is FallbackStrategy.NAMED:
            log.info("Attempting to find config named: %s", NAMED_CONFIG_FALLBACK)
            if NAMED_CONFIG_FALLBACK in files:
                return NAMED_CONFIG_FALLBACK
            log.info("No configuration named '%s' was found", NAMED_CONFIG_FALLBACK)
        elif strategy is FallbackStrategy.SINGLE:
            log.info("Attempting to see if only a single config is available...")
            if len(files) == 1:
                return next(iter(files))
            log.info("More than one configuration was found: %s", sorted(files))
        else:
            log.info("Falling back to an empty configuration")
            return ""

    raise ConfigError(
        "no config was set, no default was provided, and all fallbacks failed"
    )


def update_symlink(config: str, flags: ManagerFlags) -> bool:
    """Point the destination at the chosen config; return whether it changed."""
    src = os.path.join(flags.config_file_srcdir, config) if config else EMPTY_CONFIG_SOURCE
    dst = flags.config_file_dst

    try:
        exists = file_exists(dst)
    except OSError as err:
        raise OSError(f"error checking if file '{dst}' exists: {err}") from err

    if exists:
        try:
            src_realpath = os.path.realpath(src, strict=True)
        except OSError as err:
            raise OSError(f"error evaluating realpath of '{src}': {err}") from err
        try:
            dst_realpath = os.path.realpath(dst, strict=True)
        except OSError as err:
            raise OSError(f"error evaluating realpath of '{dst}': {err}") from err

        if src_realpath == dst_realpath:
            return False

        try:
            os.remove(dst)
        except OSError as err:
            raise OSError(f"error removing existing config: {err}") from err

    try:
        os.symlink(src, dst)
    except OSError as err:
        raise OSError(f"error creating symlink: {err}") from err
    return True


def find_pid_to_signal(process_name: str) -> int:
    """Return the pid of a process whose first command line word is process_name."""
    try:
        for proc in psutil.process_iter(["pid", "cmdline"]):
            cmdline = proc.info.get("cmdline")
            if cmdline and cmdline[0] == process_name:
                return proc.info["pid"]
    except psutil.Error as err:
        raise OSError(f"error getting list of all procs: {err}") from err
    raise ProcessLookupError("no process found")


def _signal_name(number: int) -> str:
    try:
        return signal.Signals(number).name
    except ValueError:
        return f"signal {number}"


def signal_process(flags: ManagerFlags) -> None:
    """Send the configured signal to the configured process."""
    try:
        pid = find_pid_to_signal(flags.process_to_signal)
    except ProcessLookupError as err:
        raise ProcessLookupError(f"error finding pid: {err}") from err
    except OSError as err:
        raise OSError(f"error finding pid: {err}") from err
    try:
        os.kill(pid, flags.signal)
    except OSError as err:
        raise OSError(f"error sending signal: {err}") from err


def update_config(config: str, flags: ManagerFlags) -> bool:
    """Apply the config named by a label value; return whether anything changed."""
    config = update_config_name(config, flags)

    if config:
        log.info("Updating to config: %s", config)
    else:
        log.info("Updating to empty config")

    if not update_symlink(config, flags):
        log.info("Already configured. Skipping update...")
        return False

    if config:
        log.info("Successfully updated to config: %s", config)
    else:
        log.info("Successfully updated to empty config")

    if flags.send_signal:
        log.info(
            "Sending signal '%s' to '%s'",
            _signal_name(flags.signal),
            flags.process_to_signal,
        )
        signal_process(flags)
        log.info("Successfully sent signal")

    return True