"""Command line entry point of the config manager."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Mapping, Sequence

from gpushare.configmanager import (
    DEFAULT_CONFIG_LABEL,
    DEFAULT_ONESHOT,
    DEFAULT_PROCESS_TO_SIGNAL,
    DEFAULT_SEND_SIGNAL,
    DEFAULT_SIGNAL,
    ManagerFlags,
    SyncableConfig,
    update_config,
    validate_flags,
)
from gpushare.consts import ConfigError
from gpushare.nodewatch import NodeLabelWatcher, load_kube_connection

log = logging.getLogger(__name__)

_BOOL = "bool"
_STRING = "string"
_INT = "int"
_STRINGS = "strings"

# (flag name, attribute, kind, environment variable, usage)
_FLAG_SPECS = (
    ("oneshot", "oneshot", _BOOL, "ONESHOT",
     f"check and update the config only once and then exit (default {DEFAULT_ONESHOT})"),
    ("kubeconfig", "kubeconfig", _STRING, "KUBECONFIG",
     "absolute path to the kubeconfig file"),
    ("node-name", "node_name", _STRING, "NODE_NAME",
     "the name of the node to watch for label changes on"),
    ("node-label", "node_label", _STRING, "NODE_LABEL",
     f"the name of the node label to use for selecting a config (default {DEFAULT_CONFIG_LABEL})"),
    ("config-file-srcdir", "config_file_srcdir", _STRING, "CONFIG_FILE_SRCDIR",
     "the path to the directory containing available device configuration files"),
    ("config-file-dst", "config_file_dst", _STRING, "CONFIG_FILE_DST",
     "the path to destination device configuration file"),
    ("default-config", "default_config", _STRING, "DEFAULT_CONFIG",
     "the default config to use if no label is set"),
    ("fallback-strategies", "fallback_strategies", _STRINGS, "FALLBACK_STRATEGIES",
     "ordered list of fallback strategies to use to set a default config when none is provided"),
    ("send-signal", "send_signal", _BOOL, "SEND_SIGNAL",
     f"send a signal to <process-to-signal> once a config change is made (default {DEFAULT_SEND_SIGNAL})"),
    ("signal", "signal", _INT, "SIGNAL",
     f"the signal to sent to <process-to-signal> if <send-signal> is set (default {DEFAULT_SIGNAL})"),
    ("process-to-signal", "process_to_signal", _STRING, "PROCESS_TO_SIGNAL",
     f"the name of the process to signal if <send-signal> is set (default {DEFAULT_PROCESS_TO_SIGNAL})"),
)

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _to_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean value: {text!r}")


_to_bool.__name__ = "bool"


def _split(values: Sequence[str]) -> list[str]:
    return [part.strip() for value in values for part in value.split(",")]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser; unset options are left as None."""
    parser = argparse.ArgumentParser(
        prog="config-manager",
        description="Select a device plugin config from a node label.",
    )
    for name, attr, kind, env, usage in _FLAG_SPECS:
        help_text = f"{usage} [${env}]"
        if kind == _BOOL:
            parser.add_argument(
                f"--{name}", dest=attr, nargs="?", const=True, type=_to_bool,
                default=None, help=help_text,
            )
        elif kind == _INT:
            parser.add_argument(
                f"--{name}", dest=attr, type=lambda text: int(text, 0),
                default=None, help=help_text,
            )
        elif kind == _STRINGS:
            parser.add_argument(
                f"--{name}", dest=attr, action="append", default=None, help=help_text
            )
        else:
            parser.add_argument(f"--{name}", dest=attr, default=None, help=help_text)
    return parser


def _from_env(kind: str, env: str, text: str) -> object:
    try:
        if kind == _BOOL:
            return _to_bool(text)
        if kind == _INT:
            return int(text, 0)
    except ValueError as err:
        raise ConfigError(f"could not parse {text!r} as {kind} value from env {env}") from err
    if kind == _STRINGS:
        return _split([text])
    return text


def parse_flags(
    argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None
) -> ManagerFlags:
    """Build settings from arguments, then environment variables, then defaults."""
    environ = os.environ if environ is None else environ
    args = build_parser().parse_args(argv)
    flags = ManagerFlags()
    for _name, attr, kind, env, _usage in _FLAG_SPECS:
        value = getattr(args, attr)
        if value is None:
            if env in environ:
                value = _from_env(kind, env, environ[env])
        elif kind == _STRINGS:
            value = _split(value)
        if value is not None:
            setattr(flags, attr, value)
    return flags


def start(flags: ManagerFlags) -> None:
    """Watch the node label and apply each new config until told to stop."""
    try:
        connection = load_kube_connection(flags.kubeconfig)
    except ConfigError as err:
        raise ConfigError(f"error building kubernetes clientcmd config: {err}") from err

    config = SyncableConfig()
    watcher = NodeLabelWatcher(connection, flags.node_name, flags.node_label, config)
    watcher.start()
    try:
        while True:
            log.info("Waiting for change to '%s' label", flags.node_label)
            value = config.get()
            log.info("Label change detected: %s=%s", flags.node_label, value)
            update_config(value, flags)
            if flags.oneshot:
                return
    finally:
        watcher.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the config manager; return the process exit status."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    try:
        flags = parse_flags(argv)
        validate_flags(flags)
        start(flags)
    except KeyboardInterrupt:
        return 1
    except Exception as err:  # every failure is reported and ends the program
        log.error("%s", err)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())