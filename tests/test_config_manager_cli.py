import signal

import pytest

from gpushare.config_manager_cli import build_parser, main, parse_flags, start
from gpushare.configmanager import (
    DEFAULT_CONFIG_LABEL,
    DEFAULT_PROCESS_TO_SIGNAL,
    ManagerFlags,
)
from gpushare.consts import ConfigError

ENV_NAMES = (
    "ONESHOT", "KUBECONFIG", "NODE_NAME", "NODE_LABEL", "CONFIG_FILE_SRCDIR",
    "CONFIG_FILE_DST", "DEFAULT_CONFIG", "FALLBACK_STRATEGIES", "SEND_SIGNAL",
    "SIGNAL", "PROCESS_TO_SIGNAL",
)


def test_defaults_without_environment():
    flags = parse_flags([], {})
    assert flags == ManagerFlags()
    assert flags.node_label == DEFAULT_CONFIG_LABEL
    assert flags.signal == int(signal.SIGHUP)
    assert flags.process_to_signal == DEFAULT_PROCESS_TO_SIGNAL
    assert flags.send_signal is True
    assert flags.oneshot is False
    assert flags.fallback_strategies == []


def test_environment_values():
    environ = {
        "NODE_NAME": "node-1",
        "ONESHOT": "true",
        "SEND_SIGNAL": "0",
        "FALLBACK_STRATEGIES": "named, single",
        "SIGNAL": "15",
    }
    flags = parse_flags([], environ)
    assert flags.node_name == "node-1"
    assert flags.oneshot is True
    assert flags.send_signal is False
    assert flags.fallback_strategies == ["named", "single"]
    assert flags.signal == 15


def test_command_line_wins_over_environment():
    flags = parse_flags(["--node-name", "cli-node", "--oneshot=false"],
                        {"NODE_NAME": "env-node", "ONESHOT": "true"})
    assert flags.node_name == "cli-node"
    assert flags.oneshot is False


def test_bare_bool_flag_sets_true():
    flags = parse_flags(["--oneshot"], {})
    assert flags.oneshot is True


def test_repeated_and_comma_separated_strategies():
    flags = parse_flags(
        ["--fallback-strategies", "named,single", "--fallback-strategies", "empty"], {}
    )
    assert flags.fallback_strategies == ["named", "single", "empty"]


def test_invalid_environment_bool():
    with pytest.raises(ConfigError):
        parse_flags([], {"ONESHOT": "maybe"})


def test_invalid_environment_int():
    with pytest.raises(ConfigError):
        parse_flags([], {"SIGNAL": "hup"})


def test_build_parser_leaves_unset_options_none():
    args = build_parser().parse_args(["--node-name", "x"])
    assert args.node_name == "x"
    assert args.node_label is None
    assert args.fallback_strategies is None


def test_start_fails_on_missing_kubeconfig(tmp_path):
    flags = ManagerFlags(
        kubeconfig=str(tmp_path / "absent"),
        node_name="node-1",
        config_file_srcdir=str(tmp_path),
        config_file_dst=str(tmp_path / "config.yaml"),
    )
    with pytest.raises(ConfigError, match="^error building kubernetes clientcmd config"):
        start(flags)


def test_main_reports_missing_node_name(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    status = main(["--config-file-srcdir", str(tmp_path),
                   "--config-file-dst", str(tmp_path / "dst")])
    assert status == 1


def test_main_reports_bad_kubeconfig(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    status = main([
        "--node-name", "node-1",
        "--config-file-srcdir", str(tmp_path),
        "--config-file-dst", str(tmp_path / "dst"),
        "--kubeconfig", str(tmp_path / "absent"),
    ])
    assert status == 1
    assert not (tmp_path / "dst").exists()