import json

import pytest

from gpushare.consts import ConfigError
from gpushare.duration import Duration
from gpushare.flags import (
    CliContext,
    Flags,
    GFDCommandLineFlags,
    PluginCommandLineFlags,
    device_list_strategy_from_value,
    flags_from_json,
    flags_from_value,
)

SECOND = 1_000_000_000


@pytest.mark.parametrize(
    "text, expected",
    [
        ("{}", Flags()),
        ('{"gfd": {}}', Flags(gfd=GFDCommandLineFlags())),
        (
            '{"gfd": {"sleepInterval": 0}}',
            Flags(gfd=GFDCommandLineFlags(sleep_interval=Duration(0))),
        ),
        (
            '{"gfd": {"sleepInterval": "0s"}}',
            Flags(gfd=GFDCommandLineFlags(sleep_interval=Duration(0))),
        ),
        (
            '{"gfd": {"sleepInterval": 5}}',
            Flags(gfd=GFDCommandLineFlags(sleep_interval=Duration(5))),
        ),
        (
            '{"gfd": {"sleepInterval": "5s"}}',
            Flags(gfd=GFDCommandLineFlags(sleep_interval=Duration(5 * SECOND))),
        ),
        (
            '{"plugin": {"deviceListStrategy": "envvar"}}',
            Flags(plugin=PluginCommandLineFlags(device_list_strategy=["envvar"])),
        ),
        (
            '{"plugin": {"deviceListStrategy": ["envvar", "cdi-annotations"]}}',
            Flags(
                plugin=PluginCommandLineFlags(
                    device_list_strategy=["envvar", "cdi-annotations"]
                )
            ),
        ),
    ],
)
def test_unmarshal_flags(text, expected):
    assert flags_from_json(text) == expected


def test_unmarshal_empty_input_fails():
    with pytest.raises(ConfigError):
        flags_from_json("")


@pytest.mark.parametrize(
    "flags, expected",
    [
        (
            Flags(),
            {
                "migStrategy": None,
                "failOnInitError": None,
                "gdsEnabled": None,
                "mofedEnabled": None,
            },
        ),
        (
            Flags(gfd=GFDCommandLineFlags(sleep_interval=Duration(0))),
            {
                "migStrategy": None,
                "failOnInitError": None,
                "gdsEnabled": None,
                "mofedEnabled": None,
                "gfd": {
                    "oneshot": None,
                    "noTimestamp": None,
                    "outputFile": None,
                    "sleepInterval": "0s",
                    "machineTypeFile": None,
                },
            },
        ),
        (
            Flags(gfd=GFDCommandLineFlags(sleep_interval=Duration(5))),
            {
                "migStrategy": None,
                "failOnInitError": None,
                "gdsEnabled": None,
                "mofedEnabled": None,
                "gfd": {
                    "oneshot": None,
                    "noTimestamp": None,
                    "outputFile": None,
                    "sleepInterval": "5ns",
                    "machineTypeFile": None,
                },
            },
        ),
    ],
)
def test_marshal_flags(flags, expected):
    assert json.loads(json.dumps(flags.to_json())) == expected


def test_marshal_round_trip_with_plugin():
    flags = Flags(
        mig_strategy="single",
        nvidia_driver_root="/run/nvidia/driver",
        plugin=PluginCommandLineFlags(
            pass_device_specs=True, device_list_strategy=["envvar", "volume-mounts"]
        ),
    )
    assert flags_from_json(json.dumps(flags.to_json())) == flags


def test_device_list_strategy_from_value():
    assert device_list_strategy_from_value("envvar") == ["envvar"]
    assert device_list_strategy_from_value(["a", "b"]) == ["a", "b"]
    with pytest.raises(ConfigError):
        device_list_strategy_from_value(5)
    with pytest.raises(ConfigError):
        device_list_strategy_from_value(["envvar", 3])


def test_flags_from_value_rejects_wrong_types():
    with pytest.raises(ConfigError):
        flags_from_value({"migStrategy": 3})
    with pytest.raises(ConfigError):
        flags_from_value({"failOnInitError": "yes"})
    with pytest.raises(ConfigError):
        flags_from_value({"gfd": {"sleepInterval": "5 parsecs"}})
    with pytest.raises(ConfigError):
        flags_from_value([])


def test_cli_context_lookup():
    context = CliContext({"oneshot": True}, {"oneshot"})
    assert context.is_set("oneshot") is True
    assert context.is_set("no-timestamp") is False
    assert context.get("oneshot") is True
    assert context.get("missing") is None


def test_update_fills_unset_values_from_defaults():
    context = CliContext(
        {"mig-strategy": "none", "device-list-strategy": ["envvar"], "sleep-interval": 60 * SECOND}
    )
    flags = Flags()
    flags.update_from_cli_flags(context, ["mig-strategy", "device-list-strategy", "sleep-interval"])
    assert flags.mig_strategy == "none"
    assert flags.plugin.device_list_strategy == ["envvar"]
    assert flags.gfd.sleep_interval == Duration(60 * SECOND)


def test_update_keeps_configured_values_unless_set():
    context = CliContext({"mig-strategy": "none", "oneshot": False})
    flags = Flags(mig_strategy="mixed", gfd=GFDCommandLineFlags(oneshot=True))
    flags.update_from_cli_flags(context, ["mig-strategy", "oneshot"])
    assert flags.mig_strategy == "mixed"
    assert flags.gfd.oneshot is True


def test_update_explicit_values_override_configured():
    context = CliContext({"mig-strategy": "single", "oneshot": False}, {"mig-strategy", "oneshot"})
    flags = Flags(mig_strategy="mixed", gfd=GFDCommandLineFlags(oneshot=True))
    flags.update_from_cli_flags(context, ["mig-strategy", "oneshot"])
    assert flags.mig_strategy == "single"
    assert flags.gfd.oneshot is False


def test_update_creates_sections_for_any_flag():
    flags = Flags()
    flags.update_from_cli_flags(CliContext({"mig-strategy": "none"}), ["mig-strategy"])
    assert flags.plugin == PluginCommandLineFlags()
    assert flags.gfd == GFDCommandLineFlags()


def test_update_with_no_names_changes_nothing():
    flags = Flags()
    flags.update_from_cli_flags(CliContext({"mig-strategy": "none"}), [])
    assert flags == Flags()