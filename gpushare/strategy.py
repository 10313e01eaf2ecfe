"""The set of strategies used to pass the device list to the container runtime."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from gpushare.consts import DEVICE_LIST_STRATEGIES, ConfigError


class DeviceListStrategies(Mapping[str, bool]):
    """Which device list strategies are enabled, keyed by strategy name."""

    def __init__(self, enabled: Iterable[str] = ()) -> None:
        self._flags = {name: False for name in DEVICE_LIST_STRATEGIES}
        for name in enabled:
            if name not in self._flags:
                raise ConfigError(f"invalid strategy: {name}")
            self._flags[name] = True

    def __getitem__(self, key: str) -> bool:
        return self._flags[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        return f"DeviceListStrategies({self._flags!r})"

    def includes(self, strategy: str) -> bool:
        """Return whether the given strategy is enabled."""
        return self._flags.get(strategy, False)

    def is_cdi_enabled(self) -> bool:
        """Return whether any enabled strategy requires CDI."""
        return any(on for name, on in self._flags.items() if name.startswith("cdi-"))


def new_device_list_strategies(strategies: Iterable[str] | None) -> DeviceListStrategies:
    """Build the strategy set, raising ConfigError for unknown names."""
    return DeviceListStrategies(strategies or ())