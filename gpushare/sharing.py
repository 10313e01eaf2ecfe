"""The supported device sharing strategies."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field

from gpushare.consts import ConfigError
from gpushare.replicas import ReplicatedResources, replicated_resources_from_value


class SharingStrategy(str, enum.Enum):
    """The sharing strategy in effect."""

    MPS = "mps"
    NONE = "none"
    TIME_SLICING = "time-slicing"

    def __str__(self) -> str:
        return self.value


@dataclass
class Sharing:
    """Time-slicing and MPS replication settings."""

    time_slicing: ReplicatedResources = field(default_factory=ReplicatedResources)
    mps: ReplicatedResources | None = None

    def sharing_strategy(self) -> SharingStrategy:
        """Return the active sharing strategy."""
        if self.mps is not None and self.mps.is_replicated():
            return SharingStrategy.MPS
        if self.time_slicing.is_replicated():
            return SharingStrategy.TIME_SLICING
        return SharingStrategy.NONE

    def replicated_resources(self) -> ReplicatedResources:
        """Return the resources of the active sharing strategy."""
        if self.mps is not None:
            return self.mps
        return self.time_slicing

    def to_json(self) -> dict:
        """Return the sharing settings as a JSON-ready dict."""
        out: dict = {"timeSlicing": self.time_slicing.to_json()}
        if self.mps is not None:
            out["mps"] = self.mps.to_json()
        return out


def sharing_from_value(value: object) -> Sharing:
    """Build Sharing from a decoded mapping with 'timeSlicing' and 'mps'."""
    if value is None:
        return Sharing()
    if not isinstance(value, Mapping):
        raise ConfigError(f"sharing must be an object: {value!r}")
    sharing = Sharing()
    if "timeSlicing" in value:
        sharing.time_slicing = replicated_resources_from_value(value["timeSlicing"])
    mps = value.get("mps")
    if mps is not None:
        sharing.mps = replicated_resources_from_value(mps)
    return sharing