"""Options for replicating (sharing) devices among several resource slots."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from gpushare.consts import ConfigError
from gpushare.resources import ResourceName, resource_name_from_value

_DIGITS = re.compile(r"[0-9]+")
_HEX = frozenset("0123456789abcdefABCDEF")
_UINT_LIMIT = 2**64
_INT_LIMIT = 2**63


class WarningLogger(Protocol):
    """Anything that accepts warning messages, such as a logging.Logger."""

    def warning(self, msg: str, *args: Any) -> Any: ...


def _is_uint(text: str) -> bool:
    return _DIGITS.fullmatch(text) is not None and int(text) < _UINT_LIMIT


def _is_hyphenated_uuid(text: str) -> bool:
    if len(text) != 36:
        return False
    for pos, char in enumerate(text):
        if pos in (8, 13, 18, 23):
            if char != "-":
                return False
        elif char not in _HEX:
            return False
    return True


def _is_uuid_text(text: str) -> bool:
    """Accept the same spellings of a UUID as the reference parser."""
    if len(text) == 36:
        return _is_hyphenated_uuid(text)
    if len(text) == 45:
        return text[:9].lower() == "urn:uuid:" and _is_hyphenated_uuid(text[9:])
    if len(text) == 38:
        return text[0] == "{" and text[-1] == "}" and _is_hyphenated_uuid(text[1:-1])
    if len(text) == 32:
        return all(char in _HEX for char in text)
    return False


class ReplicatedDeviceRef(str):
    """A full GPU index, a MIG index, or a GPU or MIG UUID."""

    def is_gpu_index(self) -> bool:
        """Return whether this is a full GPU index such as "0"."""
        return _is_uint(self)

    def is_mig_index(self) -> bool:
        """Return whether this is a MIG index such as "0:1"."""
        parts = self.split(":", 1)
        return len(parts) == 2 and all(_is_uint(part) for part in parts)

    def is_uuid(self) -> bool:
        """Return whether this is a GPU or MIG UUID."""
        return self.is_gpu_uuid() or self.is_mig_uuid()

    def is_gpu_uuid(self) -> bool:
        """Return whether this has the form GPU-<uuid>."""
        return self.startswith("GPU-") and _is_uuid_text(self[len("GPU-"):])

    def is_mig_uuid(self) -> bool:
        """Return whether this has the form MIG-<uuid> or MIG-GPU-<uuid>/<gi>/<ci>."""
        if not self.startswith("MIG-"):
            return False
        suffix = self[len("MIG-"):]
        if _is_uuid_text(suffix):
            return True
        parts = suffix.split("/", 2)
        if len(parts) != 3:
            return False
        if not ReplicatedDeviceRef(parts[0]).is_gpu_uuid():
            return False
        return all(_is_uint(part) for part in parts[1:])


@dataclass
class ReplicatedDevices:
    """The devices to replicate; only one of the three fields is meant to be set."""

    all_devices: bool = False
    count: int = 0
    refs: list[ReplicatedDeviceRef] | None = None

    def to_json(self) -> Any:
        """Return "all", a count, or a list of device references."""
        if self.all_devices:
            return "all"
        if self.count > 0:
            return self.count
        if self.refs is not None:
            return [str(ref) for ref in self.refs]
        raise ConfigError(f"unmarshallable ReplicatedDevices struct: {self!r}")


def _is_json_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as err:
        raise ConfigError(f"invalid JSON: {err}") from err


def replicated_devices_from_value(value: object) -> ReplicatedDevices:
    """Build ReplicatedDevices from "all", a positive count or a list of refs."""
    if isinstance(value, str):
        if value != "all":
            raise ConfigError(
                f"devices set as '{value}' but the only valid string input is 'all'"
            )
        return ReplicatedDevices(all_devices=True)

    if _is_json_int(value):
        if value <= 0:
            raise ConfigError(
                f"devices set as '{value}' but a count of devices must be > 0"
            )
        if value >= _INT_LIMIT:
            raise ConfigError(f"unrecognized type for devices spec: {value}")
        return ReplicatedDevices(count=value)

    if isinstance(value, list):
        refs = []
        for item in value:
            if _is_json_int(item) and 0 <= item < _UINT_LIMIT:
                refs.append(ReplicatedDeviceRef(str(item)))
                continue
            if isinstance(item, str):
                ref = ReplicatedDeviceRef(item)
                if ref.is_gpu_index() or ref.is_mig_index() or ref.is_uuid():
                    refs.append(ref)
                    continue
            raise ConfigError(
                f"unsupported type for device in devices list: {item!r}, "
                f"{type(item).__name__}"
            )
        return ReplicatedDevices(refs=refs)

    raise ConfigError(f"unrecognized type for devices spec: {value!r}")


def replicated_devices_from_json(text: str) -> ReplicatedDevices:
    """Parse ReplicatedDevices from JSON text."""
    return replicated_devices_from_value(_loads(text))


@dataclass
class ReplicatedResource:
    """A resource to be replicated a number of times."""

    name: ResourceName
    replicas: int = 0
    rename: ResourceName = ResourceName("")
    devices: ReplicatedDevices = field(default_factory=ReplicatedDevices)

    def to_json(self) -> dict:
        """Return the resource as a JSON-ready dict."""
        out: dict = {"name": str(self.name)}
        if self.rename:
            out["rename"] = str(self.rename)
        out["devices"] = self.devices.to_json()
        out["replicas"] = self.replicas
        return out


def replicated_resource_from_value(value: object) -> ReplicatedResource:
    """Build a ReplicatedResource from a decoded mapping."""
    if not isinstance(value, Mapping):
        raise ConfigError(f"replicated resource must be an object: {value!r}")
    if "name" not in value:
        raise ConfigError("no resource name specified")
    name = resource_name_from_value(value["name"])
    devices = replicated_devices_from_value(value.get("devices", "all"))
    if "replicas" not in value:
        raise ConfigError("no replicas specified")
    replicas = value["replicas"]
    if not _is_json_int(replicas):
        raise ConfigError(f"number of replicas must be an integer: {replicas!r}")
    if replicas < 2:
        raise ConfigError("number of replicas must be >= 2")
    rename = ResourceName("")
    if "rename" in value:
        rename = resource_name_from_value(value["rename"])
    return ReplicatedResource(name=name, replicas=replicas, rename=rename, devices=devices)


def replicated_resource_from_json(text: str) -> ReplicatedResource:
    """Parse a ReplicatedResource from JSON text."""
    return replicated_resource_from_value(_loads(text))


@dataclass
class ReplicatedResources:
    """Generic options for replicating devices."""

    rename_by_default: bool = False
    fail_requests_greater_than_one: bool = False
    resources: list[ReplicatedResource] = field(default_factory=list)

    def is_replicated(self) -> bool:
        """Return whether any resource has more than one replica."""
        return any(resource.replicas > 1 for resource in self.resources)

    def disable_resource_renaming(self, logger: WarningLogger, name: str) -> None:
        """Reset renames and device selections, warning about what was ignored."""
        sets_non_default_rename = False
        sets_devices = False
        for resource in self.resources:
            default_rename = resource.name.default_shared_rename()
            if not self.rename_by_default and resource.rename:
                sets_non_default_rename = True
                resource.rename = ResourceName("")
            if self.rename_by_default and resource.rename != default_rename:
                sets_non_default_rename = True
                resource.rename = default_rename
            if not resource.devices.all_devices:
                sets_devices = True
                resource.devices = ReplicatedDevices(all_devices=True)
        if sets_non_default_rename:
            logger.warning(
                f"Setting the 'rename' field in sharing.{name}.resources is not yet "
                "supported in the config. Ignoring..."
            )
        if sets_devices:
            logger.warning(
                f"Customizing the 'devices' field in sharing.{name}.resources is not "
                "yet supported in the config. Ignoring..."
            )

    def to_json(self) -> dict:
        """Return the options as a JSON-ready dict."""
        out: dict = {}
        if self.rename_by_default:
            out["renameByDefault"] = True
        if self.fail_requests_greater_than_one:
            out["failRequestsGreaterThanOne"] = True
        if self.resources:
            out["resources"] = [resource.to_json() for resource in self.resources]
        return out


def _bool_field(value: Mapping, key: str) -> bool:
    raw = value.get(key)
    if raw is None:
        return False
    if not isinstance(raw, bool):
        raise ConfigError(f"'{key}' must be a boolean: {raw!r}")
    return raw


def replicated_resources_from_value(value: object) -> ReplicatedResources:
    """Build ReplicatedResources from a decoded mapping."""
    if not isinstance(value, Mapping):
        raise ConfigError(f"replicated resources must be an object: {value!r}")
    rename_by_default = _bool_field(value, "renameByDefault")
    fail_greater = _bool_field(value, "failRequestsGreaterThanOne")
    if "resources" not in value:
        raise ConfigError("no resources specified")
    raw = value["resources"]
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise ConfigError(f"'resources' must be a list: {raw!r}")
    resources = [replicated_resource_from_value(item) for item in raw]
    if not resources:
        raise ConfigError("no resources specified")
    if rename_by_default:
        for resource in resources:
            if not resource.rename:
                resource.rename = resource.name.default_shared_rename()
    return ReplicatedResources(
        rename_by_default=rename_by_default,
        fail_requests_greater_than_one=fail_greater,
        resources=resources,
    )


def replicated_resources_from_json(text: str) -> ReplicatedResources:
    """Parse ReplicatedResources from JSON text."""
    return replicated_resources_from_value(_loads(text))