"""Resource names, name patterns and the lists of GPU and MIG resources."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from gpushare.consts import (
    DEFAULT_SHARED_RESOURCE_NAME_SUFFIX,
    MAX_RESOURCE_NAME_LENGTH,
    RESOURCE_NAME_PREFIX,
    ConfigError,
)

_DNS1123_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN = _DNS1123_LABEL + r"(\." + _DNS1123_LABEL + r")*"
_DNS1123_SUBDOMAIN_RE = re.compile(f"^{_DNS1123_SUBDOMAIN}$")
_DNS1123_SUBDOMAIN_MAX_LENGTH = 253


def dns_subdomain_errors(name: str) -> list[str]:
    """Return why name is not a lowercase RFC 1123 subdomain; empty if it is."""
    errors = []
    if len(name) > _DNS1123_SUBDOMAIN_MAX_LENGTH:
        errors.append(f"must be no more than {_DNS1123_SUBDOMAIN_MAX_LENGTH} characters")
    if not _DNS1123_SUBDOMAIN_RE.match(name):
        errors.append(
            "a lowercase RFC 1123 subdomain must consist of lower case alphanumeric "
            "characters, '-' or '.', and must start and end with an alphanumeric "
            "character (e.g. 'example.com', regex used for validation is "
            f"'{_DNS1123_SUBDOMAIN}')"
        )
    return errors


class ResourceName(str):
    """A fully qualified resource name such as nvidia.com/gpu."""

    def split_prefix(self) -> tuple[str, str]:
        """Split the name into its prefix and the part after the first '/'."""
        prefix, sep, name = self.partition("/")
        if not sep:
            return "", str(self)
        return prefix, name

    def default_shared_rename(self) -> ResourceName:
        """Return the name to use when this resource is shared."""
        return ResourceName(self + DEFAULT_SHARED_RESOURCE_NAME_SUFFIX)


class ResourcePattern(str):
    """A wildcard pattern matched against device names."""

    def matches(self, s: str) -> bool:
        """Return whether s contains a match for the pattern."""
        return re.search(wildcard_to_regexp(self), s) is not None


def wildcard_to_regexp(pattern: str) -> str:
    """Convert a '*' wildcard pattern to a regular expression."""
    return ".*".join(re.escape(literal) for literal in pattern.split("*"))


def new_resource_name(n: str) -> ResourceName:
    """Build a validated resource name, adding the standard prefix if missing."""
    if not n.startswith(RESOURCE_NAME_PREFIX + "/"):
        n = f"{RESOURCE_NAME_PREFIX}/{n}"
    if len(n) > MAX_RESOURCE_NAME_LENGTH:
        raise ConfigError(
            f"fully-qualified resource name must be {MAX_RESOURCE_NAME_LENGTH} "
            f"characters or less: {n}"
        )
    _, name = ResourceName(n).split_prefix()
    invalid = dns_subdomain_errors(name)
    if invalid:
        raise ConfigError(f"incorrect format for resource name '{n}': {invalid}")
    return ResourceName(n)


@dataclass
class Resource:
    """A device name pattern paired with the resource name it maps to."""

    pattern: ResourcePattern
    name: ResourceName

    def __post_init__(self) -> None:
        self.pattern = ResourcePattern(self.pattern)
        self.name = ResourceName(self.name)

    def to_json(self) -> dict:
        """Return the resource as a JSON-ready dict."""
        return {"pattern": str(self.pattern), "name": str(self.name)}


def new_resource(pattern: str, name: str) -> Resource:
    """Build a resource, validating its name."""
    try:
        resource_name = new_resource_name(name)
    except ConfigError as err:
        raise ConfigError(f"invalid resource name: {err}") from err
    return Resource(ResourcePattern(pattern), resource_name)


@dataclass
class Resources:
    """Full-GPU and MIG resources, listed separately."""

    gpus: list[Resource] = field(default_factory=list)
    migs: list[Resource] = field(default_factory=list)

    def add_gpu_resource(self, pattern: str, name: str) -> None:
        """Add a full-GPU resource."""
        self.gpus.append(new_resource(pattern, name))

    def add_mig_resource(self, pattern: str, name: str) -> None:
        """Add a MIG resource."""
        self.migs.append(new_resource(pattern, name))

    def to_json(self) -> dict:
        """Return the resources as a JSON-ready dict."""
        out: dict = {"gpus": [r.to_json() for r in self.gpus] if self.gpus else None}
        if self.migs:
            out["mig"] = [r.to_json() for r in self.migs]
        return out


def resource_name_from_value(value: object) -> ResourceName:
    """Build a validated resource name from a decoded JSON or YAML value."""
    if not isinstance(value, str):
        raise ConfigError(f"resource name must be a string: {value!r}")
    return new_resource_name(value)


def resource_from_value(value: object) -> Resource:
    """Build a Resource from a decoded mapping with 'pattern' and 'name'."""
    if not isinstance(value, Mapping):
        raise ConfigError(f"resource must be an object: {value!r}")
    if "pattern" not in value:
        raise ConfigError("resources must have a 'pattern' field set")
    if "name" not in value:
        raise ConfigError("resources must have a 'name' field set")
    pattern = value["pattern"]
    if not isinstance(pattern, str):
        raise ConfigError(f"resource pattern must be a string: {pattern!r}")
    return Resource(ResourcePattern(pattern), resource_name_from_value(value["name"]))


def _resource_list(value: object, key: str) -> list[Resource]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list: {value!r}")
    return [resource_from_value(item) for item in value]


def resources_from_value(value: object) -> Resources:
    """Build Resources from a decoded mapping with optional 'gpus' and 'mig'."""
    if value is None:
        return Resources()
    if not isinstance(value, Mapping):
        raise ConfigError(f"resources must be an object: {value!r}")
    return Resources(
        gpus=_resource_list(value.get("gpus"), "gpus"),
        migs=_resource_list(value.get("mig"), "mig"),
    )