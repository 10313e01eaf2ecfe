"""A nanosecond duration with the textual form used in configuration files."""

from __future__ import annotations

import re

from gpushare.consts import ConfigError

_NANOSECOND = 1
_MICROSECOND = 1000 * _NANOSECOND
_MILLISECOND = 1000 * _MICROSECOND
_SECOND = 1000 * _MILLISECOND
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE

_UNITS = {
    "ns": _NANOSECOND,
    "us": _MICROSECOND,
    "\u00b5s": _MICROSECOND,
    "\u03bcs": _MICROSECOND,
    "ms": _MILLISECOND,
    "s": _SECOND,
    "m": _MINUTE,
    "h": _HOUR,
}

_NUMBER = re.compile(r"(\d*)(?:\.(\d*))?")
_UNIT = re.compile(r"[^\d.]*")
_MAX = 2**63 - 1


def _fraction(value: int, digits: int) -> str:
    whole, rest = divmod(value, 10**digits)
    tail = str(rest).rjust(digits, "0").rstrip("0")
    return f"{whole}.{tail}" if tail else str(whole)


class Duration(int):
    """A signed count of nanoseconds."""

    def __repr__(self) -> str:
        return f"Duration({int(self)})"

    def __str__(self) -> str:
        ns = int(self)
        if ns == 0:
            return "0s"
        sign = "-" if ns < 0 else ""
        u = abs(ns)
        if u < _MICROSECOND:
            return f"{sign}{u}ns"
        if u < _MILLISECOND:
            return f"{sign}{_fraction(u, 3)}\u00b5s"
        if u < _SECOND:
            return f"{sign}{_fraction(u, 6)}ms"
        text = f"{_fraction(u % _MINUTE, 9)}s"
        minutes = u // _MINUTE
        if minutes:
            text = f"{minutes % 60}m{text}"
            hours = minutes // 60
            if hours:
                text = f"{hours}h{text}"
        return sign + text

    @property
    def seconds(self) -> float:
        """The duration in seconds."""
        return int(self) / _SECOND

    def to_json(self) -> str:
        """Return the value as it is written in JSON."""
        return str(self)


def parse_duration(text: str) -> Duration:
    """Parse a string such as "300ms", "-1.5h" or "2h45m"."""
    orig = text
    negative = False
    if text[:1] in ("-", "+"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return Duration(0)
    if not text:
        raise ConfigError(f'invalid duration "{orig}"')

    limit = _MAX + 1 if negative else _MAX
    total = 0
    while text:
        number = _NUMBER.match(text)
        int_part, frac_part = number.group(1), number.group(2)
        if not int_part and not frac_part:
            raise ConfigError(f'invalid duration "{orig}"')
        text = text[number.end():]

        unit = _UNIT.match(text).group(0)
        if not unit:
            raise ConfigError(f'missing unit in duration "{orig}"')
        if unit not in _UNITS:
            raise ConfigError(f'unknown unit "{unit}" in duration "{orig}"')
        text = text[len(unit):]

        scale = _UNITS[unit]
        value = int(int_part or "0") * scale
        if frac_part:
            value += int(frac_part) * scale // 10 ** len(frac_part)
        total += value
        if total > limit:
            raise ConfigError(f'invalid duration "{orig}"')

    return Duration(-total if negative else total)


def duration_from_value(value: object) -> Duration:
    """Build a Duration from a decoded JSON or YAML value (number or string)."""
    if isinstance(value, bool):
        raise ConfigError("invalid duration")
    if isinstance(value, (int, float)):
        return Duration(int(value))
    if isinstance(value, str):
        return parse_duration(value)
    raise ConfigError("invalid duration")