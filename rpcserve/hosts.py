"""Host header validation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Generic, Iterable, Sequence, TypeVar

from rpcserve.matcher import Matcher, Pattern

T = TypeVar("T")

_PORT_NUMBER = re.compile(r"\+?[0-9]+")


@dataclass(frozen=True)
class Port:
    """A port: ``None`` for the default, an int when fixed, a str when a wildcard pattern."""

    value: int | str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.value, bool):
            raise TypeError("port must be an int, a str or None")
        if isinstance(self.value, int) and not 0 <= self.value <= 0xFFFF:
            raise ValueError(f"port out of range: {self.value}")

    @classmethod
    def of(cls, value: Port | int | str | None) -> Port:
        """Coerce a value to a Port."""
        return value if isinstance(value, Port) else cls(value)

    @classmethod
    def parse(cls, text: str) -> Port:
        """Parse a port; numeric text becomes a fixed port, anything else a pattern."""
        if _PORT_NUMBER.fullmatch(text):
            number = int(text)
            if number <= 0xFFFF:
                return cls(number)
        return cls(text)

    def __str__(self) -> str:
        return "" if self.value is None else f":{self.value}"


def _pre_process(host: str) -> str:
    """Strip a protocol and a path from ``host`` and lower-case it."""
    parts = host.split("://")
    remainder = parts[1] if len(parts) > 1 else parts[0]
    return remainder.split("/")[0].lower()


class Host(Pattern):
    """A host name with an optional port, matched as a glob."""

    __slots__ = ("hostname", "port", "_text", "_matcher")

    def __init__(self, hostname: str, port: Port | int | str | None = None) -> None:
        self.hostname = _pre_process(hostname)
        self.port = Port.of(port)
        self._text = f"{self.hostname}{self.port}"
        self._matcher = Matcher(self._text)

    def matches(self, other: str) -> bool:
        return self._matcher.matches(other)

    def __str__(self) -> str:
        return self._text

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Host):
            return NotImplemented
        return (self.hostname, self.port) == (other.hostname, other.port)

    def __hash__(self) -> int:
        return hash((self.hostname, self.port))

    def __repr__(self) -> str:
        return f"Host({self._text!r})"


def parse_host(value: str) -> Host:
    """Parse ``value`` as a host; always succeeds, falling back to sensible defaults."""
    name, sep, rest = _pre_process(value).partition(":")
    port = Port.parse(rest.split(":")[0]) if sep else Port()
    return Host(name, port)


@dataclass(frozen=True)
class DomainsValidation(Generic[T]):
    """Either a list of allowed domains, or validation switched off (``items`` is None)."""

    items: tuple[T, ...] | None

    @classmethod
    def allow_only(cls, items: Iterable[T]) -> DomainsValidation[T]:
        """Allow only the given domains."""
        return cls(tuple(items))

    @classmethod
    def disabled(cls) -> DomainsValidation[T]:
        """Disable validation completely."""
        return cls(None)

    def as_list(self) -> list[T] | None:
        """The allowed domains, or None when validation is disabled."""
        return None if self.items is None else list(self.items)


def is_host_valid(host: str | None, allowed_hosts: Sequence[Host] | None) -> bool:
    """Return True when the Host header is whitelisted in ``allowed_hosts``."""
    if allowed_hosts is None:
        return True
    if host is None:
        return False
    return any(allowed.matches(host) for allowed in allowed_hosts)


def _format_address(address: str | tuple) -> str:
    if isinstance(address, str):
        return address
    ip, port = address[0], address[1]
    ip = str(ip)
    return f"[{ip}]:{port}" if ":" in ip else f"{ip}:{port}"


def update(hosts: Sequence[Host] | None, address: str | tuple) -> list[Host] | None:
    """Add the server address (and its localhost alias) to the allowed hosts."""
    if hosts is None:
        return None
    text = _format_address(address)
    extra = [parse_host(text), parse_host(text.replace("127.0.0.1", "localhost"))]
    return list(dict.fromkeys([*hosts, *extra]))