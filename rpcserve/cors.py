"""CORS handling."""

from __future__ import annotations

import string
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

from rpcserve.hosts import Host, Port, parse_host
from rpcserve.matcher import Matcher, Pattern

T = TypeVar("T")
O = TypeVar("O")

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def _ascii_lower(text: str) -> str:
    return text.translate(_ASCII_LOWER)


@dataclass(frozen=True)
class OriginProtocol:
    """The scheme of an origin: ``http``, ``https`` or a custom one."""

    scheme: str

    HTTP = None  # type: OriginProtocol
    HTTPS = None  # type: OriginProtocol

    def __str__(self) -> str:
        return self.scheme


OriginProtocol.HTTP = OriginProtocol("http")
OriginProtocol.HTTPS = OriginProtocol("https")


class Origin(Pattern):
    """A request origin, matched as a glob."""

    __slots__ = ("protocol", "host", "_text", "_matcher")

    def __init__(
        self,
        protocol: OriginProtocol | str,
        host: str | Host,
        port: Port | int | str | None = None,
    ) -> None:
        self.protocol = (
            protocol if isinstance(protocol, OriginProtocol) else OriginProtocol(protocol)
        )
        self.host = host if isinstance(host, Host) else Host(host, port)
        self._text = f"{self.protocol}://{self.host}"
        self._matcher = Matcher(self._text)

    def matches(self, other: str) -> bool:
        return self._matcher.matches(other)

    def __str__(self) -> str:
        return self._text

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Origin):
            return NotImplemented
        return (self.protocol, self.host) == (other.protocol, other.host)

    def __hash__(self) -> int:
        return hash((self.protocol, self.host))

    def __repr__(self) -> str:
        return f"Origin({self._text!r})"


def parse_origin(value: str) -> Origin:
    """Parse ``value`` as an origin; always succeeds, defaulting to http."""
    parts = value.split("://")
    if len(parts) > 1:
        proto: str | None = parts[0].lower()
        hostname = parts[1]
    else:
        proto, hostname = None, parts[0]
    if proto is None or proto == "http":
        protocol = OriginProtocol.HTTP
    elif proto == "https":
        protocol = OriginProtocol.HTTPS
    else:
        protocol = OriginProtocol(proto)
    return Origin(protocol, parse_host(hostname))


class AllowOriginKind(Enum):
    VALUE = "value"
    NULL = "null"
    ANY = "any"


@dataclass(frozen=True)
class AccessControlAllowOrigin:
    """An allowed origin: a specific one, the null origin, or any non-null origin."""

    kind: AllowOriginKind
    origin: Origin | None = None

    ANY = None  # type: AccessControlAllowOrigin
    NULL = None  # type: AccessControlAllowOrigin

    @classmethod
    def for_origin(cls, origin: Origin) -> AccessControlAllowOrigin:
        """Allow a specific origin."""
        return cls(AllowOriginKind.VALUE, origin)

    @classmethod
    def from_str(cls, value: str) -> AccessControlAllowOrigin:
        """Parse ``*``/``all``/``any``, ``null`` or an origin."""
        if value in ("all", "*", "any"):
            return cls.ANY
        if value == "null":
            return cls.NULL
        return cls.for_origin(parse_origin(value))

    def __str__(self) -> str:
        if self.kind is AllowOriginKind.ANY:
            return "*"
        if self.kind is AllowOriginKind.NULL:
            return "null"
        return str(self.origin)


AccessControlAllowOrigin.ANY = AccessControlAllowOrigin(AllowOriginKind.ANY)
AccessControlAllowOrigin.NULL = AccessControlAllowOrigin(AllowOriginKind.NULL)


@dataclass(frozen=True)
class AccessControlAllowHeaders:
    """Headers allowed in requests; ``only`` is None when any header is allowed."""

    only: tuple[str, ...] | None = None

    ANY = None  # type: AccessControlAllowHeaders

    def __post_init__(self) -> None:
        if self.only is not None:
            object.__setattr__(self, "only", tuple(self.only))

    def allows(self, header: str) -> bool:
        """True if ``header`` is allowed (always-allowed headers included)."""
        if self.only is None:
            return True
        name = _ascii_lower(header)
        return name in ALWAYS_ALLOWED_HEADERS or any(
            _ascii_lower(allowed) == name for allowed in self.only
        )


AccessControlAllowHeaders.ANY = AccessControlAllowHeaders(None)


class CorsStatus(Enum):
    NOT_REQUIRED = "not_required"
    INVALID = "invalid"
    OK = "ok"


@dataclass(frozen=True)
class AllowCors(Generic[T]):
    """Outcome of a CORS check, carrying the header value when OK."""

    status: CorsStatus
    payload: Any = None

    NOT_REQUIRED = None  # type: AllowCors
    INVALID = None  # type: AllowCors

    @classmethod
    def ok(cls, payload: T) -> AllowCors[T]:
        """The request is allowed; ``payload`` goes into the response."""
        return cls(CorsStatus.OK, payload)

    def map(self, func: Callable[[T], O]) -> AllowCors[O]:
        """Apply ``func`` to the payload of an OK result."""
        if self.status is CorsStatus.OK:
            return AllowCors.ok(func(self.payload))
        return self

    def value(self) -> T | None:
        """The payload when OK, otherwise None."""
        return self.payload if self.status is CorsStatus.OK else None


AllowCors.NOT_REQUIRED = AllowCors(CorsStatus.NOT_REQUIRED)
AllowCors.INVALID = AllowCors(CorsStatus.INVALID)


ALWAYS_ALLOWED_HEADERS = frozenset(
    _ascii_lower(name)
    for name in (
        "Accept",
        "Accept-Language",
        "Access-Control-Allow-Origin",
        "Access-Control-Request-Headers",
        "Content-Language",
        "Content-Type",
        "Host",
        "Origin",
        "Content-Length",
        "Connection",
        "User-Agent",
    )
)


def get_cors_allow_origin(
    origin: str | None,
    host: str | None,
    allowed: Sequence[AccessControlAllowOrigin] | None,
) -> AllowCors[AccessControlAllowOrigin]:
    """Return the CORS header (if any) for ``origin`` given the allowed origins."""
    if origin is None:
        return AllowCors.NOT_REQUIRED

    if host is not None and origin.endswith(host) and str(parse_origin(origin).host) == host:
        # Request initiated from the same server.
        return AllowCors.NOT_REQUIRED

    if allowed is None:
        if origin == "null":
            return AllowCors.ok(AccessControlAllowOrigin.NULL)
        return AllowCors.ok(AccessControlAllowOrigin.for_origin(parse_origin(origin)))

    if origin == "null":
        if AccessControlAllowOrigin.NULL in allowed:
            return AllowCors.ok(AccessControlAllowOrigin.NULL)
        return AllowCors.INVALID

    for entry in allowed:
        if entry.kind is AllowOriginKind.ANY or (
            entry.kind is AllowOriginKind.VALUE and entry.origin.matches(origin)
        ):
            return AllowCors.ok(AccessControlAllowOrigin.for_origin(parse_origin(origin)))
    return AllowCors.INVALID


def get_cors_allow_headers(
    headers: Iterable[str],
    requested_headers: Iterable[str],
    cors_allow_headers: AccessControlAllowHeaders,
    to_result: Callable[[str], O] = lambda header: header,
) -> AllowCors[list[O]]:
    """Validate request headers and filter the requested ones against the allowed set."""
    if cors_allow_headers.only is None:
        result = [to_result(header) for header in requested_headers]
        return AllowCors.ok(result) if result else AllowCors.NOT_REQUIRED

    if not all(cors_allow_headers.allows(header) for header in headers):
        return AllowCors.INVALID

    requested = list(requested_headers)
    result = [to_result(header) for header in requested if cors_allow_headers.allows(header)]
    if result:
        return AllowCors.ok(result)
    return AllowCors.INVALID if requested else AllowCors.NOT_REQUIRED