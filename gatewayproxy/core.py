"""Core proxy types: configuration, requests, responses and basic middlewares."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field, replace
from typing import IO, Any, Awaitable, Callable, Optional

NAMESPACE = "gatewayproxy/proxy"


@dataclass
class Backend:
    """Configuration of a single backend behind an endpoint."""

    url_pattern: str = ""
    extra_config: dict[str, Any] = field(default_factory=dict)
    timeout: float = 0.0


@dataclass
class EndpointConfig:
    """Configuration of an endpoint and its backends. Timeouts are in seconds."""

    backend: list[Backend] = field(default_factory=list)
    timeout: float = 0.0
    extra_config: dict[str, Any] = field(default_factory=dict)


@dataclass
class Metadata:
    """Headers and status code of a response."""

    headers: dict[str, list[str]] = field(default_factory=dict)
    status_code: int = 0


@dataclass
class Response:
    """The entity returned by a proxy."""

    data: Optional[dict[str, Any]] = None
    is_complete: bool = False
    metadata: Metadata = field(default_factory=Metadata)
    io: Optional[Any] = None


@dataclass
class Request:
    """The data sent to a backend."""

    method: str = ""
    url: Optional[str] = None
    query: dict[str, list[str]] = field(default_factory=dict)
    path: str = ""
    body: Optional[IO[bytes]] = None
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, list[str]] = field(default_factory=dict)

    def generate_path(self, url_pattern: str) -> None:
        """Set the path from ``url_pattern``, substituting ``{{.Param}}`` placeholders."""
        path = url_pattern
        for key, value in (self.params or {}).items():
            path = path.replace("{{." + key + "}}", value)
        self.path = path

    def clone(self) -> "Request":
        """Return a shallow copy sharing params, headers and body with this request."""
        return replace(self)


Proxy = Callable[[Optional[Request]], Awaitable[Optional[Response]]]
Middleware = Callable[..., Proxy]


class ProxyError(Exception):
    """Base class of the proxy errors."""

    default_message = "proxy error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class NoBackendsError(ProxyError):
    """An endpoint has no backends defined."""

    default_message = "all endpoints must have at least one backend"


class TooManyBackendsError(ProxyError):
    """An endpoint has too many backends defined."""

    default_message = "too many backends for this proxy"


class TooManyProxiesError(ProxyError):
    """A middleware received too many proxies."""

    default_message = "too many proxies for this proxy middleware"


class NotEnoughProxiesError(ProxyError):
    """A middleware received too few proxies."""

    default_message = "not enough proxies for this endpoint"


class ReadCloserWrapper:
    """A reader whose underlying stream is closed once ``done`` is set."""

    def __init__(self, done: asyncio.Event, reader: Any) -> None:
        self._done = done
        self._reader = reader
        self._closer: Optional[asyncio.Task] = None

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes from the wrapped reader."""
        return self._reader.read(size)

    async def _close_on_done(self) -> None:
        await self._done.wait()
        self._reader.close()

    def _start(self) -> None:
        self._closer = asyncio.get_running_loop().create_task(self._close_on_done())


def new_read_closer_wrapper(done: asyncio.Event, reader: Any) -> ReadCloserWrapper:
    """Wrap ``reader`` so that it is closed when ``done`` is set.

    Must be called from within a running event loop.
    """
    wrapper = ReadCloserWrapper(done, reader)
    wrapper._start()
    return wrapper


def empty_middleware(*args: Proxy) -> Proxy:
    """Return the single proxy given, unchanged."""
    if len(args) > 1:
        raise TooManyProxiesError()
    if not args:
        raise NotEnoughProxiesError()
    return args[0]


async def noop_proxy(request: Optional[Request]) -> Optional[Response]:
    """A proxy that yields to the event loop once and returns no response."""
    await asyncio.sleep(0)
    return None


def clone_request_headers(headers: Optional[dict[str, list[str]]]) -> dict[str, list[str]]:
    """Return a copy of the headers that shares no lists with the original."""
    return {key: list(values) for key, values in (headers or {}).items()}


def clone_request_params(params: Optional[dict[str, str]]) -> dict[str, str]:
    """Return a copy of the params."""
    return dict(params or {})


def clone_request(request: Request) -> Request:
    """Return a deep copy of ``request`` sharing no mutable state with it.

    The body, if any, is read fully; both requests get a fresh stream of it.
    """
    cloned = request.clone()
    cloned.headers = clone_request_headers(request.headers)
    cloned.params = clone_request_params(request.params)
    if request.body is None:
        return cloned
    payload = request.body.read()
    request.body.close()
    if isinstance(payload, str):
        payload = payload.encode()
    request.body = io.BytesIO(payload)
    cloned.body = io.BytesIO(payload)
    return cloned