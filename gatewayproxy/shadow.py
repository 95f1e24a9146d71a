"""Shadow proxies: send a copy of each request to backends whose answers are ignored."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Optional, Protocol

from gatewayproxy.core import (
    NAMESPACE,
    Backend,
    EndpointConfig,
    NoBackendsError,
    NotEnoughProxiesError,
    Proxy,
    Request,
    Response,
    TooManyProxiesError,
    clone_request,
)

_SHADOW_KEY = "shadow"

_background: set[asyncio.Task] = set()


class Factory(Protocol):
    """Anything building a proxy from an endpoint configuration."""

    def new(self, cfg: EndpointConfig) -> Proxy: ...


def is_shadow_backend(backend: Backend) -> bool:
    """Tell whether the backend is flagged as a shadow backend."""
    section = backend.extra_config.get(NAMESPACE)
    if not isinstance(section, dict):
        return False
    flag = section.get(_SHADOW_KEY)
    return isinstance(flag, bool) and flag


def _discard(task: asyncio.Task) -> None:
    _background.discard(task)
    if not task.cancelled():
        task.exception()


def new_shadow_proxy(primary: Proxy, shadow: Proxy) -> Proxy:
    """Return a proxy calling both proxies but answering with the primary one only."""

    async def proxy(request: Optional[Request]) -> Optional[Response]:
        task = asyncio.get_running_loop().create_task(shadow(clone_request(request)))
        _background.add(task)
        task.add_done_callback(_discard)
        return await primary(request)

    return proxy


def shadow_middleware(*args: Proxy) -> Proxy:
    """Combine one regular proxy with an optional shadow proxy."""
    if not args:
        raise NotEnoughProxiesError()
    if len(args) == 1:
        return args[0]
    if len(args) == 2:
        return new_shadow_proxy(args[0], args[1])
    raise TooManyProxiesError()


class ShadowFactory:
    """A factory splitting shadow backends from regular ones."""

    def __init__(self, factory: Any) -> None:
        self._factory = factory

    def new(self, cfg: EndpointConfig) -> Proxy:
        """Build the proxy for ``cfg``, mirroring requests to its shadow backends."""
        if not cfg.backend:
            raise NoBackendsError()
        shadow = [b for b in cfg.backend if is_shadow_backend(b)]
        regular = [b for b in cfg.backend if not is_shadow_backend(b)]

        proxy = self._factory.new(replace(cfg, backend=regular))
        if not shadow:
            return proxy
        try:
            shadow_proxy = self._factory.new(replace(cfg, backend=shadow))
        except Exception:
            return proxy
        return shadow_middleware(proxy, shadow_proxy)


def new_shadow_factory(factory: Any) -> ShadowFactory:
    """Wrap ``factory`` so that it honours shadow backends."""
    return ShadowFactory(factory)