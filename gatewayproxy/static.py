"""Middleware adding static values to proxy responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from gatewayproxy.core import (
    NAMESPACE,
    EndpointConfig,
    Middleware,
    NotEnoughProxiesError,
    Proxy,
    Request,
    Response,
    TooManyProxiesError,
    empty_middleware,
)

_STATIC_KEY = "static"


class Strategy(str, Enum):
    """When the static data is added to a response."""

    ALWAYS = "always"
    SUCCESS = "success"
    ERRORED = "errored"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


@dataclass
class StaticConfig:
    """The static data to add and the strategy deciding when to add it."""

    data: dict[str, Any] = field(default_factory=dict)
    strategy: Strategy = Strategy.ALWAYS

    def match(self, response: Optional[Response], error: Optional[BaseException]) -> bool:
        """Tell whether the static data applies to this outcome."""
        if self.strategy is Strategy.SUCCESS:
            return error is None
        if self.strategy is Strategy.ERRORED:
            return error is not None
        if self.strategy is Strategy.COMPLETE:
            return error is None and response is not None and response.is_complete
        if self.strategy is Strategy.INCOMPLETE:
            return response is None or not response.is_complete
        return True


def static_config_from(extra: dict[str, Any]) -> Optional[StaticConfig]:
    """Read the static configuration from an extra config, or None if absent or invalid."""
    section = extra.get(NAMESPACE)
    if not isinstance(section, dict):
        return None
    static = section.get(_STATIC_KEY)
    if not isinstance(static, dict):
        return None
    data = static.get("data")
    if not isinstance(data, dict):
        return None
    name = static.get("strategy")
    try:
        strategy = Strategy(name) if isinstance(name, str) else Strategy.ALWAYS
    except ValueError:
        strategy = Strategy.ALWAYS
    return StaticConfig(data=data, strategy=strategy)


def _add_static_data(result: Optional[Response], data: dict[str, Any]) -> Response:
    if result is None:
        result = Response(data={})
    elif result.data is None:
        result.data = {}
    result.data.update(data)
    return result


def new_static_middleware(endpoint_config: EndpointConfig) -> Middleware:
    """Build a middleware adding the configured static data to matching responses.

    When the wrapped proxy raises, the static data is attached to the exception's
    ``response`` attribute before it is raised again.
    """
    cfg = static_config_from(endpoint_config.extra_config)
    if cfg is None:
        return empty_middleware

    def middleware(*proxies: Proxy) -> Proxy:
        if len(proxies) > 1:
            raise TooManyProxiesError()
        if not proxies:
            raise NotEnoughProxiesError()
        nxt = proxies[0]

        async def proxy(request: Optional[Request]) -> Optional[Response]:
            try:
                result = await nxt(request)
            except Exception as exc:
                partial = getattr(exc, "response", None)
                if cfg.match(partial, exc):
                    exc.response = _add_static_data(partial, cfg.data)
                raise
            if not cfg.match(result, None):
                return result
            return _add_static_data(result, cfg.data)

        return proxy

    return middleware