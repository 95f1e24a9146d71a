"""Middleware running registered request and response modifiers around a proxy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from gatewayproxy.core import (
    Backend,
    EndpointConfig,
    Metadata,
    Middleware,
    NotEnoughProxiesError,
    Proxy,
    Request,
    Response,
    TooManyProxiesError,
    empty_middleware,
)
from gatewayproxy.modifiers import NAMESPACE, get_request_modifier, get_response_modifier

Modifier = Callable[[Any], Any]


@dataclass(frozen=True)
class RequestWrapper:
    """The view of a request handed to request modifiers."""

    method: str = ""
    url: Optional[str] = None
    query: dict[str, list[str]] = field(default_factory=dict)
    path: str = ""
    body: Any = None
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseMetadataWrapper:
    """The view of a response's metadata handed to response modifiers."""

    headers: dict[str, list[str]] = field(default_factory=dict)
    status_code: int = 0


@dataclass(frozen=True)
class ResponseWrapper:
    """The view of a response handed to response modifiers."""

    data: Optional[dict[str, Any]] = None
    is_complete: bool = False
    metadata: Optional[ResponseMetadataWrapper] = None
    io: Any = None


def _execute_request_modifiers(modifiers: list[Modifier], request: Request) -> Request:
    current = RequestWrapper(
        method=request.method,
        url=request.url,
        query=request.query,
        path=request.path,
        body=request.body,
        params=request.params,
        headers=request.headers,
    )
    for modifier in modifiers:
        result = modifier(current)
        if isinstance(result, RequestWrapper):
            current = result

    request.method = current.method
    request.url = current.url
    request.query = current.query
    request.path = current.path
    request.body = current.body
    request.params = current.params
    request.headers = current.headers
    return request


def _execute_response_modifiers(
    modifiers: list[Modifier], response: Optional[Response]
) -> Optional[Response]:
    if response is None:
        return None
    current = ResponseWrapper(
        data=response.data,
        is_complete=response.is_complete,
        metadata=ResponseMetadataWrapper(
            headers=response.metadata.headers,
            status_code=response.metadata.status_code,
        ),
        io=response.io,
    )
    for modifier in modifiers:
        result = modifier(current)
        if isinstance(result, ResponseWrapper):
            current = result

    response.data = current.data
    response.is_complete = current.is_complete
    response.io = current.io
    response.metadata = Metadata()
    if current.metadata is not None:
        response.metadata = Metadata(
            headers=current.metadata.headers,
            status_code=current.metadata.status_code,
        )
    return response


def _build_plugin_middleware(cfg: dict[str, Any]) -> Middleware:
    names = cfg.get("name")
    if not isinstance(names, list):
        return empty_middleware

    request_modifiers: list[Modifier] = []
    response_modifiers: list[Modifier] = []
    for name in names:
        if not isinstance(name, str):
            continue
        factory = get_request_modifier(name)
        if factory is not None:
            request_modifiers.append(factory(cfg))
            continue
        factory = get_response_modifier(name)
        if factory is not None:
            response_modifiers.append(factory(cfg))

    if not request_modifiers and not response_modifiers:
        return empty_middleware

    def middleware(*proxies: Proxy) -> Proxy:
        if len(proxies) > 1:
            raise TooManyProxiesError()
        if not proxies:
            raise NotEnoughProxiesError()
        nxt = proxies[0]

        async def proxy(request: Optional[Request]) -> Optional[Response]:
            if request_modifiers:
                request = _execute_request_modifiers(request_modifiers, request)
            response = await nxt(request)
            if response_modifiers:
                response = _execute_response_modifiers(response_modifiers, response)
            return response

        return proxy

    return middleware


def new_plugin_middleware(endpoint: EndpointConfig) -> Middleware:
    """Build the endpoint middleware running the modifiers its config names."""
    cfg = endpoint.extra_config.get(NAMESPACE)
    if not isinstance(cfg, dict):
        return empty_middleware
    return _build_plugin_middleware(cfg)


def new_backend_plugin_middleware(remote: Backend) -> Middleware:
    """Build the backend middleware running the modifiers its config names."""
    cfg = remote.extra_config.get(NAMESPACE)
    if not isinstance(cfg, dict):
        return empty_middleware
    return _build_plugin_middleware(cfg)