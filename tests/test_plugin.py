import posixpath
from dataclasses import replace

import pytest

from gatewayproxy.core import (
    Backend,
    EndpointConfig,
    Metadata,
    Request,
    Response,
    TooManyProxiesError,
    noop_proxy,
)
from gatewayproxy.modifiers import NAMESPACE, register_modifier
from gatewayproxy.plugin import (
    RequestWrapper,
    ResponseMetadataWrapper,
    ResponseWrapper,
    new_backend_plugin_middleware,
    new_plugin_middleware,
)


def _path_modifier_factory(cfg):
    def modifier(value):
        if not isinstance(value, RequestWrapper):
            raise TypeError("unknown request type")
        return replace(value, path=posixpath.normpath(value.path + "/fooo"))

    return modifier


def _response_modifier_factory(cfg):
    def modifier(value):
        return ResponseWrapper(
            data={**(value.data or {}), "added": cfg.get("extra", True)},
            is_complete=True,
            metadata=ResponseMetadataWrapper(headers={"X-Test": ["yes"]}, status_code=201),
            io=value.io,
        )

    return modifier


def _ignored_modifier_factory(cfg):
    def modifier(value):
        return "not a wrapper"

    return modifier


def _failing_modifier_factory(cfg):
    def modifier(value):
        raise ValueError("modifier failed")

    return modifier


def _no_metadata_factory(cfg):
    def modifier(value):
        return replace(value, metadata=None)

    return modifier


register_modifier("test-path-modifier", _path_modifier_factory, True, False)
register_modifier("test-response-modifier", _response_modifier_factory, False, True)
register_modifier("test-ignored-modifier", _ignored_modifier_factory, True, True)
register_modifier("test-failing-modifier", _failing_modifier_factory, True, False)
register_modifier("test-no-metadata-modifier", _no_metadata_factory, False, True)


def _endpoint(*names, **extra):
    return EndpointConfig(extra_config={NAMESPACE: {"name": list(names), **extra}})


def _backend(*names):
    return Backend(extra_config={NAMESPACE: {"name": list(names)}})


@pytest.mark.asyncio
async def test_endpoint_and_backend_request_modifiers():
    seen = []

    async def validator(request):
        seen.append(request.path)
        return None

    backend_proxy = new_backend_plugin_middleware(_backend("test-path-modifier"))(validator)
    proxy = new_plugin_middleware(_endpoint("test-path-modifier"))(backend_proxy)

    response = await proxy(Request(path="/bar"))

    assert response is None
    assert seen == ["/bar/fooo/fooo"]


def test_no_config_returns_proxy_unchanged():
    middleware = new_plugin_middleware(EndpointConfig())
    assert middleware(noop_proxy) is noop_proxy


def test_names_not_a_list_returns_proxy_unchanged():
    cfg = EndpointConfig(extra_config={NAMESPACE: {"name": "test-path-modifier"}})
    assert new_plugin_middleware(cfg)(noop_proxy) is noop_proxy


def test_unknown_modifiers_return_proxy_unchanged():
    backend = _backend("missing-modifier", 42)
    assert new_backend_plugin_middleware(backend)(noop_proxy) is noop_proxy


def test_too_many_proxies():
    middleware = new_plugin_middleware(_endpoint("test-path-modifier"))
    with pytest.raises(TooManyProxiesError):
        middleware(noop_proxy, noop_proxy)


@pytest.mark.asyncio
async def test_response_modifier_updates_response():
    async def backend(request):
        return Response(data={"a": 1}, is_complete=False, metadata=Metadata(status_code=200))

    proxy = new_plugin_middleware(_endpoint("test-response-modifier", extra="value"))(backend)
    response = await proxy(Request())

    assert response.data == {"a": 1, "added": "value"}
    assert response.is_complete is True
    assert response.metadata == Metadata(headers={"X-Test": ["yes"]}, status_code=201)


@pytest.mark.asyncio
async def test_missing_metadata_resets_metadata():
    async def backend(request):
        return Response(data={}, metadata=Metadata(headers={"h": ["v"]}, status_code=500))

    proxy = new_plugin_middleware(_endpoint("test-no-metadata-modifier"))(backend)
    response = await proxy(Request())

    assert response.metadata == Metadata()


@pytest.mark.asyncio
async def test_non_wrapper_results_are_ignored():
    received = []

    async def backend(request):
        received.append(request.path)
        return Response(data={"k": "v"}, is_complete=True)

    proxy = new_plugin_middleware(_endpoint("test-ignored-modifier"))(backend)
    response = await proxy(Request(path="/keep"))

    assert received == ["/keep"]
    assert response.data == {"k": "v"}
    assert response.is_complete is True


@pytest.mark.asyncio
async def test_request_modifier_error_stops_the_call():
    calls = []

    async def backend(request):
        calls.append(request)
        return Response(data={})

    proxy = new_plugin_middleware(_endpoint("test-failing-modifier"))(backend)
    with pytest.raises(ValueError, match="modifier failed"):
        await proxy(Request())
    assert calls == []


@pytest.mark.asyncio
async def test_backend_error_skips_response_modifiers():
    async def backend(request):
        raise RuntimeError("backend down")

    proxy = new_plugin_middleware(_endpoint("test-response-modifier"))(backend)
    with pytest.raises(RuntimeError, match="backend down"):
        await proxy(Request())


@pytest.mark.asyncio
async def test_request_and_response_modifiers_together():
    paths = []

    async def backend(request):
        paths.append(request.path)
        return Response(data={"x": 1})

    proxy = new_plugin_middleware(
        _endpoint("test-path-modifier", "test-response-modifier")
    )(backend)
    request = Request(path="/base")
    response = await proxy(request)

    assert paths == ["/base/fooo"]
    assert request.path == "/base/fooo"
    assert response.data == {"x": 1, "added": True}