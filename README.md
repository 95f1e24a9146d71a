# gatewayproxy

Building blocks for the proxy layer of an API gateway, written for `asyncio`.

A *proxy* is an async callable that takes a `Request` (or `None`) and returns a
`Response` (or `None`). A *middleware* is a callable that takes one or more
proxies and returns a new proxy. Middlewares stack.

## Installation

```
pip install .
```

To run the tests, install the test extra and run pytest:

```
pip install .[test]
pytest
```

## Modules

### `gatewayproxy.core`

- `Request` (`method`, `url`, `query`, `path`, `body`, `params`, `headers`).
  `generate_path(url_pattern)` sets `path` from a pattern, replacing each
  `{{.Name}}` with `params["Name"]`. `clone()` is a shallow copy.
- `clone_request(request)` makes a deep copy: params and headers are copied, and
  a body stream is read fully so that both requests get their own `BytesIO`.
  `clone_request_headers` and `clone_request_params` copy those parts alone.
- `Response` (`data`, `is_complete`, `metadata`, `io`) and `Metadata`
  (`headers`, `status_code`).
- `Backend` (`url_pattern`, `extra_config`, `timeout`) and `EndpointConfig`
  (`backend`, `timeout`, `extra_config`). Timeouts are in seconds.
- `empty_middleware(*proxies)` returns the one proxy it is given;
  `noop_proxy(request)` returns `None`.
- `new_read_closer_wrapper(done, reader)` wraps a reader and closes it once the
  `asyncio.Event` `done` is set. It must be called inside a running event loop.
- Errors: `ProxyError`, and its subclasses `NoBackendsError`,
  `TooManyBackendsError`, `TooManyProxiesError`, `NotEnoughProxiesError`.
- `NAMESPACE` (`"gatewayproxy/proxy"`) is the key under which the merging,
  shadow and static middlewares look in an `extra_config`.

### `gatewayproxy.merging`

`new_merge_data_middleware(endpoint_config)` returns a middleware that must be
given one proxy per backend. With one backend it returns `empty_middleware`; with
none it raises `NoBackendsError`. Backends share a deadline of 85% of the
endpoint timeout (no deadline when the timeout is not positive); a backend that
misses it fails with `TimeoutError("context deadline exceeded")`.

- By default the backends run in parallel and their data is merged as each one
  answers.
- With `{"sequential": True}` under `NAMESPACE`, they run one after another.
  Later backends may use values from earlier responses as request params: a
  placeholder such as `{{.Resp0_id}}` or `{{.Resp0_user.name}}` in the backend's
  `url_pattern` sets `request.params["Resp0_id"]`. Lists are joined with commas
  and floats are written in exponent form (`3.14E+00`). The sequence stops at the
  first failure or incomplete response; a failure of the first backend is raised
  as it is.

When anything fails, a `MergeError` is raised; its `errors` lists the causes and
its `response` holds the partial, incomplete response.

Combiners: `combine_data(total, parts)` is the default.
`register_response_combiner(name, combiner)` adds a named one, selected with
`{"combiner": name}` under `NAMESPACE` (`get_response_combiner(extra)` resolves
it). `new_register()` returns the shared `CombinerRegister`.
`IncrementalMergeAccumulator` is the merging step on its own.

### `gatewayproxy.shadow`

- `shadow_middleware(primary, shadow)` calls both proxies with the same request
  (the shadow gets a clone, in a background task) and returns only what the
  primary returns. With one proxy it returns that proxy.
- `is_shadow_backend(backend)` is true when the backend's `extra_config` holds
  `{"shadow": True}` under `NAMESPACE`.
- `new_shadow_factory(factory)` wraps any object with a `new(cfg)` method: the
  endpoint's shadow backends and regular backends get proxies of their own,
  combined with `shadow_middleware`.

### `gatewayproxy.static`

`new_static_middleware(endpoint_config)` adds fixed data to responses. It reads
`{"static": {"data": {...}, "strategy": ...}}` under `NAMESPACE`; the
`Strategy` is one of `always` (the default), `success`, `errored`, `complete`
or `incomplete`. When the wrapped proxy raises and the strategy matches, the data
is set on the exception's `response` attribute before it is raised again.
`static_config_from(extra)` returns the parsed `StaticConfig`, or `None`.

### `gatewayproxy.modifiers` and `gatewayproxy.plugin`

`register_modifier(name, factory, applies_to_request, applies_to_response)`
registers a modifier factory; `get_request_modifier(name)` and
`get_response_modifier(name)` look it up. A factory takes the plugin config dict
and returns a modifier, a callable that takes a `RequestWrapper` or a
`ResponseWrapper` and returns a new wrapper (any other return value is ignored).

`new_plugin_middleware(endpoint)` and `new_backend_plugin_middleware(backend)`
read `{"name": [...]}` under `gatewayproxy.modifiers.NAMESPACE`
(`"gatewayproxy/proxy/plugin"`) and run the named request modifiers before the
wrapped proxy and the response modifiers after it.

### `gatewayproxy.registry`

`Untyped` is a thread-safe name-to-value register (`register`, `get`, `clone`);
`Namespaced` groups such registers by namespace (`register`, `get`,
`add_namespace`).

## Example

```python
import asyncio

from gatewayproxy.core import Backend, EndpointConfig, Request, Response
from gatewayproxy.merging import new_merge_data_middleware


def fixed(data):
    async def proxy(request):
        return Response(data=dict(data), is_complete=True)
    return proxy


endpoint = EndpointConfig(backend=[Backend(), Backend()], timeout=0.5)
proxy = new_merge_data_middleware(endpoint)(fixed({"a": 1}), fixed({"b": 2}))

response = asyncio.run(proxy(Request()))
print(response.data, response.is_complete)  # {'a': 1, 'b': 2} True
```

## What this package does not do

It holds the middleware layer only. It has no HTTP server or router, no HTTP
client to reach real backends, no default backend factory and no configuration
file parser: proxies that talk to backends, and the factory given to
`new_shadow_factory`, are yours to supply. Modifiers are registered in code with
`register_modifier`; nothing is loaded from plugin files on disk.