"""Middleware merging the responses of several backends into one."""

from __future__ import annotations

import asyncio
import math
import re
import struct
from dataclasses import fields
from typing import Any, Callable, Mapping, Optional

from gatewayproxy.core import (
    NAMESPACE,
    EndpointConfig,
    Middleware,
    NoBackendsError,
    NotEnoughProxiesError,
    Proxy,
    Request,
    Response,
    clone_request,
    empty_middleware,
)
from gatewayproxy.registry import Untyped

ResponseCombiner = Callable[[int, list], Optional[Response]]

_MERGE_KEY = "combiner"
_SEQUENTIAL_KEY = "sequential"
_DEFAULT_COMBINER_NAME = "default"
_DEADLINE_EXCEEDED = "context deadline exceeded"

_MERGE_KEY_RE = re.compile(r"\{\{\.Resp(\d+)_([\d\w\-_.]+)\}\}")


class _NullResultError(Exception):
    """A backend answered with no response."""


_NULL_RESULT = _NullResultError("null result")


class MergeError(Exception):
    """The errors collected while merging, with the partial response built."""

    def __init__(self, errors: list[BaseException], response: Optional[Response] = None) -> None:
        super().__init__("\n".join(str(err) for err in errors))
        self.errors = list(errors)
        self.response = response


def combine_data(total: int, parts: list) -> Response:
    """Merge the data of the parts into the first one with data."""
    is_complete = len(parts) == total
    merged: Optional[Response] = None
    for part in parts:
        if part is None or part.data is None:
            is_complete = False
            continue
        is_complete = is_complete and part.is_complete
        if merged is None:
            merged = part
            continue
        merged.data.update(part.data)
    if merged is None:
        return Response(data={}, is_complete=is_complete)
    merged.is_complete = is_complete
    return merged


class CombinerRegister:
    """A register of named response combiners with a fallback."""

    def __init__(self, data: Mapping[str, Any], fallback: ResponseCombiner) -> None:
        self._data = Untyped()
        for name, combiner in data.items():
            self._data.register(name, combiner)
        self._fallback = fallback

    def get_response_combiner(self, name: str) -> tuple[ResponseCombiner, bool]:
        """Return the combiner for ``name`` (or the fallback) and whether the name is known."""
        if name not in self._data:
            return self._fallback, False
        combiner = self._data.get(name)
        if callable(combiner):
            return combiner, True
        return self._fallback, True

    def set_response_combiner(self, name: str, combiner: ResponseCombiner) -> None:
        """Register ``combiner`` under ``name``."""
        self._data.register(name, combiner)


def _init_response_combiners() -> CombinerRegister:
    return CombinerRegister({_DEFAULT_COMBINER_NAME: combine_data}, combine_data)


_response_combiners = _init_response_combiners()


def new_register() -> CombinerRegister:
    """Return the shared register of response combiners."""
    return _response_combiners


def register_response_combiner(name: str, combiner: ResponseCombiner) -> None:
    """Add ``combiner`` to the shared register under ``name``."""
    _response_combiners.set_response_combiner(name, combiner)


def get_response_combiner(extra: dict[str, Any]) -> ResponseCombiner:
    """Return the combiner selected by the extra config, or the default one."""
    combiner, _ = _response_combiners.get_response_combiner(_DEFAULT_COMBINER_NAME)
    section = extra.get(NAMESPACE)
    if isinstance(section, dict) and _MERGE_KEY in section:
        name = section[_MERGE_KEY]
        if not isinstance(name, str):
            raise TypeError(f"combiner name must be a string, not {type(name).__name__}")
        found, ok = _response_combiners.get_response_combiner(name)
        if ok:
            combiner = found
    return combiner


class IncrementalMergeAccumulator:
    """Merges responses one by one as they arrive."""

    def __init__(self, total: int, combiner: ResponseCombiner) -> None:
        self._pending = total
        self._combiner = combiner
        self._data: Optional[Response] = None
        self._errors: list[BaseException] = []

    def merge(self, response: Optional[Response], error: Optional[BaseException]) -> None:
        """Account for one backend outcome."""
        self._pending -= 1
        if error is not None:
            self._errors.append(error)
            if self._data is not None:
                self._data.is_complete = False
            return
        if response is None:
            self._errors.append(_NULL_RESULT)
            return
        if self._data is None:
            self._data = response
            return
        self._data = self._combiner(2, [self._data, response])

    def result(self) -> Response:
        """Return the merged response; raise MergeError carrying it if anything failed."""
        if self._data is None:
            response = Response(data={}, is_complete=False)
        else:
            if self._pending != 0 or self._errors:
                self._data.is_complete = False
            response = self._data
        if self._errors:
            raise MergeError(self._errors, response)
        return response


async def _call_with_deadline(
    proxy: Proxy, request: Optional[Request], deadline: Optional[float]
) -> Optional[Response]:
    if deadline is None:
        return await proxy(request)
    remaining = max(deadline - asyncio.get_running_loop().time(), 0.0)
    try:
        return await asyncio.wait_for(proxy(request), remaining)
    except asyncio.TimeoutError:
        raise TimeoutError(_DEADLINE_EXCEEDED) from None


def _restore(request: Request, snapshot: Request) -> None:
    for item in fields(Request):
        setattr(request, item.name, getattr(snapshot, item.name))


async def _request_part(
    proxy: Proxy, request: Optional[Request], deadline: Optional[float], sequential: bool = False
) -> Response:
    snapshot = clone_request(request) if sequential and request is not None else None
    try:
        response = await _call_with_deadline(proxy, request, deadline)
    finally:
        if snapshot is not None:
            _restore(request, snapshot)
    if response is None:
        raise _NULL_RESULT
    return response


def _deadline(timeout: float) -> Optional[float]:
    if timeout <= 0:
        return None
    return asyncio.get_running_loop().time() + timeout


def _parallel_merge(timeout: float, combiner: ResponseCombiner, proxies: tuple) -> Proxy:
    async def proxy(request: Optional[Request]) -> Response:
        deadline = _deadline(timeout)
        loop = asyncio.get_running_loop()
        tasks = [loop.create_task(_request_part(p, request, deadline)) for p in proxies]
        acc = IncrementalMergeAccumulator(len(proxies), combiner)
        try:
            for finished in asyncio.as_completed(tasks):
                try:
                    response = await finished
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    acc.merge(None, exc)
                else:
                    acc.merge(response, None)
        finally:
            for task in tasks:
                task.cancel()
        return acc.result()

    return proxy


def _float32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


def _format_float32(value: float) -> str:
    """Shortest exponent notation that round-trips as a 32-bit float."""
    if math.isnan(value):
        return "NaN"
    try:
        single = _float32(value)
    except OverflowError:
        single = math.copysign(math.inf, value)
    if math.isinf(single):
        return "+Inf" if single > 0 else "-Inf"
    for precision in range(1, 10):
        text = f"{single:.{precision - 1}E}"
        if _float32(float(text)) == single:
            return text
    return f"{single:.8E}"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "<nil>"
    return str(value)


def _param_value(value: Any) -> str:
    if isinstance(value, list):
        return ",".join(_format_value(item) for item in value)
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float32(value)
    return _format_value(value)


def _inject_params(pattern: str, index: int, parts: list, request: Request) -> None:
    for match in _MERGE_KEY_RE.finditer(pattern):
        response_number = int(match.group(1))
        if response_number >= index or parts[response_number] is None:
            continue
        path = match.group(2)
        data = parts[response_number].data or {}
        keys = path.split(".")
        for key in keys[:-1]:
            if key not in data:
                break
            if isinstance(data[key], dict):
                data = data[key]
        if keys[-1] not in data:
            continue
        request.params[f"Resp{match.group(1)}_{path}"] = _param_value(data[keys[-1]])


def _sequential_merge(
    patterns: list[str], timeout: float, combiner: ResponseCombiner, proxies: tuple
) -> Proxy:
    async def proxy(request: Request) -> Response:
        deadline = _deadline(timeout)
        parts: list[Optional[Response]] = [None] * len(proxies)
        acc = IncrementalMergeAccumulator(len(proxies), combiner)
        for index, nxt in enumerate(proxies):
            if index > 0:
                _inject_params(patterns[index], index, parts, request)
            try:
                response = await _request_part(nxt, request, deadline, sequential=True)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if index == 0:
                    raise
                acc.merge(None, exc)
                break
            acc.merge(response, None)
            if not response.is_complete:
                break
            parts[index] = response
        return acc.result()

    return proxy


def _should_run_sequential(endpoint_config: EndpointConfig) -> bool:
    section = endpoint_config.extra_config.get(NAMESPACE)
    if not isinstance(section, dict):
        return False
    flag = section.get(_SEQUENTIAL_KEY)
    return isinstance(flag, bool) and flag


def new_merge_data_middleware(endpoint_config: EndpointConfig) -> Middleware:
    """Build a middleware merging the responses of all the endpoint's backends.

    Backends get 85% of the endpoint timeout; a non-positive timeout sets no deadline.
    Failures raise MergeError carrying the partial response.
    """
    total = len(endpoint_config.backend)
    if total == 0:
        raise NoBackendsError()
    if total == 1:
        return empty_middleware
    service_timeout = 0.85 * endpoint_config.timeout
    combiner = get_response_combiner(endpoint_config.extra_config)

    def middleware(*proxies: Proxy) -> Proxy:
        if len(proxies) != total:
            raise NotEnoughProxiesError()
        if not _should_run_sequential(endpoint_config):
            return _parallel_merge(service_timeout, combiner, proxies)
        patterns = [b.url_pattern for b in endpoint_config.backend]
        return _sequential_merge(patterns, service_timeout, combiner, proxies)

    return middleware