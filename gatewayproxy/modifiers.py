"""Register of request and response modifier factories."""

from __future__ import annotations

from typing import Any, Callable, Optional

from gatewayproxy.registry import Namespaced

NAMESPACE = "gatewayproxy/proxy/plugin"
_REQUEST_NAMESPACE = "gatewayproxy/proxy/plugin/request"
_RESPONSE_NAMESPACE = "gatewayproxy/proxy/plugin/response"

Modifier = Callable[[Any], Any]
ModifierFactory = Callable[[dict[str, Any]], Modifier]

_modifier_register = Namespaced()


def _get_modifier(namespace: str, name: str) -> Optional[ModifierFactory]:
    register = _modifier_register.get(namespace)
    if register is None:
        return None
    factory = register.get(name)
    return factory if callable(factory) else None


def get_request_modifier(name: str) -> Optional[ModifierFactory]:
    """Return the request modifier factory registered as ``name``, or None."""
    return _get_modifier(_REQUEST_NAMESPACE, name)


def get_response_modifier(name: str) -> Optional[ModifierFactory]:
    """Return the response modifier factory registered as ``name``, or None."""
    return _get_modifier(_RESPONSE_NAMESPACE, name)


def register_modifier(
    name: str,
    modifier_factory: ModifierFactory,
    applies_to_request: bool,
    applies_to_response: bool,
) -> None:
    """Register ``modifier_factory`` for requests and/or responses under ``name``."""
    if applies_to_request:
        print("registering request modifier:", name)
        _modifier_register.register(_REQUEST_NAMESPACE, name, modifier_factory)
    if applies_to_response:
        print("registering response modifier:", name)
        _modifier_register.register(_RESPONSE_NAMESPACE, name, modifier_factory)