"""Composable async proxy middlewares for API gateways: merging, shadowing, static data and modifiers."""

__version__ = "0.1.0"