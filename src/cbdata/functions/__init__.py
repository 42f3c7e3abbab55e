"""Transformation functions callable from formulas."""

from cbdata.functions.registry import (
    TransformRegistry,
    TransformSpec,
    default_registry,
    register_transform,
)

__all__ = [
    "TransformRegistry",
    "TransformSpec",
    "default_registry",
    "register_transform",
]
