"""Declarations and settings with Pydantic models."""

from .settings import (
    ContainerOptions,
    ContainerSettings,
    QueryDeclaration,
    ResponseTransform,
    SubscriptionDeclaration,
    VariableBuilder,
)

__all__ = [
    "ContainerOptions",
    "ContainerSettings",
    "QueryDeclaration",
    "SubscriptionDeclaration",
    "ResponseTransform",
    "VariableBuilder",
]
