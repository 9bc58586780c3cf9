"""Bind declarative GraphQL data needs to the lifecycle of a rendered component."""

from .client import GraphQLClient, SubscribingGraphQLClient
from .config import ContainerOptions, ContainerSettings, QueryDeclaration, SubscriptionDeclaration
from .exceptions import ClientCapabilityError, ContainerDisposedError, GraphQLContainerError
from .reconciler import GraphQLContainer, LocalState, QueryStatus, graphql_container

__version__ = "0.1.0"

__all__ = [
    "GraphQLContainer",
    "graphql_container",
    "GraphQLClient",
    "SubscribingGraphQLClient",
    "ContainerOptions",
    "ContainerSettings",
    "QueryDeclaration",
    "SubscriptionDeclaration",
    "LocalState",
    "QueryStatus",
    "GraphQLContainerError",
    "ClientCapabilityError",
    "ContainerDisposedError",
]
