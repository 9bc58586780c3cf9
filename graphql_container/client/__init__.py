"""Data-access clients."""

from .graphql import (
    DataClient,
    GraphQLClient,
    SubscribingGraphQLClient,
    SubscriptionCallback,
    SubscriptionHandle,
)

__all__ = [
    "DataClient",
    "GraphQLClient",
    "SubscribingGraphQLClient",
    "SubscriptionCallback",
    "SubscriptionHandle",
]
