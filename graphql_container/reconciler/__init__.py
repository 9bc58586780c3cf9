"""Reconciliation of declared data needs against a component's lifecycle."""

from .binder import RequestBinder
from .controller import GraphQLContainer, graphql_container
from .executor import RequestExecutor, normalize_response
from .query import QueryLifecycleController, QueryStatus
from .state import LocalState, StateChange
from .subscriptions import SubscriptionLifecycleController
from .variables import resolve_variables, variables_changed

__all__ = [
    "GraphQLContainer",
    "graphql_container",
    "LocalState",
    "StateChange",
    "QueryLifecycleController",
    "QueryStatus",
    "RequestBinder",
    "RequestExecutor",
    "SubscriptionLifecycleController",
    "normalize_response",
    "resolve_variables",
    "variables_changed",
]
