"""Declaration and settings models using Pydantic."""

from typing import Any, Callable, Dict, Mapping, Optional, Union

import structlog
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.logging import setup_logging

# props -> variables
VariableBuilder = Callable[[Mapping[str, Any]], Optional[Dict[str, Any]]]

# (props + data, response) -> partial local state
ResponseTransform = Callable[[Dict[str, Any], Any], Optional[Dict[str, Any]]]


class QueryDeclaration(BaseModel):
    """A query or mutation callable exposed to the rendered component."""

    document: str = Field(
        min_length=1,
        validation_alias=AliasChoices("document", "query"),
        description="GraphQL document sent to the client",
    )
    transform: Optional[ResponseTransform] = Field(
        default=None,
        description="Maps (props + data, response) to a partial local state",
    )

    @classmethod
    def coerce(cls, value: Union[str, "QueryDeclaration", Mapping[str, Any]]) -> "QueryDeclaration":
        """Normalize a bare document string or a mapping into a declaration."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(document=value)
        return cls.model_validate(value)


class SubscriptionDeclaration(BaseModel):
    """A live subscription kept in sync with the component's properties."""

    document: str = Field(
        min_length=1,
        validation_alias=AliasChoices("document", "query"),
        description="GraphQL subscription document",
    )
    variables: Optional[VariableBuilder] = Field(
        default=None,
        description="Builds subscription variables from properties",
    )
    transform: Optional[ResponseTransform] = Field(
        default=None,
        description="Maps (props + data, incoming data) to a partial local state",
    )


def _wrap_bare_documents(value: Any) -> Any:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        # None, "" and {} mean "not declared"
        return {
            name: {"document": decl} if isinstance(decl, str) else decl
            for name, decl in value.items()
            if decl not in (None, "", {})
        }
    return value


class ContainerOptions(BaseModel):
    """Data needs declared for a container."""

    query: Optional[str] = Field(
        default=None,
        description="Primary query, run on mount and when its variables change",
    )
    variables: Optional[VariableBuilder] = Field(
        default=None,
        description="Builds the primary query variables from properties",
    )
    mutations: Dict[str, QueryDeclaration] = Field(
        default_factory=dict,
        description="Mutations exposed as bound callables",
    )
    queries: Dict[str, QueryDeclaration] = Field(
        default_factory=dict,
        description="Queries exposed as bound callables",
    )
    subscriptions: Dict[str, SubscriptionDeclaration] = Field(
        default_factory=dict,
        description="Live subscriptions keyed by identifier",
    )

    @field_validator("query", mode="before")
    @classmethod
    def _empty_query_is_undeclared(cls, value: Any) -> Any:
        return value or None

    @field_validator("mutations", "queries", "subscriptions", mode="before")
    @classmethod
    def _normalize_declarations(cls, value: Any) -> Any:
        return _wrap_bare_documents(value)


class ContainerSettings(BaseSettings):
    """Runtime settings for containers and the bundled GraphQL client."""

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log format (json, plain)"
    )

    # GraphQL client configuration
    graphql_url: str = Field(
        default="http://localhost:8080/graphql",
        description="HTTP endpoint for queries and mutations"
    )
    graphql_ws_url: Optional[str] = Field(
        default=None,
        description="WebSocket endpoint for subscriptions (None disables them)"
    )
    timeout: int = Field(
        default=10,
        ge=1,
        le=60,
        description="GraphQL request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum number of retry attempts on transport failures"
    )

    # Metrics configuration
    metrics_enabled: bool = Field(
        default=True,
        description="Record Prometheus metrics"
    )

    # Reconciliation behaviour
    clear_error_on_success: bool = Field(
        default=True,
        description="Reset the primary query error after a successful response"
    )
    discard_stale_responses: bool = Field(
        default=False,
        description="Drop primary query responses superseded by a newer trigger"
    )
    cancel_on_unmount: bool = Field(
        default=True,
        description="Cancel in-flight primary queries when the container unmounts"
    )

    def configure_logging(self) -> structlog.stdlib.BoundLogger:
        """Apply ``log_level`` and ``log_format`` to structlog and the root logger."""
        return setup_logging(self.log_level, self.log_format)

    class Config:
        """Pydantic configuration."""
        env_prefix = "GQLC_"
        case_sensitive = False
        validate_assignment = True
