"""Single request execution against the data-access client."""

import time
from typing import Any, Callable, Dict, Mapping, Optional

import structlog
from prometheus_client import Counter, Histogram

from ..client import DataClient
from ..config import ResponseTransform
from .state import LocalState

logger = structlog.get_logger(__name__)

# Prometheus metrics
REQUESTS_TOTAL = Counter(
    "graphql_container_requests_total",
    "Total number of GraphQL requests issued by containers",
    ["kind", "status"],
)

REQUEST_DURATION = Histogram(
    "graphql_container_request_duration_seconds",
    "Time spent waiting for the data-access client",
    ["kind"],
)


def normalize_response(response: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Flatten a response envelope.

    ``data`` keys are lifted to the top level; a non-empty ``errors`` list
    is kept under ``errors``.
    """
    response = response or {}
    normalized: Dict[str, Any] = dict(response.get("data") or {})
    errors = response.get("errors")
    if errors:
        normalized["errors"] = errors
    return normalized


def apply_transform(
    transform: ResponseTransform,
    external_state: Dict[str, Any],
    payload: Any,
    state: LocalState,
) -> None:
    """Run a transform and merge its result into local state."""
    patch = transform(external_state, payload)
    if patch is None:
        return
    if not isinstance(patch, Mapping):
        raise TypeError(
            f"transform must return a mapping or None, got {type(patch).__name__}"
        )
    state.merge(patch)


class RequestExecutor:
    """Issues queries and mutations for one container."""

    def __init__(
        self,
        client: DataClient,
        state: LocalState,
        external_state: Callable[[], Dict[str, Any]],
        metrics_enabled: bool = True,
    ) -> None:
        """Initialize request executor.

        Args:
            client: Data-access client
            state: Local state that transforms write into
            external_state: Returns current properties plus ``data`` (the state snapshot)
            metrics_enabled: Record Prometheus metrics
        """
        self.client = client
        self.state = state
        self.external_state = external_state
        self.metrics_enabled = metrics_enabled

    async def run(
        self,
        document: str,
        variables: Optional[Dict[str, Any]],
        kind: str = "query",
    ) -> Dict[str, Any]:
        """Call the client and return the raw response envelope.

        Client failures propagate unchanged; nothing is retried here.
        """
        start = time.monotonic()
        try:
            response = await self.client.query(document, variables)
        except Exception as e:
            if self.metrics_enabled:
                REQUESTS_TOTAL.labels(kind=kind, status="failed").inc()
            logger.debug(
                "Request failed",
                container=self.state.container,
                kind=kind,
                error=str(e),
            )
            raise
        finally:
            if self.metrics_enabled:
                REQUEST_DURATION.labels(kind=kind).observe(time.monotonic() - start)

        if self.metrics_enabled:
            status = "errors" if (response or {}).get("errors") else "success"
            REQUESTS_TOTAL.labels(kind=kind, status=status).inc()

        return response or {}

    async def execute(
        self,
        document: str,
        variables: Optional[Dict[str, Any]],
        transform: Optional[ResponseTransform] = None,
        kind: str = "query",
    ) -> Dict[str, Any]:
        """Run a request, normalize the response and apply ``transform``.

        Args:
            document: GraphQL document
            variables: Variables passed through to the client
            transform: Optional mapping of (props + data, response) to a state patch
            kind: Metric label for the request

        Returns:
            The normalized response, whether or not a transform ran
        """
        response = normalize_response(await self.run(document, variables, kind=kind))

        if transform is not None:
            apply_transform(transform, self.external_state(), response, self.state)

        return response
