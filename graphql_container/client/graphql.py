"""GraphQL data-access clients used by containers."""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

import structlog
from gql import Client, gql
from gql.transport.aiohttp import AIOHTTPTransport
from gql.transport.exceptions import TransportQueryError, TransportServerError
from gql.transport.websockets import WebsocketsTransport

from ..config import ContainerSettings

logger = structlog.get_logger(__name__)

# (error, data) -> None
SubscriptionCallback = Callable[[Optional[BaseException], Optional[Dict[str, Any]]], Any]


@runtime_checkable
class DataClient(Protocol):
    """Client capability a container needs.

    ``subscribe(document, variables, callback)`` and ``unsubscribe(handle)``
    are optional; containers check for them before use.
    """

    async def query(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        ...


def _short(document: str) -> str:
    return document[:100] + "..." if len(document) > 100 else document


def _error_dicts(errors: Any) -> list:
    """Return GraphQL errors as plain dicts."""
    if not errors:
        return []
    result = []
    for error in errors:
        if isinstance(error, dict):
            result.append(error)
        elif hasattr(error, "formatted"):
            result.append(error.formatted)
        else:
            result.append({"message": str(error)})
    return result


class GraphQLClient:
    """Async GraphQL client for queries and mutations over HTTP."""

    def __init__(
        self,
        url: str,
        timeout: int = 10,
        max_retries: int = 3,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize GraphQL client.

        Args:
            url: GraphQL HTTP endpoint
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts on transport failures
            headers: Extra HTTP headers sent with every request
        """
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.headers = headers or {}

        self.transport: Optional[AIOHTTPTransport] = None
        self.client: Optional[Client] = None

        logger.info(
            "Initialized GraphQL client",
            url=self.url,
            timeout=timeout,
            max_retries=max_retries
        )

    @classmethod
    def from_settings(cls, settings: ContainerSettings) -> "GraphQLClient":
        """Build a client from settings.

        Returns a ``SubscribingGraphQLClient`` when a WebSocket URL is configured.
        """
        if settings.graphql_ws_url:
            return SubscribingGraphQLClient(
                url=settings.graphql_url,
                ws_url=settings.graphql_ws_url,
                timeout=settings.timeout,
                max_retries=settings.max_retries,
            )
        return cls(
            url=settings.graphql_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
        )

    async def _ensure_client(self) -> Client:
        """Ensure the gql client is initialized."""
        if self.client is None:
            self.transport = AIOHTTPTransport(
                url=self.url,
                headers=self.headers,
                timeout=self.timeout
            )
            self.client = Client(
                transport=self.transport,
                fetch_schema_from_transport=False
            )

        return self.client

    async def query(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Execute a GraphQL query or mutation with retry logic.

        GraphQL-level errors are not retried; they come back in the
        ``errors`` key of the envelope next to any partial ``data``.

        Args:
            document: GraphQL document
            variables: Document variables

        Returns:
            Response envelope ``{"data": ..., "errors": [...]}``

        Raises:
            Exception: If the transport keeps failing after all retries
        """
        client = await self._ensure_client()
        query_obj = gql(document)

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(
                    "Executing GraphQL query",
                    url=self.url,
                    attempt=attempt + 1,
                    query=_short(document)
                )

                result = await client.execute_async(
                    query_obj,
                    variable_values=variables,
                    get_execution_result=True,
                )

                logger.debug(
                    "GraphQL query successful",
                    url=self.url,
                    attempt=attempt + 1
                )

                envelope: Dict[str, Any] = {"data": result.data}
                if result.errors:
                    envelope["errors"] = _error_dicts(result.errors)
                return envelope

            except TransportQueryError as e:
                logger.info(
                    "GraphQL query returned errors",
                    url=self.url,
                    errors=len(e.errors or [])
                )
                return {
                    "data": e.data,
                    "errors": _error_dicts(e.errors) or [{"message": str(e)}],
                }

            except TransportServerError as e:
                logger.warning(
                    "GraphQL query failed",
                    url=self.url,
                    attempt=attempt + 1,
                    error=str(e),
                    will_retry=attempt < self.max_retries
                )

                if attempt == self.max_retries:
                    logger.error(
                        "GraphQL query failed after all retries",
                        url=self.url,
                        max_retries=self.max_retries,
                        error=str(e)
                    )
                    raise

                # Exponential backoff
                await asyncio.sleep(2 ** attempt)

            except Exception as e:
                logger.error(
                    "Unexpected error during GraphQL query",
                    url=self.url,
                    attempt=attempt + 1,
                    error=str(e)
                )

                if attempt == self.max_retries:
                    raise

                await asyncio.sleep(2 ** attempt)

        # This should never be reached
        raise RuntimeError("Query failed after all retries")

    async def health_check(self) -> bool:
        """Check if the GraphQL endpoint is healthy.

        Returns:
            True if endpoint is accessible, False otherwise
        """
        try:
            health_query = """
            query HealthCheck {
                __schema {
                    queryType {
                        name
                    }
                }
            }
            """

            response = await self.query(health_query)
            if response.get("errors"):
                raise RuntimeError(response["errors"][0].get("message", "GraphQL error"))
            logger.debug("GraphQL endpoint health check passed", url=self.url)
            return True

        except Exception as e:
            logger.warning(
                "GraphQL endpoint health check failed",
                url=self.url,
                error=str(e)
            )
            return False

    async def close(self) -> None:
        """Close the GraphQL client and cleanup resources."""
        if self.transport:
            await self.transport.close()
            self.transport = None

        self.client = None

        logger.debug("Closed GraphQL client", url=self.url)


@dataclass(eq=False)
class SubscriptionHandle:
    """Opaque token for a live subscription."""

    id: int
    document: str
    variables: Optional[Dict[str, Any]]
    task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()


class SubscribingGraphQLClient(GraphQLClient):
    """GraphQL client that also streams subscriptions over WebSockets."""

    def __init__(
        self,
        url: str,
        ws_url: str,
        timeout: int = 10,
        max_retries: int = 3,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize subscribing GraphQL client.

        Args:
            url: GraphQL HTTP endpoint for queries and mutations
            ws_url: GraphQL WebSocket endpoint for subscriptions
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts on transport failures
            headers: Extra headers sent with every request and connection
        """
        super().__init__(url, timeout=timeout, max_retries=max_retries, headers=headers)
        self.ws_url = ws_url
        self.ws_transport: Optional[WebsocketsTransport] = None
        self.ws_client: Optional[Client] = None
        self._session: Any = None
        self._connect_lock = asyncio.Lock()
        self._handles: Dict[int, SubscriptionHandle] = {}
        self._ids = itertools.count(1)

    async def _ensure_session(self) -> Any:
        """Connect the WebSocket session once and share it between subscriptions."""
        async with self._connect_lock:
            if self._session is None:
                self.ws_transport = WebsocketsTransport(
                    url=self.ws_url,
                    headers=self.headers,
                    connect_timeout=self.timeout,
                )
                self.ws_client = Client(
                    transport=self.ws_transport,
                    fetch_schema_from_transport=False
                )
                self._session = await self.ws_client.connect_async()
                logger.info("Connected GraphQL subscription session", url=self.ws_url)
            return self._session

    def subscribe(
        self,
        document: str,
        variables: Optional[Dict[str, Any]],
        callback: SubscriptionCallback,
    ) -> SubscriptionHandle:
        """Start a subscription and return its handle immediately.

        ``callback(None, data)`` runs for every result; ``callback(error, None)``
        runs once if the stream fails.
        """
        handle = SubscriptionHandle(
            id=next(self._ids), document=document, variables=variables
        )
        handle.task = asyncio.get_running_loop().create_task(
            self._stream(handle, callback)
        )
        self._handles[handle.id] = handle

        logger.debug(
            "Started GraphQL subscription",
            url=self.ws_url,
            subscription_id=handle.id,
            query=_short(document)
        )
        return handle

    async def _stream(self, handle: SubscriptionHandle, callback: SubscriptionCallback) -> None:
        try:
            session = await self._ensure_session()
            async for data in session.subscribe(
                gql(handle.document), variable_values=handle.variables
            ):
                callback(None, data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "GraphQL subscription failed",
                url=self.ws_url,
                subscription_id=handle.id,
                error=str(e)
            )
            callback(e, None)
        finally:
            self._handles.pop(handle.id, None)

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop a subscription started by ``subscribe``."""
        task = handle.task
        if task is None or task.done():
            logger.debug(
                "Subscription already finished",
                subscription_id=handle.id
            )
            self._handles.pop(handle.id, None)
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        logger.debug("Stopped GraphQL subscription", subscription_id=handle.id)

    async def close(self) -> None:
        """Stop every live subscription and close both transports."""
        for handle in list(self._handles.values()):
            await self.unsubscribe(handle)

        if self.ws_client is not None and self._session is not None:
            await self.ws_client.close_async()
        self._session = None
        self.ws_client = None
        self.ws_transport = None

        await super().close()
