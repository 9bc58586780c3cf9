"""Subscription lifecycle keyed by declaration identifier."""

import asyncio
import inspect
from typing import Any, Callable, Dict, Mapping, Optional

import structlog
from prometheus_client import Counter, Gauge

from ..client import DataClient
from ..config import SubscriptionDeclaration
from .executor import apply_transform
from .state import LocalState
from .variables import resolve_variables, variables_changed

logger = structlog.get_logger(__name__)

# Prometheus metrics
ACTIVE_SUBSCRIPTIONS = Gauge(
    "graphql_container_active_subscriptions",
    "Number of subscriptions currently held by containers",
)

SUBSCRIPTION_EVENTS = Counter(
    "graphql_container_subscription_events_total",
    "Subscription deliveries received by containers",
    ["status"],
)


class SubscriptionLifecycleController:
    """Creates, replaces and disposes a container's subscriptions.

    Every handle in ``handles`` belongs to a subscription that is still
    live against the client. A handle is removed from the table before
    it is disposed, and the old handle is always disposed before its
    replacement is created. Syncs run one at a time, and nothing is
    subscribed once teardown has started.
    """

    def __init__(
        self,
        client: DataClient,
        state: LocalState,
        declarations: Dict[str, SubscriptionDeclaration],
        external_state: Callable[[], Dict[str, Any]],
        metrics_enabled: bool = True,
    ) -> None:
        """Initialize subscription controller.

        Args:
            client: Data-access client, optionally with subscribe/unsubscribe
            state: Local state that deliveries are merged into
            declarations: Subscription declarations keyed by identifier
            external_state: Returns current properties plus ``data`` (the state snapshot)
            metrics_enabled: Record Prometheus metrics
        """
        self.client = client
        self.state = state
        self.declarations = declarations
        self.external_state = external_state
        self.metrics_enabled = metrics_enabled
        self._handles: Dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self._disposed = False

    @property
    def handles(self) -> Dict[str, Any]:
        """Copy of the identifier -> handle table."""
        return dict(self._handles)

    @property
    def disposed(self) -> bool:
        return self._disposed or self.state.disposed

    @property
    def supports_subscriptions(self) -> bool:
        return callable(getattr(self.client, "subscribe", None))

    async def sync(
        self, prev_props: Optional[Mapping[str, Any]], next_props: Mapping[str, Any]
    ) -> None:
        """Bring subscriptions in line with ``next_props``.

        Args:
            prev_props: Previous properties, None on mount
            next_props: Properties to subscribe with
        """
        async with self._lock:
            for key, declaration in self.declarations.items():
                if self.disposed:
                    logger.debug(
                        "Stopped subscription sync after teardown",
                        container=self.state.container,
                    )
                    return

                if prev_props is not None and not variables_changed(
                    declaration.variables, prev_props, next_props
                ):
                    continue

                while key in self._handles:
                    await self._dispose(key)

                # Teardown may have started while unsubscribing
                if self.disposed:
                    continue

                handle = self._subscribe(key, declaration, next_props)
                if handle is not None:
                    self._handles[key] = handle
                    if self.metrics_enabled:
                        ACTIVE_SUBSCRIPTIONS.inc()

    def _subscribe(
        self, key: str, declaration: SubscriptionDeclaration, props: Mapping[str, Any]
    ) -> Optional[Any]:
        subscribe = getattr(self.client, "subscribe", None)
        if not callable(subscribe):
            logger.debug(
                "Client does not support subscriptions",
                container=self.state.container,
                subscription=key,
            )
            return None

        variables = resolve_variables(declaration.variables, props)
        slot: Dict[str, Any] = {}
        handle = subscribe(
            declaration.document, variables, self._make_callback(key, declaration, slot)
        )
        slot["handle"] = handle

        logger.info(
            "Subscribed",
            container=self.state.container,
            subscription=key,
            variables=variables,
        )
        return handle

    def _make_callback(
        self, key: str, declaration: SubscriptionDeclaration, slot: Dict[str, Any]
    ) -> Callable[[Optional[BaseException], Any], None]:
        def on_delivery(error: Optional[BaseException], data: Any) -> None:
            if self.state.disposed:
                logger.debug(
                    "Dropped subscription data after teardown",
                    container=self.state.container,
                    subscription=key,
                )
                return

            if error is not None:
                if self.metrics_enabled:
                    SUBSCRIPTION_EVENTS.labels(status="error").inc()
                logger.warning(
                    "Subscription delivered an error",
                    container=self.state.container,
                    subscription=key,
                    error=str(error),
                )
                # The stream is over; forget the handle if it is still the current one
                if "handle" in slot and self._handles.get(key) is slot["handle"]:
                    self._handles.pop(key)
                    if self.metrics_enabled:
                        ACTIVE_SUBSCRIPTIONS.dec()
                return

            if self.metrics_enabled:
                SUBSCRIPTION_EVENTS.labels(status="data").inc()

            if declaration.transform is not None:
                apply_transform(declaration.transform, self.external_state(), data, self.state)
            else:
                self.state.merge({key: data})

        return on_delivery

    async def _dispose(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if handle is None:
            return
        if self.metrics_enabled:
            ACTIVE_SUBSCRIPTIONS.dec()

        unsubscribe = getattr(self.client, "unsubscribe", None)
        if not callable(unsubscribe):
            return

        result = unsubscribe(handle)
        if inspect.isawaitable(result):
            await result

        logger.info(
            "Unsubscribed",
            container=self.state.container,
            subscription=key,
        )

    async def dispose_all(self) -> None:
        """Dispose every held subscription exactly once.

        A sync that is still unsubscribing finishes disposing its handle
        but subscribes nothing afterwards.
        """
        self._disposed = True

        for key in list(self._handles):
            try:
                await self._dispose(key)
            except Exception as e:
                logger.error(
                    "Failed to unsubscribe",
                    container=self.state.container,
                    subscription=key,
                    error=str(e),
                )
