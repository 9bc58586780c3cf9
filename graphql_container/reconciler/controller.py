"""Container controller that ties data needs to a component's lifecycle."""

from typing import Any, Callable, Dict, Mapping, Optional, Union

import structlog
from prometheus_client import Gauge

from ..client import DataClient
from ..config import ContainerOptions, ContainerSettings
from ..exceptions import ClientCapabilityError, ContainerDisposedError
from .binder import RequestBinder
from .executor import RequestExecutor
from .query import QueryLifecycleController
from .state import LocalState, StateChange
from .subscriptions import SubscriptionLifecycleController

logger = structlog.get_logger(__name__)

MOUNTED_INSTANCES = Gauge(
    "graphql_container_mounted_instances", "Number of mounted containers"
)

OptionsLike = Union[ContainerOptions, Mapping[str, Any]]


def _coerce_options(options: Optional[OptionsLike]) -> ContainerOptions:
    if options is None:
        return ContainerOptions()
    if isinstance(options, ContainerOptions):
        return options
    return ContainerOptions.model_validate(dict(options))


def _component_name(component: Any) -> str:
    if component is None:
        return "container"
    return getattr(component, "__name__", type(component).__name__)


class GraphQLContainer:
    """Binds declared queries, mutations and subscriptions to one component instance.

    The hosting framework calls ``mount`` once, ``update`` on every
    property change and ``unmount`` at teardown. ``render`` produces the
    component's input: the properties, the bound mutation and query
    callables, and the local state under ``data``.
    """

    component: Optional[Callable[..., Any]] = None
    options: ContainerOptions = ContainerOptions()

    def __init__(
        self,
        client: DataClient,
        settings: Optional[ContainerSettings] = None,
        on_render: Optional[Callable[[Any], Any]] = None,
        *,
        component: Optional[Callable[..., Any]] = None,
        options: Optional[OptionsLike] = None,
        name: Optional[str] = None,
    ) -> None:
        """Initialize a container instance.

        Args:
            client: Data-access client with an async ``query``
            settings: Runtime settings, defaults from the environment
            on_render: Called with a fresh render result after every state change
            component: Component callable, overrides the class-level one
            options: Declarations, override the class-level ones
            name: Name used in logs, defaults to the component's name

        Raises:
            ClientCapabilityError: If the client has no callable ``query``
        """
        if not callable(getattr(client, "query", None)):
            raise ClientCapabilityError(
                "Data-access client must provide query(document, variables)",
                capability="query",
            )

        if component is not None:
            self.component = component
        if options is not None:
            self.options = _coerce_options(options)

        self.client = client
        self.settings = settings or ContainerSettings()
        self.name = name or _component_name(self.component)
        self.on_render = on_render

        self.props: Dict[str, Any] = {}
        self.mounted = False
        self.disposed = False

        self.state = LocalState(self.name)
        self.executor = RequestExecutor(
            client,
            self.state,
            self.external_state,
            metrics_enabled=self.settings.metrics_enabled,
        )
        self.query_controller = QueryLifecycleController(
            self.executor,
            self.state,
            self.options.query,
            self.options.variables,
            clear_error_on_success=self.settings.clear_error_on_success,
            discard_stale_responses=self.settings.discard_stale_responses,
        )
        self.subscription_controller = SubscriptionLifecycleController(
            client,
            self.state,
            self.options.subscriptions,
            self.external_state,
            metrics_enabled=self.settings.metrics_enabled,
        )
        self.binder = RequestBinder(self.executor, guard=self._ensure_active)

        if on_render is not None:
            self.state.add_listener(self._rerender)

    def _rerender(self, state_change: StateChange) -> None:
        self.on_render(self.render())

    def _ensure_active(self) -> None:
        if self.disposed:
            raise ContainerDisposedError(
                f"Container {self.name!r} is unmounted", container=self.name
            )

    def external_state(self) -> Dict[str, Any]:
        """Current properties plus the local state under ``data``."""
        return {**self.props, "data": self.state.snapshot()}

    async def mount(self, props: Mapping[str, Any]) -> None:
        """Start the primary query and subscriptions for the first properties."""
        self._ensure_active()
        if self.mounted:
            logger.warning("Container already mounted", container=self.name)
            return

        self.props = dict(props)
        self.mounted = True

        self.query_controller.start(self.props)
        await self.subscription_controller.sync(None, self.props)

        if self.settings.metrics_enabled:
            MOUNTED_INSTANCES.inc()

        logger.info(
            "Mounted container",
            container=self.name,
            primary_query=self.query_controller.declared,
            subscriptions=len(self.subscription_controller.handles),
        )

    async def update(
        self, prev_props: Optional[Mapping[str, Any]], next_props: Mapping[str, Any]
    ) -> None:
        """Reconcile data needs after a property change.

        Args:
            prev_props: Properties before the change, None for the current ones
            next_props: Properties after the change
        """
        self._ensure_active()
        if not self.mounted:
            logger.warning("Update received before mount", container=self.name)
            return

        previous = dict(prev_props) if prev_props is not None else self.props
        self.props = dict(next_props)

        task = self.query_controller.refresh(previous, self.props)
        await self.subscription_controller.sync(previous, self.props)

        logger.debug(
            "Updated container",
            container=self.name,
            refetched=task is not None,
        )

    async def receive_props(self, next_props: Mapping[str, Any]) -> None:
        """Shortcut for ``update`` from the current properties."""
        await self.update(None, next_props)

    async def unmount(self) -> None:
        """Dispose every subscription and stop writing local state."""
        if self.disposed:
            logger.warning("Container already unmounted", container=self.name)
            return

        self.disposed = True
        self.state.dispose()

        await self.query_controller.stop(cancel=self.settings.cancel_on_unmount)
        await self.subscription_controller.dispose_all()

        if self.mounted and self.settings.metrics_enabled:
            MOUNTED_INSTANCES.dec()
        self.mounted = False

        logger.info("Unmounted container", container=self.name)

    async def settle(self) -> None:
        """Wait for every in-flight primary query to finish."""
        await self.query_controller.wait()

    def render_props(self) -> Dict[str, Any]:
        """Build the component input for the current state."""
        return {
            **self.props,
            **self.binder.bind(self.options.mutations, kind="mutation"),
            **self.binder.bind(self.options.queries, kind="query"),
            "data": self.state.snapshot(),
        }

    def render(self) -> Any:
        """Render the component, or return its input when there is none."""
        output = self.render_props()
        if self.component is None:
            return output
        return self.component(**output)


def graphql_container(
    component: Optional[Callable[..., Any]] = None,
    options: Optional[OptionsLike] = None,
    **declarations: Any,
) -> type:
    """Create a container class for ``component``.

    Declarations come either as ``options`` or as keyword arguments
    (``query``, ``variables``, ``mutations``, ``queries``, ``subscriptions``).
    Instances of the returned class take ``(client, settings=None, on_render=None)``.
    """
    if options is not None and declarations:
        raise TypeError("pass declarations either as options or as keyword arguments")

    resolved = _coerce_options(options if options is not None else declarations)
    name = _component_name(component)

    return type(
        f"GraphQL{name[:1].upper()}{name[1:]}",
        (GraphQLContainer,),
        {"component": staticmethod(component) if component else None, "options": resolved},
    )
