"""Primary query state machine."""

import asyncio
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set

import structlog

from ..config import VariableBuilder
from .executor import RequestExecutor
from .state import LocalState
from .variables import resolve_variables, variables_changed

logger = structlog.get_logger(__name__)


class QueryStatus(Enum):
    """Status of the primary query."""

    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class QueryLifecycleController:
    """Runs the primary query on mount and whenever its variables change.

    Requests are never awaited by the lifecycle notifications that start
    them. A newer trigger does not cancel an older request, so both may
    write state; the last write wins unless ``discard_stale_responses``
    is enabled.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        state: LocalState,
        document: Optional[str],
        variables: Optional[VariableBuilder] = None,
        clear_error_on_success: bool = True,
        discard_stale_responses: bool = False,
    ) -> None:
        """Initialize primary query controller.

        Args:
            executor: Request executor bound to the container's client
            state: Local state written on every transition
            document: Primary query document, None when not declared
            variables: Builds query variables from properties
            clear_error_on_success: Reset ``error`` on a successful response
            discard_stale_responses: Ignore responses superseded by a newer trigger
        """
        self.executor = executor
        self.state = state
        self.document = document
        self.variables = variables
        self.clear_error_on_success = clear_error_on_success
        self.discard_stale_responses = discard_stale_responses

        self.status = QueryStatus.IDLE
        self._generation = 0
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def declared(self) -> bool:
        return bool(self.document)

    @property
    def in_flight(self) -> int:
        """Number of primary query requests still running."""
        return len(self._tasks)

    def start(self, props: Mapping[str, Any]) -> Optional["asyncio.Task[None]"]:
        """Run the query for the mount properties."""
        if not self.declared:
            return None
        return self._trigger(props)

    def refresh(
        self, prev_props: Mapping[str, Any], next_props: Mapping[str, Any]
    ) -> Optional["asyncio.Task[None]"]:
        """Run the query again if its variables changed between the two property sets."""
        if not self.declared:
            return None
        if not variables_changed(self.variables, prev_props, next_props):
            return None
        return self._trigger(next_props)

    def _trigger(self, props: Mapping[str, Any]) -> "asyncio.Task[None]":
        variables = resolve_variables(self.variables, props)
        self._generation += 1
        generation = self._generation

        self.status = QueryStatus.LOADING
        self.state.merge({"loading": True, "loaded": False})

        logger.debug(
            "Primary query triggered",
            container=self.state.container,
            generation=generation,
            variables=variables,
        )

        task = asyncio.get_running_loop().create_task(self._run(generation, variables))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_stale(self, generation: int) -> bool:
        if self.discard_stale_responses and generation != self._generation:
            logger.debug(
                "Discarded stale primary query response",
                container=self.state.container,
                generation=generation,
                latest=self._generation,
            )
            return True
        return False

    async def _run(self, generation: int, variables: Optional[Dict[str, Any]]) -> None:
        try:
            response = await self.executor.run(self.document, variables, kind="primary")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._is_stale(generation):
                return
            self.status = QueryStatus.ERROR
            logger.warning(
                "Primary query failed",
                container=self.state.container,
                error=str(e),
            )
            self.state.merge({"loading": False, "loaded": False, "error": e})
            return

        if self._is_stale(generation):
            return

        if response.get("errors"):
            logger.warning(
                "Primary query returned errors",
                container=self.state.container,
                errors=response["errors"],
            )

        patch: Dict[str, Any] = {"loading": False, "loaded": True}
        if self.clear_error_on_success:
            patch["error"] = None
        patch.update(response.get("data") or {})

        self.status = QueryStatus.LOADED
        self.state.merge(patch)

    async def wait(self) -> None:
        """Wait until every in-flight request has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self, cancel: bool = True) -> None:
        """Cancel in-flight requests and wait for them to unwind.

        With ``cancel=False`` requests keep running; their late writes are
        dropped by the disposed local state.
        """
        if not cancel:
            return
        for task in list(self._tasks):
            task.cancel()
        await self.wait()
