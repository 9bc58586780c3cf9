"""Bound query and mutation callables exposed to the rendered component."""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from ..config import QueryDeclaration
from .executor import RequestExecutor

BoundRequest = Callable[..., Awaitable[Dict[str, Any]]]


class RequestBinder:
    """Turns declarations into callables that forward caller variables."""

    def __init__(
        self,
        executor: RequestExecutor,
        guard: Optional[Callable[[], None]] = None,
    ) -> None:
        """Initialize request binder.

        Args:
            executor: Executor the bound callables delegate to
            guard: Called before every request; raises to refuse it
        """
        self.executor = executor
        self.guard = guard

    def bind(
        self,
        declarations: Optional[Mapping[str, Union[str, QueryDeclaration, Mapping[str, Any]]]],
        kind: str = "query",
    ) -> Dict[str, BoundRequest]:
        """Bind every declaration by name.

        Bare document strings become declarations without a transform.
        Failures of a bound callable propagate to whoever awaited it.
        """
        if not declarations:
            return {}

        bound: Dict[str, BoundRequest] = {}
        for name, declaration in declarations.items():
            if declaration:
                bound[name] = self._bind_one(name, QueryDeclaration.coerce(declaration), kind)
        return bound

    def _bind_one(self, name: str, declaration: QueryDeclaration, kind: str) -> BoundRequest:
        async def request(variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
            if self.guard is not None:
                self.guard()
            return await self.executor.execute(
                declaration.document, variables, declaration.transform, kind=kind
            )

        request.__name__ = name
        request.__qualname__ = f"{kind}.{name}"
        return request
