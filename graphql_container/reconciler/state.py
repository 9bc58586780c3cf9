"""Local state bag and change tracking for a container instance."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

INITIAL_STATE: Dict[str, Any] = {
    "loading": False,
    "loaded": False,
    "error": None,
}


@dataclass
class StateChange:
    """Represents one merge into a container's local state."""

    container: str
    timestamp: datetime
    values: Dict[str, Any]
    changed_fields: Set[str] = field(default_factory=set)

    @property
    def has_changes(self) -> bool:
        """Check if the merge changed at least one key."""
        return len(self.changed_fields) > 0


StateListener = Callable[[StateChange], None]


class LocalState:
    """State bag owned by a single container.

    Holds ``loading``, ``loaded`` and ``error`` for the primary query plus
    any keys written by transforms and subscriptions. Keys are never
    removed. After ``dispose`` every merge is dropped.
    """

    def __init__(self, container: str = "container") -> None:
        """Initialize local state.

        Args:
            container: Name of the owning container, used in logs
        """
        self.container = container
        self._values: Dict[str, Any] = dict(INITIAL_STATE)
        self._listeners: List[StateListener] = []
        self._disposed = False

    @property
    def loading(self) -> bool:
        return bool(self._values["loading"])

    @property
    def loaded(self) -> bool:
        return bool(self._values["loaded"])

    @property
    def error(self) -> Optional[Any]:
        return self._values["error"]

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def snapshot(self) -> Dict[str, Any]:
        """Return a shallow copy of the current values."""
        return dict(self._values)

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback run after every merge that changes something."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _find_changed_fields(self, patch: Mapping[str, Any]) -> Set[str]:
        """Find keys of ``patch`` whose value differs from the stored one."""
        changed_fields = set()

        for key, new_value in patch.items():
            if key not in self._values:
                changed_fields.add(key)
                continue

            old_value = self._values[key]
            if old_value is new_value:
                continue
            try:
                if old_value != new_value:
                    changed_fields.add(key)
            except Exception:
                changed_fields.add(key)

        return changed_fields

    def merge(self, patch: Optional[Mapping[str, Any]]) -> StateChange:
        """Shallow-merge ``patch`` into the state.

        Args:
            patch: Keys to write; None merges nothing

        Returns:
            StateChange describing which keys changed
        """
        now = datetime.now(timezone.utc)

        if self._disposed:
            logger.debug(
                "Dropped state write after teardown",
                container=self.container,
                keys=sorted(patch or {}),
            )
            return StateChange(container=self.container, timestamp=now, values={})

        if not patch:
            return StateChange(container=self.container, timestamp=now, values={})

        changed_fields = self._find_changed_fields(patch)
        self._values.update(patch)

        state_change = StateChange(
            container=self.container,
            timestamp=now,
            values=dict(patch),
            changed_fields=changed_fields,
        )

        if state_change.has_changes:
            logger.debug(
                "Local state changed",
                container=self.container,
                changed_fields=sorted(changed_fields),
            )
            for listener in list(self._listeners):
                listener(state_change)

        return state_change

    def dispose(self) -> None:
        """Stop accepting writes and drop all listeners."""
        self._disposed = True
        self._listeners.clear()
