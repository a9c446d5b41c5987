"""
Static status-transition graphs for status-bearing entities.
"""

from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Type, Union

from shared.errors import TransitionError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


class ProjectStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Lifecycle:
    """Legal ``(current, requested)`` status pairs for one entity type.

    Re-submitting the current status is a no-op for every state, terminal
    ones included; it is never evaluated against the graph.
    """

    def __init__(self, entity: str, states: Type[Enum],
                 graph: Mapping[Enum, FrozenSet[Enum]]):
        missing = [state for state in states if state not in graph]
        if missing:
            raise ValueError(f"{entity} lifecycle has no entry for {missing}")
        self.entity = entity
        self.states = states
        self.graph: Dict[Enum, FrozenSet[Enum]] = {state: frozenset(graph[state]) for state in states}
        self.logger = get_logger(f"gateway.lifecycle.{entity}")

    def coerce(self, value: Union[str, Enum]):
        return self.states(value)

    def allowed_from(self, current: Union[str, Enum]) -> FrozenSet[Enum]:
        return self.graph[self.coerce(current)]

    def is_terminal(self, state: Union[str, Enum]) -> bool:
        return not self.allowed_from(state)

    def can_transition(self, current: Union[str, Enum], requested: Union[str, Enum]) -> bool:
        return self.coerce(requested) in self.allowed_from(current)

    def validate(self, current: Union[str, Enum], requested: Union[str, Enum],
                 *, metrics: Optional[MetricsCollector] = None) -> bool:
        """Return True for a legal change, False for a no-op; raise otherwise."""
        current_state = self.coerce(current)
        requested_state = self.coerce(requested)

        if requested_state == current_state:
            self._record(metrics, "noop")
            return False

        if requested_state not in self.graph[current_state]:
            self.logger.warning(
                "Invalid status transition",
                from_status=current_state.value,
                to_status=requested_state.value
            )
            self._record(metrics, "rejected")
            raise TransitionError(current_state.value, requested_state.value)

        self._record(metrics, "accepted")
        return True

    def _record(self, metrics: Optional[MetricsCollector], outcome: str) -> None:
        if metrics is not None:
            metrics.increment_counter("status_transitions_total", entity=self.entity, outcome=outcome)


PROJECT_LIFECYCLE = Lifecycle(
    "project",
    ProjectStatus,
    {
        ProjectStatus.PENDING: frozenset({ProjectStatus.ACTIVE, ProjectStatus.CANCELLED}),
        ProjectStatus.ACTIVE: frozenset({ProjectStatus.COMPLETED, ProjectStatus.CANCELLED}),
        ProjectStatus.COMPLETED: frozenset(),
        ProjectStatus.CANCELLED: frozenset(),
    },
)

USER_LIFECYCLE = Lifecycle(
    "user",
    UserStatus,
    {
        UserStatus.ACTIVE: frozenset({UserStatus.INACTIVE}),
        UserStatus.INACTIVE: frozenset({UserStatus.ACTIVE}),
    },
)
