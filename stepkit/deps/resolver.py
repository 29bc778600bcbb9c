"""Step ordering from execute_before / execute_after constraints."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..steps import StepDescriptor

logger = logging.getLogger(__name__)


class ResolutionFailure(str, Enum):
    """Reasons a set of steps cannot be put into a single order."""
    UNKNOWN_DEPENDENCY = 'unknown_dependency'
    CYCLE = 'cycle'
    UNSATISFIABLE = 'unsatisfiable'
    DUPLICATE_STEP = 'duplicate_step'


@dataclass(frozen=True)
class OrderingConstraint:
    """Step `before` must run before step `after`."""
    before: str
    after: str
    declared_by: str


@dataclass
class ExecutionPlan:
    """Result of step ordering."""
    steps: List[StepDescriptor] = field(default_factory=list)
    failure: Optional[ResolutionFailure] = None
    message: str = ''
    implicated: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True if a total order was found."""
        return self.failure is None

    @property
    def order(self) -> List[str]:
        """Step identities in execution order."""
        return [step.identity for step in self.steps]

    @classmethod
    def failed(cls, failure: ResolutionFailure, message: str, implicated: List[str]) -> 'ExecutionPlan':
        return cls(steps=[], failure=failure, message=message, implicated=implicated)


class StepOrderResolver:
    """
    Orders steps so that every execute_before / execute_after constraint holds.

    Steps keep their declared order unless a constraint says otherwise. Steps
    are placed one at a time in declaration order; before a step is placed its
    predecessors are placed, in the order the constraints were declared. A
    placed step never moves again, so the result is deterministic.
    """

    def order(self, steps: Iterable[StepDescriptor]) -> ExecutionPlan:
        """
        Compute the execution order for `steps`.

        Args:
            steps: Steps in declaration order

        Returns:
            ExecutionPlan with the ordered steps, or a failure marker. Any
            failure is total: no partial order is returned.
        """
        steps = list(steps)

        by_identity: Dict[str, StepDescriptor] = {}
        for step in steps:
            if step.identity in by_identity:
                return self._fail(
                    ResolutionFailure.DUPLICATE_STEP,
                    f"Duplicate step '{step.identity}' declared by '{by_identity[step.identity].path}' "
                    f"and '{step.path}'",
                    [step.identity]
                )
            by_identity[step.identity] = step

        failed = self._validate_references(steps, by_identity)
        if failed:
            return failed

        predecessors: Dict[str, List[str]] = {identity: [] for identity in by_identity}
        for constraint in self.constraints(steps):
            if constraint.before not in predecessors[constraint.after]:
                predecessors[constraint.after].append(constraint.before)

        placed: List[str] = []
        position: Dict[str, int] = {}
        for step in steps:
            cycle = self._place(step.identity, predecessors, placed, position, [])
            if cycle:
                return self._fail(
                    ResolutionFailure.CYCLE,
                    f"Cyclic dependency between steps: {' -> '.join(cycle)}",
                    cycle[:-1]
                )

        return ExecutionPlan(steps=[by_identity[identity] for identity in placed])

    def constraints(self, steps: Iterable[StepDescriptor]) -> List[OrderingConstraint]:
        """
        Normalize both constraint forms into directed edges.

        execute_after edges come first, then execute_before edges, each group
        in declaration order.
        """
        steps = list(steps)
        edges: List[OrderingConstraint] = []
        for step in steps:
            for target in step.execute_after:
                edges.append(OrderingConstraint(before=target, after=step.identity, declared_by=step.identity))
        for step in steps:
            for target in step.execute_before:
                edges.append(OrderingConstraint(before=step.identity, after=target, declared_by=step.identity))
        return edges

    def _validate_references(
        self,
        steps: List[StepDescriptor],
        by_identity: Dict[str, StepDescriptor]
    ) -> Optional[ExecutionPlan]:
        """Reject references to unknown steps and constraints a single step cannot meet."""
        for step in steps:
            for target in step.execute_after + step.execute_before:
                if target not in by_identity:
                    return self._fail(
                        ResolutionFailure.UNKNOWN_DEPENDENCY,
                        f"Step '{step.identity}' depends on unknown step '{target}'. "
                        f"Known steps: {sorted(by_identity)}",
                        [step.identity, target]
                    )

        for step in steps:
            if step.identity in step.execute_after or step.identity in step.execute_before:
                return self._fail(
                    ResolutionFailure.UNSATISFIABLE,
                    f"Step '{step.identity}' cannot be ordered relative to itself",
                    [step.identity]
                )

            conflicting = [t for t in step.execute_before if t in step.execute_after]
            if conflicting:
                return self._fail(
                    ResolutionFailure.UNSATISFIABLE,
                    f"Step '{step.identity}' must run both before and after '{conflicting[0]}'",
                    [step.identity, conflicting[0]]
                )

        return None

    def _place(
        self,
        identity: str,
        predecessors: Dict[str, List[str]],
        placed: List[str],
        position: Dict[str, int],
        pending: List[str]
    ) -> Optional[List[str]]:
        """
        Append `identity` to `placed` after all of its predecessors.

        Returns:
            The dependency chain that loops back on itself, or None on success
        """
        if identity in position:
            return None
        if identity in pending:
            return pending[pending.index(identity):] + [identity]

        pending.append(identity)
        for predecessor in predecessors[identity]:
            cycle = self._place(predecessor, predecessors, placed, position, pending)
            if cycle:
                return cycle
        pending.pop()

        position[identity] = len(placed)
        placed.append(identity)
        return None

    def _fail(self, failure: ResolutionFailure, message: str, implicated: List[str]) -> ExecutionPlan:
        logger.error(message)
        return ExecutionPlan.failed(failure, message, implicated)
