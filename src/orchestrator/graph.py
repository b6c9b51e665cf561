"""Step dependency graphs: construction and cycle detection.

The graph is an id-indexed arena: a dict from step id to GraphNode.
Walks never follow object references, only ids, so a graph can be
rebuilt from a deserialized plan at any time.

Building fails on dangling references before any cycle work runs, so a
structurally broken phase never gets as far as ordering or execution.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from src.errors import DependencyError
from src.orchestrator.schemas import Step

logger = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


@dataclass
class GraphNode:
    step: Step
    depends_on: set[int] = field(default_factory=set)
    blocks: set[int] = field(default_factory=set)


DependencyGraph = dict[int, GraphNode]


def build_dependency_graph(
    steps: Iterable[Step],
    phase_id: Optional[int] = None,
) -> DependencyGraph:
    """Build forward (depends_on) and reverse (blocks) edges for a phase.

    Raises DependencyError for duplicate step ids and for any dependency
    that names a step not present in `steps`.
    """
    graph: DependencyGraph = {}
    for step in steps:
        if step.id in graph:
            raise DependencyError(
                f"duplicate step id {step.id}" + _phase_suffix(phase_id),
                phase_id=phase_id,
            )
        graph[step.id] = GraphNode(step=step, depends_on=set(step.dependencies))

    for step_id in sorted(graph):
        for dep_id in sorted(graph[step_id].depends_on):
            if dep_id not in graph:
                raise DependencyError(
                    f"dangling reference: step {step_id} depends on step {dep_id}, "
                    f"which does not exist" + _phase_suffix(phase_id),
                    missing_id=dep_id,
                    phase_id=phase_id,
                )
            graph[dep_id].blocks.add(step_id)

    return graph


def find_cycle(graph: DependencyGraph) -> Optional[list[int]]:
    """Return the first cycle found as a closed path, e.g. [1, 3, 2, 1].

    Three-colour depth-first walk along depends_on edges with an explicit
    stack. Roots and neighbours are taken in ascending id order, so the
    same graph always yields the same cycle.
    """
    color = {node_id: _WHITE for node_id in graph}

    for root in sorted(graph):
        if color[root] != _WHITE:
            continue

        color[root] = _GREY
        path = [root]
        stack = [iter(sorted(graph[root].depends_on))]

        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                color[path.pop()] = _BLACK
                continue

            if color[child] == _GREY:
                start = path.index(child)
                return path[start:] + [child]

            if color[child] == _WHITE:
                color[child] = _GREY
                path.append(child)
                stack.append(iter(sorted(graph[child].depends_on)))

    return None


def validate_acyclic(graph: DependencyGraph, phase_id: Optional[int] = None) -> None:
    """Raise DependencyError naming the cycle if the graph has one. O(V+E)."""
    cycle = find_cycle(graph)
    if cycle is None:
        return

    path_text = " -> ".join(str(node_id) for node_id in cycle)
    logger.warning(f"Circular dependency detected{_phase_suffix(phase_id)}: {path_text}")
    raise DependencyError(
        f"circular dependency: {path_text}" + _phase_suffix(phase_id),
        cycle=cycle,
        phase_id=phase_id,
    )


def build_validated_graph(
    steps: Iterable[Step],
    phase_id: Optional[int] = None,
) -> DependencyGraph:
    """Build the graph and check it for cycles in one call."""
    graph = build_dependency_graph(steps, phase_id=phase_id)
    validate_acyclic(graph, phase_id=phase_id)
    return graph


def _phase_suffix(phase_id: Optional[int]) -> str:
    return f" (phase {phase_id})" if phase_id is not None else ""
