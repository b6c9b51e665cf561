"""Execution ordering over a validated step graph.

compute_execution_order is a depth-first post-order walk: a step is
appended only after every step it depends on has been appended, which is
already a valid topological order. The list is used as-is.

Both functions expect a graph that passed validate_acyclic.
"""

from typing import Optional

from src.orchestrator.graph import DependencyGraph


def compute_execution_order(graph: DependencyGraph) -> list[int]:
    """Linear order in which every dependency precedes its dependent.

    Roots are taken in ascending id order and dependencies are visited in
    ascending id order, so independent steps keep a deterministic order.
    """
    visited: set[int] = set()
    order: list[int] = []

    for root in sorted(graph):
        if root in visited:
            continue

        visited.add(root)
        stack = [(root, iter(sorted(graph[root].depends_on)))]

        while stack:
            node_id, deps = stack[-1]
            dep_id = next(deps, None)
            if dep_id is None:
                stack.pop()
                order.append(node_id)
                continue
            if dep_id not in visited:
                visited.add(dep_id)
                stack.append((dep_id, iter(sorted(graph[dep_id].depends_on))))

    return order


def compute_critical_path(graph: DependencyGraph) -> list[int]:
    """Longest dependency chain weighted by estimated_minutes.

    Ties prefer lower step ids. Returns the chain from first to last step.
    """
    total: dict[int, int] = {}
    previous: dict[int, Optional[int]] = {}

    for node_id in compute_execution_order(graph):
        node = graph[node_id]
        best_dep: Optional[int] = None
        for dep_id in sorted(node.depends_on):
            if best_dep is None or total[dep_id] > total[best_dep]:
                best_dep = dep_id
        base = total[best_dep] if best_dep is not None else 0
        total[node_id] = base + max(node.step.estimated_minutes, 0)
        previous[node_id] = best_dep

    if not total:
        return []

    end: Optional[int] = min(total, key=lambda n: (-total[n], n))
    path = []
    while end is not None:
        path.append(end)
        end = previous[end]
    path.reverse()
    return path
