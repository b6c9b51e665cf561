import random

import pytest

from src.orchestrator.graph import build_validated_graph
from src.orchestrator.scheduler import compute_critical_path, compute_execution_order


def _random_dag_steps(make_step, seed: int):
    rng = random.Random(seed)
    n = rng.randint(1, 50)
    ids = list(range(1, n + 1))
    rng.shuffle(ids)

    steps = []
    for i, step_id in enumerate(ids):
        earlier = ids[:i]
        deps = rng.sample(earlier, k=rng.randint(0, min(len(earlier), 4)))
        steps.append(make_step(step_id, deps=deps))
    rng.shuffle(steps)
    return steps


def test_diamond_orders_by_dependency_then_id(make_step):
    graph = build_validated_graph([
        make_step(1),
        make_step(2, deps=[1]),
        make_step(3, deps=[1]),
        make_step(4, deps=[2, 3]),
    ])

    assert compute_execution_order(graph) == [1, 2, 3, 4]


def test_independent_steps_keep_ascending_id_order(make_step):
    graph = build_validated_graph([make_step(3), make_step(1), make_step(2)])

    assert compute_execution_order(graph) == [1, 2, 3]


@pytest.mark.parametrize("seed", range(30))
def test_every_dependency_precedes_its_dependent(make_step, seed):
    steps = _random_dag_steps(make_step, seed)
    graph = build_validated_graph(steps)

    order = compute_execution_order(graph)

    assert sorted(order) == sorted(s.id for s in steps)
    position = {step_id: i for i, step_id in enumerate(order)}
    for step in steps:
        for dep_id in step.dependencies:
            assert position[dep_id] < position[step.id]


@pytest.mark.parametrize("seed", range(5))
def test_order_is_deterministic(make_step, seed):
    steps = _random_dag_steps(make_step, seed)

    first = compute_execution_order(build_validated_graph(steps))
    second = compute_execution_order(build_validated_graph(list(reversed(steps))))

    assert first == second


def test_critical_path_follows_longest_weighted_chain(make_step):
    graph = build_validated_graph([
        make_step(1, minutes=5),
        make_step(2, deps=[1], minutes=10),
        make_step(3, deps=[1], minutes=1),
        make_step(4, deps=[2, 3], minutes=2),
    ])

    assert compute_critical_path(graph) == [1, 2, 4]


def test_critical_path_tie_prefers_lower_ids(make_step):
    graph = build_validated_graph([make_step(2, minutes=5), make_step(1, minutes=5)])

    assert compute_critical_path(graph) == [1]


def test_critical_path_of_empty_graph(make_step):
    assert compute_critical_path({}) == []
    assert compute_execution_order({}) == []
