import random

import networkx as nx
import pytest

from coloring import ColoredGraph
from tabu_search import (
    ConstantTenure,
    Move,
    NeighborGenerator,
    Pivot,
    PlateauMemory,
    ReactiveTenure,
    RegionTracker,
    SearchState,
    TabuMemory,
    diversify,
    parse_tenure,
    random_move,
    select_move,
)


class ScriptedGenerator:
    def __init__(self, draws):
        self._draws = iter(draws)
        self.calls = 0

    def propose(self, iteration, tenure):
        self.calls += 1
        return next(self._draws)


# 禁忌表


def test_memory_starts_permissive():
    memory = TabuMemory(3, 4)
    assert not any(memory.is_forbidden(v, c, 0) for v in range(3) for c in range(1, 5))


def test_refresh_forbids_until_iteration_plus_tenure():
    memory = TabuMemory(2, 3)
    memory.refresh(1, 2, iteration=3, tenure=5)
    assert memory.is_forbidden(1, 2, 7)
    assert not memory.is_forbidden(1, 2, 8)
    assert not memory.is_forbidden(1, 3, 4)


def test_zero_tenure_has_no_memory_effect():
    memory = TabuMemory(2, 2)
    memory.refresh(0, 1, iteration=4, tenure=0)
    assert not memory.is_forbidden(0, 1, 4)


def test_mark_current_coloring_never_lowers_entries():
    memory = TabuMemory(3, 2)
    memory.mark_current_coloring([1, 2, 1], iteration=2, tenure=10)
    assert all(memory.is_forbidden(v, c, 11) for v, c in enumerate([1, 2, 1]))
    assert not any(memory.is_forbidden(v, c, 12) for v, c in enumerate([1, 2, 1]))
    assert not memory.is_forbidden(0, 2, 0)

    memory.mark_current_coloring([1, 1, 1], iteration=3, tenure=1)
    assert memory.is_forbidden(0, 1, 11)
    assert memory.is_forbidden(1, 1, 3) and not memory.is_forbidden(1, 1, 4)
    assert memory.is_forbidden(1, 2, 11)


# 禁忌长度策略


def test_constant_tenure():
    policy = ConstantTenure(7)
    assert policy.tenure(0, 0) == 7
    assert policy.tenure(100, 5000) == 7


def test_reactive_tenure_grows_with_conflicts_and_stagnation():
    policy = ReactiveTenure(10, 0.6, 1000)
    assert policy.tenure(0, 0) == 10
    assert policy.tenure(7, 2500) == 16
    assert policy.tenure(7, 2500) > policy.tenure(7, 0) > policy.tenure(0, 0)


def test_reactive_tenure_is_clamped_at_zero():
    assert ReactiveTenure(-20, 0.5, 10).tenure(4, 0) == 0


@pytest.mark.parametrize("build", [lambda: ConstantTenure(-1), lambda: ReactiveTenure(1, 0.5, 0)])
def test_invalid_tenure_parameters(build):
    with pytest.raises(ValueError):
        build()


@pytest.mark.parametrize(
    "text, expected",
    [
        ("7", ConstantTenure(7)),
        (" 0 ", ConstantTenure(0)),
        ("reactive", ReactiveTenure()),
        ("reactive:5,0.25,100", ReactiveTenure(5, 0.25, 100)),
    ],
)
def test_parse_tenure(text, expected):
    policy = parse_tenure(text)
    assert policy == expected
    assert parse_tenure(policy.describe()) == policy


@pytest.mark.parametrize("text", ["abc", "reactive:1,2", "reactive:1,0.5,0"])
def test_parse_tenure_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_tenure(text)


# 邻居生成


def test_random_move_always_changes_the_color(rng):
    g = ColoredGraph(nx.cycle_graph(6), 3, [1, 2, 3, 1, 2, 3])
    for _ in range(200):
        move = random_move(g, rng)
        assert 0 <= move.vertex < g.n
        assert 1 <= move.color <= g.k
        assert move.color != g.colors[move.vertex]
        assert move.delta == g.eval_delta(move.vertex, move.color)


def test_admissible_proposal_refreshes_its_pair(rng):
    g = ColoredGraph(nx.cycle_graph(4), 2, [1, 2, 1, 2])
    memory = TabuMemory(g.n, g.k)
    generator = NeighborGenerator(g, memory, rng)
    move, admissible = generator.propose(iteration=3, tenure=4)
    assert admissible
    assert memory.is_forbidden(move.vertex, move.color, 6)
    assert not memory.is_forbidden(move.vertex, move.color, 7)


def test_forbidden_proposal_is_rejected_without_aspiration(rng):
    g = ColoredGraph(nx.empty_graph(2), 2, [1, 1])
    memory = TabuMemory(g.n, g.k)
    for v in range(g.n):
        memory.refresh(v, 2, iteration=0, tenure=100)
    generator = NeighborGenerator(g, memory, rng)
    move, admissible = generator.propose(iteration=5, tenure=3)
    assert not admissible
    assert move.color == 2
    assert not memory.is_forbidden(0, 2, 100)


def test_forbidden_move_beating_best_is_admissible(rng, single_edge):
    memory = TabuMemory(single_edge.n, single_edge.k)
    for v in range(single_edge.n):
        memory.refresh(v, 2, iteration=0, tenure=100)
    generator = NeighborGenerator(single_edge, memory, rng)
    move, admissible = generator.propose(iteration=5, tenure=3)
    assert admissible
    assert move.delta == -1


# 候选选择


def test_ties_favor_the_latest_candidate():
    generator = ScriptedGenerator(
        [(Move(0, 2, 1), True), (Move(1, 2, -1), True), (Move(2, 2, -1), True)]
    )
    move, aspired = select_move(generator, 0, 5, neigh_iter=2, max_seed_draws=10)
    assert move == Move(2, 2, -1)
    assert not aspired


def test_worsening_move_is_still_applied():
    generator = ScriptedGenerator([(Move(0, 2, 3), True), (Move(1, 3, 2), True)])
    move, aspired = select_move(generator, 0, 5, neigh_iter=1, max_seed_draws=10)
    assert move == Move(1, 3, 2)
    assert not aspired


def test_seeding_redraws_until_admissible():
    generator = ScriptedGenerator(
        [(Move(0, 2, -5), False), (Move(1, 2, 4), False), (Move(2, 2, 2), True), (Move(3, 2, 3), True)]
    )
    move, aspired = select_move(generator, 0, 5, neigh_iter=1, max_seed_draws=10)
    assert generator.calls == 4
    assert move == Move(2, 2, 2)
    assert not aspired


def test_forbidden_candidates_are_ignored_when_one_is_admissible():
    generator = ScriptedGenerator([(Move(0, 2, 5), True), (Move(1, 2, -3), False)])
    move, aspired = select_move(generator, 0, 5, neigh_iter=1, max_seed_draws=10)
    assert move == Move(0, 2, 5)
    assert not aspired


def test_aspiration_takes_best_forbidden_when_everything_is_forbidden():
    generator = ScriptedGenerator(
        [(Move(0, 2, 3), False), (Move(1, 2, 1), False), (Move(2, 2, 1), False), (Move(3, 2, 2), False)]
    )
    move, aspired = select_move(generator, 0, 5, neigh_iter=2, max_seed_draws=2)
    assert generator.calls == 4
    assert move == Move(2, 2, 1)
    assert aspired


def test_aspiration_fires_with_a_fully_forbidden_table(rng, odd_cycle):
    memory = TabuMemory(odd_cycle.n, odd_cycle.k)
    for v in range(odd_cycle.n):
        for c in range(1, odd_cycle.k + 1):
            memory.refresh(v, c, iteration=0, tenure=1000)
    # 历史最优设为 0，任何移动都无法特赦：每次抽样都被禁忌
    odd_cycle.nb_conflict_min = 0
    generator = NeighborGenerator(odd_cycle, memory, rng)
    move, aspired = select_move(generator, 1, 5, neigh_iter=3, max_seed_draws=odd_cycle.n * 2)
    assert aspired
    assert move.color != odd_cycle.colors[move.vertex]


# 区域跟踪


def _tracker(g, threshold):
    tracker = RegionTracker(g, threshold)
    return tracker, SearchState(pivot=tracker.start())


def test_radius_is_floor_of_threshold_times_n():
    g = ColoredGraph(nx.path_graph(9), 2, [1] * 9)
    assert RegionTracker(g, 0.25).radius == 2
    assert RegionTracker(g, 0.0).radius == 0


def test_new_region_resets_revisits_and_is_recorded():
    g = ColoredGraph(nx.path_graph(4), 2, [1, 1, 1, 1])
    tracker, state = _tracker(g, 0.0)
    state.revisits = 3
    g.update(0, 2, g.eval_delta(0, 2))
    assert tracker.track(state) is False
    assert state.revisits == 0
    assert state.pivot == Pivot((2, 1, 1, 1), g.nb_conflict)
    assert len(tracker.history) == 2


def test_returning_to_a_recorded_pivot_increments_revisits():
    g = ColoredGraph(nx.path_graph(4), 2, [1, 1, 1, 1])
    tracker, state = _tracker(g, 0.0)
    g.update(0, 2, g.eval_delta(0, 2))
    tracker.track(state)
    g.update(0, 1, g.eval_delta(0, 1))
    assert tracker.track(state) is True
    assert state.revisits == 1
    assert len(tracker.history) == 2
    assert state.pivot.colors == (1, 1, 1, 1)


def test_pivot_follows_lower_conflicts_inside_radius():
    g = ColoredGraph(nx.path_graph(4), 2, [1, 1, 1, 1])
    tracker, state = _tracker(g, 0.5)
    g.update(1, 2, g.eval_delta(1, 2))
    assert tracker.track(state) is False
    assert state.pivot == Pivot((1, 2, 1, 1), 1)
    assert len(tracker.history) == 1


def test_pivot_does_not_alias_live_coloring():
    g = ColoredGraph(nx.path_graph(3), 2, [1, 1, 1])
    tracker, state = _tracker(g, 0.0)
    g.update(0, 2, g.eval_delta(0, 2))
    assert tracker.history[0].colors == (1, 1, 1)


# 多样化


def test_diversify_performs_floor_threshold_n_recolors(rng):
    g = ColoredGraph(nx.cycle_graph(10), 3, [1, 2] * 5)
    applied = []
    update = g.update

    def recording_update(v, c, delta):
        applied.append((g.colors[v], c))
        update(v, c, delta)

    g.update = recording_update
    assert diversify(g, 0.35, rng) == 3
    assert len(applied) == 3
    assert all(old != new for old, new in applied)
    assert g.nb_conflict == g.calculate_conflicts()


def test_diversify_with_zero_threshold_does_nothing(rng):
    g = ColoredGraph(nx.cycle_graph(4), 2, [1, 2, 1, 2])
    assert diversify(g, 0.0, rng) == 0
    assert g.colors == [1, 2, 1, 2]


def test_plateau_memory_triggers_near_known_plateau():
    g = ColoredGraph(nx.empty_graph(6), 2, [1] * 6)
    plateaus = PlateauMemory(g, radius=2)
    assert plateaus.should_diversify() is False
    g.update(0, 2, 0)
    assert plateaus.should_diversify() is True
    for v in range(1, 4):
        g.update(v, 2, 0)
    assert plateaus.should_diversify() is False
    assert len(plateaus.plateaus[0]) == 2
