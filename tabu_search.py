import logging
import math
import os
import random
import time
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from coloring import ColoredGraph

logger = logging.getLogger(__name__)


class Move(NamedTuple):
    vertex: int
    color: int
    delta: int


@dataclass(frozen=True)
class ConstantTenure:
    value: int = 10

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"tenure must be non-negative, got {self.value}")

    def tenure(self, nb_conflict: int, stagnation: int) -> int:
        return self.value

    def describe(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class ReactiveTenure:
    """a + alpha * 冲突数 + 停滞迭代数 // m_max"""

    a: int = 10
    alpha: float = 0.6
    m_max: int = 1000

    def __post_init__(self):
        if self.m_max < 1:
            raise ValueError(f"m_max must be at least 1, got {self.m_max}")

    def tenure(self, nb_conflict: int, stagnation: int) -> int:
        value = math.floor(self.a + self.alpha * nb_conflict) + stagnation // self.m_max
        return max(0, int(value))

    def describe(self) -> str:
        return f"reactive:{self.a},{self.alpha},{self.m_max}"


TenurePolicy = Union[ConstantTenure, ReactiveTenure]


def parse_tenure(text: str) -> TenurePolicy:
    """'7' -> ConstantTenure(7)；'reactive:10,0.6,1000' -> ReactiveTenure"""
    text = text.strip()
    if text.startswith("reactive"):
        _, _, params = text.partition(":")
        if not params:
            return ReactiveTenure()
        a, alpha, m_max = params.split(",")
        return ReactiveTenure(int(a), float(alpha), int(m_max))
    return ConstantTenure(int(text))


class TabuMemory:
    """table[v, c - 1] = 允许把 v 染成 c 的最早迭代编号"""

    def __init__(self, n: int, k: int):
        self._table = np.zeros((n, k), dtype=np.int64)

    def is_forbidden(self, v: int, color: int, iteration: int) -> bool:
        return bool(self._table[v, color - 1] > iteration)

    def refresh(self, v: int, color: int, iteration: int, tenure: int) -> None:
        until = iteration + max(0, tenure)
        if until > self._table[v, color - 1]:
            self._table[v, color - 1] = until

    def mark_current_coloring(self, colors: Sequence[int], iteration: int, tenure: int) -> None:
        rows = np.arange(len(colors))
        cols = np.asarray(colors, dtype=np.int64) - 1
        until = iteration + max(0, tenure)
        self._table[rows, cols] = np.maximum(self._table[rows, cols], until)


def random_move(g: ColoredGraph, rng: random.Random) -> Move:
    v = rng.randrange(g.n)
    current = g.colors[v]
    color = rng.randint(1, g.k - 1)
    if color >= current:
        color += 1
    return Move(v, color, g.eval_delta(v, color))


class NeighborGenerator:
    def __init__(self, g: ColoredGraph, memory: TabuMemory, rng: random.Random):
        self._g = g
        self._memory = memory
        self._rng = rng

    def propose(self, iteration: int, tenure: int) -> Tuple[Move, bool]:
        """随机邻居及其是否可接受（未被禁忌，或优于历史最优）"""
        move = random_move(self._g, self._rng)
        admissible = (
            not self._memory.is_forbidden(move.vertex, move.color, iteration)
            or self._g.nb_conflict + move.delta < self._g.nb_conflict_min
        )
        if admissible:
            self._memory.refresh(move.vertex, move.color, iteration, tenure)
        return move, admissible


def _latest_best(incumbent: Optional[Move], move: Move) -> Move:
    if incumbent is None or move.delta <= incumbent.delta:
        return move
    return incumbent


def select_move(
    generator: NeighborGenerator,
    iteration: int,
    tenure: int,
    neigh_iter: int,
    max_seed_draws: int,
) -> Tuple[Move, bool]:
    """返回 (本次迭代要执行的移动, 是否因全部被禁忌而启用了特赦)"""
    incumbent = None
    aspirant = None

    for _ in range(max_seed_draws):
        move, admissible = generator.propose(iteration, tenure)
        if admissible:
            incumbent = move
            break
        aspirant = _latest_best(aspirant, move)

    for _ in range(neigh_iter):
        move, admissible = generator.propose(iteration, tenure)
        if admissible:
            incumbent = _latest_best(incumbent, move)
        else:
            aspirant = _latest_best(aspirant, move)

    if incumbent is None:
        return aspirant, True
    return incumbent, False


class Pivot(NamedTuple):
    colors: Tuple[int, ...]
    nb_conflict: int


@dataclass
class SearchState:
    pivot: Pivot
    iteration: int = 0
    plateau: int = 0
    revisits: int = 0
    tenure: int = 0


class RegionTracker:
    """以 pivot 快照记录已探索的区域，检测搜索是否回到旧区域"""

    def __init__(self, g: ColoredGraph, distance_threshold: float):
        self._g = g
        self.radius = int(math.floor(distance_threshold * g.n))
        self.history: List[Pivot] = []

    def start(self) -> Pivot:
        pivot = Pivot(tuple(self._g.colors), self._g.nb_conflict)
        self.history.append(pivot)
        return pivot

    def track(self, state: SearchState) -> bool:
        """更新 state.pivot / state.revisits；返回本次是否回到了已记录的区域"""
        g = self._g
        if not g.within_radius(g.colors, state.pivot.colors, self.radius):
            state.pivot = Pivot(tuple(g.colors), g.nb_conflict)
            if any(g.within_radius(state.pivot.colors, p.colors, self.radius) for p in self.history):
                state.revisits += 1
                logger.debug(
                    "iteration %d: region revisited (depth %d)", state.iteration, state.revisits
                )
                return True
            state.revisits = 0
            self.history.append(state.pivot)
            logger.debug(
                "iteration %d: new region #%d at %d conflicts",
                state.iteration,
                len(self.history),
                g.nb_conflict,
            )
        elif g.nb_conflict < state.pivot.nb_conflict:
            state.pivot = Pivot(tuple(g.colors), g.nb_conflict)
        return False


class PlateauMemory:
    """按冲突数记录平台着色；离某个旧平台太近时要求多样化"""

    def __init__(self, g: ColoredGraph, radius: int):
        self._g = g
        self._radius = radius
        self.plateaus: Dict[int, List[Tuple[int, ...]]] = {}

    def should_diversify(self) -> bool:
        colors = tuple(self._g.colors)
        known = self.plateaus.get(self._g.nb_conflict)
        if known is None:
            self.plateaus[self._g.nb_conflict] = [colors]
            return False
        nearest = min(self._g.distance(p, colors) for p in known)
        if nearest < self._radius:
            return True
        known.append(colors)
        return False


def diversify(g: ColoredGraph, distance_threshold: float, rng: random.Random) -> int:
    """无条件执行 floor(distance_threshold * n) 次随机重染色"""
    nb_moves = int(math.floor(distance_threshold * g.n))
    for _ in range(nb_moves):
        g.update(*random_move(g, rng))
    return nb_moves


@dataclass
class SearchStats:
    iterations: int = 0
    moves: int = 0
    aspirations: int = 0
    diversifications: int = 0
    regions: int = 0
    revisits: int = 0
    stop_reason: str = "budget"
    elapsed: float = 0.0


class TabuSearchSolver:
    def __init__(
        self,
        nb_iter: int = 10000,
        neigh_iter: int = 50,
        tenure: Union[int, TenurePolicy] = 10,
        distance_threshold: float = 0.1,
        revisit_limit: Optional[int] = 3,
        plateau_memory: bool = False,
        seed: Optional[int] = None,
    ):
        if nb_iter < 0:
            raise ValueError(f"nb_iter must be non-negative, got {nb_iter}")
        if neigh_iter < 0:
            raise ValueError(f"neigh_iter must be non-negative, got {neigh_iter}")
        if not 0.0 <= distance_threshold <= 1.0:
            raise ValueError(f"distance_threshold must lie in [0, 1], got {distance_threshold}")
        if revisit_limit is not None and revisit_limit < 1:
            raise ValueError(f"revisit_limit must be at least 1, got {revisit_limit}")

        self.nb_iter = nb_iter
        self.neigh_iter = neigh_iter
        self.tenure_policy = ConstantTenure(tenure) if isinstance(tenure, int) else tenure
        self.distance_threshold = distance_threshold
        self.revisit_limit = revisit_limit
        self.plateau_memory = plateau_memory
        self.rng = random.Random(seed)

        # 单次运行的禁忌表、区域记录与计数器，每次 solve 重新创建
        self.memory: Optional[TabuMemory] = None
        self.tracker: Optional[RegionTracker] = None
        self.state: Optional[SearchState] = None

    def _tenure(self, g: ColoredGraph, state: SearchState) -> int:
        return max(0, self.tenure_policy.tenure(g.nb_conflict, state.plateau)) + state.revisits

    def _record_move(self, g: ColoredGraph, state: SearchState, move: Move, memory: TabuMemory) -> None:
        """更新停滞计数 m、禁忌长度，并禁忌当前着色"""
        state.plateau = state.plateau + 1 if move.delta == 0 else 0
        state.tenure = self._tenure(g, state)
        memory.mark_current_coloring(g.colors, state.iteration, state.tenure)

    def _should_diversify(
        self,
        state: SearchState,
        revisited: bool,
        move: Move,
        plateaus: Optional[PlateauMemory],
    ) -> bool:
        if self.revisit_limit is not None and revisited and state.revisits >= self.revisit_limit:
            return True
        return plateaus is not None and move.delta >= 0 and plateaus.should_diversify()

    def solve(self, g: ColoredGraph) -> SearchStats:
        if g.k < 2:
            raise ValueError("tabu search needs at least 2 colors to recolor a vertex")

        stats = SearchStats()
        if self.nb_iter == 0:
            return stats
        if g.nb_conflict == 0:
            stats.stop_reason = "solved"
            return stats

        start_time = time.perf_counter()
        memory = self.memory = TabuMemory(g.n, g.k)
        generator = NeighborGenerator(g, memory, self.rng)
        tracker = self.tracker = RegionTracker(g, self.distance_threshold)
        plateaus = PlateauMemory(g, tracker.radius) if self.plateau_memory else None
        max_seed_draws = g.n * (g.k - 1)

        state = self.state = SearchState(pivot=tracker.start())
        state.tenure = self._tenure(g, state)
        memory.mark_current_coloring(g.colors, 0, state.tenure)

        for iteration in range(self.nb_iter):
            state.iteration = iteration
            stats.iterations += 1

            move, aspired = select_move(
                generator, iteration, state.tenure, self.neigh_iter, max_seed_draws
            )
            if aspired:
                stats.aspirations += 1

            g.update(*move)
            stats.moves += 1
            if g.update_min(start_time):
                stats.stop_reason = "solved"
                break

            self._record_move(g, state, move, memory)

            revisited = tracker.track(state)
            if self._should_diversify(state, revisited, move, plateaus):
                stats.diversifications += 1
                nb_moves = diversify(g, self.distance_threshold, self.rng)
                logger.debug("iteration %d: diversified with %d random moves", iteration, nb_moves)
                if g.update_min(start_time):
                    stats.stop_reason = "solved"
                    break

        stats.elapsed = time.perf_counter() - start_time
        stats.regions = len(tracker.history)
        stats.revisits = state.revisits
        logger.info(
            "tabu search stopped (%s) after %d iterations: %d conflicts, best %d, "
            "%d regions, %d aspirations, %d diversifications, %.3fs",
            stats.stop_reason,
            stats.iterations,
            g.nb_conflict,
            g.nb_conflict_min,
            stats.regions,
            stats.aspirations,
            stats.diversifications,
            stats.elapsed,
        )
        return stats


def tabu_search(
    g: ColoredGraph,
    nb_iter: int,
    neigh_iter: int,
    tenure: Union[int, TenurePolicy],
    distance_threshold: float,
    **kwargs,
) -> SearchStats:
    solver = TabuSearchSolver(nb_iter, neigh_iter, tenure, distance_threshold, **kwargs)
    return solver.solve(g)


@dataclass
class TabuSearch:
    nb_iter: int
    neigh_iter: int
    tenure: Union[int, TenurePolicy]
    distance_threshold: float
    revisit_limit: Optional[int] = 3
    plateau_memory: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.tenure, int):
            self.tenure = ConstantTenure(self.tenure)

    def __call__(self, g: ColoredGraph) -> SearchStats:
        stats = tabu_search(
            g,
            self.nb_iter,
            self.neigh_iter,
            self.tenure,
            self.distance_threshold,
            revisit_limit=self.revisit_limit,
            plateau_memory=self.plateau_memory,
            seed=self.seed,
        )
        g.resolution_time += stats.elapsed
        g.heuristics_applied.append(self)
        return stats

    def parameters(self) -> Dict[str, object]:
        return {
            "nb_iter": self.nb_iter,
            "neigh_iter": self.neigh_iter,
            "tenure": self.tenure.describe(),
            "distance_threshold": self.distance_threshold,
            "revisit_limit": self.revisit_limit,
            "plateau_memory": self.plateau_memory,
            "seed": self.seed,
        }

    def save_parameters(self, file_name: str, results_dir: str = "results") -> str:
        os.makedirs(results_dir, exist_ok=True)
        path = os.path.join(results_dir, file_name)
        with open(path, "a", encoding="utf-8") as f:
            f.write(
                f"h TabuSearch = nb_iter:{self.nb_iter} neigh_iter:{self.neigh_iter} "
                f"tenure:{self.tenure.describe()} distance_threshold:{self.distance_threshold}\n"
            )
        return path
