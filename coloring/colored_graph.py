import logging
import time
from typing import List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

logger = logging.getLogger(__name__)


class ColoredGraph:
    """带颜色的图：颜色取值 1..k，负责冲突计数、增量评估与最优解记录。"""

    def __init__(self, graph: nx.Graph, k: int, colors: Sequence[int]):
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        self.graph = nx.convert_node_labels_to_integers(graph)
        self.n = self.graph.number_of_nodes()
        self.k = k
        if len(colors) != self.n:
            raise ValueError(f"expected {self.n} colors, got {len(colors)}")
        self.colors: List[int] = [int(c) for c in colors]
        bad = [c for c in self.colors if not 1 <= c <= k]
        if bad:
            raise ValueError(f"colors must lie in [1, {k}], got {bad[0]}")

        self._adj_list = [
            [u for u in self.graph.neighbors(v) if u != v] for v in range(self.n)
        ]

        self.nb_conflict = self.calculate_conflicts()
        self.nb_conflict_min = self.nb_conflict
        self.best_colors = self.colors.copy()
        self.conflict_history: List[int] = [self.nb_conflict]
        self.min_history: List[Tuple[int, float]] = [(self.nb_conflict, 0.0)]

        self.resolution_time = 0.0
        self.heuristics_applied: list = []

    def calculate_conflicts(self, colors: Optional[Sequence[int]] = None) -> int:
        """计算冲突边数（自环总是冲突）"""
        colors = self.colors if colors is None else colors
        return sum(1 for u, v in self.graph.edges() if colors[u] == colors[v])

    def eval_delta(self, v: int, new_color: int) -> int:
        """把 v 改成 new_color 之后冲突数的变化量，不修改着色"""
        old_color = self.colors[v]
        if new_color == old_color:
            return 0
        delta = 0
        for u in self._adj_list[v]:
            if self.colors[u] == old_color:
                delta -= 1
            elif self.colors[u] == new_color:
                delta += 1
        return delta

    def update(self, v: int, new_color: int, delta: int) -> None:
        self.colors[v] = new_color
        self.nb_conflict += delta
        self.conflict_history.append(self.nb_conflict)

    def update_min(self, start_time: float) -> bool:
        """记录新的最少冲突数；返回当前着色是否已无冲突"""
        if self.nb_conflict < self.nb_conflict_min:
            self.nb_conflict_min = self.nb_conflict
            self.best_colors = self.colors.copy()
            elapsed = time.perf_counter() - start_time
            self.min_history.append((self.nb_conflict_min, elapsed))
            logger.debug("new minimum %d after %.3fs", self.nb_conflict_min, elapsed)
        return self.nb_conflict == 0

    def distance(self, colors_a: Sequence[int], colors_b: Sequence[int]) -> int:
        # 汉明距离，颜色重新编号后的着色视为不同
        return int(np.count_nonzero(np.asarray(colors_a) != np.asarray(colors_b)))

    def within_radius(
        self, colors_a: Sequence[int], colors_b: Sequence[int], radius: int
    ) -> bool:
        return self.distance(colors_a, colors_b) <= radius

    def conflict_edges(self, colors: Optional[Sequence[int]] = None) -> List[Tuple[int, int]]:
        colors = self.colors if colors is None else colors
        return [(u, v) for u, v in self.graph.edges() if colors[u] == colors[v]]

    def get_solution(self) -> List[int]:
        return self.best_colors.copy()
