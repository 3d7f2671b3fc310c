import random

import networkx as nx
import pytest

from coloring import ColoredGraph


@pytest.fixture()
def rng():
    return random.Random(1234)


@pytest.fixture()
def odd_cycle():
    # 两种颜色的奇环：至少有一条冲突边无法消除
    return ColoredGraph(nx.cycle_graph(5), 2, [1] * 5)


@pytest.fixture()
def single_edge():
    return ColoredGraph(nx.path_graph(2), 2, [1, 1])
