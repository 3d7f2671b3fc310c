import argparse
import json
import logging
import random
import sys

import networkx as nx
import numpy as np

from coloring import ColoredGraph
from tabu_search import TabuSearch, parse_tenure


def str2bool(v):
    if isinstance(v, bool):
        return v
    if v.lower() in ("yes", "true", "t", "y", "1"):
        return True
    if v.lower() in ("no", "false", "f", "n", "0"):
        return False
    raise argparse.ArgumentTypeError("需要布尔值")


def tenure_arg(text):
    try:
        return parse_tenure(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"无效的禁忌长度 '{text}': {exc}") from exc


def read_graph_from_file(filename):
    edges = []
    n = 0
    with open(filename, "r", encoding="utf-8") as f:
        for line in f:
            if line.startswith("p"):
                _, _, nodes, _ = line.split()
                n = int(nodes)
            elif line.startswith("e"):
                _, u, v = line.split()
                edges.append((int(u) - 1, int(v) - 1))
    graph = nx.Graph()
    graph.add_nodes_from(range(n))
    graph.add_edges_from(edges)
    return graph


def default_colors(graph):
    degrees = [d for _, d in graph.degree()]
    return max(2, max(degrees, default=0) + 1)


def random_coloring(n, k, rng):
    return [rng.randint(1, k) for _ in range(n)]


def render(g):
    import matplotlib.colors as mcolors
    import matplotlib.pyplot as plt

    plt.figure(figsize=(10, 8))
    nodes = list(g.graph.nodes())
    color_map = [g.best_colors[node] for node in nodes]

    pos = nx.spring_layout(g.graph, seed=42)
    cmap = mcolors.ListedColormap(plt.cm.jet(np.linspace(0, 1, g.k)))

    nx.draw_networkx_nodes(g.graph, pos, nodelist=nodes, node_color=color_map, cmap=cmap, vmin=1, vmax=g.k)
    nx.draw_networkx_labels(g.graph, pos, labels={node: node for node in nodes})

    conflict_edges = g.conflict_edges(g.best_colors)
    conflict_set = set(conflict_edges)
    non_conflict_edges = [edge for edge in g.graph.edges() if edge not in conflict_set]

    nx.draw_networkx_edges(g.graph, pos, edgelist=non_conflict_edges)
    nx.draw_networkx_edges(g.graph, pos, edgelist=conflict_edges, edge_color="red")

    plt.title(f"Used Colors: {len(set(g.best_colors))}, Conflicts: {g.nb_conflict_min}")
    plt.show()


def build_parser():
    parser = argparse.ArgumentParser(description="图着色禁忌搜索（自适应禁忌长度 + 基于距离的多样化）")
    parser.add_argument("graph", type=str, help="DIMACS 图文件路径")
    parser.add_argument("-K", "--colors", type=int, default=None, help="颜色数量（默认：最大度 + 1）")
    parser.add_argument("--tabu-iters", type=int, default=5000, help="禁忌搜索迭代次数")
    parser.add_argument("--neigh-iter", type=int, default=50, help="每次迭代采样的邻居数")
    parser.add_argument(
        "--tenure",
        type=tenure_arg,
        default=parse_tenure("10"),
        help="禁忌长度：整数（固定）或 reactive:A,alpha,m_max（自适应）",
    )
    parser.add_argument("--distance-threshold", type=float, default=0.1, help="区域半径占顶点数的比例")
    parser.add_argument("--revisit-limit", type=int, default=3, help="连续回到旧区域多少次后多样化（0 表示关闭）")
    parser.add_argument("--plateau-memory", type=str2bool, default=False, help="启用按冲突数记录平台的多样化")
    parser.add_argument("--seed", type=int, default=None, help="随机种子")
    parser.add_argument("-R", "--render", type=str2bool, default=False, help="是否渲染")
    parser.add_argument("-O", "--output", type=str, default=None, help="输出文件路径")
    parser.add_argument("--params-file", type=str, default=None, help="追加保存参数的文件名（位于 results 目录）")
    parser.add_argument("--results-dir", type=str, default="results", help="参数文件目录")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    graph = read_graph_from_file(args.graph)
    n = len(graph)
    if args.colors is None:
        args.colors = default_colors(graph)

    rng = random.Random(args.seed)
    g = ColoredGraph(graph, args.colors, random_coloring(n, args.colors, rng))
    initial_conflicts = g.nb_conflict

    heuristic = TabuSearch(
        nb_iter=args.tabu_iters,
        neigh_iter=args.neigh_iter,
        tenure=args.tenure,
        distance_threshold=args.distance_threshold,
        revisit_limit=args.revisit_limit or None,
        plateau_memory=args.plateau_memory,
        seed=args.seed,
    )
    stats = heuristic(g)
    if args.params_file:
        heuristic.save_parameters(args.params_file, results_dir=args.results_dir)

    solution = g.get_solution()
    print(f"求解完成! 初始冲突数: {initial_conflicts}, 最少冲突数: {g.nb_conflict_min}")
    print(f"迭代次数: {stats.iterations}, 用时: {g.resolution_time:.3f}s, 停止原因: {stats.stop_reason}")
    print(f"解决方案: {solution}")
    sys.stdout.flush()

    if args.render:
        render(g)

    if args.output:
        output = {
            "solution": solution,
            "conflicts": g.nb_conflict_min,
            "initial_conflicts": initial_conflicts,
            "colors": args.colors,
            "nodes": n,
            "edges": len(graph.edges()),
            "resolution_time": g.resolution_time,
            "parameters": heuristic.parameters(),
            "stats": {
                "iterations": stats.iterations,
                "moves": stats.moves,
                "aspirations": stats.aspirations,
                "diversifications": stats.diversifications,
                "regions": stats.regions,
                "revisits": stats.revisits,
                "stop_reason": stats.stop_reason,
            },
        }
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2)
        print(f"结果已保存到: {args.output}")
        sys.stdout.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
