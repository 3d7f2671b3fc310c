from coloring.colored_graph import ColoredGraph

__all__ = ["ColoredGraph"]
