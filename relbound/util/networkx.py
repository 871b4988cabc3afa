"""Provides graph-centric algorithms based on NetworkX [nx]_.

References
----------

.. [nx] Aric A. Hagberg, Daniel A. Schult and Pieter J. Swart, "Exploring network structure, dynamics, and function using
        NetworkX", in Proceedings of the 7th Python in Science Conference (SciPy2008), Gäel Varoquaux, Travis Vaught, and
        Jarrod Millman (Eds), (Pasadena, CA USA), pp. 11-15, Aug 2008
"""
from __future__ import annotations

import typing
from collections.abc import Callable, Iterable, Sequence
from typing import Optional

import networkx as nx

NodeType = typing.TypeVar("NodeType")
"""Generic type to model the specific nodes contained in a NetworkX graph."""


def nx_connected_subsets(graph: nx.Graph, nodes: Iterable[NodeType], *,
                         edge_filter: Optional[Callable[[NodeType, NodeType, dict], bool]] = None
                         ) -> Sequence[frozenset[NodeType]]:
    """Computes the connected components of a part of a graph.

    Only the given `nodes` are considered and an edge between two of them is only used if it passes the `edge_filter`. This
    is useful to determine how a graph falls apart once some of its edges lose their meaning, without copying or modifying
    the graph itself.

    Parameters
    ----------
    graph : nx.Graph
        The graph to inspect
    nodes : Iterable[NodeType]
        The nodes that span the subgraph. Nodes that are not part of the graph raise an error.
    edge_filter : Optional[Callable[[NodeType, NodeType, dict], bool]], optional
        Receives both endpoints along with the NetworkX edge data and decides whether the edge still connects its
        endpoints. If omitted, all edges of the induced subgraph are used.

    Returns
    -------
    Sequence[frozenset[NodeType]]
        The components. For reproducible results, they are sorted by their smallest node (which requires the nodes to be
        comparable).
    """
    nodes = list(nodes)
    missing_nodes = [node for node in nodes if node not in graph]
    if missing_nodes:
        raise KeyError(f"Nodes are not part of the graph: {missing_nodes}")

    def _filter_edge(first: NodeType, second: NodeType) -> bool:
        return edge_filter(first, second, graph.edges[first, second]) if edge_filter else True

    view = nx.subgraph_view(graph.subgraph(nodes), filter_edge=_filter_edge)
    components = [frozenset(component) for component in nx.connected_components(view)]
    return sorted(components, key=min)
