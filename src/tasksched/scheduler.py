"""Dependency resolution using topological sorting."""

from __future__ import annotations

import graphlib
from typing import Optional

from tasksched.graph import ROOT, CycleError, DependencyGraph, Node, TaskNotFoundError
from tasksched.logging import Logger


def _reachable(graph: DependencyGraph, root: Node) -> set[Node]:
    reached = {root}
    stack = [root]
    while stack:
        for dep in graph.dependencies(stack.pop()):
            if dep not in reached:
                reached.add(dep)
                stack.append(dep)
    return reached


def resolve_execution_order(
    graph: DependencyGraph,
    root: Node = ROOT,
    logger: Optional[Logger] = None,
) -> list[str]:
    """Resolve execution order for every node reachable from ``root``.

    With the default root this is the whole task set; passing a task name
    gives that task and its transitive prerequisites.

    Args:
        graph: Graph built by build_graph
        root: Node to start from
        logger: Optional logger for diagnostic output

    Returns:
        List of task names in execution order (dependencies first), without ROOT

    Raises:
        TaskNotFoundError: If root is not in the graph
        CycleError: If a dependency cycle is detected
    """
    if root not in graph:
        raise TaskNotFoundError(f"Task not found: {root}")

    reachable = _reachable(graph, root)
    # Graph node order is declaration order, which TopologicalSorter
    # keeps for nodes that become ready together.
    sorter_input = {
        node: graph.dependencies(node) for node in graph.nodes if node in reachable
    }

    try:
        order = list(graphlib.TopologicalSorter(sorter_input).static_order())
    except graphlib.CycleError as e:
        cycle = list(reversed(e.args[1])) if len(e.args) > 1 else []
        raise CycleError(cycle) from e

    order = [node for node in order if node is not ROOT]
    if logger:
        logger.trace(f"Resolved execution order: {', '.join(order) or '(empty)'}")
    return order
