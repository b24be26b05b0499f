from __future__ import annotations

from typing import Iterator

from scriptgraph.app.models.graph import Block
from scriptgraph.app.services.graph_index import ScopeGraph


class GraphCycleError(Exception):
    def __init__(self, block_ids: list[str]):
        self.block_ids = block_ids
        super().__init__("Cycle detected between blocks: " + " -> ".join(block_ids))


def topological_sort(scope: ScopeGraph) -> list[Block]:
    """Order the scope's blocks so every in-scope producer precedes its consumers.

    Depth-first over dependencies, started from each block in input order, so
    unrelated blocks keep their relative order. Raises GraphCycleError when an
    edge leads back into a block that is still being visited.
    """
    ordered: list[Block] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    for root in scope.blocks:
        if root.id in visited:
            continue

        visiting.add(root.id)
        stack: list[tuple[Block, Iterator[Block]]] = [(root, iter(scope.dependencies(root)))]
        while stack:
            block, dependencies = stack[-1]
            dependency = next(dependencies, None)
            if dependency is None:
                stack.pop()
                visiting.discard(block.id)
                visited.add(block.id)
                ordered.append(block)
                continue
            if dependency.id in visited:
                continue
            if dependency.id in visiting:
                path = [item.id for item, _ in stack]
                # The stack walks upstream; reverse it so the cycle reads in data-flow order.
                cycle = path[path.index(dependency.id):]
                raise GraphCycleError([cycle[0], *reversed(cycle[1:]), cycle[0]])

            visiting.add(dependency.id)
            stack.append((dependency, iter(scope.dependencies(dependency))))

    return ordered
