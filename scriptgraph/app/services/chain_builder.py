from __future__ import annotations

from dataclasses import dataclass

from scriptgraph.app.models.graph import Block
from scriptgraph.app.services.graph_index import ScopeGraph


@dataclass(frozen=True, slots=True)
class Chain:
    members: tuple[Block, ...]

    @property
    def head(self) -> Block:
        return self.members[0]

    @property
    def terminal(self) -> Block:
        return self.members[-1]

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(member.id for member in self.members)


def build_chains(sorted_blocks: list[Block], scope: ScopeGraph) -> list[Chain]:
    chains: list[Chain] = []
    assigned: set[str] = set()

    for block in sorted_blocks:
        if block.id in assigned or block.is_control_flow:
            continue
        if _continues_upstream_chain(block, scope):
            continue

        members = [block]
        assigned.add(block.id)
        current = block
        while True:
            if scope.nested_consumers(current):
                break
            successor = scope.single_successor(current)
            if successor is None or successor.id in assigned or successor.is_control_flow:
                break
            if scope.incoming_count(successor) != 1:
                break
            members.append(successor)
            assigned.add(successor.id)
            current = successor

        chains.append(Chain(members=tuple(members)))

    return chains


def _continues_upstream_chain(block: Block, scope: ScopeGraph) -> bool:
    if scope.incoming_count(block) == 0:
        return False
    upstream = scope.unique_predecessor(block)
    if upstream is None or upstream.is_control_flow:
        return False
    return scope.outgoing_count(upstream) == 1 and not scope.nested_consumers(upstream)
