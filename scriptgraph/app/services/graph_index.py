from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from scriptgraph.app.models.graph import Block, Connection, GraphSnapshot
from scriptgraph.app.models.script import DiagnosticCode
from scriptgraph.app.services.diagnostics import DiagnosticCollector


class GraphIndex:
    """Read-only view over one snapshot.

    Malformed references (dangling connections, unknown ports, zone children
    missing from the snapshot, nesting loops) are dropped here, so everything
    downstream only ever sees a consistent graph.
    """

    def __init__(self, snapshot: GraphSnapshot, diagnostics: DiagnosticCollector) -> None:
        self._diagnostics = diagnostics
        self._blocks: dict[str, Block] = {block.id: block for block in snapshot.blocks}
        self._ordered_blocks = list(snapshot.blocks)
        self._connections = self._accept_connections(snapshot.connections)
        self._parents = self._resolve_nesting()

        self._incoming: dict[str, list[Connection]] = defaultdict(list)
        self._outgoing: dict[str, list[Connection]] = defaultdict(list)
        for connection in self._connections:
            self._incoming[connection.to_block_id].append(connection)
            self._outgoing[connection.from_block_id].append(connection)

    @property
    def connections(self) -> list[Connection]:
        return list(self._connections)

    def block(self, block_id: str) -> Block | None:
        return self._blocks.get(block_id)

    def top_level(self) -> list[Block]:
        return [block for block in self._ordered_blocks if block.id not in self._parents]

    def callables(self) -> list[Block]:
        return [block for block in self._ordered_blocks if block.is_callable]

    def parent_of(self, block_id: str) -> tuple[str, str] | None:
        return self._parents.get(block_id)

    def zone_children(self, container: Block, zone_name: str) -> list[Block]:
        zone = container.find_zone(zone_name)
        if zone is None:
            return []
        children: list[Block] = []
        for child_id in zone.children:
            if self._parents.get(child_id) != (container.id, zone_name):
                continue
            if any(child.id == child_id for child in children):
                continue
            children.append(self._blocks[child_id])
        return children

    def ancestors(self, block_id: str) -> list[str]:
        """Container ids enclosing `block_id`, innermost first."""
        chain: list[str] = []
        current = self._parents.get(block_id)
        while current is not None and current[0] not in chain:
            chain.append(current[0])
            current = self._parents.get(current[0])
        return chain

    def scope(self, blocks: Iterable[Block]) -> ScopeGraph:
        return ScopeGraph(self, list(blocks))

    def incoming(self, block_id: str) -> list[Connection]:
        return self._incoming.get(block_id, [])

    def outgoing(self, block_id: str) -> list[Connection]:
        return self._outgoing.get(block_id, [])

    def _accept_connections(self, connections: Iterable[Connection]) -> list[Connection]:
        accepted: list[Connection] = []
        seen_pairs: set[tuple[str, str, str, str]] = set()
        connected_inputs: set[tuple[str, str]] = set()

        for connection in connections:
            source = self._blocks.get(connection.from_block_id)
            target = self._blocks.get(connection.to_block_id)
            label = (
                f"{connection.from_block_id}.{connection.from_port_id} -> "
                f"{connection.to_block_id}.{connection.to_port_id}"
            )

            if source is None or target is None:
                self._diagnostics.warning(
                    DiagnosticCode.DANGLING_CONNECTION,
                    f"Skipping connection {label}: block not found in graph.",
                    connection.from_block_id,
                    connection.to_block_id,
                )
                continue
            if source.id == target.id:
                self._diagnostics.warning(
                    DiagnosticCode.SELF_CONNECTION,
                    f"Skipping connection {label}: a block cannot feed itself.",
                    source.id,
                )
                continue
            if connection.from_port_id not in source.outputs or connection.to_port_id not in target.inputs:
                self._diagnostics.warning(
                    DiagnosticCode.UNKNOWN_PORT,
                    f"Skipping connection {label}: port not found on block.",
                    source.id,
                    target.id,
                )
                continue

            pair = (source.id, connection.from_port_id, target.id, connection.to_port_id)
            if pair in seen_pairs:
                self._diagnostics.warning(
                    DiagnosticCode.DUPLICATE_CONNECTION,
                    f"Skipping duplicate connection {label}.",
                    source.id,
                    target.id,
                )
                continue

            target_input = (target.id, connection.to_port_id)
            if target_input in connected_inputs:
                self._diagnostics.warning(
                    DiagnosticCode.INPUT_ALREADY_CONNECTED,
                    f"Skipping connection {label}: input port already has an upstream connection.",
                    source.id,
                    target.id,
                )
                continue

            seen_pairs.add(pair)
            connected_inputs.add(target_input)
            accepted.append(connection)

        return accepted

    def _resolve_nesting(self) -> dict[str, tuple[str, str]]:
        parents: dict[str, tuple[str, str]] = {}
        for container in self._ordered_blocks:
            for zone in container.zones():
                for child_id in zone.children:
                    if child_id not in self._blocks:
                        self._diagnostics.warning(
                            DiagnosticCode.DANGLING_ZONE_CHILD,
                            f"Skipping child '{child_id}' of zone '{zone.name}' on '{container.id}': "
                            "block not found in graph.",
                            container.id,
                        )
                        continue
                    if child_id == container.id:
                        self._diagnostics.warning(
                            DiagnosticCode.NESTING_CYCLE,
                            f"Block '{container.id}' cannot be nested inside itself.",
                            container.id,
                        )
                        continue
                    claimed = parents.get(child_id)
                    if claimed is not None and claimed != (container.id, zone.name):
                        self._diagnostics.warning(
                            DiagnosticCode.DUPLICATE_ZONE_CHILD,
                            f"Block '{child_id}' already belongs to zone '{claimed[1]}' of '{claimed[0]}'; "
                            f"ignoring membership in zone '{zone.name}' of '{container.id}'.",
                            child_id,
                        )
                        continue
                    parents[child_id] = (container.id, zone.name)

        for block in self._ordered_blocks:
            visited = {block.id}
            current = parents.get(block.id)
            while current is not None:
                ancestor_id = current[0]
                if ancestor_id == block.id:
                    self._diagnostics.warning(
                        DiagnosticCode.NESTING_CYCLE,
                        f"Block '{block.id}' is its own ancestor; treating it as top-level.",
                        block.id,
                    )
                    parents.pop(block.id)
                    break
                if ancestor_id in visited:
                    break
                visited.add(ancestor_id)
                current = parents.get(ancestor_id)

        return parents


class ScopeGraph:
    """Adjacency queries restricted to the blocks of one scope."""

    def __init__(self, index: GraphIndex, blocks: list[Block]) -> None:
        self._index = index
        self.blocks = blocks
        self.ids = frozenset(block.id for block in blocks)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self.ids

    def incoming(self, block: Block) -> list[Connection]:
        return [c for c in self._index.incoming(block.id) if c.from_block_id in self.ids]

    def outgoing(self, block: Block) -> list[Connection]:
        return [c for c in self._index.outgoing(block.id) if c.to_block_id in self.ids]

    def incoming_count(self, block: Block) -> int:
        return len(self.incoming(block))

    def outgoing_count(self, block: Block) -> int:
        return len(self.outgoing(block))

    def predecessors(self, block: Block) -> list[Block]:
        return self._distinct(c.from_block_id for c in self.incoming(block))

    def successors(self, block: Block) -> list[Block]:
        return self._distinct(c.to_block_id for c in self.outgoing(block))

    def unique_predecessor(self, block: Block) -> Block | None:
        predecessors = self.predecessors(block)
        return predecessors[0] if len(predecessors) == 1 else None

    def single_successor(self, block: Block) -> Block | None:
        successors = self.successors(block)
        return successors[0] if len(successors) == 1 else None

    def feeds_control_flow(self, block: Block) -> bool:
        return any(successor.is_control_flow for successor in self.successors(block))

    def nested_consumers(self, block: Block) -> list[Block]:
        """Consumers sitting in a zone below this scope, outside the producer itself.

        Function bodies are emitted apart from their call site, so consumers
        reached through a callable are left out.
        """
        consumers: list[str] = []
        for connection in self._index.outgoing(block.id):
            if connection.to_block_id in self.ids:
                continue
            ancestors = self._index.ancestors(connection.to_block_id)
            enclosing = next((index for index, ancestor in enumerate(ancestors) if ancestor in self.ids), None)
            if enclosing is None or block.id in ancestors:
                continue
            if any(self._index.block(ancestor).is_callable for ancestor in ancestors[: enclosing + 1]):
                continue
            consumers.append(connection.to_block_id)
        return self._distinct(consumers)

    def dependencies(self, block: Block) -> list[Block]:
        """Blocks that must be emitted before `block`.

        Besides direct producers this includes in-scope producers wired into any
        block nested below `block`, since its zones read their bindings.
        """
        lifted = [
            c.from_block_id
            for c in self._index.connections
            if c.from_block_id in self.ids
            and c.from_block_id != block.id
            and block.id in self._index.ancestors(c.to_block_id)
        ]
        return self._distinct([*(c.from_block_id for c in self.incoming(block)), *lifted])

    def external_producers(self, block: Block) -> list[Block]:
        return self._distinct(
            c.from_block_id for c in self._index.incoming(block.id) if c.from_block_id not in self.ids
        )

    def _distinct(self, block_ids: Iterable[str]) -> list[Block]:
        seen: set[str] = set()
        result: list[Block] = []
        for block_id in block_ids:
            if block_id in seen:
                continue
            seen.add(block_id)
            result.append(self._index.block(block_id))
        return result
