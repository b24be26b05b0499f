from __future__ import annotations

from dataclasses import dataclass

from scriptgraph.app.models.graph import Block
from scriptgraph.app.services.chain_builder import Chain
from scriptgraph.app.services.graph_index import ScopeGraph
from scriptgraph.app.services.identifiers import identity_suffix, sanitize_identifier

DEFAULT_SUFFIX_LENGTH = 4


@dataclass(frozen=True, slots=True)
class Binding:
    block_id: str
    name: str


class BindingTable:
    """Append-only arena of the bindings created during one generation pass."""

    def __init__(self) -> None:
        self._entries: list[Binding] = []
        self._positions: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[Binding]:
        return list(self._entries)

    def append(self, binding: Binding) -> None:
        if binding.block_id in self._positions:
            return
        self._positions[binding.block_id] = len(self._entries)
        self._entries.append(binding)

    def root(self) -> BindingView:
        return BindingView(self)

    def publish(self, bindings: dict[str, str], parent: BindingView) -> BindingView:
        """Append one scope's bindings and return the view its nested zones read through."""
        start = len(self._entries)
        for block_id, name in bindings.items():
            self.append(Binding(block_id, name))
        return parent.extended(start, len(self._entries))

    def lookup(self, block_id: str, spans: tuple[tuple[int, int], ...]) -> str | None:
        position = self._positions.get(block_id)
        if position is None:
            return None
        if any(start <= position < end for start, end in spans):
            return self._entries[position].name
        return None


@dataclass(frozen=True, slots=True)
class BindingView:
    """Bindings visible at one nesting level.

    Each enclosing scope contributes one span of table positions; entries written
    by sibling zones fall outside every span and stay invisible.
    """

    table: BindingTable
    spans: tuple[tuple[int, int], ...] = ()

    def get(self, block_id: str) -> str | None:
        return self.table.lookup(block_id, self.spans)

    def extended(self, start: int, end: int) -> BindingView:
        if start == end:
            return self
        return BindingView(self.table, (*self.spans, (start, end)))


class VariableBinder:
    def __init__(self, suffix_length: int = DEFAULT_SUFFIX_LENGTH) -> None:
        self._suffix_length = max(1, suffix_length)
        self._used_names: set[str] = set()

    def reset(self) -> None:
        self._used_names.clear()

    def bind_scope(self, chains: list[Chain], sorted_blocks: list[Block], scope: ScopeGraph) -> dict[str, str]:
        local: dict[str, str] = {}

        for chain in chains:
            terminal = chain.terminal
            if (
                scope.outgoing_count(terminal) > 1
                or scope.feeds_control_flow(terminal)
                or scope.nested_consumers(terminal)
            ):
                local[terminal.id] = self._chain_name(chain)

        # Containers never stream into a pipeline, so any consumer reads them by name.
        for block in sorted_blocks:
            if not block.is_control_flow or block.id in local:
                continue
            if scope.outgoing_count(block) > 0 or scope.nested_consumers(block):
                local[block.id] = self._block_name(block)

        return local

    def _chain_name(self, chain: Chain) -> str:
        for member in reversed(chain.members):
            if member.output_variable.strip():
                return self._claim_unique(sanitize_identifier(member.output_variable))
        return self._synthesize(chain.terminal)

    def _block_name(self, block: Block) -> str:
        if block.output_variable.strip():
            return self._claim_unique(sanitize_identifier(block.output_variable))
        return self._synthesize(block)

    def _synthesize(self, block: Block) -> str:
        if block.is_callable:
            base = sanitize_identifier(block.container.resolved_name)
        else:
            base = sanitize_identifier(block.title)

        full_suffix = identity_suffix(block.id, len(block.id))
        candidates = [
            f"{base}_{full_suffix[:length]}"
            for length in range(min(self._suffix_length, len(full_suffix)), len(full_suffix) + 1)
            if length > 0
        ]
        for candidate in candidates:
            if candidate.casefold() not in self._used_names:
                return self._claim(candidate)
        return self._claim_unique(candidates[-1] if candidates else base)

    def _claim_unique(self, name: str) -> str:
        """Claim `name`, or `name_2`, `name_3`... when it is already taken."""
        if name.casefold() not in self._used_names:
            return self._claim(name)
        counter = 2
        while f"{name}_{counter}".casefold() in self._used_names:
            counter += 1
        return self._claim(f"{name}_{counter}")

    def _claim(self, name: str) -> str:
        # PowerShell variable names are case-insensitive.
        self._used_names.add(name.casefold())
        return name
