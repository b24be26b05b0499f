from __future__ import annotations

import logging

from scriptgraph.app.models.graph import Block
from scriptgraph.app.models.script import DiagnosticCode
from scriptgraph.app.services.chain_builder import Chain, build_chains
from scriptgraph.app.services.container_emitters import ContainerEmitters
from scriptgraph.app.services.diagnostics import DiagnosticCollector
from scriptgraph.app.services.emission import ScopeEmission, indent_lines
from scriptgraph.app.services.graph_index import GraphIndex, ScopeGraph
from scriptgraph.app.services.topological_sorter import GraphCycleError, topological_sort
from scriptgraph.app.services.variable_binder import BindingTable, BindingView, VariableBinder

logger = logging.getLogger(__name__)

EMPTY_ZONE_MARKER = "# (empty)"
EMPTY_PIPELINE = "$null"


class ScopeEmitter:
    """Emits one scope (the main script, a zone, a function body) and recurses into containers."""

    def __init__(
        self,
        index: GraphIndex,
        binder: VariableBinder,
        table: BindingTable,
        diagnostics: DiagnosticCollector,
        indent_size: int = 4,
    ) -> None:
        self._index = index
        self._binder = binder
        self._table = table
        self._diagnostics = diagnostics
        self._indent_size = indent_size
        self._containers = ContainerEmitters(self, indent_size)

    def zone_children(self, container: Block, zone_name: str) -> list[Block]:
        return self._index.zone_children(container, zone_name)

    def emit_definition(self, function: Block, view: BindingView) -> ScopeEmission:
        return self._containers.emit_definition(function, view)

    def emit_zone(
        self,
        container: Block,
        zone_name: str,
        inherited: BindingView,
        implicit_input: str | None,
        indent: int,
    ) -> ScopeEmission:
        pad = self._pad(indent)
        children = self.zone_children(container, zone_name)
        if not children:
            return ScopeEmission(lines=[f"{pad}{EMPTY_ZONE_MARKER}"])

        scope = self._index.scope(children)
        try:
            ordered = topological_sort(scope)
        except GraphCycleError as error:
            self._diagnostics.error(
                DiagnosticCode.CYCLE,
                f"Zone '{zone_name}' of '{container.id}' was not emitted: {error}",
                *error.block_ids,
            )
            return ScopeEmission(lines=[f"{pad}# ERROR: Cycle detected in zone '{zone_name}'!"])

        return self.emit_sorted(ordered, scope, inherited, implicit_input, indent)

    def emit_sorted(
        self,
        ordered: list[Block],
        scope: ScopeGraph,
        inherited: BindingView,
        implicit_input: str | None,
        indent: int,
        separate_statements: bool = False,
    ) -> ScopeEmission:
        """Emit an already sorted scope.

        Upstream references resolve against this scope's own bindings first, then
        the bindings of enclosing scopes (for producers wired in from outside the
        scope), and finally `implicit_input` for blocks with no producer at all.
        """
        chains = build_chains(ordered, scope)
        local = self._binder.bind_scope(chains, ordered, scope)
        view = self._table.publish(local, inherited)
        logger.debug(
            "Emitting scope of %d blocks at depth %d (%d chains, %d bindings)",
            len(ordered),
            indent,
            len(chains),
            len(local),
        )

        chain_of: dict[str, Chain] = {}
        for chain in chains:
            for member in chain.members:
                chain_of[member.id] = chain

        emission = ScopeEmission()
        emitted: set[str] = set()
        pad = self._pad(indent)

        for block in ordered:
            if block.id in emitted:
                continue

            if block.is_control_flow:
                emitted.add(block.id)
                container_input = self._resolve_upstream(block, scope, local, view, implicit_input)
                emission.extend(
                    self._containers.emit(block, container_input, indent, view, binding=local.get(block.id))
                )
            else:
                chain = chain_of.get(block.id)
                if chain is None:
                    continue
                emitted.update(chain.ids)
                upstream = self._resolve_upstream(chain.head, scope, local, view, implicit_input)
                statement = self._pipeline(chain, upstream)
                binding = local.get(chain.terminal.id)
                if binding:
                    statement = f"${binding} = {statement}"
                emission.lines.extend(indent_lines(statement, pad))

            if separate_statements:
                emission.lines.append("")

        return emission

    def _resolve_upstream(
        self,
        block: Block,
        scope: ScopeGraph,
        local: dict[str, str],
        view: BindingView,
        implicit_input: str | None,
    ) -> str | None:
        producers = [*scope.predecessors(block), *scope.external_producers(block)]
        if not producers:
            return implicit_input

        if len(producers) == 1:
            [upstream] = producers
            name = local.get(upstream.id) or view.get(upstream.id)
            if name:
                return f"${name}"
            if upstream.id in scope:
                return None
            self._diagnostics.warning(
                DiagnosticCode.UNRESOLVED_UPSTREAM,
                f"Block '{block.id}' reads from '{upstream.id}', which is not visible from its scope; "
                "using the scope input instead.",
                block.id,
                upstream.id,
            )
            return implicit_input

        producers = [producer.id for producer in producers]
        self._diagnostics.warning(
            DiagnosticCode.AMBIGUOUS_UPSTREAM,
            f"Block '{block.id}' has {len(producers)} upstream producers; emitting it without piped input.",
            block.id,
            *producers,
        )
        return None

    def _pipeline(self, chain: Chain, upstream: str | None) -> str:
        segments = [upstream] if upstream else []
        segments.extend(expression for expression in map(self._expression, chain.members) if expression)
        if not segments:
            return EMPTY_PIPELINE
        return " | ".join(segments)

    @staticmethod
    def _expression(block: Block) -> str:
        if block.is_callable:
            return block.container.resolved_name

        command = block.command.strip()
        if command:
            arguments = [argument for argument in (p.to_argument() for p in block.parameters) if argument]
            return " ".join([command, *arguments])
        return block.script_body.strip()

    def _pad(self, level: int) -> str:
        return " " * (level * self._indent_size)
