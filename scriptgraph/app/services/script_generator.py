from __future__ import annotations

import logging

from scriptgraph.app.models.graph import GraphSnapshot
from scriptgraph.app.models.script import DiagnosticCode, GenerationDiagnostic
from scriptgraph.app.services.diagnostics import DiagnosticCollector
from scriptgraph.app.services.graph_index import GraphIndex
from scriptgraph.app.services.scope_emitter import ScopeEmitter
from scriptgraph.app.services.topological_sorter import GraphCycleError, topological_sort
from scriptgraph.app.services.variable_binder import DEFAULT_SUFFIX_LENGTH, Binding, BindingTable, VariableBinder

logger = logging.getLogger(__name__)

GRAPH_CYCLE_MARKER = "# ERROR: Cycle detected in graph!"
HEADER_RULE = "# " + "=" * 43
HEADER_LINES = [HEADER_RULE, "# Auto-generated PowerShell 5.1 Script", HEADER_RULE]
FUNCTIONS_BANNER = "# -- Function Definitions " + "-" * 17
EXECUTION_BANNER = "# -- Execution " + "-" * 28


class ScriptGenerator:
    """Turns a graph snapshot into one PowerShell script.

    An instance may be reused: every `generate()` call starts from a clean
    binder, binding table and diagnostic list. It is not safe to call
    `generate()` concurrently on the same instance.
    """

    def __init__(
        self,
        indent_size: int = 4,
        include_header: bool = True,
        binding_suffix_length: int = DEFAULT_SUFFIX_LENGTH,
    ) -> None:
        self._indent_size = indent_size
        self._include_header = include_header
        self._binder = VariableBinder(binding_suffix_length)
        self._table = BindingTable()
        self._diagnostics = DiagnosticCollector()

    @property
    def diagnostics(self) -> list[GenerationDiagnostic]:
        return self._diagnostics.items

    @property
    def bindings(self) -> list[Binding]:
        return self._table.entries

    def has_errors(self) -> bool:
        return self._diagnostics.has_errors()

    def generate(self, snapshot: GraphSnapshot) -> str:
        self._binder.reset()
        self._table = BindingTable()
        self._diagnostics = DiagnosticCollector()

        index = GraphIndex(snapshot, self._diagnostics)
        main_scope = index.scope(index.top_level())
        try:
            main_order = topological_sort(main_scope)
            callable_order = topological_sort(index.scope(index.callables()))
        except GraphCycleError as error:
            self._diagnostics.error(DiagnosticCode.CYCLE, str(error), *error.block_ids)
            return GRAPH_CYCLE_MARKER + "\n"

        emitter = ScopeEmitter(index, self._binder, self._table, self._diagnostics, self._indent_size)
        root = self._table.root()
        lines: list[str] = []
        if self._include_header:
            lines.extend([*HEADER_LINES, ""])

        if callable_order:
            lines.extend([FUNCTIONS_BANNER, ""])
            for function in callable_order:
                lines.extend(emitter.emit_definition(function, root).lines)
                lines.append("")

        # Top-level callables are also call sites: they run in the execution section by name.
        if main_order:
            lines.extend([EXECUTION_BANNER, ""])
            emission = emitter.emit_sorted(main_order, main_scope, root, None, 0, separate_statements=True)
            lines.extend(emission.lines)

        logger.debug(
            "Generated script from %d blocks: %d bindings, %d diagnostics",
            len(snapshot.blocks),
            len(self._table),
            len(self._diagnostics.items),
        )
        return "\n".join(lines).rstrip() + "\n"
