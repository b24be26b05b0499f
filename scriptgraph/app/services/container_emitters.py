from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from scriptgraph.app.models.graph import (
    DEFAULT_CONDITION,
    Block,
    ContainerKind,
    ForEachContainer,
    FunctionContainer,
    IfElseContainer,
    TryCatchContainer,
    WhileContainer,
)
from scriptgraph.app.services.emission import ScopeEmission
from scriptgraph.app.services.identifiers import sanitize_identifier
from scriptgraph.app.services.variable_binder import BindingView

if TYPE_CHECKING:
    from scriptgraph.app.services.scope_emitter import ScopeEmitter

FOR_EACH_ITEM_REFERENCE = "$_"

ZONE_NAMES: dict[ContainerKind, tuple[str, ...]] = {
    ContainerKind.IF_ELSE: ("Then", "Else"),
    ContainerKind.FOR_EACH: ("Body",),
    ContainerKind.WHILE: ("Body",),
    ContainerKind.TRY_CATCH: ("Try", "Catch"),
    ContainerKind.FUNCTION: ("Body",),
}

ControlFlowStrategy = Callable[..., ScopeEmission]


class ContainerEmitters:
    def __init__(self, scopes: ScopeEmitter, indent_size: int) -> None:
        self._scopes = scopes
        self._indent_size = indent_size
        self._strategies: dict[type, ControlFlowStrategy] = {
            IfElseContainer: self._emit_if_else,
            ForEachContainer: self._emit_for_each,
            WhileContainer: self._emit_while,
            TryCatchContainer: self._emit_try_catch,
        }

    def emit(
        self,
        container: Block,
        container_input: str | None,
        indent: int,
        view: BindingView,
        binding: str | None = None,
    ) -> ScopeEmission:
        """Emit a control-flow container; `binding` captures its output as `$binding = ...`."""
        strategy = self._strategies[type(container.container)]
        prefix = f"${binding} = " if binding else ""
        return strategy(container, container_input, indent, view, prefix)

    def emit_definition(self, function: Block, view: BindingView) -> ScopeEmission:
        spec = function.container
        assert isinstance(spec, FunctionContainer)

        outer = self._pad(1)
        inner = self._pad(2)
        emission = ScopeEmission(lines=[f"function {spec.resolved_name} {{"])

        input_param = spec.input_param.strip()
        if input_param:
            parameter = "$" + sanitize_identifier(input_param)
            emission.lines.extend(
                [
                    f"{outer}param(",
                    f"{inner}[Parameter(ValueFromPipeline)]",
                    f"{inner}{parameter}",
                    f"{outer})",
                    f"{outer}process {{",
                ]
            )
            emission.extend(self._scopes.emit_zone(function, "Body", view, parameter, indent=2))
            emission.lines.append(f"{outer}}}")
        else:
            emission.extend(self._scopes.emit_zone(function, "Body", view, None, indent=1))

        emission.lines.append("}")
        return emission

    def _emit_if_else(
        self,
        container: Block,
        container_input: str | None,
        indent: int,
        view: BindingView,
        prefix: str,
    ) -> ScopeEmission:
        spec = container.container
        pad = self._pad(indent)
        condition = spec.condition.strip() or DEFAULT_CONDITION

        emission = ScopeEmission(lines=[f"{pad}{prefix}if ({condition}) {{"])
        emission.extend(self._scopes.emit_zone(container, "Then", view, container_input, indent + 1))
        emission.lines.append(f"{pad}}}")

        if self._scopes.zone_children(container, "Else"):
            emission.lines.append(f"{pad}else {{")
            emission.extend(self._scopes.emit_zone(container, "Else", view, container_input, indent + 1))
            emission.lines.append(f"{pad}}}")
        return emission

    def _emit_for_each(
        self,
        container: Block,
        container_input: str | None,
        indent: int,
        view: BindingView,
        prefix: str,
    ) -> ScopeEmission:
        pad = self._pad(indent)
        opening = f"{container_input} | ForEach-Object {{" if container_input else "ForEach-Object {"

        emission = ScopeEmission(lines=[f"{pad}{prefix}{opening}"])
        emission.extend(self._scopes.emit_zone(container, "Body", view, FOR_EACH_ITEM_REFERENCE, indent + 1))
        emission.lines.append(f"{pad}}}")
        return emission

    def _emit_while(
        self,
        container: Block,
        container_input: str | None,
        indent: int,
        view: BindingView,
        prefix: str,
    ) -> ScopeEmission:
        spec = container.container
        pad = self._pad(indent)
        condition = spec.condition.strip() or DEFAULT_CONDITION

        emission = ScopeEmission(lines=[f"{pad}{prefix}while ({condition}) {{"])
        emission.extend(self._scopes.emit_zone(container, "Body", view, container_input, indent + 1))
        emission.lines.append(f"{pad}}}")
        return emission

    def _emit_try_catch(
        self,
        container: Block,
        container_input: str | None,
        indent: int,
        view: BindingView,
        prefix: str,
    ) -> ScopeEmission:
        pad = self._pad(indent)

        emission = ScopeEmission(lines=[f"{pad}{prefix}try {{"])
        emission.extend(self._scopes.emit_zone(container, "Try", view, container_input, indent + 1))
        emission.lines.append(f"{pad}}}")

        # The caught error is not threaded into the recovery zone as an implicit input.
        emission.lines.append(f"{pad}catch {{")
        emission.extend(self._scopes.emit_zone(container, "Catch", view, None, indent + 1))
        emission.lines.append(f"{pad}}}")
        return emission

    def _pad(self, level: int) -> str:
        return " " * (level * self._indent_size)
