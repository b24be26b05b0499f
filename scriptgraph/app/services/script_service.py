from __future__ import annotations

import logging

from fastapi import HTTPException

from scriptgraph.app.core.config import Settings
from scriptgraph.app.models.graph import ContainerKind
from scriptgraph.app.models.script import (
    ContainerKindInfo,
    DiagnosticLevel,
    GenerateScriptRequest,
    GenerateScriptResponse,
    ScriptBinding,
)
from scriptgraph.app.services.container_emitters import ZONE_NAMES
from scriptgraph.app.services.script_generator import ScriptGenerator

logger = logging.getLogger(__name__)


class ScriptGenerationError(Exception):
    def __init__(self, diagnostics: list[str]):
        self.diagnostics = diagnostics
        super().__init__("Script generation failed")


class ScriptService:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def render(self, request: GenerateScriptRequest) -> GenerateScriptResponse:
        generator = self._new_generator()
        script = generator.generate(request.graph)

        if request.strict and generator.has_errors():
            raise ScriptGenerationError(
                [item.message for item in generator.diagnostics if item.level == DiagnosticLevel.ERROR]
            )

        logger.info(
            "Generated script: blocks=%d connections=%d bindings=%d diagnostics=%d",
            len(request.graph.blocks),
            len(request.graph.connections),
            len(generator.bindings),
            len(generator.diagnostics),
        )
        return GenerateScriptResponse(
            script=script,
            diagnostics=generator.diagnostics,
            bindings=[ScriptBinding(block_id=item.block_id, name=item.name) for item in generator.bindings],
        )

    def generate_script(self, request: GenerateScriptRequest) -> GenerateScriptResponse:
        try:
            return self.render(request)
        except ScriptGenerationError as error:
            raise HTTPException(status_code=422, detail={"diagnostics": error.diagnostics}) from error

    @staticmethod
    def container_kinds() -> list[ContainerKindInfo]:
        return [
            ContainerKindInfo(kind=kind, zones=list(ZONE_NAMES[kind]), hoisted=kind == ContainerKind.FUNCTION)
            for kind in ContainerKind
        ]

    def _new_generator(self) -> ScriptGenerator:
        return ScriptGenerator(
            indent_size=self._settings.indent_size,
            include_header=self._settings.include_header,
            binding_suffix_length=self._settings.binding_suffix_length,
        )
