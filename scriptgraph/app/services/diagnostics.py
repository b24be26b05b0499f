from __future__ import annotations

import logging

from scriptgraph.app.models.script import DiagnosticCode, DiagnosticLevel, GenerationDiagnostic

logger = logging.getLogger(__name__)


class DiagnosticCollector:
    def __init__(self) -> None:
        self._items: list[GenerationDiagnostic] = []

    @property
    def items(self) -> list[GenerationDiagnostic]:
        return list(self._items)

    def has_errors(self) -> bool:
        return any(item.level == DiagnosticLevel.ERROR for item in self._items)

    def warning(self, code: DiagnosticCode, message: str, *block_ids: str) -> None:
        logger.warning("%s: %s", code.value, message)
        self._items.append(
            GenerationDiagnostic(level=DiagnosticLevel.WARNING, code=code, message=message, block_ids=list(block_ids))
        )

    def error(self, code: DiagnosticCode, message: str, *block_ids: str) -> None:
        logger.warning("%s: %s", code.value, message)
        self._items.append(
            GenerationDiagnostic(level=DiagnosticLevel.ERROR, code=code, message=message, block_ids=list(block_ids))
        )
