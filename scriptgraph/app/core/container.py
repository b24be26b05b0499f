from __future__ import annotations

from dataclasses import dataclass

from scriptgraph.app.core.config import Settings
from scriptgraph.app.services.script_service import ScriptService


@dataclass(slots=True)
class AppContainer:
    settings: Settings
    script_service: ScriptService
