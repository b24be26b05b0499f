from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field

from scriptgraph.app.models.graph import ContainerKind, GraphSnapshot


class DiagnosticLevel(StrEnum):
    WARNING = "warning"
    ERROR = "error"


class DiagnosticCode(StrEnum):
    CYCLE = "cycle"
    DANGLING_CONNECTION = "dangling_connection"
    UNKNOWN_PORT = "unknown_port"
    SELF_CONNECTION = "self_connection"
    DUPLICATE_CONNECTION = "duplicate_connection"
    INPUT_ALREADY_CONNECTED = "input_already_connected"
    DANGLING_ZONE_CHILD = "dangling_zone_child"
    DUPLICATE_ZONE_CHILD = "duplicate_zone_child"
    NESTING_CYCLE = "nesting_cycle"
    AMBIGUOUS_UPSTREAM = "ambiguous_upstream"
    UNRESOLVED_UPSTREAM = "unresolved_upstream"


class GenerationDiagnostic(BaseModel):
    level: DiagnosticLevel
    code: DiagnosticCode
    message: str
    block_ids: list[str] = Field(default_factory=list)


class ScriptBinding(BaseModel):
    block_id: str
    name: str


class GenerateScriptRequest(BaseModel):
    graph: GraphSnapshot
    strict: bool = False


class GenerateScriptResponse(BaseModel):
    script: str
    diagnostics: list[GenerationDiagnostic] = Field(default_factory=list)
    bindings: list[ScriptBinding] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ContainerKindInfo(BaseModel):
    kind: ContainerKind
    zones: list[str]
    hoisted: bool = False
