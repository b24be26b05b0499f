from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

MAX_BLOCKS = 500
MAX_CONNECTIONS = 2_000
DEFAULT_FUNCTION_NAME = "Invoke-MyFunction"
DEFAULT_CONDITION = "$true"


class ParamType(StrEnum):
    STRING = "string"
    INT = "int"
    BOOL = "bool"
    STRING_ARRAY = "string_array"
    SCRIPT_BLOCK = "script_block"
    PATH = "path"
    CREDENTIAL = "credential"
    ENUM = "enum"


class ContainerKind(StrEnum):
    IF_ELSE = "if_else"
    FOR_EACH = "for_each"
    WHILE = "while"
    TRY_CATCH = "try_catch"
    FUNCTION = "function"


class BlockParameter(BaseModel):
    name: str = Field(min_length=1)
    type: ParamType = ParamType.STRING
    value: str = ""
    default_value: str = ""
    description: str = ""
    is_mandatory: bool = False
    valid_values: list[str] = Field(default_factory=list)

    @property
    def effective_value(self) -> str:
        value = self.value if self.value.strip() else self.default_value
        return value.strip()

    def to_argument(self) -> str:
        """Render as a command-line argument, or "" when the parameter is omitted."""
        value = self.effective_value
        if not value:
            return ""

        if self.type in {ParamType.STRING, ParamType.PATH}:
            escaped = value.replace('"', '`"')
            return f'-{self.name} "{escaped}"'
        if self.type == ParamType.INT:
            return f"-{self.name} {value}"
        if self.type == ParamType.BOOL:
            return f"-{self.name}" if value.lower() == "true" else ""
        if self.type == ParamType.STRING_ARRAY:
            items = ", ".join(f'"{item.strip()}"' for item in value.split(","))
            return f"-{self.name} @({items})"
        if self.type == ParamType.SCRIPT_BLOCK:
            return f"-{self.name} {{ {value} }}"
        return f'-{self.name} "{value}"'


@dataclass(frozen=True, slots=True)
class BlockZone:
    name: str
    children: tuple[str, ...]


class IfElseContainer(BaseModel):
    kind: Literal["if_else"] = "if_else"
    condition: str = DEFAULT_CONDITION
    then: list[str] = Field(default_factory=list)
    else_: list[str] = Field(default_factory=list, alias="else")

    model_config = {"populate_by_name": True}

    def zones(self) -> list[BlockZone]:
        return [BlockZone("Then", tuple(self.then)), BlockZone("Else", tuple(self.else_))]


class ForEachContainer(BaseModel):
    kind: Literal["for_each"] = "for_each"
    body: list[str] = Field(default_factory=list)

    def zones(self) -> list[BlockZone]:
        return [BlockZone("Body", tuple(self.body))]


class WhileContainer(BaseModel):
    kind: Literal["while"] = "while"
    condition: str = DEFAULT_CONDITION
    body: list[str] = Field(default_factory=list)

    def zones(self) -> list[BlockZone]:
        return [BlockZone("Body", tuple(self.body))]


class TryCatchContainer(BaseModel):
    kind: Literal["try_catch"] = "try_catch"
    try_: list[str] = Field(default_factory=list, alias="try")
    catch: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def zones(self) -> list[BlockZone]:
        return [BlockZone("Try", tuple(self.try_)), BlockZone("Catch", tuple(self.catch))]


class FunctionContainer(BaseModel):
    kind: Literal["function"] = "function"
    function_name: str = DEFAULT_FUNCTION_NAME
    input_param: str = ""
    body: list[str] = Field(default_factory=list)

    @property
    def resolved_name(self) -> str:
        return self.function_name.strip() or DEFAULT_FUNCTION_NAME

    def zones(self) -> list[BlockZone]:
        return [BlockZone("Body", tuple(self.body))]


ContainerSpec = Annotated[
    IfElseContainer | ForEachContainer | WhileContainer | TryCatchContainer | FunctionContainer,
    Field(discriminator="kind"),
]


class Block(BaseModel):
    id: str = Field(min_length=1)
    title: str = "New Block"
    category: str = "Custom"
    command: str = ""
    script_body: str = ""
    output_variable: str = ""
    parameters: list[BlockParameter] = Field(default_factory=list)
    inputs: list[str] = Field(default_factory=lambda: ["In"])
    outputs: list[str] = Field(default_factory=lambda: ["Out"])
    container: ContainerSpec | None = None

    @property
    def is_container(self) -> bool:
        return self.container is not None

    @property
    def is_callable(self) -> bool:
        return isinstance(self.container, FunctionContainer)

    @property
    def is_control_flow(self) -> bool:
        return self.container is not None and not self.is_callable

    def zones(self) -> list[BlockZone]:
        if self.container is None:
            return []
        return self.container.zones()

    def find_zone(self, name: str) -> BlockZone | None:
        for zone in self.zones():
            if zone.name == name:
                return zone
        return None


class Connection(BaseModel):
    from_block_id: str = Field(min_length=1)
    from_port_id: str = "Out"
    to_block_id: str = Field(min_length=1)
    to_port_id: str = "In"


class GraphSnapshot(BaseModel):
    blocks: list[Block] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    @field_validator("blocks")
    @classmethod
    def validate_block_count(cls, blocks: list[Block]) -> list[Block]:
        if len(blocks) > MAX_BLOCKS:
            raise ValueError(f"Graph exceeds maximum block count ({MAX_BLOCKS})")
        return blocks

    @field_validator("connections")
    @classmethod
    def validate_connection_count(cls, connections: list[Connection]) -> list[Connection]:
        if len(connections) > MAX_CONNECTIONS:
            raise ValueError(f"Graph exceeds maximum connection count ({MAX_CONNECTIONS})")
        return connections

    @model_validator(mode="after")
    def validate_unique_block_ids(self) -> "GraphSnapshot":
        ids = [block.id for block in self.blocks]
        if len(ids) != len(set(ids)):
            raise ValueError("Block IDs must be unique")
        return self
