from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ScopeEmission:
    lines: list[str] = field(default_factory=list)

    def extend(self, other: ScopeEmission) -> None:
        self.lines.extend(other.lines)


def indent_lines(text: str, pad: str) -> list[str]:
    return [f"{pad}{line}" if line.strip() else "" for line in text.splitlines()]
