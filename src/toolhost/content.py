from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str
    type: str = "text"

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True, slots=True)
class InvocationResult:
    content: tuple[TextContent, ...] = field(default_factory=tuple)
    is_error: bool = False

    @classmethod
    def text(cls, text: str, *, is_error: bool = False) -> "InvocationResult":
        return cls(content=(TextContent(text),), is_error=is_error)

    @classmethod
    def error(cls, text: str) -> "InvocationResult":
        return cls.text(text, is_error=True)

    @property
    def joined_text(self) -> str:
        return "\n".join(block.text for block in self.content)

    def as_dict(self) -> dict[str, Any]:
        return {
            "content": [block.as_dict() for block in self.content],
            "isError": self.is_error,
        }
