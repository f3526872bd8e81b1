from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .content import InvocationResult
from .errors import DuplicateToolError, ToolValidationError, UnknownToolError

if TYPE_CHECKING:
    from .elicitation import InvocationContext

log = logging.getLogger(__name__)


class ToolArguments(BaseModel):
    """Base for tool argument models: strict types, unknown keys ignored."""

    model_config = ConfigDict(strict=True, extra="ignore")


class NoArguments(ToolArguments):
    pass


ToolHandler = Callable[[Any, "InvocationContext"], Awaitable[Union[InvocationResult, str]]]


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    title: str
    description: str
    arguments: type[ToolArguments] = NoArguments

    def input_schema(self) -> dict[str, Any]:
        schema = self.arguments.model_json_schema()
        properties = schema.get("properties", {})
        for prop in properties.values():
            prop.pop("title", None)
        return {
            "type": "object",
            "properties": properties,
            "required": schema.get("required", []),
        }

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


@dataclass(frozen=True)
class _Entry:
    descriptor: ToolDescriptor
    handler: ToolHandler


class ToolRegistry:
    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler) -> None:
        if descriptor.name in self._entries:
            raise DuplicateToolError(descriptor.name)
        self._entries[descriptor.name] = _Entry(descriptor, handler)
        log.debug("registered tool %s", descriptor.name)

    def descriptor(self, name: str) -> ToolDescriptor:
        try:
            return self._entries[name].descriptor
        except KeyError:
            raise UnknownToolError(name) from None

    def list_tools(self) -> list[dict[str, Any]]:
        return [entry.descriptor.as_dict() for entry in self._entries.values()]

    def validate_and_lookup(
        self, name: str, raw_arguments: object
    ) -> tuple[ToolHandler, ToolArguments]:
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownToolError(name)
        if raw_arguments is None:
            raw_arguments = {}
        if not isinstance(raw_arguments, Mapping):
            raise ToolValidationError("arguments", "expected a JSON object")
        try:
            typed = entry.descriptor.arguments.model_validate(dict(raw_arguments))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "arguments"
            raise ToolValidationError(field, first["msg"]) from None
        return entry.handler, typed
