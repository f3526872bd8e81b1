"""
Elicitation: a tool handler asking the client for structured input mid-call.

Each exchange is an :class:`ElicitationSession` that moves through

    IDLE -> REQUESTED -> ACCEPTED | DECLINED | CANCELLED | FAILED

and is never reused.  ``ACCEPTED``, ``DECLINED`` and ``CANCELLED`` come back to
the handler as outcome values; ``FAILED`` is raised as
:class:`~toolhost.errors.ElicitationFailed` so the dispatcher reports it as an
error.

Handlers reach the client through :class:`InvocationContext`, which allows one
outstanding session per invocation.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .errors import ElicitationBusyError, ElicitationFailed

log = logging.getLogger(__name__)

ElicitationTransport = Callable[[dict[str, Any]], Awaitable[Mapping[str, Any]]]


class ElicitationState(str, Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self not in (ElicitationState.IDLE, ElicitationState.REQUESTED)


@dataclass(frozen=True)
class Choice:
    value: str
    label: str


@dataclass(frozen=True)
class ChoiceField:
    name: str
    title: str
    description: str
    choices: tuple[Choice, ...]
    required: bool = True

    @property
    def values(self) -> list[str]:
        return [choice.value for choice in self.choices]

    def schema(self) -> dict[str, Any]:
        return {
            "type": "string",
            "title": self.title,
            "description": self.description,
            "enum": self.values,
            "enumNames": [choice.label for choice in self.choices],
        }


@dataclass(frozen=True)
class ElicitationRequest:
    message: str
    field: ChoiceField

    def as_params(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "requestedSchema": {
                "type": "object",
                "properties": {self.field.name: self.field.schema()},
                "required": [self.field.name] if self.field.required else [],
            },
        }


@dataclass(frozen=True)
class Accepted:
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Declined:
    pass


@dataclass(frozen=True)
class Cancelled:
    pass


ElicitationOutcome = Union[Accepted, Declined, Cancelled]


class ElicitationSession:
    def __init__(self, transport: ElicitationTransport) -> None:
        self._transport = transport
        self.state = ElicitationState.IDLE

    async def request(self, request: ElicitationRequest) -> ElicitationOutcome:
        if self.state is not ElicitationState.IDLE:
            raise ElicitationBusyError(f"Elicitation session is already {self.state.value}")
        self.state = ElicitationState.REQUESTED
        log.debug("elicitation requested: field=%s choices=%d", request.field.name, len(request.field.choices))
        try:
            response = await self._transport(request.as_params())
        except asyncio.CancelledError:
            self.state = ElicitationState.FAILED
            raise
        except ElicitationFailed:
            self.state = ElicitationState.FAILED
            raise
        except Exception as exc:
            self.state = ElicitationState.FAILED
            raise ElicitationFailed(str(exc) or type(exc).__name__) from exc
        return self._resolve(request, response)

    def _fail(self, reason: str) -> ElicitationFailed:
        self.state = ElicitationState.FAILED
        log.warning("elicitation failed: %s", reason)
        return ElicitationFailed(reason)

    def _resolve(self, request: ElicitationRequest, response: object) -> ElicitationOutcome:
        if not isinstance(response, Mapping):
            raise self._fail("malformed elicitation response")
        action = response.get("action")
        outcome: ElicitationOutcome
        if action == "decline":
            outcome, self.state = Declined(), ElicitationState.DECLINED
        elif action == "cancel":
            outcome, self.state = Cancelled(), ElicitationState.CANCELLED
        elif action == "accept":
            content = response.get("content") or {}
            if not isinstance(content, Mapping):
                raise self._fail("malformed elicitation content")
            name = request.field.name
            value = content.get(name)
            if value in (None, ""):
                if request.field.required:
                    raise self._fail(f"response is missing required field '{name}'")
            elif value not in request.field.values:
                raise self._fail(f"'{value}' is not one of the offered choices for '{name}'")
            outcome, self.state = Accepted(dict(content)), ElicitationState.ACCEPTED
        else:
            raise self._fail(f"unknown elicitation action: {action!r}")
        log.debug("elicitation resolved: %s", self.state.value)
        return outcome


class InvocationContext:
    """Per-invocation handle passed to tool handlers."""

    def __init__(self, tool_name: str = "", transport: ElicitationTransport | None = None) -> None:
        self.tool_name = tool_name
        self._transport = transport
        self._active: ElicitationSession | None = None
        self.last_request: ElicitationRequest | None = None
        self.sessions: list[ElicitationSession] = []

    @property
    def can_elicit(self) -> bool:
        return self._transport is not None

    async def elicit(self, request: ElicitationRequest) -> ElicitationOutcome:
        if self._active is not None:
            raise ElicitationBusyError("Another elicitation is still outstanding for this call")
        self.last_request = request
        if not self.can_elicit:
            raise ElicitationFailed("client does not support elicitation")
        session = ElicitationSession(self._transport)
        self._active = session
        self.sessions.append(session)
        try:
            return await session.request(request)
        finally:
            self._active = None
