from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .process import ExecutionResult


class ToolhostError(RuntimeError):
    pass


class DuplicateToolError(ToolhostError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Tool already registered: {name}")
        self.name = name


class UnknownToolError(ToolhostError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolValidationError(ToolhostError):
    def __init__(self, field: str, constraint: str) -> None:
        super().__init__(f"Invalid argument '{field}': {constraint}")
        self.field = field
        self.constraint = constraint


class AuthorizationDenied(ToolhostError):
    def __init__(self, command: str, allowed: tuple[str, ...], reason: str = "") -> None:
        message = f"Command '{command}' is not allowed"
        if reason:
            message += f" ({reason})"
        message += f". Allowed commands: {', '.join(allowed)}"
        super().__init__(message)
        self.command = command
        self.allowed = allowed


class ExecutionFault(ToolhostError):
    def __init__(self, message: str, *, result: ExecutionResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class ProcessTimeoutError(ExecutionFault):
    pass


class OutputTooLargeError(ExecutionFault):
    pass


class ElicitationFailed(ToolhostError):
    pass


class ElicitationBusyError(ToolhostError):
    pass


class CapabilityError(ToolhostError):
    """A downstream HTTP service or CLI call failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.hint = hint
