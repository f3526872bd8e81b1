from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from .content import InvocationResult
from .elicitation import InvocationContext
from .errors import (
    AuthorizationDenied,
    ElicitationFailed,
    ExecutionFault,
    ToolhostError,
    ToolValidationError,
    UnknownToolError,
)
from .registry import ToolRegistry

log = logging.getLogger(__name__)

# Matched against free-form CLI/HTTP error text; first match wins.
REMEDIATION_HINTS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"az: command not found|'az' is not recognized|az: not found"),
        "Azure CLI is not installed. Please install it from: https://aka.ms/azure-cli",
    ),
    (
        re.compile(r"Please run 'az login'|not logged in", re.IGNORECASE),
        "Please authenticate first: az login",
    ),
    (
        re.compile(r"Subscription.*not found", re.DOTALL),
        "Invalid subscription ID. Use listAzureSubscriptions to see available subscriptions.",
    ),
)


def remediation_hint(message: str) -> str | None:
    for pattern, hint in REMEDIATION_HINTS:
        if pattern.search(message):
            return hint
    return None


def _with_output(message: str, exc: ExecutionFault) -> str:
    result = exc.result
    if result is None:
        return message
    captured = result.stdout.strip()
    if result.stderr.strip():
        captured += f"\n[STDERR]: {result.stderr.strip()}"
    if captured.strip():
        message += f"\n\nCaptured output:\n{captured.strip()}"
    return message


class ToolDispatcher:
    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def invoke(
        self,
        name: str,
        raw_arguments: Any,
        context: InvocationContext | None = None,
    ) -> InvocationResult:
        if context is None:
            context = InvocationContext(name)
        try:
            handler, arguments = self.registry.validate_and_lookup(name, raw_arguments)
        except (UnknownToolError, ToolValidationError) as exc:
            log.info("rejected call to %s: %s", context.tool_name, exc)
            return InvocationResult.error(str(exc))

        title = self.registry.descriptor(name).title
        log.debug("invoking %s", context.tool_name)
        try:
            result = await handler(arguments, context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._fault_result(title, exc, context)
        finally:
            if context.sessions:
                log.debug("%s used %d elicitation round(s)", context.tool_name, len(context.sessions))
        if isinstance(result, str):
            return InvocationResult.text(result)
        return result

    def _fault_result(self, title: str, exc: Exception, context: InvocationContext) -> InvocationResult:
        if isinstance(exc, AuthorizationDenied):
            log.warning("%s denied: %s", title, exc.command)
            return InvocationResult.error(str(exc))
        if isinstance(exc, ElicitationFailed):
            log.warning("%s elicitation failed: %s", title, exc)
            message = f"Elicitation failed: {exc}"
            if context.last_request is not None:
                field = context.last_request.field.name
                message += f"\n\nPlease provide the {field} parameter directly."
            return InvocationResult.error(message)
        if isinstance(exc, ExecutionFault):
            log.warning("%s execution fault: %s", title, exc)
            return InvocationResult.error(_with_output(f"{title} failed: {exc}", exc))

        if isinstance(exc, ToolhostError):
            log.warning("%s failed: %s", title, exc)
        else:
            log.error("%s raised unexpectedly", title, exc_info=exc)
        message = f"{title} failed: {exc}"
        hint = getattr(exc, "hint", None) or remediation_hint(str(exc))
        if hint:
            message += f"\n\n{hint}"
        return InvocationResult.error(message)
