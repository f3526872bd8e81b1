from __future__ import annotations

import json
import os
import platform
import shlex
import sys
import time
from typing import Any, Optional

from pydantic import Field, field_validator

from ..authorizer import CommandAuthorizer, has_shell_metacharacters
from ..config import ServerConfig
from ..content import InvocationResult
from ..elicitation import InvocationContext
from ..errors import ExecutionFault, OutputTooLargeError
from ..process import ExecutionResult, ProcessRunner
from ..registry import NoArguments, ToolArguments, ToolDescriptor, ToolRegistry


class CommandArguments(ToolArguments):
    command: str = Field(description="Command to run. Must start with an allow-listed prefix.")


class DirectoryArguments(ToolArguments):
    path: Optional[str] = Field(default=None, description="Directory to list (defaults to the working directory).")

    @field_validator("path")
    @classmethod
    def _plain_path(cls, value: Optional[str]) -> Optional[str]:
        # The path is spliced into a shell command; cmd.exe has no quoting
        # that survives embedded quotes or %VAR% expansion.
        if value is not None and (has_shell_metacharacters(value) or any(ch in value for ch in "\"%")):
            raise ValueError("path must not contain quotes, % or shell control characters")
        return value


def _combined_output(result: ExecutionResult) -> str:
    output = result.stdout
    if result.stderr:
        output += f"\n[STDERR]: {result.stderr}"
    return output


def _listing_command(path: str | None) -> str:
    target = path or "."
    if sys.platform == "win32":
        return f'dir "{target}"'
    return f"ls -la -- {shlex.quote(target)}"


def _memory_usage() -> dict[str, Any]:
    if sys.platform == "win32":
        return {}
    import resource

    usage = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is KiB on Linux, bytes on macOS.
    scale = 1 if sys.platform == "darwin" else 1024
    return {"maxRssBytes": usage.ru_maxrss * scale}


def register(
    registry: ToolRegistry,
    authorizer: CommandAuthorizer,
    runner: ProcessRunner,
    config: ServerConfig,
    *,
    started_at: float | None = None,
) -> None:
    started = time.monotonic() if started_at is None else started_at

    async def execute_command(args: CommandArguments, ctx: InvocationContext) -> InvocationResult:
        authorizer.authorize(args.command)
        result = await runner.run(args.command, config.command_timeout_ms, config.command_max_output_bytes)
        if result.truncated:
            raise OutputTooLargeError(
                f"output exceeded {config.command_max_output_bytes} bytes and was truncated",
                result=result,
            )
        text = f"Command: {args.command}\n\nOutput:\n{_combined_output(result) or '(no output)'}"
        if result.exit_code:
            return InvocationResult.error(f"{text}\n(exit {result.exit_code})")
        return InvocationResult.text(text)

    async def list_directory(args: DirectoryArguments, ctx: InvocationContext) -> str:
        result = await runner.run(
            _listing_command(args.path), config.listing_timeout_ms, config.listing_max_output_bytes
        )
        if result.exit_code:
            raise ExecutionFault(f"exit {result.exit_code}", result=result)
        header = f"Directory listing for {args.path}:" if args.path else "Directory listing:"
        text = f"{header}\n\n{result.stdout}"
        if result.truncated:
            text += "\n(output truncated)"
        return text

    async def get_system_info(args: NoArguments, ctx: InvocationContext) -> str:
        info = {
            "platform": sys.platform,
            "arch": platform.machine(),
            "pythonVersion": platform.python_version(),
            "pid": os.getpid(),
            "cwd": os.getcwd(),
            "uptime": round(time.monotonic() - started, 3),
            "memoryUsage": _memory_usage(),
        }
        return f"System Information:\n{json.dumps(info, indent=2)}"

    registry.register(
        ToolDescriptor(
            "executeCommand",
            "Execute CLI Command",
            "Execute a whitelisted CLI command safely",
            CommandArguments,
        ),
        execute_command,
    )
    registry.register(
        ToolDescriptor(
            "listDirectory",
            "List Directory",
            "List files and directories in the current or specified path",
            DirectoryArguments,
        ),
        list_directory,
    )
    registry.register(
        ToolDescriptor(
            "getSystemInfo",
            "Get System Information",
            "Get basic system information like OS, Python version, etc.",
        ),
        get_system_info,
    )
