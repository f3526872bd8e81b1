from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from pydantic import Field

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolhost.content import InvocationResult
from toolhost.dispatcher import ToolDispatcher, remediation_hint
from toolhost.elicitation import Choice, ChoiceField, ElicitationRequest, InvocationContext
from toolhost.errors import CapabilityError, OutputTooLargeError
from toolhost.process import ExecutionResult
from toolhost.registry import ToolArguments, ToolDescriptor, ToolRegistry
from toolhost.tools import build_registry


class _CityArguments(ToolArguments):
    city: str = Field(description="City")


def _dispatcher(handler) -> ToolDispatcher:
    registry = ToolRegistry()
    registry.register(ToolDescriptor("cityLookup", "City Lookup", "Test tool", _CityArguments), handler)
    return ToolDispatcher(registry)


@pytest.mark.asyncio
async def test_missing_required_field_never_calls_handler() -> None:
    calls: list[object] = []

    async def handler(args, ctx):
        calls.append(args)
        return "ok"

    result = await _dispatcher(handler).invoke("cityLookup", {})
    assert result.is_error is True
    assert "city" in result.joined_text
    assert calls == []


@pytest.mark.asyncio
async def test_unknown_tool_is_error_result() -> None:
    async def handler(args, ctx):
        return "ok"

    result = await _dispatcher(handler).invoke("nope", {})
    assert result.is_error
    assert result.joined_text == "Unknown tool: nope"


@pytest.mark.asyncio
async def test_string_return_wrapped_as_text() -> None:
    async def handler(args, ctx):
        return f"hello {args.city}"

    result = await _dispatcher(handler).invoke("cityLookup", {"city": "Oslo"})
    assert result == InvocationResult.text("hello Oslo")
    assert result.as_dict() == {"content": [{"type": "text", "text": "hello Oslo"}], "isError": False}


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained() -> None:
    async def handler(args, ctx):
        raise ValueError("boom")

    result = await _dispatcher(handler).invoke("cityLookup", {"city": "x"})
    assert result.is_error
    assert result.joined_text == "City Lookup failed: boom"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("message", "hint"),
    [
        ("/bin/sh: 1: az: not found", "https://aka.ms/azure-cli"),
        ("bash: az: command not found", "https://aka.ms/azure-cli"),
        ("ERROR: Please run 'az login' to setup account.", "az login"),
        ("ERROR: Subscription 'abc' not found.", "listAzureSubscriptions"),
    ],
)
async def test_remediation_hints(message: str, hint: str) -> None:
    async def handler(args, ctx):
        raise CapabilityError(message)

    result = await _dispatcher(handler).invoke("cityLookup", {"city": "x"})
    assert result.is_error
    assert message in result.joined_text
    assert hint in result.joined_text


def test_no_hint_for_unrecognised_message() -> None:
    assert remediation_hint("connection refused") is None


@pytest.mark.asyncio
async def test_explicit_hint_wins() -> None:
    async def handler(args, ctx):
        raise CapabilityError("not logged in", hint="custom advice")

    result = await _dispatcher(handler).invoke("cityLookup", {"city": "x"})
    assert "custom advice" in result.joined_text
    assert "az login" not in result.joined_text


@pytest.mark.asyncio
async def test_execution_fault_includes_captured_output() -> None:
    async def handler(args, ctx):
        partial = ExecutionResult(stdout="first lines", stderr="warn", exit_code=None, truncated=True)
        raise OutputTooLargeError("output exceeded 10 bytes", result=partial)

    result = await _dispatcher(handler).invoke("cityLookup", {"city": "x"})
    assert result.is_error
    assert "output exceeded 10 bytes" in result.joined_text
    assert "first lines" in result.joined_text
    assert "[STDERR]: warn" in result.joined_text


@pytest.mark.asyncio
async def test_elicitation_failure_suggests_direct_parameter() -> None:
    async def transport(params):
        raise ConnectionError("client went away")

    async def handler(args, ctx: InvocationContext):
        await ctx.elicit(
            ElicitationRequest(
                "Pick",
                ChoiceField("region", "Region", "Pick a region", (Choice("a", "A"),)),
            )
        )
        return "unreachable"

    result = await _dispatcher(handler).invoke("cityLookup", {"city": "x"}, InvocationContext("cityLookup", transport))
    assert result.is_error
    assert "Elicitation failed: client went away" in result.joined_text
    assert "Please provide the region parameter directly." in result.joined_text


@pytest.mark.asyncio
async def test_elicitation_rounds_logged_under_tool_name(caplog: pytest.LogCaptureFixture) -> None:
    async def transport(params):
        return {"action": "accept", "content": {"region": "a"}}

    async def handler(args, ctx: InvocationContext):
        await ctx.elicit(
            ElicitationRequest(
                "Pick",
                ChoiceField("region", "Region", "Pick a region", (Choice("a", "A"),)),
            )
        )
        return "done"

    caplog.set_level(logging.DEBUG, logger="toolhost.dispatcher")
    result = await _dispatcher(handler).invoke("cityLookup", {"city": "x"}, InvocationContext("cityLookup", transport))
    assert result == InvocationResult.text("done")
    assert "cityLookup used 1 elicitation round(s)" in caplog.text


@pytest.mark.asyncio
async def test_execute_command_allowed() -> None:
    if sys.platform == "win32":
        pytest.skip("POSIX shell required")
    result = await ToolDispatcher(build_registry()).invoke("executeCommand", {"command": "echo hi"})
    assert result.is_error is False
    assert "hi" in result.joined_text
    assert "Command: echo hi" in result.joined_text


@pytest.mark.asyncio
async def test_execute_command_denied_lists_allow_list() -> None:
    result = await ToolDispatcher(build_registry()).invoke("executeCommand", {"command": "rm -rf /"})
    assert result.is_error is True
    assert "not allowed" in result.joined_text
    assert "git status" in result.joined_text
    assert "free -h" in result.joined_text
