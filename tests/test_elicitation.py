from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolhost.elicitation import (
    Accepted,
    Cancelled,
    Choice,
    ChoiceField,
    Declined,
    ElicitationRequest,
    ElicitationSession,
    ElicitationState,
    InvocationContext,
)
from toolhost.errors import ElicitationBusyError, ElicitationFailed


def _request() -> ElicitationRequest:
    return ElicitationRequest(
        message="Pick a colour",
        field=ChoiceField(
            name="colour",
            title="Colour",
            description="Choose one",
            choices=(Choice("r", "Red"), Choice("g", "Green (default)")),
        ),
    )


def _responder(response: object):
    sent: list[dict] = []

    async def transport(params: dict) -> object:
        sent.append(params)
        return response

    return transport, sent


def test_request_params_shape() -> None:
    params = _request().as_params()
    assert params["message"] == "Pick a colour"
    schema = params["requestedSchema"]
    assert schema["type"] == "object"
    assert schema["required"] == ["colour"]
    prop = schema["properties"]["colour"]
    assert prop["enum"] == ["r", "g"]
    assert prop["enumNames"] == ["Red", "Green (default)"]
    assert prop["title"] == "Colour"


@pytest.mark.asyncio
async def test_accept_resolves_with_data() -> None:
    transport, sent = _responder({"action": "accept", "content": {"colour": "g"}})
    session = ElicitationSession(transport)
    outcome = await session.request(_request())
    assert outcome == Accepted({"colour": "g"})
    assert session.state is ElicitationState.ACCEPTED
    assert session.state.terminal
    assert len(sent) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("action", "expected", "state"),
    [
        ("decline", Declined(), ElicitationState.DECLINED),
        ("cancel", Cancelled(), ElicitationState.CANCELLED),
    ],
)
async def test_decline_and_cancel(action: str, expected: object, state: ElicitationState) -> None:
    transport, _ = _responder({"action": action})
    session = ElicitationSession(transport)
    assert await session.request(_request()) == expected
    assert session.state is state


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        {"action": "accept", "content": {}},
        {"action": "accept", "content": {"colour": "blue"}},
        {"action": "accept", "content": "r"},
        {"action": "maybe"},
        "accept",
        None,
    ],
)
async def test_malformed_responses_fail(response: object) -> None:
    transport, _ = _responder(response)
    session = ElicitationSession(transport)
    with pytest.raises(ElicitationFailed):
        await session.request(_request())
    assert session.state is ElicitationState.FAILED


@pytest.mark.asyncio
async def test_transport_error_becomes_failed() -> None:
    async def transport(params: dict) -> object:
        raise ConnectionResetError("pipe closed")

    session = ElicitationSession(transport)
    with pytest.raises(ElicitationFailed, match="pipe closed"):
        await session.request(_request())
    assert session.state is ElicitationState.FAILED


@pytest.mark.asyncio
async def test_session_is_single_use() -> None:
    transport, _ = _responder({"action": "decline"})
    session = ElicitationSession(transport)
    await session.request(_request())
    with pytest.raises(ElicitationBusyError):
        await session.request(_request())


@pytest.mark.asyncio
async def test_context_rejects_concurrent_elicitation() -> None:
    release = asyncio.Event()

    async def transport(params: dict) -> object:
        await release.wait()
        return {"action": "cancel"}

    ctx = InvocationContext("tool", transport=transport)
    first = asyncio.create_task(ctx.elicit(_request()))
    await asyncio.sleep(0)
    with pytest.raises(ElicitationBusyError):
        await ctx.elicit(_request())
    release.set()
    assert await first == Cancelled()
    # Sequential elicitations are fine once the first is resolved.
    release.set()
    assert await ctx.elicit(_request()) == Cancelled()
    assert len(ctx.sessions) == 2


@pytest.mark.asyncio
async def test_context_without_transport_fails() -> None:
    ctx = InvocationContext("tool")
    assert not ctx.can_elicit
    with pytest.raises(ElicitationFailed, match="does not support"):
        await ctx.elicit(_request())
    assert ctx.last_request is not None
