import asyncio
import json
from typing import Any

import httpx
import pytest
from chat_core.artifacts import ArtifactStore
from chat_core.config import Settings
from chat_core.generation import (
    MAX_TOOL_ROUNDS,
    ChatCompletionClient,
    GenerationOrchestrator,
    TurnEvent,
    TurnOutcome,
    TurnPhase,
    clean_title,
)
from chat_core.session import DEFAULT_TITLE, Message, SessionRepository, tree
from chat_core.session.models import TextPart, ToolCallPart, ToolResultPart
from chat_core.tools import CompositeToolExecutor, ToolOutcome


class RecordingTools:
    def __init__(self, outcome: ToolOutcome | None = None) -> None:
        self.outcome = outcome or ToolOutcome("result")
        self.calls: list[tuple[str, dict[str, Any], str]] = []

    async def list_tools(self, session) -> list[dict[str, Any]]:
        return [{"type": "function", "function": {"name": "lookup", "parameters": {"type": "object"}}}]

    async def invoke(self, name: str, arguments: dict[str, Any], *, session_id: str) -> ToolOutcome:
        self.calls.append((name, arguments, session_id))
        return self.outcome


class ScriptedEndpoint:
    """Serve scripted responses in order and keep the decoded request bodies."""

    def __init__(self, responses: list[httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[dict[str, Any]] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if not self.responses:
            return httpx.Response(500, text="no scripted response")
        return self.responses.pop(0)

    def client(self) -> ChatCompletionClient:
        transport = httpx.MockTransport(self)
        return ChatCompletionClient(
            "http://test", http_client=httpx.AsyncClient(transport=transport, base_url="http://test")
        )


def _session_with_question(repository: SessionRepository, text: str = "hi") -> str:
    session = repository.create_session()
    tree.add_message(session, Message(role="user", content=text, parts=[TextPart(content=text)]))
    return session.id


@pytest.mark.asyncio
async def test_streamed_text_and_tool_call_scenario(
    repository: SessionRepository, store, settings: Settings, make_sse_response, make_delta
) -> None:
    endpoint = ScriptedEndpoint(
        [
            make_sse_response(
                [
                    make_delta(content="Hel"),
                    make_delta(content="lo"),
                    make_delta(tool_calls=[{"index": 0, "id": "c1", "function": {"name": "lookup"}}]),
                    make_delta(tool_calls=[{"index": 0, "function": {"arguments": '{"q":'}}]),
                    make_delta(tool_calls=[{"index": 0, "function": {"arguments": '"x"}'}}]),
                ]
            ),
            make_sse_response([]),
        ]
    )
    tools = RecordingTools(ToolOutcome("x is 42"))
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings, tools=tools)

    result = await orchestrator.run(session_id)

    session = repository.require(session_id)
    message = session.messages[result.message_id]
    assert result.outcome is TurnOutcome.SETTLED
    assert result.rounds == 2
    assert [type(p) for p in message.parts] == [TextPart, ToolCallPart, ToolResultPart]
    assert message.parts[0].content == "Hello"
    call = message.parts[1].tool_call
    assert (call.id, call.name, call.arguments) == ("c1", "lookup", {"q": "x"})
    assert message.parts[2].tool_result.call_id == "c1"
    assert message.parts[2].tool_result.result == "x is 42"
    assert message.content == "Hello"
    assert tools.calls == [("lookup", {"q": "x"}, session_id)]

    second = endpoint.requests[1]["messages"]
    assert second[-2] == {
        "role": "assistant",
        "content": "Hello",
        "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "lookup", "arguments": '{"q":"x"}'}}],
    }
    assert second[-1] == {"role": "tool", "tool_call_id": "c1", "name": "lookup", "content": "x is 42"}
    assert endpoint.requests[0]["tool_choice"] == "auto"

    assert session.current_leaf_id == message.id
    assert message.parent_id == tree.active_thread(session)[0].id
    assert message.generation_time is not None
    assert session.is_generating is False
    assert orchestrator.phase(session_id) is TurnPhase.SETTLED
    assert store.get("sessions")


@pytest.mark.asyncio
async def test_reasoning_and_text_open_separate_parts(
    repository: SessionRepository, settings: Settings, make_sse_response, make_delta
) -> None:
    endpoint = ScriptedEndpoint(
        [
            make_sse_response(
                [
                    make_delta(reasoning_content="Let me "),
                    make_delta(reasoning_content="think."),
                    make_delta(content="Answer"),
                    make_delta(reasoning_content="Again?"),
                ]
            )
        ]
    )
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings)

    result = await orchestrator.run(session_id)

    message = repository.require(session_id).messages[result.message_id]
    assert [(p.type, p.content) for p in message.parts] == [
        ("reasoning", "Let me think."),
        ("text", "Answer"),
        ("reasoning", "Again?"),
    ]
    assert message.reasoning == "Let me think.Again?"
    assert "tools" not in endpoint.requests[0]


@pytest.mark.asyncio
async def test_round_cap_stops_after_five_requests(
    repository: SessionRepository, settings: Settings, make_sse_response, make_delta
) -> None:
    endpoint = ScriptedEndpoint(
        [
            make_sse_response(
                [
                    make_delta(
                        tool_calls=[{"index": 0, "id": f"c{n}", "function": {"name": "lookup", "arguments": "{}"}}]
                    )
                ]
            )
            for n in range(MAX_TOOL_ROUNDS + 3)
        ]
    )
    tools = RecordingTools()
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings, tools=tools)

    result = await orchestrator.run(session_id)

    message = repository.require(session_id).messages[result.message_id]
    assert len(endpoint.requests) == MAX_TOOL_ROUNDS
    assert result.outcome is TurnOutcome.ROUND_CAP
    assert result.rounds == MAX_TOOL_ROUNDS
    assert len(tools.calls) == MAX_TOOL_ROUNDS
    assert [p.type for p in message.parts] == ["tool-call", "tool-result"] * MAX_TOOL_ROUNDS


@pytest.mark.asyncio
async def test_transport_error_ends_turn_with_visible_error(
    repository: SessionRepository, settings: Settings
) -> None:
    endpoint = ScriptedEndpoint([httpx.Response(401, text="bad key")])
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings)

    result = await orchestrator.run(session_id)

    session = repository.require(session_id)
    message = session.messages[result.message_id]
    assert result.outcome is TurnOutcome.FAILED
    assert message.content == "Error: API Error: 401 - bad key"
    assert session.is_generating is False
    assert orchestrator.phase(session_id) is TurnPhase.FAILED


@pytest.mark.asyncio
async def test_tool_failure_is_fed_back_to_model(
    repository: SessionRepository, settings: Settings, make_sse_response, make_delta
) -> None:
    endpoint = ScriptedEndpoint(
        [
            make_sse_response(
                [make_delta(tool_calls=[{"index": 0, "id": "c1", "function": {"name": "lookup", "arguments": "{bad"}}])]
            ),
            make_sse_response([make_delta(content="Sorry, the lookup failed.")]),
        ]
    )
    tools = RecordingTools(ToolOutcome("Error calling tool: timeout", is_error=True))
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings, tools=tools)

    result = await orchestrator.run(session_id)

    message = repository.require(session_id).messages[result.message_id]
    assert tools.calls == [("lookup", {}, session_id)]
    assert message.parts[1].tool_result.is_error is True
    assert endpoint.requests[1]["messages"][-1]["content"] == "Error calling tool: timeout"
    assert message.content == "Sorry, the lookup failed."
    assert result.outcome is TurnOutcome.SETTLED


@pytest.mark.asyncio
async def test_cancellation_keeps_partial_output(repository: SessionRepository, settings: Settings) -> None:
    release = asyncio.Event()

    async def body():
        yield b'data: {"choices":[{"delta":{"content":"Par"}}]}\n\n'
        await release.wait()
        yield b"data: [DONE]\n\n"

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    client = ChatCompletionClient(
        "http://test", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    )
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, client, settings)
    first_delta = asyncio.Event()
    events: list[TurnEvent] = []

    def listener(event: TurnEvent) -> None:
        events.append(event)
        if event.kind == "delta":
            first_delta.set()

    task = orchestrator.start(session_id, listener=listener)
    await asyncio.wait_for(first_delta.wait(), timeout=5)
    assert orchestrator.is_running(session_id)
    assert repository.require(session_id).is_generating is True

    assert orchestrator.cancel(session_id) is True
    with pytest.raises(asyncio.CancelledError):
        await task

    session = repository.require(session_id)
    message = session.messages[session.current_leaf_id]
    assert message.role == "assistant"
    assert message.content == "Par"
    assert message.generation_time is not None
    assert session.is_generating is False
    assert orchestrator.phase(session_id) is TurnPhase.ABORTED
    assert events[-1].kind == "complete"
    assert events[-1].outcome is TurnOutcome.ABORTED
    assert orchestrator.cancel(session_id) is False


@pytest.mark.asyncio
async def test_regenerate_creates_sibling_response(
    repository: SessionRepository, settings: Settings, make_sse_response, make_delta
) -> None:
    endpoint = ScriptedEndpoint(
        [make_sse_response([make_delta(content="first")]), make_sse_response([make_delta(content="second")])]
    )
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings)

    first = await orchestrator.run(session_id)
    second = await orchestrator.regenerate(session_id, first.message_id)

    session = repository.require(session_id)
    user = session.messages[session.messages[first.message_id].parent_id]
    assert user.children_ids == [first.message_id, second.message_id]
    assert [m.content for m in tree.active_thread(session)] == ["hi", "second"]
    # The earlier reply is not part of the replayed history.
    assert [m["content"] for m in endpoint.requests[1]["messages"]] == ["hi"]


@pytest.mark.asyncio
async def test_system_prompt_and_session_temperature_are_sent(
    repository: SessionRepository, make_sse_response, make_delta
) -> None:
    settings = Settings(endpoint_url="http://test", system_prompt="Default prompt", title_generation_enabled=False)
    endpoint = ScriptedEndpoint([make_sse_response([make_delta(content="ok")])])
    session = repository.create_session(system_prompt="Session prompt", temperature=0.3, model_id="special")
    tree.add_message(session, Message(role="user", content="hi"))
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings)

    await orchestrator.run(session.id)

    request = endpoint.requests[0]
    assert request["model"] == "special"
    assert request["temperature"] == 0.3
    assert request["messages"][0] == {"role": "system", "content": "Session prompt"}


@pytest.mark.asyncio
async def test_first_exchange_generates_title_in_background(
    repository: SessionRepository, make_sse_response, make_delta
) -> None:
    settings = Settings(endpoint_url="http://test", title_generation_enabled=True)
    endpoint = ScriptedEndpoint(
        [
            make_sse_response([make_delta(content="Hello!")]),
            make_sse_response([make_delta(content='"Friendly Greeting."')]),
        ]
    )
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings, tools=RecordingTools())

    await orchestrator.run(session_id)
    await orchestrator.wait_for_background()

    assert repository.require(session_id).title == "Friendly Greeting"
    title_request = endpoint.requests[1]
    assert "tools" not in title_request
    assert "User: hi" in title_request["messages"][1]["content"]


@pytest.mark.asyncio
async def test_title_failure_is_only_logged(
    repository: SessionRepository, make_sse_response, make_delta, caplog: pytest.LogCaptureFixture
) -> None:
    settings = Settings(endpoint_url="http://test", title_generation_enabled=True)
    endpoint = ScriptedEndpoint([make_sse_response([make_delta(content="Hello!")]), httpx.Response(500, text="x")])
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings)

    result = await orchestrator.run(session_id)
    await orchestrator.wait_for_background()

    assert result.outcome is TurnOutcome.SETTLED
    assert repository.require(session_id).title == DEFAULT_TITLE
    assert "Title generation failed" in caplog.text


@pytest.mark.asyncio
async def test_no_title_after_first_exchange(repository: SessionRepository, make_sse_response, make_delta) -> None:
    settings = Settings(endpoint_url="http://test", title_generation_enabled=True)
    endpoint = ScriptedEndpoint([make_sse_response([make_delta(content="again")])])
    session = repository.create_session()
    tree.add_message(session, Message(role="user", content="hi"))
    tree.add_message(session, Message(role="assistant", content="hello"))
    tree.add_message(session, Message(role="user", content="more"))
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings)

    await orchestrator.run(session.id)
    await orchestrator.wait_for_background()

    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_streaming_artifact_preview_then_final_write(
    repository: SessionRepository, settings: Settings, make_sse_response, make_delta
) -> None:
    arguments = json.dumps({"id": "page", "type": "text/html", "title": "Page", "content": "<h1>Hi</h1>"})
    fragments = [arguments[:30], arguments[30:45], arguments[45:]]
    endpoint = ScriptedEndpoint(
        [
            make_sse_response(
                [make_delta(tool_calls=[{"index": 0, "id": "c1", "function": {"name": "create_artifact"}}])]
                + [make_delta(tool_calls=[{"index": 0, "function": {"arguments": f}}]) for f in fragments]
            ),
            make_sse_response([make_delta(content="Done.")]),
        ]
    )
    artifacts = ArtifactStore(repository)
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(
        repository,
        endpoint.client(),
        settings,
        tools=CompositeToolExecutor(artifacts),
        artifacts=artifacts,
    )
    previews: list[str] = []

    def listener(event: TurnEvent) -> None:
        if event.kind == "delta":
            content = artifacts.read(session_id, "page")
            if content is not None:
                previews.append(content)

    await orchestrator.run(session_id, listener=listener)

    session = repository.require(session_id)
    assert previews, "artifact should be visible while arguments stream"
    assert len(session.artifacts) == 1
    assert session.artifacts[0].content == "<h1>Hi</h1>"
    assert session.artifacts[0].title == "Page"


def test_clean_title() -> None:
    assert clean_title('\n  "Trip Planning."  \nextra') == "Trip Planning"
    assert clean_title("Title: Budget review") == "Budget review"
    assert clean_title("") == ""


@pytest.mark.asyncio
async def test_chunks_with_unexpected_shape_are_skipped(
    repository: SessionRepository, settings: Settings, make_sse_response, make_delta
) -> None:
    endpoint = ScriptedEndpoint(
        [
            make_sse_response(
                [
                    make_delta(content="Hel"),
                    {"choices": {"0": {}}},
                    make_delta(tool_calls=[{"index": "x"}]),
                    make_delta(tool_calls=["lookup"]),
                    make_delta(tool_calls=[{"index": 0, "function": "lookup"}]),
                    make_delta(content=7),
                    make_delta(content="lo"),
                ]
            )
        ]
    )
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, endpoint.client(), settings, tools=RecordingTools())

    result = await orchestrator.run(session_id)

    message = repository.require(session_id).messages[result.message_id]
    assert result.outcome is TurnOutcome.SETTLED
    assert message.content == "Hello"
    assert [type(part) for part in message.parts] == [TextPart]
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_stream_failure_keeps_partial_text_apart_from_error(
    repository: SessionRepository, settings: Settings
) -> None:
    async def body():
        yield b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
        msg = "connection reset"
        raise httpx.ReadError(msg)

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    client = ChatCompletionClient(
        "http://test", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    )
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, client, settings)

    result = await orchestrator.run(session_id)

    message = repository.require(session_id).messages[result.message_id]
    assert result.outcome is TurnOutcome.FAILED
    assert message.content == "Hel\n\nError: connection reset"


@pytest.mark.asyncio
async def test_cancel_mid_tool_call_drops_unfinished_call(repository: SessionRepository, settings: Settings) -> None:
    release = asyncio.Event()
    fragment = {"index": 0, "id": "c1", "function": {"name": "look", "arguments": '{"q": "hal'}}

    async def body():
        yield b'data: {"choices":[{"delta":{"content":"Checking"}}]}\n\n'
        yield f"data: {json.dumps({'choices': [{'delta': {'tool_calls': [fragment]}}]})}\n\n".encode()
        await release.wait()
        yield b"data: [DONE]\n\n"

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    client = ChatCompletionClient(
        "http://test", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    )
    session_id = _session_with_question(repository)
    orchestrator = GenerationOrchestrator(repository, client, settings, tools=RecordingTools())
    call_seen = asyncio.Event()

    def listener(event: TurnEvent) -> None:
        if event.kind == "delta" and any(isinstance(p, ToolCallPart) for p in event.message.parts):
            call_seen.set()

    task = orchestrator.start(session_id, listener=listener)
    await asyncio.wait_for(call_seen.wait(), timeout=5)
    orchestrator.cancel(session_id)
    with pytest.raises(asyncio.CancelledError):
        await task

    session = repository.require(session_id)
    message = session.messages[session.current_leaf_id]
    assert message.content == "Checking"
    assert not any(isinstance(part, ToolCallPart) for part in message.parts)
    assert "tool-call" not in json.dumps(repository.require(session_id).to_json_dict())
