from __future__ import annotations

import asyncio
import os
import sys
from contextlib import contextmanager
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeTransport:
    """Records directives instead of writing them to a WebSocket.

    With `fail_after` set, sends beyond that many raise like a closed socket.
    """

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail_after: int | None = None

    async def send_json(self, data) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(data)


class FakeTracer:
    """Keeps every traced op as a TraceCall."""

    def __init__(self) -> None:
        self.calls: list[TraceCall] = []

    @contextmanager
    def call(self, op_name: str, inputs: dict):
        from relay.tracing import TraceCall

        record = TraceCall(op_name=op_name, inputs=inputs)
        self.calls.append(record)
        yield record

    def op_names(self) -> list[str]:
        return [record.op_name for record in self.calls]


class FakeGenerator:
    """Scripted text generator.

    `replies` maps utterance -> reply text or an exception to raise.
    `gates` maps utterance -> asyncio.Event the call waits on before answering.
    """

    def __init__(self, replies: dict | None = None, gates: dict | None = None, default: str = "ok") -> None:
        self.replies = replies or {}
        self.gates = gates or {}
        self.default = default
        self.calls: list[tuple[str, str]] = []

    async def generate(self, system_prompt: str, user_utterance: str) -> str:
        self.calls.append((system_prompt, user_utterance))
        gate: asyncio.Event | None = self.gates.get(user_utterance)
        if gate is not None:
            await gate.wait()
        reply = self.replies.get(user_utterance, self.default)
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def tracer() -> FakeTracer:
    return FakeTracer()


@pytest.fixture()
def make_generator():
    return FakeGenerator


@pytest.fixture()
def make_handler(transport, tracer):
    from relay.handler import RelaySessionHandler

    def _make(generator, options):
        return RelaySessionHandler(transport, generator, options, tracer=tracer)

    return _make


@pytest.fixture(scope="session")
def app():
    # Must be cleared before importing modules that read settings.
    for var in ("PUBLIC_BASE_URL", "RELAY_DEBUG", "RELAY_LANGUAGE", "WEAVE_PROJECT"):
        os.environ.pop(var, None)
    os.environ["LOG_LEVEL"] = "DEBUG"

    import importlib

    for module_name in [
        "config.settings",
        "api.dependencies",
        "api.relay_routes",
        "api.routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator(replies={"hi": "hello"})


@pytest.fixture()
def client(app, generator, tracer):
    # Override dependencies so tests never build a real LLM client.
    import api.dependencies as deps
    from relay.handler import RelayOptions

    app.dependency_overrides[deps.get_text_generator] = lambda: generator
    app.dependency_overrides[deps.get_relay_options] = lambda: RelayOptions(system_prompt="test prompt")
    app.dependency_overrides[deps.get_tracer] = lambda: tracer

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
