from __future__ import annotations

import pytest

from relay.tracing import NullTracer, WeaveTracer, build_tracer


class FakeWeaveClient:
    def __init__(self) -> None:
        self.created: list[tuple[str, dict]] = []
        self.finished: list[dict] = []

    def create_call(self, op, inputs):
        self.created.append((op, inputs))
        return len(self.created)

    def finish_call(self, call, output=None, exception=None):
        self.finished.append({"call": call, "output": output, "exception": exception})


def test_tracing_disabled_without_project():
    assert isinstance(build_tracer(None), NullTracer)
    assert isinstance(build_tracer(""), NullTracer)


def test_null_tracer_yields_record():
    with NullTracer().call("handle_dtmf_input", {"digit": "1"}) as trace:
        trace.output = {"digit": "1"}
    assert trace.op_name == "handle_dtmf_input"


def test_weave_tracer_finishes_call_with_output():
    client = FakeWeaveClient()
    tracer = WeaveTracer(client)

    with tracer.call("send_text_to_tts", {"text": "hi"}) as trace:
        trace.output = {"token": "hi"}

    assert client.created == [("send_text_to_tts", {"text": "hi"})]
    assert client.finished == [{"call": 1, "output": {"token": "hi"}, "exception": None}]


def test_weave_tracer_records_exception_and_reraises():
    client = FakeWeaveClient()
    tracer = WeaveTracer(client)

    with pytest.raises(RuntimeError):
        with tracer.call("get_ai_response", {"user_message": "hi"}):
            raise RuntimeError("socket closed")

    assert isinstance(client.finished[0]["exception"], RuntimeError)
    assert client.finished[0]["output"] is None
