"""Call tracing for relay sessions.

Each handler step is recorded as one traced op (inputs plus output). Tracing
goes to Weights & Biases Weave when a project is configured; otherwise the
no-op tracer is used.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol

LOGGER = logging.getLogger(__name__)


@dataclass
class TraceCall:
    """One traced op. Handlers set `output` before the call finishes."""

    op_name: str
    inputs: dict[str, Any]
    output: Any = field(default=None)


class Tracer(Protocol):
    def call(self, op_name: str, inputs: dict[str, Any]):  # pragma: no cover - protocol stub
        """Context manager yielding a TraceCall for one op."""
        ...


class NullTracer:
    @contextmanager
    def call(self, op_name: str, inputs: dict[str, Any]) -> Iterator[TraceCall]:
        yield TraceCall(op_name=op_name, inputs=inputs)


class WeaveTracer:
    """Records ops on a Weave client created by `weave.init`."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @contextmanager
    def call(self, op_name: str, inputs: dict[str, Any]) -> Iterator[TraceCall]:
        record = TraceCall(op_name=op_name, inputs=inputs)
        weave_call = self._client.create_call(op_name, inputs)
        try:
            yield record
        except BaseException as exc:
            self._client.finish_call(weave_call, exception=exc)
            raise
        self._client.finish_call(weave_call, output=record.output)

    def publish_prompt(self, name: str, prompt: str) -> None:
        import weave

        ref = weave.publish(weave.StringPrompt(prompt), name=name)
        LOGGER.info("Published system prompt to Weave: %s", ref.uri())


def build_tracer(project: str | None, *, system_prompt: str | None = None) -> Tracer:
    """Initialise Weave for `project`, or return the no-op tracer when unset."""

    if not project:
        return NullTracer()

    # Lazy import: weave pulls in a large dependency tree.
    import weave

    tracer = WeaveTracer(weave.init(project))
    LOGGER.info("Weave tracing enabled for project %s", project)
    if system_prompt:
        tracer.publish_prompt("relay-system-prompt", system_prompt)
    return tracer
