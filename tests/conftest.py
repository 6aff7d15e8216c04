"""Shared fixtures for turnflow scenario tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from turnflow.compiler import compile_flow, load_flow, parse_flow
from turnflow.engine.player import EngineOptions, EventResult, PlaybackEngine

FLOWS_DIR = Path(__file__).parent / "flows"


class FlowHarness:
    """Test harness for driving a flow through the playback engine.

    Compiles a fixture flow once and wraps a fresh engine with convenience
    accessors.  All event methods delegate to the engine public API and
    return EventResult.
    """

    def __init__(self, flow_file: str, *, options: EngineOptions | None = None):
        self.flow = load_flow(FLOWS_DIR / flow_file)
        self.compiled = compile_flow(self.flow)
        self.engine = PlaybackEngine(options)

    def start(self, variables: dict | None = None):
        return self.engine.load_flow(self.compiled, variables)

    @property
    def status(self):
        return self.engine.get_status()

    @property
    def state(self) -> str:
        return self.status.state

    @property
    def pending(self):
        return self.status.pending_input

    @property
    def transcript(self):
        return self.engine.get_transcript()

    @property
    def texts(self) -> list[str]:
        """Text of every message bubble, in order."""
        return [e.content["text"] for e in self.transcript if e.type == "message"]

    @property
    def types(self) -> list[str]:
        return [e.type for e in self.transcript]

    def prompt(self, component_id: str) -> EventResult:
        return self.engine.submit_prompt_click(component_id)

    def button(self, label: str) -> EventResult:
        return self.engine.submit_button_click(label)

    def text(self, value: str) -> EventResult:
        return self.engine.submit_text(value)

    def set_var(self, name: str, value: str) -> EventResult:
        return self.engine.set_variable(name, value)

    def history_actions(self) -> list[str]:
        return [h["action"] for h in self.engine.get_history()]


@pytest.fixture
def harness_factory():
    """Factory fixture that creates FlowHarness instances."""
    def _make(flow_file: str, **kwargs) -> FlowHarness:
        return FlowHarness(flow_file, **kwargs)
    return _make


@pytest.fixture
def build():
    """Compile an inline flow document."""
    def _build(doc: dict):
        return compile_flow(parse_flow(doc))
    return _build


def turn(step_id: str, *components: tuple[str, str, str]) -> dict:
    """Inline turn with (id, type, text) components."""
    return {
        "id": step_id,
        "type": "turn",
        "components": [
            {"id": cid, "type": ctype, "content": {"text": text}} for cid, ctype, text in components
        ],
    }


def edge(source: str, target: str, handle: str | None = None, conn_id: str | None = None) -> dict:
    conn = {"id": conn_id or f"{source}->{target}", "source": source, "target": target}
    if handle is not None:
        conn["sourceHandle"] = handle
    return conn
