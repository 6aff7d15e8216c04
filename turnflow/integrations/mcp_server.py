"""MCP Server: exposes turnflow_* tools for driving flow previews."""
from __future__ import annotations

import itertools
import json
import os
from typing import TYPE_CHECKING

from mcp.server.fastmcp import FastMCP

from turnflow.compiler import (
    CompileError,
    compile_flow,
    generate_mermaid,
    load_flow,
    validate_flow,
)
from turnflow.engine import PlaybackEngine

if TYPE_CHECKING:
    from turnflow.engine import EventResult

mcp = FastMCP("turnflow")

# One engine per preview pane; compiled flows are shared read-only
_sessions: dict[str, PlaybackEngine] = {}
_ids = itertools.count(1)


def _resolve(path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(os.getcwd(), path)


def _dump(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2)


def _session_view(session_id: str, engine: PlaybackEngine) -> dict:
    return {
        "session_id": session_id,
        "status": engine.get_status().to_dict(),
        "transcript": [e.to_dict() for e in engine.get_transcript()],
        "variables": engine.variables,
    }


def _apply(session_id: str, action) -> str:
    engine = _sessions.get(session_id)
    if engine is None:
        return _dump({"error": f"Unknown session: {session_id}"})
    result: EventResult = action(engine)
    view = _session_view(session_id, engine)
    view["result"] = result.to_dict()
    return _dump(view)


@mcp.tool()
def turnflow_check(path: str) -> str:
    """Compile a flow file and report structural errors, warnings, and a Mermaid diagram."""
    try:
        flow = load_flow(_resolve(path))
    except (OSError, ValueError) as e:
        return _dump({"error": str(e)})
    issues = validate_flow(flow)
    result: dict = {
        "title": flow.title,
        "issues": [{"level": i.level, "kind": i.kind, "step": i.step, "message": i.message} for i in issues],
    }
    try:
        result["mermaid"] = generate_mermaid(compile_flow(flow))
    except CompileError as e:
        result["error"] = str(e)
    return _dump(result)


@mcp.tool()
def turnflow_start(path: str) -> str:
    """Compile a flow file and open a new preview session on it."""
    try:
        compiled = compile_flow(load_flow(_resolve(path)))
    except (OSError, ValueError, CompileError) as e:
        return _dump({"error": str(e)})
    session_id = f"s{next(_ids)}"
    engine = PlaybackEngine()
    engine.load_flow(compiled)
    _sessions[session_id] = engine
    return _dump(_session_view(session_id, engine))


@mcp.tool()
def turnflow_status(session_id: str) -> str:
    """Get the status, transcript, and variables of a preview session."""
    engine = _sessions.get(session_id)
    if engine is None:
        return _dump({"error": f"Unknown session: {session_id}"})
    return _dump(_session_view(session_id, engine))


@mcp.tool()
def turnflow_transcript(session_id: str) -> str:
    """Get the transcript of a preview session."""
    engine = _sessions.get(session_id)
    if engine is None:
        return _dump({"error": f"Unknown session: {session_id}"})
    return _dump([e.to_dict() for e in engine.get_transcript()])


@mcp.tool()
def turnflow_click_prompt(session_id: str, component_id: str) -> str:
    """Click one of the prompts offered by the current AI turn."""
    return _apply(session_id, lambda e: e.submit_prompt_click(component_id))


@mcp.tool()
def turnflow_click_button(session_id: str, label: str) -> str:
    """Click a button with the given label."""
    return _apply(session_id, lambda e: e.submit_button_click(label))


@mcp.tool()
def turnflow_send_text(session_id: str, text: str) -> str:
    """Send free text as the simulated user."""
    return _apply(session_id, lambda e: e.submit_text(text))


@mcp.tool()
def turnflow_set_variable(session_id: str, name: str, value: str) -> str:
    """Bind a simulation variable; resumes playback if it was waiting for it."""
    return _apply(session_id, lambda e: e.set_variable(name, value))


@mcp.tool()
def turnflow_reset(session_id: str) -> str:
    """Restart a preview session from the beginning of its flow."""
    engine = _sessions.get(session_id)
    if engine is None:
        return _dump({"error": f"Unknown session: {session_id}"})
    engine.reset()
    return _dump(_session_view(session_id, engine))


@mcp.tool()
def turnflow_close(session_id: str) -> str:
    """Discard a preview session."""
    if _sessions.pop(session_id, None) is None:
        return _dump({"error": f"Unknown session: {session_id}"})
    return _dump({"closed": session_id})


def run_server():
    mcp.run(transport="stdio")
