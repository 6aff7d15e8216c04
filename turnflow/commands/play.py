"""turnflow play <file> [events...]: run a flow in the simulator and print the transcript."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from turnflow.compiler import CompileError, compile_flow, load_flow
from turnflow.engine import EngineOptions, PlaybackEngine
from turnflow.types import ButtonClick, PromptClick, SetVariable, TextSubmit

if TYPE_CHECKING:
    from turnflow.types import Event, TranscriptEntry

EVENT_USAGE = "prompt:<componentId> | button:<label> | text:<value> | set:<name>=<value>"


def parse_event(spec: str) -> Event:
    kind, sep, rest = spec.partition(":")
    if not sep:
        raise ValueError(f"Invalid event {spec!r}, expected {EVENT_USAGE}")
    match kind:
        case "prompt":
            return PromptClick(rest)
        case "button":
            return ButtonClick(rest)
        case "text":
            return TextSubmit(rest)
        case "set":
            name, eq, value = rest.partition("=")
            if not eq or not name:
                raise ValueError(f"Invalid variable binding {rest!r}, expected <name>=<value>")
            return SetVariable(name, value)
    raise ValueError(f"Unknown event kind {kind!r}, expected {EVENT_USAGE}")


def format_entry(entry: TranscriptEntry) -> str:
    content = entry.content
    if entry.type == "actionCard":
        text = content.get("successTitle") or content.get("loadingTitle") or ""
    elif entry.type == "infoMessage":
        text = content.get("title") or content.get("body") or ""
    else:
        text = content.get("text") or content.get("title") or ""
    return f"  [{entry.type}] {text}"


def cmd_play(
    flow_file: str,
    event_specs: list[str],
    cwd: str,
    max_steps: int | None = None,
    substitute: bool = False,
) -> None:
    flow_path = Path(cwd) / flow_file
    if not flow_path.exists():
        print(f"Flow file not found: {flow_path}", file=sys.stderr)
        sys.exit(1)

    options_kwargs: dict = {"substitute_variables": substitute}
    if max_steps is not None:
        options_kwargs["max_auto_steps"] = max_steps
    try:
        events = [parse_event(s) for s in event_specs]
        options = EngineOptions(**options_kwargs)
        compiled = compile_flow(load_flow(flow_path))
    except (ValueError, CompileError) as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    engine = PlaybackEngine(options)
    engine.load_flow(compiled)

    for spec, event in zip(event_specs, events, strict=True):
        result = engine.dispatch(event)
        mark = "✓" if result else "✗"
        print(f"{mark} {spec}: {result.message}")

    print()
    print("Transcript:")
    for entry in engine.get_transcript():
        print(format_entry(entry))

    status = engine.get_status()
    print()
    if status.pending_input:
        pending = status.pending_input
        detail = pending.name or pending.trigger_value or ", ".join(
            c.id for c in pending.options
        )
        print(f"Status: {status.state} ({pending.kind}: {detail})")
    elif status.outcome:
        print(f"Status: {status.state} ({status.outcome})")
    else:
        print(f"Status: {status.state}")
