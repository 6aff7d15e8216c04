"""turnflow check <file>: compile a flow, report issues, output Mermaid diagram."""
from __future__ import annotations

import sys
from pathlib import Path

from turnflow.compiler import (
    CompileError,
    compile_flow,
    format_errors,
    generate_mermaid,
    load_flow,
)


def cmd_check(flow_file: str, cwd: str, mermaid: bool = True) -> None:
    flow_path = Path(cwd) / flow_file

    if not flow_path.exists():
        print(f"Flow file not found: {flow_path}", file=sys.stderr)
        sys.exit(1)

    try:
        flow = load_flow(flow_path)
    except ValueError as e:
        print(f"✗ Parse error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        compiled = compile_flow(flow)
    except CompileError as e:
        print(f'✗ Flow "{flow.title}" failed validation ({e.kind}):')
        print(format_errors(e.issues))
        sys.exit(1)

    print(f'✓ Flow "{flow.title}" compiled ({len(flow.steps)} steps, start: {compiled.start_step_id})')
    if compiled.warnings:
        print(format_errors(list(compiled.warnings)))

    if mermaid:
        print()
        print("```mermaid")
        print(generate_mermaid(compiled))
        print("```")
