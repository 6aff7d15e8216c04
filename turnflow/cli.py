"""Thin CLI router: dispatches to commands."""
from __future__ import annotations

import os
import sys

USAGE = """\
turnflow: conversation flow compiler and playback simulator

Usage:
  turnflow check <file> [--no-mermaid]     Compile a flow, report issues, output Mermaid diagram
  turnflow play <file> [events...]         Play a flow and print the transcript
        [--max-steps N] [--substitute]
  turnflow mcp-server                      Start MCP Server for agent-driven previews

Events:
  prompt:<componentId>   click a prompt
  button:<label>         click a button
  text:<value>           send free text
  set:<name>=<value>     bind a simulation variable
"""


def _take_option(args: list[str], flag: str) -> str | None:
    if flag not in args:
        return None
    idx = args.index(flag)
    if idx + 1 >= len(args):
        print(f"Missing value for {flag}", file=sys.stderr)
        sys.exit(1)
    value = args[idx + 1]
    del args[idx:idx + 2]
    return value


def main():
    args = sys.argv[1:]
    cwd = os.getcwd()
    command = args[0] if args else None

    if command == "check":
        rest = args[1:]
        mermaid = "--no-mermaid" not in rest
        rest = [a for a in rest if a != "--no-mermaid"]
        if not rest:
            print("Usage: turnflow check <file>", file=sys.stderr)
            sys.exit(1)
        from turnflow.commands.check import cmd_check
        cmd_check(rest[0], cwd, mermaid=mermaid)

    elif command == "play":
        rest = args[1:]
        max_steps = _take_option(rest, "--max-steps")
        substitute = "--substitute" in rest
        rest = [a for a in rest if a != "--substitute"]
        if not rest:
            print("Usage: turnflow play <file> [events...]", file=sys.stderr)
            sys.exit(1)
        if max_steps is not None and (not max_steps.isdigit() or int(max_steps) < 1):
            print(f"--max-steps expects a positive number, got {max_steps!r}", file=sys.stderr)
            sys.exit(1)
        from turnflow.commands.play import cmd_play
        cmd_play(
            rest[0],
            rest[1:],
            cwd,
            max_steps=int(max_steps) if max_steps is not None else None,
            substitute=substitute,
        )

    elif command == "mcp-server":
        from turnflow.integrations.mcp_server import run_server
        run_server()

    elif command in ("help", "--help", "-h", None):
        print(USAGE)

    else:
        print(f"Unknown command: {command}", file=sys.stderr)
        print(USAGE)
        sys.exit(1)
