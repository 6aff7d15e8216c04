"""Generate a Mermaid flowchart from a compiled flow."""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from turnflow.types import DEFAULT_HANDLE, Condition, Start, Turn, UserTurn

if TYPE_CHECKING:
    from turnflow.types import CompiledFlow, Step


def _make_id(index: int, step_id: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9_]", "_", step_id)
    clean = re.sub(r"_+", "_", clean).strip("_")
    return f"n{index}_{clean}"


def _label(text: str) -> str:
    return text.replace('"', "'")[:40]


def _step_label(step: Step) -> str:
    if step.label:
        return step.label
    if isinstance(step, Turn):
        for c in step.components:
            text = c.content.get("text") or c.content.get("title")
            if text:
                return str(text)
    return step.id


def _edge_label(step: Step, handle: str | None) -> str | None:
    if handle is DEFAULT_HANDLE:
        return None
    if isinstance(step, Turn):
        for p in step.prompts:
            if p.id == handle:
                return str(p.content.get("text") or handle)
    if isinstance(step, Condition):
        for b in step.branches:
            if b.id == handle:
                if b.condition:
                    return b.condition
                if b.logic:
                    return f"{b.logic.variable} = {b.logic.value}"
                return "else" if b.is_default else handle
    return handle


def generate_mermaid(compiled: CompiledFlow) -> str:
    ids: dict[str, str] = {}
    nodes: list[str] = []
    edges: list[str] = []

    for i, step in enumerate(compiled.steps_by_id.values(), start=1):
        sid = _make_id(i, step.id)
        ids[step.id] = sid
        label = _label(_step_label(step))

        match step:
            case Start():
                nodes.append(f'    {sid}(("{label}"))')
            case Condition():
                nodes.append(f'    {sid}{{{{"{label}"}}}}')
            case UserTurn():
                nodes.append(f'    {sid}[/"{label}"/]')
            case _:
                nodes.append(f'    {sid}["{label}"]')

    for step_id, handles in compiled.outgoing_by_step.items():
        src = ids.get(step_id)
        step = compiled.steps_by_id.get(step_id)
        if not src or step is None:
            continue
        for handle, target in handles.items():
            dst = ids.get(target)
            if not dst:
                continue
            edge_label = _edge_label(step, handle)
            if edge_label is None:
                edges.append(f"    {src} --> {dst}")
            elif isinstance(step, Condition) and any(
                b.id == handle and b.is_default for b in step.branches
            ):
                edges.append(f'    {src} -.->|"{_label(edge_label)}"| {dst}')
            else:
                edges.append(f'    {src} -->|"{_label(edge_label)}"| {dst}')

    start = ids.get(compiled.start_step_id)
    lines = ["graph TD"]
    lines.extend(nodes)
    lines.extend(edges)
    if start:
        lines.append("    classDef start stroke-width:3px")
        lines.append(f"    class {start} start")
    return "\n".join(lines)
