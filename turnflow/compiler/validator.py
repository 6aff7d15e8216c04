"""Static analysis and compilation of flows into their playback form."""
from __future__ import annotations

import copy
import logging
from collections import deque

from turnflow.engine.evaluator import OPERATORS
from turnflow.types import (
    DEFAULT_HANDLE,
    CompiledFlow,
    Condition,
    Flow,
    Start,
    Step,
    Turn,
    declared_handles,
)

logger = logging.getLogger(__name__)

MISSING_START = "MissingStart"
DANGLING_REFERENCE = "DanglingReference"
DUPLICATE_HANDLE = "DuplicateHandle"
ORPHAN_BRANCH = "OrphanBranch"
UNSUPPORTED_OPERATOR = "UnsupportedOperator"


class ValidationIssue:
    def __init__(
        self,
        level: str,
        message: str,
        step: str | None = None,
        kind: str | None = None,
        ids: tuple[str, ...] = (),
    ):
        self.level = level  # "error" | "warning"
        self.message = message
        self.step = step
        self.kind = kind  # set on structural errors
        self.ids = ids

    def __str__(self):
        prefix = f"[{self.step}] " if self.step else ""
        return f"{self.level.upper()}: {prefix}{self.message}"

    def __repr__(self):
        return f"ValidationIssue({self.level!r}, {self.message!r}, kind={self.kind!r})"


class CompileError(Exception):
    """A flow is structurally broken and cannot be played."""

    def __init__(self, kind: str, message: str, ids: tuple[str, ...] = (), issues=None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.ids = ids
        self.issues: list[ValidationIssue] = list(issues or [])


def _error(kind: str, message: str, step: str | None, *ids: str) -> ValidationIssue:
    return ValidationIssue("error", message, step, kind=kind, ids=tuple(ids))


def _handle_label(handle: str | None) -> str:
    return "default" if handle is DEFAULT_HANDLE else f"'{handle}'"


# ─── Public API ───

def validate_flow(flow: Flow) -> list[ValidationIssue]:
    """Run all static checks on a flow."""
    errors: list[ValidationIssue] = []
    steps = {s.id: s for s in flow.steps}

    if not flow.start_step_id or flow.start_step_id not in steps:
        errors.append(_error(
            MISSING_START,
            f"Start step not found: '{flow.start_step_id}'" if flow.start_step_id
            else "Flow has no start step",
            None,
            flow.start_step_id,
        ))
        return errors

    errors.extend(_check_references(flow, steps))
    if any(e.level == "error" for e in errors):
        return errors

    errors.extend(_check_handles(flow, steps))
    errors.extend(_check_branches(flow, steps))
    errors.extend(_check_operators(flow))
    if any(e.level == "error" for e in errors):
        return errors

    outgoing = build_outgoing(flow)
    errors.extend(_check_reachability(flow, outgoing))
    errors.extend(_check_dead_ends(flow, outgoing))
    errors.extend(_check_defaults(flow))
    errors.extend(_check_unknown_handles(flow))
    return errors


def compile_flow(flow: Flow) -> CompiledFlow:
    issues = validate_flow(flow)
    errors = [i for i in issues if i.level == "error"]
    if errors:
        first = errors[0]
        raise CompileError(first.kind or "", str(first), first.ids, issues)

    warnings = [i for i in issues if i.level == "warning"]
    for w in warnings:
        logger.warning("Flow %s: %s", flow.id, w)

    # later edits to the caller's Flow must not reach running sessions
    flow = copy.deepcopy(flow)
    compiled = CompiledFlow.build(
        flow,
        {s.id: s for s in flow.steps},
        build_outgoing(flow),
        warnings,
    )
    logger.debug("Compiled flow %s (%d steps)", flow.id, len(flow.steps))
    return compiled


def build_outgoing(flow: Flow) -> dict[str, dict[str | None, str]]:
    """Index connections as {step_id: {handle: target_id}}, in step order."""
    outgoing: dict[str, dict[str | None, str]] = {s.id: {} for s in flow.steps}
    for conn in flow.connections:
        outgoing.setdefault(conn.source, {}).setdefault(conn.source_handle, conn.target)
    return outgoing


def format_errors(errors: list[ValidationIssue]) -> str:
    if not errors:
        return ""
    lines = []
    errs = [e for e in errors if e.level == "error"]
    warns = [e for e in errors if e.level == "warning"]
    if errs:
        lines.append(f"  {len(errs)} error(s):")
        for e in errs:
            lines.append(f"    ✗ {e}")
    if warns:
        lines.append(f"  {len(warns)} warning(s):")
        for e in warns:
            lines.append(f"    ⚠ {e}")
    return "\n".join(lines)


# ─── Structural errors ───

def _check_references(flow: Flow, steps: dict[str, Step]) -> list[ValidationIssue]:
    """Every connection endpoint must exist in the flow."""
    errors: list[ValidationIssue] = []
    for conn in flow.connections:
        for end in (conn.source, conn.target):
            if end not in steps:
                errors.append(_error(
                    DANGLING_REFERENCE,
                    f"Connection '{conn.id}' references unknown step '{end}'",
                    conn.source if conn.source in steps else None,
                    conn.id, end,
                ))
    return errors


def _check_handles(flow: Flow, steps: dict[str, Step]) -> list[ValidationIssue]:
    """At most one connection per (source, handle)."""
    errors: list[ValidationIssue] = []
    seen: dict[tuple[str, str | None], str] = {}
    for conn in flow.connections:
        key = (conn.source, conn.source_handle)
        if key in seen:
            errors.append(_error(
                DUPLICATE_HANDLE,
                f"Handle {_handle_label(conn.source_handle)} has more than one connection "
                f"('{seen[key]}', '{conn.id}')",
                conn.source,
                seen[key], conn.id,
            ))
        else:
            seen[key] = conn.id
    return errors


def _check_branches(flow: Flow, steps: dict[str, Step]) -> list[ValidationIssue]:
    """Connections leaving a condition must start at one of its branches."""
    errors: list[ValidationIssue] = []
    for conn in flow.connections:
        step = steps[conn.source]
        if not isinstance(step, Condition):
            continue
        if conn.source_handle not in declared_handles(step):
            errors.append(_error(
                ORPHAN_BRANCH,
                f"Connection '{conn.id}' leaves from unknown branch "
                f"{_handle_label(conn.source_handle)}",
                step.id,
                conn.id, conn.source_handle or "",
            ))
    return errors


def _check_operators(flow: Flow) -> list[ValidationIssue]:
    """Branch tests must use an operator the evaluator knows."""
    errors: list[ValidationIssue] = []
    for step in flow.steps:
        if not isinstance(step, Condition):
            continue
        for b in step.branches:
            if b.logic and b.logic.variable and b.logic.operator not in OPERATORS:
                errors.append(_error(
                    UNSUPPORTED_OPERATOR,
                    f"Branch '{b.id}' uses unsupported operator '{b.logic.operator}'",
                    step.id,
                    b.id, b.logic.operator,
                ))
    return errors


# ─── Warnings ───

def _check_reachability(
    flow: Flow, outgoing: dict[str, dict[str | None, str]]
) -> list[ValidationIssue]:
    """All steps should be reachable from the start step."""
    errors: list[ValidationIssue] = []
    reachable: set[str] = set()
    queue = deque([flow.start_step_id])

    while queue:
        current = queue.popleft()
        if current in reachable:
            continue
        reachable.add(current)
        for target in outgoing.get(current, {}).values():
            if target not in reachable:
                queue.append(target)

    for step in flow.steps:
        if step.id not in reachable:
            errors.append(ValidationIssue("warning", "Step is unreachable from the start", step.id))
    return errors


def _check_dead_ends(
    flow: Flow, outgoing: dict[str, dict[str | None, str]]
) -> list[ValidationIssue]:
    """Steps whose exits lead nowhere end the conversation there."""
    errors: list[ValidationIssue] = []
    for step in flow.steps:
        edges = outgoing.get(step.id, {})
        if isinstance(step, Start) and not edges:
            errors.append(ValidationIssue("warning", "Start step is not connected", step.id))
        elif isinstance(step, Turn):
            for prompt in step.prompts:
                if prompt.id not in edges and DEFAULT_HANDLE not in edges:
                    errors.append(ValidationIssue(
                        "warning", f"Prompt '{prompt.id}' is not connected", step.id
                    ))
        elif isinstance(step, Condition):
            for branch in step.branches:
                if branch.id not in edges:
                    errors.append(ValidationIssue(
                        "warning", f"Branch '{branch.id}' is not connected", step.id
                    ))
    return errors


def _check_defaults(flow: Flow) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    for step in flow.steps:
        if isinstance(step, Condition):
            defaults = [b.id for b in step.branches if b.is_default]
            if len(defaults) > 1:
                errors.append(ValidationIssue(
                    "warning",
                    f"More than one default branch ({', '.join(defaults)}); the first one wins",
                    step.id,
                ))
    return errors


def _check_unknown_handles(flow: Flow) -> list[ValidationIssue]:
    """Turn handles should name one of the turn's prompts."""
    errors: list[ValidationIssue] = []
    steps = {s.id: s for s in flow.steps}
    for conn in flow.connections:
        step = steps[conn.source]
        if isinstance(step, Condition):
            continue
        if conn.source_handle not in declared_handles(step):
            errors.append(ValidationIssue(
                "warning",
                f"Connection '{conn.id}' uses handle '{conn.source_handle}', "
                "which matches no prompt; it is never followed",
                step.id,
            ))
    return errors
