"""Load editor flow documents (JSON or YAML) into the flow graph model."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from turnflow.engine.evaluator import OPERATORS
from turnflow.types import (
    COMPONENT_TYPES,
    Branch,
    BranchLogic,
    Component,
    Condition,
    Connection,
    Flow,
    FlowSettings,
    Start,
    Step,
    Turn,
    UserTurn,
)

# Editor (camelCase) key -> internal key mapping
KEYWORD_MAP = {
    "startStepId": "start_step_id",
    "sourceHandle": "source_handle",
    "inputType": "input_type",
    "triggerValue": "trigger_value",
    "isDefault": "is_default",
    "showDisclaimer": "show_disclaimer",
    "simulateThinking": "simulate_thinking",
    "entryPoint": "entry_point",
    "productName": "product_name",
}

STEP_KINDS = {
    "start": "start",
    "turn": "turn",
    "user-turn": "user-turn",
    "userTurn": "user-turn",
    "user_turn": "user-turn",
    "condition": "condition",
}

# Canvas annotations with no meaning for playback
_IGNORED_KINDS = frozenset({"note"})

COMPONENT_ALIASES = {
    "statusCard": "actionCard",
}

INPUT_TYPES = frozenset({"text", "button", "prompt"})

HANDLE_PREFIX = "handle-"


def _normalize_key(key: str) -> str:
    return KEYWORD_MAP.get(key, key)


def _normalize(obj):
    if isinstance(obj, dict):
        return {_normalize_key(k): _normalize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_normalize(item) for item in obj]
    return obj


def _text(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


def _require_id(body: dict, what: str) -> str:
    ident = body.get("id")
    if ident in (None, ""):
        raise ValueError(f"Invalid flow: {what} without an id")
    return str(ident)


# ─── Components & branches ───

def _parse_component(raw: Any, turn_id: str) -> Component:
    if not isinstance(raw, dict):
        raise ValueError(f'Invalid component in turn "{turn_id}": expected a mapping')
    comp_id = _require_id(raw, f'component of turn "{turn_id}"')
    comp_type = COMPONENT_ALIASES.get(raw.get("type"), raw.get("type"))
    if comp_type not in COMPONENT_TYPES:
        raise ValueError(f'Unknown component type "{raw.get("type")}" in turn "{turn_id}"')
    # content is opaque to playback, keep the editor's keys as-is
    content = raw.get("content") or {}
    if not isinstance(content, dict):
        raise ValueError(f'Component "{comp_id}" content must be a mapping')
    return Component(id=comp_id, type=comp_type, content=content)


def _parse_branch(raw: Any, condition_id: str) -> Branch:
    if not isinstance(raw, dict):
        raise ValueError(f'Invalid branch in condition "{condition_id}": expected a mapping')
    body = _normalize({k: v for k, v in raw.items() if k != "logic"})
    branch_id = _require_id(body, f'branch of condition "{condition_id}"')

    logic = None
    raw_logic = raw.get("logic")
    if isinstance(raw_logic, dict) and raw_logic.get("variable"):
        operator = raw_logic.get("operator") or "eq"
        if operator not in OPERATORS:
            raise ValueError(f'Branch "{branch_id}" uses unsupported operator "{operator}"')
        logic = BranchLogic(
            variable=str(raw_logic["variable"]),
            value=_text(raw_logic.get("value")),
            operator=operator,
        )

    return Branch(
        id=branch_id,
        condition=_text(body.get("condition")),
        logic=logic,
        is_default=bool(body.get("is_default", False)),
    )


# ─── Steps ───

def _parse_step(raw: Any) -> Step | None:
    """Parse a single raw step; returns None for canvas-only annotations."""
    if not isinstance(raw, dict):
        raise ValueError("Invalid step: expected a mapping")

    kind_raw = raw.get("type") or raw.get("kind")
    if kind_raw in _IGNORED_KINDS:
        return None
    kind = STEP_KINDS.get(kind_raw)
    if kind is None:
        raise ValueError(f'Unknown step kind "{kind_raw}"')

    body = _normalize({k: v for k, v in raw.items() if k not in ("components", "branches")})
    step_id = _require_id(body, f"{kind} step")
    label = _text(body.get("label"))

    if kind == "start":
        return Start(id=step_id, label=label)

    if kind == "turn":
        raw_components = raw.get("components") or []
        if not isinstance(raw_components, list):
            raise ValueError(f'Turn "{step_id}" components must be a list')
        return Turn(
            id=step_id,
            speaker=_text(body.get("speaker"), "ai"),
            label=label,
            phase=body.get("phase"),
            locked=bool(body.get("locked", False)),
            components=[_parse_component(c, step_id) for c in raw_components],
        )

    if kind == "user-turn":
        input_type = _text(body.get("input_type"), "text")
        if input_type not in INPUT_TYPES:
            raise ValueError(f'User turn "{step_id}" has unknown input type "{input_type}"')
        return UserTurn(
            id=step_id,
            label=label,
            input_type=input_type,
            trigger_value=_text(body.get("trigger_value")),
        )

    raw_branches = raw.get("branches") or []
    if not isinstance(raw_branches, list):
        raise ValueError(f'Condition "{step_id}" branches must be a list')
    return Condition(
        id=step_id,
        label=label,
        branches=[_parse_branch(b, step_id) for b in raw_branches],
    )


def _parse_connection(raw: Any, idx: int, steps: dict[str, Step]) -> Connection:
    if not isinstance(raw, dict):
        raise ValueError("Invalid connection: expected a mapping")
    body = _normalize(raw)
    source = _text(body.get("source"))
    target = _text(body.get("target"))
    handle = body.get("source_handle")
    handle = None if handle in (None, "") else str(handle)
    return Connection(
        id=_text(body.get("id"), f"e{idx}"),
        source=source,
        target=target,
        source_handle=_normalize_handle(handle, steps.get(source)),
    )


def _normalize_handle(handle: str | None, source: Step | None) -> str | None:
    """Map editor handle ids ("handle-<componentId>") onto prompt component ids."""
    if handle is None or not handle.startswith(HANDLE_PREFIX) or not isinstance(source, Turn):
        return handle
    candidate = handle[len(HANDLE_PREFIX):]
    if any(p.id == candidate for p in source.prompts):
        return candidate
    return handle


def _infer_start(steps: list[Step]) -> str:
    for step in steps:
        if isinstance(step, Start):
            return step.id
    for step in steps:
        if isinstance(step, Turn) and step.phase == "welcome":
            return step.id
    return steps[0].id if steps else ""


# ─── Public API ───

def parse_flow(raw: Any) -> Flow:
    if not isinstance(raw, dict):
        raise ValueError("Invalid flow document: expected a mapping")

    raw_steps = raw.get("steps")
    if not isinstance(raw_steps, list):
        raise ValueError('Invalid flow: missing "steps" list')

    parsed = [s for s in (_parse_step(r) for r in raw_steps) if s is not None]

    seen: dict[str, int] = {}
    for s in parsed:
        seen[s.id] = seen.get(s.id, 0) + 1
    dupes = [n for n, c in seen.items() if c > 1]
    if dupes:
        raise ValueError(f"Duplicate step ids: {', '.join(dupes)}")

    steps_by_id = {s.id: s for s in parsed}
    raw_connections = raw.get("connections") or []
    if not isinstance(raw_connections, list):
        raise ValueError('Invalid flow: "connections" must be a list')
    connections = [_parse_connection(c, i, steps_by_id) for i, c in enumerate(raw_connections)]

    body = _normalize({k: v for k, v in raw.items() if k not in ("steps", "connections")})
    settings_raw = body.get("settings") or {}
    if not isinstance(settings_raw, dict):
        raise ValueError('Invalid flow: "settings" must be a mapping')
    settings = FlowSettings(
        show_disclaimer=bool(settings_raw.get("show_disclaimer", True)),
        simulate_thinking=bool(settings_raw.get("simulate_thinking", False)),
        entry_point=_text(settings_raw.get("entry_point"), "custom"),
        product_name=_text(settings_raw.get("product_name")),
    )

    start = body.get("start_step_id")
    return Flow(
        id=_text(body.get("id"), "draft"),
        title=_text(body.get("title"), "Untitled flow"),
        settings=settings,
        steps=parsed,
        connections=connections,
        start_step_id=_infer_start(parsed) if start in (None, "") else str(start),
    )


def parse_flow_yaml(content: str) -> Flow:
    """Parse a YAML or JSON flow document."""
    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid flow document: {e}") from e
    return parse_flow(raw)


def load_flow(path: str | Path) -> Flow:
    return parse_flow_yaml(Path(path).read_text(encoding="utf-8"))
