"""Branch evaluation and {{variable}} templating against a variable context."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from turnflow.types import Branch, BranchLogic

TEMPLATE_RE = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")

# ─── Result type ───

@dataclass(frozen=True)
class Matched:
    branch: Branch


@dataclass(frozen=True)
class Missing:
    name: str


@dataclass(frozen=True)
class NoMatch:
    pass


Evaluation = Matched | Missing | NoMatch

# ─── Operators ───

def _op_eq(actual: str, expected: str) -> bool:
    return actual == expected


OPERATORS = {
    "eq": _op_eq,
}


def compare(logic: BranchLogic, actual: str) -> bool:
    op = OPERATORS.get(logic.operator)
    if op is None:
        raise ValueError(f"Unsupported branch operator: {logic.operator!r}")
    return op(actual, logic.value)


# ─── Evaluator ───

def evaluate_branches(branches: list[Branch], context: Mapping[str, str]) -> Evaluation:
    """Pick the branch a condition takes under the given variable bindings.

    Branches are scanned in declaration order and the first satisfied test
    wins. An unbound variable does not stop the scan; if nothing matched, the
    first default branch is taken, and only without one is the earliest
    unbound variable reported.
    """
    first_missing: str | None = None

    for branch in branches:
        logic = branch.logic
        if logic is None or not logic.variable:
            continue
        if logic.variable not in context:
            if first_missing is None:
                first_missing = logic.variable
            continue
        if compare(logic, context[logic.variable]):
            return Matched(branch)

    for branch in branches:
        if branch.is_default:
            return Matched(branch)

    if first_missing is not None:
        return Missing(first_missing)
    return NoMatch()


def variable_suggestions(branches: list[Branch], name: str) -> list[dict[str, str]]:
    """Values the branches test `name` against, with their display labels."""
    seen: set[str] = set()
    suggestions: list[dict[str, str]] = []
    for b in branches:
        if b.logic is None or b.logic.variable != name or b.logic.value in seen:
            continue
        seen.add(b.logic.value)
        suggestions.append({"value": b.logic.value, "label": b.condition or b.logic.value})
    return suggestions


# ─── Templates ───

def render_template(template: str, context: Mapping[str, str]) -> str:
    """Replace {{name}} placeholders; unbound names are left as written."""
    def replacer(m: re.Match) -> str:
        name = m.group(1)
        return context[name] if name in context else m.group(0)
    return TEMPLATE_RE.sub(replacer, template)


def render_content(content: Any, context: Mapping[str, str]) -> Any:
    if isinstance(content, str):
        return render_template(content, context)
    if isinstance(content, dict):
        return {k: render_content(v, context) for k, v in content.items()}
    if isinstance(content, list):
        return [render_content(item, context) for item in content]
    return content
