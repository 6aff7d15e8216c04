from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from collections.abc import Mapping

    from turnflow.compiler.validator import ValidationIssue

# ─── Flow Graph Model (produced by the editor) ───

ComponentType = Literal[
    "message", "prompt", "infoMessage", "actionCard",
    "selectionList", "checkboxGroup", "buttons", "input",
]

COMPONENT_TYPES: frozenset[str] = frozenset(ComponentType.__args__)

# Implicit exit of a step that has no sub-handles
DEFAULT_HANDLE = None


@dataclass
class Component:
    id: str
    type: str
    content: dict[str, Any] = field(default_factory=dict)
    # content shapes:
    #   message       {text}
    #   prompt        {text, showAiIcon?}
    #   infoMessage   {title?, body, sources: [{text, href}]}
    #   actionCard    {loadingTitle, successTitle, successDescription?,
    #                  failureTitle?, failureDescription?}
    #   selectionList {items: [{id, title, ...}]}


@dataclass
class BranchLogic:
    variable: str
    value: str
    operator: str = "eq"


@dataclass
class Branch:
    id: str
    condition: str = ""  # display label
    logic: BranchLogic | None = None
    is_default: bool = False


@dataclass
class Start:
    id: str
    label: str = ""


@dataclass
class Turn:
    id: str
    speaker: str = "ai"  # ai | user
    label: str = ""
    phase: str | None = None  # welcome | intent | info | action
    locked: bool = False
    components: list[Component] = field(default_factory=list)

    @property
    def prompts(self) -> list[Component]:
        return [c for c in self.components if c.type == "prompt"]


@dataclass
class UserTurn:
    id: str
    label: str = ""
    input_type: str = "text"  # text | button | prompt
    trigger_value: str = ""


@dataclass
class Condition:
    id: str
    label: str = ""
    branches: list[Branch] = field(default_factory=list)


Step = Start | Turn | UserTurn | Condition


@dataclass
class Connection:
    id: str
    source: str
    target: str
    source_handle: str | None = None


@dataclass
class FlowSettings:
    show_disclaimer: bool = True
    simulate_thinking: bool = False
    entry_point: str = "custom"
    product_name: str = ""


@dataclass
class Flow:
    id: str
    title: str = ""
    settings: FlowSettings = field(default_factory=FlowSettings)
    steps: list[Step] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)
    start_step_id: str = ""


def declared_handles(step: Step) -> list[str | None]:
    """Handles a step exposes on its outgoing side.

    Turns expose one handle per prompt component plus the default exit,
    conditions one per branch, everything else only the default exit.
    """
    match step:
        case Turn():
            return [DEFAULT_HANDLE, *(c.id for c in step.prompts)]
        case Condition():
            return [b.id for b in step.branches]
        case _:
            return [DEFAULT_HANDLE]


# ─── Compiled Flow (engine-facing, immutable) ───

@dataclass(frozen=True)
class CompiledFlow:
    flow: Flow
    start_step_id: str
    steps_by_id: Mapping[str, Step]
    outgoing_by_step: Mapping[str, Mapping[str | None, str]]
    warnings: tuple[ValidationIssue, ...] = ()

    @classmethod
    def build(
        cls,
        flow: Flow,
        steps_by_id: dict[str, Step],
        outgoing: dict[str, dict[str | None, str]],
        warnings: list[ValidationIssue] | None = None,
    ) -> CompiledFlow:
        return cls(
            flow=flow,
            start_step_id=flow.start_step_id,
            steps_by_id=MappingProxyType(dict(steps_by_id)),
            outgoing_by_step=MappingProxyType(
                {sid: MappingProxyType(dict(edges)) for sid, edges in outgoing.items()}
            ),
            warnings=tuple(warnings or ()),
        )

    def step(self, step_id: str) -> Step | None:
        return self.steps_by_id.get(step_id)

    def target(self, step_id: str, handle: str | None = DEFAULT_HANDLE) -> str | None:
        return self.outgoing_by_step.get(step_id, {}).get(handle)

    def handles(self, step_id: str) -> list[str | None]:
        return list(self.outgoing_by_step.get(step_id, {}))


# ─── Simulated User Events ───

@dataclass(frozen=True)
class ButtonClick:
    label: str


@dataclass(frozen=True)
class PromptClick:
    component_id: str


@dataclass(frozen=True)
class TextSubmit:
    value: str


@dataclass(frozen=True)
class SetVariable:
    name: str
    value: str


Event = ButtonClick | PromptClick | TextSubmit | SetVariable

# ─── Playback Session State ───

@dataclass(frozen=True)
class TranscriptEntry:
    step_id: str
    type: str
    content: dict[str, Any]
    component_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepId": self.step_id,
            "componentId": self.component_id,
            "type": self.type,
            "content": self.content,
        }


@dataclass
class PendingInput:
    kind: str  # prompt | text | button | variable
    step_id: str
    options: list[Component] = field(default_factory=list)  # prompt
    trigger_value: str | None = None  # text | button
    name: str | None = None  # variable
    suggestions: list[dict[str, str]] = field(default_factory=list)  # variable

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind, "stepId": self.step_id}
        if self.kind == "prompt":
            result["options"] = [
                {"componentId": c.id, "text": c.content.get("text", "")} for c in self.options
            ]
        elif self.kind == "variable":
            result["name"] = self.name
            result["suggestions"] = list(self.suggestions)
        else:
            result["triggerValue"] = self.trigger_value
        return result


@dataclass
class EngineStatus:
    state: str  # idle | advancing | awaitingInput | finished
    pending_input: PendingInput | None = None
    outcome: str | None = None  # completed | no_viable_path | loop_limit

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"state": self.state}
        if self.pending_input:
            result["pendingInput"] = self.pending_input.to_dict()
        if self.outcome:
            result["outcome"] = self.outcome
        return result


@dataclass
class SessionState:
    position: str | None = None  # step id; None once finished
    status: str = "idle"
    transcript: list[TranscriptEntry] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)
    pending_input: PendingInput | None = None
    missing_variable: str | None = None
    outcome: str | None = None
    visits: list[tuple[str, int]] = field(default_factory=list)  # (step_id, transcript length)
    history: list[dict[str, Any]] = field(default_factory=list)
