"""Playback engine: interprets a compiled flow against simulated user events.

Every public operation runs the auto-advance loop to completion before it
returns. Waiting for the user is represented as state (`awaitingInput` plus a
`PendingInput`), never as a suspended call. Rejected events leave the
transcript and position untouched.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from turnflow.engine.evaluator import (
    Matched,
    Missing,
    NoMatch,
    evaluate_branches,
    render_content,
    variable_suggestions,
)
from turnflow.types import (
    DEFAULT_HANDLE,
    ButtonClick,
    Condition,
    EngineStatus,
    PendingInput,
    PromptClick,
    SessionState,
    SetVariable,
    Start,
    TextSubmit,
    TranscriptEntry,
    Turn,
    UserTurn,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from turnflow.types import CompiledFlow, Event, Step

logger = logging.getLogger(__name__)

INVALID_EVENT = "InvalidEvent"
NO_MATCH = "NoMatch"

IDLE = "idle"
ADVANCING = "advancing"
AWAITING_INPUT = "awaitingInput"
FINISHED = "finished"

COMPLETED = "completed"
NO_VIABLE_PATH = "no_viable_path"
LOOP_LIMIT = "loop_limit"


# ─── Result & options ───

class EventResult:
    def __init__(
        self,
        success: bool,
        message: str,
        reason: str | None = None,
        new_step: str | None = None,
    ):
        self.success = success
        self.message = message
        self.reason = reason  # InvalidEvent | NoMatch when rejected
        self.new_step = new_step

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        return f"EventResult({self.success!r}, {self.message!r}, reason={self.reason!r})"

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "reason": self.reason,
            "new_step": self.new_step,
        }


@dataclass
class EngineOptions:
    # pause-free cycles stop after this many steps in one advance
    max_auto_steps: int = 500
    # replace {{name}} in emitted content with bound variables
    substitute_variables: bool = False

    def __post_init__(self):
        if self.max_auto_steps < 1:
            raise ValueError(f"max_auto_steps must be at least 1, got {self.max_auto_steps}")


# ─── Engine ───

class PlaybackEngine:
    def __init__(self, options: EngineOptions | None = None):
        self.options = options or EngineOptions()
        self.compiled: CompiledFlow | None = None
        self.session = SessionState()

    def load_flow(
        self,
        compiled: CompiledFlow,
        variables: Mapping[str, str] | None = None,
    ) -> EngineStatus:
        """Start a fresh session at the flow's start step and auto-advance."""
        self.compiled = compiled
        self.session = SessionState(
            position=compiled.start_step_id,
            variables={k: str(v) for k, v in (variables or {}).items()},
        )
        logger.info("Loaded flow %s at %s", compiled.flow.id, compiled.start_step_id)
        self._record(compiled.start_step_id, "load")
        self._advance()
        return self.get_status()

    def reset(self) -> EngineStatus:
        if self.compiled is None:
            return self.get_status()
        return self.load_flow(self.compiled)

    # ─── Read-only views ───

    def get_transcript(self) -> tuple[TranscriptEntry, ...]:
        return tuple(self.session.transcript)

    def get_status(self) -> EngineStatus:
        s = self.session
        return EngineStatus(state=s.status, pending_input=s.pending_input, outcome=s.outcome)

    @property
    def variables(self) -> dict[str, str]:
        return dict(self.session.variables)

    @property
    def position(self) -> str | None:
        return self.session.position

    def get_history(self, limit: int | None = None) -> list[dict[str, Any]]:
        history = self.session.history
        return list(history if limit is None else history[-limit:])

    # ─── Events ───

    def dispatch(self, event: Event) -> EventResult:
        match event:
            case ButtonClick(label):
                return self.submit_button_click(label)
            case PromptClick(component_id):
                return self.submit_prompt_click(component_id)
            case TextSubmit(value):
                return self.submit_text(value)
            case SetVariable(name, value):
                return self.set_variable(name, value)
        return self._reject(f"Unsupported event: {event!r}")

    def submit_prompt_click(self, component_id: str) -> EventResult:
        pending = self._pending("prompt")
        if isinstance(pending, EventResult):
            return pending
        if not any(c.id == component_id for c in pending.options):
            options = ", ".join(c.id for c in pending.options)
            return self._reject(
                f'"{component_id}" is not a prompt of step "{pending.step_id}". '
                f"Available prompts: {options}"
            )

        self._record(pending.step_id, "prompt", component_id)
        target = self._target(pending.step_id, component_id)
        if target is None:
            target = self._target(pending.step_id)
        return self._move_to(target)

    def submit_button_click(self, label: str) -> EventResult:
        return self._submit_trigger("button", label)

    def submit_text(self, text: str) -> EventResult:
        return self._submit_trigger("text", text)

    def set_variable(self, name: str, value: str) -> EventResult:
        s = self.session
        if self.compiled is None:
            return self._reject("No flow loaded. Call load_flow first.")

        s.variables[name] = str(value)
        self._record(s.position, "set_variable", f"{name}={value}")

        if s.status == AWAITING_INPUT and s.missing_variable == name:
            logger.debug("Variable %s bound, resuming at %s", name, s.position)
            self._advance()
            return EventResult(True, f'Variable "{name}" set, playback resumed', new_step=s.position)
        return EventResult(True, f'Variable "{name}" set', new_step=s.position)

    def switch_condition_path(self, step_id: str, name: str, value: str) -> EventResult:
        """Rewind to the last visit of a condition and replay it with `name=value`."""
        if self.compiled is None:
            return self._reject("No flow loaded. Call load_flow first.")
        step = self.compiled.step(step_id)
        if not isinstance(step, Condition):
            return self._reject(f'Step "{step_id}" is not a condition.')

        s = self.session
        visit_idx = next(
            (i for i in range(len(s.visits) - 1, -1, -1) if s.visits[i][0] == step_id),
            None,
        )
        if visit_idx is None:
            return self._reject(f'Condition "{step_id}" has not been reached in this session.')

        transcript_len = s.visits[visit_idx][1]
        del s.transcript[transcript_len:]
        del s.visits[visit_idx:]
        s.variables[name] = str(value)
        s.position = step_id
        s.outcome = None
        self._record(step_id, "switch_path", f"{name}={value}")
        self._advance()
        return EventResult(True, f'Replayed "{step_id}" with {name}={value}', new_step=s.position)

    # ─── Private ───

    def _reject(self, message: str, reason: str = INVALID_EVENT) -> EventResult:
        self._record(self.session.position, "rejected", message)
        logger.debug("Rejected event: %s", message)
        return EventResult(False, message, reason=reason)

    def _record(self, step_id: str | None, action: str, data: str | None = None) -> None:
        self.session.history.append({"step_id": step_id, "action": action, "data": data})

    def _target(self, step_id: str, handle: str | None = DEFAULT_HANDLE) -> str | None:
        return self.compiled.target(step_id, handle) if self.compiled else None

    def _pending(self, kind: str) -> PendingInput | EventResult:
        s = self.session
        if self.compiled is None:
            return self._reject("No flow loaded. Call load_flow first.")
        if s.status != AWAITING_INPUT or s.pending_input is None:
            return self._reject(f"Not waiting for input (state: {s.status}).")
        if s.pending_input.kind != kind:
            return self._reject(
                f'Step "{s.pending_input.step_id}" expects {s.pending_input.kind} input, got {kind}.'
            )
        return s.pending_input

    def _submit_trigger(self, kind: str, value: str) -> EventResult:
        pending = self._pending(kind)
        if isinstance(pending, EventResult):
            return pending
        if value != pending.trigger_value:
            return self._reject(
                f'"{value}" does not match the expected {kind} for step "{pending.step_id}".',
                reason=NO_MATCH,
            )
        self._record(pending.step_id, kind, value)
        return self._move_to(self._target(pending.step_id))

    def _move_to(self, target: str | None) -> EventResult:
        s = self.session
        if target is None:
            self._finish(COMPLETED)
            return EventResult(True, "Conversation finished, no further steps.")
        s.position = target
        self._advance()
        if s.status == FINISHED:
            return EventResult(True, f"Advanced to: {target}; conversation finished.", new_step=target)
        return EventResult(True, f"Advanced to: {s.position}", new_step=s.position)

    def _await(self, pending: PendingInput) -> None:
        s = self.session
        s.status = AWAITING_INPUT
        s.pending_input = pending
        logger.debug("Awaiting %s input at %s", pending.kind, pending.step_id)

    def _finish(self, outcome: str) -> None:
        s = self.session
        s.status = FINISHED
        s.outcome = outcome
        s.pending_input = None
        s.missing_variable = None
        s.position = None
        self._record(None, "finish", outcome)
        logger.info("Playback finished: %s", outcome)

    def _emit(self, turn: Turn) -> None:
        s = self.session
        for component in turn.components:
            content = copy.deepcopy(component.content)
            if self.options.substitute_variables:
                content = render_content(content, s.variables)
            s.transcript.append(TranscriptEntry(
                step_id=turn.id,
                type=component.type,
                content=content,
                component_id=component.id,
            ))

    def _advance(self) -> None:
        """Walk from the current position until the next pause point or the end."""
        s = self.session
        s.status = ADVANCING
        s.pending_input = None
        s.missing_variable = None

        for _ in range(self.options.max_auto_steps):
            step = self.compiled.step(s.position) if s.position else None
            if step is None:
                self._finish(COMPLETED)
                return

            s.visits.append((step.id, len(s.transcript)))
            self._record(step.id, "visit")
            logger.debug("Visiting %s", step.id)

            next_id = self._step_exit(step)
            if s.status != ADVANCING:
                return
            if next_id is None:
                self._finish(COMPLETED)
                return
            s.position = next_id

        logger.warning(
            "Stopped after %d steps without a pause at %s", self.options.max_auto_steps, s.position
        )
        self._finish(LOOP_LIMIT)

    def _step_exit(self, step: Step) -> str | None:
        """Run one step; returns where playback goes next, or pauses/finishes."""
        s = self.session
        match step:
            case Start():
                return self._target(step.id)

            case Turn():
                self._emit(step)
                if step.prompts:
                    self._await(PendingInput(
                        "prompt", step.id, options=copy.deepcopy(list(step.prompts))
                    ))
                    return None
                return self._target(step.id)

            case UserTurn():
                if step.input_type == "prompt":
                    return self._target(step.id)
                self._await(PendingInput(step.input_type, step.id, trigger_value=step.trigger_value))
                return None

            case Condition():
                result = evaluate_branches(step.branches, s.variables)
                match result:
                    case Matched(branch):
                        logger.debug("Condition %s took branch %s", step.id, branch.id)
                        return self._target(step.id, branch.id)
                    case Missing(name):
                        self._await(PendingInput(
                            "variable",
                            step.id,
                            name=name,
                            suggestions=variable_suggestions(step.branches, name),
                        ))
                        s.missing_variable = name
                        return None
                    case NoMatch():
                        self._finish(NO_VIABLE_PATH)
                        return None
        return None


def replay(
    compiled: CompiledFlow,
    events: Iterable[Event],
    options: EngineOptions | None = None,
) -> PlaybackEngine:
    """Play a fixed event sequence on a fresh engine."""
    engine = PlaybackEngine(options)
    engine.load_flow(compiled)
    for event in events:
        engine.dispatch(event)
    return engine
