"""Playback scenarios over the fixture flows in tests/flows/.

Flows:
  account_removal  start -> Turn(Hi, prompt "Remove a user") -> UserTurn(prompt) -> Turn(Removing...)
  yes_no           Turn(question, prompts Yes/No) -> one turn per answer
  access_request   Turn(greet) -> UserTurn(text) -> Condition(role) -> grant | deny -> UserTurn(button) -> greet
  routing          Condition(plan, with default) -> pro | basic

Dimensions tested per scenario:
  - Transcript contents and order
  - Engine status and pending input after each event
  - Rejected events leave state untouched
  - Audit trail in get_history
"""
from __future__ import annotations

from turnflow.engine.player import INVALID_EVENT, NO_MATCH, EngineOptions

# ═══════════════════════════════════════════════════════
# Scenario 1: Prompt-driven account removal
# ═══════════════════════════════════════════════════════

def test_account_removal_happy_path(harness_factory):
    h = harness_factory("account_removal.yaml")
    status = h.start()

    assert h.texts == ["Hi"]
    assert h.types == ["message", "prompt"]
    assert status.state == "awaitingInput"
    assert status.pending_input.kind == "prompt"
    assert [c.id for c in status.pending_input.options] == ["c2"]
    assert h.engine.position == "welcome-1"

    r = h.prompt("c2")
    assert r
    assert h.texts == ["Hi", "Removing..."]
    assert h.state == "finished"
    assert h.status.outcome == "completed"
    assert h.pending is None


def test_account_removal_transcript_records(harness_factory):
    h = harness_factory("account_removal.yaml")
    h.start()
    h.prompt("c2")

    records = [e.to_dict() for e in h.transcript]
    assert records[0] == {"stepId": "welcome-1", "componentId": "c1", "type": "message", "content": {"text": "Hi"}}
    assert records[1]["content"] == {"text": "Remove a user", "showAiIcon": False}
    assert records[2]["stepId"] == "removing"


def test_account_removal_history(harness_factory):
    h = harness_factory("account_removal.yaml")
    h.start()
    h.prompt("c2")

    assert h.history_actions() == [
        "load",
        "visit",   # start-1
        "visit",   # welcome-1
        "prompt",
        "visit",   # user-1
        "visit",   # removing
        "finish",
    ]
    visited = [e["step_id"] for e in h.engine.get_history() if e["action"] == "visit"]
    assert visited == ["start-1", "welcome-1", "user-1", "removing"]
    assert h.engine.get_history(limit=1) == [{"step_id": None, "action": "finish", "data": "completed"}]


def test_unknown_prompt_is_invalid(harness_factory):
    h = harness_factory("account_removal.yaml")
    h.start()
    before = h.transcript

    r = h.prompt("c1")  # a message, not a prompt
    assert not r
    assert r.reason == INVALID_EVENT
    assert h.transcript == before
    assert h.pending.kind == "prompt"


def test_wrong_event_shape_is_invalid(harness_factory):
    h = harness_factory("account_removal.yaml")
    h.start()

    for r in (h.text("Remove a user"), h.button("Remove a user")):
        assert not r
        assert r.reason == INVALID_EVENT
    assert h.texts == ["Hi"]
    assert h.state == "awaitingInput"


def test_events_after_finish_are_invalid(harness_factory):
    h = harness_factory("account_removal.yaml")
    h.start()
    h.prompt("c2")

    r = h.prompt("c2")
    assert not r
    assert r.reason == INVALID_EVENT
    assert "Not waiting for input" in r.message
    assert h.texts == ["Hi", "Removing..."]


def test_reset_replays_from_start(harness_factory):
    h = harness_factory("account_removal.yaml")
    h.start()
    h.prompt("c2")
    h.set_var("x", "1")

    status = h.engine.reset()
    assert status.state == "awaitingInput"
    assert h.texts == ["Hi"]
    assert h.engine.variables == {}


# ═══════════════════════════════════════════════════════
# Scenario 2: Two prompts, two targets
# ═══════════════════════════════════════════════════════

def test_yes_routes_only_to_its_target(harness_factory):
    h = harness_factory("yes_no.yaml")
    h.start()
    assert [c.content["text"] for c in h.pending.options] == ["Yes", "No"]

    h.prompt("p-yes")
    assert h.texts == ["Do you want to continue?", "Great, continuing."]
    assert "Okay, stopping here." not in h.texts


def test_no_routes_only_to_its_target(harness_factory):
    h = harness_factory("yes_no.yaml")
    h.start()

    r = h.prompt("p-no")
    assert r.new_step == "no-turn"
    assert h.texts == ["Do you want to continue?", "Okay, stopping here."]
    assert h.state == "finished"


def test_sessions_sharing_a_compiled_flow_are_independent(harness_factory):
    from turnflow.engine import PlaybackEngine

    h = harness_factory("yes_no.yaml")
    other = PlaybackEngine()
    h.start()
    other.load_flow(h.compiled)

    h.prompt("p-yes")
    other.submit_prompt_click("p-no")

    assert h.texts[-1] == "Great, continuing."
    assert other.get_transcript()[-1].content["text"] == "Okay, stopping here."


def test_editing_source_flow_after_compile_does_not_leak(harness_factory):
    from turnflow.types import Component

    h = harness_factory("account_removal.yaml")
    welcome = next(s for s in h.flow.steps if s.id == "welcome-1")
    welcome.components.insert(1, Component("c9", "message", {"text": "edited later"}))

    h.start()
    assert h.texts == ["Hi"]
    assert [c.id for c in h.compiled.step("welcome-1").components] == ["c1", "c2"]


def test_pending_options_are_private_to_a_session(harness_factory):
    from turnflow.engine import PlaybackEngine

    h = harness_factory("yes_no.yaml")
    h.start()
    h.pending.options[0].content["text"] = "Changed"

    other = PlaybackEngine()
    other.load_flow(h.compiled)
    assert other.get_status().pending_input.options[0].content["text"] == "Yes"
    assert h.compiled.step("ask").prompts[0].content["text"] == "Yes"


# ═══════════════════════════════════════════════════════
# Scenario 3: Access request (text, variables, buttons, loop)
# ═══════════════════════════════════════════════════════

def _ask_for_access(h):
    h.start()
    assert h.pending.kind == "text"
    assert h.pending.trigger_value == "I need admin access"
    r = h.text("I need admin access")
    assert r


def test_text_must_match_exactly(harness_factory):
    h = harness_factory("access_request.yaml")
    h.start()

    for attempt in ("i need admin access", "I need admin access ", "admin access"):
        r = h.text(attempt)
        assert not r
        assert r.reason == NO_MATCH
    assert h.pending.kind == "text"
    assert len(h.transcript) == 1
    assert h.history_actions().count("rejected") == 3


def test_missing_role_pauses_for_variable(harness_factory):
    h = harness_factory("access_request.yaml")
    _ask_for_access(h)

    assert h.state == "awaitingInput"
    assert h.pending.kind == "variable"
    assert h.pending.name == "role"
    assert h.pending.suggestions == [
        {"value": "admin", "label": "Is admin"},
        {"value": "member", "label": "Is member"},
    ]
    assert h.engine.session.missing_variable == "role"
    assert h.engine.position == "check-role"


def test_binding_missing_variable_resumes(harness_factory):
    h = harness_factory("access_request.yaml")
    _ask_for_access(h)
    before = len(h.transcript)

    r = h.set_var("role", "admin")
    assert r
    assert "resumed" in r.message
    assert len(h.transcript) == before + 1
    assert h.transcript[-1].type == "actionCard"
    assert h.transcript[-1].content["successTitle"] == "Access granted"
    assert h.state == "finished"


def test_binding_other_variable_does_not_resume(harness_factory):
    h = harness_factory("access_request.yaml")
    _ask_for_access(h)

    r = h.set_var("team", "core")
    assert r
    assert h.pending.kind == "variable"
    assert h.engine.variables == {"team": "core"}


def test_unexpected_role_is_a_dead_end(harness_factory):
    h = harness_factory("access_request.yaml")
    _ask_for_access(h)

    h.set_var("role", "guest")
    assert h.state == "finished"
    assert h.status.outcome == "no_viable_path"
    assert h.pending is None


def test_denied_user_can_retry_and_loop(harness_factory):
    h = harness_factory("access_request.yaml")
    _ask_for_access(h)
    h.set_var("role", "member")

    assert h.types == ["message", "infoMessage", "message"]
    assert h.pending.kind == "button"
    assert h.pending.trigger_value == "Retry"

    assert h.button("Try again").reason == NO_MATCH
    r = h.button("Retry")
    assert r
    # back at the greeting, waiting for text again
    assert h.types == ["message", "infoMessage", "message", "message"]
    assert h.pending.kind == "text"

    # role stays bound for the rest of the session
    h.text("I need admin access")
    assert h.pending.kind == "button"
    assert h.texts.count("Press Retry to start over.") == 2


def test_preset_variables_skip_the_pause(harness_factory):
    h = harness_factory("access_request.yaml")
    h.start(variables={"role": "admin"})
    h.text("I need admin access")
    assert h.state == "finished"
    assert h.transcript[-1].component_id == "a1"


def test_switch_condition_path_rewinds_transcript(harness_factory):
    h = harness_factory("access_request.yaml")
    _ask_for_access(h)
    h.set_var("role", "member")
    assert h.pending.kind == "button"

    r = h.engine.switch_condition_path("check-role", "role", "admin")
    assert r
    assert h.types == ["message", "actionCard"]
    assert h.engine.variables["role"] == "admin"
    assert h.state == "finished"
    assert h.status.outcome == "completed"


def test_switch_condition_path_rejects_unvisited_or_non_condition(harness_factory):
    h = harness_factory("access_request.yaml")
    h.start()

    r = h.engine.switch_condition_path("check-role", "role", "admin")
    assert not r
    assert "has not been reached" in r.message
    r = h.engine.switch_condition_path("greet", "role", "admin")
    assert not r
    assert r.reason == INVALID_EVENT
    assert "role" not in h.engine.variables


def test_variable_substitution_is_opt_in(harness_factory):
    plain = harness_factory("access_request.yaml")
    plain.start(variables={"name": "Ana"})
    assert plain.texts == ["Hello {{name}}, what do you need?"]

    rendered = harness_factory("access_request.yaml", options=EngineOptions(substitute_variables=True))
    rendered.start(variables={"name": "Ana"})
    assert rendered.texts == ["Hello Ana, what do you need?"]
    # compiled content is not mutated
    greet = rendered.compiled.step("greet")
    assert greet.components[0].content["text"] == "Hello {{name}}, what do you need?"


# ═══════════════════════════════════════════════════════
# Scenario 4: Routing with a default branch
# ═══════════════════════════════════════════════════════

def test_default_branch_needs_no_variable(harness_factory):
    h = harness_factory("routing.yaml")
    h.start()
    assert h.texts == ["Here are the basics"]
    assert h.state == "finished"


def test_matching_branch_taken(harness_factory):
    h = harness_factory("routing.yaml")
    h.start(variables={"plan": "pro"})
    assert h.texts == ["Welcome back, pro user"]


def test_non_matching_value_falls_back_to_default(harness_factory):
    h = harness_factory("routing.yaml")
    h.start(variables={"plan": "enterprise"})
    assert h.texts == ["Here are the basics"]
