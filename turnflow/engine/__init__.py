from turnflow.engine.evaluator import Matched, Missing, NoMatch, evaluate_branches, render_template
from turnflow.engine.player import EngineOptions, EventResult, PlaybackEngine, replay

__all__ = [
    "EngineOptions",
    "EventResult",
    "Matched",
    "Missing",
    "NoMatch",
    "PlaybackEngine",
    "evaluate_branches",
    "render_template",
    "replay",
]
