"""Conversation flow compiler and playback engine."""
from turnflow.compiler import CompileError, compile_flow, load_flow, parse_flow
from turnflow.engine import EngineOptions, PlaybackEngine, replay

__version__ = "0.1.0"

__all__ = [
    "CompileError",
    "EngineOptions",
    "PlaybackEngine",
    "compile_flow",
    "load_flow",
    "parse_flow",
    "replay",
]
