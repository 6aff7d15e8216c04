from turnflow.compiler.mermaid import generate_mermaid
from turnflow.compiler.parser import load_flow, parse_flow, parse_flow_yaml
from turnflow.compiler.validator import (
    CompileError,
    ValidationIssue,
    compile_flow,
    format_errors,
    validate_flow,
)

__all__ = [
    "CompileError",
    "ValidationIssue",
    "compile_flow",
    "format_errors",
    "generate_mermaid",
    "load_flow",
    "parse_flow",
    "parse_flow_yaml",
    "validate_flow",
]
