"""Flowc static analysis pipeline: public API."""

from __future__ import annotations

from .compiler import (
    PHASES as PHASES,
    CompilationResult as CompilationResult,
    CompileOptions as CompileOptions,
    compile as compile,
)
from .complexity import ComplexityInfo as ComplexityInfo, estimate as estimate
from .controlflow import ControlFlowTree as ControlFlowTree, build_control_flow
from .diagnostics import (
    CompilerError as CompilerError,
    Diagnostic as Diagnostic,
    Diagnostics as Diagnostics,
    InternalFault as InternalFault,
    aggregate as aggregate,
)
from .parse import ParseError as ParseError, parse as parse
from .semantic import Scope as Scope, analyze as analyze
from .serialize import to_dict as to_dict
from .tokens import LexError as LexError, Token as Token, tokenize as tokenize
from .tree import ParseTree as ParseTree

__all__ = [
    "PHASES",
    "CompilationResult",
    "CompileOptions",
    "CompilerError",
    "ComplexityInfo",
    "ControlFlowTree",
    "Diagnostic",
    "Diagnostics",
    "InternalFault",
    "LexError",
    "ParseError",
    "ParseTree",
    "Scope",
    "Token",
    "aggregate",
    "analyze",
    "build_control_flow",
    "compile",
    "estimate",
    "parse",
    "to_dict",
    "tokenize",
]
