"""Diagnostics sink, error reporting, and suggestion generation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field


PHASE_LEX = "lex"
PHASE_SYNTAX = "syntax"
PHASE_SEMANTIC = "semantic"
PHASE_INTERNAL = "internal"

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

DEFAULT_CONTEXT_LINES = 2


class InternalFault(Exception):
    """A stage precondition or internal invariant was violated.

    Unlike lex, syntax and semantic diagnostics this is not recoverable:
    the pipeline stops and reports only this fault.
    """

    phase = PHASE_INTERNAL

    def __init__(self, msg: str, line: int = 1, col: int = 1):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " column " + str(col))


@dataclass(frozen=True)
class Diagnostic:
    """One finding reported by a pipeline stage."""

    phase: str
    message: str
    line: int
    column: int
    severity: str = SEVERITY_ERROR


class Diagnostics:
    """Mutable sink threaded through every stage of one compilation."""

    def __init__(self) -> None:
        self.items: list[Diagnostic] = []

    def error(self, phase: str, message: str, line: int, column: int) -> Diagnostic:
        d = Diagnostic(phase, message, line, column, SEVERITY_ERROR)
        self.items.append(d)
        return d

    def warning(self, phase: str, message: str, line: int, column: int) -> Diagnostic:
        d = Diagnostic(phase, message, line, column, SEVERITY_WARNING)
        self.items.append(d)
        return d

    def extend(self, other: Diagnostics) -> None:
        self.items.extend(other.items)

    def for_phase(self, phase: str) -> list[Diagnostic]:
        return [d for d in self.items if d.phase == phase]

    def has_errors(self) -> bool:
        for d in self.items:
            if d.severity == SEVERITY_ERROR:
                return True
        return False

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class CompilerError:
    """A diagnostic annotated for display."""

    message: str
    line: int
    column: int
    severity: str
    context: str
    suggestions: list[str] = field(default_factory=list)
    phase: str = PHASE_INTERNAL


# ============================================================
# SUGGESTIONS
# ============================================================

SUGGESTION_PATTERNS: list[tuple[re.Pattern[str], list[str]]] = [
    (
        re.compile(r"unexpected token", re.IGNORECASE),
        [
            "Check for missing semicolons or braces",
            "Verify that all operators are valid",
            "Ensure proper syntax around the unexpected token",
        ],
    ),
    (
        re.compile(r"undefined variable|undeclared variable", re.IGNORECASE),
        [
            "Declare the variable before using it",
            "Check for typos in variable names",
            "Verify the variable is in scope where it's being used",
        ],
    ),
    (
        re.compile(r"type mismatch", re.IGNORECASE),
        [
            "Ensure variables are of compatible types",
            "Add explicit type conversion if needed",
            "Check the types of operands in expressions",
        ],
    ),
    (
        re.compile(r"missing (.+)", re.IGNORECASE | re.DOTALL),
        [
            "Add the missing element",
            "Check for proper nesting of code blocks",
            "Verify all required syntax elements are present",
        ],
    ),
]

GENERIC_SUGGESTIONS: list[str] = [
    "Review the syntax around the error location",
    "Check the language reference for correct usage",
    "Consider simplifying the code structure",
]


def suggestions_for(message: str) -> list[str]:
    """Advisory hints for a message; every matching pattern contributes."""
    out: list[str] = []
    for pattern, hints in SUGGESTION_PATTERNS:
        if pattern.search(message):
            out.extend(hints)
    if len(out) == 0:
        out = list(GENERIC_SUGGESTIONS)
    return out


def error_context(source: str, line: int, radius: int = DEFAULT_CONTEXT_LINES) -> str:
    """Source lines around `line` (1-based), clamped to the source bounds."""
    lines = source.split("\n")
    start = max(0, line - 1 - radius)
    end = min(len(lines), line + radius)
    return "\n".join(lines[start:end])


# ============================================================
# AGGREGATION
# ============================================================


def aggregate(
    diagnostics: Diagnostics | list[Diagnostic],
    source: str,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> list[CompilerError]:
    """Merge diagnostics from all stages into display-ready errors.

    Ordering is by (line, column); diagnostics at the same position keep
    the order in which the stages reported them.
    """
    items = diagnostics.items if isinstance(diagnostics, Diagnostics) else diagnostics
    ordered = sorted(items, key=lambda d: (d.line, d.column))
    return [
        CompilerError(
            message=d.message,
            line=d.line,
            column=d.column,
            severity=d.severity,
            context=error_context(source, d.line, context_lines),
            suggestions=suggestions_for(d.message),
            phase=d.phase,
        )
        for d in ordered
    ]


_LINE_RE = re.compile(r"line (\d+)", re.IGNORECASE)
_COLUMN_RE = re.compile(r"column (\d+)", re.IGNORECASE)


def position_from_message(message: str) -> tuple[int, int]:
    """Recover (line, column) from legacy free-text error messages."""
    line_match = _LINE_RE.search(message)
    col_match = _COLUMN_RE.search(message)
    line = int(line_match.group(1)) if line_match else 1
    col = int(col_match.group(1)) if col_match else 1
    return line, col


def fault_error(
    source: str,
    exc: BaseException,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> CompilerError:
    """Synthesize the single error reported for an unrecoverable fault."""
    line = getattr(exc, "line", None)
    col = getattr(exc, "col", None)
    message = getattr(exc, "msg", None)
    if message is None:
        message = str(exc) or type(exc).__name__
    if not isinstance(line, int) or not isinstance(col, int):
        line, col = position_from_message(str(exc))
    return CompilerError(
        message=message,
        line=line,
        column=col,
        severity=SEVERITY_ERROR,
        context=error_context(source, line, context_lines),
        suggestions=suggestions_for(message),
        phase=getattr(exc, "phase", PHASE_INTERNAL),
    )
