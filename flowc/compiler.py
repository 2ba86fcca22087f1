"""Flowc orchestrator: run every analysis phase over one source snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from .complexity import ComplexityInfo, estimate
from .controlflow import ControlFlowTree, build_control_flow
from .diagnostics import (
    DEFAULT_CONTEXT_LINES,
    PHASE_LEX,
    PHASE_SYNTAX,
    CompilerError,
    Diagnostics,
    InternalFault,
    aggregate,
    fault_error,
)
from .parse import ParseError, parse
from .semantic import Scope, analyze
from .tokens import LexError, Token, tokenize
from .tree import ParseTree

logger = logging.getLogger(__name__)

PHASES: list[str] = [
    "lex",
    "parse",
    "semantic",
    "controlflow",
    "complexity",
]


@dataclass(frozen=True)
class CompileOptions:
    """Knobs for one compilation.

    recover: collect lex and syntax errors and keep going; when False the
        first one aborts the run through the fault path.
    context_lines: source lines shown on each side of an error.
    stop_at: last phase to run; later structures are left empty.
    keep_trivia: include comment tokens in the token list.
    """

    recover: bool = True
    context_lines: int = DEFAULT_CONTEXT_LINES
    stop_at: str | None = None
    keep_trivia: bool = False

    def __post_init__(self) -> None:
        if self.stop_at is not None and self.stop_at not in PHASES:
            raise ValueError(
                "unknown phase '" + self.stop_at + "', expected one of " + ", ".join(PHASES)
            )
        if self.context_lines < 0:
            raise ValueError("context_lines must be non-negative")


@dataclass
class CompilationResult:
    tokens: list[Token] = field(default_factory=list)
    parse_tree: ParseTree | None = None
    scopes: list[Scope] = field(default_factory=list)
    control_flow: ControlFlowTree | None = None
    complexity: ComplexityInfo | None = None
    errors: list[CompilerError] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        from .serialize import to_dict

        return to_dict(self)


def extract_pragmas(source: str) -> set[str]:
    """Scan leading comment lines for `// pragma NAME`. Returns the names."""
    found: set[str] = set()
    for line in source.split("\n"):
        stripped = line.strip()
        if stripped == "":
            continue
        if not stripped.startswith("//"):
            break
        body = stripped[2:].strip()
        if body.startswith("pragma "):
            found.add(body[len("pragma ") :].strip())
    return found


def _stopped(options: CompileOptions, phase: str) -> bool:
    return options.stop_at == phase


def _run(source: str, options: CompileOptions, diagnostics: Diagnostics) -> CompilationResult:
    result = CompilationResult()

    sink = diagnostics if options.recover else None
    result.tokens = tokenize(source, sink, options.keep_trivia)
    logger.debug(
        "lex: %d tokens, %d errors",
        len(result.tokens),
        len(diagnostics.for_phase(PHASE_LEX)),
    )
    if _stopped(options, "lex"):
        return result

    result.parse_tree = parse(result.tokens, sink, recover=options.recover)
    logger.debug(
        "parse: %d nodes, %d errors",
        len(result.parse_tree),
        len(diagnostics.for_phase(PHASE_SYNTAX)),
    )
    if _stopped(options, "parse"):
        return result

    result.scopes, semantic_errors = analyze(result.parse_tree, diagnostics)
    logger.debug(
        "semantic: %d scopes, %d diagnostics", len(result.scopes), len(semantic_errors)
    )
    if _stopped(options, "semantic"):
        return result

    result.control_flow = build_control_flow(result.parse_tree)
    logger.debug("controlflow: %d nodes", len(result.control_flow))
    if _stopped(options, "controlflow"):
        return result

    result.complexity = estimate(result.control_flow)
    logger.debug(
        "complexity: cyclomatic=%d time=%s space=%s",
        result.complexity.cyclomatic_complexity,
        result.complexity.time_complexity,
        result.complexity.space_complexity,
    )
    return result


def _faulted(source: str, exc: BaseException, options: CompileOptions) -> CompilationResult:
    """Null structures plus the single error synthesized from the fault."""
    return CompilationResult(errors=[fault_error(source, exc, options.context_lines)])


def compile(source: str, options: CompileOptions | None = None) -> CompilationResult:
    """Compile a source snapshot into tokens, trees, scopes, complexity and errors.

    Lex, syntax and semantic problems are collected and reported together
    alongside best-effort structures. An unrecoverable fault stops the
    pipeline: the result then carries no structures and exactly one error.
    """
    if options is None:
        options = CompileOptions()
    if "fail-fast" in extract_pragmas(source):
        options = replace(options, recover=False)
    diagnostics = Diagnostics()
    try:
        result = _run(source, options, diagnostics)
    except (LexError, ParseError, InternalFault) as e:
        logger.warning("compilation aborted: %s", e)
        return _faulted(source, e, options)
    except Exception as e:
        logger.warning("compilation aborted by unexpected error", exc_info=True)
        return _faulted(source, e, options)
    result.errors = aggregate(diagnostics, source, options.context_lines)
    if diagnostics.has_errors():
        logger.info("compile: %d diagnostics, with errors", len(result.errors))
    else:
        logger.debug("compile: %d diagnostics", len(result.errors))
    return result
