"""Tests for error aggregation, context snippets and suggestions."""

from flowc.diagnostics import (
    GENERIC_SUGGESTIONS,
    Diagnostic,
    Diagnostics,
    InternalFault,
    aggregate,
    error_context,
    fault_error,
    position_from_message,
    suggestions_for,
)

SOURCE = "a\nb\nc\nd\ne\nf"


def test_unexpected_token_suggestions():
    hints = suggestions_for("unexpected token ';'")
    assert hints[0] == "Check for missing semicolons or braces"
    assert len(hints) == 3


def test_undeclared_suggestions():
    assert suggestions_for("undeclared variable 'x'")[0] == "Declare the variable before using it"
    assert suggestions_for("Undefined variable y")[0] == "Declare the variable before using it"


def test_type_mismatch_suggestions():
    assert suggestions_for("type mismatch: cannot assign string to number")[0] == (
        "Ensure variables are of compatible types"
    )


def test_missing_element_suggestions():
    hints = suggestions_for("missing '}' to close block opened at line 1")
    assert hints == [
        "Add the missing element",
        "Check for proper nesting of code blocks",
        "Verify all required syntax elements are present",
    ]


def test_every_matching_pattern_contributes():
    hints = suggestions_for("type mismatch: missing operand")
    assert len(hints) == 6
    assert hints[0] == "Ensure variables are of compatible types"
    assert hints[3] == "Add the missing element"


def test_generic_suggestions_for_unmatched_messages():
    assert suggestions_for("cannot assign to constant 'c'") == GENERIC_SUGGESTIONS
    assert len(GENERIC_SUGGESTIONS) == 3


def test_context_is_two_lines_each_side():
    assert error_context(SOURCE, 4) == "b\nc\nd\ne\nf"
    assert error_context(SOURCE, 3) == "a\nb\nc\nd\ne"


def test_context_is_clamped():
    assert error_context(SOURCE, 1) == "a\nb\nc"
    assert error_context(SOURCE, 6) == "d\ne\nf"
    assert error_context(SOURCE, 2, radius=0) == "b"


def test_aggregate_orders_by_line_then_column():
    sink = Diagnostics()
    sink.error("semantic", "undeclared variable 'z'", 3, 1)
    sink.error("syntax", "unexpected token ')'", 1, 5)
    sink.warning("semantic", "unreachable code after return statement", 1, 2)
    errors = aggregate(sink, SOURCE)
    assert [(e.line, e.column) for e in errors] == [(1, 2), (1, 5), (3, 1)]
    assert errors[0].severity == "warning"
    assert errors[1].phase == "syntax"
    assert errors[2].context == "a\nb\nc\nd\ne"
    assert errors[2].suggestions[0] == "Declare the variable before using it"


def test_aggregate_keeps_stage_order_for_ties():
    items = [
        Diagnostic("lex", "first", 2, 2),
        Diagnostic("semantic", "second", 2, 2),
    ]
    assert [e.message for e in aggregate(items, SOURCE)] == ["first", "second"]


def test_aggregate_empty():
    assert aggregate(Diagnostics(), "") == []


def test_sink_helpers():
    sink = Diagnostics()
    sink.warning("semantic", "w", 1, 1)
    assert not sink.has_errors()
    sink.error("lex", "e", 1, 1)
    assert sink.has_errors()
    assert [d.message for d in sink.for_phase("lex")] == ["e"]
    other = Diagnostics()
    other.extend(sink)
    assert len(other) == 2


def test_position_from_message():
    assert position_from_message("boom at line 7 column 3") == (7, 3)
    assert position_from_message("boom at line 5") == (5, 1)
    assert position_from_message("no position here") == (1, 1)


def test_fault_error_uses_structured_position():
    err = fault_error(SOURCE, InternalFault("dangling handle", 2, 4))
    assert err.message == "dangling handle"
    assert (err.line, err.column) == (2, 4)
    assert err.phase == "internal"
    assert err.severity == "error"
    assert err.context == "a\nb\nc\nd"


def test_fault_error_falls_back_to_message_text():
    err = fault_error(SOURCE, RuntimeError("bad state at line 3 column 9"))
    assert err.message == "bad state at line 3 column 9"
    assert (err.line, err.column) == (3, 9)
    assert len(err.suggestions) == 3


def test_fault_error_defaults_to_first_line():
    err = fault_error(SOURCE, ValueError())
    assert (err.line, err.column) == (1, 1)
    assert err.message == "ValueError"
