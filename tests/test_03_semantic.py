"""Tests for scope building and semantic diagnostics."""

import pytest

from flowc.diagnostics import Diagnostics, InternalFault
from flowc.parse import parse
from flowc.semantic import analyze
from flowc.tokens import tokenize


def _run(source: str):
    """Parse and analyze. Returns (scopes, diagnostics)."""
    tree = parse(tokenize(source), Diagnostics())
    return analyze(tree)


def _messages(source: str) -> list[str]:
    _, errors = _run(source)
    return [e.message for e in errors]


def test_clean_program():
    assert _messages("let x = 1;\nx = x + 2;\nprint(x);") == []


def test_undeclared_variable():
    _, errors = _run("let a = 1;\nb = a;")
    assert [e.message for e in errors] == ["undeclared variable 'b'"]
    assert (errors[0].line, errors[0].column) == (2, 1)
    assert errors[0].phase == "semantic"


def test_redeclaration_same_scope():
    assert _messages("let x = 1;\nlet x = 2;") == ["redeclaration of 'x' in the same scope"]


def test_shadowing_in_inner_scope_is_allowed():
    assert _messages("let x = 1;\n{ let x = 2; }") == []


def test_duplicate_parameter():
    assert _messages("function f(a, a) { }") == ["redeclaration of 'a' in the same scope"]


def test_type_mismatch_on_initializer():
    assert _messages('int n = "a";') == ["type mismatch: cannot initialize number 'n' with string"]


def test_type_mismatch_on_operator():
    msgs = _messages('let s = "a";\nlet n = 1;\nlet r = s - n;')
    assert msgs == ["type mismatch: cannot apply '-' to string and number"]


def test_type_mismatch_on_assignment():
    assert _messages('let n = 1;\nn = "x";') == ["type mismatch: cannot assign string to number"]


def test_string_concatenation_accepts_numbers():
    assert _messages('let s = "a" + 1;\nlet t = 2 + s;') == []


def test_boolean_arithmetic_mismatch():
    assert _messages("let b = true + 1;") == ["type mismatch: cannot apply '+' to boolean and number"]


def test_unknown_types_never_mismatch():
    source = "function f(a) { return a - 1; }\nlet x = f(2) + 1;\nlet y = f(3) == true;"
    assert _messages(source) == []


def test_return_type_mismatch():
    assert _messages('int f() { return "s"; }') == [
        "type mismatch: function 'f' returns number, got string"
    ]


def test_unreachable_after_return_is_warning():
    _, errors = _run("function f() {\n  return 1;\n  let x = 2;\n  let y = 3;\n}")
    assert len(errors) == 1
    assert errors[0].severity == "warning"
    assert errors[0].message == "unreachable code after return statement"
    assert errors[0].line == 3


def test_unreachable_after_break():
    _, errors = _run("while (true) {\n  break;\n  let z = 1;\n}")
    assert [(e.message, e.severity) for e in errors] == [
        ("unreachable code after break statement", "warning")
    ]


def test_assign_to_constant():
    assert _messages("const c = 1;\nc = 2;") == ["cannot assign to constant 'c'"]
    assert _messages("const c = 1;\nc++;") == ["cannot assign to constant 'c'"]


def test_break_outside_loop():
    assert _messages("break;") == ["'break' outside of loop"]
    assert _messages("continue;") == ["'continue' outside of loop"]
    assert _messages("function f() { while (true) { break; } }") == []


def test_loop_flag_resets_inside_function():
    assert _messages("while (true) { function g() { break; } }") == ["'break' outside of loop"]


def test_functions_are_hoisted():
    assert _messages("f();\nfunction f() { }") == []


def test_builtins_resolve():
    assert _messages('print(len("abc"));\nlet s = input();') == []


def test_for_condition_uses_outer_names():
    assert _messages("for (let i = 0; i < n; i++) { }") == ["undeclared variable 'n'"]


def test_scope_tree_mirrors_nesting():
    scopes, _ = _run("function f(p) {\n  if (p) {\n    let y = 1;\n  }\n}")
    assert [(s.kind, s.depth) for s in scopes] == [("global", 0), ("function", 1), ("block", 2)]
    assert scopes[0].parent is None
    assert scopes[1].parent == scopes[0].id
    assert scopes[2].parent == scopes[1].id
    assert list(scopes[0].symbols) == ["f"]
    assert list(scopes[1].symbols) == ["p"]
    assert scopes[2].symbols["y"].type == "number"


def test_scope_depth_equals_block_nesting():
    scopes, _ = _run("{\n  {\n    {\n      let deep = 1;\n    }\n  }\n}")
    assert max(s.depth for s in scopes) == 3


def test_for_init_shares_loop_scope():
    scopes, _ = _run("for (let i = 0; i < 3; i++) {\n  let y = i;\n}")
    assert [s.kind for s in scopes] == ["global", "loop"]
    assert list(scopes[1].symbols) == ["i", "y"]


def test_symbol_records_declaration_line():
    scopes, _ = _run("let a = 1;\n\nstring b = 'x';")
    b = scopes[0].symbols["b"]
    assert (b.type, b.line) == ("string", 3)


def test_errors_in_source_order():
    _, errors = _run("function f() {\n  return x;\n}\nlet a = y;")
    assert [(e.line, e.message) for e in errors] == [
        (2, "undeclared variable 'x'"),
        (4, "undeclared variable 'y'"),
    ]


def test_sink_receives_diagnostics():
    tree = parse(tokenize("x = 1;"), Diagnostics())
    sink = Diagnostics()
    analyze(tree, sink)
    assert [d.message for d in sink.items] == ["undeclared variable 'x'"]


def test_missing_tree_is_internal_fault():
    with pytest.raises(InternalFault):
        analyze(None)
