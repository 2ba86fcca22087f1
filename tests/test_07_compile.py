"""End-to-end tests for the compile pipeline."""

import logging

import pytest

import flowc.compiler as compiler_mod
from flowc import CompileOptions, InternalFault, compile, to_dict
from flowc.compiler import extract_pragmas

UNCLOSED = "function f() {\n  let x = 1;\n"

PROGRAM = """// sums and squares
function square(n) {
    return n * n;
}

let total = 0;
for (let i = 0; i < 10; i++) {
    if (i % 2 == 0) {
        total += square(i);
    }
}
print(total);
"""


def test_errors_never_missing():
    result = compile("")
    assert result.errors == []
    assert result.parse_tree is not None
    assert result.control_flow is not None


def test_clean_program():
    result = compile(PROGRAM)
    assert result.errors == []
    assert result.parse_tree is not None
    assert len(result.scopes) > 0
    assert result.complexity is not None
    assert result.complexity.cyclomatic_complexity == 3
    assert result.complexity.time_complexity == "O(n)"
    assert result.complexity.space_complexity == "O(1)"


def test_for_loop_end_to_end():
    result = compile("for(i=0;i<n;i++){x=x+1;}")
    tree = result.parse_tree
    loop = tree.get(tree.root_node.statements[0])
    assert [tree.get(c).kind for c in loop.children] == [
        "FOR_INIT",
        "FOR_CONDITION",
        "FOR_INCREMENT",
        "FOR_BODY",
    ]
    assert result.complexity.time_complexity == "O(n)"
    # undeclared i, n and x are semantic errors but analysis continues
    assert all(e.phase == "semantic" for e in result.errors)


def test_nested_for_loop_end_to_end():
    result = compile("for(i=0;i<n;i++){for(j=0;j<n;j++){x=x+1;}}")
    assert result.complexity.time_complexity == "O(n^2)"


def test_unclosed_block_recovers():
    result = compile(UNCLOSED)
    assert len(result.errors) == 1
    err = result.errors[0]
    assert err.phase == "syntax"
    assert "missing '}'" in err.message
    assert len(err.suggestions) > 0
    assert result.parse_tree is not None
    assert result.control_flow is not None
    assert result.complexity is not None


def test_unclosed_block_fail_fast_pragma():
    result = compile("// pragma fail-fast\n" + UNCLOSED)
    assert result.parse_tree is None
    assert result.control_flow is None
    assert result.complexity is None
    assert result.tokens == []
    assert result.scopes == []
    assert len(result.errors) == 1
    err = result.errors[0]
    assert "missing '}'" in err.message
    assert err.line == 3
    assert len(err.suggestions) > 0


def test_fail_fast_option():
    result = compile(UNCLOSED, CompileOptions(recover=False))
    assert result.parse_tree is None
    assert len(result.errors) == 1
    assert result.errors[0].phase == "syntax"


def test_fail_fast_lex_error():
    result = compile('let s = "abc;\n', CompileOptions(recover=False))
    assert result.parse_tree is None
    assert [(e.phase, e.line, e.column) for e in result.errors] == [("lex", 1, 9)]


def test_internal_fault_aborts(monkeypatch):
    def broken(tree):
        raise InternalFault("flow invariant broken", 2, 5)

    monkeypatch.setattr(compiler_mod, "build_control_flow", broken)
    result = compile("let a = 1;\nlet b = a;\n")
    assert result.parse_tree is None
    assert result.control_flow is None
    assert result.complexity is None
    assert len(result.errors) == 1
    err = result.errors[0]
    assert err.message == "flow invariant broken"
    assert (err.line, err.column) == (2, 5)
    assert err.phase == "internal"


def test_unexpected_exception_uses_message_position(monkeypatch, caplog):
    def broken(flow):
        raise RuntimeError("estimator blew up at line 4 column 2")

    monkeypatch.setattr(compiler_mod, "estimate", broken)
    with caplog.at_level(logging.WARNING, logger="flowc.compiler"):
        result = compile("let a = 1;")
    assert result.parse_tree is None
    assert [(e.line, e.column) for e in result.errors] == [(4, 2)]
    assert any(r.levelno == logging.WARNING for r in caplog.records)


def test_recoverable_lex_error_keeps_structures():
    result = compile('let s = "abc;\nlet t = 1;')
    assert result.parse_tree is not None
    assert "lex" in [e.phase for e in result.errors]


def test_errors_sorted_across_phases():
    result = compile("let a = b;\nlet = 1;\n")
    assert [(e.line, e.phase) for e in result.errors] == [(1, "semantic"), (2, "syntax")]


def test_context_lines_option():
    result = compile("let a = 1;\nlet b = 2;\nc = 3;", CompileOptions(context_lines=0))
    assert result.errors[0].context == "c = 3;"


def test_stop_at_parse():
    result = compile(PROGRAM, CompileOptions(stop_at="parse"))
    assert result.parse_tree is not None
    assert result.scopes == []
    assert result.control_flow is None
    assert result.complexity is None


def test_stop_at_lex():
    result = compile("let a = 1;", CompileOptions(stop_at="lex"))
    assert len(result.tokens) == 5
    assert result.parse_tree is None


def test_unknown_stop_phase():
    with pytest.raises(ValueError):
        CompileOptions(stop_at="codegen")


def test_keep_trivia():
    result = compile("// hi\nlet x = 1;", CompileOptions(keep_trivia=True))
    assert result.tokens[0].kind == "comment"
    assert result.errors == []


def test_extract_pragmas():
    assert extract_pragmas("// pragma fail-fast\n\n// other\nlet a;") == {"fail-fast"}
    assert extract_pragmas("let a;\n// pragma fail-fast") == set()


def test_scope_depth_matches_nesting():
    result = compile("{\n  {\n    let x = 1;\n  }\n}")
    assert max(s.depth for s in result.scopes) == 2


def test_compile_is_deterministic():
    assert to_dict(compile(PROGRAM)) == to_dict(compile(PROGRAM))
    assert to_dict(compile(UNCLOSED)) == to_dict(compile(UNCLOSED))


def test_to_dict_shape():
    data = compile(PROGRAM).to_dict()
    assert list(data) == ["tokens", "parseTree", "scopes", "controlFlow", "complexity", "errors"]
    assert data["parseTree"]["type"] == "PROGRAM"
    assert data["controlFlow"]["type"] == "ENTRY"
    assert data["complexity"]["cyclomaticComplexity"] == 3
    assert data["complexity"]["timeComplexity"] == "O(n)"
    assert data["complexity"]["spaceComplexity"] == "O(1)"
    assert data["tokens"][0] == {"kind": "keyword", "lexeme": "function", "line": 2, "column": 1}


def test_to_dict_loop_back():
    data = compile("while (true) { }").to_dict()
    loop = data["controlFlow"]["children"][0]
    assert loop["type"] == "WHILE"
    assert loop["loopBack"]["type"] == "LOOP_BACK"
    assert loop["loopBack"]["target"] == loop["id"]


def test_to_dict_after_fault():
    data = compile("// pragma fail-fast\n" + UNCLOSED).to_dict()
    assert data["parseTree"] is None
    assert data["controlFlow"] is None
    assert data["complexity"] is None
    assert len(data["errors"]) == 1


def test_phases_are_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="flowc.compiler"):
        compile("let a = 1;")
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("lex:") for m in messages)
    assert any(m.startswith("complexity:") for m in messages)


def test_phase_logs_count_errors(caplog):
    with caplog.at_level(logging.DEBUG, logger="flowc.compiler"):
        compile("let a = 1 @;\nlet b = ;")
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("lex:") and m.endswith(", 1 errors") for m in messages)
    assert any(m.startswith("parse:") and not m.endswith(", 0 errors") for m in messages)
    assert any(r.levelno == logging.INFO and "with errors" in r.getMessage() for r in caplog.records)
