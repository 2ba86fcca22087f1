"""Tokenizer tests."""

import pytest

from flowc.diagnostics import Diagnostics
from flowc.tokens import (
    TK_COMMENT,
    TK_EOF,
    TK_IDENT,
    TK_KEYWORD,
    TK_LITERAL,
    TK_OP,
    TK_PUNCT,
    LexError,
    eof_token,
    tokenize,
)


def _lexemes(source: str) -> list[str]:
    return [t.lexeme for t in tokenize(source)]


def test_declaration_kinds_and_positions():
    tokens = tokenize("let x = 42;")
    assert [t.kind for t in tokens] == [TK_KEYWORD, TK_IDENT, TK_OP, TK_LITERAL, TK_PUNCT]
    assert [(t.line, t.column) for t in tokens] == [(1, 1), (1, 5), (1, 7), (1, 9), (1, 11)]


def test_positions_across_lines():
    tokens = tokenize("a\n  b\n\tc")
    assert [(t.lexeme, t.line, t.column) for t in tokens] == [
        ("a", 1, 1),
        ("b", 2, 3),
        ("c", 3, 2),
    ]


def test_greedy_operators():
    assert _lexemes("a<=b&&c||d!=e") == ["a", "<=", "b", "&&", "c", "||", "d", "!=", "e"]
    assert _lexemes("i++ + --j") == ["i", "++", "+", "--", "j"]
    assert _lexemes("x+=1") == ["x", "+=", "1"]


def test_literals():
    tokens = tokenize("3.14 1e5 .5 true null 'a' \"b\"")
    assert all(t.kind == TK_LITERAL for t in tokens)
    assert [t.lexeme for t in tokens] == ["3.14", "1e5", ".5", "true", "null", "'a'", '"b"']


def test_keywords_are_not_identifiers():
    tokens = tokenize("for while function int boolean lettuce")
    assert [t.kind for t in tokens] == [TK_KEYWORD] * 5 + [TK_IDENT]


def test_string_keeps_quotes_and_escapes():
    tokens = tokenize('s = "a\\"b";')
    assert tokens[2].lexeme == '"a\\"b"'


def test_comments_are_trivia():
    assert _lexemes("a // note\nb /* x\ny */ c") == ["a", "b", "c"]


def test_keep_trivia_emits_comments():
    tokens = tokenize("a // note\nb", keep_trivia=True)
    assert [t.kind for t in tokens] == [TK_IDENT, TK_COMMENT, TK_IDENT]
    assert tokens[1].lexeme == "// note"


def test_lexemes_cover_source_modulo_whitespace():
    source = "function f(a, b) {\n  return a * (b + 1);\n}\nlet s = \"xy\";\n"
    assert "".join(_lexemes(source)) == "".join(source.split())


def test_unterminated_string_raises():
    with pytest.raises(LexError) as info:
        tokenize('let s = "abc;\nlet t = 1;')
    assert info.value.msg == "unterminated string literal"
    assert (info.value.line, info.value.col) == (1, 9)
    assert "line 1 column 9" in str(info.value)


def test_unterminated_string_recovers_with_sink():
    sink = Diagnostics()
    tokens = tokenize('let s = "abc;\nlet t = 1;', sink)
    assert len(sink) == 1
    assert sink.items[0].phase == "lex"
    assert tokens[3].lexeme == '"abc;'
    assert [t.lexeme for t in tokens[4:]] == ["let", "t", "=", "1", ";"]


def test_unexpected_character():
    with pytest.raises(LexError) as info:
        tokenize("a @ b")
    assert "unexpected character" in info.value.msg
    sink = Diagnostics()
    assert [t.lexeme for t in tokenize("a @ b", sink)] == ["a", "b"]
    assert sink.items[0].column == 3


def test_unterminated_block_comment():
    with pytest.raises(LexError):
        tokenize("x /* never closed")
    sink = Diagnostics()
    assert [t.lexeme for t in tokenize("x /* never closed", sink)] == ["x"]
    assert len(sink) == 1


def test_malformed_number():
    sink = Diagnostics()
    tokens = tokenize("12abc", sink)
    assert [t.lexeme for t in tokens] == ["12abc"]
    assert "malformed number" in sink.items[0].message


def test_eof_token_position():
    assert eof_token([]).kind == TK_EOF
    eof = eof_token(tokenize("ab cd"))
    assert (eof.line, eof.column) == (1, 6)
    eof = eof_token(tokenize("x /* a\nbc */", keep_trivia=True))
    assert (eof.line, eof.column) == (2, 6)
