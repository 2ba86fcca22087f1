"""Flowc tokenizer: lexes source into a flat token list."""

from __future__ import annotations

from dataclasses import dataclass

from .diagnostics import PHASE_LEX, Diagnostics


# Token kind constants
TK_KEYWORD = "keyword"
TK_IDENT = "identifier"
TK_LITERAL = "literal"
TK_OP = "operator"
TK_PUNCT = "punctuation"
TK_COMMENT = "comment"
TK_EOF = "eof"

KEYWORDS: set[str] = {
    "bool",
    "boolean",
    "break",
    "const",
    "continue",
    "double",
    "else",
    "float",
    "for",
    "function",
    "if",
    "int",
    "let",
    "number",
    "return",
    "string",
    "var",
    "void",
    "while",
}

LITERAL_WORDS: set[str] = {"true", "false", "null"}

# Multi-character operators, sorted by length descending for greedy matching
MULTI_OPS: list[str] = [
    "&&",
    "||",
    "<=",
    ">=",
    "==",
    "!=",
    "++",
    "--",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
]

SINGLE_OPS: set[str] = {"+", "-", "*", "/", "%", "<", ">", "=", "!"}

PUNCTUATION: set[str] = {"(", ")", "{", "}", "[", "]", ";", ",", "."}


class LexError(Exception):
    """Error during tokenization."""

    phase = PHASE_LEX

    def __init__(self, msg: str, line: int, col: int):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " column " + str(col))


@dataclass(frozen=True)
class Token:
    """A token with kind, exact source text, and 1-based position."""

    kind: str
    lexeme: str
    line: int
    column: int


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_" or c == "$"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


class _Scanner:
    """Cursor over the source that keeps line and column in step."""

    def __init__(self, source: str, diagnostics: Diagnostics | None, keep_trivia: bool):
        self.source: str = source
        self.diagnostics: Diagnostics | None = diagnostics
        self.keep_trivia: bool = keep_trivia
        self.tokens: list[Token] = []
        self.pos: int = 0
        self.line: int = 1
        self.col: int = 1

    def at_end(self) -> bool:
        return self.pos >= len(self.source)

    def peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        if idx >= len(self.source):
            return ""
        return self.source[idx]

    def bump(self) -> str:
        c = self.source[self.pos]
        self.pos += 1
        if c == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return c

    def emit(self, kind: str, start: int, line: int, col: int) -> None:
        self.tokens.append(Token(kind, self.source[start : self.pos], line, col))

    def fail(self, msg: str, line: int, col: int) -> None:
        """Raise, or record and carry on when a sink is attached."""
        if self.diagnostics is None:
            raise LexError(msg, line, col)
        self.diagnostics.error(PHASE_LEX, msg, line, col)

    # ── Token classes ────────────────────────────────────────

    def line_comment(self, start: int, line: int, col: int) -> None:
        while not self.at_end() and self.peek() != "\n":
            self.bump()
        if self.keep_trivia:
            self.emit(TK_COMMENT, start, line, col)

    def block_comment(self, start: int, line: int, col: int) -> None:
        self.bump()
        self.bump()
        while not self.at_end():
            if self.peek() == "*" and self.peek(1) == "/":
                self.bump()
                self.bump()
                if self.keep_trivia:
                    self.emit(TK_COMMENT, start, line, col)
                return
            self.bump()
        self.fail("unterminated block comment", line, col)
        if self.keep_trivia:
            self.emit(TK_COMMENT, start, line, col)

    def string(self, start: int, line: int, col: int) -> None:
        quote = self.bump()
        while not self.at_end():
            c = self.peek()
            if c == "\n":
                break
            if c == "\\":
                self.bump()
                if self.at_end() or self.peek() == "\n":
                    break
                self.bump()
                continue
            self.bump()
            if c == quote:
                self.emit(TK_LITERAL, start, line, col)
                return
        self.fail("unterminated string literal", line, col)
        self.emit(TK_LITERAL, start, line, col)

    def number(self, start: int, line: int, col: int) -> None:
        while _is_digit(self.peek()):
            self.bump()
        if self.peek() == "." and _is_digit(self.peek(1)):
            self.bump()
            while _is_digit(self.peek()):
                self.bump()
        if self.peek() == "e" or self.peek() == "E":
            nxt = self.peek(1)
            if _is_digit(nxt) or ((nxt == "+" or nxt == "-") and _is_digit(self.peek(2))):
                self.bump()
                if not _is_digit(self.peek()):
                    self.bump()
                while _is_digit(self.peek()):
                    self.bump()
        if _is_alpha(self.peek()):
            while _is_alnum(self.peek()):
                self.bump()
            self.fail(
                "malformed number '" + self.source[start : self.pos] + "'", line, col
            )
        self.emit(TK_LITERAL, start, line, col)

    def word(self, start: int, line: int, col: int) -> None:
        while _is_alnum(self.peek()):
            self.bump()
        text = self.source[start : self.pos]
        if text in KEYWORDS:
            self.emit(TK_KEYWORD, start, line, col)
        elif text in LITERAL_WORDS:
            self.emit(TK_LITERAL, start, line, col)
        else:
            self.emit(TK_IDENT, start, line, col)

    def scan(self) -> list[Token]:
        while not self.at_end():
            c = self.peek()

            # Whitespace and newlines
            if c == " " or c == "\t" or c == "\r" or c == "\n":
                self.bump()
                continue

            start = self.pos
            line = self.line
            col = self.col

            if c == "/" and self.peek(1) == "/":
                self.line_comment(start, line, col)
                continue
            if c == "/" and self.peek(1) == "*":
                self.block_comment(start, line, col)
                continue
            if c == '"' or c == "'":
                self.string(start, line, col)
                continue
            if _is_digit(c) or (c == "." and _is_digit(self.peek(1))):
                self.number(start, line, col)
                continue
            if _is_alpha(c):
                self.word(start, line, col)
                continue

            matched = False
            for op in MULTI_OPS:
                if self.source.startswith(op, self.pos):
                    for _ in op:
                        self.bump()
                    self.emit(TK_OP, start, line, col)
                    matched = True
                    break
            if matched:
                continue

            if c in SINGLE_OPS:
                self.bump()
                self.emit(TK_OP, start, line, col)
                continue
            if c in PUNCTUATION:
                self.bump()
                self.emit(TK_PUNCT, start, line, col)
                continue

            self.bump()
            self.fail("unexpected character " + repr(c), line, col)
        return self.tokens


def tokenize(
    source: str,
    diagnostics: Diagnostics | None = None,
    keep_trivia: bool = False,
) -> list[Token]:
    """Tokenize source into a flat list of tokens.

    Whitespace and comments are trivia and are dropped unless
    `keep_trivia` is set. Without a diagnostics sink the first lexical
    fault raises `LexError`; with one, the fault is recorded and
    scanning resumes after it.
    """
    return _Scanner(source, diagnostics, keep_trivia).scan()


def eof_token(tokens: list[Token]) -> Token:
    """Sentinel positioned just past the last token."""
    if len(tokens) == 0:
        return Token(TK_EOF, "", 1, 1)
    last = tokens[-1]
    newlines = last.lexeme.count("\n")
    if newlines > 0:
        tail = last.lexeme[last.lexeme.rfind("\n") + 1 :]
        return Token(TK_EOF, "", last.line + newlines, len(tail) + 1)
    return Token(TK_EOF, "", last.line, last.column + len(last.lexeme))
