"""Flowc parser: recursive descent, one method per grammar production."""

from __future__ import annotations

from typing import Callable, TypeVar

from .diagnostics import PHASE_SYNTAX, Diagnostics
from .tokens import (
    TK_COMMENT,
    TK_EOF,
    TK_IDENT,
    TK_KEYWORD,
    TK_LITERAL,
    TK_OP,
    Token,
    eof_token,
)
from .tree import (
    ArrayNode,
    AssignNode,
    BinaryNode,
    BlockNode,
    BreakNode,
    CallNode,
    ContinueNode,
    EmptyNode,
    ErrorNode,
    ExprStmtNode,
    ForBodyNode,
    ForConditionNode,
    ForIncrementNode,
    ForInitNode,
    ForNode,
    ForSectionNode,
    FunctionNode,
    IdentifierNode,
    IfNode,
    IndexNode,
    LiteralNode,
    MemberNode,
    Param,
    ParseTree,
    ProgramNode,
    ReturnNode,
    TokenNode,
    UnaryNode,
    UpdateNode,
    VarDeclNode,
    WhileNode,
    token_text,
)

ASSIGN_OPS: set[str] = {"=", "+=", "-=", "*=", "/=", "%="}

EQUALITY_OPS: set[str] = {"==", "!="}
COMPARE_OPS: set[str] = {"<", "<=", ">", ">="}
ADDITIVE_OPS: set[str] = {"+", "-"}
MULTIPLICATIVE_OPS: set[str] = {"*", "/", "%"}
UNARY_OPS: set[str] = {"!", "-", "+"}

DECL_KEYWORDS: set[str] = {"let", "var", "const"}

# Type keyword -> checked type
TYPE_NAMES: dict[str, str] = {
    "int": "number",
    "float": "number",
    "double": "number",
    "number": "number",
    "string": "string",
    "bool": "boolean",
    "boolean": "boolean",
    "void": "void",
}

ESCAPE_MAP: dict[str, str] = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "0": "\0",
}

S = TypeVar("S", bound=ForSectionNode)


class ParseError(Exception):
    """Parse error with location info."""

    phase = PHASE_SYNTAX

    def __init__(self, msg: str, line: int, col: int):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " column " + str(col))


class Parser:
    """Recursive descent parser with panic-mode recovery.

    With `recover` set, syntax errors are recorded in the diagnostics
    sink and parsing resumes at the next `;` or matching `}`. Without
    it the first error is raised.
    """

    def __init__(
        self,
        tokens: list[Token],
        tree: ParseTree | None = None,
        diagnostics: Diagnostics | None = None,
        recover: bool = True,
        eof: Token | None = None,
    ):
        end = eof if eof is not None else eof_token(tokens)
        # comment trivia never reaches the grammar
        self.tokens: list[Token] = [t for t in tokens if t.kind != TK_COMMENT]
        self.tokens.append(Token(TK_EOF, "", end.line, end.column))
        self.tree: ParseTree = tree if tree is not None else ParseTree()
        self.diagnostics: Diagnostics = (
            diagnostics if diagnostics is not None else Diagnostics()
        )
        self.recover: bool = recover
        self.pos: int = 0

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[len(self.tokens) - 1]
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != TK_EOF:
            self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.current()
        return tok.lexeme == value and tok.kind != TK_LITERAL

    def at_eof(self) -> bool:
        return self.current().kind == TK_EOF

    def at_ident(self) -> bool:
        return self.current().kind == TK_IDENT

    def expect(self, value: str) -> Token:
        if self.at(value):
            return self.advance()
        if self.at_eof():
            raise self.error("missing '" + value + "' at end of input")
        raise self.error(
            "unexpected token '" + self.current().lexeme + "', expected '" + value + "'"
        )

    def expect_ident(self) -> Token:
        if self.at_ident():
            return self.advance()
        if self.at_eof():
            raise self.error("missing identifier at end of input")
        raise self.error(
            "unexpected token '" + self.current().lexeme + "', expected identifier"
        )

    def error(self, msg: str) -> ParseError:
        tok = self.current()
        return ParseError(msg, tok.line, tok.column)

    def report(self, err: ParseError) -> None:
        """Record a recoverable error, or raise it in fail-fast mode."""
        if not self.recover:
            raise err
        self.diagnostics.error(PHASE_SYNTAX, err.msg, err.line, err.col)

    def text(self, start: int, end: int) -> str:
        values: list[str] = []
        for tok in self.tokens[start:end]:
            values.append(tok.lexeme)
        return token_text(values)

    def _end_of_previous(self) -> tuple[int, int]:
        if self.pos == 0:
            tok = self.current()
            return tok.line, tok.column
        prev = self.tokens[self.pos - 1]
        return prev.line, prev.column + len(prev.lexeme)

    # ── Top Level ────────────────────────────────────────────

    def parse_program(self) -> ParseTree:
        first = self.current()
        program = self.tree.new(ProgramNode, first.line, first.column)
        self.tree.root = program.id
        while not self.at_eof():
            if self.at("}"):
                tok = self.advance()
                self.report(ParseError("unexpected token '}'", tok.line, tok.column))
                continue
            program.statements.append(self.statement())
        return self.tree

    def statement(self) -> int:
        """Parse one statement, recovering from syntax errors inside it."""
        start = self.pos
        mark = len(self.tree)
        try:
            return self.parse_statement()
        except ParseError as e:
            if not self.recover:
                raise
            self.diagnostics.error(PHASE_SYNTAX, e.msg, e.line, e.col)
            self.tree.truncate(mark)
            self.synchronize()
            if self.pos == start and not self.at_eof() and not self.at("}"):
                self.advance()
            return self.tree.new(ErrorNode, e.line, e.col, message=e.msg).id

    def synchronize(self) -> None:
        """Skip to just past the next `;`, or to the `}` closing this block."""
        depth = 0
        while not self.at_eof():
            if self.at("{"):
                depth += 1
            elif self.at("}"):
                if depth == 0:
                    return
                depth -= 1
                if depth == 0:
                    self.advance()
                    return
            elif self.at(";") and depth == 0:
                self.advance()
                return
            self.advance()

    def terminate(self) -> None:
        """Consume the `;` ending a simple statement."""
        if self.at(";"):
            self.advance()
            return
        line, col = self._end_of_previous()
        self.report(ParseError("missing ';' after statement", line, col))

    # ── Statements ───────────────────────────────────────────

    def parse_statement(self) -> int:
        tok = self.current()
        v = tok.lexeme
        if self.at("{"):
            return self.parse_block()
        if self.at(";"):
            self.advance()
            return self.tree.new(EmptyNode, tok.line, tok.column).id
        if tok.kind == TK_KEYWORD:
            if v == "function" or (v in TYPE_NAMES and self._at_typed_function()):
                return self.parse_function()
            if v == "if":
                return self.parse_if()
            if v == "while":
                return self.parse_while()
            if v == "for":
                return self.parse_for()
            if v == "return":
                return self.parse_return()
            if v == "break" or v == "continue":
                self.advance()
                self.terminate()
                if v == "break":
                    return self.tree.new(BreakNode, tok.line, tok.column).id
                return self.tree.new(ContinueNode, tok.line, tok.column).id
        node = self.parse_simple()
        self.terminate()
        return node

    def _at_typed_function(self) -> bool:
        """TYPE ('[' ']')? IDENT '(' starts a function declaration."""
        i = 1
        if self.peek(1).lexeme == "[" and self.peek(2).lexeme == "]":
            i = 3
        return self.peek(i).kind == TK_IDENT and self.peek(i + 1).lexeme == "("

    def parse_block(self) -> int:
        open_tok = self.expect("{")
        block = self.tree.new(BlockNode, open_tok.line, open_tok.column)
        while not self.at("}"):
            if self.at_eof():
                self.report(
                    self.error(
                        "missing '}' to close block opened at line "
                        + str(open_tok.line)
                    )
                )
                return block.id
            block.statements.append(self.statement())
        self.advance()
        return block.id

    def parse_function(self) -> int:
        tok = self.advance()
        return_type = "any"
        if tok.lexeme != "function":
            return_type = self._type_suffix(TYPE_NAMES[tok.lexeme])
        name_tok = self.expect_ident()
        self.expect("(")
        params: list[Param] = []
        if not self.at(")"):
            params.append(self.parse_param())
            while self.at(","):
                self.advance()
                params.append(self.parse_param())
        self.expect(")")
        body = self.parse_block()
        return self.tree.new(
            FunctionNode,
            tok.line,
            tok.column,
            name=name_tok.lexeme,
            params=params,
            return_type=return_type,
            body=body,
        ).id

    def parse_param(self) -> Param:
        tok = self.current()
        declared = "any"
        if tok.kind == TK_KEYWORD and tok.lexeme in TYPE_NAMES and tok.lexeme != "void":
            self.advance()
            declared = self._type_suffix(TYPE_NAMES[tok.lexeme])
        name_tok = self.expect_ident()
        return Param(name_tok.lexeme, declared, name_tok.line, name_tok.column)

    def _type_suffix(self, base: str) -> str:
        """Optional `[]` after a type keyword makes it an array."""
        if self.at("["):
            self.advance()
            self.expect("]")
            return "array"
        return base

    def parse_var_decl(self) -> int:
        tok = self.advance()
        keyword = tok.lexeme
        declared = "any"
        if keyword in TYPE_NAMES:
            if keyword == "void":
                raise ParseError(
                    "unexpected token 'void', variables cannot be void",
                    tok.line,
                    tok.column,
                )
            declared = self._type_suffix(TYPE_NAMES[keyword])
        name_tok = self.expect_ident()
        init: int | None = None
        if self.at("="):
            self.advance()
            init = self.parse_expr()
        return self.tree.new(
            VarDeclNode,
            tok.line,
            tok.column,
            name=name_tok.lexeme,
            keyword=keyword,
            declared_type=declared,
            init=init,
        ).id

    def parse_if(self) -> int:
        tok = self.expect("if")
        self.expect("(")
        start = self.pos
        test = self.parse_expr()
        condition = self.text(start, self.pos)
        self.expect(")")
        then_branch = self.statement()
        else_branch: int | None = None
        if self.at("else"):
            self.advance()
            else_branch = self.statement()
        return self.tree.new(
            IfNode,
            tok.line,
            tok.column,
            condition=condition,
            test=test,
            then_branch=then_branch,
            else_branch=else_branch,
        ).id

    def parse_while(self) -> int:
        tok = self.expect("while")
        self.expect("(")
        start = self.pos
        test = self.parse_expr()
        condition = self.text(start, self.pos)
        self.expect(")")
        body = self.statement()
        return self.tree.new(
            WhileNode, tok.line, tok.column, condition=condition, test=test, body=body
        ).id

    def parse_return(self) -> int:
        tok = self.expect("return")
        value: int | None = None
        if not self.at(";") and not self.at("}") and not self.at_eof():
            value = self.parse_expr()
        self.terminate()
        return self.tree.new(ReturnNode, tok.line, tok.column, value=value).id

    # ── For loops ────────────────────────────────────────────

    def parse_for(self) -> int:
        """for ( INIT ; CONDITION ; INCREMENT ) BODY

        Each header section is the raw token run up to its delimiter; the
        body is the brace-balanced run inside `{ }`. Every section keeps
        its token slice and is parsed on its own.
        """
        tok = self.expect("for")
        self.expect("(")
        init_start = self.pos
        init_end = self._scan_header(";", "initializer")
        cond_start = init_end + 1
        self.pos = cond_start
        cond_end = self._scan_header(";", "condition")
        incr_start = cond_end + 1
        self.pos = incr_start
        incr_end = self._scan_header(")", "increment")
        self.pos = incr_end + 1

        init = self._section(ForInitNode, init_start, init_end, "simple")
        condition = self._section(ForConditionNode, cond_start, cond_end, "expr")
        increment = self._section(ForIncrementNode, incr_start, incr_end, "simple")

        if self.at("{"):
            open_tok = self.advance()
            body_start = self.pos
            body_end = self._scan_braces(open_tok)
            body = self._section(ForBodyNode, body_start, body_end, "block")
            self.pos = body_end
            if self.at("}"):
                self.advance()
        else:
            body_start = self.pos
            stmt = self.statement()
            body = self._leaves(ForBodyNode, body_start, self.pos)
            section = self.tree.get_as(body, ForBodyNode)
            section.braced = False
            section.statements.append(stmt)

        return self.tree.new(
            ForNode,
            tok.line,
            tok.column,
            init=init,
            condition=condition,
            increment=increment,
            body=body,
        ).id

    def _scan_header(self, stop: str, what: str) -> int:
        """Index of the first `stop` at parenthesis depth zero."""
        depth = 0
        i = self.pos
        while True:
            t = self.tokens[i]
            if t.kind == TK_EOF:
                self.pos = i
                raise self.error("missing '" + stop + "' in for loop " + what)
            v = t.lexeme if t.kind != TK_LITERAL else ""
            if depth == 0 and v == stop:
                return i
            if v == "(":
                depth += 1
            elif v == ")":
                if depth == 0:
                    self.pos = i
                    raise self.error("missing '" + stop + "' in for loop " + what)
                depth -= 1
            elif depth == 0 and (v == "{" or v == "}" or v == ";"):
                self.pos = i
                raise self.error("unexpected token '" + v + "' in for loop header")
            i += 1

    def _scan_braces(self, open_tok: Token) -> int:
        """Index of the `}` matching an already consumed `{`."""
        depth = 1
        i = self.pos
        while True:
            t = self.tokens[i]
            if t.kind == TK_EOF:
                self.report(
                    ParseError(
                        "missing '}' to close for loop body opened at line "
                        + str(open_tok.line),
                        t.line,
                        t.column,
                    )
                )
                return i
            if t.kind != TK_LITERAL:
                if t.lexeme == "{":
                    depth += 1
                elif t.lexeme == "}":
                    depth -= 1
                    if depth == 0:
                        return i
            i += 1

    def _leaves(self, cls: type[S], start: int, end: int) -> int:
        """Section node holding TOKEN leaves for tokens[start:end]."""
        anchor = self.tokens[start] if start < end else self.tokens[min(end, len(self.tokens) - 1)]
        leaves: list[int] = []
        for t in self.tokens[start:end]:
            leaf = self.tree.new(TokenNode, t.line, t.column, token_kind=t.kind, value=t.lexeme)
            leaves.append(leaf.id)
        return self.tree.new(cls, anchor.line, anchor.column, tokens=leaves).id

    def _section(self, cls: type[S], start: int, end: int, mode: str) -> int:
        handle = self._leaves(cls, start, end)
        section = self.tree.get_as(handle, cls)
        if start >= end:
            return handle
        delim = self.tokens[end]
        sub = Parser(self.tokens[start:end], self.tree, self.diagnostics, self.recover, eof=delim)
        if mode == "block":
            while not sub.at_eof():
                section.statements.append(sub.statement())
            return handle
        mark = len(self.tree)
        try:
            if mode == "expr":
                test = sub.parse_expr()
                if isinstance(section, ForConditionNode):
                    section.test = test
                    section.condition = sub.text(0, sub.pos)
            else:
                section.statements.append(sub.parse_simple())
            if not sub.at_eof():
                raise sub.error("unexpected token '" + sub.current().lexeme + "'")
        except ParseError as e:
            if not self.recover:
                raise
            self.diagnostics.error(PHASE_SYNTAX, e.msg, e.line, e.col)
            self.tree.truncate(mark)
            section.statements = [self.tree.new(ErrorNode, e.line, e.col, message=e.msg).id]
            if isinstance(section, ForConditionNode):
                section.test = None
                section.condition = sub.text(0, len(sub.tokens) - 1)
        return handle

    # ── Simple statements ────────────────────────────────────

    def parse_simple(self) -> int:
        """Declaration, assignment, update, or bare expression (no `;`)."""
        tok = self.current()
        if tok.kind == TK_KEYWORD and (tok.lexeme in DECL_KEYWORDS or tok.lexeme in TYPE_NAMES):
            return self.parse_var_decl()
        expr = self.parse_expr()
        node = self.tree.get(expr)
        if isinstance(node, UpdateNode):
            return expr
        cur = self.current()
        if cur.kind == TK_OP and cur.lexeme in ASSIGN_OPS:
            if not _is_assignable(node):
                raise ParseError("invalid assignment target", tok.line, tok.column)
            self.advance()
            value = self.parse_expr()
            return self.tree.new(
                AssignNode, tok.line, tok.column, op=cur.lexeme, target=expr, value=value
            ).id
        return self.tree.new(ExprStmtNode, tok.line, tok.column, expr=expr).id

    # ── Expressions ──────────────────────────────────────────

    def parse_expr(self) -> int:
        return self.parse_or()

    def _binary(self, ops: set[str], operand: Callable[[], int]) -> int:
        left = operand()
        while self.current().kind == TK_OP and self.current().lexeme in ops:
            op_tok = self.advance()
            right = operand()
            lnode = self.tree.get(left)
            left = self.tree.new(
                BinaryNode, lnode.line, lnode.column, op=op_tok.lexeme, left=left, right=right
            ).id
        return left

    def parse_or(self) -> int:
        return self._binary({"||"}, self.parse_and)

    def parse_and(self) -> int:
        return self._binary({"&&"}, self.parse_equality)

    def parse_equality(self) -> int:
        return self._binary(EQUALITY_OPS, self.parse_comparison)

    def parse_comparison(self) -> int:
        return self._binary(COMPARE_OPS, self.parse_additive)

    def parse_additive(self) -> int:
        return self._binary(ADDITIVE_OPS, self.parse_multiplicative)

    def parse_multiplicative(self) -> int:
        return self._binary(MULTIPLICATIVE_OPS, self.parse_unary)

    def parse_unary(self) -> int:
        tok = self.current()
        if tok.kind == TK_OP and (tok.lexeme == "++" or tok.lexeme == "--"):
            self.advance()
            target = self.parse_unary()
            if not _is_assignable(self.tree.get(target)):
                raise ParseError("invalid update target", tok.line, tok.column)
            return self.tree.new(
                UpdateNode, tok.line, tok.column, op=tok.lexeme, prefix=True, target=target
            ).id
        if tok.kind == TK_OP and tok.lexeme in UNARY_OPS:
            self.advance()
            operand = self.parse_unary()
            return self.tree.new(UnaryNode, tok.line, tok.column, op=tok.lexeme, operand=operand).id
        return self.parse_postfix()

    def parse_postfix(self) -> int:
        expr = self.parse_primary()
        while True:
            node = self.tree.get(expr)
            if self.at("("):
                self.advance()
                args: list[int] = []
                if not self.at(")"):
                    args.append(self.parse_expr())
                    while self.at(","):
                        self.advance()
                        args.append(self.parse_expr())
                self.expect(")")
                expr = self.tree.new(CallNode, node.line, node.column, callee=expr, args=args).id
            elif self.at("["):
                self.advance()
                index = self.parse_expr()
                self.expect("]")
                expr = self.tree.new(IndexNode, node.line, node.column, obj=expr, index=index).id
            elif self.at("."):
                self.advance()
                name_tok = self.expect_ident()
                expr = self.tree.new(
                    MemberNode, node.line, node.column, obj=expr, name=name_tok.lexeme
                ).id
            elif self.at("++") or self.at("--"):
                if not _is_assignable(node):
                    raise self.error("invalid update target")
                op_tok = self.advance()
                return self.tree.new(
                    UpdateNode, node.line, node.column, op=op_tok.lexeme, prefix=False, target=expr
                ).id
            else:
                return expr

    def parse_primary(self) -> int:
        tok = self.current()
        if tok.kind == TK_LITERAL:
            self.advance()
            value, literal_type = _literal_value(tok.lexeme)
            return self.tree.new(
                LiteralNode,
                tok.line,
                tok.column,
                value=value,
                literal_type=literal_type,
                text=tok.lexeme,
            ).id
        if tok.kind == TK_IDENT:
            self.advance()
            return self.tree.new(IdentifierNode, tok.line, tok.column, name=tok.lexeme).id
        if self.at("("):
            self.advance()
            expr = self.parse_expr()
            self.expect(")")
            return expr
        if self.at("["):
            self.advance()
            elements: list[int] = []
            if not self.at("]"):
                elements.append(self.parse_expr())
                while self.at(","):
                    self.advance()
                    elements.append(self.parse_expr())
            self.expect("]")
            return self.tree.new(ArrayNode, tok.line, tok.column, elements=elements).id
        if self.at_eof():
            raise self.error("missing expression at end of input")
        raise self.error("unexpected token '" + tok.lexeme + "'")


def _is_assignable(node: object) -> bool:
    return isinstance(node, (IdentifierNode, IndexNode, MemberNode))


def _literal_value(lexeme: str) -> tuple[object, str]:
    """Decode a literal lexeme into (python value, checked type)."""
    if lexeme == "true":
        return True, "boolean"
    if lexeme == "false":
        return False, "boolean"
    if lexeme == "null":
        return None, "any"
    c = lexeme[0]
    if c == '"' or c == "'":
        return _unescape(lexeme), "string"
    if "." in lexeme or "e" in lexeme or "E" in lexeme:
        try:
            return float(lexeme), "number"
        except ValueError:
            return None, "number"
    try:
        return int(lexeme), "number"
    except ValueError:
        return None, "number"


def _unescape(lexeme: str) -> str:
    quote = lexeme[0]
    body = lexeme[1:]
    if body.endswith(quote):
        body = body[:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        c = body[i]
        if c == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(ESCAPE_MAP.get(nxt, nxt))
            i += 2
            continue
        out.append(c)
        i += 1
    return "".join(out)


def parse(
    tokens: list[Token],
    diagnostics: Diagnostics | None = None,
    recover: bool = True,
) -> ParseTree:
    """Parse a token list into a ParseTree rooted at a PROGRAM node.

    Without a diagnostics sink the first syntax error raises ParseError.
    """
    parser = Parser(tokens, diagnostics=diagnostics, recover=recover and diagnostics is not None)
    return parser.parse_program()
