"""Flowc semantic analysis: scope building, name resolution, type checks."""

from __future__ import annotations

from dataclasses import dataclass, field

from .diagnostics import PHASE_SEMANTIC, Diagnostic, Diagnostics, InternalFault
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
    ForNode,
    ForSectionNode,
    FunctionNode,
    IdentifierNode,
    IfNode,
    IndexNode,
    LiteralNode,
    MemberNode,
    Node,
    ParseTree,
    ReturnNode,
    UnaryNode,
    UpdateNode,
    VarDeclNode,
    WhileNode,
)

SCOPE_GLOBAL = "global"
SCOPE_FUNCTION = "function"
SCOPE_BLOCK = "block"
SCOPE_LOOP = "loop"

# Types that take part in mismatch checks; everything else is unchecked
CHECKED_TYPES: set[str] = {"number", "string", "boolean"}

BUILTINS: set[str] = {"print", "len", "input", "console", "Math"}

ARITHMETIC_OPS: set[str] = {"-", "*", "/", "%"}
ORDERING_OPS: set[str] = {"<", "<=", ">", ">="}


@dataclass
class Symbol:
    name: str
    type: str
    line: int
    column: int
    kind: str = "variable"


@dataclass
class Scope:
    """A lexical region. `owner` is the parse tree handle that opened it."""

    id: int
    kind: str
    owner: int
    parent: int | None
    depth: int
    line: int
    column: int
    symbols: dict[str, Symbol] = field(default_factory=dict)


def _mismatch(a: str, b: str) -> bool:
    return a in CHECKED_TYPES and b in CHECKED_TYPES and a != b


class Analyzer:
    def __init__(self, tree: ParseTree) -> None:
        self.tree: ParseTree = tree
        self.diagnostics: Diagnostics = Diagnostics()
        self.scopes: list[Scope] = []
        self.stack: list[Scope] = []
        self.loop_depth: int = 0
        self.return_types: list[tuple[str, str]] = []
        self.hoisted: set[int] = set()

    # ── Scopes ───────────────────────────────────────────────

    def enter_scope(self, kind: str, node: Node) -> Scope:
        parent = self.stack[-1].id if len(self.stack) > 0 else None
        scope = Scope(
            len(self.scopes), kind, node.id, parent, len(self.stack), node.line, node.column
        )
        self.scopes.append(scope)
        self.stack.append(scope)
        return scope

    def exit_scope(self) -> None:
        self.stack.pop()

    def declare(self, name: str, typ: str, node: Node, kind: str = "variable") -> None:
        current = self.stack[-1]
        if name in current.symbols:
            self.error("redeclaration of '" + name + "' in the same scope", node)
            return
        current.symbols[name] = Symbol(name, typ, node.line, node.column, kind)

    def lookup(self, name: str) -> Symbol | None:
        i = len(self.stack) - 1
        while i >= 0:
            if name in self.stack[i].symbols:
                return self.stack[i].symbols[name]
            i -= 1
        return None

    def error(self, msg: str, node: Node) -> None:
        self.diagnostics.error(PHASE_SEMANTIC, msg, node.line, node.column)

    def warning(self, msg: str, node: Node) -> None:
        self.diagnostics.warning(PHASE_SEMANTIC, msg, node.line, node.column)

    # ── Statements ───────────────────────────────────────────

    def check_program(self) -> None:
        program = self.tree.root_node
        self.enter_scope(SCOPE_GLOBAL, program)
        for h in program.statements:
            node = self.tree.get(h)
            if isinstance(node, FunctionNode):
                self.declare(node.name, "function", node, "function")
                self.hoisted.add(node.id)
        self.check_statements(program.statements)
        self.exit_scope()

    def check_statements(self, handles: list[int]) -> None:
        """Check a statement list, warning once about dead code after a jump."""
        after = ""
        warned = False
        for h in handles:
            node = self.tree.get(h)
            if after != "" and not warned and not isinstance(
                node, (EmptyNode, ErrorNode, FunctionNode)
            ):
                self.warning("unreachable code after " + after + " statement", node)
                warned = True
            self.check_stmt(node)
            if after == "":
                if isinstance(node, ReturnNode):
                    after = "return"
                elif isinstance(node, BreakNode):
                    after = "break"
                elif isinstance(node, ContinueNode):
                    after = "continue"

    def check_body(self, handle: int, kind: str, owner: Node) -> None:
        """Loop or branch body: a block gets its own scope."""
        node = self.tree.get(handle)
        if isinstance(node, BlockNode):
            self.enter_scope(kind, owner if kind == SCOPE_LOOP else node)
            self.check_statements(node.statements)
            self.exit_scope()
        else:
            self.check_stmt(node)

    def check_stmt(self, node: Node) -> None:
        if isinstance(node, BlockNode):
            self.enter_scope(SCOPE_BLOCK, node)
            self.check_statements(node.statements)
            self.exit_scope()
        elif isinstance(node, VarDeclNode):
            self.check_var_decl(node)
        elif isinstance(node, FunctionNode):
            self.check_function(node)
        elif isinstance(node, ReturnNode):
            self.check_return(node)
        elif isinstance(node, IfNode):
            self.check_expr(node.test)
            self.check_body(node.then_branch, SCOPE_BLOCK, node)
            if node.else_branch is not None:
                self.check_body(node.else_branch, SCOPE_BLOCK, node)
        elif isinstance(node, WhileNode):
            self.check_expr(node.test)
            self.loop_depth += 1
            self.check_body(node.body, SCOPE_LOOP, node)
            self.loop_depth -= 1
        elif isinstance(node, ForNode):
            self.check_for(node)
        elif isinstance(node, BreakNode):
            if self.loop_depth == 0:
                self.error("'break' outside of loop", node)
        elif isinstance(node, ContinueNode):
            if self.loop_depth == 0:
                self.error("'continue' outside of loop", node)
        elif isinstance(node, ExprStmtNode):
            self.check_expr(node.expr)
        elif isinstance(node, (AssignNode, UpdateNode)):
            self.check_expr(node.id)
        elif isinstance(node, (EmptyNode, ErrorNode)):
            pass
        else:
            raise InternalFault(
                "unexpected " + node.kind + " node in statement position",
                node.line,
                node.column,
            )

    def check_var_decl(self, node: VarDeclNode) -> None:
        typ = node.declared_type
        if node.init is not None:
            init_type = self.check_expr(node.init)
            if _mismatch(typ, init_type):
                self.error(
                    "type mismatch: cannot initialize "
                    + typ
                    + " '"
                    + node.name
                    + "' with "
                    + init_type,
                    node,
                )
            elif typ == "any":
                typ = init_type
        kind = "constant" if node.is_const else "variable"
        self.declare(node.name, typ, node, kind)

    def check_function(self, node: FunctionNode) -> None:
        if node.id not in self.hoisted:
            self.declare(node.name, "function", node, "function")
        self.enter_scope(SCOPE_FUNCTION, node)
        for p in node.params:
            current = self.stack[-1]
            if p.name in current.symbols:
                self.diagnostics.error(
                    PHASE_SEMANTIC,
                    "redeclaration of '" + p.name + "' in the same scope",
                    p.line,
                    p.column,
                )
                continue
            current.symbols[p.name] = Symbol(
                p.name, p.declared_type, p.line, p.column, "parameter"
            )
        saved_loops = self.loop_depth
        self.loop_depth = 0
        self.return_types.append((node.name, node.return_type))
        body = self.tree.get_as(node.body, BlockNode)
        self.check_statements(body.statements)
        self.return_types.pop()
        self.loop_depth = saved_loops
        self.exit_scope()

    def check_return(self, node: ReturnNode) -> None:
        value_type = "void"
        if node.value is not None:
            value_type = self.check_expr(node.value)
        if len(self.return_types) == 0:
            return
        name, expected = self.return_types[-1]
        if expected == "void" and node.value is not None:
            self.error("type mismatch: void function '" + name + "' returns a value", node)
        elif _mismatch(expected, value_type):
            self.error(
                "type mismatch: function '"
                + name
                + "' returns "
                + expected
                + ", got "
                + value_type,
                node,
            )

    def check_for(self, node: ForNode) -> None:
        init = self.tree.get_as(node.init, ForSectionNode)
        condition = self.tree.get_as(node.condition, ForConditionNode)
        increment = self.tree.get_as(node.increment, ForSectionNode)
        body = self.tree.get_as(node.body, ForBodyNode)
        declares = False
        for h in init.statements:
            if isinstance(self.tree.get(h), VarDeclNode):
                declares = True
        # init bindings and a braced body share one loop scope
        scoped = body.braced or declares
        if scoped:
            self.enter_scope(SCOPE_LOOP, node)
        for h in init.statements:
            self.check_stmt(self.tree.get(h))
        if condition.test is not None:
            self.check_expr(condition.test)
        self.loop_depth += 1
        self.check_statements(body.statements)
        for h in increment.statements:
            self.check_stmt(self.tree.get(h))
        self.loop_depth -= 1
        if scoped:
            self.exit_scope()

    # ── Expressions ──────────────────────────────────────────

    def check_target(self, handle: int, node: Node) -> str:
        """Type of an assignment target; reports writes to constants."""
        target = self.tree.get(handle)
        if isinstance(target, IdentifierNode):
            sym = self.lookup(target.name)
            if sym is None:
                return self.check_expr(handle)
            if sym.kind == "constant":
                self.error("cannot assign to constant '" + target.name + "'", node)
            return sym.type
        self.check_expr(handle)
        return "any"

    def check_expr(self, handle: int) -> str:
        """Check an expression and return its type."""
        node = self.tree.get(handle)
        if isinstance(node, LiteralNode):
            return node.literal_type
        if isinstance(node, IdentifierNode):
            sym = self.lookup(node.name)
            if sym is not None:
                return sym.type
            if node.name in BUILTINS:
                return "function"
            self.error("undeclared variable '" + node.name + "'", node)
            return "any"
        if isinstance(node, BinaryNode):
            return self.check_binary(node)
        if isinstance(node, UnaryNode):
            t = self.check_expr(node.operand)
            if node.op == "!":
                return "boolean"
            if _mismatch("number", t):
                self.error(
                    "type mismatch: unary '" + node.op + "' expects number, got " + t, node
                )
            return "number"
        if isinstance(node, AssignNode):
            target_type = self.check_target(node.target, node)
            value_type = self.check_expr(node.value)
            if node.op == "=":
                if _mismatch(target_type, value_type):
                    self.error(
                        "type mismatch: cannot assign " + value_type + " to " + target_type,
                        node,
                    )
                return value_type
            return self.binary_type(node.op[0], target_type, value_type, node)
        if isinstance(node, UpdateNode):
            t = self.check_target(node.target, node)
            if _mismatch("number", t):
                self.error("type mismatch: '" + node.op + "' expects number, got " + t, node)
            return "number"
        if isinstance(node, CallNode):
            self.check_expr(node.callee)
            for a in node.args:
                self.check_expr(a)
            return "any"
        if isinstance(node, IndexNode):
            self.check_expr(node.obj)
            self.check_expr(node.index)
            return "any"
        if isinstance(node, MemberNode):
            self.check_expr(node.obj)
            return "any"
        if isinstance(node, ArrayNode):
            for e in node.elements:
                self.check_expr(e)
            return "array"
        if isinstance(node, ErrorNode):
            return "any"
        raise InternalFault(
            "unexpected " + node.kind + " node in expression position",
            node.line,
            node.column,
        )

    def check_binary(self, node: BinaryNode) -> str:
        left = self.check_expr(node.left)
        right = self.check_expr(node.right)
        return self.binary_type(node.op, left, right, node)

    def binary_type(self, op: str, left: str, right: str, node: Node) -> str:
        if op == "&&" or op == "||":
            return "boolean"
        if op == "==" or op == "!=":
            if _mismatch(left, right):
                self.error(
                    "type mismatch: cannot compare " + left + " and " + right, node
                )
            return "boolean"
        if op in ORDERING_OPS:
            if _mismatch(left, right) or left == "boolean" or right == "boolean":
                self.error(
                    "type mismatch: cannot apply '" + op + "' to " + left + " and " + right,
                    node,
                )
            return "boolean"
        if op == "+":
            # string concatenation accepts numbers
            if left == "string" and right in ("string", "number", "any"):
                return "string"
            if right == "string" and left in ("number", "any"):
                return "string"
            if left == "number" and right == "number":
                return "number"
            if _mismatch(left, right) or "boolean" in (left, right):
                self.error(
                    "type mismatch: cannot apply '+' to " + left + " and " + right, node
                )
                return "any"
            if left == "number" or right == "number":
                return "number"
            return "any"
        if op in ARITHMETIC_OPS:
            if _mismatch("number", left) or _mismatch("number", right):
                self.error(
                    "type mismatch: cannot apply '" + op + "' to " + left + " and " + right,
                    node,
                )
            return "number"
        return "any"


def _position(item: Diagnostic | Scope) -> tuple[int, int]:
    return item.line, item.column


def analyze(
    tree: ParseTree | None,
    diagnostics: Diagnostics | None = None,
) -> tuple[list[Scope], list[Diagnostic]]:
    """Build the scope tree and collect semantic diagnostics.

    Scopes and diagnostics come back in source (line, column) order; the
    diagnostics are also recorded in `diagnostics` when given.
    """
    if tree is None or tree.root < 0:
        raise InternalFault("semantic analysis requires a parse tree")
    analyzer = Analyzer(tree)
    analyzer.check_program()
    if diagnostics is not None:
        diagnostics.extend(analyzer.diagnostics)
    scopes = sorted(analyzer.scopes, key=_position)
    errors = sorted(analyzer.diagnostics.items, key=_position)
    return scopes, errors
