"""Flowc parse tree: arena-owned nodes, one dataclass per kind."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Iterator, TypeVar

from .diagnostics import InternalFault


# ============================================================
# BASE
# ============================================================


@dataclass
class Node:
    """Base for all parse tree nodes. `id` is the node's arena handle."""

    KIND: ClassVar[str] = ""

    id: int
    line: int
    column: int

    @property
    def kind(self) -> str:
        return self.KIND

    @property
    def children(self) -> list[int]:
        return []


# ============================================================
# STRUCTURE
# ============================================================


@dataclass
class ProgramNode(Node):
    KIND: ClassVar[str] = "PROGRAM"

    statements: list[int] = field(default_factory=list)

    @property
    def children(self) -> list[int]:
        return list(self.statements)


@dataclass
class BlockNode(Node):
    """{ statements }."""

    KIND: ClassVar[str] = "BLOCK"

    statements: list[int] = field(default_factory=list)

    @property
    def children(self) -> list[int]:
        return list(self.statements)


@dataclass
class EmptyNode(Node):
    """Lone `;`."""

    KIND: ClassVar[str] = "EMPTY"


@dataclass
class ErrorNode(Node):
    """Marks input discarded by panic-mode recovery."""

    KIND: ClassVar[str] = "ERROR"

    message: str = ""


# ============================================================
# DECLARATIONS
# ============================================================


@dataclass
class Param:
    """Function parameter. declared_type is 'any' when unannotated."""

    name: str
    declared_type: str
    line: int
    column: int


@dataclass
class VarDeclNode(Node):
    """let/var/const name = init, or TYPE name = init."""

    KIND: ClassVar[str] = "VAR_DECL"

    name: str = ""
    keyword: str = ""
    declared_type: str = "any"
    init: int | None = None

    @property
    def is_const(self) -> bool:
        return self.keyword == "const"

    @property
    def children(self) -> list[int]:
        if self.init is None:
            return []
        return [self.init]


@dataclass
class FunctionNode(Node):
    """function name(params) { body }."""

    KIND: ClassVar[str] = "FUNCTION"

    name: str = ""
    params: list[Param] = field(default_factory=list)
    return_type: str = "any"
    body: int = -1

    @property
    def children(self) -> list[int]:
        return [self.body]


# ============================================================
# STATEMENTS
# ============================================================


@dataclass
class ReturnNode(Node):
    KIND: ClassVar[str] = "RETURN"

    value: int | None = None

    @property
    def children(self) -> list[int]:
        if self.value is None:
            return []
        return [self.value]


@dataclass
class BreakNode(Node):
    KIND: ClassVar[str] = "BREAK"


@dataclass
class ContinueNode(Node):
    KIND: ClassVar[str] = "CONTINUE"


@dataclass
class IfNode(Node):
    """if (test) then_branch else else_branch."""

    KIND: ClassVar[str] = "IF"

    condition: str = ""
    test: int = -1
    then_branch: int = -1
    else_branch: int | None = None

    @property
    def children(self) -> list[int]:
        out = [self.test, self.then_branch]
        if self.else_branch is not None:
            out.append(self.else_branch)
        return out


@dataclass
class WhileNode(Node):
    KIND: ClassVar[str] = "WHILE"

    condition: str = ""
    test: int = -1
    body: int = -1

    @property
    def children(self) -> list[int]:
        return [self.test, self.body]


@dataclass
class ForNode(Node):
    """for (init; condition; increment) body, with four section children."""

    KIND: ClassVar[str] = "FOR"

    init: int = -1
    condition: int = -1
    increment: int = -1
    body: int = -1

    @property
    def children(self) -> list[int]:
        return [self.init, self.condition, self.increment, self.body]


@dataclass
class ForSectionNode(Node):
    """One section of a for header or its body.

    `tokens` holds the raw token slice as TOKEN leaves; `statements`
    holds the structured parse of that slice.
    """

    tokens: list[int] = field(default_factory=list)
    statements: list[int] = field(default_factory=list)

    @property
    def children(self) -> list[int]:
        return list(self.tokens)


@dataclass
class ForInitNode(ForSectionNode):
    KIND: ClassVar[str] = "FOR_INIT"


@dataclass
class ForConditionNode(ForSectionNode):
    KIND: ClassVar[str] = "FOR_CONDITION"

    condition: str = ""
    test: int | None = None


@dataclass
class ForIncrementNode(ForSectionNode):
    KIND: ClassVar[str] = "FOR_INCREMENT"


@dataclass
class ForBodyNode(ForSectionNode):
    """Loop body. `braced` is False for a single unbraced statement."""

    KIND: ClassVar[str] = "FOR_BODY"

    braced: bool = True


@dataclass
class ExprStmtNode(Node):
    """Expression evaluated for effect."""

    KIND: ClassVar[str] = "EXPR"

    expr: int = -1

    @property
    def children(self) -> list[int]:
        return [self.expr]


@dataclass
class AssignNode(Node):
    """target op value, op one of = += -= *= /= %=."""

    KIND: ClassVar[str] = "ASSIGN"

    op: str = "="
    target: int = -1
    value: int = -1

    @property
    def children(self) -> list[int]:
        return [self.target, self.value]


@dataclass
class UpdateNode(Node):
    """++x, x++, --x, x--."""

    KIND: ClassVar[str] = "UPDATE"

    op: str = "++"
    prefix: bool = False
    target: int = -1

    @property
    def children(self) -> list[int]:
        return [self.target]


# ============================================================
# EXPRESSIONS
# ============================================================


@dataclass
class BinaryNode(Node):
    KIND: ClassVar[str] = "BINARY"

    op: str = ""
    left: int = -1
    right: int = -1

    @property
    def children(self) -> list[int]:
        return [self.left, self.right]


@dataclass
class UnaryNode(Node):
    KIND: ClassVar[str] = "UNARY"

    op: str = ""
    operand: int = -1

    @property
    def children(self) -> list[int]:
        return [self.operand]


@dataclass
class LiteralNode(Node):
    """Number, string, boolean or null literal. literal_type names which."""

    KIND: ClassVar[str] = "LITERAL"

    value: object = None
    literal_type: str = "any"
    text: str = ""


@dataclass
class IdentifierNode(Node):
    KIND: ClassVar[str] = "IDENTIFIER"

    name: str = ""


@dataclass
class CallNode(Node):
    """callee(args)."""

    KIND: ClassVar[str] = "CALL"

    callee: int = -1
    args: list[int] = field(default_factory=list)

    @property
    def children(self) -> list[int]:
        return [self.callee] + list(self.args)


@dataclass
class IndexNode(Node):
    """obj[index]."""

    KIND: ClassVar[str] = "INDEX"

    obj: int = -1
    index: int = -1

    @property
    def children(self) -> list[int]:
        return [self.obj, self.index]


@dataclass
class MemberNode(Node):
    """obj.name."""

    KIND: ClassVar[str] = "MEMBER"

    obj: int = -1
    name: str = ""

    @property
    def children(self) -> list[int]:
        return [self.obj]


@dataclass
class ArrayNode(Node):
    """[elements]."""

    KIND: ClassVar[str] = "ARRAY"

    elements: list[int] = field(default_factory=list)

    @property
    def children(self) -> list[int]:
        return list(self.elements)


@dataclass
class TokenNode(Node):
    """Leaf wrapping one raw token."""

    KIND: ClassVar[str] = "TOKEN"

    token_kind: str = ""
    value: str = ""


# ============================================================
# ARENA
# ============================================================

N = TypeVar("N", bound=Node)


class ParseTree:
    """Owns every node of one parse; nodes refer to each other by handle."""

    def __init__(self) -> None:
        self.nodes: list[Node] = []
        self.root: int = -1

    def new(self, cls: type[N], line: int, column: int, **fields: object) -> N:
        node = cls(len(self.nodes), line, column, **fields)
        self.nodes.append(node)
        return node

    def get(self, handle: int) -> Node:
        if handle < 0 or handle >= len(self.nodes):
            raise InternalFault("dangling parse tree handle " + str(handle))
        return self.nodes[handle]

    def get_as(self, handle: int, cls: type[N]) -> N:
        node = self.get(handle)
        if not isinstance(node, cls):
            raise InternalFault(
                "expected " + cls.KIND + " node, got " + node.kind,
                node.line,
                node.column,
            )
        return node

    @property
    def root_node(self) -> ProgramNode:
        return self.get_as(self.root, ProgramNode)

    def walk(self, handle: int | None = None) -> Iterator[Node]:
        """Pre-order traversal over `children`."""
        start = self.root if handle is None else handle
        stack = [start]
        while len(stack) > 0:
            node = self.get(stack.pop())
            yield node
            kids = node.children
            i = len(kids) - 1
            while i >= 0:
                stack.append(kids[i])
                i -= 1

    def truncate(self, mark: int) -> None:
        """Drop nodes allocated at or after `mark`."""
        del self.nodes[mark:]

    def __len__(self) -> int:
        return len(self.nodes)


def token_text(values: list[str]) -> str:
    """Render a token run back into readable source text."""
    out = ""
    prev = ""
    for v in values:
        if out != "" and _needs_space(prev, v):
            out += " "
        out += v
        prev = v
    return out


_NO_SPACE_AFTER: set[str] = {"(", "[", ".", "!"}
_NO_SPACE_BEFORE: set[str] = {")", "]", ",", ";", "."}


def _needs_space(prev: str, cur: str) -> bool:
    if prev in _NO_SPACE_AFTER or cur in _NO_SPACE_BEFORE:
        return False
    if cur == "(" or cur == "[":
        # call or index directly after a name or a closing bracket
        return not (_is_word(prev) or prev == ")" or prev == "]")
    if cur == "++" or cur == "--":
        return not (_is_word(prev) or prev == ")" or prev == "]")
    if prev == "++" or prev == "--":
        return not _is_word(cur)
    return True


def _is_word(s: str) -> bool:
    if s == "" or s in ("if", "while", "for", "return"):
        return False
    c = s[0]
    return c.isalnum() or c == "_" or c == "$" or c == '"' or c == "'"


# Binding strength of binary operators, loosest first
PRECEDENCE: dict[str, int] = {
    "||": 1,
    "&&": 2,
    "==": 3,
    "!=": 3,
    "<": 4,
    "<=": 4,
    ">": 4,
    ">=": 4,
    "+": 5,
    "-": 5,
    "*": 6,
    "/": 6,
    "%": 6,
}


def render(tree: ParseTree, handle: int) -> str:
    """Source-like text for a statement or expression node."""
    node = tree.get(handle)
    if isinstance(node, LiteralNode):
        return node.text
    if isinstance(node, IdentifierNode):
        return node.name
    if isinstance(node, BinaryNode):
        prec = PRECEDENCE.get(node.op, 0)
        left = render(tree, node.left)
        right = render(tree, node.right)
        lnode = tree.get(node.left)
        rnode = tree.get(node.right)
        if isinstance(lnode, BinaryNode) and PRECEDENCE.get(lnode.op, 0) < prec:
            left = "(" + left + ")"
        if isinstance(rnode, BinaryNode) and PRECEDENCE.get(rnode.op, 0) <= prec:
            right = "(" + right + ")"
        return left + " " + node.op + " " + right
    if isinstance(node, UnaryNode):
        operand = render(tree, node.operand)
        if isinstance(tree.get(node.operand), BinaryNode):
            operand = "(" + operand + ")"
        return node.op + operand
    if isinstance(node, UpdateNode):
        target = render(tree, node.target)
        if node.prefix:
            return node.op + target
        return target + node.op
    if isinstance(node, AssignNode):
        return render(tree, node.target) + " " + node.op + " " + render(tree, node.value)
    if isinstance(node, CallNode):
        args = [render(tree, a) for a in node.args]
        return render(tree, node.callee) + "(" + ", ".join(args) + ")"
    if isinstance(node, IndexNode):
        return render(tree, node.obj) + "[" + render(tree, node.index) + "]"
    if isinstance(node, MemberNode):
        return render(tree, node.obj) + "." + node.name
    if isinstance(node, ArrayNode):
        return "[" + ", ".join(render(tree, e) for e in node.elements) + "]"
    if isinstance(node, VarDeclNode):
        head = node.keyword
        if node.declared_type == "array" and node.keyword not in ("let", "var", "const"):
            head += "[]"
        text = head + " " + node.name
        if node.init is not None:
            text += " = " + render(tree, node.init)
        return text
    if isinstance(node, ExprStmtNode):
        return render(tree, node.expr)
    if isinstance(node, ReturnNode):
        if node.value is None:
            return "return"
        return "return " + render(tree, node.value)
    if isinstance(node, BreakNode):
        return "break"
    if isinstance(node, ContinueNode):
        return "continue"
    if isinstance(node, FunctionNode):
        return "function " + node.name + "(" + ", ".join(p.name for p in node.params) + ")"
    if isinstance(node, ErrorNode):
        return "<error>"
    return node.kind.lower()
