"""Flowc control flow: derive a renderable control-flow tree from a parse tree.

Straight-line runs collapse into STATEMENT nodes and are chained through
`next`. Branches and loops own their bodies as children; a loop also
owns a LOOP_BACK leaf pointing at the loop it returns to, which keeps the
structure a tree rather than a general graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Iterator, TypeVar

from .diagnostics import InternalFault
from .tree import (
    ArrayNode,
    AssignNode,
    BlockNode,
    BreakNode,
    CallNode,
    ContinueNode,
    EmptyNode,
    ErrorNode,
    ExprStmtNode,
    ForConditionNode,
    ForNode,
    ForSectionNode,
    FunctionNode,
    IdentifierNode,
    IfNode,
    MemberNode,
    ParseTree,
    ReturnNode,
    UpdateNode,
    VarDeclNode,
    WhileNode,
    render,
)

# Method calls that grow the receiver
GROWTH_METHODS: set[str] = {"push", "append", "add", "insert"}


# ============================================================
# NODES
# ============================================================


@dataclass
class FlowNode:
    KIND: ClassVar[str] = ""

    id: int
    line: int
    calls: list[str] = field(default_factory=list)
    allocates: bool = False

    @property
    def kind(self) -> str:
        return self.KIND

    @property
    def children(self) -> list[int]:
        return []


@dataclass
class EntryNode(FlowNode):
    KIND: ClassVar[str] = "ENTRY"

    next: int | None = None

    @property
    def children(self) -> list[int]:
        return [] if self.next is None else [self.next]


@dataclass
class ExitNode(FlowNode):
    """Leaf where control leaves a program or function ("return" or "end")."""

    KIND: ClassVar[str] = "EXIT"

    label: str = "end"


@dataclass
class StatementNode(FlowNode):
    """A basic block. A function declaration carries its own flow in `body`."""

    KIND: ClassVar[str] = "STATEMENT"

    statements: list[str] = field(default_factory=list)
    function: str | None = None
    body: int | None = None
    next: int | None = None

    @property
    def children(self) -> list[int]:
        out: list[int] = []
        if self.body is not None:
            out.append(self.body)
        if self.next is not None:
            out.append(self.next)
        return out


@dataclass
class IfFlowNode(FlowNode):
    KIND: ClassVar[str] = "IF"

    condition: str = ""
    true_branch: int | None = None
    false_branch: int | None = None
    next: int | None = None

    @property
    def children(self) -> list[int]:
        out: list[int] = []
        for h in (self.true_branch, self.false_branch, self.next):
            if h is not None:
                out.append(h)
        return out


@dataclass
class LoopFlowNode(FlowNode):
    """Loop head. `body` is the forward child, `loop_back` the designated back edge."""

    condition: str = ""
    body: int | None = None
    loop_back: int = -1
    next: int | None = None

    @property
    def children(self) -> list[int]:
        out: list[int] = []
        if self.body is not None:
            out.append(self.body)
        if self.next is not None:
            out.append(self.next)
        return out


@dataclass
class ForFlowNode(LoopFlowNode):
    KIND: ClassVar[str] = "FOR"


@dataclass
class WhileFlowNode(LoopFlowNode):
    KIND: ClassVar[str] = "WHILE"


@dataclass
class LoopBackNode(FlowNode):
    KIND: ClassVar[str] = "LOOP_BACK"

    target: int = -1


DECISION_KINDS: set[str] = {"IF", "FOR", "WHILE"}

F = TypeVar("F", bound=FlowNode)


class ControlFlowTree:
    """Arena of flow nodes rooted at the single ENTRY node."""

    def __init__(self) -> None:
        self.nodes: list[FlowNode] = []
        self.root: int = -1

    def new(self, cls: type[F], line: int, **fields: object) -> F:
        node = cls(len(self.nodes), line, **fields)
        self.nodes.append(node)
        return node

    def get(self, handle: int) -> FlowNode:
        if handle < 0 or handle >= len(self.nodes):
            raise InternalFault("dangling control flow handle " + str(handle))
        return self.nodes[handle]

    def get_as(self, handle: int, cls: type[F]) -> F:
        node = self.get(handle)
        if not isinstance(node, cls):
            raise InternalFault(
                "expected " + cls.__name__ + ", got " + node.kind + " flow node", node.line
            )
        return node

    @property
    def entry(self) -> EntryNode:
        return self.get_as(self.root, EntryNode)

    def edges(self, node: FlowNode) -> list[int]:
        """Forward children followed by the loop-back leaf, if any."""
        out = node.children
        if isinstance(node, LoopFlowNode) and node.loop_back >= 0:
            out = out + [node.loop_back]
        return out

    def walk(self, handle: int | None = None) -> Iterator[FlowNode]:
        """Pre-order traversal over every edge reachable from `handle`."""
        start = self.root if handle is None else handle
        stack = [start]
        while len(stack) > 0:
            node = self.get(stack.pop())
            yield node
            kids = self.edges(node)
            i = len(kids) - 1
            while i >= 0:
                stack.append(kids[i])
                i -= 1

    def count(self, kind: str) -> int:
        n = 0
        for node in self.walk():
            if node.kind == kind:
                n += 1
        return n

    def __len__(self) -> int:
        return len(self.nodes)


# ============================================================
# BUILDER
# ============================================================


class _Seq:
    """Cursor over a chain of flow nodes being linked through `next`."""

    def __init__(self) -> None:
        self.first: int | None = None
        self.tail: FlowNode | None = None
        self.run: StatementNode | None = None
        self.open: bool = True
        # closed by `continue`, so a for increment still follows
        self.continued: bool = False


class Builder:
    def __init__(self, tree: ParseTree) -> None:
        self.tree: ParseTree = tree
        self.flow: ControlFlowTree = ControlFlowTree()
        self.loop_depth: int = 0

    def link(self, seq: _Seq, node: FlowNode) -> None:
        if seq.first is None:
            seq.first = node.id
        elif seq.tail is not None:
            setattr(seq.tail, "next", node.id)
        seq.tail = node if hasattr(node, "next") else None
        seq.run = None

    def close(self, seq: _Seq, node: FlowNode) -> None:
        """Append a leaf that ends the chain."""
        self.link(seq, node)
        seq.tail = None
        seq.open = False

    def add_text(self, seq: _Seq, handle: int) -> StatementNode:
        node = self.tree.get(handle)
        if seq.run is None:
            run = self.flow.new(StatementNode, node.line)
            self.link(seq, run)
            seq.run = run
        run = seq.run
        run.statements.append(render(self.tree, handle))
        self.scan_calls(handle, run)
        return run

    def scan_calls(self, handle: int, into: FlowNode) -> None:
        """Record calls and growth operations found under `handle`."""
        for node in self.tree.walk(handle):
            if isinstance(node, ArrayNode):
                into.allocates = True
            elif isinstance(node, CallNode):
                callee = self.tree.get(node.callee)
                if isinstance(callee, IdentifierNode):
                    into.calls.append(callee.name)
                elif isinstance(callee, MemberNode) and callee.name in GROWTH_METHODS:
                    into.allocates = True

    # ── Sequences ────────────────────────────────────────────

    def build_body(self, handles: list[int], terminal: bool) -> int | None:
        """Chain for a statement list; terminal chains end in an EXIT leaf."""
        seq = _Seq()
        self.emit_all(seq, handles)
        if terminal and seq.open:
            end_line = self.tree.get(handles[-1]).line if len(handles) > 0 else 1
            self.close(seq, self.flow.new(ExitNode, end_line, label="end"))
        return seq.first

    def emit_all(self, seq: _Seq, handles: list[int]) -> None:
        for h in handles:
            if not seq.open:
                return
            self.emit(seq, h)

    def emit(self, seq: _Seq, handle: int) -> None:
        node = self.tree.get(handle)
        if isinstance(node, (EmptyNode, ErrorNode)):
            return
        if isinstance(node, BlockNode):
            self.emit_all(seq, node.statements)
        elif isinstance(node, (VarDeclNode, ExprStmtNode, AssignNode, UpdateNode)):
            self.add_text(seq, handle)
        elif isinstance(node, ReturnNode):
            self.add_text(seq, handle)
            self.close(seq, self.flow.new(ExitNode, node.line, label="return"))
        elif isinstance(node, (BreakNode, ContinueNode)):
            self.add_text(seq, handle)
            if self.loop_depth > 0:
                seq.open = False
                if isinstance(node, ContinueNode):
                    seq.continued = True
                else:
                    seq.tail = None
        elif isinstance(node, FunctionNode):
            self.emit_function(seq, node)
        elif isinstance(node, IfNode):
            self.emit_if(seq, node)
        elif isinstance(node, WhileNode):
            self.emit_while(seq, node)
        elif isinstance(node, ForNode):
            self.emit_for(seq, node)
        else:
            raise InternalFault(
                "cannot build control flow for " + node.kind + " node",
                node.line,
                node.column,
            )

    def _statements_of(self, handle: int) -> list[int]:
        node = self.tree.get(handle)
        if isinstance(node, BlockNode):
            return node.statements
        return [handle]

    def emit_function(self, seq: _Seq, node: FunctionNode) -> None:
        fn = self.flow.new(
            StatementNode,
            node.line,
            statements=[render(self.tree, node.id)],
            function=node.name,
        )
        self.link(seq, fn)
        saved = self.loop_depth
        self.loop_depth = 0
        fn.body = self.build_body(self._statements_of(node.body), terminal=True)
        self.loop_depth = saved

    def emit_if(self, seq: _Seq, node: IfNode) -> None:
        branch = self.flow.new(IfFlowNode, node.line, condition=node.condition)
        self.scan_calls(node.test, branch)
        self.link(seq, branch)
        branch.true_branch = self.build_body(self._statements_of(node.then_branch), False)
        if node.else_branch is not None:
            branch.false_branch = self.build_body(
                self._statements_of(node.else_branch), False
            )

    def emit_while(self, seq: _Seq, node: WhileNode) -> None:
        loop = self.flow.new(WhileFlowNode, node.line, condition=node.condition)
        self.scan_calls(node.test, loop)
        self.link(seq, loop)
        self.loop_depth += 1
        loop.body = self.build_body(self._statements_of(node.body), False)
        self.loop_depth -= 1
        loop.loop_back = self.flow.new(LoopBackNode, node.line, target=loop.id).id

    def emit_for(self, seq: _Seq, node: ForNode) -> None:
        init = self.tree.get_as(node.init, ForSectionNode)
        cond = self.tree.get_as(node.condition, ForConditionNode)
        incr = self.tree.get_as(node.increment, ForSectionNode)
        body = self.tree.get_as(node.body, ForSectionNode)
        # init joins the preceding straight-line run
        for h in init.statements:
            self.emit(seq, h)
        condition = cond.condition if cond.condition != "" else "true"
        loop = self.flow.new(ForFlowNode, node.line, condition=condition)
        if cond.test is not None:
            self.scan_calls(cond.test, loop)
        self.link(seq, loop)
        self.loop_depth += 1
        inner = _Seq()
        self.emit_all(inner, body.statements)
        if inner.continued:
            inner.open = True
            inner.run = None
        if inner.open:
            for h in incr.statements:
                self.emit(inner, h)
        self.loop_depth -= 1
        loop.body = inner.first
        loop.loop_back = self.flow.new(LoopBackNode, node.line, target=loop.id).id

    # ── Top Level ────────────────────────────────────────────

    def build(self) -> ControlFlowTree:
        program = self.tree.root_node
        entry = self.flow.new(EntryNode, program.line)
        self.flow.root = entry.id
        entry.next = self.build_body(program.statements, terminal=True)
        return self.flow


def build_control_flow(tree: ParseTree | None) -> ControlFlowTree:
    """Build the control-flow tree for a parsed program."""
    if tree is None or tree.root < 0:
        raise InternalFault("control flow construction requires a parse tree")
    return Builder(tree).build()
